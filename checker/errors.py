"""
Typed errors raised by the Checker entry points.

Every entry point either returns a new state value or raises one of these.
Since state values are never modified in place, a raised error leaves the
caller's state exactly as it was. Broken internal bookkeeping (for example an
AVL pointer to a non-leaf where a leaf is expected) is not represented here:
those are assertion failures and are never recovered from.
"""


class CheckerError(ValueError):
    """Base class for all recoverable Checker failures."""


# Capability errors
class CapabilityError(CheckerError):
    pass


class MissingPermission(CapabilityError):
    def __init__(self):
        super().__init__("No permission ticket was given")


class InvalidPermission(CapabilityError):
    def __init__(self):
        super().__init__("Permission ticket is not valid for this burrow")


class InsufficientPermission(CapabilityError):
    def __init__(self):
        super().__init__("Permission ticket does not grant the required right")


class TicketAlreadyConsumed(CapabilityError):
    def __init__(self):
        super().__init__("Ticket has already been consumed")


class InvalidTicket(CapabilityError):
    def __init__(self, reason="Ticket was not issued by this contract"):
        super().__init__(reason)


# Argument errors
class ArgumentError(CheckerError):
    pass


class NegativeAmount(ArgumentError):
    def __init__(self, what, amount):
        self.amount = amount
        super().__init__(f"Amount of {what} must not be negative: {amount}")


class InvalidPrice(ArgumentError):
    def __init__(self, what, price):
        self.price = price
        super().__init__(f"Invalid {what}: {price}")


# Existence errors
class ExistenceError(CheckerError):
    pass


class NonExistentBurrow(ExistenceError):
    def __init__(self, burrow_id):
        self.burrow_id = burrow_id
        super().__init__(f"Burrow {burrow_id} does not exist")


class InvalidLeafPtr(ExistenceError):
    def __init__(self, leaf_ptr):
        self.leaf_ptr = leaf_ptr
        super().__init__(f"Pointer {leaf_ptr} is not a liquidation slice")


# Lifecycle errors
class LifecycleError(CheckerError):
    pass


class InsufficientFunds(LifecycleError):
    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"Insufficient funds: {amount} mutez is less than the creation deposit")


class BurrowIsAlreadyActive(LifecycleError):
    def __init__(self):
        super().__init__("Burrow is already active")


class DeactivatingAnInactiveBurrow(LifecycleError):
    def __init__(self):
        super().__init__("Burrow is already inactive")


class DeactivatingAnOverburrowedBurrow(LifecycleError):
    def __init__(self):
        super().__init__("Cannot deactivate an overburrowed burrow")


class DeactivatingWithOutstandingKit(LifecycleError):
    def __init__(self):
        super().__init__("Cannot deactivate a burrow with outstanding kit")


class DeactivatingWithCollateralAtAuctions(LifecycleError):
    def __init__(self):
        super().__init__("Cannot deactivate a burrow with collateral at auction")


class WithdrawTezFailure(LifecycleError):
    def __init__(self):
        super().__init__("Withdrawal would leave the burrow overburrowed")


class MintKitFailure(LifecycleError):
    def __init__(self):
        super().__init__("Minting would leave the burrow overburrowed")


class InsufficientCirculatingKit(LifecycleError):
    def __init__(self):
        super().__init__("Cannot burn more kit than is in circulation")


class NotLiquidationCandidate(LifecycleError):
    def __init__(self, burrow_id):
        self.burrow_id = burrow_id
        super().__init__(f"Burrow {burrow_id} is not eligible for liquidation")


class BurrowHasCompletedLiquidation(LifecycleError):
    def __init__(self):
        super().__init__("Burrow has unclaimed slices from completed auctions")


class UnwarrantedCancellation(LifecycleError):
    def __init__(self):
        super().__init__("Liquidation slice cannot be cancelled")


# Auction errors
class AuctionError(CheckerError):
    pass


class LiquidationQueueTooLong(AuctionError):
    def __init__(self):
        super().__init__("Liquidation queue is too long")


class NoOpenAuction(AuctionError):
    def __init__(self):
        super().__init__("There is no open liquidation auction")


class BidTooLow(AuctionError):
    def __init__(self, bid, minimum):
        self.bid = bid
        self.minimum = minimum
        super().__init__(f"Bid of {bid} is too low, must exceed {minimum}")


class CannotReclaimLeadingBid(AuctionError):
    def __init__(self):
        super().__init__("The leading bid cannot be reclaimed")


class CannotReclaimWinningBid(AuctionError):
    def __init__(self):
        super().__init__("The winning bid cannot be reclaimed")


class NotAWinningBid(AuctionError):
    def __init__(self):
        super().__init__("Bid did not win its auction")


class NotACompletedAuction(AuctionError):
    def __init__(self):
        super().__init__("Auction has not completed yet")


# Market errors
class MarketError(CheckerError):
    pass


class UniswapTooLate(MarketError):
    def __init__(self, now, deadline):
        super().__init__(f"Deadline {deadline} has passed (now {now})")


class NoTezGiven(MarketError):
    def __init__(self):
        super().__init__("No tez was given")


class NoKitGiven(MarketError):
    def __init__(self):
        super().__init__("No kit was given")


class UnwantedTezGiven(MarketError):
    def __init__(self):
        super().__init__("This operation does not accept tez")


class TooLowExpectation(MarketError):
    def __init__(self, what):
        super().__init__(f"Minimum expected {what} must be positive")


class SlippageExceeded(MarketError):
    def __init__(self, what, got, bound):
        self.got = got
        self.bound = bound
        super().__init__(f"Slippage bound violated for {what}: got {got}, bound {bound}")


class PoolDepleted(MarketError):
    def __init__(self, what):
        super().__init__(f"Operation would drain all {what} from the pool")


class NoLiquidityBurned(MarketError):
    def __init__(self):
        super().__init__("No liquidity tokens were burned")
