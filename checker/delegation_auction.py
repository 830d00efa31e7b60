"""
Delegation Auction Model for the Checker protocol.

Each cycle the right to pick the contract's delegate for the next cycle is
auctioned off for tez. The highest bid of a cycle wins once the cycle has
rolled over; the winner then claims with its ticket, naming the delegate.
Outbid tickets can be reclaimed at any time.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from checker.constants import BLOCKS_PER_CYCLE
from checker.errors import (
    BidTooLow,
    CannotReclaimLeadingBid,
    CannotReclaimWinningBid,
    InvalidTicket,
    NotAWinningBid,
)
from checker.tezos import Tezos
from checker.ticket import Ticket

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DelegationBid:
    bidder: str
    cycle: int
    amount: int  # mutez


@dataclass(frozen=True)
class DelegationAuction:
    cycle: int
    winner: Optional[DelegationBid]
    leading_bid: Optional[DelegationBid]
    delegate: Optional[str]

    @classmethod
    def empty(cls, tezos: Tezos) -> "DelegationAuction":
        return cls(cycle=level_to_cycle(tezos.level), winner=None, leading_bid=None, delegate=None)

    def winning_amount(self) -> Optional[int]:
        return None if self.winner is None else self.winner.amount


def level_to_cycle(level: int) -> int:
    return level // BLOCKS_PER_CYCLE


def touch(auction: DelegationAuction, tezos: Tezos) -> DelegationAuction:
    """Roll the auction over to the current cycle, if it has changed."""
    current_cycle = level_to_cycle(tezos.level)
    if current_cycle == auction.cycle:
        return auction
    # Only the leader of the cycle just finished can win; skipped cycles had no bids.
    winner = auction.leading_bid if current_cycle == auction.cycle + 1 else None
    if winner is not None:
        logger.debug("Delegation auction for cycle %d won by %s", current_cycle, winner.bidder)
    return DelegationAuction(cycle=current_cycle, winner=winner, leading_bid=None, delegate=None)


def delegate(auction: DelegationAuction, tezos: Tezos) -> Tuple[Optional[str], DelegationAuction]:
    """The delegate for the current cycle, with the auction rolled over."""
    auction = touch(auction, tezos)
    return auction.delegate, auction


def place_bid(auction: DelegationAuction, tezos: Tezos, sender: str, amount: int) -> Tuple[Ticket, DelegationAuction]:
    auction = touch(auction, tezos)
    minimum = 0 if auction.leading_bid is None else auction.leading_bid.amount
    if amount <= minimum:
        raise BidTooLow(amount, minimum)
    bid = DelegationBid(bidder=sender, cycle=auction.cycle, amount=amount)
    ticket = Ticket(tezos.self_address, 1, bid)
    return ticket, replace(auction, leading_bid=bid)


def _read_bid_ticket(tezos: Tezos, ticket: Ticket) -> DelegationBid:
    issuer, amount, bid = ticket.read()
    if issuer != tezos.self_address or amount != 1 or not isinstance(bid, DelegationBid):
        raise InvalidTicket("Not a delegation auction bid ticket")
    return bid


def claim_win(auction: DelegationAuction, tezos: Tezos, ticket: Ticket, new_delegate: str) -> DelegationAuction:
    """Install the winner's delegate for the current cycle."""
    auction = touch(auction, tezos)
    bid = _read_bid_ticket(tezos, ticket)
    if auction.winner != bid:
        raise NotAWinningBid()
    return replace(auction, delegate=new_delegate)


def reclaim_bid(auction: DelegationAuction, tezos: Tezos, ticket: Ticket) -> Tuple[int, DelegationAuction]:
    """Refund an outbid (or expired) bid."""
    auction = touch(auction, tezos)
    bid = _read_bid_ticket(tezos, ticket)
    if auction.leading_bid == bid:
        raise CannotReclaimLeadingBid()
    if auction.winner == bid:
        raise CannotReclaimWinningBid()
    return bid.amount, auction
