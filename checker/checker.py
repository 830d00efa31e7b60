"""
Checker: the aggregate state of the protocol and its entry points.

The whole contract state is a single immutable `Checker` value holding:

1. the burrows, indexed by burrow id
2. the market maker (uniswap)
3. the system parameters
4. the liquidation auctions, including the AVL storage of all slices
5. the delegation auction and the current delegate

Every entry point takes the state plus the execution context (`Tezos`) and,
where relevant, the call context (`Call`), and returns what is owed to the
caller together with a new state. Failures raise a `CheckerError` and leave
the given state untouched. Permission and bid tickets are only consumed once
the call has succeeded.

`touch` is the housekeeping entry point: it mints the caller's reward,
advances the parameters, feeds burrowing fees to the market maker, rolls the
delegation auction over, opens or closes liquidation auctions and drains a
bounded number of sold slices.
"""

import logging
import math
from dataclasses import dataclass, replace
from fractions import Fraction
from typing import Callable, Dict, Iterable, Optional, Tuple

from checker import delegation_auction as delegation
from checker import liquidation_auction as liquidation
from checker import parameters as params_module
from checker import uniswap as market
from checker.burrow import Burrow, LiquidationSlices, LiquidationType
from checker.constants import (
    KIT_SCALING_FACTOR,
    LIQUIDATION_PENALTY,
    NUMBER_OF_SLICES_TO_PROCESS,
    TOUCH_HIGH_REWARD,
    TOUCH_LOW_REWARD,
    TOUCH_REWARD_LOW_BRACKET,
)
from checker.delegation_auction import DelegationAuction
from checker.errors import (
    BurrowHasCompletedLiquidation,
    InsufficientCirculatingKit,
    InsufficientPermission,
    InvalidLeafPtr,
    InvalidPermission,
    MissingPermission,
    NegativeAmount,
    NonExistentBurrow,
    NotLiquidationCandidate,
    UnwarrantedCancellation,
)
from checker.fixedpoint import fp_of_fraction_ceil, fp_to_fraction
from checker.liquidation_auction import Bid, LiquidationAuctions, LiquidationSlice
from checker.parameters import Parameters
from checker.permission import (
    ADMIN,
    PermissionContent,
    Rights,
    does_right_allow_kit_burning,
    does_right_allow_kit_minting,
    does_right_allow_setting_delegate,
    does_right_allow_tez_deposits,
    does_right_allow_tez_withdrawals,
    is_admin_right,
)
from checker.ptr import Ptr, ptr_init, ptr_next
from checker.tezos import Call, TezPayment, Tezos
from checker.ticket import Ticket
from checker.uniswap import Uniswap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Checker:
    burrows: Dict[Ptr, Burrow]  # never mutated; updates build a new dict
    uniswap: Uniswap
    parameters: Parameters
    liquidation_auctions: LiquidationAuctions
    delegation_auction: DelegationAuction
    delegate: Optional[str]


def initialize(tezos: Tezos) -> Checker:
    """Make a fresh state."""
    return Checker(
        burrows={},
        uniswap=Uniswap.make_initial(tezos.level),
        parameters=Parameters.make_initial(tezos.now),
        liquidation_auctions=LiquidationAuctions.empty(),
        delegation_auction=DelegationAuction.empty(tezos),
        delegate=None,
    )


def _with_burrow(state: Checker, burrow_id: Ptr, burrow: Burrow) -> Dict[Ptr, Burrow]:
    burrows = dict(state.burrows)
    burrows[burrow_id] = burrow
    return burrows


def mk_next_burrow_id(burrows: Dict[Ptr, Burrow]) -> Ptr:
    if not burrows:
        return ptr_init()
    return ptr_next(max(burrows))


def assert_invariants(state: Checker) -> None:
    """
    Check the aggregate bookkeeping: the auction storage is well formed and,
    for every burrow, walking its slices from youngest to oldest ends at its
    oldest pointer and adds up to its collateral at auction.
    """
    storage = state.liquidation_auctions.avl_storage
    liquidation.assert_invariants(state.liquidation_auctions)
    state.uniswap.assert_invariants()
    for burrow_id, burrow in state.burrows.items():
        burrow.assert_invariants()
        slices = burrow.liquidation_slices
        if slices is None:
            assert burrow.collateral_at_auction == 0
            continue
        total = 0
        current, previous = slices.youngest, None
        for _ in range(len(storage)):
            liquidation_slice, tez = storage.read_leaf(current)
            assert liquidation_slice.burrow == burrow_id
            assert liquidation_slice.tez == tez
            assert liquidation_slice.younger == previous
            total += tez
            if liquidation_slice.older is None:
                break
            current, previous = liquidation_slice.older, current
        else:
            raise AssertionError(f"slices of burrow {burrow_id} form a cycle")
        assert current == slices.oldest
        assert total == burrow.collateral_at_auction


def _check_invariants(state: Checker) -> Checker:
    if __debug__:
        assert_invariants(state)
    return state


# Burrows

def is_burrow_done_with_liquidations(state: Checker, burrow: Burrow) -> bool:
    """True unless the burrow's oldest slice belongs to a completed auction."""
    if burrow.liquidation_slices is None:
        return True
    storage = state.liquidation_auctions.avl_storage
    root = storage.find_root(burrow.liquidation_slices.oldest)
    return storage.root_data(root) is None


def _find_burrow(state: Checker, burrow_id: Ptr) -> Burrow:
    burrow = state.burrows.get(burrow_id)
    if burrow is None:
        raise NonExistentBurrow(burrow_id)
    return burrow


def _find_burrow_with_no_unclaimed_slices(state: Checker, burrow_id: Ptr) -> Burrow:
    """Look up a burrow that has no sold slices waiting to be claimed."""
    burrow = _find_burrow(state, burrow_id)
    if not is_burrow_done_with_liquidations(state, burrow):
        raise BurrowHasCompletedLiquidation()
    return burrow


def is_permission_valid(tezos: Tezos, permission: Ticket, burrow_id: Ptr, burrow: Burrow) -> Optional[Rights]:
    """The rights a ticket grants on a burrow, or None if it grants nothing."""
    if permission.consumed:
        return None
    issuer, amount, content = permission.read()
    if not isinstance(content, PermissionContent):
        return None
    valid = (
        issuer == tezos.self_address
        and amount == 0
        and content.version == burrow.permission_version
        and content.burrow_id == burrow_id
    )
    return content.rights if valid else None


def _check_permission(tezos: Tezos, permission: Optional[Ticket], burrow_id: Ptr, burrow: Burrow, allows: Callable[[Rights], bool]) -> None:
    if permission is None:
        raise MissingPermission()
    rights = is_permission_valid(tezos, permission, burrow_id, burrow)
    if rights is None:
        raise InvalidPermission()
    if not allows(rights):
        raise InsufficientPermission()


def _check_non_negative(what: str, amount: int) -> None:
    if amount < 0:
        raise NegativeAmount(what, amount)


def _mint_permission(tezos: Tezos, rights: Rights, burrow_id: Ptr, version: int) -> Ticket:
    return Ticket(tezos.self_address, 0, PermissionContent(rights=rights, burrow_id=burrow_id, version=version))


def create_burrow(state: Checker, tezos: Tezos, call: Call) -> Tuple[Ptr, Ticket, Checker]:
    """
    Create a burrow holding the attached tez, minus the creation deposit,
    and hand the sender an admin ticket for it.
    """
    burrow_id = mk_next_burrow_id(state.burrows)
    burrow = Burrow.create(state.parameters, call.amount)
    admin_ticket = _mint_permission(tezos, ADMIN, burrow_id, burrow.permission_version)
    logger.debug("Created burrow %d for %s with %d mutez", burrow_id, call.sender, call.amount)
    return burrow_id, admin_ticket, _check_invariants(replace(state, burrows=_with_burrow(state, burrow_id, burrow)))


def touch_burrow(state: Checker, burrow_id: Ptr) -> Checker:
    """Bring a burrow's outstanding kit up to date with the parameters."""
    burrow = _find_burrow(state, burrow_id)
    return _check_invariants(replace(state, burrows=_with_burrow(state, burrow_id, burrow.touch(state.parameters))))


def deposit_tez(state: Checker, tezos: Tezos, call: Call, permission: Optional[Ticket], burrow_id: Ptr) -> Checker:
    """Add the attached tez to a burrow's collateral."""
    _check_non_negative("tez", call.amount)
    burrow = _find_burrow_with_no_unclaimed_slices(state, burrow_id)
    if not burrow.allow_all_tez_deposits:
        _check_permission(tezos, permission, burrow_id, burrow, does_right_allow_tez_deposits)
    updated = burrow.deposit_tez(state.parameters, call.amount)
    if not burrow.allow_all_tez_deposits:
        permission.consume()
    return _check_invariants(replace(state, burrows=_with_burrow(state, burrow_id, updated)))


def withdraw_tez(state: Checker, tezos: Tezos, call: Call, permission: Ticket, tez: int, burrow_id: Ptr) -> Tuple[TezPayment, Checker]:
    """Take collateral out of a burrow, as long as it stays sufficiently collateralized."""
    _check_non_negative("tez", tez)
    burrow = _find_burrow_with_no_unclaimed_slices(state, burrow_id)
    _check_permission(tezos, permission, burrow_id, burrow, does_right_allow_tez_withdrawals)
    updated = burrow.withdraw_tez(state.parameters, tez)
    permission.consume()
    payment = TezPayment(destination=call.sender, amount=tez)
    return payment, _check_invariants(replace(state, burrows=_with_burrow(state, burrow_id, updated)))


def mint_kit(state: Checker, tezos: Tezos, call: Call, permission: Ticket, burrow_id: Ptr, kit: int) -> Tuple[int, Checker]:
    """Mint kit against a burrow's collateral; the kit goes to the sender."""
    _check_non_negative("kit", kit)
    burrow = _find_burrow_with_no_unclaimed_slices(state, burrow_id)
    _check_permission(tezos, permission, burrow_id, burrow, does_right_allow_kit_minting)
    updated = burrow.mint_kit(state.parameters, kit)
    permission.consume()
    parameters = state.parameters.add_circulating_kit(kit).add_outstanding_kit(kit)
    state = replace(state, burrows=_with_burrow(state, burrow_id, updated), parameters=parameters)
    return kit, _check_invariants(state)


def burn_kit(state: Checker, tezos: Tezos, call: Call, permission: Optional[Ticket], burrow_id: Ptr, kit: int) -> Checker:
    """
    Give kit back to a burrow. What exceeds the outstanding kit is kept in the
    burrow as excess kit.
    """
    _check_non_negative("kit", kit)
    burrow = _find_burrow_with_no_unclaimed_slices(state, burrow_id)
    if not burrow.allow_all_kit_burnings:
        _check_permission(tezos, permission, burrow_id, burrow, does_right_allow_kit_burning)
    if kit > state.parameters.circulating_kit:
        raise InsufficientCirculatingKit()
    touched = burrow.touch(state.parameters)
    updated = touched.burn_kit(state.parameters, kit)
    if not burrow.allow_all_kit_burnings:
        permission.consume()
    repaid = touched.outstanding_kit - updated.outstanding_kit
    parameters = state.parameters.remove_circulating_kit(kit).remove_outstanding_kit(repaid)
    state = replace(state, burrows=_with_burrow(state, burrow_id, updated), parameters=parameters)
    return _check_invariants(state)


def activate_burrow(state: Checker, tezos: Tezos, call: Call, permission: Ticket, burrow_id: Ptr) -> Checker:
    """Reactivate an inactive burrow by paying the creation deposit again."""
    burrow = _find_burrow_with_no_unclaimed_slices(state, burrow_id)
    _check_permission(tezos, permission, burrow_id, burrow, is_admin_right)
    updated = burrow.activate(state.parameters, call.amount)
    permission.consume()
    return _check_invariants(replace(state, burrows=_with_burrow(state, burrow_id, updated)))


def deactivate_burrow(state: Checker, tezos: Tezos, call: Call, permission: Ticket, burrow_id: Ptr, recipient: str) -> Tuple[TezPayment, Checker]:
    """Close down a burrow with no debt and pay its collateral and deposit to `recipient`."""
    burrow = _find_burrow_with_no_unclaimed_slices(state, burrow_id)
    _check_permission(tezos, permission, burrow_id, burrow, is_admin_right)
    updated, returned_tez = burrow.deactivate(state.parameters)
    permission.consume()
    payment = TezPayment(destination=recipient, amount=returned_tez)
    return payment, _check_invariants(replace(state, burrows=_with_burrow(state, burrow_id, updated)))


def set_burrow_delegate(state: Checker, tezos: Tezos, call: Call, permission: Ticket, burrow_id: Ptr, delegate: Optional[str]) -> Checker:
    burrow = _find_burrow_with_no_unclaimed_slices(state, burrow_id)
    _check_permission(tezos, permission, burrow_id, burrow, does_right_allow_setting_delegate)
    updated = burrow.set_delegate(state.parameters, delegate)
    permission.consume()
    return _check_invariants(replace(state, burrows=_with_burrow(state, burrow_id, updated)))


def set_allow_all_tez_deposits(state: Checker, tezos: Tezos, call: Call, permission: Ticket, burrow_id: Ptr, on: bool) -> Checker:
    """Requires admin. Let anyone deposit tez into the burrow without a ticket."""
    burrow = _find_burrow_with_no_unclaimed_slices(state, burrow_id)
    _check_permission(tezos, permission, burrow_id, burrow, is_admin_right)
    updated = burrow.set_allow_all_tez_deposits(state.parameters, on)
    permission.consume()
    return _check_invariants(replace(state, burrows=_with_burrow(state, burrow_id, updated)))


def set_allow_all_kit_burnings(state: Checker, tezos: Tezos, call: Call, permission: Ticket, burrow_id: Ptr, on: bool) -> Checker:
    """Requires admin. Let anyone burn kit into the burrow without a ticket."""
    burrow = _find_burrow_with_no_unclaimed_slices(state, burrow_id)
    _check_permission(tezos, permission, burrow_id, burrow, is_admin_right)
    updated = burrow.set_allow_all_kit_burnings(state.parameters, on)
    permission.consume()
    return _check_invariants(replace(state, burrows=_with_burrow(state, burrow_id, updated)))


def make_permission(state: Checker, tezos: Tezos, call: Call, permission: Ticket, burrow_id: Ptr, rights: Rights) -> Ticket:
    """Requires admin. Mint a ticket with the given rights for the burrow's current version."""
    burrow = _find_burrow_with_no_unclaimed_slices(state, burrow_id)
    _check_permission(tezos, permission, burrow_id, burrow, is_admin_right)
    permission.consume()
    return _mint_permission(tezos, rights, burrow_id, burrow.permission_version)


def invalidate_all_permissions(state: Checker, tezos: Tezos, call: Call, permission: Ticket, burrow_id: Ptr) -> Tuple[Ticket, Checker]:
    """
    Requires admin. Bump the burrow's permission version, which invalidates
    every ticket issued so far, and return a fresh admin ticket.
    """
    burrow = _find_burrow_with_no_unclaimed_slices(state, burrow_id)
    _check_permission(tezos, permission, burrow_id, burrow, is_admin_right)
    new_version, updated = burrow.increase_permission_version(state.parameters)
    permission.consume()
    admin_ticket = _mint_permission(tezos, ADMIN, burrow_id, new_version)
    return admin_ticket, _check_invariants(replace(state, burrows=_with_burrow(state, burrow_id, updated)))


def mark_for_liquidation(state: Checker, call: Call, burrow_id: Ptr) -> Tuple[TezPayment, Checker]:
    """
    Send part of an undercollateralized burrow's collateral to the auction
    queue and pay the reward to the sender.
    """
    burrow = _find_burrow(state, burrow_id)
    kind, details = burrow.request_liquidation(state.parameters)
    if kind is LiquidationType.UNNECESSARY:
        raise NotLiquidationCandidate(burrow_id)

    updated_burrow = details.burrow_state
    auctions = state.liquidation_auctions
    if details.tez_to_auction > 0:
        slices = updated_burrow.liquidation_slices
        liquidation_slice = LiquidationSlice(
            burrow=burrow_id,
            tez=details.tez_to_auction,
            min_kit_for_unwarranted=details.min_kit_for_unwarranted,
            older=None if slices is None else slices.youngest,
            younger=None,
        )
        auctions, leaf_ptr = liquidation.send_to_auction(auctions, liquidation_slice)
        if slices is None:
            slices = LiquidationSlices(oldest=leaf_ptr, youngest=leaf_ptr)
        else:
            slices = replace(slices, youngest=leaf_ptr)
        updated_burrow = updated_burrow.set_liquidation_slices(slices)

    logger.debug(
        "Burrow %d marked for %s liquidation: %d mutez to auction, reward %d",
        burrow_id, kind.name.lower(), details.tez_to_auction, details.liquidation_reward,
    )
    payment = TezPayment(destination=call.sender, amount=details.liquidation_reward)
    state = replace(
        state,
        burrows=_with_burrow(state, burrow_id, updated_burrow),
        liquidation_auctions=auctions,
    )
    return payment, _check_invariants(state)


def _remove_slice_from_burrow(burrow: Burrow, leaf_ptr: Ptr, liquidation_slice: LiquidationSlice) -> Burrow:
    """Move the burrow's end pointers off a slice that is going away."""
    slices = burrow.liquidation_slices
    assert slices is not None
    younger, older = liquidation_slice.younger, liquidation_slice.older
    if younger is None and older is None:
        assert slices.youngest == leaf_ptr and slices.oldest == leaf_ptr
        return burrow.set_liquidation_slices(None)
    if younger is None:
        assert slices.youngest == leaf_ptr
        return burrow.set_liquidation_slices(replace(slices, youngest=older))
    if older is None:
        assert slices.oldest == leaf_ptr
        return burrow.set_liquidation_slices(replace(slices, oldest=younger))
    assert slices.youngest != leaf_ptr and slices.oldest != leaf_ptr
    return burrow


def _read_slice(state: Checker, leaf_ptr: Ptr) -> LiquidationSlice:
    storage = state.liquidation_auctions.avl_storage
    if not storage.is_leaf(leaf_ptr):
        raise InvalidLeafPtr(leaf_ptr)
    liquidation_slice, _ = storage.read_leaf(leaf_ptr)
    return liquidation_slice


def cancel_liquidation_slice(state: Checker, leaf_ptr: Ptr) -> Checker:
    """
    Return a queued slice's collateral to its burrow. Only slices that have
    not been taken into an auction can be cancelled, and only if the burrow
    is no longer overburrowed without them.
    """
    liquidation_slice = _read_slice(state, leaf_ptr)
    auctions = state.liquidation_auctions
    if auctions.avl_storage.find_root(leaf_ptr) != auctions.queued_slices:
        raise UnwarrantedCancellation()
    burrow = state.burrows.get(liquidation_slice.burrow)
    assert burrow is not None, "slice of an unknown burrow"
    burrow = burrow.touch(state.parameters)
    if burrow.is_overburrowed(state.parameters):
        raise UnwarrantedCancellation()

    storage = auctions.avl_storage.copy()
    storage.delete(leaf_ptr)
    liquidation.relink_neighbours(storage, leaf_ptr, liquidation_slice)
    burrow = burrow.return_tez_from_auction(liquidation_slice.tez)
    burrow = _remove_slice_from_burrow(burrow, leaf_ptr, liquidation_slice)
    logger.debug("Cancelled slice %d of burrow %d", leaf_ptr, liquidation_slice.burrow)
    state = replace(
        state,
        burrows=_with_burrow(state, liquidation_slice.burrow, burrow),
        liquidation_auctions=replace(auctions, avl_storage=storage),
    )
    return _check_invariants(state)


def touch_liquidation_slice(state: Checker, leaf_ptr: Ptr) -> Checker:
    """
    Settle one slice of a completed auction: give its share of the winning
    bid back to the burrow (minus a burned penalty if the liquidation was
    warranted) and remove the slice. Slices of auctions that have not
    completed are left alone.
    """
    liquidation_slice = _read_slice(state, leaf_ptr)
    auctions = state.liquidation_auctions
    root = auctions.avl_storage.find_root(leaf_ptr)
    outcome = auctions.avl_storage.root_data(root)
    if outcome is None:
        return state

    if outcome.sold_tez == 0:
        corresponding_kit = 0
    else:
        corresponding_kit = math.floor(
            Fraction(liquidation_slice.tez, outcome.sold_tez) * outcome.winning_bid.kit
        )
    if corresponding_kit < liquidation_slice.min_kit_for_unwarranted:
        penalty = math.ceil(corresponding_kit * LIQUIDATION_PENALTY)
    else:
        penalty = 0
    kit_to_repay = corresponding_kit - penalty

    parameters = state.parameters
    if penalty > parameters.circulating_kit:
        logger.debug("Penalty of %d mukit clamped to the %d mukit in circulation", penalty, parameters.circulating_kit)
    parameters = parameters.remove_circulating_kit(min(penalty, parameters.circulating_kit))

    storage = auctions.avl_storage.copy()
    storage.delete(leaf_ptr)
    completed = auctions.completed_auctions
    if storage.is_empty(root):
        completed = liquidation.pop_completed_auction(storage, completed, root)
    liquidation.relink_neighbours(storage, leaf_ptr, liquidation_slice)

    burrow = state.burrows.get(liquidation_slice.burrow)
    assert burrow is not None, "slice of an unknown burrow"
    burrow = burrow.touch(parameters)
    outstanding_before = burrow.outstanding_kit
    burrow = burrow.return_kit_from_auction(liquidation_slice.tez, kit_to_repay)
    parameters = parameters.remove_outstanding_kit(outstanding_before - burrow.outstanding_kit)
    burrow = _remove_slice_from_burrow(burrow, leaf_ptr, liquidation_slice)

    logger.debug(
        "Settled slice %d of burrow %d: %d mukit repaid, %d mukit burned",
        leaf_ptr, liquidation_slice.burrow, kit_to_repay, penalty,
    )
    state = replace(
        state,
        burrows=_with_burrow(state, liquidation_slice.burrow, burrow),
        parameters=parameters,
        liquidation_auctions=replace(auctions, avl_storage=storage, completed_auctions=completed),
    )
    return _check_invariants(state)


def touch_liquidation_slices(state: Checker, leaf_ptrs: Iterable[Ptr]) -> Checker:
    """Settle the given slices; invalid pointers fail, unsold slices are skipped."""
    for leaf_ptr in leaf_ptrs:
        state = touch_liquidation_slice(state, leaf_ptr)
    return state


# Market maker

def buy_kit(state: Checker, tezos: Tezos, call: Call, min_kit_expected: int, deadline: int) -> Tuple[int, Checker]:
    kit, uniswap = market.buy_kit(state.uniswap, tezos, call.amount, min_kit_expected, deadline)
    return kit, _check_invariants(replace(state, uniswap=uniswap))


def sell_kit(state: Checker, tezos: Tezos, call: Call, kit: int, min_tez_expected: int, deadline: int) -> Tuple[TezPayment, Checker]:
    tez, uniswap = market.sell_kit(state.uniswap, tezos, call.amount, kit, min_tez_expected, deadline)
    return TezPayment(destination=call.sender, amount=tez), _check_invariants(replace(state, uniswap=uniswap))


def add_liquidity(state: Checker, tezos: Tezos, call: Call, max_kit_deposited: int, min_lqt_minted: int, deadline: int) -> Tuple[int, int, int, Checker]:
    """Returns the liquidity tokens minted and the leftover tez and kit."""
    lqt, leftover_tez, leftover_kit, uniswap = market.add_liquidity(
        state.uniswap, tezos, call.amount, max_kit_deposited, min_lqt_minted, deadline
    )
    return lqt, leftover_tez, leftover_kit, _check_invariants(replace(state, uniswap=uniswap))


def remove_liquidity(state: Checker, tezos: Tezos, call: Call, lqt_burned: int, min_tez_withdrawn: int, min_kit_withdrawn: int, deadline: int) -> Tuple[TezPayment, int, Checker]:
    tez, kit, uniswap = market.remove_liquidity(
        state.uniswap, tezos, call.amount, lqt_burned, min_tez_withdrawn, min_kit_withdrawn, deadline
    )
    return TezPayment(destination=call.sender, amount=tez), kit, _check_invariants(replace(state, uniswap=uniswap))


# Liquidation auctions

def liquidation_auction_place_bid(state: Checker, tezos: Tezos, call: Call, kit: int) -> Tuple[Ticket, Checker]:
    """Bid kit on the open lot. The ticket lets the bidder reclaim the kit once outbid."""
    bid = Bid(address=call.sender, kit=kit)
    auctions, ticket = liquidation.place_bid(state.liquidation_auctions, tezos, bid)
    return ticket, _check_invariants(replace(state, liquidation_auctions=auctions))


def liquidation_auction_reclaim_bid(state: Checker, tezos: Tezos, bid_ticket: Ticket) -> int:
    """Refund the kit of a bid that has been outbid."""
    kit = liquidation.reclaim_bid(state.liquidation_auctions, tezos, bid_ticket)
    bid_ticket.consume()
    return kit


def liquidation_auction_reclaim_winning_bid(state: Checker, tezos: Tezos, call: Call, bid_ticket: Ticket) -> Tuple[TezPayment, Checker]:
    """Pay the tez of a completed lot to the holder of its winning ticket."""
    tez, auctions = liquidation.reclaim_winning_bid(state.liquidation_auctions, tezos, bid_ticket)
    bid_ticket.consume()
    return TezPayment(destination=call.sender, amount=tez), _check_invariants(replace(state, liquidation_auctions=auctions))


# Delegation auction

def delegation_auction_place_bid(state: Checker, tezos: Tezos, call: Call) -> Tuple[Ticket, Checker]:
    ticket, auction = delegation.place_bid(state.delegation_auction, tezos, call.sender, call.amount)
    return ticket, _check_invariants(replace(state, delegation_auction=auction))


def delegation_auction_claim_win(state: Checker, tezos: Tezos, bid_ticket: Ticket, delegate: str) -> Checker:
    auction = delegation.claim_win(state.delegation_auction, tezos, bid_ticket, delegate)
    bid_ticket.consume()
    return _check_invariants(replace(state, delegation_auction=auction, delegate=auction.delegate))


def delegation_auction_reclaim_bid(state: Checker, tezos: Tezos, call: Call, bid_ticket: Ticket) -> Tuple[TezPayment, Checker]:
    tez, auction = delegation.reclaim_bid(state.delegation_auction, tezos, bid_ticket)
    bid_ticket.consume()
    return TezPayment(destination=call.sender, amount=tez), _check_invariants(replace(state, delegation_auction=auction))


# Touching

def calculate_touch_reward(state: Checker, tezos: Tezos) -> int:
    """
    Kit earned for touching the contract now. For the first
    TOUCH_REWARD_LOW_BRACKET seconds since the last touch the reward grows by
    TOUCH_LOW_REWARD per second, and by TOUCH_HIGH_REWARD after that.
    """
    assert state.parameters.last_touched <= tezos.now
    duration = tezos.now - state.parameters.last_touched
    low_duration = min(duration, TOUCH_REWARD_LOW_BRACKET)
    high_duration = max(0, duration - TOUCH_REWARD_LOW_BRACKET)
    touch_low_reward = fp_of_fraction_ceil(TOUCH_LOW_REWARD)
    touch_high_reward = fp_of_fraction_ceil(TOUCH_HIGH_REWARD)
    reward = fp_to_fraction(low_duration * touch_low_reward + high_duration * touch_high_reward)
    return math.floor(reward * KIT_SCALING_FACTOR)


def _touch_oldest_slices(state: Checker, maximum: int) -> Checker:
    for _ in range(maximum):
        leaf_ptr = liquidation.oldest_completed_liquidation_slice(state.liquidation_auctions)
        if leaf_ptr is None:
            break
        state = touch_liquidation_slice(state, leaf_ptr)
    return state


def touch(state: Checker, tezos: Tezos, index: int) -> Tuple[int, Checker]:
    """
    Perform the periodic housekeeping. Idempotent within a single timestamp:
    a second touch at the same time returns no reward and the same state.

    Args:
        state: Current contract state
        tezos: Execution context
        index: Oracle price, in mutez

    Returns:
        (kit reward for the caller, updated state)
    """
    if state.parameters.last_touched == tezos.now:
        return 0, state

    # 1: the reward is priced before the parameters move
    reward = calculate_touch_reward(state, tezos)
    parameters = state.parameters.add_circulating_kit(reward)

    # 2: advance the parameters, using the price seen at the end of the previous block
    uniswap = state.uniswap.sync_last_observed(tezos)
    accrual_to_uniswap, parameters = params_module.touch(
        tezos.now, index, uniswap.kit_in_tez_in_prev_block, parameters
    )

    # 3: burrowing fees go to the market maker
    uniswap = market.add_accrued_kit(uniswap, tezos, accrual_to_uniswap)

    # 4: delegation auction, and possibly a new delegate
    delegate, delegation_auction = delegation.delegate(state.delegation_auction, tezos)

    # 5: close or open liquidation auctions, at the liquidation price rounded up
    start_price = fp_to_fraction(fp_of_fraction_ceil(parameters.liquidation_price()))
    auctions, split = liquidation.touch(state.liquidation_auctions, tezos, start_price)
    burrows = state.burrows
    if split is not None:
        burrow = burrows[split.burrow]
        slices = burrow.liquidation_slices
        if slices.youngest == split.original:
            burrows = dict(burrows)
            burrows[split.burrow] = burrow.set_liquidation_slices(replace(slices, youngest=split.remainder))

    state = Checker(
        burrows=burrows,
        uniswap=uniswap,
        parameters=parameters,
        liquidation_auctions=auctions,
        delegation_auction=delegation_auction,
        delegate=delegate,
    )

    # 6: settle a bounded number of sold slices, oldest first
    state = _touch_oldest_slices(state, NUMBER_OF_SLICES_TO_PROCESS)
    logger.info("Touched at %d: reward %d mukit, %d mukit accrued to uniswap", tezos.now, reward, accrual_to_uniswap)
    return reward, _check_invariants(state)
