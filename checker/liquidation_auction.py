"""
Liquidation Auction Model for the Checker protocol.

Collateral taken from liquidated burrows is queued as slices in an AVL tree
(the queue). When no auction is running, `touch` takes a lot off the front
of the queue into a tree of its own and opens an auction for it:

1. The auction starts descending: the minimum acceptable bid starts at the
   value of the lot at the liquidation price and decays every second.
2. The first bid turns it ascending: every further bid must strictly beat
   the leading one.
3. Once enough time and enough blocks have passed since the leading bid, the
   lot completes. Its root records the outcome and the lot joins the list of
   completed auctions, from which its slices are drained one by one.

Slices also form a doubly linked list per burrow through their `older` and
`younger` pointers; this module keeps the neighbours consistent whenever a
slice is added, split or removed, while the burrow's own end pointers are
maintained by the caller.
"""

import logging
import math
from dataclasses import dataclass, replace
from fractions import Fraction
from typing import Optional, Tuple, Union

from checker.avl import AvlStorage, Root
from checker.constants import (
    AUCTION_DECAY_RATE,
    KIT_SCALING_FACTOR,
    MAX_BID_INTERVAL_IN_BLOCKS,
    MAX_BID_INTERVAL_IN_SECONDS,
    MAX_LIQUIDATION_QUEUE_HEIGHT,
    MAX_LOT_SIZE,
    MIN_LOT_AUCTION_QUEUE_FRACTION,
    TEZ_SCALING_FACTOR,
)
from checker.errors import (
    BidTooLow,
    CannotReclaimLeadingBid,
    CannotReclaimWinningBid,
    InvalidTicket,
    LiquidationQueueTooLong,
    NoOpenAuction,
    NotACompletedAuction,
    NotAWinningBid,
)
from checker.fixedpoint import fp_of_fraction_floor, fp_pow, fp_to_fraction
from checker.ptr import Ptr
from checker.tezos import Tezos
from checker.ticket import Ticket

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiquidationSlice:
    burrow: Ptr
    tez: int
    min_kit_for_unwarranted: int
    older: Optional[Ptr]
    younger: Optional[Ptr]


@dataclass(frozen=True)
class Bid:
    address: str
    kit: int


@dataclass(frozen=True)
class Descending:
    start_value: int  # mukit
    start_time: int


@dataclass(frozen=True)
class Ascending:
    leading_bid: Bid
    time: int
    level: int


@dataclass(frozen=True)
class CurrentAuction:
    contents: Ptr  # root of the lot
    state: Union[Descending, Ascending]


@dataclass(frozen=True)
class AuctionOutcome:
    """Stored as the root data of a completed lot."""
    sold_tez: int
    winning_bid: Bid
    younger_auction: Optional[Ptr]
    older_auction: Optional[Ptr]
    winner_paid: bool = False


@dataclass(frozen=True)
class CompletedAuctions:
    youngest: Ptr
    oldest: Ptr


@dataclass(frozen=True)
class BidDetails:
    """Content of a liquidation auction bid ticket."""
    auction_id: Ptr
    bid: Bid


@dataclass(frozen=True)
class SliceSplit:
    """A queued slice was cut in two when a lot was taken off the queue.

    The part that went into the lot kept `original`; the remainder left in
    the queue is the new, younger leaf `remainder`.
    """
    burrow: Ptr
    original: Ptr
    remainder: Ptr


@dataclass(frozen=True)
class LiquidationAuctions:
    avl_storage: AvlStorage
    queued_slices: Ptr
    current_auction: Optional[CurrentAuction]
    completed_auctions: Optional[CompletedAuctions]

    @classmethod
    def empty(cls) -> "LiquidationAuctions":
        storage = AvlStorage()
        queued_slices = storage.mk_empty()
        return cls(
            avl_storage=storage,
            queued_slices=queued_slices,
            current_auction=None,
            completed_auctions=None,
        )


# Linked list of slices

def relink_neighbours(storage: AvlStorage, leaf_ptr: Ptr, liquidation_slice: LiquidationSlice) -> None:
    """Close the gap a slice leaves in its burrow's list when it is removed."""
    if liquidation_slice.younger is not None:
        def fix_younger(younger):
            assert younger.older == leaf_ptr
            return replace(younger, older=liquidation_slice.older)
        storage.update_leaf(liquidation_slice.younger, fix_younger)
    if liquidation_slice.older is not None:
        def fix_older(older):
            assert older.younger == leaf_ptr
            return replace(older, younger=liquidation_slice.younger)
        storage.update_leaf(liquidation_slice.older, fix_older)


def send_to_auction(auctions: LiquidationAuctions, liquidation_slice: LiquidationSlice) -> Tuple[LiquidationAuctions, Ptr]:
    """
    Append a slice to the back of the queue.

    The slice must name the burrow's current youngest slice (if any) as its
    older neighbour; that neighbour is updated to point back at the new leaf.
    """
    if auctions.avl_storage.avl_height(auctions.queued_slices) > MAX_LIQUIDATION_QUEUE_HEIGHT:
        raise LiquidationQueueTooLong()
    assert liquidation_slice.younger is None
    storage = auctions.avl_storage.copy()
    leaf_ptr = storage.push_back(auctions.queued_slices, liquidation_slice, liquidation_slice.tez)
    if liquidation_slice.older is not None:
        def point_to_new(older):
            assert older.younger is None
            return replace(older, younger=leaf_ptr)
        storage.update_leaf(liquidation_slice.older, point_to_new)
    return replace(auctions, avl_storage=storage), leaf_ptr


def _split_slice(liquidation_slice: LiquidationSlice, tez: int) -> Tuple[LiquidationSlice, LiquidationSlice]:
    """Cut a slice so the first part holds `tez`; the threshold is split proportionally."""
    assert 0 < tez < liquidation_slice.tez
    first_min_kit = math.floor(Fraction(liquidation_slice.min_kit_for_unwarranted * tez, liquidation_slice.tez))
    first = replace(liquidation_slice, tez=tez, min_kit_for_unwarranted=first_min_kit)
    second = replace(
        liquidation_slice,
        tez=liquidation_slice.tez - tez,
        min_kit_for_unwarranted=liquidation_slice.min_kit_for_unwarranted - first_min_kit,
    )
    return first, second


def _take_with_splitting(storage: AvlStorage, queue: Ptr, limit: int) -> Tuple[Ptr, Optional[SliceSplit]]:
    """Move slices from the front of the queue into a new lot holding at most `limit` tez."""
    lot = storage.mk_empty()
    taken = 0
    while True:
        leaf_ptr = storage.head(queue)
        if leaf_ptr is None:
            return lot, None
        liquidation_slice, tez = storage.read_leaf(leaf_ptr)
        if taken + tez <= limit:
            storage.detach(leaf_ptr)
            storage.attach_back(lot, leaf_ptr)
            taken += tez
            continue
        remaining = limit - taken
        if remaining == 0:
            return lot, None
        first, second = _split_slice(liquidation_slice, remaining)
        storage.detach(leaf_ptr)
        remainder_ptr = storage.push_front(queue, replace(second, older=leaf_ptr), second.tez)
        storage.replace_detached_leaf(leaf_ptr, replace(first, younger=remainder_ptr), first.tez)
        storage.attach_back(lot, leaf_ptr)
        if liquidation_slice.younger is not None:
            def point_to_remainder(younger):
                assert younger.older == leaf_ptr
                return replace(younger, older=remainder_ptr)
            storage.update_leaf(liquidation_slice.younger, point_to_remainder)
        return lot, SliceSplit(liquidation_slice.burrow, leaf_ptr, remainder_ptr)


def start_auction_if_possible(auctions: LiquidationAuctions, tezos: Tezos, liquidation_price: Fraction) -> Tuple[LiquidationAuctions, Optional[SliceSplit]]:
    if auctions.current_auction is not None:
        return auctions, None
    queued_tez = auctions.avl_storage.avl_tez(auctions.queued_slices)
    if queued_tez == 0:
        return auctions, None
    split_threshold = max(MAX_LOT_SIZE, math.floor(queued_tez * MIN_LOT_AUCTION_QUEUE_FRACTION))
    storage = auctions.avl_storage.copy()
    lot, split = _take_with_splitting(storage, auctions.queued_slices, split_threshold)
    sold_tez = storage.avl_tez(lot)
    start_value = math.ceil(Fraction(sold_tez, TEZ_SCALING_FACTOR) / liquidation_price * KIT_SCALING_FACTOR)
    current = CurrentAuction(contents=lot, state=Descending(start_value=start_value, start_time=tezos.now))
    logger.debug("Started liquidation auction %d for %d mutez, start value %d mukit", lot, sold_tez, start_value)
    return replace(auctions, avl_storage=storage, current_auction=current), split


def current_auction_minimum_bid(auction: CurrentAuction, tezos: Tezos) -> int:
    """
    Lowest acceptable bid right now. In the ascending phase a bid must be
    strictly above this value, in the descending phase at least this value.
    """
    state = auction.state
    if isinstance(state, Ascending):
        return state.leading_bid.kit
    elapsed = max(0, tezos.now - state.start_time)
    decay = fp_pow(fp_of_fraction_floor(1 - AUCTION_DECAY_RATE), elapsed)
    return math.ceil(state.start_value * fp_to_fraction(decay))


def is_auction_complete(auction: CurrentAuction, tezos: Tezos) -> bool:
    state = auction.state
    if not isinstance(state, Ascending):
        return False
    return (
        tezos.now - state.time > MAX_BID_INTERVAL_IN_SECONDS
        and tezos.level - state.level > MAX_BID_INTERVAL_IN_BLOCKS
    )


def place_bid(auctions: LiquidationAuctions, tezos: Tezos, bid: Bid) -> Tuple[LiquidationAuctions, Ticket]:
    auction = auctions.current_auction
    if auction is None or is_auction_complete(auction, tezos):
        raise NoOpenAuction()
    minimum = current_auction_minimum_bid(auction, tezos)
    if isinstance(auction.state, Ascending):
        if bid.kit <= minimum:
            raise BidTooLow(bid.kit, minimum)
    elif bid.kit < minimum or bid.kit <= 0:
        raise BidTooLow(bid.kit, minimum)
    updated = replace(auction, state=Ascending(leading_bid=bid, time=tezos.now, level=tezos.level))
    ticket = Ticket(tezos.self_address, 1, BidDetails(auction_id=auction.contents, bid=bid))
    return replace(auctions, current_auction=updated), ticket


def complete_auction_if_possible(auctions: LiquidationAuctions, tezos: Tezos) -> LiquidationAuctions:
    auction = auctions.current_auction
    if auction is None or not is_auction_complete(auction, tezos):
        return auctions
    storage = auctions.avl_storage.copy()
    completed = auctions.completed_auctions
    outcome = AuctionOutcome(
        sold_tez=storage.avl_tez(auction.contents),
        winning_bid=auction.state.leading_bid,
        younger_auction=None,
        older_auction=None if completed is None else completed.youngest,
    )
    storage.set_root_data(auction.contents, outcome)
    if completed is None:
        completed = CompletedAuctions(youngest=auction.contents, oldest=auction.contents)
    else:
        previous = storage.root_data(completed.youngest)
        storage.set_root_data(completed.youngest, replace(previous, younger_auction=auction.contents))
        completed = replace(completed, youngest=auction.contents)
    logger.debug(
        "Completed liquidation auction %d: %d mutez for %d mukit",
        auction.contents, outcome.sold_tez, outcome.winning_bid.kit,
    )
    return replace(auctions, avl_storage=storage, current_auction=None, completed_auctions=completed)


def touch(auctions: LiquidationAuctions, tezos: Tezos, liquidation_price: Fraction) -> Tuple[LiquidationAuctions, Optional[SliceSplit]]:
    """Close the current auction if it is over, then open a new one if slices are waiting."""
    auctions = complete_auction_if_possible(auctions, tezos)
    return start_auction_if_possible(auctions, tezos, liquidation_price)


def oldest_completed_liquidation_slice(auctions: LiquidationAuctions) -> Optional[Ptr]:
    if auctions.completed_auctions is None:
        return None
    return auctions.avl_storage.head(auctions.completed_auctions.oldest)


def pop_completed_auction(storage: AvlStorage, completed: Optional[CompletedAuctions], root: Ptr) -> Optional[CompletedAuctions]:
    """
    Unlink a drained lot from the list of completed auctions.

    The lot's root stays in storage until its winner has been paid, so the
    outcome can still be read. Mutates `storage`, returns the new list ends.
    """
    assert completed is not None
    outcome = storage.root_data(root)
    younger, older = outcome.younger_auction, outcome.older_auction
    if younger is not None:
        storage.set_root_data(younger, replace(storage.root_data(younger), older_auction=older))
    if older is not None:
        storage.set_root_data(older, replace(storage.root_data(older), younger_auction=younger))
    if outcome.winner_paid:
        storage.delete_tree(root)
    else:
        storage.set_root_data(root, replace(outcome, younger_auction=None, older_auction=None))
    youngest = older if completed.youngest == root else completed.youngest
    oldest = younger if completed.oldest == root else completed.oldest
    if youngest is None or oldest is None:
        assert youngest is None and oldest is None
        return None
    return CompletedAuctions(youngest=youngest, oldest=oldest)


# Bid tickets

def _read_bid_ticket(tezos: Tezos, ticket: Ticket) -> BidDetails:
    issuer, amount, details = ticket.read()
    if issuer != tezos.self_address or amount != 1 or not isinstance(details, BidDetails):
        raise InvalidTicket("Not a liquidation auction bid ticket")
    return details


def _outcome_of(auctions: LiquidationAuctions, auction_id: Ptr) -> Optional[AuctionOutcome]:
    node = auctions.avl_storage.mem.get(auction_id)
    if not isinstance(node, Root):
        return None
    return node.data


def is_leading_current_bid(auctions: LiquidationAuctions, details: BidDetails) -> bool:
    auction = auctions.current_auction
    return (
        auction is not None
        and auction.contents == details.auction_id
        and isinstance(auction.state, Ascending)
        and auction.state.leading_bid == details.bid
    )


def reclaim_bid(auctions: LiquidationAuctions, tezos: Tezos, ticket: Ticket) -> int:
    """
    Kit to refund for an outbid ticket. The ticket is validated but not
    consumed; the caller consumes it once the call has succeeded.
    """
    details = _read_bid_ticket(tezos, ticket)
    if is_leading_current_bid(auctions, details):
        raise CannotReclaimLeadingBid()
    outcome = _outcome_of(auctions, details.auction_id)
    if outcome is not None and outcome.winning_bid == details.bid:
        raise CannotReclaimWinningBid()
    return details.bid.kit


def reclaim_winning_bid(auctions: LiquidationAuctions, tezos: Tezos, ticket: Ticket) -> Tuple[int, LiquidationAuctions]:
    """Tez owed to the winner of a completed lot, and the auctions with the lot marked as paid."""
    details = _read_bid_ticket(tezos, ticket)
    outcome = _outcome_of(auctions, details.auction_id)
    if outcome is None:
        raise NotACompletedAuction()
    if outcome.winning_bid != details.bid or outcome.winner_paid:
        raise NotAWinningBid()
    storage = auctions.avl_storage.copy()
    if storage.is_empty(details.auction_id):
        # Already drained and unlinked, nothing else needs the outcome.
        storage.delete_tree(details.auction_id)
    else:
        storage.set_root_data(details.auction_id, replace(outcome, winner_paid=True))
    return outcome.sold_tez, replace(auctions, avl_storage=storage)


def assert_invariants(auctions: LiquidationAuctions) -> None:
    storage = auctions.avl_storage
    storage.assert_invariants(auctions.queued_slices)
    assert storage.root_data(auctions.queued_slices) is None
    if auctions.current_auction is not None:
        storage.assert_invariants(auctions.current_auction.contents)
        assert storage.root_data(auctions.current_auction.contents) is None
    completed = auctions.completed_auctions
    if completed is None:
        return
    previous, root = None, completed.oldest
    while root is not None:
        storage.assert_invariants(root)
        outcome = storage.root_data(root)
        assert outcome is not None
        assert outcome.older_auction == previous
        assert not storage.is_empty(root)
        previous, root = root, outcome.younger_auction
    assert previous == completed.youngest
