"""
Unit tests for the liquidation auctions.
"""

import unittest
import sys
import os
from dataclasses import replace
from fractions import Fraction

# Add the repository root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from checker import liquidation_auction as auction
from checker.constants import (
    MAX_BID_INTERVAL_IN_BLOCKS,
    MAX_BID_INTERVAL_IN_SECONDS,
    MAX_LIQUIDATION_QUEUE_HEIGHT,
    MAX_LOT_SIZE,
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
from checker.liquidation_auction import Ascending, Bid, Descending, LiquidationAuctions, LiquidationSlice
from checker.ptr import Ptr
from checker.tezos import Tezos
from checker.ticket import Ticket

BURROW = Ptr(1)


class TestLiquidationAuction(unittest.TestCase):
    def setUp(self):
        self.tezos = Tezos(now=0, level=0)
        self.auctions = LiquidationAuctions.empty()

    def queue(self, auctions, tez, older=None, min_kit=0):
        liquidation_slice = LiquidationSlice(
            burrow=BURROW, tez=tez, min_kit_for_unwarranted=min_kit, older=older, younger=None
        )
        return auction.send_to_auction(auctions, liquidation_slice)

    def read(self, auctions, leaf_ptr):
        return auctions.avl_storage.read_leaf(leaf_ptr)[0]

    def open_lot(self, tez=5_000_000):
        auctions, leaf = self.queue(self.auctions, tez)
        auctions, _ = auction.touch(auctions, self.tezos, Fraction(1))
        return auctions, leaf

    def test_send_to_auction_links_slices(self):
        auctions, first = self.queue(self.auctions, 1_000_000)
        auctions, second = self.queue(auctions, 2_000_000, older=first)

        self.assertEqual(self.read(auctions, first).younger, second)
        self.assertEqual(self.read(auctions, second).older, first)
        self.assertEqual(auctions.avl_storage.avl_tez(auctions.queued_slices), 3_000_000)
        # The original value is untouched.
        self.assertTrue(self.auctions.avl_storage.is_empty(self.auctions.queued_slices))
        auction.assert_invariants(auctions)

    def test_queue_height_is_bounded(self):
        """A queue taller than the limit accepts no more slices"""
        storage = self.auctions.avl_storage.copy()
        for _ in range(2 ** MAX_LIQUIDATION_QUEUE_HEIGHT):
            filler = LiquidationSlice(burrow=BURROW, tez=1_000_000, min_kit_for_unwarranted=0, older=None, younger=None)
            storage.push_back(self.auctions.queued_slices, filler, filler.tez)
        full = replace(self.auctions, avl_storage=storage)
        self.assertGreater(storage.avl_height(full.queued_slices), MAX_LIQUIDATION_QUEUE_HEIGHT)

        with self.assertRaises(LiquidationQueueTooLong):
            self.queue(full, 1_000_000)
        self.assertEqual(storage.avl_tez(full.queued_slices), 2 ** MAX_LIQUIDATION_QUEUE_HEIGHT * 1_000_000)

    def test_start_auction_takes_whole_queue(self):
        auctions, leaf = self.queue(self.auctions, 5_000_000)
        auctions, split = auction.start_auction_if_possible(auctions, self.tezos, Fraction(5, 4))

        self.assertIsNone(split)
        current = auctions.current_auction
        self.assertIsNotNone(current)
        self.assertEqual(current.state, Descending(start_value=4_000_000, start_time=0))
        self.assertEqual(auctions.avl_storage.find_root(leaf), current.contents)
        self.assertTrue(auctions.avl_storage.is_empty(auctions.queued_slices))
        auction.assert_invariants(auctions)

    def test_no_auction_without_slices(self):
        auctions, split = auction.start_auction_if_possible(self.auctions, self.tezos, Fraction(1))
        self.assertIsNone(auctions.current_auction)
        self.assertIsNone(split)

    def test_lot_is_capped_by_splitting(self):
        """A slice that does not fit in the lot is split and its remainder stays queued"""
        half = 6_000 * 1_000_000
        auctions, older = self.queue(self.auctions, half, min_kit=600)
        auctions, younger = self.queue(auctions, half, older=older, min_kit=600)
        auctions, split = auction.start_auction_if_possible(auctions, self.tezos, Fraction(1))

        storage = auctions.avl_storage
        lot = auctions.current_auction.contents
        self.assertEqual(storage.avl_tez(lot), MAX_LOT_SIZE)
        self.assertEqual(storage.avl_tez(auctions.queued_slices), 2 * half - MAX_LOT_SIZE)

        self.assertEqual(split.burrow, BURROW)
        self.assertEqual(split.original, younger)
        self.assertEqual(storage.find_root(younger), lot)
        self.assertEqual(storage.find_root(split.remainder), auctions.queued_slices)

        taken = self.read(auctions, younger)
        remainder = self.read(auctions, split.remainder)
        self.assertEqual(taken.tez + remainder.tez, half)
        self.assertEqual(taken.min_kit_for_unwarranted + remainder.min_kit_for_unwarranted, 600)
        self.assertEqual(taken.younger, split.remainder)
        self.assertEqual(remainder.older, younger)
        self.assertIsNone(remainder.younger)
        auction.assert_invariants(auctions)

    def test_minimum_bid_decays(self):
        auctions, _ = self.open_lot()
        current = auctions.current_auction
        start = auction.current_auction_minimum_bid(current, self.tezos)
        self.assertEqual(start, 5_000_000)

        later = auction.current_auction_minimum_bid(current, self.tezos.advance(6000))
        # (1 - 1/6000) ** 6000 is close to 1/e
        self.assertLess(later, start)
        self.assertAlmostEqual(later / start, 0.3679, places=3)

    def test_bids_must_strictly_increase(self):
        auctions, _ = self.open_lot()
        with self.assertRaises(BidTooLow):
            auction.place_bid(auctions, self.tezos, Bid("alice", 4_999_999))

        auctions, _ = auction.place_bid(auctions, self.tezos, Bid("alice", 5_000_000))
        self.assertIsInstance(auctions.current_auction.state, Ascending)
        with self.assertRaises(BidTooLow):
            auction.place_bid(auctions, self.tezos, Bid("bob", 5_000_000))

        auctions, _ = auction.place_bid(auctions, self.tezos, Bid("bob", 5_000_001))
        self.assertEqual(auctions.current_auction.state.leading_bid, Bid("bob", 5_000_001))

    def test_no_open_auction(self):
        with self.assertRaises(NoOpenAuction):
            auction.place_bid(self.auctions, self.tezos, Bid("alice", 1))

    def test_auction_completes_after_both_intervals(self):
        auctions, leaf = self.open_lot()
        auctions, _ = auction.place_bid(auctions, self.tezos, Bid("alice", 5_000_000))

        too_soon = self.tezos.advance(MAX_BID_INTERVAL_IN_SECONDS + 1, blocks=MAX_BID_INTERVAL_IN_BLOCKS)
        self.assertFalse(auction.is_auction_complete(auctions.current_auction, too_soon))

        done = self.tezos.advance(MAX_BID_INTERVAL_IN_SECONDS + 1, blocks=MAX_BID_INTERVAL_IN_BLOCKS + 1)
        self.assertTrue(auction.is_auction_complete(auctions.current_auction, done))
        with self.assertRaises(NoOpenAuction):
            auction.place_bid(auctions, done, Bid("bob", 6_000_000))

        lot = auctions.current_auction.contents
        auctions, _ = auction.touch(auctions, done, Fraction(1))
        self.assertIsNone(auctions.current_auction)
        self.assertEqual(auctions.completed_auctions.oldest, lot)
        outcome = auctions.avl_storage.root_data(lot)
        self.assertEqual(outcome.sold_tez, 5_000_000)
        self.assertEqual(outcome.winning_bid, Bid("alice", 5_000_000))
        self.assertEqual(auction.oldest_completed_liquidation_slice(auctions), leaf)
        auction.assert_invariants(auctions)

    def test_reclaiming_bids(self):
        auctions, _ = self.open_lot()
        auctions, alice_ticket = auction.place_bid(auctions, self.tezos, Bid("alice", 5_000_000))
        with self.assertRaises(CannotReclaimLeadingBid):
            auction.reclaim_bid(auctions, self.tezos, alice_ticket)

        auctions, bob_ticket = auction.place_bid(auctions, self.tezos, Bid("bob", 6_000_000))
        self.assertEqual(auction.reclaim_bid(auctions, self.tezos, alice_ticket), 5_000_000)
        self.assertFalse(alice_ticket.consumed)

        with self.assertRaises(NotACompletedAuction):
            auction.reclaim_winning_bid(auctions, self.tezos, bob_ticket)

        done = self.tezos.advance(MAX_BID_INTERVAL_IN_SECONDS + 1, blocks=MAX_BID_INTERVAL_IN_BLOCKS + 1)
        auctions, _ = auction.touch(auctions, done, Fraction(1))
        with self.assertRaises(CannotReclaimWinningBid):
            auction.reclaim_bid(auctions, done, bob_ticket)
        with self.assertRaises(NotAWinningBid):
            auction.reclaim_winning_bid(auctions, done, alice_ticket)

        sold_tez, paid = auction.reclaim_winning_bid(auctions, done, bob_ticket)
        self.assertEqual(sold_tez, 5_000_000)
        with self.assertRaises(NotAWinningBid):
            auction.reclaim_winning_bid(paid, done, bob_ticket)

    def test_foreign_ticket(self):
        auctions, _ = self.open_lot()
        with self.assertRaises(InvalidTicket):
            auction.reclaim_bid(auctions, self.tezos, Ticket("someone else", 1, None))

    def test_pop_completed_auction(self):
        """A drained lot leaves the completed list but keeps its outcome until paid"""
        auctions, leaf = self.open_lot()
        auctions, _ = auction.place_bid(auctions, self.tezos, Bid("alice", 5_000_000))
        done = self.tezos.advance(MAX_BID_INTERVAL_IN_SECONDS + 1, blocks=MAX_BID_INTERVAL_IN_BLOCKS + 1)
        auctions, _ = auction.touch(auctions, done, Fraction(1))
        lot = auctions.completed_auctions.oldest

        storage = auctions.avl_storage.copy()
        storage.delete(leaf)
        completed = auction.pop_completed_auction(storage, auctions.completed_auctions, lot)
        self.assertIsNone(completed)
        self.assertIn(lot, storage.mem)

        paid = replace(auctions, avl_storage=storage, completed_auctions=completed)
        _, paid_off = auction.reclaim_winning_bid(
            paid, done, Ticket("checker", 1, auction.BidDetails(lot, Bid("alice", 5_000_000)))
        )
        self.assertNotIn(lot, paid_off.avl_storage.mem)


if __name__ == '__main__':
    unittest.main()
