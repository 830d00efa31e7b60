"""
Unit tests for the scenario simulation.
"""

import unittest
import sys
import os
from dataclasses import replace

import numpy as np
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt

# Add the repository root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from checker import checker
from checker.constants import MAX_LIQUIDATION_QUEUE_HEIGHT
from checker.liquidation_auction import LiquidationSlice
from checker.ptr import Ptr
from checker.simulation import _mark_burrows, plot_history, run_simulation
from checker.tezos import Call, Tezos


class TestSimulation(unittest.TestCase):
    def setUp(self):
        self.history = run_simulation(days=2, burrows=4, index_volatility=0.05, seed=7)

    def test_history_shape(self):
        """One sample per hourly step for every series"""
        for name, series in self.history.items():
            self.assertEqual(series.shape, (48,), name)
        np.testing.assert_allclose(self.history["time"], np.arange(1, 49) / 24)

    def test_history_is_consistent(self):
        self.assertTrue(np.all(self.history["index"] > 0))
        self.assertTrue(np.all(np.diff(self.history["liquidations"]) >= 0))
        self.assertTrue(np.all(self.history["active_burrows"] <= 5))
        self.assertTrue(np.all(self.history["collateral_at_auction"] >= 0))

    def test_same_seed_same_path(self):
        again = run_simulation(days=2, burrows=4, index_volatility=0.05, seed=7)
        np.testing.assert_array_equal(self.history["index"], again["index"])

    def test_plot_history(self):
        fig = plot_history(self.history, show=False)
        self.assertEqual(len(fig.axes), 4)
        plt.close(fig)


class TestMarking(unittest.TestCase):
    def setUp(self):
        tezos = Tezos(now=0, level=0)
        state = checker.initialize(tezos)
        self.burrow_ids = []
        for owner in ["alice", "bob"]:
            burrow_id, admin, state = checker.create_burrow(state, tezos, Call(sender=owner, amount=101_000_000))
            _, state = checker.mint_kit(state, tezos, Call(sender=owner), admin, burrow_id, 40_000_000)
            self.burrow_ids.append(burrow_id)
        # The index jumps to 1.4 tez per kit, leaving both burrows undercollateralized.
        _, self.state = checker.touch(state, tezos.advance(3600, blocks=60), 1_400_000)

    def test_marks_liquidatable_burrows(self):
        state, marked = _mark_burrows(self.state, self.burrow_ids)
        self.assertEqual(marked, 2)
        self.assertFalse(any(state.burrows[b].active for b in self.burrow_ids))

    def test_full_queue_skips_marking(self):
        """A queue that accepts no more slices does not stop the simulation"""
        auctions = self.state.liquidation_auctions
        storage = auctions.avl_storage.copy()
        for _ in range(2 ** MAX_LIQUIDATION_QUEUE_HEIGHT):
            filler = LiquidationSlice(burrow=Ptr(999), tez=1_000_000, min_kit_for_unwarranted=0, older=None, younger=None)
            storage.push_back(auctions.queued_slices, filler, filler.tez)
        full = replace(self.state, liquidation_auctions=replace(auctions, avl_storage=storage))

        state, marked = _mark_burrows(full, self.burrow_ids)
        self.assertEqual(marked, 0)
        self.assertIs(state, full)


if __name__ == '__main__':
    unittest.main()
