"""
Visualization simulation for the Checker model.

This script runs a month of hourly touches over a random index path and
plots the result.
"""

import logging
import sys
import os

# Add the repository root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from checker.simulation import plot_history, run_simulation


def run_visualization_simulation():
    print("Running simulation with visualizations...")
    history = run_simulation(days=30, burrows=10, index_volatility=0.03)

    print("\nSimulation Results:")
    print(f"  final_index: {history['index'][-1]:.6f}")
    print(f"  final_kit_in_tez: {history['kit_in_tez'][-1]:.6f}")
    print(f"  final_outstanding_kit: {history['outstanding_kit'][-1]:.6f}")
    print(f"  active_burrows: {int(history['active_burrows'][-1])}")
    print(f"  liquidations: {int(history['liquidations'][-1])}")
    print(f"  keeper_tez: {history['keeper_tez'][-1]:.6f}")

    plot_history(history)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_visualization_simulation()
