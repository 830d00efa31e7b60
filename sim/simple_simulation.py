"""
Simple simulation for the Checker model.

This script walks a single burrow through its life: creation, minting, an
index jump that makes it liquidatable, the liquidation auction and the
settlement of the sold collateral.
"""

import logging
import sys
import os

# Add the repository root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from checker import checker
from checker import liquidation_auction as liquidation
from checker.tezos import Call, Tezos


def describe_burrow(state, burrow_id):
    burrow = state.burrows[burrow_id]
    print(f"  Active: {burrow.active}")
    print(f"  Collateral: {burrow.collateral / 1e6:.6f} tez")
    print(f"  Collateral at auction: {burrow.collateral_at_auction / 1e6:.6f} tez")
    print(f"  Outstanding kit: {burrow.outstanding_kit / 1e6:.6f} kit")
    print(f"  Excess kit: {burrow.excess_kit / 1e6:.6f} kit")


def run_basic_simulation():
    tezos = Tezos(now=0, level=0)
    state = checker.initialize(tezos)

    print("Creating a burrow with 100 tez of collateral...")
    burrow_id, admin, state = checker.create_burrow(state, tezos, Call(sender="alice", amount=101_000_000))
    kit, state = checker.mint_kit(state, tezos, Call(sender="alice"), admin, burrow_id, 40_000_000)
    print(f"Minted {kit / 1e6:.2f} kit")
    describe_burrow(state, burrow_id)

    print("\nIndex rises to 1.4 tez per kit over an hour...")
    tezos = tezos.advance(3600, blocks=60)
    reward, state = checker.touch(state, tezos, 1_400_000)
    print(f"Touch reward: {reward / 1e6:.6f} kit")
    print(f"  Liquidation price: {float(state.parameters.liquidation_price()):.6f} tez")

    payment, state = checker.mark_for_liquidation(state, Call(sender="bob"), burrow_id)
    print(f"Burrow {burrow_id} marked for liquidation, bob earns {payment.amount / 1e6:.6f} tez")
    describe_burrow(state, burrow_id)

    print("\nOpening the auction...")
    tezos = tezos.advance(60)
    _, state = checker.touch(state, tezos, 1_400_000)
    auction = state.liquidation_auctions.current_auction
    minimum = liquidation.current_auction_minimum_bid(auction, tezos)
    print(f"Minimum bid: {minimum / 1e6:.6f} kit")

    bid_ticket, state = checker.liquidation_auction_place_bid(state, tezos, Call(sender="carol"), minimum)
    print(f"Carol bids {minimum / 1e6:.6f} kit")

    print("\nWaiting for the auction to complete...")
    tezos = tezos.advance(1300, blocks=25)
    _, state = checker.touch(state, tezos, 1_400_000)
    payment, state = checker.liquidation_auction_reclaim_winning_bid(state, tezos, Call(sender="carol"), bid_ticket)
    print(f"Carol receives {payment.amount / 1e6:.6f} tez")

    print("\nFinal burrow state:")
    describe_burrow(state, burrow_id)
    print(f"  Circulating kit: {state.parameters.circulating_kit / 1e6:.6f} kit")
    print(f"  Outstanding kit: {state.parameters.outstanding_kit / 1e6:.6f} kit")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    run_basic_simulation()
