"""
Scenario simulation for the Checker model.

A population of burrows is opened at a range of collateralization ratios and
driven through a log-normal index path. At every step the contract is
touched, burrows that fell under the liquidation threshold are marked, a
keeper bids on any open lot and collects the lots it won. The history of the
system is returned as numpy arrays and can be drawn with `plot_history`.
"""

import logging

import matplotlib.pyplot as plt
import numpy as np

from checker import checker
from checker import liquidation_auction as liquidation
from checker.constants import CREATION_DEPOSIT, KIT_SCALING_FACTOR, TEZ_SCALING_FACTOR
from checker.errors import AuctionError, NotLiquidationCandidate
from checker.tezos import Call, Tezos

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60
KEEPER = "keeper"
LIQUIDITY_PROVIDER = "liquidity_provider"


def _open_burrows(state, tezos, count):
    """Open `count` burrows with collateralization ratios spread between 2.2 and 3.5."""
    burrows = []
    for i in range(count):
        owner = f"user{i}"
        collateral = int(np.random.uniform(50.0, 500.0) * TEZ_SCALING_FACTOR)
        burrow_id, admin, state = checker.create_burrow(
            state, tezos, Call(sender=owner, amount=collateral + CREATION_DEPOSIT)
        )
        target_ratio = 2.2 + i * 1.3 / max(1, count - 1)
        kit = int(collateral / target_ratio / float(state.parameters.minting_price()))
        _, state = checker.mint_kit(state, tezos, Call(sender=owner), admin, burrow_id, kit)
        burrows.append(burrow_id)
    return burrows, state


def _seed_market(state, tezos, tez):
    """Have a liquidity provider mint kit and deposit it, with tez, into the market maker."""
    burrow_id, admin, state = checker.create_burrow(
        state, tezos, Call(sender=LIQUIDITY_PROVIDER, amount=4 * tez + CREATION_DEPOSIT)
    )
    kit, state = checker.mint_kit(state, tezos, Call(sender=LIQUIDITY_PROVIDER), admin, burrow_id, tez)
    _, _, _, state = checker.add_liquidity(
        state, tezos, Call(sender=LIQUIDITY_PROVIDER, amount=tez), kit, 1, tezos.now
    )
    return state


def _mark_burrows(state, burrow_ids):
    """Mark every burrow that can be liquidated; a full queue just skips the rest for this step."""
    marked = 0
    for burrow_id in burrow_ids:
        try:
            _, state = checker.mark_for_liquidation(state, Call(sender=KEEPER), burrow_id)
        except (NotLiquidationCandidate, AuctionError):
            continue
        marked += 1
    return state, marked


def _keeper_step(state, tezos, tickets):
    """Bid on a lot still in its descending phase and collect lots already won."""
    auction = state.liquidation_auctions.current_auction
    if auction is not None and isinstance(auction.state, liquidation.Descending):
        minimum = max(1, liquidation.current_auction_minimum_bid(auction, tezos))
        ticket, state = checker.liquidation_auction_place_bid(state, tezos, Call(sender=KEEPER), minimum)
        tickets.append(ticket)

    won_tez = 0
    pending = []
    for ticket in tickets:
        try:
            payment, state = checker.liquidation_auction_reclaim_winning_bid(state, tezos, Call(sender=KEEPER), ticket)
        except AuctionError:
            pending.append(ticket)
            continue
        won_tez += payment.amount
    tickets[:] = pending
    return state, won_tez


def run_simulation(days: int = 30, burrows: int = 10, index_volatility: float = 0.03,
                   step_seconds: int = 3600, seed=None):
    """
    Run the model through a random index path.

    Args:
        days: Number of days to simulate
        burrows: Number of burrows opened at the start
        index_volatility: Standard deviation of the log return of the index per step
        step_seconds: Seconds between two touches
        seed: Seed for numpy's random generator

    Returns:
        Dictionary of numpy arrays, one entry per recorded series
    """
    if seed is not None:
        np.random.seed(seed)
    steps = days * SECONDS_PER_DAY // step_seconds

    tezos = Tezos(now=0, level=0)
    state = checker.initialize(tezos)
    index = 1.0  # tez per kit
    state = _seed_market(state, tezos, 1_000 * TEZ_SCALING_FACTOR)
    burrow_ids, state = _open_burrows(state, tezos, burrows)

    history = {
        "time": np.zeros(steps),
        "index": np.zeros(steps),
        "q": np.zeros(steps),
        "kit_in_tez": np.zeros(steps),
        "outstanding_kit": np.zeros(steps),
        "circulating_kit": np.zeros(steps),
        "collateral": np.zeros(steps),
        "collateral_at_auction": np.zeros(steps),
        "active_burrows": np.zeros(steps),
        "liquidations": np.zeros(steps),
        "keeper_tez": np.zeros(steps),
    }

    log_returns = np.random.normal(0, index_volatility, steps)
    keeper_tickets = []
    liquidations = 0
    keeper_tez = 0

    for i in range(steps):
        index *= np.exp(log_returns[i])
        tezos = tezos.advance(step_seconds, blocks=max(1, step_seconds // 60))
        _, state = checker.touch(state, tezos, max(1, int(index * TEZ_SCALING_FACTOR)))

        state, marked = _mark_burrows(state, burrow_ids)
        liquidations += marked

        state, won = _keeper_step(state, tezos, keeper_tickets)
        keeper_tez += won

        burrow_values = list(state.burrows.values())
        history["time"][i] = tezos.now / SECONDS_PER_DAY
        history["index"][i] = index
        history["q"][i] = float(state.parameters.q)
        history["kit_in_tez"][i] = float(state.uniswap.kit_in_tez())
        history["outstanding_kit"][i] = state.parameters.outstanding_kit / KIT_SCALING_FACTOR
        history["circulating_kit"][i] = state.parameters.circulating_kit / KIT_SCALING_FACTOR
        history["collateral"][i] = sum(b.collateral for b in burrow_values) / TEZ_SCALING_FACTOR
        history["collateral_at_auction"][i] = sum(b.collateral_at_auction for b in burrow_values) / TEZ_SCALING_FACTOR
        history["active_burrows"][i] = sum(1 for b in burrow_values if b.active)
        history["liquidations"][i] = liquidations
        history["keeper_tez"][i] = keeper_tez / TEZ_SCALING_FACTOR

    logger.info("Simulated %d steps: %d liquidations, keeper won %d mutez", steps, liquidations, keeper_tez)
    return history


def plot_history(history, show: bool = True):
    """Draw the recorded series; returns the matplotlib figure."""
    fig, axs = plt.subplots(4, 1, figsize=(12, 16), sharex=True)
    days = history["time"]

    axs[0].plot(days, history["index"], label="index")
    axs[0].plot(days, history["kit_in_tez"], label="kit in tez")
    axs[0].plot(days, history["q"], label="q")
    axs[0].set_title('Prices')
    axs[0].set_ylabel('tez')
    axs[0].legend()

    axs[1].plot(days, history["outstanding_kit"], label="outstanding")
    axs[1].plot(days, history["circulating_kit"], label="circulating")
    axs[1].set_title('Kit')
    axs[1].set_ylabel('kit')
    axs[1].legend()

    axs[2].plot(days, history["collateral"], label="in burrows")
    axs[2].plot(days, history["collateral_at_auction"], label="at auction")
    axs[2].set_title('Collateral')
    axs[2].set_ylabel('tez')
    axs[2].legend()

    axs[3].plot(days, history["active_burrows"], label="active burrows")
    axs[3].plot(days, history["liquidations"], label="liquidations")
    axs[3].set_title('Burrows')
    axs[3].set_ylabel('Count')
    axs[3].set_xlabel('Days')
    axs[3].legend()

    plt.tight_layout()
    if show:
        plt.show()
    return fig
