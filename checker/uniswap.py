"""
Market Maker Model for the Checker protocol.

A constant-product pool between tez and kit, with liquidity tokens issued to
liquidity providers. Every operation takes a deadline and a bound on what the
caller is willing to accept; failing either fails the call. Besides trades
and liquidity changes, the pool only changes when `touch` hands it the kit
accrued as burrowing fees.

The pool also remembers the kit price as it was at the end of the previous
block, which is what the parameters use to compute the target.
"""

import logging
import math
from dataclasses import dataclass, replace
from fractions import Fraction
from typing import Tuple

from checker.constants import KIT_SCALING_FACTOR, TEZ_SCALING_FACTOR, UNISWAP_FEE
from checker.errors import (
    NoKitGiven,
    NoLiquidityBurned,
    NoTezGiven,
    PoolDepleted,
    SlippageExceeded,
    TooLowExpectation,
    UniswapTooLate,
    UnwantedTezGiven,
)
from checker.tezos import Tezos

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Uniswap:
    tez: int  # mutez
    kit: int  # mukit
    lqt: int  # liquidity tokens
    kit_in_tez_in_prev_block: Fraction
    last_level: int

    @classmethod
    def make_initial(cls, level: int) -> "Uniswap":
        # Seeded with one unit of each so that prices are always defined.
        return cls(tez=1, kit=1, lqt=1, kit_in_tez_in_prev_block=Fraction(1), last_level=level)

    def kit_in_tez(self) -> Fraction:
        return Fraction(self.tez, TEZ_SCALING_FACTOR) / Fraction(self.kit, KIT_SCALING_FACTOR)

    def sync_last_observed(self, tezos: Tezos) -> "Uniswap":
        """Record the price at the end of the previous block, once per block."""
        if self.last_level >= tezos.level:
            return self
        return replace(self, kit_in_tez_in_prev_block=self.kit_in_tez(), last_level=tezos.level)

    def assert_invariants(self) -> None:
        assert self.tez > 0
        assert self.kit > 0
        assert self.lqt > 0


def _check_deadline(tezos: Tezos, deadline: int) -> None:
    if tezos.now > deadline:
        raise UniswapTooLate(tezos.now, deadline)


def buy_kit(uniswap: Uniswap, tezos: Tezos, amount: int, min_kit_expected: int, deadline: int) -> Tuple[int, Uniswap]:
    """Sell `amount` mutez to the pool for at least `min_kit_expected` mukit."""
    uniswap = uniswap.sync_last_observed(tezos)
    if amount == 0:
        raise NoTezGiven()
    _check_deadline(tezos, deadline)
    if min_kit_expected <= 0:
        raise TooLowExpectation("kit")
    effective = amount * (1 - UNISWAP_FEE)
    bought_kit = math.floor(effective * uniswap.kit / (uniswap.tez + effective))
    if bought_kit < min_kit_expected:
        raise SlippageExceeded("kit bought", bought_kit, min_kit_expected)
    if bought_kit >= uniswap.kit:
        raise PoolDepleted("kit")
    updated = replace(uniswap, tez=uniswap.tez + amount, kit=uniswap.kit - bought_kit)
    logger.debug("Bought %d mukit for %d mutez", bought_kit, amount)
    return bought_kit, updated


def sell_kit(uniswap: Uniswap, tezos: Tezos, amount: int, kit: int, min_tez_expected: int, deadline: int) -> Tuple[int, Uniswap]:
    """Sell `kit` mukit to the pool for at least `min_tez_expected` mutez."""
    uniswap = uniswap.sync_last_observed(tezos)
    if amount != 0:
        raise UnwantedTezGiven()
    _check_deadline(tezos, deadline)
    if kit == 0:
        raise NoKitGiven()
    if min_tez_expected <= 0:
        raise TooLowExpectation("tez")
    effective = kit * (1 - UNISWAP_FEE)
    bought_tez = math.floor(effective * uniswap.tez / (uniswap.kit + effective))
    if bought_tez < min_tez_expected:
        raise SlippageExceeded("tez bought", bought_tez, min_tez_expected)
    if bought_tez >= uniswap.tez:
        raise PoolDepleted("tez")
    updated = replace(uniswap, tez=uniswap.tez - bought_tez, kit=uniswap.kit + kit)
    logger.debug("Sold %d mukit for %d mutez", kit, bought_tez)
    return bought_tez, updated


def add_liquidity(uniswap: Uniswap, tezos: Tezos, amount: int, max_kit_deposited: int, min_lqt_minted: int, deadline: int) -> Tuple[int, int, int, Uniswap]:
    """
    Deposit `amount` mutez and up to `max_kit_deposited` mukit at the pool ratio.

    Returns:
        (liquidity tokens minted, leftover tez, leftover kit, updated pool)
    """
    uniswap = uniswap.sync_last_observed(tezos)
    _check_deadline(tezos, deadline)
    if amount == 0:
        raise NoTezGiven()
    if max_kit_deposited == 0:
        raise NoKitGiven()
    if min_lqt_minted <= 0:
        raise TooLowExpectation("liquidity")
    lqt_minted = math.floor(Fraction(uniswap.lqt * amount, uniswap.tez))
    kit_deposited = math.ceil(Fraction(uniswap.kit * amount, uniswap.tez))
    if lqt_minted < min_lqt_minted:
        raise SlippageExceeded("liquidity minted", lqt_minted, min_lqt_minted)
    if kit_deposited > max_kit_deposited:
        raise SlippageExceeded("kit deposited", kit_deposited, max_kit_deposited)
    updated = replace(
        uniswap,
        tez=uniswap.tez + amount,
        kit=uniswap.kit + kit_deposited,
        lqt=uniswap.lqt + lqt_minted,
    )
    return lqt_minted, 0, max_kit_deposited - kit_deposited, updated


def remove_liquidity(uniswap: Uniswap, tezos: Tezos, amount: int, lqt_burned: int, min_tez_withdrawn: int, min_kit_withdrawn: int, deadline: int) -> Tuple[int, int, Uniswap]:
    """
    Burn liquidity tokens for the matching share of the pool.

    Returns:
        (tez withdrawn, kit withdrawn, updated pool)
    """
    uniswap = uniswap.sync_last_observed(tezos)
    if amount != 0:
        raise UnwantedTezGiven()
    _check_deadline(tezos, deadline)
    if lqt_burned <= 0:
        raise NoLiquidityBurned()
    if min_tez_withdrawn <= 0:
        raise TooLowExpectation("tez")
    if min_kit_withdrawn <= 0:
        raise TooLowExpectation("kit")
    if lqt_burned >= uniswap.lqt:
        raise PoolDepleted("liquidity")
    tez_withdrawn = math.floor(Fraction(uniswap.tez * lqt_burned, uniswap.lqt))
    kit_withdrawn = math.floor(Fraction(uniswap.kit * lqt_burned, uniswap.lqt))
    if tez_withdrawn < min_tez_withdrawn:
        raise SlippageExceeded("tez withdrawn", tez_withdrawn, min_tez_withdrawn)
    if kit_withdrawn < min_kit_withdrawn:
        raise SlippageExceeded("kit withdrawn", kit_withdrawn, min_kit_withdrawn)
    updated = replace(
        uniswap,
        tez=uniswap.tez - tez_withdrawn,
        kit=uniswap.kit - kit_withdrawn,
        lqt=uniswap.lqt - lqt_burned,
    )
    return tez_withdrawn, kit_withdrawn, updated


def add_accrued_kit(uniswap: Uniswap, tezos: Tezos, accrual: int) -> Uniswap:
    """Add burrowing fees to the kit reserve; the tez reserve is left alone."""
    assert accrual >= 0
    uniswap = uniswap.sync_last_observed(tezos)
    return replace(uniswap, kit=uniswap.kit + accrual)
