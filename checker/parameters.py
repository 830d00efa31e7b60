"""
System parameters for the Checker model.

The parameters hold the global pricing state of the protocol:

1. q, the target quantity that drifts to steer the kit price towards its target
2. index and protected index, the oracle price and a slow-moving copy of it
3. the burrow fee index and the imbalance index, which together scale every
   burrow's outstanding kit over time
4. the outstanding kit (owed by burrows) and the circulating kit (held by users)

Prices are expressed in tez per kit. The only way to move the parameters
forward in time is `touch`, which also reports how much kit accrued as
burrowing fees so that it can be handed to the market maker.
"""

import logging
import math
from dataclasses import dataclass, replace
from fractions import Fraction
from typing import Tuple

from checker.constants import (
    BURROW_FEE_PERCENTAGE,
    HIGH_ACCELERATION,
    IMBALANCE_LIMIT,
    IMBALANCE_SCALING_FACTOR,
    LOW_ACCELERATION,
    PROTECTED_INDEX_EPSILON,
    SECONDS_IN_A_YEAR,
    TARGET_HIGH_BRACKET,
    TARGET_LOW_BRACKET,
    TEZ_SCALING_FACTOR,
)
from checker.errors import InvalidPrice
from checker.fixedpoint import clamp, qexp, snap

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Parameters:
    q: Fraction
    index: Fraction
    protected_index: Fraction
    target: Fraction
    drift_derivative: Fraction
    drift: Fraction
    burrow_fee_index: Fraction
    imbalance_index: Fraction
    outstanding_kit: int  # mukit owed by all burrows
    circulating_kit: int  # mukit in the hands of users
    last_touched: int

    @classmethod
    def make_initial(cls, ts: int) -> "Parameters":
        return cls(
            q=Fraction(1),
            index=Fraction(1),
            protected_index=Fraction(1),
            target=Fraction(1),
            drift_derivative=Fraction(0),
            drift=Fraction(0),
            burrow_fee_index=Fraction(1),
            imbalance_index=Fraction(1),
            outstanding_kit=0,
            circulating_kit=0,
            last_touched=ts,
        )

    # Prices

    def tz_minting(self) -> Fraction:
        """The index used when minting: the worse of the two for the minter."""
        return max(self.index, self.protected_index)

    def tz_liquidation(self) -> Fraction:
        """The index used when liquidating: the worse of the two for the liquidator."""
        return min(self.index, self.protected_index)

    def minting_price(self) -> Fraction:
        return self.q * self.tz_minting()

    def liquidation_price(self) -> Fraction:
        return self.q * self.tz_liquidation()

    def compute_adjustment_index(self) -> Fraction:
        return self.burrow_fee_index * self.imbalance_index

    # Kit accounting

    def add_outstanding_kit(self, kit: int) -> "Parameters":
        assert kit >= 0
        return replace(self, outstanding_kit=self.outstanding_kit + kit)

    def remove_outstanding_kit(self, kit: int) -> "Parameters":
        assert kit >= 0
        # The global counter and each burrow round down separately when fees
        # accrue: under 2 mukit per touch globally and under 1 mukit per
        # burrow touch. The counter can therefore fall short of what the
        # burrows owe, by at most that much.
        if kit > self.outstanding_kit:
            logger.debug("Outstanding kit clamped at zero: removing %d mukit from %d", kit, self.outstanding_kit)
        return replace(self, outstanding_kit=max(0, self.outstanding_kit - kit))

    def add_circulating_kit(self, kit: int) -> "Parameters":
        assert kit >= 0
        return replace(self, circulating_kit=self.circulating_kit + kit)

    def remove_circulating_kit(self, kit: int) -> "Parameters":
        assert 0 <= kit <= self.circulating_kit
        return replace(self, circulating_kit=self.circulating_kit - kit)


def compute_imbalance(burrowed: int, circulating: int) -> Fraction:
    """
    Yearly rate at which the imbalance index moves.

    Positive when burrows owe more kit than is circulating, negative in the
    opposite case, and capped at IMBALANCE_LIMIT either way.
    """
    if burrowed == circulating:
        return Fraction(0)
    if burrowed == 0:
        return -IMBALANCE_LIMIT
    imbalance = IMBALANCE_SCALING_FACTOR * Fraction(burrowed - circulating, burrowed)
    if burrowed >= circulating:
        return min(imbalance, IMBALANCE_LIMIT)
    return max(imbalance, -IMBALANCE_LIMIT)


def compute_drift_derivative(target: Fraction) -> Fraction:
    """
    Acceleration of the drift given the current target.

    The target is compared against exponential bands around one instead of
    taking its logarithm.
    """
    low, high = TARGET_LOW_BRACKET, TARGET_HIGH_BRACKET
    if qexp(-low) < target < qexp(low):
        return Fraction(0)
    if qexp(-high) < target <= qexp(-low):
        return -LOW_ACCELERATION
    if qexp(low) <= target < qexp(high):
        return LOW_ACCELERATION
    if target <= qexp(-high):
        return -HIGH_ACCELERATION
    return HIGH_ACCELERATION


def compute_current_protected_index(last: Fraction, current_index: Fraction, duration: int) -> Fraction:
    """Move the protected index towards the index, by at most epsilon per second."""
    upper = qexp(PROTECTED_INDEX_EPSILON * duration)
    lower = qexp(-PROTECTED_INDEX_EPSILON * duration)
    return last * clamp(current_index / last, lower, upper)


def touch(now: int, index: int, kit_in_tez: Fraction, parameters: Parameters) -> Tuple[int, Parameters]:
    """
    Advance the parameters to `now`.

    Args:
        now: Current timestamp, not earlier than the last touch
        index: Oracle price in mutez
        kit_in_tez: Kit price observed in the market maker in the previous block
        parameters: The parameters as of the last touch

    Returns:
        (kit accrued to the market maker as burrowing fees, updated parameters)
    """
    if index <= 0:
        raise InvalidPrice("index", index)
    if kit_in_tez <= 0:
        raise InvalidPrice("kit price", kit_in_tez)
    p = parameters
    duration = now - p.last_touched
    assert duration >= 0

    current_index = Fraction(index, TEZ_SCALING_FACTOR)
    current_protected_index = compute_current_protected_index(p.protected_index, current_index, duration)
    current_drift_derivative = compute_drift_derivative(p.target)
    current_drift = p.drift + Fraction(1, 2) * (p.drift_derivative + current_drift_derivative) * duration
    current_q = p.q * qexp(
        (p.drift + Fraction(1, 6) * (2 * p.drift_derivative + current_drift_derivative) * duration) * duration
    )
    current_target = current_q * current_index / kit_in_tez

    current_burrow_fee_index = p.burrow_fee_index * (
        1 + BURROW_FEE_PERCENTAGE * Fraction(duration, SECONDS_IN_A_YEAR)
    )
    imbalance_rate = compute_imbalance(p.outstanding_kit, p.circulating_kit)
    current_imbalance_index = p.imbalance_index * (1 + imbalance_rate * Fraction(duration, SECONDS_IN_A_YEAR))

    current_burrow_fee_index = snap(current_burrow_fee_index)
    current_imbalance_index = snap(current_imbalance_index)

    outstanding_with_fees = math.floor(p.outstanding_kit * current_burrow_fee_index / p.burrow_fee_index)
    accrual_to_uniswap = outstanding_with_fees - p.outstanding_kit
    current_outstanding_kit = math.floor(outstanding_with_fees * current_imbalance_index / p.imbalance_index)

    updated = Parameters(
        q=snap(current_q),
        index=current_index,
        protected_index=snap(current_protected_index),
        target=snap(current_target),
        drift_derivative=current_drift_derivative,
        drift=snap(current_drift),
        burrow_fee_index=current_burrow_fee_index,
        imbalance_index=current_imbalance_index,
        outstanding_kit=current_outstanding_kit,
        circulating_kit=p.circulating_kit + accrual_to_uniswap,
        last_touched=now,
    )
    logger.debug("Parameters touched after %ds: q=%s accrual=%d", duration, float(updated.q), accrual_to_uniswap)
    return accrual_to_uniswap, updated
