"""
Burrow Model for the Checker protocol.

A burrow is a single collateralized position. Its owner deposits tez as
collateral and mints kit against it, and must keep the collateral above
FMINTING times the value of the outstanding kit. Once the collateral falls
below FLIQUIDATION times that value, anyone can mark the burrow for
liquidation and part (or all) of its collateral is sent to the liquidation
auction queue as a slice.

Burrows are immutable values: every operation returns an updated copy.
Tez amounts are in mutez and kit amounts in mukit.
"""

import math
from dataclasses import dataclass, replace
from enum import Enum
from fractions import Fraction
from typing import Optional, Tuple

from checker.constants import (
    CREATION_DEPOSIT,
    FLIQUIDATION,
    FMINTING,
    KIT_SCALING_FACTOR,
    LIQUIDATION_REWARD_PERCENTAGE,
    TEZ_SCALING_FACTOR,
)
from checker.errors import (
    BurrowIsAlreadyActive,
    DeactivatingAnInactiveBurrow,
    DeactivatingAnOverburrowedBurrow,
    DeactivatingWithCollateralAtAuctions,
    DeactivatingWithOutstandingKit,
    InsufficientFunds,
    MintKitFailure,
    WithdrawTezFailure,
)
from checker.parameters import Parameters
from checker.ptr import Ptr


class LiquidationType(Enum):
    """
    Outcome of asking whether a burrow should be liquidated.

    UNNECESSARY burrows are healthy. PARTIAL liquidations auction just enough
    collateral to bring the burrow back to the minting ratio; COMPLETE ones
    auction all remaining collateral because that is still not enough; CLOSE
    liquidations happen when what is left would not even cover a creation
    deposit.
    """
    UNNECESSARY = 0
    PARTIAL = 1
    COMPLETE = 2
    CLOSE = 3


@dataclass(frozen=True)
class LiquidationSlices:
    """Leaf pointers to the oldest and youngest slice a burrow has at auction."""
    oldest: Ptr
    youngest: Ptr


@dataclass(frozen=True)
class LiquidationDetails:
    liquidation_reward: int  # mutez paid to whoever marked the burrow
    tez_to_auction: int
    min_kit_for_unwarranted: int  # mukit the slice must fetch for the liquidation to be unwarranted
    burrow_state: "Burrow"


def _tez(mutez: int) -> Fraction:
    return Fraction(mutez, TEZ_SCALING_FACTOR)


def _kit(mukit) -> Fraction:
    return Fraction(mukit, KIT_SCALING_FACTOR)


def _rebalance_kit(outstanding_kit: int, excess_kit: int) -> Tuple[int, int]:
    """Cancel outstanding kit against excess kit; at most one stays non-zero."""
    offset = min(outstanding_kit, excess_kit)
    return outstanding_kit - offset, excess_kit - offset


@dataclass(frozen=True)
class Burrow:
    active: bool
    permission_version: int
    allow_all_tez_deposits: bool
    allow_all_kit_burnings: bool
    delegate: Optional[str]
    collateral: int
    outstanding_kit: int
    excess_kit: int
    adjustment_index: Fraction  # burrow fee index times imbalance index at last touch
    collateral_at_auction: int
    liquidation_slices: Optional[LiquidationSlices]
    last_touched: int

    @classmethod
    def create(cls, p: Parameters, tez: int) -> "Burrow":
        """
        Create a burrow from the tez attached to the creation call.

        The creation deposit is kept aside (it is what a liquidator earns),
        the rest becomes collateral.
        """
        if tez < CREATION_DEPOSIT:
            raise InsufficientFunds(tez)
        return cls(
            active=True,
            permission_version=0,
            allow_all_tez_deposits=False,
            allow_all_kit_burnings=False,
            delegate=None,
            collateral=tez - CREATION_DEPOSIT,
            outstanding_kit=0,
            excess_kit=0,
            adjustment_index=p.compute_adjustment_index(),
            collateral_at_auction=0,
            liquidation_slices=None,
            last_touched=p.last_touched,
        )

    def assert_invariants(self) -> None:
        assert self.collateral >= 0
        assert self.outstanding_kit >= 0
        assert self.excess_kit >= 0
        assert self.collateral_at_auction >= 0
        if self.liquidation_slices is None:
            assert self.collateral_at_auction == 0

    # Health

    def compute_expected_kit(self, p: Parameters, tez_to_auction: int) -> Fraction:
        """Kit we expect to get back for tez sold at the liquidation price."""
        return _tez(tez_to_auction) / p.liquidation_price()

    def is_overburrowed(self, p: Parameters) -> bool:
        return _tez(self.collateral) < FMINTING * _kit(self.outstanding_kit) * p.minting_price()

    def is_liquidatable(self, p: Parameters) -> bool:
        expected_kit = self.compute_expected_kit(p, self.collateral_at_auction)
        optimistic_outstanding = _kit(self.outstanding_kit) - expected_kit
        return _tez(self.collateral) < FLIQUIDATION * optimistic_outstanding * p.liquidation_price()

    # Maintenance

    def touch(self, p: Parameters) -> "Burrow":
        """Apply burrowing fees and imbalance adjustment accrued since the last touch."""
        if self.last_touched == p.last_touched:
            return self
        current_adjustment_index = p.compute_adjustment_index()
        outstanding = math.floor(self.outstanding_kit * current_adjustment_index / self.adjustment_index)
        outstanding, excess = _rebalance_kit(outstanding, self.excess_kit)
        return replace(
            self,
            outstanding_kit=outstanding,
            excess_kit=excess,
            adjustment_index=current_adjustment_index,
            last_touched=p.last_touched,
        )

    # Collateral

    def deposit_tez(self, p: Parameters, tez: int) -> "Burrow":
        b = self.touch(p)
        return replace(b, collateral=b.collateral + tez)

    def withdraw_tez(self, p: Parameters, tez: int) -> "Burrow":
        b = self.touch(p)
        if tez > b.collateral:
            raise WithdrawTezFailure()
        updated = replace(b, collateral=b.collateral - tez)
        if updated.is_overburrowed(p):
            raise WithdrawTezFailure()
        return updated

    # Kit

    def mint_kit(self, p: Parameters, kit: int) -> "Burrow":
        b = self.touch(p)
        updated = replace(b, outstanding_kit=b.outstanding_kit + kit)
        if updated.is_overburrowed(p):
            raise MintKitFailure()
        return updated

    def burn_kit(self, p: Parameters, kit: int) -> "Burrow":
        """Repay outstanding kit; anything beyond the debt is kept as excess kit."""
        b = self.touch(p)
        outstanding, excess = _rebalance_kit(b.outstanding_kit, b.excess_kit + kit)
        return replace(b, outstanding_kit=outstanding, excess_kit=excess)

    # Lifecycle

    def activate(self, p: Parameters, tez: int) -> "Burrow":
        b = self.touch(p)
        if tez < CREATION_DEPOSIT:
            raise InsufficientFunds(tez)
        if b.active:
            raise BurrowIsAlreadyActive()
        return replace(b, active=True, collateral=b.collateral + tez - CREATION_DEPOSIT)

    def deactivate(self, p: Parameters) -> Tuple["Burrow", int]:
        """Deactivate the burrow, returning it and the tez to pay back (collateral plus deposit)."""
        b = self.touch(p)
        if b.is_overburrowed(p):
            raise DeactivatingAnOverburrowedBurrow()
        if not b.active:
            raise DeactivatingAnInactiveBurrow()
        if b.outstanding_kit > 0:
            raise DeactivatingWithOutstandingKit()
        if b.collateral_at_auction > 0:
            raise DeactivatingWithCollateralAtAuctions()
        return_tez = b.collateral + CREATION_DEPOSIT
        return replace(b, active=False, collateral=0), return_tez

    def set_delegate(self, p: Parameters, delegate: Optional[str]) -> "Burrow":
        return replace(self.touch(p), delegate=delegate)

    def set_allow_all_tez_deposits(self, p: Parameters, on: bool) -> "Burrow":
        return replace(self.touch(p), allow_all_tez_deposits=on)

    def set_allow_all_kit_burnings(self, p: Parameters, on: bool) -> "Burrow":
        return replace(self.touch(p), allow_all_kit_burnings=on)

    def increase_permission_version(self, p: Parameters) -> Tuple[int, "Burrow"]:
        b = self.touch(p)
        new_version = b.permission_version + 1
        return new_version, replace(b, permission_version=new_version)

    # Auction bookkeeping

    def set_liquidation_slices(self, slices: Optional[LiquidationSlices]) -> "Burrow":
        return replace(self, liquidation_slices=slices)

    def return_tez_from_auction(self, tez: int) -> "Burrow":
        """Take back collateral from a cancelled slice."""
        assert tez <= self.collateral_at_auction
        return replace(
            self,
            collateral=self.collateral + tez,
            collateral_at_auction=self.collateral_at_auction - tez,
        )

    def return_kit_from_auction(self, tez: int, kit: int) -> "Burrow":
        """Settle a sold slice: its tez is gone and the kit it fetched repays debt."""
        assert tez <= self.collateral_at_auction
        outstanding, excess = _rebalance_kit(self.outstanding_kit, self.excess_kit + kit)
        return replace(
            self,
            outstanding_kit=outstanding,
            excess_kit=excess,
            collateral_at_auction=self.collateral_at_auction - tez,
        )

    # Liquidation

    def compute_tez_to_auction(self, p: Parameters) -> int:
        """
        Tez to sell so that, once sold at the liquidation price, the burrow is
        back at exactly the minting collateralization ratio.

        Solves  C - T = FMINTING * (K - T / lp) * mp  for T, with K the
        outstanding kit minus what existing slices are expected to fetch.
        """
        mp = p.minting_price()
        lp = p.liquidation_price()
        outstanding = _kit(self.outstanding_kit) - self.compute_expected_kit(p, self.collateral_at_auction)
        numerator = FMINTING * mp * outstanding - _tez(self.collateral)
        denominator = FMINTING * mp / lp - 1
        assert denominator > 0
        return math.ceil(numerator / denominator * TEZ_SCALING_FACTOR)

    def compute_min_kit_for_unwarranted(self, p: Parameters, tez_to_auction: int) -> int:
        """
        Kit the auctioned tez would have to fetch for the liquidation to turn
        out unwarranted, i.e. for the burrow to have been above FLIQUIDATION at
        the price the auction revealed. Kit expected from collateral already
        at auction does not count towards what the burrow owes.
        """
        if self.collateral == 0:
            return 0
        expected_kit = self.compute_expected_kit(p, self.collateral_at_auction)
        outstanding = max(Fraction(0), _kit(self.outstanding_kit) - expected_kit)
        return math.ceil(tez_to_auction * outstanding * KIT_SCALING_FACTOR / self.collateral * FLIQUIDATION)

    def request_liquidation(self, p: Parameters) -> Tuple[LiquidationType, Optional[LiquidationDetails]]:
        """
        Classify the burrow for liquidation.

        Returns the liquidation type together with its details (None when the
        liquidation is unnecessary). Every liquidation deactivates the burrow,
        since its creation deposit is part of the reward.
        """
        b = self.touch(p)
        if not b.is_liquidatable(p) or (b.collateral == 0 and not b.active):
            return LiquidationType.UNNECESSARY, None

        partial_reward = math.floor(LIQUIDATION_REWARD_PERCENTAGE * b.collateral)
        liquidation_reward = (CREATION_DEPOSIT if b.active else 0) + partial_reward
        collateral_without_reward = b.collateral - partial_reward
        b_without_reward = replace(b, collateral=collateral_without_reward)

        if collateral_without_reward < CREATION_DEPOSIT:
            kind = LiquidationType.CLOSE
            tez_to_auction = collateral_without_reward
        else:
            tez_to_auction = b_without_reward.compute_tez_to_auction(p)
            assert tez_to_auction >= 0
            if tez_to_auction > collateral_without_reward:
                kind = LiquidationType.COMPLETE
                tez_to_auction = collateral_without_reward
            else:
                kind = LiquidationType.PARTIAL

        final_burrow = replace(
            b,
            active=False,
            collateral=collateral_without_reward - tez_to_auction,
            collateral_at_auction=b.collateral_at_auction + tez_to_auction,
        )
        details = LiquidationDetails(
            liquidation_reward=liquidation_reward,
            tez_to_auction=tez_to_auction,
            min_kit_for_unwarranted=b.compute_min_kit_for_unwarranted(p, tez_to_auction),
            burrow_state=final_burrow,
        )
        return kind, details
