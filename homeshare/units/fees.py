"""
fees.py - Basis-point fee splitting shared by auctions and booking settlements

Fee rates are integer basis points of BPS_DENOMINATOR. Each fee share is
truncated; whatever the truncation leaves goes to the residual share, so the
parts of a split always add up to the amount that was split.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict

from ..core import BPS_DENOMINATOR, ValidationError, checked


@dataclass(frozen=True, slots=True)
class FeeRates:
    """
    Platform and fund fee rates, in basis points.

    Attributes:
        platform_fee_bps: Share of each payment kept by the registry
        fund_fee_bps: Share of each payment paid into the Treasury
    """
    platform_fee_bps: int
    fund_fee_bps: int

    def __post_init__(self):
        for name in ("platform_fee_bps", "fund_fee_bps"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{name} must be an integer, got {type(value).__name__}")
            if value < 0:
                raise ValidationError(f"{name} cannot be negative, got {value}")
        if self.platform_fee_bps + self.fund_fee_bps > BPS_DENOMINATOR:
            raise ValidationError(
                f"fee rates exceed {BPS_DENOMINATOR} bps: "
                f"{self.platform_fee_bps} + {self.fund_fee_bps}"
            )

    def to_state(self) -> Dict[str, int]:
        return {
            'platform_fee_bps': self.platform_fee_bps,
            'fund_fee_bps': self.fund_fee_bps,
        }

    @classmethod
    def from_state(cls, state: Dict[str, Any]) -> FeeRates:
        return cls(state['platform_fee_bps'], state['fund_fee_bps'])


@dataclass(frozen=True, slots=True)
class FeeSplit:
    """
    Result of splitting a payment.

    Exactly one of owner_share (auction proceeds) and dividend_share
    (booking settlement) carries the residual; the other is zero.
    """
    amount: int
    treasury_share: int
    platform_share: int
    owner_share: int = 0
    dividend_share: int = 0

    @property
    def total(self) -> int:
        return self.treasury_share + self.platform_share + self.owner_share + self.dividend_share


def compute_fee_split(amount: int, fee_rates: FeeRates, include_dividend: bool) -> FeeSplit:
    """
    Split amount into treasury, platform and residual shares.

    Args:
        amount: Amount to split, in wei (>= 0)
        fee_rates: Rates to apply
        include_dividend: True for booking settlements (residual is the
            dividend share), False for auctions (residual is the owner share)

    Example:
        compute_fee_split(2 * 10**18, FeeRates(100, 50), include_dividend=True)
        # treasury 0.01 ETH, platform 0.02 ETH, dividends 1.97 ETH
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"amount must be an integer, got {type(amount).__name__}")
    checked(amount, "amount")
    treasury_share = checked(amount * fee_rates.fund_fee_bps, "fund fee") // BPS_DENOMINATOR
    platform_share = checked(amount * fee_rates.platform_fee_bps, "platform fee") // BPS_DENOMINATOR
    residual = amount - treasury_share - platform_share
    if include_dividend:
        return FeeSplit(amount, treasury_share, platform_share, dividend_share=residual)
    return FeeSplit(amount, treasury_share, platform_share, owner_share=residual)
