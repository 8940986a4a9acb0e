"""
test_fees.py - Tests for fee rates and fee splitting
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from homeshare import (
    FeeRates, FeeSplit, compute_fee_split, ValidationError, ArithmeticOverflow,
    BPS_DENOMINATOR, UINT256_MAX,
)
from tests.conftest import ether


class TestFeeRates:

    def test_valid_rates(self):
        rates = FeeRates(platform_fee_bps=100, fund_fee_bps=50)
        assert rates.platform_fee_bps == 100
        assert rates.fund_fee_bps == 50

    def test_zero_rates_allowed(self):
        FeeRates(0, 0)

    def test_full_rate_allowed(self):
        FeeRates(BPS_DENOMINATOR, 0)

    def test_rates_over_denominator_rejected(self):
        with pytest.raises(ValidationError, match="exceed"):
            FeeRates(9_000, 1_001)

    def test_negative_rate_rejected(self):
        with pytest.raises(ValidationError, match="negative"):
            FeeRates(-1, 0)

    @pytest.mark.parametrize("value", [1.5, "100", None, True])
    def test_non_integer_rate_rejected(self, value):
        with pytest.raises(ValidationError, match="integer"):
            FeeRates(value, 0)

    def test_state_round_trip(self):
        rates = FeeRates(100, 50)
        assert rates.to_state() == {'platform_fee_bps': 100, 'fund_fee_bps': 50}
        assert FeeRates.from_state(rates.to_state()) == rates


class TestComputeFeeSplit:

    def test_booking_split(self):
        """A 2 ETH stay at 1% / 0.5% leaves 1.97 ETH for the holders."""
        split = compute_fee_split(ether(2), FeeRates(100, 50), include_dividend=True)
        assert split.treasury_share == ether("0.01")
        assert split.platform_share == ether("0.02")
        assert split.dividend_share == ether("1.97")
        assert split.owner_share == 0

    def test_auction_split(self):
        """A 1.9 ETH winning bid at 1% / 0.5%."""
        split = compute_fee_split(ether("1.9"), FeeRates(100, 50), include_dividend=False)
        assert split.treasury_share == ether("0.0095")
        assert split.platform_share == ether("0.019")
        assert split.owner_share == ether("1.8715")
        assert split.dividend_share == 0

    def test_truncation_goes_to_residual(self):
        split = compute_fee_split(199, FeeRates(100, 50), include_dividend=True)
        assert split.treasury_share == 0
        assert split.platform_share == 1
        assert split.dividend_share == 198

    def test_zero_amount(self):
        split = compute_fee_split(0, FeeRates(100, 50), include_dividend=False)
        assert split == FeeSplit(0, 0, 0, owner_share=0)

    def test_zero_rates(self):
        split = compute_fee_split(ether(1), FeeRates(0, 0), include_dividend=True)
        assert split.dividend_share == ether(1)

    def test_overflow_raises(self):
        with pytest.raises(ArithmeticOverflow):
            compute_fee_split(UINT256_MAX, FeeRates(100, 50), include_dividend=True)

    def test_negative_amount_raises(self):
        with pytest.raises(ArithmeticOverflow):
            compute_fee_split(-1, FeeRates(100, 50), include_dividend=True)

    def test_non_integer_amount_raises(self):
        with pytest.raises(ValidationError):
            compute_fee_split(1.5, FeeRates(100, 50), include_dividend=True)

    @given(
        amount=st.integers(min_value=0, max_value=10**30),
        platform=st.integers(min_value=0, max_value=5_000),
        fund=st.integers(min_value=0, max_value=5_000),
        include_dividend=st.booleans(),
    )
    @settings(max_examples=50)
    def test_parts_add_up(self, amount, platform, fund, include_dividend):
        """The parts of a split always add up to the amount."""
        split = compute_fee_split(amount, FeeRates(platform, fund), include_dividend)
        assert split.total == amount
        assert min(split.treasury_share, split.platform_share,
                   split.owner_share, split.dividend_share) >= 0
        assert split.treasury_share == amount * fund // BPS_DENOMINATOR
        assert split.platform_share == amount * platform // BPS_DENOMINATOR
