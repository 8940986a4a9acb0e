"""
conftest.py - Shared pytest fixtures for homeshare tests

Provides common fixtures used across unit, conformance and functional tests:
- Basic ledgers (empty, funded) on a ManualClock
- A wired platform with funded users
- An asset, an open auction and a listed room
- Comparison utilities
"""

import pytest
from typing import Dict, Tuple

from homeshare import (
    Ledger, ManualClock, FeeRates, Platform,
    cash, create_platform, fund_wallet, parse_ether,
)


OWNER = "deployer"
USERS = ("alice", "bob", "carol")
DAY = 86400


def ether(value) -> int:
    """Shorthand for parse_ether in test bodies."""
    return parse_ether(str(value))


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def compare_ledger_states(ledger1: Ledger, ledger2: Ledger) -> dict:
    """Compare balances and unit states of two ledgers and return the differences."""
    balance_diffs = []
    state_diffs = []

    all_wallets = ledger1.registered_wallets | ledger2.registered_wallets
    all_units = set(ledger1.units.keys()) | set(ledger2.units.keys())

    for wallet in sorted(all_wallets):
        for unit in sorted(all_units):
            bal1 = ledger1.balances.get(wallet, {}).get(unit, 0)
            bal2 = ledger2.balances.get(wallet, {}).get(unit, 0)
            if bal1 != bal2:
                balance_diffs.append({
                    "wallet": wallet,
                    "unit": unit,
                    "ledger1": bal1,
                    "ledger2": bal2,
                })

    for unit_sym in sorted(all_units):
        if unit_sym in ledger1.units and unit_sym in ledger2.units:
            state1 = ledger1.get_unit_state(unit_sym)
            state2 = ledger2.get_unit_state(unit_sym)
            if state1 != state2:
                state_diffs.append({"unit": unit_sym, "ledger1": state1, "ledger2": state2})
        else:
            state_diffs.append({"unit": unit_sym, "missing": True})

    return {
        "equal": not balance_diffs and not state_diffs,
        "balance_diffs": balance_diffs,
        "state_diffs": state_diffs,
    }


def make_platform(clock: ManualClock = None, funding: int = None) -> Platform:
    """Wired platform on a fresh ledger; every user holds funding (default 100 ETH)."""
    ledger = Ledger("platform", clock=clock or ManualClock(0), verbose=False, test_mode=True)
    platform = create_platform(ledger, OWNER, FeeRates(platform_fee_bps=100, fund_fee_bps=50))
    for user in USERS:
        fund_wallet(ledger, user, funding if funding is not None else ether(100))
    return platform


def ledger_state_equals(ledger1: Ledger, ledger2: Ledger) -> bool:
    return compare_ledger_states(ledger1, ledger2)["equal"]


def cash_in_wallets(ledger: Ledger, currency: str = "ETH") -> Dict[str, int]:
    """Non-zero cash balances outside the system wallet."""
    return {
        wallet: qty for wallet, qty in ledger.get_positions(currency).items()
        if wallet != "system"
    }


def verify_conservation(ledger: Ledger, unit_symbol: str, expected_total: int = None) -> Tuple[bool, int]:
    """
    Verify the conservation law for a unit.

    Returns:
        (is_conserved, circulating supply)
    """
    actual = ledger.circulating_supply(unit_symbol)
    conserved = ledger.total_supply(unit_symbol) == 0
    if expected_total is not None:
        conserved = conserved and actual == expected_total
    return conserved, actual


# =============================================================================
# BASIC FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return ManualClock(0)


@pytest.fixture
def empty_ledger(clock):
    """Fresh ledger with no registrations."""
    return Ledger("test", clock=clock, verbose=False, test_mode=True)


@pytest.fixture
def basic_ledger(clock):
    """Ledger with ETH and two wallets."""
    ledger = Ledger("test", clock=clock, verbose=False, test_mode=True)
    ledger.register_unit(cash())
    ledger.register_wallet("alice")
    ledger.register_wallet("bob")
    return ledger


@pytest.fixture
def funded_ledger(basic_ledger):
    """Basic ledger with alice holding 10 ETH, issued from the system wallet."""
    fund_wallet(basic_ledger, "alice", ether(10))
    return basic_ledger


# =============================================================================
# PLATFORM FIXTURES
# =============================================================================

@pytest.fixture
def platform(clock) -> Platform:
    """Wired platform; every user holds 100 ETH."""
    return make_platform(clock)


@pytest.fixture
def house(platform) -> int:
    """Asset 0: 100 shares held in registry custody."""
    return platform.registry.create_house(OWNER, "Test Token", "TT", "house for test", 100)


@pytest.fixture
def auction(platform, house) -> int:
    """Auction of all 100 shares, 1 ETH minimum, one day, starting now."""
    return platform.registry.auction_house(
        OWNER, house, platform.auction_engine, 100, ether(1), DAY,
    )


@pytest.fixture
def listed_house(platform, house) -> int:
    """Asset 0 listed for 2 ETH per stay."""
    platform.booking_ledger.list_room(OWNER, house, "url1", "url2", ether(2))
    return house


@pytest.fixture
def owned_house(platform, auction, clock) -> int:
    """Asset 0 after alice won all 100 shares for 1.9 ETH."""
    platform.auction_engine.place_bid("alice", auction, ether("1.9"))
    clock.advance(DAY)
    platform.auction_engine.finalize_auction(OWNER, auction)
    return platform.ledger.get_unit_state("AUCTION_0")["asset_id"]
