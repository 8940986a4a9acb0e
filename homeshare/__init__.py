"""
homeshare - Fractional Housing Ledger

Tokenizes houses into fractional shares, auctions them, books stays against
them and distributes the rent to shareholders as pull-based dividends, all on
one atomic double-entry ledger.

Usage:
    from homeshare import (
        Ledger, ManualClock, FeeRates, create_platform, fund_wallet, parse_ether,
    )

    clock = ManualClock(0)
    ledger = Ledger("main", clock=clock, verbose=False)
    platform = create_platform(ledger, "deployer", FeeRates(platform_fee_bps=100, fund_fee_bps=50))
    fund_wallet(ledger, "alice", parse_ether("10"))

    asset_id = platform.registry.create_house("deployer", "Test Token", "TT", "house for test", 100)
    auction_id = platform.registry.auction_house(
        "deployer", asset_id, platform.auction_engine, 100, parse_ether("1"), 86400,
    )
    platform.auction_engine.place_bid("alice", auction_id, parse_ether("1.9"))
    clock.advance(86400)
    platform.auction_engine.finalize_auction("deployer", auction_id)
"""

# Core types
from .core import (
    LedgerView,
    SmartContract,
    Move,
    Transaction,
    PendingTransaction,
    TransactionOrigin,
    OriginType,
    build_transaction,
    empty_pending_transaction,
    Unit,
    UnitStateChange,
    ExecuteResult,
    cash,
    record_unit,
    parse_ether,
    format_ether,
    checked,
    house_symbol,
    pool_wallet,
    auction_symbol,
    booking_symbol,
    # Exceptions
    LedgerError,
    ValidationError,
    InvalidStateError,
    Unauthorized,
    InsufficientFunds,
    InsufficientShares,
    BidTooLow,
    NotFound,
    ArithmeticOverflow,
    TransactionRejected,
    UnitNotRegistered,
    WalletNotRegistered,
    # Constants
    SYSTEM_WALLET,
    NATIVE_CURRENCY,
    WEI_PER_ETHER,
    BPS_DENOMINATOR,
    DIVIDEND_PRECISION,
    UINT256_MAX,
    UNIT_TYPE_CASH,
    UNIT_TYPE_HOUSE_SHARE,
    UNIT_TYPE_AUCTION,
    UNIT_TYPE_BOOKING,
    UNIT_TYPE_REGISTRY,
    UNIT_TYPE_TREASURY,
    UNIT_TYPE_AUCTION_HOUSE,
    UNIT_TYPE_BOOKING_LEDGER,
    REGISTRY_WALLET,
    TREASURY_WALLET,
    AUCTION_ESCROW_WALLET,
    BOOKING_ESCROW_WALLET,
    REGISTRY_UNIT,
    TREASURY_UNIT,
    AUCTION_HOUSE_UNIT,
    BOOKING_LEDGER_UNIT,
)

# Time
from .clock import Clock, ManualClock, SystemClock

# Ledger
from .ledger import Ledger

# Components
from .units import (
    FeeRates,
    FeeSplit,
    compute_fee_split,
    ShareLedger,
    AssetRegistry,
    Treasury,
    AuctionEngine,
    AuctionStatus,
    BookingLedger,
    BookingStatus,
    auction_contract,
)

# Lifecycle
from .lifecycle_engine import LifecycleEngine, default_contracts

# Wiring
from .platform import Platform, create_platform, fund_wallet

__all__ = [
    # Core
    'LedgerView', 'SmartContract', 'Move', 'Transaction', 'PendingTransaction',
    'TransactionOrigin', 'OriginType', 'build_transaction', 'empty_pending_transaction',
    'Unit', 'UnitStateChange', 'ExecuteResult', 'cash', 'record_unit',
    'parse_ether', 'format_ether', 'checked',
    'house_symbol', 'pool_wallet', 'auction_symbol', 'booking_symbol',
    # Exceptions
    'LedgerError', 'ValidationError', 'InvalidStateError', 'Unauthorized',
    'InsufficientFunds', 'InsufficientShares', 'BidTooLow', 'NotFound',
    'ArithmeticOverflow', 'TransactionRejected', 'UnitNotRegistered', 'WalletNotRegistered',
    # Constants
    'SYSTEM_WALLET', 'NATIVE_CURRENCY', 'WEI_PER_ETHER', 'BPS_DENOMINATOR',
    'DIVIDEND_PRECISION', 'UINT256_MAX',
    'UNIT_TYPE_CASH', 'UNIT_TYPE_HOUSE_SHARE', 'UNIT_TYPE_AUCTION', 'UNIT_TYPE_BOOKING',
    'UNIT_TYPE_REGISTRY', 'UNIT_TYPE_TREASURY', 'UNIT_TYPE_AUCTION_HOUSE',
    'UNIT_TYPE_BOOKING_LEDGER',
    'REGISTRY_WALLET', 'TREASURY_WALLET', 'AUCTION_ESCROW_WALLET', 'BOOKING_ESCROW_WALLET',
    'REGISTRY_UNIT', 'TREASURY_UNIT', 'AUCTION_HOUSE_UNIT', 'BOOKING_LEDGER_UNIT',
    # Time
    'Clock', 'ManualClock', 'SystemClock',
    # Ledger
    'Ledger',
    # Components
    'FeeRates', 'FeeSplit', 'compute_fee_split', 'ShareLedger', 'AssetRegistry',
    'Treasury', 'AuctionEngine', 'AuctionStatus', 'BookingLedger', 'BookingStatus',
    'auction_contract',
    # Lifecycle
    'LifecycleEngine', 'default_contracts',
    # Wiring
    'Platform', 'create_platform', 'fund_wallet',
]

__version__ = '1.0.0'
