"""
Units module - Factories, pure functions and handles of the platform components.

- house: fractional share units with pull-based dividends (ShareLedger)
- registry: asset creation and auction opening (AssetRegistry)
- treasury: the shared fund (Treasury)
- auction: time-boxed share auctions (AuctionEngine)
- booking: listings, deposits and stays (BookingLedger)
- fees: basis-point fee splitting

All unit factories and related functions are re-exported here for convenience.
"""

from .fees import FeeRates, FeeSplit, compute_fee_split

from .house import (
    ShareLedger,
    create_house_unit,
    mint_shares,
    transfer_shares,
    credit_dividend,
    settle_holder,
    lock_shares,
    unlock_shares,
    pending_dividends,
    owed_dividends,
    claimable_dividends,
    compute_share_transfer,
    compute_dividend_credit,
    compute_dividend_withdrawal,
)

from .treasury import (
    Treasury,
    create_treasury_unit,
    record_receipt,
    compute_receive,
    compute_forward,
)

from .auction import (
    AuctionEngine,
    AuctionStatus,
    create_auction_house_unit,
    auction_status,
    compute_auction_creation,
    compute_place_bid,
    compute_finalization,
    auction_contract,
)

from .registry import (
    AssetRegistry,
    create_registry_unit,
    compute_house_creation,
    compute_auction_opening,
    compute_revenue_withdrawal,
)

from .booking import (
    BookingLedger,
    BookingStatus,
    create_booking_ledger_unit,
    ranges_overlap,
    find_conflict,
    compute_listing,
    compute_delisting,
    compute_deposit,
    compute_withdrawal,
    compute_booking,
    compute_cancellation,
    compute_settlement,
)

__all__ = [
    # Fees
    'FeeRates', 'FeeSplit', 'compute_fee_split',
    # Houses
    'ShareLedger', 'create_house_unit', 'mint_shares', 'transfer_shares',
    'credit_dividend', 'settle_holder', 'lock_shares', 'unlock_shares',
    'pending_dividends', 'owed_dividends', 'claimable_dividends',
    'compute_share_transfer', 'compute_dividend_credit', 'compute_dividend_withdrawal',
    # Treasury
    'Treasury', 'create_treasury_unit', 'record_receipt', 'compute_receive', 'compute_forward',
    # Auctions
    'AuctionEngine', 'AuctionStatus', 'create_auction_house_unit', 'auction_status',
    'compute_auction_creation', 'compute_place_bid', 'compute_finalization', 'auction_contract',
    # Registry
    'AssetRegistry', 'create_registry_unit', 'compute_house_creation',
    'compute_auction_opening', 'compute_revenue_withdrawal',
    # Bookings
    'BookingLedger', 'BookingStatus', 'create_booking_ledger_unit', 'ranges_overlap',
    'find_conflict', 'compute_listing', 'compute_delisting', 'compute_deposit',
    'compute_withdrawal', 'compute_booking', 'compute_cancellation', 'compute_settlement',
]
