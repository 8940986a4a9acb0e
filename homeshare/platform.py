"""
platform.py - Wiring of the platform components onto one ledger

create_platform() registers the cash unit and creates the component records
and their wallets in a single SYSTEM transaction, so a replayed ledger
rebuilds the same platform.
"""
from __future__ import annotations
from dataclasses import dataclass

from .core import (
    Move, build_transaction, cash,
    TransactionOrigin, OriginType,
    AUCTION_ESCROW_WALLET, AUCTION_HOUSE_UNIT, BOOKING_ESCROW_WALLET, BOOKING_LEDGER_UNIT,
    NATIVE_CURRENCY, REGISTRY_UNIT, REGISTRY_WALLET, SYSTEM_WALLET, TREASURY_UNIT,
    TREASURY_WALLET,
    require_positive,
)
from .ledger import Ledger
from .units.auction import AuctionEngine, create_auction_house_unit
from .units.booking import BookingLedger, create_booking_ledger_unit
from .units.fees import FeeRates
from .units.registry import AssetRegistry, create_registry_unit
from .units.treasury import Treasury, create_treasury_unit


@dataclass(frozen=True)
class Platform:
    """Component handles sharing one ledger."""
    ledger: Ledger
    registry: AssetRegistry
    treasury: Treasury
    auction_engine: AuctionEngine
    booking_ledger: BookingLedger

    @property
    def owner(self) -> str:
        return self.registry.owner


def create_platform(
    ledger: Ledger,
    owner: str,
    fee_rates: FeeRates,
    *,
    registry_wallet: str = REGISTRY_WALLET,
    treasury_wallet: str = TREASURY_WALLET,
    auction_escrow_wallet: str = AUCTION_ESCROW_WALLET,
    booking_escrow_wallet: str = BOOKING_ESCROW_WALLET,
    currency: str = NATIVE_CURRENCY,
) -> Platform:
    """
    Create the registry, treasury, auction engine and booking ledger.

    The owner runs the registry, the auction engine and the booking ledger,
    and controls the treasury. Missing wallets (owner included) are created.

    Example:
        ledger = Ledger("main", clock=ManualClock(0), verbose=False)
        platform = create_platform(ledger, "deployer", FeeRates(100, 50))
    """
    if not ledger.has_unit(currency):
        ledger.register_unit(cash(currency))

    units = (
        create_registry_unit(owner, fee_rates, registry_wallet, TREASURY_UNIT, REGISTRY_UNIT, currency),
        create_treasury_unit(owner, treasury_wallet, TREASURY_UNIT, currency),
        create_auction_house_unit(owner, auction_escrow_wallet, REGISTRY_UNIT, AUCTION_HOUSE_UNIT, currency),
        create_booking_ledger_unit(owner, booking_escrow_wallet, REGISTRY_UNIT, BOOKING_LEDGER_UNIT, currency),
    )
    wallets = []
    for wallet in (owner, registry_wallet, treasury_wallet, auction_escrow_wallet, booking_escrow_wallet):
        if not ledger.is_registered(wallet) and wallet not in wallets:
            wallets.append(wallet)

    ledger.commit(build_transaction(
        ledger, [], [],
        origin=TransactionOrigin(OriginType.SYSTEM, owner, None, "CREATE_PLATFORM"),
        units_to_create=units,
        wallets_to_create=tuple(wallets),
    ))

    return Platform(
        ledger=ledger,
        registry=AssetRegistry(ledger, REGISTRY_UNIT),
        treasury=Treasury(ledger, TREASURY_UNIT),
        auction_engine=AuctionEngine(ledger, AUCTION_HOUSE_UNIT),
        booking_ledger=BookingLedger(ledger, BOOKING_LEDGER_UNIT),
    )


def fund_wallet(ledger: Ledger, wallet: str, amount: int, currency: str = NATIVE_CURRENCY) -> None:
    """
    Issue amount of currency to wallet from the system wallet.

    The wallet is registered in the same transaction if it does not exist yet.
    """
    require_positive("amount", amount)
    if not ledger.has_unit(currency):
        ledger.register_unit(cash(currency))
    move = Move(
        quantity=amount,
        unit_symbol=currency,
        source=SYSTEM_WALLET,
        dest=wallet,
        contract_id=f"fund_{wallet}_{len(ledger.transaction_log)}",
    )
    ledger.commit(build_transaction(
        ledger, [move], [],
        origin=TransactionOrigin(OriginType.SYSTEM, SYSTEM_WALLET, currency, "ISSUE"),
        wallets_to_create=() if ledger.is_registered(wallet) else (wallet,),
    ))
