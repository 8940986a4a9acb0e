"""
registry.py - Asset registry: creates houses and puts them up for auction

The registry is a REGISTRY record unit holding the owner, the custody
wallet, the fee rates and the asset counter. Creating a house registers its
share unit and dividend pool wallet, and mints the whole supply to custody,
in one transaction. Opening an auction locks the offered custody shares and
creates the auction unit, in one transaction.
"""
from __future__ import annotations
from typing import Any, Dict, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitState, UnitStateChange,
    build_transaction, user_origin, record_unit, require_positive,
    house_symbol, pool_wallet,
    NATIVE_CURRENCY, REGISTRY_UNIT, REGISTRY_WALLET, TREASURY_UNIT, UNIT_TYPE_REGISTRY,
    ValidationError, Unauthorized, InsufficientFunds, NotFound,
    UnitNotRegistered, WalletNotRegistered,
)
from .auction import compute_auction_creation
from .fees import FeeRates
from .house import (
    ShareLedger, create_house_unit, mint_shares, lock_shares,
    compute_dividend_withdrawal, claimable_dividends,
)


def create_registry_unit(
    owner: str,
    fee_rates: FeeRates,
    custody_wallet: str = REGISTRY_WALLET,
    treasury_unit: str = TREASURY_UNIT,
    symbol: str = REGISTRY_UNIT,
    currency: str = NATIVE_CURRENCY,
) -> Unit:
    return record_unit(symbol, "Asset Registry", UNIT_TYPE_REGISTRY, {
        'owner': owner,
        'custody_wallet': custody_wallet,
        'fee_rates': fee_rates.to_state(),
        'treasury_unit': treasury_unit,
        'currency': currency,
        'asset_count': 0,
        'revenue_withdrawn': 0,
    })


def _require_owner(state: UnitState, caller: str, action: str) -> None:
    if caller != state['owner']:
        raise Unauthorized(f"{caller} is not the registry owner, cannot {action}")


def _require_asset(view: LedgerView, asset_id: int) -> str:
    unit_symbol = house_symbol(asset_id)
    try:
        view.get_unit(unit_symbol)
    except UnitNotRegistered:
        raise NotFound(f"Asset {asset_id} does not exist") from None
    return unit_symbol


def compute_house_creation(
    view: LedgerView,
    registry_symbol: str,
    caller: str,
    name: str,
    symbol: str,
    description: str,
    total_shares: int,
) -> Tuple[PendingTransaction, int]:
    """
    Register a new asset and mint all of its shares to custody.

    Returns:
        (pending transaction, new asset id)
    """
    if not name or not name.strip():
        raise ValidationError("name cannot be empty")
    if not symbol or not symbol.strip():
        raise ValidationError("symbol cannot be empty")
    require_positive("total_shares", total_shares)

    state = view.get_unit_state(registry_symbol)
    _require_owner(state, caller, "create houses")

    asset_id = state['asset_count']
    custody = state['custody_wallet']
    unit = create_house_unit(asset_id, name, symbol, description or "", total_shares, custody)
    house_state = unit.state
    moves, minted_state = mint_shares(house_state, unit.symbol, custody)

    new_state = {**state, 'asset_count': asset_id + 1}
    pending = build_transaction(
        view,
        moves,
        [
            UnitStateChange(registry_symbol, state, new_state),
            UnitStateChange(unit.symbol, house_state, minted_state),
        ],
        origin=user_origin(caller, registry_symbol, "CREATE_HOUSE"),
        units_to_create=(unit,),
        wallets_to_create=(pool_wallet(asset_id),),
    )
    return pending, asset_id


def compute_auction_opening(
    view: LedgerView,
    registry_symbol: str,
    caller: str,
    asset_id: int,
    engine_symbol: str,
    shares_offered: int,
    min_bid: int,
    duration: int,
    start_delay: int = 0,
) -> Tuple[PendingTransaction, int]:
    """
    Lock custody shares and open an auction for them.

    Raises:
        ValidationError: For non-positive shares_offered, min_bid or duration
        Unauthorized: If caller is not the registry owner
        NotFound: If the asset does not exist
        InsufficientShares: If custody holds fewer unlocked shares than offered
    """
    require_positive("shares_offered", shares_offered)
    require_positive("min_bid", min_bid)
    require_positive("duration", duration)

    state = view.get_unit_state(registry_symbol)
    _require_owner(state, caller, "open auctions")
    unit_symbol = _require_asset(view, asset_id)

    custody = state['custody_wallet']
    house_state = view.get_unit_state(unit_symbol)
    balance = view.get_positions(unit_symbol).get(custody, 0)
    locked_state = lock_shares(house_state, custody, shares_offered, balance)

    auction_unit, engine_change, auction_id = compute_auction_creation(
        view, engine_symbol, asset_id, unit_symbol, shares_offered, min_bid,
        duration, start_delay, seller=custody, operator=state['owner'],
    )
    pending = build_transaction(
        view,
        [],
        [engine_change, UnitStateChange(unit_symbol, house_state, locked_state)],
        origin=user_origin(caller, registry_symbol, "AUCTION_HOUSE"),
        units_to_create=(auction_unit,),
    )
    return pending, auction_id


def compute_revenue_withdrawal(
    view: LedgerView,
    registry_symbol: str,
    caller: str,
    amount: int,
    destination: str,
) -> PendingTransaction:
    """Pay registry revenue (platform fees, auction proceeds) out of custody. Owner only."""
    require_positive("amount", amount)
    state = view.get_unit_state(registry_symbol)
    _require_owner(state, caller, "withdraw revenue")
    if not view.is_registered(destination):
        raise WalletNotRegistered(f"Wallet {destination} not registered")
    balance = view.get_balance(state['custody_wallet'], state['currency'])
    if balance < amount:
        raise InsufficientFunds(f"registry holds {balance}, cannot withdraw {amount}")
    move = Move(amount, state['currency'], state['custody_wallet'], destination,
                f"revenue_{registry_symbol}")
    new_state = {**state, 'revenue_withdrawn': state['revenue_withdrawn'] + amount}
    return build_transaction(
        view, [move], [UnitStateChange(registry_symbol, state, new_state)],
        origin=user_origin(caller, registry_symbol, "WITHDRAW_REVENUE"),
    )


class AssetRegistry:
    """
    Handle over the registry record unit.

    Example:
        asset_id = registry.create_house("owner", "Test Token", "TT", "house for test", 100)
        auction_id = registry.auction_house("owner", asset_id, engine, 100, parse_ether(1), 86400)
    """

    def __init__(self, ledger, unit_symbol: str = REGISTRY_UNIT):
        self.ledger = ledger
        self.unit_symbol = unit_symbol

    def _state(self) -> UnitState:
        return self.ledger.get_unit_state(self.unit_symbol)

    @property
    def owner(self) -> str:
        return self._state()['owner']

    @property
    def custody_wallet(self) -> str:
        return self._state()['custody_wallet']

    @property
    def fee_rates(self) -> FeeRates:
        return FeeRates.from_state(self._state()['fee_rates'])

    @property
    def treasury_unit(self) -> str:
        return self._state()['treasury_unit']

    @property
    def asset_count(self) -> int:
        return self._state()['asset_count']

    def asset(self, asset_id: int) -> Dict[str, Any]:
        unit_symbol = _require_asset(self.ledger, asset_id)
        state = self.ledger.get_unit_state(unit_symbol)
        return {
            'id': asset_id,
            'name': state['name'],
            'symbol': state['symbol'],
            'description': state['description'],
            'total_shares': state['total_shares'],
            'unit_symbol': unit_symbol,
            'pool_wallet': state['pool_wallet'],
        }

    def share_ledger(self, asset_id: int) -> ShareLedger:
        return ShareLedger(self.ledger, asset_id)

    def available_shares(self, asset_id: int) -> int:
        """Custody shares not reserved by an open auction."""
        return self.share_ledger(asset_id).available_shares(self.custody_wallet)

    def create_house(
        self,
        caller: str,
        name: str,
        symbol: str,
        description: str,
        total_shares: int,
    ) -> int:
        pending, asset_id = compute_house_creation(
            self.ledger, self.unit_symbol, caller, name, symbol, description, total_shares,
        )
        self.ledger.commit(pending)
        return asset_id

    def auction_house(
        self,
        caller: str,
        asset_id: int,
        auction_engine,
        shares_offered: int,
        min_bid: int,
        duration: int,
        start_delay: int = 0,
    ) -> int:
        pending, auction_id = compute_auction_opening(
            self.ledger, self.unit_symbol, caller, asset_id, auction_engine.unit_symbol,
            shares_offered, min_bid, duration, start_delay,
        )
        self.ledger.commit(pending)
        return auction_id

    def claim_custody_dividends(self, caller: str, asset_id: int) -> int:
        """Collect dividends earned by custody-held shares into the custody wallet."""
        state = self._state()
        _require_owner(state, caller, "claim custody dividends")
        unit_symbol = _require_asset(self.ledger, asset_id)
        owed = claimable_dividends(self.ledger, unit_symbol, state['custody_wallet'])
        self.ledger.commit(
            compute_dividend_withdrawal(self.ledger, unit_symbol, state['custody_wallet'])
        )
        return owed

    def withdraw_revenue(self, caller: str, amount: int, destination: str) -> None:
        self.ledger.commit(
            compute_revenue_withdrawal(self.ledger, self.unit_symbol, caller, amount, destination)
        )
