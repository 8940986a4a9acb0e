"""
booking.py - Room listings, renter deposits and stay bookings

=== BOOKING MODEL ===

The BookingLedger is a BOOKING_LEDGER record unit holding the listings (one
per asset) and the renters' custodial balances. All renter cash sits in one
escrow wallet:

    balance(escrow) == sum(renter_balances) + sum(price of ACTIVE bookings)

A Booking is a BOOKING record unit ("BOOKING_<id>"):

    create  : renter balance -= price, booking ACTIVE        (no cash moves)
    cancel  : renter balance += price, booking CANCELLED     (renter only)
    settle  : escrow -> treasury (fund fee)
              escrow -> registry custody (platform fee)
              escrow -> asset dividend pool (remainder, credited to the index)
              booking SETTLED                                (owner only, after check-out)

Stays are half-open ranges [check_in, check_out). A new booking must not
overlap an ACTIVE or SETTLED booking of the same asset; cancelled bookings
free their range.

aux_a, aux_b and coupon_data are stored as given and never interpreted.
"""
from __future__ import annotations
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitState, UnitStateChange,
    build_transaction, user_origin, record_unit, require_positive,
    booking_symbol, house_symbol,
    BOOKING_ESCROW_WALLET, BOOKING_LEDGER_UNIT, NATIVE_CURRENCY, REGISTRY_UNIT,
    UNIT_TYPE_BOOKING, UNIT_TYPE_BOOKING_LEDGER,
    ValidationError, InvalidStateError, Unauthorized, InsufficientFunds, NotFound,
    UnitNotRegistered,
    _freeze_state,
)
from .fees import FeeRates, FeeSplit, compute_fee_split
from .house import credit_dividend
from .treasury import record_receipt


class BookingStatus(str, Enum):
    """Status of a booking."""
    ACTIVE = "active"           # Price held in escrow
    SETTLED = "settled"         # Price paid out to treasury, registry and holders
    CANCELLED = "cancelled"     # Price returned to the renter balance


# Bookings in these states occupy their date range
BLOCKING_STATUSES = (BookingStatus.ACTIVE.value, BookingStatus.SETTLED.value)


def create_booking_ledger_unit(
    owner: str,
    escrow_wallet: str = BOOKING_ESCROW_WALLET,
    registry_unit: str = REGISTRY_UNIT,
    symbol: str = BOOKING_LEDGER_UNIT,
    currency: str = NATIVE_CURRENCY,
) -> Unit:
    return record_unit(symbol, "Booking Ledger", UNIT_TYPE_BOOKING_LEDGER, {
        'owner': owner,
        'escrow_wallet': escrow_wallet,
        'registry_unit': registry_unit,
        'currency': currency,
        'listings': {},
        'renter_balances': {},
        'booking_count': 0,
        'listing_updates': 0,
        'total_deposited': 0,
        'total_withdrawn': 0,
        'total_settled': 0,
    })


def ranges_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """True if half-open ranges [a_start, a_end) and [b_start, b_end) intersect."""
    return a_start < b_end and b_start < a_end


def _require_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {type(value).__name__}")
    return value


def _require_owner(state: UnitState, caller: str, action: str) -> None:
    if caller != state['owner']:
        raise Unauthorized(f"{caller} is not the booking ledger owner, cannot {action}")


def _require_asset(view: LedgerView, asset_id: int) -> str:
    unit_symbol = house_symbol(asset_id)
    try:
        view.get_unit(unit_symbol)
    except UnitNotRegistered:
        raise NotFound(f"Asset {asset_id} does not exist") from None
    return unit_symbol


def _with_renter_balance(state: UnitState, renter: str, balance: int) -> UnitState:
    balances = dict(state['renter_balances'])
    if balance:
        balances[renter] = balance
    else:
        balances.pop(renter, None)
    return {**state, 'renter_balances': balances}


# =============================================================================
# LISTINGS
# =============================================================================

def compute_listing(
    view: LedgerView,
    ledger_symbol: str,
    caller: str,
    asset_id: int,
    metadata_a: str,
    metadata_b: str,
    price: int,
) -> PendingTransaction:
    """List an asset for booking at a flat price per stay, or update its listing."""
    require_positive("price", price)
    state = view.get_unit_state(ledger_symbol)
    _require_owner(state, caller, "list rooms")
    _require_asset(view, asset_id)

    listings = dict(state['listings'])
    previous = listings.get(asset_id)
    listings[asset_id] = {
        'metadata_a': metadata_a,
        'metadata_b': metadata_b,
        'price': price,
        'active': True,
        'booking_ids': list(previous['booking_ids']) if previous else [],
    }
    new_state = {**state, 'listings': listings, 'listing_updates': state['listing_updates'] + 1}
    return build_transaction(
        view, [], [UnitStateChange(ledger_symbol, state, new_state)],
        origin=user_origin(caller, ledger_symbol, "LIST_ROOM"),
    )


def compute_delisting(
    view: LedgerView,
    ledger_symbol: str,
    caller: str,
    asset_id: int,
) -> PendingTransaction:
    """Stop accepting bookings for an asset. Existing bookings are unaffected."""
    state = view.get_unit_state(ledger_symbol)
    _require_owner(state, caller, "delist rooms")
    listing = state['listings'].get(asset_id)
    if listing is None:
        raise NotFound(f"Asset {asset_id} has no listing")
    if not listing['active']:
        raise InvalidStateError(f"Asset {asset_id} is already delisted")
    listings = dict(state['listings'])
    listings[asset_id] = {**listing, 'active': False}
    new_state = {**state, 'listings': listings, 'listing_updates': state['listing_updates'] + 1}
    return build_transaction(
        view, [], [UnitStateChange(ledger_symbol, state, new_state)],
        origin=user_origin(caller, ledger_symbol, "DELIST_ROOM"),
    )


# =============================================================================
# RENTER BALANCES
# =============================================================================

def compute_deposit(
    view: LedgerView,
    ledger_symbol: str,
    renter: str,
    amount: int,
) -> PendingTransaction:
    require_positive("amount", amount)
    state = view.get_unit_state(ledger_symbol)
    if view.get_balance(renter, state['currency']) < amount:
        raise InsufficientFunds(f"{renter} cannot deposit {amount}")
    current = state['renter_balances'].get(renter, 0)
    new_state = _with_renter_balance(state, renter, current + amount)
    new_state['total_deposited'] = state['total_deposited'] + amount
    move = Move(amount, state['currency'], renter, state['escrow_wallet'], f"deposit_{ledger_symbol}")
    return build_transaction(
        view, [move], [UnitStateChange(ledger_symbol, state, new_state)],
        origin=user_origin(renter, ledger_symbol, "DEPOSIT"),
    )


def compute_withdrawal(
    view: LedgerView,
    ledger_symbol: str,
    renter: str,
    amount: int,
) -> PendingTransaction:
    """Return unused deposit to the renter."""
    require_positive("amount", amount)
    state = view.get_unit_state(ledger_symbol)
    current = state['renter_balances'].get(renter, 0)
    if current < amount:
        raise InsufficientFunds(f"{renter} has {current} deposited, cannot withdraw {amount}")
    new_state = _with_renter_balance(state, renter, current - amount)
    new_state['total_withdrawn'] = state['total_withdrawn'] + amount
    move = Move(amount, state['currency'], state['escrow_wallet'], renter, f"withdraw_{ledger_symbol}")
    return build_transaction(
        view, [move], [UnitStateChange(ledger_symbol, state, new_state)],
        origin=user_origin(renter, ledger_symbol, "WITHDRAW"),
    )


# =============================================================================
# BOOKINGS
# =============================================================================

def find_conflict(
    view: LedgerView,
    booking_ids: List[int],
    check_in: int,
    check_out: int,
) -> Optional[int]:
    """Id of the first blocking booking overlapping [check_in, check_out), if any."""
    for booking_id in booking_ids:
        other = view.get_unit_state(booking_symbol(booking_id))
        if other['status'] not in BLOCKING_STATUSES:
            continue
        if ranges_overlap(check_in, check_out, other['check_in'], other['check_out']):
            return booking_id
    return None


def compute_booking(
    view: LedgerView,
    ledger_symbol: str,
    renter: str,
    asset_id: int,
    check_in: int,
    check_out: int,
    aux_a: int = 0,
    aux_b: int = 0,
    coupon_data: bytes = b"",
) -> Tuple[PendingTransaction, int]:
    """
    Reserve [check_in, check_out) for renter, paid from the renter balance.

    Raises:
        ValidationError: If check_in >= check_out or a parameter has the wrong type
        NotFound: If the asset does not exist
        InvalidStateError: If the asset is not listed or the range is taken
        InsufficientFunds: If the renter balance is below the listing price

    Returns:
        (pending transaction, new booking id)
    """
    _require_int("check_in", check_in)
    _require_int("check_out", check_out)
    _require_int("aux_a", aux_a)
    _require_int("aux_b", aux_b)
    if check_in >= check_out:
        raise ValidationError(f"check_in {check_in} must be before check_out {check_out}")
    if coupon_data is None:
        coupon_data = b""
    if not isinstance(coupon_data, (bytes, bytearray)):
        raise ValidationError(f"coupon_data must be bytes, got {type(coupon_data).__name__}")

    unit_symbol = _require_asset(view, asset_id)
    state = view.get_unit_state(ledger_symbol)
    listing = state['listings'].get(asset_id)
    if listing is None or not listing['active']:
        raise InvalidStateError(f"Asset {asset_id} is not listed")

    conflict = find_conflict(view, listing['booking_ids'], check_in, check_out)
    if conflict is not None:
        raise InvalidStateError(
            f"[{check_in}, {check_out}) overlaps booking {conflict} of asset {asset_id}"
        )

    price = listing['price']
    current = state['renter_balances'].get(renter, 0)
    if current < price:
        raise InsufficientFunds(f"{renter} has {current} deposited, booking costs {price}")

    booking_id = state['booking_count']
    listings = dict(state['listings'])
    listings[asset_id] = {**listing, 'booking_ids': listing['booking_ids'] + [booking_id]}
    new_state = _with_renter_balance(state, renter, current - price)
    new_state = {**new_state, 'listings': listings, 'booking_count': booking_id + 1}

    unit = Unit(
        symbol=booking_symbol(booking_id),
        name=f"Booking {booking_id} of {unit_symbol}",
        unit_type=UNIT_TYPE_BOOKING,
        min_balance=0,
        max_balance=0,
        _frozen_state=_freeze_state({
            'booking_id': booking_id,
            'ledger': ledger_symbol,
            'asset_id': asset_id,
            'house_unit': unit_symbol,
            'renter': renter,
            'check_in': check_in,
            'check_out': check_out,
            'price': price,
            'aux_a': aux_a,
            'aux_b': aux_b,
            'coupon_data': bytes(coupon_data),
            'status': BookingStatus.ACTIVE.value,
            'created_at': view.current_time,
            'settlement': None,
        }),
    )
    pending = build_transaction(
        view, [], [UnitStateChange(ledger_symbol, state, new_state)],
        origin=user_origin(renter, ledger_symbol, "CREATE_BOOKING"),
        units_to_create=(unit,),
    )
    return pending, booking_id


def compute_cancellation(
    view: LedgerView,
    symbol: str,
    caller: str,
) -> PendingTransaction:
    """
    Cancel an active booking and return its price to the renter balance.

    Raises:
        Unauthorized: If caller is not the renter
        InvalidStateError: If the booking is not ACTIVE
    """
    booking = view.get_unit_state(symbol)
    if caller != booking['renter']:
        raise Unauthorized(f"{caller} is not the renter of {symbol}")
    if booking['status'] != BookingStatus.ACTIVE.value:
        raise InvalidStateError(f"{symbol} is {booking['status']}, cannot cancel")

    ledger_symbol = booking['ledger']
    state = view.get_unit_state(ledger_symbol)
    current = state['renter_balances'].get(booking['renter'], 0)
    new_state = _with_renter_balance(state, booking['renter'], current + booking['price'])
    new_booking = {**booking, 'status': BookingStatus.CANCELLED.value}
    return build_transaction(
        view, [],
        [
            UnitStateChange(ledger_symbol, state, new_state),
            UnitStateChange(symbol, booking, new_booking),
        ],
        origin=user_origin(caller, symbol, "CANCEL_BOOKING"),
    )


def compute_settlement(
    view: LedgerView,
    symbol: str,
    caller: str,
) -> Tuple[PendingTransaction, FeeSplit]:
    """
    Release a completed stay's price to the treasury, registry and holders.

    Raises:
        Unauthorized: If caller is not the booking ledger owner
        InvalidStateError: If the booking is not ACTIVE or check-out has not passed
    """
    booking = view.get_unit_state(symbol)
    ledger_symbol = booking['ledger']
    state = view.get_unit_state(ledger_symbol)
    _require_owner(state, caller, "settle bookings")
    if booking['status'] != BookingStatus.ACTIVE.value:
        raise InvalidStateError(f"{symbol} is {booking['status']}, cannot settle")
    now = view.current_time
    if now < booking['check_out']:
        raise InvalidStateError(f"{symbol} checks out at {booking['check_out']}, now {now}")

    registry_state = view.get_unit_state(state['registry_unit'])
    price = booking['price']
    split = compute_fee_split(
        price, FeeRates.from_state(registry_state['fee_rates']), include_dividend=True,
    )

    currency = state['currency']
    escrow = state['escrow_wallet']
    moves = []
    changes = []
    if split.treasury_share:
        treasury_unit = registry_state['treasury_unit']
        treasury_state = view.get_unit_state(treasury_unit)
        moves.append(Move(
            split.treasury_share, currency, escrow, treasury_state['wallet'], f"fund_fee_{symbol}",
        ))
        changes.append(UnitStateChange(
            treasury_unit, treasury_state,
            record_receipt(treasury_state, split.treasury_share, "booking"),
        ))
    if split.platform_share:
        moves.append(Move(
            split.platform_share, currency, escrow, registry_state['custody_wallet'],
            f"platform_fee_{symbol}",
        ))
    if split.dividend_share:
        house_unit = booking['house_unit']
        house_state = view.get_unit_state(house_unit)
        moves.append(Move(
            split.dividend_share, currency, escrow, house_state['pool_wallet'], f"dividend_{symbol}",
        ))
        changes.append(UnitStateChange(
            house_unit, house_state, credit_dividend(house_state, split.dividend_share),
        ))

    new_state = {**state, 'total_settled': state['total_settled'] + price}
    changes.append(UnitStateChange(ledger_symbol, state, new_state))
    new_booking = {
        **booking,
        'status': BookingStatus.SETTLED.value,
        'settlement': {
            'treasury_share': split.treasury_share,
            'platform_share': split.platform_share,
            'dividend_share': split.dividend_share,
            'settled_at': now,
        },
    }
    changes.append(UnitStateChange(symbol, booking, new_booking))
    pending = build_transaction(
        view, moves, changes, origin=user_origin(caller, symbol, "SETTLE"),
    )
    return pending, split


class BookingLedger:
    """Handle over the booking ledger record unit and its bookings."""

    def __init__(self, ledger, unit_symbol: str = BOOKING_LEDGER_UNIT):
        self.ledger = ledger
        self.unit_symbol = unit_symbol

    def _state(self) -> UnitState:
        return self.ledger.get_unit_state(self.unit_symbol)

    def _booking_symbol(self, booking_id: int) -> str:
        symbol = booking_symbol(booking_id)
        if not self.ledger.has_unit(symbol):
            raise NotFound(f"Booking {booking_id} does not exist")
        return symbol

    @property
    def owner(self) -> str:
        return self._state()['owner']

    @property
    def escrow_wallet(self) -> str:
        return self._state()['escrow_wallet']

    @property
    def booking_count(self) -> int:
        return self._state()['booking_count']

    def balance(self, renter: str) -> int:
        """Deposited funds not committed to a booking."""
        return self._state()['renter_balances'].get(renter, 0)

    def renter_balances(self) -> Dict[str, int]:
        return self._state()['renter_balances']

    def listing(self, asset_id: int) -> Dict[str, Any]:
        listing = self._state()['listings'].get(asset_id)
        if listing is None:
            raise NotFound(f"Asset {asset_id} has no listing")
        return listing

    def booking(self, booking_id: int) -> Dict[str, Any]:
        return self.ledger.get_unit_state(self._booking_symbol(booking_id))

    def bookings_for(self, asset_id: int) -> List[Dict[str, Any]]:
        return [self.booking(booking_id) for booking_id in self.listing(asset_id)['booking_ids']]

    def active_escrow(self) -> int:
        """Sum of prices held for ACTIVE bookings."""
        total = 0
        for listing in self._state()['listings'].values():
            for booking_id in listing['booking_ids']:
                booking = self.booking(booking_id)
                if booking['status'] == BookingStatus.ACTIVE.value:
                    total += booking['price']
        return total

    def list_room(self, caller: str, asset_id: int, metadata_a: str, metadata_b: str, price: int) -> None:
        self.ledger.commit(compute_listing(
            self.ledger, self.unit_symbol, caller, asset_id, metadata_a, metadata_b, price,
        ))

    def delist_room(self, caller: str, asset_id: int) -> None:
        self.ledger.commit(compute_delisting(self.ledger, self.unit_symbol, caller, asset_id))

    def deposit(self, caller: str, amount: int) -> None:
        self.ledger.commit(compute_deposit(self.ledger, self.unit_symbol, caller, amount))

    def withdraw(self, caller: str, amount: int) -> None:
        self.ledger.commit(compute_withdrawal(self.ledger, self.unit_symbol, caller, amount))

    def create_booking(
        self,
        caller: str,
        asset_id: int,
        check_in: int,
        check_out: int,
        aux_a: int = 0,
        aux_b: int = 0,
        coupon_data: bytes = b"",
    ) -> int:
        pending, booking_id = compute_booking(
            self.ledger, self.unit_symbol, caller, asset_id, check_in, check_out,
            aux_a, aux_b, coupon_data,
        )
        self.ledger.commit(pending)
        return booking_id

    def cancel_booking(self, caller: str, booking_id: int) -> None:
        symbol = self._booking_symbol(booking_id)
        self.ledger.commit(compute_cancellation(self.ledger, symbol, caller))

    def settle(self, caller: str, booking_id: int) -> FeeSplit:
        """Settle a completed stay. Returns how its price was split."""
        symbol = self._booking_symbol(booking_id)
        pending, split = compute_settlement(self.ledger, symbol, caller)
        self.ledger.commit(pending)
        if self.ledger.verbose:
            print(f"[BOOKING] {symbol} settled: {split}")
        return split
