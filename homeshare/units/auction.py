"""
auction.py - Time-boxed auctions of registry-held house shares

=== AUCTION MODEL ===

An Auction is an AUCTION record unit ("AUCTION_<id>") created by the
AssetRegistry in the same transaction that locks the offered shares in the
registry's custody wallet.

Status is a function of the clock:

    now <  start_time                         -> CREATED
    start_time <= now < start_time + duration -> ACTIVE
    now >= start_time + duration              -> ENDED
    finalized                                 -> FINALIZED (terminal)

The auction_contract persists the derived status as time passes; every
operation derives it again, so a stale stored status is never trusted.

When a bid is placed:
    1. Bid moves bidder -> escrow wallet
    2. Previous highest bid moves escrow -> previous bidder (same transaction)

When the auction is finalized with a winner:
    1. Offered shares are unlocked and move custody -> winner
       (both parties' dividends are settled first)
    2. Fund fee moves escrow -> treasury wallet
    3. Platform fee plus proceeds move escrow -> custody wallet

Without a bid the shares are only unlocked.

=== PURE FUNCTIONS ===

    auction_status(state, now) -> AuctionStatus
    compute_auction_creation(view, engine_symbol, ...) -> (unit, engine_change, id)
    compute_place_bid(view, auction_symbol, bidder, amount) -> PendingTransaction
    compute_finalization(view, auction_symbol, caller) -> (PendingTransaction, FeeSplit)
"""
from __future__ import annotations
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitState, UnitStateChange,
    TransactionOrigin, OriginType,
    build_transaction, empty_pending_transaction, user_origin,
    auction_symbol, require_positive, record_unit,
    AUCTION_ESCROW_WALLET, AUCTION_HOUSE_UNIT, NATIVE_CURRENCY, REGISTRY_UNIT,
    UNIT_TYPE_AUCTION, UNIT_TYPE_AUCTION_HOUSE,
    ValidationError, InvalidStateError, Unauthorized, InsufficientFunds,
    BidTooLow, NotFound,
    _freeze_state,
)
from .fees import FeeRates, FeeSplit, compute_fee_split
from .house import transfer_shares, unlock_shares
from .treasury import record_receipt


class AuctionStatus(str, Enum):
    """Status of an auction."""
    CREATED = "created"       # Waiting for start_time
    ACTIVE = "active"         # Accepting bids
    ENDED = "ended"           # Bidding closed, awaiting finalization
    FINALIZED = "finalized"   # Shares and proceeds delivered


def create_auction_house_unit(
    owner: str,
    escrow_wallet: str = AUCTION_ESCROW_WALLET,
    registry_unit: str = REGISTRY_UNIT,
    symbol: str = AUCTION_HOUSE_UNIT,
    currency: str = NATIVE_CURRENCY,
) -> Unit:
    """Create the AuctionEngine record: owner, escrow wallet and auction counter."""
    return record_unit(symbol, "Auction House", UNIT_TYPE_AUCTION_HOUSE, {
        'owner': owner,
        'escrow_wallet': escrow_wallet,
        'registry_unit': registry_unit,
        'currency': currency,
        'auction_count': 0,
    })


def auction_status(state: UnitState, now: int) -> AuctionStatus:
    if state['status'] == AuctionStatus.FINALIZED.value:
        return AuctionStatus.FINALIZED
    if now < state['start_time']:
        return AuctionStatus.CREATED
    if now < state['start_time'] + state['duration']:
        return AuctionStatus.ACTIVE
    return AuctionStatus.ENDED


def compute_auction_creation(
    view: LedgerView,
    engine_symbol: str,
    asset_id: int,
    house_unit: str,
    shares_offered: int,
    min_bid: int,
    duration: int,
    start_delay: int,
    seller: str,
    operator: str,
) -> Tuple[Unit, UnitStateChange, int]:
    """
    Build a new auction unit and the engine counter update.

    The caller composes both into its own transaction together with the
    share lock, so the auction exists only if the shares are reserved.

    Returns:
        (auction unit, engine state change, auction id)
    """
    require_positive("shares_offered", shares_offered)
    require_positive("min_bid", min_bid)
    require_positive("duration", duration)
    if isinstance(start_delay, bool) or not isinstance(start_delay, int) or start_delay < 0:
        raise ValidationError(f"start_delay must be a non-negative integer, got {start_delay!r}")

    engine_state = view.get_unit_state(engine_symbol)
    auction_id = engine_state['auction_count']
    start_time = view.current_time + start_delay

    unit = Unit(
        symbol=auction_symbol(auction_id),
        name=f"Auction {auction_id} of {house_unit}",
        unit_type=UNIT_TYPE_AUCTION,
        min_balance=0,
        max_balance=0,
        _frozen_state=_freeze_state({
            'auction_id': auction_id,
            'engine': engine_symbol,
            'asset_id': asset_id,
            'house_unit': house_unit,
            'shares_offered': shares_offered,
            'min_bid': min_bid,
            'start_time': start_time,
            'duration': duration,
            'highest_bid': 0,
            'highest_bidder': None,
            'bid_count': 0,
            'status': AuctionStatus.CREATED.value,
            'seller': seller,
            'operator': operator,
            'escrow_wallet': engine_state['escrow_wallet'],
            'currency': engine_state['currency'],
            'settlement': None,
        }),
    )
    new_engine_state = {**engine_state, 'auction_count': auction_id + 1}
    return unit, UnitStateChange(engine_symbol, engine_state, new_engine_state), auction_id


def compute_place_bid(
    view: LedgerView,
    symbol: str,
    bidder: str,
    amount: int,
) -> PendingTransaction:
    """
    Escrow a bid and refund the bid it outbids.

    Raises:
        Unauthorized: If the bidder is the wallet selling the shares
        InvalidStateError: If the auction is not ACTIVE
        BidTooLow: If amount does not exceed max(min_bid, highest_bid)
        InsufficientFunds: If the bidder cannot cover the bid
    """
    require_positive("amount", amount)
    state = view.get_unit_state(symbol)
    if bidder == state['seller']:
        raise Unauthorized(f"{bidder} sells the shares of {symbol} and cannot bid")
    status = auction_status(state, view.current_time)
    if status != AuctionStatus.ACTIVE:
        raise InvalidStateError(f"{symbol} is {status.value}, not accepting bids")

    floor = max(state['min_bid'], state['highest_bid'])
    if amount <= floor:
        raise BidTooLow(f"bid {amount} must exceed {floor}")

    previous_bidder = state['highest_bidder']
    previous_bid = state['highest_bid']
    required = amount - previous_bid if previous_bidder == bidder else amount
    if view.get_balance(bidder, state['currency']) < required:
        raise InsufficientFunds(f"{bidder} cannot cover a bid of {amount}")

    moves = [Move(amount, state['currency'], bidder, state['escrow_wallet'], f"bid_{symbol}")]
    if previous_bidder is not None:
        moves.append(Move(
            previous_bid, state['currency'], state['escrow_wallet'], previous_bidder,
            f"refund_{symbol}",
        ))

    new_state = {
        **state,
        'highest_bid': amount,
        'highest_bidder': bidder,
        'bid_count': state['bid_count'] + 1,
        'status': AuctionStatus.ACTIVE.value,
    }
    return build_transaction(
        view, moves, [UnitStateChange(symbol, state, new_state)],
        origin=user_origin(bidder, symbol, "PLACE_BID"),
    )


def compute_finalization(
    view: LedgerView,
    symbol: str,
    caller: str,
) -> Tuple[PendingTransaction, FeeSplit]:
    """
    Deliver shares to the winner and split the proceeds.

    Raises:
        Unauthorized: If caller is neither the engine owner nor the auction operator
        InvalidStateError: If the auction has not ENDED (or is already FINALIZED)
    """
    state = view.get_unit_state(symbol)
    engine_state = view.get_unit_state(state['engine'])
    if caller not in (engine_state['owner'], state['operator']):
        raise Unauthorized(f"{caller} cannot finalize {symbol}")

    status = auction_status(state, view.current_time)
    if status == AuctionStatus.FINALIZED:
        raise InvalidStateError(f"{symbol} already finalized")
    if status != AuctionStatus.ENDED:
        raise InvalidStateError(f"{symbol} is {status.value}, bidding has not ended")

    house_unit = state['house_unit']
    seller = state['seller']
    house_state = view.get_unit_state(house_unit)
    new_house_state = unlock_shares(house_state, seller, state['shares_offered'])

    moves = []
    changes = []
    winner = state['highest_bidder']
    if winner is None:
        split = FeeSplit(amount=0, treasury_share=0, platform_share=0)
    else:
        positions = view.get_positions(house_unit)
        share_move, new_house_state = transfer_shares(
            new_house_state, house_unit, seller, winner, state['shares_offered'],
            positions.get(seller, 0), positions.get(winner, 0),
        )
        moves.append(share_move)

        registry_state = view.get_unit_state(engine_state['registry_unit'])
        split = compute_fee_split(
            state['highest_bid'], FeeRates.from_state(registry_state['fee_rates']),
            include_dividend=False,
        )
        escrow = state['escrow_wallet']
        if split.treasury_share:
            treasury_unit = registry_state['treasury_unit']
            treasury_state = view.get_unit_state(treasury_unit)
            moves.append(Move(
                split.treasury_share, state['currency'], escrow, treasury_state['wallet'],
                f"fund_fee_{symbol}",
            ))
            changes.append(UnitStateChange(
                treasury_unit, treasury_state,
                record_receipt(treasury_state, split.treasury_share, "auction"),
            ))
        seller_proceeds = split.platform_share + split.owner_share
        if seller_proceeds:
            moves.append(Move(
                seller_proceeds, state['currency'], escrow, seller, f"proceeds_{symbol}",
            ))

    changes.append(UnitStateChange(house_unit, house_state, new_house_state))
    new_state = {
        **state,
        'status': AuctionStatus.FINALIZED.value,
        'settlement': {
            'winner': winner,
            'amount': split.amount,
            'treasury_share': split.treasury_share,
            'platform_share': split.platform_share,
            'owner_share': split.owner_share,
            'finalized_at': view.current_time,
        },
    }
    changes.append(UnitStateChange(symbol, state, new_state))
    pending = build_transaction(
        view, moves, changes, origin=user_origin(caller, symbol, "FINALIZE"),
    )
    return pending, split


def auction_contract(view: LedgerView, symbol: str, timestamp: int) -> PendingTransaction:
    """
    SmartContract: persist the clock-derived status of an auction.

    Moves no value; FINALIZED is only ever set by compute_finalization.
    """
    state = view.get_unit_state(symbol)
    status = auction_status(state, timestamp)
    if status.value == state['status']:
        return empty_pending_transaction(view)
    new_state = {**state, 'status': status.value}
    return build_transaction(
        view, [], [UnitStateChange(symbol, state, new_state)],
        origin=TransactionOrigin(OriginType.LIFECYCLE, "auction_contract", symbol, status.value.upper()),
    )


class AuctionEngine:
    """Handle over the auction house record and the auctions it created."""

    def __init__(self, ledger, unit_symbol: str = AUCTION_HOUSE_UNIT):
        self.ledger = ledger
        self.unit_symbol = unit_symbol

    def _state(self) -> UnitState:
        return self.ledger.get_unit_state(self.unit_symbol)

    def _auction_symbol(self, auction_id: int) -> str:
        symbol = auction_symbol(auction_id)
        if not self.ledger.has_unit(symbol):
            raise NotFound(f"Auction {auction_id} does not exist")
        return symbol

    @property
    def owner(self) -> str:
        return self._state()['owner']

    @property
    def escrow_wallet(self) -> str:
        return self._state()['escrow_wallet']

    @property
    def auction_count(self) -> int:
        return self._state()['auction_count']

    def auction(self, auction_id: int) -> Dict[str, Any]:
        """Auction record with its status derived from the current time."""
        state = self.ledger.get_unit_state(self._auction_symbol(auction_id))
        state['status'] = auction_status(state, self.ledger.current_time).value
        return state

    def auction_status(self, auction_id: int) -> AuctionStatus:
        state = self.ledger.get_unit_state(self._auction_symbol(auction_id))
        return auction_status(state, self.ledger.current_time)

    def highest_bid(self, auction_id: int) -> Tuple[int, Optional[str]]:
        state = self.ledger.get_unit_state(self._auction_symbol(auction_id))
        return state['highest_bid'], state['highest_bidder']

    def place_bid(self, caller: str, auction_id: int, amount: int) -> None:
        symbol = self._auction_symbol(auction_id)
        self.ledger.commit(compute_place_bid(self.ledger, symbol, caller, amount))

    def finalize_auction(self, caller: str, auction_id: int) -> FeeSplit:
        """Finalize an ended auction. Returns how the winning bid was split."""
        symbol = self._auction_symbol(auction_id)
        pending, split = compute_finalization(self.ledger, symbol, caller)
        self.ledger.commit(pending)
        if self.ledger.verbose:
            print(f"[AUCTION] {symbol} finalized: {split}")
        return split
