"""
house.py - Fractional House Shares with Pull-Based Dividends

=== SHARE MODEL ===

Each asset is one HOUSE_SHARE unit ("HOUSE_<id>"). Wallet balances of the
unit are the fractional ownership; the whole supply is minted once, from the
system wallet, when the asset is created.

=== DIVIDEND MODEL ===

Revenue credited to an asset is moved into its pool wallet and recorded in a
cumulative index instead of being paid to every holder:

    cumulative_per_share += (amount * PRECISION + remainder) // total_shares
    remainder             = (amount * PRECISION + remainder) %  total_shares

A holder is owed

    accrued[h] + balance(h) * (cumulative_per_share - last_claimed[h]) // PRECISION

Crediting touches no holder. Before any share transfer both parties are
settled: what they are owed moves into accrued and last_claimed is reset, so
shares never carry dividends earned by their previous owner.

State format:
    asset_id, name, symbol, description, total_shares, management, pool_wallet
    minted: bool
    cumulative_per_share, dividend_remainder: int
    last_claimed, accrued, locked: {wallet: int}
    transfer_count, total_dividends, total_withdrawn: int

=== PURE FUNCTIONS ===

    mint_shares, transfer_shares, credit_dividend, settle_holder,
    lock_shares, unlock_shares: state in, new state out (plus moves)

Compositions such as auction finalization chain them into a single
UnitStateChange for the unit.
"""
from __future__ import annotations
from typing import Dict, List, Optional, Tuple

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitState, UnitStateChange,
    build_transaction, empty_pending_transaction, user_origin,
    house_symbol, pool_wallet, require_positive, checked,
    DIVIDEND_PRECISION, SYSTEM_WALLET, UNIT_TYPE_HOUSE_SHARE,
    ValidationError, InvalidStateError, InsufficientShares, NotFound,
    _freeze_state,
)


def create_house_unit(
    asset_id: int,
    name: str,
    symbol: str,
    description: str,
    total_shares: int,
    management: str,
) -> Unit:
    """
    Create the share unit of a new asset, not yet minted.

    Args:
        asset_id: Registry index of the asset
        name: Human-readable asset name
        symbol: Display ticker of the shares (the unit symbol is HOUSE_<id>)
        description: Free-form description
        total_shares: Number of shares to mint
        management: Wallet of the registry that manages the asset
    """
    if not name or not name.strip():
        raise ValidationError("name cannot be empty")
    if not symbol or not symbol.strip():
        raise ValidationError("symbol cannot be empty")
    require_positive("total_shares", total_shares)

    state = {
        'asset_id': asset_id,
        'name': name,
        'symbol': symbol,
        'description': description,
        'total_shares': total_shares,
        'management': management,
        'pool_wallet': pool_wallet(asset_id),
        'minted': False,
        'cumulative_per_share': 0,
        'dividend_remainder': 0,
        'last_claimed': {},
        'accrued': {},
        'locked': {},
        'transfer_count': 0,
        'total_dividends': 0,
        'total_withdrawn': 0,
    }
    return Unit(
        symbol=house_symbol(asset_id),
        name=name,
        unit_type=UNIT_TYPE_HOUSE_SHARE,
        min_balance=0,
        max_balance=None,
        _frozen_state=_freeze_state(state),
    )


# =============================================================================
# PURE FUNCTIONS - state in, state out
# =============================================================================

def pending_dividends(state: UnitState, holder: str, balance: int) -> int:
    """Dividends earned by balance since the holder's last checkpoint."""
    growth = state['cumulative_per_share'] - state['last_claimed'].get(holder, 0)
    return checked(balance * growth, "pending dividends") // DIVIDEND_PRECISION


def owed_dividends(state: UnitState, holder: str, balance: int) -> int:
    """Everything the holder could withdraw right now."""
    return checked(
        state['accrued'].get(holder, 0) + pending_dividends(state, holder, balance),
        "claimable dividends",
    )


def settle_holder(state: UnitState, holder: str, balance: int) -> UnitState:
    """Move the holder's pending dividends into accrued and checkpoint the index."""
    owed = owed_dividends(state, holder, balance)
    accrued = dict(state['accrued'])
    if owed:
        accrued[holder] = owed
    last_claimed = dict(state['last_claimed'])
    last_claimed[holder] = state['cumulative_per_share']
    return {**state, 'accrued': accrued, 'last_claimed': last_claimed}


def mint_shares(state: UnitState, unit_symbol: str, holder: str) -> Tuple[List[Move], UnitState]:
    """
    Issue the full supply to holder. Allowed exactly once.

    Raises:
        InvalidStateError: If the shares were already minted
    """
    if state['minted']:
        raise InvalidStateError(f"{unit_symbol} already minted")
    move = Move(
        quantity=state['total_shares'],
        unit_symbol=unit_symbol,
        source=SYSTEM_WALLET,
        dest=holder,
        contract_id=f"mint_{unit_symbol}",
    )
    new_state = settle_holder({**state, 'minted': True}, holder, 0)
    return [move], new_state


def transfer_shares(
    state: UnitState,
    unit_symbol: str,
    sender: str,
    recipient: str,
    amount: int,
    sender_balance: int,
    recipient_balance: int,
) -> Tuple[Move, UnitState]:
    """
    Move unlocked shares between holders, settling both parties first.

    Raises:
        ValidationError: If amount is not positive or sender == recipient
        InsufficientShares: If sender's unlocked balance is below amount
    """
    require_positive("amount", amount)
    if sender == recipient:
        raise ValidationError("cannot transfer shares to the same wallet")
    available = sender_balance - state['locked'].get(sender, 0)
    if available < amount:
        raise InsufficientShares(
            f"{sender} has {available} unlocked {unit_symbol}, needs {amount}"
        )
    new_state = settle_holder(state, sender, sender_balance)
    new_state = settle_holder(new_state, recipient, recipient_balance)
    new_state['transfer_count'] = state['transfer_count'] + 1
    move = Move(
        quantity=amount,
        unit_symbol=unit_symbol,
        source=sender,
        dest=recipient,
        contract_id=f"transfer_{unit_symbol}",
    )
    return move, new_state


def credit_dividend(state: UnitState, amount: int) -> UnitState:
    """
    Raise the dividend index by amount spread over total_shares.

    The truncated part of the division is carried in dividend_remainder and
    added to the next credit.

    Raises:
        ValidationError: If amount is not positive
        InvalidStateError: If the asset has no shares
        ArithmeticOverflow: If any intermediate leaves the uint256 range
    """
    require_positive("amount", amount)
    total_shares = state['total_shares']
    if total_shares == 0:
        raise InvalidStateError("cannot credit dividends to an asset with no shares")
    scaled = checked(
        checked(amount * DIVIDEND_PRECISION, "scaled dividend") + state['dividend_remainder'],
        "scaled dividend",
    )
    return {
        **state,
        'cumulative_per_share': checked(
            state['cumulative_per_share'] + scaled // total_shares, "cumulative_per_share"
        ),
        'dividend_remainder': scaled % total_shares,
        'total_dividends': checked(state['total_dividends'] + amount, "total_dividends"),
    }


def lock_shares(state: UnitState, holder: str, amount: int, balance: int) -> UnitState:
    """
    Reserve shares of holder so they cannot be transferred until unlocked.

    Raises:
        InsufficientShares: If fewer than amount shares are unlocked
    """
    require_positive("amount", amount)
    locked = dict(state['locked'])
    available = balance - locked.get(holder, 0)
    if available < amount:
        raise InsufficientShares(
            f"{holder} has {available} unlocked shares, needs {amount}"
        )
    locked[holder] = locked.get(holder, 0) + amount
    return {**state, 'locked': locked}


def unlock_shares(state: UnitState, holder: str, amount: int) -> UnitState:
    locked = dict(state['locked'])
    remaining = locked.get(holder, 0) - amount
    if remaining < 0:
        raise InvalidStateError(f"{holder} has only {locked.get(holder, 0)} locked shares")
    if remaining:
        locked[holder] = remaining
    else:
        locked.pop(holder, None)
    return {**state, 'locked': locked}


# =============================================================================
# TRANSACTION BUILDERS
# =============================================================================

def claimable_dividends(view: LedgerView, unit_symbol: str, holder: str) -> int:
    """Amount holder can withdraw now."""
    state = view.get_unit_state(unit_symbol)
    balance = view.get_positions(unit_symbol).get(holder, 0)
    return owed_dividends(state, holder, balance)


def compute_share_transfer(
    view: LedgerView,
    unit_symbol: str,
    sender: str,
    recipient: str,
    amount: int,
) -> PendingTransaction:
    """Transfer shares with dividend settlement of both parties."""
    state = view.get_unit_state(unit_symbol)
    positions = view.get_positions(unit_symbol)
    move, new_state = transfer_shares(
        state, unit_symbol, sender, recipient, amount,
        positions.get(sender, 0), positions.get(recipient, 0),
    )
    return build_transaction(
        view,
        [move],
        [UnitStateChange(unit_symbol, state, new_state)],
        origin=user_origin(sender, unit_symbol, "TRANSFER"),
    )


def compute_dividend_credit(
    view: LedgerView,
    unit_symbol: str,
    payer: str,
    amount: int,
    currency: str = "ETH",
) -> PendingTransaction:
    """Move amount from payer into the asset's pool and raise the index."""
    state = view.get_unit_state(unit_symbol)
    new_state = credit_dividend(state, amount)
    move = Move(
        quantity=amount,
        unit_symbol=currency,
        source=payer,
        dest=state['pool_wallet'],
        contract_id=f"dividend_{unit_symbol}",
    )
    return build_transaction(
        view,
        [move],
        [UnitStateChange(unit_symbol, state, new_state)],
        origin=user_origin(payer, unit_symbol, "CREDIT_DIVIDEND"),
    )


def compute_dividend_withdrawal(
    view: LedgerView,
    unit_symbol: str,
    holder: str,
    recipient: Optional[str] = None,
    currency: str = "ETH",
) -> PendingTransaction:
    """
    Pay the holder everything it is owed from the pool.

    Returns an empty transaction when nothing is owed.
    """
    state = view.get_unit_state(unit_symbol)
    balance = view.get_positions(unit_symbol).get(holder, 0)
    owed = owed_dividends(state, holder, balance)
    if owed == 0:
        return empty_pending_transaction(view)

    accrued = dict(state['accrued'])
    accrued.pop(holder, None)
    last_claimed = dict(state['last_claimed'])
    last_claimed[holder] = state['cumulative_per_share']
    new_state = {
        **state,
        'accrued': accrued,
        'last_claimed': last_claimed,
        'total_withdrawn': state['total_withdrawn'] + owed,
    }
    move = Move(
        quantity=owed,
        unit_symbol=currency,
        source=state['pool_wallet'],
        dest=recipient or holder,
        contract_id=f"withdraw_{unit_symbol}",
    )
    return build_transaction(
        view,
        [move],
        [UnitStateChange(unit_symbol, state, new_state)],
        origin=user_origin(holder, unit_symbol, "WITHDRAW_DIVIDENDS"),
    )


# =============================================================================
# SHARE LEDGER HANDLE
# =============================================================================

class ShareLedger:
    """
    Per-asset view and operations over the asset's share unit.

    Handles are cheap: they hold only the ledger and the asset id, and every
    call reads the current state from the ledger.
    """

    def __init__(self, ledger, asset_id: int):
        self.ledger = ledger
        self.asset_id = asset_id
        self.unit_symbol = house_symbol(asset_id)
        if not ledger.has_unit(self.unit_symbol):
            raise NotFound(f"Asset {asset_id} does not exist")

    def _state(self) -> UnitState:
        return self.ledger.get_unit_state(self.unit_symbol)

    @property
    def name(self) -> str:
        return self._state()['name']

    @property
    def symbol(self) -> str:
        return self._state()['symbol']

    @property
    def description(self) -> str:
        return self._state()['description']

    @property
    def management(self) -> str:
        return self._state()['management']

    @property
    def pool_wallet(self) -> str:
        return self._state()['pool_wallet']

    def total_supply(self) -> int:
        return self._state()['total_shares']

    def cumulative_per_share(self) -> int:
        return self._state()['cumulative_per_share']

    def balance_of(self, holder: str) -> int:
        return self.ledger.get_positions(self.unit_symbol).get(holder, 0)

    def locked_shares(self, holder: str) -> int:
        return self._state()['locked'].get(holder, 0)

    def available_shares(self, holder: str) -> int:
        return self.balance_of(holder) - self.locked_shares(holder)

    def holders(self) -> Dict[str, int]:
        """Non-zero share balances, excluding the issuing system wallet."""
        return {
            wallet: qty
            for wallet, qty in sorted(self.ledger.get_positions(self.unit_symbol).items())
            if wallet != SYSTEM_WALLET
        }

    def claimable_dividends(self, holder: str) -> int:
        return claimable_dividends(self.ledger, self.unit_symbol, holder)

    def transfer(self, caller: str, to: str, amount: int) -> None:
        """Transfer caller's unlocked shares to another wallet."""
        self.ledger.commit(compute_share_transfer(self.ledger, self.unit_symbol, caller, to, amount))

    def credit_dividend(self, caller: str, amount: int) -> None:
        """Pay amount from caller's wallet into the dividend pool."""
        self.ledger.commit(compute_dividend_credit(self.ledger, self.unit_symbol, caller, amount))

    def withdraw_dividends(self, caller: str) -> int:
        """Pay caller everything it is owed. Returns the amount paid (0 if none)."""
        owed = self.claimable_dividends(caller)
        self.ledger.commit(compute_dividend_withdrawal(self.ledger, self.unit_symbol, caller))
        if owed and self.ledger.verbose:
            print(f"[DIVIDENDS] {caller} withdrew {owed} wei from {self.unit_symbol}")
        return owed

    def __repr__(self):
        return f"ShareLedger({self.unit_symbol})"
