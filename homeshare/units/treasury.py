"""
treasury.py - Shared fund receiving fee shares from auctions and settlements

The Treasury is a TREASURY record unit plus a cash wallet. Payments reach the
wallet either directly through receive() or as the fund-fee move of an
auction finalization or booking settlement; in both cases the receipt is
recorded by source in the same transaction, so

    balance(wallet) == total_received - total_forwarded
"""
from __future__ import annotations
from typing import Dict, Optional

from ..core import (
    LedgerView, Move, PendingTransaction, Unit, UnitState, UnitStateChange,
    build_transaction, user_origin, record_unit, require_positive, checked,
    NATIVE_CURRENCY, TREASURY_UNIT, TREASURY_WALLET, UNIT_TYPE_TREASURY,
    InsufficientFunds, Unauthorized, WalletNotRegistered,
)


def create_treasury_unit(
    controller: str,
    wallet: str = TREASURY_WALLET,
    symbol: str = TREASURY_UNIT,
    currency: str = NATIVE_CURRENCY,
) -> Unit:
    """Create the Treasury record; controller is the only wallet allowed to forward."""
    return record_unit(symbol, "Treasury", UNIT_TYPE_TREASURY, {
        'controller': controller,
        'wallet': wallet,
        'currency': currency,
        'total_received': 0,
        'total_forwarded': 0,
        'received_by_source': {},
    })


def record_receipt(state: UnitState, amount: int, source: str) -> UnitState:
    """Account for amount paid into the treasury wallet."""
    by_source = dict(state['received_by_source'])
    by_source[source] = checked(by_source.get(source, 0) + amount, "received_by_source")
    return {
        **state,
        'total_received': checked(state['total_received'] + amount, "total_received"),
        'received_by_source': by_source,
    }


def compute_receive(
    view: LedgerView,
    treasury_symbol: str,
    payer: str,
    amount: int,
    source: Optional[str] = None,
) -> PendingTransaction:
    """Pay amount from payer into the treasury, recorded under source (default: payer)."""
    require_positive("amount", amount)
    state = view.get_unit_state(treasury_symbol)
    if view.get_balance(payer, state['currency']) < amount:
        raise InsufficientFunds(f"{payer} cannot pay {amount} into the treasury")
    move = Move(amount, state['currency'], payer, state['wallet'], f"receive_{treasury_symbol}")
    new_state = record_receipt(state, amount, source or payer)
    return build_transaction(
        view, [move], [UnitStateChange(treasury_symbol, state, new_state)],
        origin=user_origin(payer, treasury_symbol, "RECEIVE"),
    )


def compute_forward(
    view: LedgerView,
    treasury_symbol: str,
    caller: str,
    amount: int,
    destination: str,
) -> PendingTransaction:
    """
    Pay amount out of the treasury. Controller only.

    Raises:
        Unauthorized: If caller is not the controller
        InsufficientFunds: If the treasury holds less than amount
    """
    require_positive("amount", amount)
    state = view.get_unit_state(treasury_symbol)
    if caller != state['controller']:
        raise Unauthorized(f"{caller} is not the treasury controller")
    if not view.is_registered(destination):
        raise WalletNotRegistered(f"Wallet {destination} not registered")
    balance = view.get_balance(state['wallet'], state['currency'])
    if balance < amount:
        raise InsufficientFunds(f"treasury holds {balance}, cannot forward {amount}")
    move = Move(amount, state['currency'], state['wallet'], destination, f"forward_{treasury_symbol}")
    new_state = {**state, 'total_forwarded': state['total_forwarded'] + amount}
    return build_transaction(
        view, [move], [UnitStateChange(treasury_symbol, state, new_state)],
        origin=user_origin(caller, treasury_symbol, "FORWARD"),
    )


class Treasury:
    """Handle over the Treasury record unit and its wallet."""

    def __init__(self, ledger, unit_symbol: str = TREASURY_UNIT):
        self.ledger = ledger
        self.unit_symbol = unit_symbol

    def _state(self) -> UnitState:
        return self.ledger.get_unit_state(self.unit_symbol)

    @property
    def controller(self) -> str:
        return self._state()['controller']

    @property
    def wallet(self) -> str:
        return self._state()['wallet']

    def balance(self) -> int:
        state = self._state()
        return self.ledger.get_balance(state['wallet'], state['currency'])

    def total_received(self) -> int:
        return self._state()['total_received']

    def total_forwarded(self) -> int:
        return self._state()['total_forwarded']

    def received_by_source(self) -> Dict[str, int]:
        return self._state()['received_by_source']

    def receive(self, caller: str, amount: int, source: Optional[str] = None) -> None:
        self.ledger.commit(compute_receive(self.ledger, self.unit_symbol, caller, amount, source))

    def forward(self, caller: str, amount: int, destination: str) -> None:
        self.ledger.commit(compute_forward(self.ledger, self.unit_symbol, caller, amount, destination))
