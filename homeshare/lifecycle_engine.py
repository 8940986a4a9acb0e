"""
lifecycle_engine.py - Lifecycle Engine

Polls smart contracts as the clock advances and applies the transactions
they return.

Execution order each step():
1. Advance ledger time
2. Run smart contract polling over all units, in symbol order
3. Repeat until no contract returns anything (cascading effects)

The transaction log is the audit trail - no separate event status tracking needed.
"""

from __future__ import annotations
from typing import Dict, Iterable, List, Optional

from .core import (
    PendingTransaction, Transaction,
    ExecuteResult, LedgerError,
    SmartContract, UNIT_TYPE_AUCTION,
)
from .ledger import Ledger
from .units.auction import auction_contract


def default_contracts() -> Dict[str, SmartContract]:
    """Contracts for every time-driven unit type of the platform."""
    return {UNIT_TYPE_AUCTION: auction_contract}


class LifecycleEngine:
    """
    Smart contract polling driven by the ledger clock.

    Features:
    - Contracts registered per unit type
    - Cascading event support (repeat until stable)
    - Full audit trail via transaction log
    """

    def __init__(
        self,
        ledger: Ledger,
        contracts: Optional[Dict[str, SmartContract]] = None,
    ):
        """
        Args:
            ledger: The ledger to operate on
            contracts: unit_type -> contract (default: default_contracts())
        """
        self.ledger = ledger
        self.contracts: Dict[str, SmartContract] = (
            contracts if contracts is not None else default_contracts()
        )

        self.max_passes = 10  # Safety limit for cascading events
        self.verbose = ledger.verbose

    def register(self, unit_type: str, contract: SmartContract) -> None:
        """Register a smart contract (callable or object with check_lifecycle) for a unit type."""
        self.contracts[unit_type] = contract

    def step(self, timestamp: Optional[int] = None) -> List[Transaction]:
        """
        Advance time (if a timestamp is given) and run contracts until stable.

        Returns:
            List of executed transactions
        """
        if timestamp is not None and timestamp != self.ledger.current_time:
            self.ledger.advance_time(timestamp)
        now = self.ledger.current_time
        executed: List[Transaction] = []

        for _ in range(self.max_passes):
            pass_executed = self._process_smart_contracts(now)
            executed.extend(pass_executed)
            if not pass_executed:
                break

        return executed

    def _process_smart_contracts(self, timestamp: int) -> List[Transaction]:
        executed: List[Transaction] = []

        for symbol in self.ledger.list_units():
            unit = self.ledger.get_unit(symbol)
            contract = self.contracts.get(unit.unit_type)

            if not contract:
                continue

            if hasattr(contract, 'check_lifecycle'):
                pending = contract.check_lifecycle(self.ledger, symbol, timestamp)
            else:
                pending = contract(self.ledger, symbol, timestamp)

            if not isinstance(pending, PendingTransaction):
                raise LedgerError(
                    f"Contract for {symbol} must return PendingTransaction, got {type(pending)}"
                )

            if pending.is_empty():
                continue

            exec_result = self.ledger.execute(pending)

            if exec_result == ExecuteResult.REJECTED:
                raise LedgerError(f"Lifecycle event failed for {symbol}: contract execution rejected")

            if exec_result == ExecuteResult.APPLIED:
                if self.verbose:
                    print(f"[LIFECYCLE] {symbol} @ {timestamp}: {pending.origin.event_type}")
                executed.append(self.ledger.transaction_log[-1])

        return executed

    def run(self, timestamps: Iterable[int]) -> List[Transaction]:
        """Step through a sequence of timestamps and return all executed transactions."""
        all_transactions: List[Transaction] = []
        for timestamp in timestamps:
            all_transactions.extend(self.step(timestamp))
        return all_transactions
