"""
ledger.py - Stateful Double-Entry Ledger for the housing platform

The Ledger class is the single store of the platform: wallet balances, unit
definitions with their state, and the transaction log. It is the only module
that mutates state, ensuring controlled and auditable changes.

Key responsibilities:
    - Implements LedgerView protocol for safe read-only access by pure functions
    - Executes transactions atomically (everything applies or nothing does)
    - Rejects stale transactions whose recorded old_state no longer matches
    - Reads time from an injected Clock
    - Always validates and always logs; clone() and replay() rebuild state
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import replace
from typing import Dict, List, Set, Optional, Tuple, Any
import copy

from .clock import Clock, ManualClock
from .core import (
    # Types
    Move, Transaction, Unit,
    PendingTransaction,
    ExecuteResult,
    Positions, UnitState, BalanceMap,
    # Constants
    SYSTEM_WALLET, UINT256_MAX,
    # Exceptions
    LedgerError, TransactionRejected,
    UnitNotRegistered, WalletNotRegistered,
    # Helper functions
    _freeze_state,
)


class Ledger:
    """
    Double-entry ledger with full validation and audit trail.

    Implements the LedgerView protocol, allowing the ledger to be passed to pure
    functions that access only read-only methods.

    Design Principles:
        - Always validates: registration, balance constraints, timestamps and
          stale unit state are checked before anything is mutated.
        - Always logs: every applied transaction is recorded, enabling replay().

    Thread Safety:
        Not thread-safe. Operations are strictly serialized.

    Example:
        ledger = Ledger("main", clock=ManualClock(0))
        ledger.register_unit(cash())
        ledger.register_wallet("alice")
        ledger.register_wallet("bob")

        tx = build_transaction(ledger, [
            Move(10**18, "ETH", "alice", "bob", "payment_001")
        ])
        result = ledger.execute(tx)
    """

    def __init__(
        self,
        name: str,
        clock: Optional[Clock] = None,
        verbose: bool = True,
        test_mode: bool = False
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            clock: Time source (default: ManualClock starting at 0)
            verbose: Print registrations and transaction records (default: True)
            test_mode: Enable test mode to allow set_balance() calls (default: False)
        """
        self.name = name
        self.clock = clock if clock is not None else ManualClock(0)
        self.balances: Dict[str, Dict[str, int]] = {}
        self.units: Dict[str, Unit] = {}
        # Definitions as first registered, used by replay()
        self._unit_definitions: Dict[str, Unit] = {}
        self.registered_wallets: Set[str] = set()
        self.seen_intent_ids: Set[str] = set()
        self.transaction_log: List[Transaction] = []
        self.verbose = verbose
        self._test_mode = test_mode
        self._next_sequence: int = 0
        # Inverted index unit -> {wallet -> quantity} for O(1) position lookups
        self._positions_by_unit: Dict[str, Dict[str, int]] = defaultdict(dict)

        # The system wallet issues every unit into circulation
        self.registered_wallets.add(SYSTEM_WALLET)
        self.balances[SYSTEM_WALLET] = defaultdict(int)

    # ========================================================================
    # LedgerView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> int:
        """Current time of the injected clock, in seconds."""
        return self.clock.now()

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """
        Get the balance of a specific unit in a wallet.

        Raises:
            WalletNotRegistered: If wallet is not registered
            UnitNotRegistered: If unit is not registered
        """
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.balances[wallet_id].get(unit_symbol, 0)

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """
        Get a deep copy of a unit's internal state.

        The returned dictionary can be mutated freely without affecting the ledger.

        Raises:
            UnitNotRegistered: If unit is not registered
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return self.units[unit_symbol].state

    def get_positions(self, unit_symbol: str) -> Positions:
        """Get all non-zero positions for a unit across all wallets."""
        return dict(self._positions_by_unit.get(unit_symbol, {}))

    def list_wallets(self) -> Set[str]:
        return self.registered_wallets.copy()

    def list_units(self) -> List[str]:
        return sorted(self.units.keys())

    def get_unit(self, symbol: str) -> Unit:
        """Return the Unit object for a given symbol."""
        if symbol not in self.units:
            raise UnitNotRegistered(f"Unit {symbol} not registered")
        return self.units[symbol]

    def has_unit(self, symbol: str) -> bool:
        return symbol in self.units

    def get_wallet_balances(self, wallet_id: str) -> BalanceMap:
        """Get all non-zero balances for a wallet."""
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        return {u: q for u, q in self.balances[wallet_id].items() if q != 0}

    def total_supply(self, unit_symbol: str) -> int:
        """
        Sum of a unit's balances across all wallets, system wallet included.

        Units only enter circulation through moves out of the system wallet,
        so this is zero for every unit whose balances were never set directly.
        """
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(self.balances[w].get(unit_symbol, 0) for w in sorted(self.registered_wallets))

    def circulating_supply(self, unit_symbol: str) -> int:
        """Sum of a unit's balances outside the system wallet."""
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        return sum(
            qty for wallet, qty in self.get_positions(unit_symbol).items()
            if wallet != SYSTEM_WALLET
        )

    def verify_double_entry(
        self,
        expected_supplies: Optional[Dict[str, int]] = None,
    ) -> Dict[str, Any]:
        """
        Verify that conservation laws hold for all units.

        Every move debits one wallet and credits another by the same amount,
        so the total supply of each unit is constant.

        Args:
            expected_supplies: Optional dict mapping unit symbols to expected totals.

        Returns:
            Dict with keys:
            - 'valid': bool - True if all conservation laws hold
            - 'supplies': Dict[str, int] - Current total supply for each unit
            - 'discrepancies': List[Dict] - unit, expected, actual, difference

        Example:
            result = ledger.verify_double_entry()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        supplies = {}
        discrepancies = []

        for unit_symbol in self.units:
            current_supply = self.total_supply(unit_symbol)
            supplies[unit_symbol] = current_supply

            if expected_supplies and unit_symbol in expected_supplies:
                expected = expected_supplies[unit_symbol]
                if current_supply != expected:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': current_supply,
                        'difference': abs(current_supply - expected),
                    })

        if expected_supplies:
            for unit_symbol, expected in expected_supplies.items():
                if unit_symbol not in supplies:
                    discrepancies.append({
                        'unit': unit_symbol,
                        'expected': expected,
                        'actual': 0,
                        'difference': abs(expected),
                        'error': 'unit not registered',
                    })

        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    def is_registered(self, wallet_id: str) -> bool:
        """Check if a wallet is registered."""
        return wallet_id in self.registered_wallets

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: int) -> None:
        """
        Advance the clock to a new time.

        Raises:
            ValueError: If new_time is before the current time, or the clock
                cannot be driven (SystemClock)
        """
        self.clock.advance_to(new_time)

    # ========================================================================
    # REGISTRATION (Mutating)
    # ========================================================================

    def register_wallet(self, wallet_id: str) -> str:
        """
        Register a new wallet in the ledger.

        Raises:
            ValueError: If wallet is already registered or the id is blank
        """
        if not wallet_id or not wallet_id.strip():
            raise ValueError("Wallet id cannot be empty")
        if wallet_id in self.registered_wallets:
            raise ValueError(f"Wallet {wallet_id} already registered")
        self.registered_wallets.add(wallet_id)
        self.balances[wallet_id] = defaultdict(int)
        return wallet_id

    def register_unit(self, unit: Unit) -> None:
        """
        Register a new unit in the ledger.

        Raises:
            ValueError: If unit symbol is already registered
        """
        if unit.symbol in self.units:
            raise ValueError(f"Unit {unit.symbol} already registered")
        self.units[unit.symbol] = unit
        self._unit_definitions[unit.symbol] = unit
        if self.verbose:
            print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")

    def set_balance(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        """
        Set a wallet's balance for a unit directly.

        WARNING: This bypasses double-entry accounting and is only available
        in test mode. Use build_transaction() and execute() otherwise.

        Raises:
            LedgerError: If called when test_mode is False
        """
        if not self._test_mode:
            raise LedgerError(
                "set_balance() is disabled in production mode. "
                "Use build_transaction() and execute() to modify balances. "
                "Set test_mode=True when creating Ledger for testing."
            )
        if wallet_id not in self.registered_wallets:
            raise WalletNotRegistered(f"Wallet {wallet_id} not registered")
        if unit_symbol not in self.units:
            raise UnitNotRegistered(f"Unit {unit_symbol} not registered")
        self.balances[wallet_id][unit_symbol] = int(quantity)
        self._update_position_index(wallet_id, unit_symbol, int(quantity))

    # ========================================================================
    # TRANSACTION EXECUTION (Mutating)
    # ========================================================================

    def _generate_exec_id(self, sequence: int) -> str:
        """
        Generate a unique execution ID.

        Format: exec:{ledger_name}:{sequence:012d}:{timestamp}
        """
        return f"exec:{self.name}:{sequence:012d}:{self.current_time}"

    def execute(self, pending: PendingTransaction) -> ExecuteResult:
        """
        Execute a PendingTransaction atomically.

        Execution is idempotent: a pending transaction with the same intent_id
        will not be applied twice.

        All transactions are fully validated against:
        - Unit and wallet registration (including those created by the transaction)
        - Balance constraints (min/max balance limits, uint256 range)
        - Stale unit state (old_state must match the current state)
        - Timestamp requirements

        Returns:
            ExecuteResult.APPLIED if successful
            ExecuteResult.ALREADY_APPLIED if transaction was already executed
            ExecuteResult.REJECTED if validation failed
        """
        result, _ = self._execute(pending)
        return result

    def commit(self, pending: PendingTransaction) -> Optional[Transaction]:
        """
        Execute a PendingTransaction built by an operation and return its record.

        Returns None for an empty transaction (nothing to apply).

        Raises:
            TransactionRejected: If validation failed
            LedgerError: If the same intent was already applied
        """
        if pending.is_empty():
            return None
        result, reason = self._execute(pending)
        if result == ExecuteResult.REJECTED:
            raise TransactionRejected(f"{pending.origin}: {reason}")
        if result == ExecuteResult.ALREADY_APPLIED:
            raise LedgerError(f"Intent {pending.intent_id} already applied")
        return self.transaction_log[-1]

    def _execute(self, pending: PendingTransaction) -> Tuple[ExecuteResult, str]:
        if pending.is_empty():
            return ExecuteResult.APPLIED, ""

        if pending.intent_id in self.seen_intent_ids:
            if self.verbose:
                print(f"⚠️  ALREADY_APPLIED: intent_id={pending.intent_id}")
            return ExecuteResult.ALREADY_APPLIED, "already applied"

        # Units and wallets created by the transaction are registered for
        # validation and rolled back if the transaction is rejected.
        valid, reason = self._validate_creations(pending)
        if not valid:
            return self._reject(reason)

        newly_registered_units: List[str] = []
        newly_registered_wallets: List[str] = []
        for unit in pending.units_to_create:
            self.units[unit.symbol] = unit
            newly_registered_units.append(unit.symbol)
        for wallet in pending.wallets_to_create:
            self.registered_wallets.add(wallet)
            self.balances[wallet] = defaultdict(int)
            newly_registered_wallets.append(wallet)

        valid, reason = self._validate_pending(pending)
        if not valid:
            for sym in newly_registered_units:
                del self.units[sym]
            for wallet in newly_registered_wallets:
                self.registered_wallets.discard(wallet)
                del self.balances[wallet]
            return self._reject(reason)

        if self.verbose:
            for unit in pending.units_to_create:
                print(f"📝 Registered: {unit.symbol} ({unit.name}) [{unit.unit_type}]")

        sequence = self._next_sequence
        self._next_sequence += 1

        tx = Transaction(
            moves=pending.moves,
            state_changes=pending.state_changes,
            origin=pending.origin,
            timestamp=pending.timestamp,
            intent_id=pending.intent_id,
            exec_id=self._generate_exec_id(sequence),
            ledger_name=self.name,
            execution_time=self.current_time,
            sequence_number=sequence,
            units_to_create=pending.units_to_create,
            wallets_to_create=pending.wallets_to_create,
        )

        # Effects first, then value moves
        for sc in tx.state_changes:
            old_unit = self.units[sc.unit]
            new_state = copy.deepcopy(sc.new_state if isinstance(sc.new_state, dict) else {})
            self.units[sc.unit] = replace(old_unit, _frozen_state=_freeze_state(new_state))

        self._execute_moves(tx.moves)

        self.transaction_log.append(tx)
        self.seen_intent_ids.add(pending.intent_id)

        if self.verbose:
            self._print_tx_result(tx, "APPLIED", "✓")
        return ExecuteResult.APPLIED, ""

    def _reject(self, reason: str) -> Tuple[ExecuteResult, str]:
        if self.verbose:
            print(f"✗ REJECTED: {reason}")
        return ExecuteResult.REJECTED, reason

    def _print_tx_result(self, tx: Transaction, result: str, icon: str) -> None:
        """Print the transaction box with a result line in place of its closing line."""
        lines = repr(tx).split('\n')
        w = 100
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines[-1] = f"├{bar}┤"
        lines.append(f"│{pad(' ' + icon + ' ' + result)}│")
        lines.append(f"└{bar}┘")
        print("\n".join(lines))

    def _validate_creations(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """Units and wallets created by a transaction must not exist yet."""
        seen_units: Set[str] = set()
        for unit in pending.units_to_create:
            if unit.symbol in self.units or unit.symbol in seen_units:
                return False, f"unit already registered: {unit.symbol}"
            seen_units.add(unit.symbol)
        seen_wallets: Set[str] = set()
        for wallet in pending.wallets_to_create:
            if not wallet or not wallet.strip():
                return False, "wallet id cannot be empty"
            if wallet in self.registered_wallets or wallet in seen_wallets:
                return False, f"wallet already registered: {wallet}"
            seen_wallets.add(wallet)
        return True, ""

    def _validate_pending(self, pending: PendingTransaction) -> Tuple[bool, str]:
        """
        Validate a pending transaction against all constraints.

        Checks performed:
        1. Timestamp validation (transaction must not be from the future)
        2. Unit and wallet registration
        3. Stale state: each old_state must equal the unit's current state
        4. Balance constraints (min/max balance limits, uint256 range)

        Returns:
            Tuple of (success, reason); reason is empty on success
        """
        if pending.timestamp > self.current_time:
            return False, "future timestamp"

        for move in pending.moves:
            if move.unit_symbol not in self.units:
                return False, f"unit not registered: {move.unit_symbol}"
            if not self.is_registered(move.source):
                return False, f"wallet not registered: {move.source}"
            if not self.is_registered(move.dest):
                return False, f"wallet not registered: {move.dest}"

        changed_units: Set[str] = set()
        for sc in pending.state_changes:
            if sc.unit not in self.units:
                return False, f"unit not registered: {sc.unit}"
            if sc.unit in changed_units:
                return False, f"multiple state changes for {sc.unit}"
            changed_units.add(sc.unit)
            current_state = self.units[sc.unit].state
            old_state = sc.old_state if isinstance(sc.old_state, dict) else {}
            if old_state != current_state:
                stale = sorted(
                    str(key) for key in set(old_state) | set(current_state)
                    if old_state.get(key) != current_state.get(key)
                )
                return False, f"stale state for {sc.unit}: {', '.join(stale)}"

        net: Dict[Tuple[str, str], int] = {}
        for move in pending.moves:
            key_src = (move.source, move.unit_symbol)
            key_dst = (move.dest, move.unit_symbol)
            net[key_src] = net.get(key_src, 0) - move.quantity
            net[key_dst] = net.get(key_dst, 0) + move.quantity

        # SYSTEM_WALLET is exempt from balance validation
        for (wallet, unit_sym), delta in net.items():
            if wallet == SYSTEM_WALLET:
                continue

            current = self.balances[wallet][unit_sym]
            unit = self.units[unit_sym]
            proposed = current + delta

            if proposed < unit.min_balance:
                return False, f"{wallet} {unit_sym}: {proposed} < min {unit.min_balance}"
            if unit.max_balance is not None and proposed > unit.max_balance:
                return False, f"{wallet} {unit_sym}: {proposed} > max {unit.max_balance}"
            if proposed > UINT256_MAX:
                return False, f"{wallet} {unit_sym}: balance overflow"

        return True, ""

    def _update_position_index(self, wallet_id: str, unit_symbol: str, quantity: int) -> None:
        """Keep the unit -> {wallet -> quantity} index in sync; zero positions are dropped."""
        if quantity != 0:
            self._positions_by_unit[unit_symbol][wallet_id] = quantity
        else:
            self._positions_by_unit[unit_symbol].pop(wallet_id, None)

    def _execute_moves(self, moves) -> None:
        """Apply moves to wallet balances and update the position index."""
        for move in moves:
            new_src_balance = self.balances[move.source][move.unit_symbol] - move.quantity
            self.balances[move.source][move.unit_symbol] = new_src_balance
            self._update_position_index(move.source, move.unit_symbol, new_src_balance)

            new_dst_balance = self.balances[move.dest][move.unit_symbol] + move.quantity
            self.balances[move.dest][move.unit_symbol] = new_dst_balance
            self._update_position_index(move.dest, move.unit_symbol, new_dst_balance)

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> Ledger:
        """
        Create a deep copy of this ledger.

        The clone gets its own ManualClock set to the current time, so it can
        be advanced independently of the original.
        """
        cloned = Ledger.__new__(Ledger)
        cloned.name = self.name
        cloned.clock = ManualClock(self.current_time)
        cloned.verbose = self.verbose
        cloned._test_mode = self._test_mode

        # Units are frozen; their state is rebuilt from a deep copy
        cloned.units = {
            symbol: replace(unit, _frozen_state=_freeze_state(unit.state))
            for symbol, unit in self.units.items()
        }

        cloned._unit_definitions = dict(self._unit_definitions)
        cloned.registered_wallets = self.registered_wallets.copy()
        cloned.seen_intent_ids = self.seen_intent_ids.copy()
        cloned.transaction_log = list(self.transaction_log)
        cloned._next_sequence = self._next_sequence

        cloned.balances = {
            wallet: defaultdict(int, bals) for wallet, bals in self.balances.items()
        }

        cloned._positions_by_unit = defaultdict(dict)
        for unit_symbol, positions in self._positions_by_unit.items():
            cloned._positions_by_unit[unit_symbol] = dict(positions)

        return cloned

    def replay(self, until_tx: Optional[int] = None) -> Ledger:
        """
        Create a new ledger by replaying the transaction log.

        Units and wallets created by logged transactions are re-created by
        those transactions; units registered directly are restored to their
        definition at registration. Balances set via set_balance() are NOT replayed.

        Args:
            until_tx: Replay only the first until_tx transactions, rebuilding
                the ledger as it stood after them (None = the whole log)

        Returns:
            New Ledger instance with replayed state, on a ManualClock

        Raises:
            LedgerError: If a logged transaction is rejected during replay
        """
        if until_tx is not None and not 0 <= until_tx <= len(self.transaction_log):
            raise LedgerError(
                f"until_tx must be within [0, {len(self.transaction_log)}], got {until_tx}"
            )
        log = self.transaction_log[:until_tx]
        start = self.transaction_log[0].timestamp if self.transaction_log else self.current_time
        new_ledger = Ledger(
            name=f"{self.name}_replayed",
            clock=ManualClock(start),
            verbose=self.verbose,
            test_mode=self._test_mode
        )

        # Creations after until_tx are skipped, not pre-loaded
        units_created_in_log = {
            u.symbol for tx in self.transaction_log for u in tx.units_to_create
        }
        wallets_created_in_log = {
            w for tx in self.transaction_log for w in tx.wallets_to_create
        }

        for symbol in self.units:
            if symbol in units_created_in_log:
                continue
            definition = self._unit_definitions.get(symbol)
            if definition is None:
                raise LedgerError(f"Cannot replay: unit {symbol} has no initial definition")
            new_ledger.units[symbol] = definition
            new_ledger._unit_definitions[symbol] = definition

        for wallet in sorted(self.registered_wallets):
            if wallet != SYSTEM_WALLET and wallet not in wallets_created_in_log:
                new_ledger.register_wallet(wallet)

        for tx in log:
            if tx.timestamp > new_ledger.current_time:
                new_ledger.advance_time(tx.timestamp)

            pending = PendingTransaction(
                moves=tx.moves,
                state_changes=tx.state_changes,
                origin=tx.origin,
                timestamp=tx.timestamp,
                units_to_create=tx.units_to_create,
                wallets_to_create=tx.wallets_to_create,
            )

            result, reason = new_ledger._execute(pending)
            if result != ExecuteResult.APPLIED:
                raise LedgerError(f"Replay failed at tx {tx.exec_id}: {reason}")

        return new_ledger
