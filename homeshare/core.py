"""
Core types and pure functions for the fractional housing ledger.

This module provides the foundational data structures and protocols for the ledger:
1. Protocols: LedgerView for read-only ledger access, SmartContract for lifecycle polling
2. Immutable data structures: Move, PendingTransaction, Transaction, Unit
3. Exceptions: LedgerError and the operation error categories
4. Type aliases: Positions, BalanceMap, UnitState
5. Integer money helpers: parse_ether, format_ether, checked
6. Unit factories: cash() and record_unit()

All value is integral: money is counted in wei (1 ether = 10**18 wei) and
house shares are whole units. Decimal is only used at the boundary, when
converting human-readable ether amounts.

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal, localcontext
from enum import Enum
import copy
import hashlib
from typing import (
    Dict, List, Set, Optional, Any, Protocol,
    Tuple, FrozenSet, Union, runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# Reserved wallet for issuance and redemption.
# The system wallet is exempt from balance validation and can hold any balance.
SYSTEM_WALLET = "system"

# Native currency of the platform. Quantities are wei.
NATIVE_CURRENCY = "ETH"
WEI_PER_ETHER = 10 ** 18

# Fee rates are expressed in basis points of this denominator.
BPS_DENOMINATOR = 10_000

# Fixed-point scale of the cumulative dividend-per-share index.
DIVIDEND_PRECISION = 10 ** 18

# Every stored quantity must fit in an unsigned 256-bit word.
UINT256_MAX = 2 ** 256 - 1

# Unit type constants (strings, not enum).
UNIT_TYPE_CASH = "CASH"
UNIT_TYPE_HOUSE_SHARE = "HOUSE_SHARE"
UNIT_TYPE_AUCTION = "AUCTION"
UNIT_TYPE_BOOKING = "BOOKING"
# Record units hold component state; no wallet can hold a balance in them.
UNIT_TYPE_REGISTRY = "REGISTRY"
UNIT_TYPE_TREASURY = "TREASURY"
UNIT_TYPE_AUCTION_HOUSE = "AUCTION_HOUSE"
UNIT_TYPE_BOOKING_LEDGER = "BOOKING_LEDGER"

# Symbols of the component record units created by create_platform().
REGISTRY_UNIT = "REGISTRY"
TREASURY_UNIT = "TREASURY"
AUCTION_HOUSE_UNIT = "AUCTION_HOUSE"
BOOKING_LEDGER_UNIT = "BOOKING_LEDGER"

# Default wallet names wired by create_platform().
REGISTRY_WALLET = "registry"
TREASURY_WALLET = "treasury"
AUCTION_ESCROW_WALLET = "auction_escrow"
BOOKING_ESCROW_WALLET = "booking_escrow"


def house_symbol(asset_id: int) -> str:
    """Unit symbol of the share ledger backing an asset."""
    return f"HOUSE_{asset_id}"


def pool_wallet(asset_id: int) -> str:
    """Wallet holding the undistributed dividends of an asset."""
    return f"pool:{house_symbol(asset_id)}"


def auction_symbol(auction_id: int) -> str:
    return f"AUCTION_{auction_id}"


def booking_symbol(booking_id: int) -> str:
    return f"BOOKING_{booking_id}"


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Mapping from wallet ID to quantity held by that wallet for a specific unit.
Positions = Dict[str, int]

# Mapping from unit symbol to quantity held in a single wallet.
BalanceMap = Dict[str, int]

# Internal state for a unit: asset metadata, dividend index, lifecycle status, etc.
UnitState = Dict[str, Any]


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class LedgerView(Protocol):
    """
    Read-only interface to ledger state.

    Contract functions accept a LedgerView to declare their read-only intent.
    The Ledger class implements this protocol but also provides mutation
    methods; tests can supply a lighter fake.
    """

    @property
    def current_time(self) -> int:
        """Return the current time of the authoritative clock, in seconds."""
        ...

    def get_balance(self, wallet_id: str, unit_symbol: str) -> int:
        """Return the balance of a unit in a wallet (0 if never touched)."""
        ...

    def get_unit_state(self, unit_symbol: str) -> UnitState:
        """Return a deep copy of the unit's internal state."""
        ...

    def get_positions(self, unit_symbol: str) -> Positions:
        """Return all non-zero positions for a unit across all wallets."""
        ...

    def list_wallets(self) -> Set[str]:
        """Return the set of all registered wallet IDs."""
        ...

    def list_units(self) -> List[str]:
        """Return all registered unit symbols, sorted."""
        ...

    def get_unit(self, symbol: str) -> 'Unit':
        """Return the Unit object for a given symbol."""
        ...

    def is_registered(self, wallet_id: str) -> bool:
        ...


class SmartContract(Protocol):
    """
    Protocol for lifecycle-aware contracts polled by the LifecycleEngine.

    Contracts receive a LedgerView and return a PendingTransaction directly,
    using build_transaction() or empty_pending_transaction().
    """

    def check_lifecycle(
        self,
        view: LedgerView,
        symbol: str,
        timestamp: int,
    ) -> 'PendingTransaction':
        ...


# ============================================================================
# ENUMS
# ============================================================================

class ExecuteResult(Enum):
    """
    Outcome of a transaction execution attempt.

    APPLIED: Transaction was validated and applied to the ledger.
    ALREADY_APPLIED: Transaction intent was previously processed (idempotent behavior).
    REJECTED: Transaction failed validation (balance constraints, stale state,
              registration). Nothing was applied.
    """
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    REJECTED = "rejected"


class OriginType(Enum):
    """Classification of where a transaction originated, for the audit trail."""
    USER_ACTION = "user_action"           # Operation invoked by a caller
    CONTRACT = "contract"                 # Unit contract (default)
    LIFECYCLE = "lifecycle"               # Time-driven status transition
    SYSTEM = "system"                     # Issuance, platform wiring


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class ValidationError(LedgerError, ValueError):
    """Malformed parameters (zero shares, inverted date range, zero duration)."""
    pass


class InvalidStateError(LedgerError):
    """Operation is not valid for the entity's current state."""
    pass


class Unauthorized(LedgerError):
    """Caller lacks the role required by the operation."""
    pass


class InsufficientFunds(LedgerError):
    """A wallet or custodial balance is too small for the operation."""
    pass


class InsufficientShares(InsufficientFunds):
    """A holder does not have enough unlocked shares."""
    pass


class BidTooLow(InsufficientFunds):
    """A bid does not exceed the current minimum acceptable bid."""
    pass


class NotFound(LedgerError):
    """Unknown asset, auction or booking."""
    pass


class ArithmeticOverflow(LedgerError):
    """An intermediate value left the unsigned 256-bit range."""
    pass


class TransactionRejected(LedgerError):
    """The ledger rejected a transaction built by an operation."""
    pass


class UnitNotRegistered(LedgerError):
    """Raised when operating on a unit that has not been registered with the ledger."""
    pass


class WalletNotRegistered(LedgerError):
    """Raised when operating on a wallet that has not been registered with the ledger."""
    pass


# ============================================================================
# INTEGER MONEY HELPERS
# ============================================================================

def parse_ether(value: Union[str, int, Decimal]) -> int:
    """
    Convert an ether amount to wei.

    Accepts str, int or Decimal. Floats are refused because they cannot
    represent most decimal amounts exactly.

    Example:
        parse_ether("1.9") == 1_900_000_000_000_000_000
    """
    if isinstance(value, float):
        raise ValueError("ether amounts must be str, int or Decimal, not float")
    with localcontext() as ctx:
        ctx.prec = 100
        wei = Decimal(str(value)) * WEI_PER_ETHER
        if wei != wei.to_integral_value():
            raise ValueError(f"{value} ether has more than 18 decimal places")
    return int(wei)


def format_ether(wei: int) -> Decimal:
    """Convert wei to a normalized Decimal ether amount."""
    with localcontext() as ctx:
        ctx.prec = 100
        amount = Decimal(wei) / WEI_PER_ETHER
    if amount == amount.to_integral_value():
        return amount.quantize(Decimal(1))
    return amount.normalize()


def checked(value: int, label: str = "value") -> int:
    """Return value if it fits in a uint256, otherwise raise ArithmeticOverflow."""
    if value < 0 or value > UINT256_MAX:
        raise ArithmeticOverflow(f"{label} out of uint256 range: {value}")
    return value


def require_positive(name: str, value: Any) -> int:
    """Validate a strictly positive integer parameter."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {type(value).__name__}")
    if value <= 0:
        raise ValidationError(f"{name} must be positive, got {value}")
    checked(value, name)
    return value


# ============================================================================
# TRANSACTION ORIGIN
# ============================================================================

@dataclass(frozen=True, slots=True)
class TransactionOrigin:
    """
    Immutable record of a transaction's origin for audit purposes.

    Attributes:
        origin_type: Classification of the origin source
        source_id: Acting caller, or the component that produced the transaction
        unit_symbol: Symbol of the unit the operation targets (if applicable)
        event_type: Operation name (e.g., "PLACE_BID", "SETTLE")
    """
    origin_type: OriginType
    source_id: str
    unit_symbol: Optional[str] = None
    event_type: Optional[str] = None

    def __repr__(self) -> str:
        parts = [f"{self.origin_type.value}:{self.source_id}"]
        if self.unit_symbol:
            parts.append(f"unit={self.unit_symbol}")
        if self.event_type:
            parts.append(f"event={self.event_type}")
        return f"Origin({', '.join(parts)})"


def user_origin(caller: str, unit_symbol: str, event_type: str) -> TransactionOrigin:
    """Origin for an operation invoked by a caller."""
    return TransactionOrigin(OriginType.USER_ACTION, caller, unit_symbol, event_type)


# ============================================================================
# UNIT STATE CHANGE
# ============================================================================

@dataclass(frozen=True, slots=True)
class UnitStateChange:
    """
    Record of a unit state change.

    Stores complete before/after snapshots. The ledger rejects a change whose
    old_state no longer matches the unit's current state.

    Attributes:
        unit: Symbol of the unit whose state changed
        old_state: Complete state before the change
        new_state: Complete state after the change
    """
    unit: str
    old_state: Any
    new_state: Any

    def changed_fields(self) -> Dict[str, Tuple[Any, Any]]:
        """Return {field: (old_value, new_value)} for fields that differ."""
        old = self.old_state if isinstance(self.old_state, dict) else {}
        new = self.new_state if isinstance(self.new_state, dict) else {}
        changes = {}
        for key in set(old.keys()) | set(new.keys()):
            old_val = old.get(key)
            new_val = new.get(key)
            if old_val != new_val:
                changes[key] = (old_val, new_val)
        return changes


# ============================================================================
# CORE DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class Move:
    """
    A single transfer of value between two wallets.

    Attributes:
        quantity: Positive integer amount (wei for cash, whole shares for houses).
        unit_symbol: The unit being transferred (e.g., "ETH", "HOUSE_0").
        source: The wallet ID from which value is debited.
        dest: The wallet ID to which value is credited.
        contract_id: Identifier of the operation generating this move.
        metadata: Optional additional information about the move.
    """
    quantity: int
    unit_symbol: str
    source: str
    dest: str
    contract_id: str
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if not self.source or not self.source.strip():
            raise ValueError("Move source cannot be empty")
        if not self.dest or not self.dest.strip():
            raise ValueError("Move dest cannot be empty")
        if not self.unit_symbol or not self.unit_symbol.strip():
            raise ValueError("Move unit_symbol cannot be empty")
        if not self.contract_id or not self.contract_id.strip():
            raise ValueError("Move contract_id cannot be empty")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValueError(f"Move quantity must be int, got {type(self.quantity)}")
        if self.quantity <= 0:
            raise ValueError(f"Move quantity must be positive, got {self.quantity}")
        checked(self.quantity, "Move quantity")
        if self.source == self.dest:
            raise ValueError("Source and dest must be different")

    def __repr__(self) -> str:
        return f"Move({self.quantity} {self.unit_symbol}: {self.source}→{self.dest})"


def _canonicalize(value: Any) -> str:
    """
    Produce a canonical string representation of a value for hashing.

    Deterministic regardless of dict insertion order or nesting depth.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return _canonicalize(value.value)
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, (bytes, bytearray)):
        return f"B:{bytes(value).hex()}"
    if isinstance(value, Decimal):
        return f"D:{value.normalize()}"
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    if isinstance(value, (set, frozenset)):
        serialized = ",".join(_canonicalize(item) for item in sorted(value, key=str))
        return f"<{serialized}>"
    return f"R:{repr(value)}"


def _compute_intent_id(
    moves: Tuple[Move, ...],
    state_changes: Tuple[UnitStateChange, ...],
    origin: TransactionOrigin,
    units_to_create: Tuple['Unit', ...] = (),
    wallets_to_create: Tuple[str, ...] = (),
) -> str:
    """
    Compute a deterministic content hash for a transaction's intent.

    The hash covers moves, state changes (old and new), origin and creations,
    never timestamps. Same inputs always produce the same intent_id, which the
    ledger uses to refuse duplicate business transactions.
    """
    sorted_moves = tuple(sorted(
        moves,
        key=lambda m: (m.quantity, m.unit_symbol, m.source, m.dest, m.contract_id)
    ))

    content_parts = [f"origin:{origin.origin_type.value}:{origin.source_id}"]
    if origin.unit_symbol:
        content_parts.append(f"unit:{origin.unit_symbol}")
    if origin.event_type:
        content_parts.append(f"event:{origin.event_type}")

    for unit in sorted(units_to_create, key=lambda u: u.symbol):
        content_parts.append(
            f"unit_create:{unit.symbol}|{unit.unit_type}|{_canonicalize(unit.state)}"
        )
    for wallet in sorted(wallets_to_create):
        content_parts.append(f"wallet_create:{wallet}")

    for m in sorted_moves:
        content_parts.append(f"move:{m.quantity}|{m.unit_symbol}|{m.source}|{m.dest}|{m.contract_id}")

    for sc in sorted(state_changes, key=lambda s: s.unit):
        content_parts.append(
            f"state_change:{sc.unit}|{_canonicalize(sc.old_state)}|{_canonicalize(sc.new_state)}"
        )

    content = "|".join(content_parts)
    return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass(frozen=True, slots=True)
class PendingTransaction:
    """
    A transaction specification before execution - represents INTENT.

    Built by contract functions and submitted to Ledger.execute(), which
    applies it entirely or not at all.

    Attributes:
        moves: Value transfers between wallets
        state_changes: Unit state changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: Clock reading when the transaction was built
        units_to_create: Units to register as part of this transaction
        wallets_to_create: Wallets to register as part of this transaction
        intent_id: Content-addressable hash of the intent (auto-computed)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: int
    units_to_create: Tuple['Unit', ...] = ()
    wallets_to_create: Tuple[str, ...] = ()
    intent_id: str = field(default="")

    def __post_init__(self):
        if not self.intent_id:
            computed_id = _compute_intent_id(
                self.moves, self.state_changes, self.origin,
                self.units_to_create, self.wallets_to_create,
            )
            object.__setattr__(self, 'intent_id', computed_id)

    def is_empty(self) -> bool:
        """True if there is nothing to move, change or create."""
        return (
            not self.moves and not self.state_changes
            and not self.units_to_create and not self.wallets_to_create
        )

    def __repr__(self) -> str:
        return f"PendingTransaction({len(self.moves)} moves, {len(self.state_changes)} deltas, {self.origin})"


def build_transaction(
    view: LedgerView,
    moves: List[Move],
    state_changes: Optional[List[UnitStateChange]] = None,
    origin: Optional[TransactionOrigin] = None,
    units_to_create: Optional[Tuple['Unit', ...]] = None,
    wallets_to_create: Optional[Tuple[str, ...]] = None,
) -> PendingTransaction:
    """
    Build a PendingTransaction from moves and state changes.

    This is the standard way to create transactions.

    Example:
        def compute_refund(view, symbol, renter, amount):
            moves = [Move(amount, "ETH", "booking_escrow", renter, "refund")]
            old_state = view.get_unit_state(symbol)
            new_state = {**old_state, "status": "cancelled"}
            changes = [UnitStateChange(unit=symbol, old_state=old_state, new_state=new_state)]
            return build_transaction(view, moves, changes)
    """
    if origin is None:
        origin = TransactionOrigin(
            origin_type=OriginType.CONTRACT,
            source_id="contract",
        )

    # Deep copy state changes to prevent later mutation by the caller
    copied_changes: Tuple[UnitStateChange, ...] = ()
    if state_changes:
        copied_changes = tuple(
            UnitStateChange(
                unit=sc.unit,
                old_state=copy.deepcopy(sc.old_state),
                new_state=copy.deepcopy(sc.new_state),
            )
            for sc in state_changes
        )

    return PendingTransaction(
        moves=tuple(moves),
        state_changes=copied_changes,
        origin=origin,
        timestamp=view.current_time,
        units_to_create=units_to_create or (),
        wallets_to_create=wallets_to_create or (),
    )


def empty_pending_transaction(view: LedgerView) -> PendingTransaction:
    """Create an empty PendingTransaction, for contract functions with nothing to do."""
    return PendingTransaction(
        moves=(),
        state_changes=(),
        origin=TransactionOrigin(OriginType.CONTRACT, "noop"),
        timestamp=view.current_time,
    )


@dataclass(frozen=True, slots=True)
class Transaction:
    """
    An executed, immutable record of ledger state changes - represents FACT.

    Attributes:
        moves: Value transfers between wallets
        state_changes: Unit state changes (with old_state and new_state)
        origin: Who/what created this transaction and why
        timestamp: Clock reading when the PendingTransaction was built
        intent_id: Content hash from PendingTransaction (for idempotency)
        exec_id: Unique execution identifier (ledger + sequence + time)
        ledger_name: Name of the ledger that executed this
        execution_time: Clock reading when this was executed and logged
        sequence_number: Monotonic sequence within the ledger
        units_to_create: Units registered by this transaction
        wallets_to_create: Wallets registered by this transaction
        contract_ids: Set of contract IDs from moves (auto-populated)
    """
    moves: Tuple[Move, ...]
    state_changes: Tuple[UnitStateChange, ...]
    origin: TransactionOrigin
    timestamp: int
    intent_id: str
    exec_id: str
    ledger_name: str
    execution_time: int
    sequence_number: int
    units_to_create: Tuple['Unit', ...] = ()
    wallets_to_create: Tuple[str, ...] = ()
    contract_ids: FrozenSet[str] = None

    def __post_init__(self):
        if (not self.moves and not self.state_changes
                and not self.units_to_create and not self.wallets_to_create):
            raise ValueError("Transaction must move, change or create something")
        if self.contract_ids is None:
            object.__setattr__(
                self, 'contract_ids',
                frozenset(m.contract_id for m in self.moves)
            )

    def __repr__(self) -> str:
        w = 100  # Inner content width
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Transaction: ' + self.exec_id)}│",
            f"├{bar}┤",
            f"│{pad('   intent_id      : ' + self.intent_id)}│",
            f"│{pad('   timestamp      : ' + str(self.timestamp))}│",
            f"│{pad('   ledger_name    : ' + self.ledger_name)}│",
            f"│{pad('   execution_time : ' + str(self.execution_time))}│",
            f"│{pad('   sequence       : ' + str(self.sequence_number))}│",
            f"│{pad('   origin         : ' + str(self.origin))}│",
            f"│{pad('   contract_ids   : ' + str(sorted(self.contract_ids)))}│",
        ]
        if self.units_to_create or self.wallets_to_create:
            lines.append(f"├{bar}┤")
            for unit in self.units_to_create:
                lines.append(f"│{pad('   + unit ' + unit.symbol + ' (' + unit.name + ')')}│")
            for wallet in self.wallets_to_create:
                lines.append(f"│{pad('   + wallet ' + wallet)}│")
        lines.append(f"├{bar}┤")
        lines.append(f"│{pad(' Moves (' + str(len(self.moves)) + '):')}│")
        for i, move in enumerate(self.moves):
            move_str = f"   [{i}] {move.quantity} {move.unit_symbol}: {move.source} → {move.dest}"
            lines.append(f"│{pad(move_str)}│")
        if self.state_changes:
            lines.append(f"├{bar}┤")
            lines.append(f"│{pad(' State Changes (' + str(len(self.state_changes)) + '):')}│")
            for sc in self.state_changes:
                lines.append(f"│{pad('   [' + sc.unit + ']')}│")
                for field_name, (old_val, new_val) in sc.changed_fields().items():
                    lines.append(f"│{pad(f'      {field_name}: {old_val!r} → {new_val!r}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


def _freeze_state(state: Optional[UnitState]) -> Tuple[Tuple[str, Any], ...]:
    """Convert a state dict to an immutable tuple of (key, value) pairs, sorted by key."""
    if not state:
        return ()
    return tuple(sorted(state.items()))


def _thaw_state(frozen_state: Tuple[Tuple[str, Any], ...]) -> UnitState:
    """Convert a frozen state representation back to a dict."""
    return dict(frozen_state)


@dataclass(frozen=True, slots=True)
class Unit:
    """
    Definition of a unit registered in the ledger.

    Attributes:
        symbol: Unique identifier (e.g., "ETH", "HOUSE_0", "AUCTION_3").
        name: Human-readable name.
        unit_type: Category of the unit (CASH, HOUSE_SHARE, AUCTION, ...).
        min_balance: Minimum allowed balance in any non-system wallet.
        max_balance: Maximum allowed balance in any non-system wallet (None = unbounded).
        _frozen_state: Internal frozen state representation.
    """
    symbol: str
    name: str
    unit_type: str
    min_balance: int = 0
    max_balance: Optional[int] = None
    _frozen_state: Tuple[Tuple[str, Any], ...] = field(default_factory=tuple)

    @property
    def state(self) -> UnitState:
        """A fresh dict of the unit's state (deep copied)."""
        return copy.deepcopy(_thaw_state(self._frozen_state))


# ============================================================================
# UNIT FACTORIES
# ============================================================================

def cash(symbol: str = NATIVE_CURRENCY, name: str = "Ether") -> Unit:
    """
    Create the cash unit that carries value between wallets.

    Balances cannot go negative: every wei in circulation is issued from
    SYSTEM_WALLET.
    """
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=UNIT_TYPE_CASH,
        min_balance=0,
    )


def record_unit(symbol: str, name: str, unit_type: str, state: UnitState) -> Unit:
    """Create a unit that only carries state; no wallet may hold a balance of it."""
    return Unit(
        symbol=symbol,
        name=name,
        unit_type=unit_type,
        min_balance=0,
        max_balance=0,
        _frozen_state=_freeze_state(state),
    )
