"""
test_ledger_operations.py - Unit tests for Ledger class operations

Tests:
- Ledger creation and configuration
- Wallet and unit registration
- Balance operations
- Time management
- Transaction execution, rejection and stale state
- Units and wallets created by transactions
- commit(), clone() and replay()
"""

import pytest
from homeshare import (
    Ledger, ManualClock, SystemClock, Move, ExecuteResult,
    cash, record_unit, UnitStateChange, build_transaction,
    TransactionOrigin, OriginType,
    LedgerError, TransactionRejected, WalletNotRegistered, UnitNotRegistered,
    SYSTEM_WALLET,
)
from homeshare.platform import fund_wallet
from tests.conftest import ether, ledger_state_equals


def _counter(symbol: str = "COUNTER", value: int = 0):
    return record_unit(symbol, "Counter", "COUNTER", {'value': value})


def _bump(ledger, symbol: str = "COUNTER"):
    old = ledger.get_unit_state(symbol)
    new = {**old, 'value': old['value'] + 1}
    return build_transaction(ledger, [], [UnitStateChange(symbol, old, new)])


class TestLedgerCreation:
    """Tests for Ledger initialization."""

    def test_create_ledger_minimal(self):
        """Create ledger with minimal arguments."""
        ledger = Ledger("test", verbose=False)
        assert ledger.name == "test"
        assert ledger.current_time == 0

    def test_create_ledger_with_clock(self):
        """The ledger reads time from the injected clock."""
        clock = ManualClock(1_700_000_000)
        ledger = Ledger("test", clock=clock, verbose=False)
        assert ledger.current_time == 1_700_000_000
        clock.advance(60)
        assert ledger.current_time == 1_700_000_060

    def test_system_wallet_registered(self):
        """The system wallet exists from the start."""
        ledger = Ledger("test", verbose=False)
        assert ledger.is_registered(SYSTEM_WALLET)


class TestRegistration:
    """Tests for wallet and unit registration."""

    def test_register_wallet(self, empty_ledger):
        assert empty_ledger.register_wallet("alice") == "alice"
        assert "alice" in empty_ledger.list_wallets()

    def test_register_duplicate_wallet_raises(self, empty_ledger):
        empty_ledger.register_wallet("alice")
        with pytest.raises(ValueError, match="already registered"):
            empty_ledger.register_wallet("alice")

    def test_register_blank_wallet_raises(self, empty_ledger):
        with pytest.raises(ValueError, match="empty"):
            empty_ledger.register_wallet("  ")

    def test_list_wallets_returns_copy(self, empty_ledger):
        empty_ledger.register_wallet("alice")
        wallets = empty_ledger.list_wallets()
        wallets.add("hacker")
        assert "hacker" not in empty_ledger.list_wallets()

    def test_register_duplicate_unit_raises(self, empty_ledger):
        empty_ledger.register_unit(cash())
        with pytest.raises(ValueError, match="already registered"):
            empty_ledger.register_unit(cash())

    def test_get_unit_state_is_a_copy(self, empty_ledger):
        """Mutating a returned state never touches the ledger."""
        empty_ledger.register_unit(_counter())
        state = empty_ledger.get_unit_state("COUNTER")
        state['value'] = 99
        assert empty_ledger.get_unit_state("COUNTER")['value'] == 0

    def test_unknown_unit_raises(self, empty_ledger):
        with pytest.raises(UnitNotRegistered):
            empty_ledger.get_unit_state("NOPE")

    def test_unknown_wallet_balance_raises(self, basic_ledger):
        with pytest.raises(WalletNotRegistered):
            basic_ledger.get_balance("nobody", "ETH")


class TestBalances:
    """Tests for balance operations."""

    def test_set_balance_requires_test_mode(self):
        ledger = Ledger("test", verbose=False)
        ledger.register_unit(cash())
        ledger.register_wallet("alice")
        with pytest.raises(LedgerError, match="test_mode"):
            ledger.set_balance("alice", "ETH", 5)

    def test_set_balance_updates_positions(self, basic_ledger):
        basic_ledger.set_balance("alice", "ETH", 5)
        assert basic_ledger.get_positions("ETH") == {"alice": 5}

    def test_issuance_keeps_total_supply_zero(self, funded_ledger):
        """Issued cash is mirrored by a negative system balance."""
        assert funded_ledger.get_balance("alice", "ETH") == ether(10)
        assert funded_ledger.get_balance(SYSTEM_WALLET, "ETH") == -ether(10)
        assert funded_ledger.total_supply("ETH") == 0
        assert funded_ledger.circulating_supply("ETH") == ether(10)

    def test_wallet_balances_skip_zero(self, funded_ledger):
        assert funded_ledger.get_wallet_balances("alice") == {"ETH": ether(10)}
        assert funded_ledger.get_wallet_balances("bob") == {}

    def test_verify_double_entry(self, funded_ledger):
        result = funded_ledger.verify_double_entry()
        assert result['valid']
        assert result['supplies']['ETH'] == 0

    def test_verify_double_entry_reports_discrepancy(self, funded_ledger):
        result = funded_ledger.verify_double_entry(expected_supplies={'ETH': 1, 'BTC': 5})
        assert not result['valid']
        units = {d['unit'] for d in result['discrepancies']}
        assert units == {'ETH', 'BTC'}


class TestTimeManagement:
    """Tests for time management."""

    def test_advance_time(self, empty_ledger):
        empty_ledger.advance_time(100)
        assert empty_ledger.current_time == 100

    def test_advance_time_backwards_raises(self, empty_ledger):
        empty_ledger.advance_time(100)
        with pytest.raises(ValueError, match="backwards"):
            empty_ledger.advance_time(50)

    def test_system_clock_cannot_be_advanced(self):
        ledger = Ledger("test", clock=SystemClock(), verbose=False)
        with pytest.raises(ValueError):
            ledger.advance_time(0)


class TestExecution:
    """Tests for transaction execution."""

    def test_execute_simple_transfer(self, funded_ledger):
        tx = build_transaction(funded_ledger, [Move(ether(1), "ETH", "alice", "bob", "pay")])
        assert funded_ledger.execute(tx) == ExecuteResult.APPLIED
        assert funded_ledger.get_balance("alice", "ETH") == ether(9)
        assert funded_ledger.get_balance("bob", "ETH") == ether(1)

    def test_overdraft_rejected(self, funded_ledger):
        tx = build_transaction(funded_ledger, [Move(ether(11), "ETH", "alice", "bob", "pay")])
        assert funded_ledger.execute(tx) == ExecuteResult.REJECTED
        assert funded_ledger.get_balance("alice", "ETH") == ether(10)

    def test_unregistered_wallet_rejected(self, funded_ledger):
        tx = build_transaction(funded_ledger, [Move(1, "ETH", "alice", "mallory", "pay")])
        assert funded_ledger.execute(tx) == ExecuteResult.REJECTED

    def test_record_unit_cannot_be_held(self, funded_ledger):
        """Record units have max_balance 0."""
        funded_ledger.register_unit(_counter())
        tx = build_transaction(funded_ledger, [Move(1, "COUNTER", SYSTEM_WALLET, "alice", "x")])
        assert funded_ledger.execute(tx) == ExecuteResult.REJECTED

    def test_duplicate_intent_already_applied(self, funded_ledger):
        tx = build_transaction(funded_ledger, [Move(ether(1), "ETH", "alice", "bob", "pay")])
        assert funded_ledger.execute(tx) == ExecuteResult.APPLIED
        assert funded_ledger.execute(tx) == ExecuteResult.ALREADY_APPLIED
        assert funded_ledger.get_balance("bob", "ETH") == ether(1)

    def test_future_timestamp_rejected(self, funded_ledger, clock):
        clock.advance(10)
        tx = build_transaction(funded_ledger, [Move(1, "ETH", "alice", "bob", "pay")])
        late = Ledger("other", clock=ManualClock(0), verbose=False)
        late.register_unit(cash())
        late.register_wallet("alice")
        late.register_wallet("bob")
        assert late.execute(tx) == ExecuteResult.REJECTED

    def test_state_change_applied(self, empty_ledger):
        empty_ledger.register_unit(_counter())
        assert empty_ledger.execute(_bump(empty_ledger)) == ExecuteResult.APPLIED
        assert empty_ledger.get_unit_state("COUNTER")['value'] == 1

    def test_stale_state_rejected(self, empty_ledger):
        """A transaction built against an older state is rejected."""
        empty_ledger.register_unit(_counter())
        first = _bump(empty_ledger)
        second = _bump(empty_ledger)
        assert empty_ledger.execute(first) == ExecuteResult.APPLIED
        assert empty_ledger.execute(second) == ExecuteResult.ALREADY_APPLIED

        stale = UnitStateChange("COUNTER", {'value': 0}, {'value': 5})
        tx = build_transaction(empty_ledger, [], [stale])
        assert empty_ledger.execute(tx) == ExecuteResult.REJECTED
        assert empty_ledger.get_unit_state("COUNTER")['value'] == 1

    def test_two_changes_to_one_unit_rejected(self, empty_ledger):
        empty_ledger.register_unit(_counter())
        a = UnitStateChange("COUNTER", {'value': 0}, {'value': 1})
        b = UnitStateChange("COUNTER", {'value': 1}, {'value': 2})
        tx = build_transaction(empty_ledger, [], [a, b])
        assert empty_ledger.execute(tx) == ExecuteResult.REJECTED

    def test_units_and_wallets_created_by_transaction(self, funded_ledger):
        unit = _counter("NEW")
        tx = build_transaction(
            funded_ledger,
            [Move(ether(1), "ETH", "alice", "vault", "open")],
            units_to_create=(unit,),
            wallets_to_create=("vault",),
        )
        assert funded_ledger.execute(tx) == ExecuteResult.APPLIED
        assert funded_ledger.has_unit("NEW")
        assert funded_ledger.get_balance("vault", "ETH") == ether(1)

    def test_rejected_transaction_rolls_back_creations(self, funded_ledger):
        """Nothing a rejected transaction would have created survives."""
        unit = _counter("NEW")
        tx = build_transaction(
            funded_ledger,
            [Move(ether(50), "ETH", "alice", "vault", "open")],
            units_to_create=(unit,),
            wallets_to_create=("vault",),
        )
        assert funded_ledger.execute(tx) == ExecuteResult.REJECTED
        assert not funded_ledger.has_unit("NEW")
        assert not funded_ledger.is_registered("vault")

    def test_creating_existing_wallet_rejected(self, funded_ledger):
        tx = build_transaction(funded_ledger, [], wallets_to_create=("bob",))
        assert funded_ledger.execute(tx) == ExecuteResult.REJECTED

    def test_empty_transaction_is_noop(self, funded_ledger):
        before = len(funded_ledger.transaction_log)
        tx = build_transaction(funded_ledger, [])
        assert funded_ledger.execute(tx) == ExecuteResult.APPLIED
        assert len(funded_ledger.transaction_log) == before

    def test_origin_recorded(self, funded_ledger):
        origin = TransactionOrigin(OriginType.USER_ACTION, "alice", "ETH", "PAY")
        tx = build_transaction(funded_ledger, [Move(1, "ETH", "alice", "bob", "pay")], origin=origin)
        funded_ledger.execute(tx)
        assert funded_ledger.transaction_log[-1].origin == origin


class TestCommit:
    """Tests for commit(), used by the component handles."""

    def test_commit_returns_transaction(self, funded_ledger):
        tx = build_transaction(funded_ledger, [Move(1, "ETH", "alice", "bob", "pay")])
        record = funded_ledger.commit(tx)
        assert record is funded_ledger.transaction_log[-1]
        assert record.intent_id == tx.intent_id

    def test_commit_raises_on_rejection(self, funded_ledger):
        tx = build_transaction(funded_ledger, [Move(ether(11), "ETH", "alice", "bob", "pay")])
        with pytest.raises(TransactionRejected, match="min"):
            funded_ledger.commit(tx)

    def test_commit_raises_on_duplicate(self, funded_ledger):
        tx = build_transaction(funded_ledger, [Move(1, "ETH", "alice", "bob", "pay")])
        funded_ledger.commit(tx)
        with pytest.raises(LedgerError, match="already applied"):
            funded_ledger.commit(tx)

    def test_commit_empty_returns_none(self, funded_ledger):
        assert funded_ledger.commit(build_transaction(funded_ledger, [])) is None


class TestCloneAndReplay:
    """Tests for clone() and replay()."""

    def test_clone_is_independent(self, funded_ledger):
        cloned = funded_ledger.clone()
        tx = build_transaction(cloned, [Move(ether(1), "ETH", "alice", "bob", "pay")])
        cloned.execute(tx)
        assert cloned.get_balance("bob", "ETH") == ether(1)
        assert funded_ledger.get_balance("bob", "ETH") == 0

    def test_clone_has_own_clock(self, funded_ledger, clock):
        cloned = funded_ledger.clone()
        cloned.advance_time(500)
        assert funded_ledger.current_time == clock.now() == 0

    def test_replay_reproduces_state(self, funded_ledger, clock):
        funded_ledger.register_unit(_counter())
        clock.advance(10)
        funded_ledger.execute(build_transaction(
            funded_ledger, [Move(ether(2), "ETH", "alice", "bob", "pay")]
        ))
        funded_ledger.execute(_bump(funded_ledger))
        fund_wallet(funded_ledger, "carol", ether(3))

        replayed = funded_ledger.replay()
        assert ledger_state_equals(funded_ledger, replayed)
        assert replayed.current_time == 10
        assert len(replayed.transaction_log) == len(funded_ledger.transaction_log)

    def test_replay_until_rebuilds_earlier_state(self, funded_ledger, clock):
        clock.advance(10)
        before_payment = funded_ledger.clone()
        applied = len(funded_ledger.transaction_log)
        funded_ledger.execute(build_transaction(
            funded_ledger, [Move(ether(2), "ETH", "alice", "bob", "pay")]
        ))
        fund_wallet(funded_ledger, "carol", ether(3))

        partial = funded_ledger.replay(until_tx=applied)
        assert ledger_state_equals(before_payment, partial)
        assert partial.get_balance("bob", "ETH") == 0
        assert not partial.is_registered("carol")
        assert len(partial.transaction_log) == applied

    def test_replay_until_zero_is_empty(self, funded_ledger):
        partial = funded_ledger.replay(until_tx=0)
        assert partial.transaction_log == []
        assert partial.get_balance("alice", "ETH") == 0

    @pytest.mark.parametrize("until_tx", [-1, 99])
    def test_replay_until_out_of_range(self, funded_ledger, until_tx):
        with pytest.raises(LedgerError, match="until_tx"):
            funded_ledger.replay(until_tx=until_tx)
