"""
Lifecycle scenarios: the LifecycleEngine drives auction windows while users
bid, book and settle, and the whole history replays to the same ledger.
"""

from homeshare import LifecycleEngine, AuctionStatus, OriginType
from tests.conftest import (
    OWNER, DAY, ether, make_platform, compare_ledger_states, verify_conservation,
)


HOUR = 3600


def _staggered_auctions(platform):
    """Three assets auctioned with start delays of 0, 6 and 12 hours."""
    registry = platform.registry
    auction_ids = []
    for i, delay in enumerate((0, 6 * HOUR, 12 * HOUR)):
        asset_id = registry.create_house(OWNER, f"House {i}", f"H{i}", "", 100)
        auction_ids.append(registry.auction_house(
            OWNER, asset_id, platform.auction_engine, 100, ether(1), DAY, start_delay=delay,
        ))
    return auction_ids


class TestLifecycleDrivenAuctions:

    def test_hourly_ticks_follow_windows(self):
        platform = make_platform()
        auction_ids = _staggered_auctions(platform)
        engine = LifecycleEngine(platform.ledger)

        executed = engine.run(range(0, 2 * DAY, HOUR))
        transitions = [
            (tx.timestamp, tx.origin.unit_symbol, tx.origin.event_type) for tx in executed
        ]
        assert transitions == [
            (0, "AUCTION_0", "ACTIVE"),
            (6 * HOUR, "AUCTION_1", "ACTIVE"),
            (12 * HOUR, "AUCTION_2", "ACTIVE"),
            (DAY, "AUCTION_0", "ENDED"),
            (DAY + 6 * HOUR, "AUCTION_1", "ENDED"),
            (DAY + 12 * HOUR, "AUCTION_2", "ENDED"),
        ]
        assert all(tx.origin.origin_type == OriginType.LIFECYCLE for tx in executed)
        for auction_id in auction_ids:
            assert platform.auction_engine.auction_status(auction_id) == AuctionStatus.ENDED

    def test_bids_between_ticks(self):
        platform = make_platform()
        auction_ids = _staggered_auctions(platform)
        auctions = platform.auction_engine
        engine = LifecycleEngine(platform.ledger)

        engine.step(12 * HOUR)
        auctions.place_bid("alice", auction_ids[0], ether(2))
        auctions.place_bid("bob", auction_ids[1], ether(3))
        auctions.place_bid("carol", auction_ids[2], ether(4))
        engine.step(18 * HOUR)
        auctions.place_bid("bob", auction_ids[0], ether(5))

        engine.step(DAY + 12 * HOUR)
        for auction_id in auction_ids:
            auctions.finalize_auction(OWNER, auction_id)
        assert engine.step(2 * DAY) == []

        ledger = platform.ledger
        assert ledger.get_balance("bob", "HOUSE_0") == 100
        assert ledger.get_balance("bob", "HOUSE_1") == 100
        assert ledger.get_balance("carol", "HOUSE_2") == 100
        assert ledger.get_balance("alice", "ETH") == ether(100)
        assert ledger.get_balance("auction_escrow", "ETH") == 0


class TestFullHistoryReplay:

    def test_replay_after_auctions_and_stays(self):
        """Everything a platform did is rebuilt from its transaction log."""
        platform = make_platform()
        auction_ids = _staggered_auctions(platform)
        auctions = platform.auction_engine
        bookings = platform.booking_ledger
        engine = LifecycleEngine(platform.ledger)

        engine.step(12 * HOUR)
        auctions.place_bid("alice", auction_ids[0], ether(2))
        auctions.place_bid("bob", auction_ids[2], ether("1.5"))
        engine.step(DAY + 12 * HOUR)
        for auction_id in auction_ids:
            auctions.finalize_auction(OWNER, auction_id)
        sold = len(platform.ledger.transaction_log)
        after_sale = platform.ledger.clone()

        bookings.list_room(OWNER, 0, "url1", "url2", ether(2))
        bookings.list_room(OWNER, 1, "url3", "url4", ether(1))
        bookings.deposit("carol", ether(10))
        clock = platform.ledger.clock
        now = clock.now()
        stay_0 = bookings.create_booking("carol", 0, now, now + DAY)
        stay_1 = bookings.create_booking("carol", 1, now, now + 2 * DAY)
        cancelled = bookings.create_booking("carol", 0, now + 3 * DAY, now + 4 * DAY)
        bookings.cancel_booking("carol", cancelled)
        engine.step(now + 2 * DAY)
        bookings.settle(OWNER, stay_0)
        bookings.settle(OWNER, stay_1)

        platform.registry.share_ledger(0).withdraw_dividends("alice")
        platform.registry.claim_custody_dividends(OWNER, 1)
        platform.treasury.forward(OWNER, ether("0.01"), "carol")

        ledger = platform.ledger
        assert verify_conservation(ledger, "ETH", ether(300))[0]
        replayed = ledger.replay()
        diff = compare_ledger_states(ledger, replayed)
        assert diff["equal"], diff
        assert replayed.current_time == ledger.transaction_log[-1].timestamp

        assert [tx.intent_id for tx in replayed.transaction_log] == \
            [tx.intent_id for tx in ledger.transaction_log]

        # A prefix of the log rebuilds the platform as it stood after the sales
        partial = ledger.replay(until_tx=sold)
        diff = compare_ledger_states(after_sale, partial)
        assert diff["equal"], diff
        assert len(partial.transaction_log) == sold
        assert not partial.has_unit("BOOKING_0")
