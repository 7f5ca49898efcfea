import asyncio

import pytest

from chains.registry import ChainFamily
from conftest import ETH_ADDR, SOL_ADDR, WEBHOOK_URL, run
from core.errors import InvalidFormat, StreamProvisionFailed, UnsupportedChain
from core.tracking import (
    ALREADY_TRACKING,
    JOINED,
    NOT_TRACKING,
    STARTED,
    STOPPED,
    TrackingService,
)


@pytest.fixture
def tracking(store, registrar):
    return TrackingService(store, registrar, WEBHOOK_URL)


class TestTrack:
    def test_first_tracker_provisions_a_stream(self, tracking, streams):
        outcome = run(tracking.track(1, "alice", "eth", ETH_ADDR.lower(), "Whale"))
        assert outcome.status == STARTED
        assert outcome.wallet.address == ETH_ADDR
        assert outcome.wallet.stream_id == "stream-1"
        assert outcome.wallet.alias == "Whale"
        assert len(streams.created) == 1

    def test_second_user_joins_without_new_stream(self, tracking, streams):
        run(tracking.track(1, "alice", "ETH", ETH_ADDR))
        outcome = run(tracking.track(2, "bob", "ETH", ETH_ADDR.lower()))
        assert outcome.status == JOINED
        assert outcome.wallet.subscribers == {1, 2}
        assert len(streams.created) == 1

    def test_tracking_twice_is_reported(self, tracking, streams):
        run(tracking.track(1, "alice", "ETH", ETH_ADDR))
        outcome = run(tracking.track(1, "alice", "ETH", "0x" + ETH_ADDR[2:].upper()))
        assert outcome.status == ALREADY_TRACKING
        assert len(streams.created) == 1

    def test_user_is_registered(self, tracking, store):
        run(tracking.track(1, "alice", "SOL", SOL_ADDR))
        assert run(store.get_user(1)).username == "alice"

    def test_invalid_address_touches_nothing(self, tracking, store, streams):
        with pytest.raises(InvalidFormat):
            run(tracking.track(1, "alice", "ETH", "0x123"))
        assert run(store.get_user(1)) is None
        assert streams.created == []

    def test_chain_not_enabled(self, store, registrar):
        service = TrackingService(store, registrar, WEBHOOK_URL, supported_chains=["ETH"])
        with pytest.raises(UnsupportedChain) as exc:
            run(service.track(1, "alice", "SOL", SOL_ADDR))
        assert "Supported chains: ETH" in exc.value.user_message

    def test_provision_failure_then_retry(self, tracking, store, streams):
        streams.fail_create = True
        with pytest.raises(StreamProvisionFailed):
            run(tracking.track(1, "alice", "ETH", ETH_ADDR))
        assert run(store.find_by_chain_and_address("ETH", ETH_ADDR)).pending_stream

        streams.fail_create = False
        outcome = run(tracking.track(1, "alice", "ETH", ETH_ADDR))
        assert outcome.status == ALREADY_TRACKING
        assert outcome.wallet.stream_id == "stream-1"

    def test_simultaneous_first_trackers_create_one_stream(self, tracking, store, streams):
        streams.create_delay = 0.3

        async def scenario():
            return await asyncio.gather(
                tracking.track(1, "alice", "ETH", ETH_ADDR),
                tracking.track(2, "bob", "ETH", ETH_ADDR.lower()),
            )

        outcomes = run(scenario())
        assert sorted(o.status for o in outcomes) == sorted([STARTED, JOINED])
        assert len(streams.created) == 1
        assert streams.deleted == []
        wallet = run(store.find_by_chain_and_address("ETH", ETH_ADDR))
        assert wallet.subscribers == {1, 2}
        assert wallet.stream_id == "stream-1"

    def test_joining_a_pending_wallet_leaves_provisioning_to_reconcile(self, tracking, registrar, store, streams):
        streams.fail_create = True
        with pytest.raises(StreamProvisionFailed):
            run(tracking.track(1, "alice", "ETH", ETH_ADDR))

        streams.fail_create = False
        outcome = run(tracking.track(2, "bob", "ETH", ETH_ADDR))
        assert outcome.status == JOINED
        assert outcome.wallet.pending_stream
        assert streams.created == []

        assert run(registrar.reconcile_pending(WEBHOOK_URL)) == 1
        assert run(store.find_by_chain_and_address("ETH", ETH_ADDR)).stream_id == "stream-1"


class TestUntrack:
    def test_non_last_untrack_keeps_stream(self, tracking, streams):
        run(tracking.track(1, "alice", "ETH", ETH_ADDR))
        run(tracking.track(2, "bob", "ETH", ETH_ADDR))
        outcome = run(tracking.untrack(1, "ETH", ETH_ADDR))
        assert outcome.status == STOPPED
        assert outcome.stream_released is None
        assert streams.deleted == []

    def test_last_untrack_releases_stream_once(self, tracking, store, streams):
        run(tracking.track(1, "alice", "SOL", SOL_ADDR))
        outcome = run(tracking.untrack(1, "sol", SOL_ADDR))
        assert outcome.status == STOPPED
        assert outcome.stream_released is True
        assert streams.deleted == [("stream-1", ChainFamily.SINGLE_LEDGER)]
        assert run(store.find_by_chain_and_address("SOL", SOL_ADDR)) is None

    def test_not_tracking(self, tracking, streams):
        run(tracking.track(1, "alice", "ETH", ETH_ADDR))
        assert run(tracking.untrack(2, "ETH", ETH_ADDR)).status == NOT_TRACKING
        assert run(tracking.untrack(1, "BASE", ETH_ADDR)).status == NOT_TRACKING
        assert streams.deleted == []

    def test_release_failure_still_stops(self, tracking, store, streams):
        run(tracking.track(1, "alice", "ETH", ETH_ADDR))
        streams.fail_delete = True
        outcome = run(tracking.untrack(1, "ETH", ETH_ADDR))
        assert outcome.status == STOPPED
        assert outcome.stream_released is False
        assert run(store.list_for_user(1)) == []

    def test_untrack_pending_wallet_needs_no_release(self, tracking, streams):
        streams.fail_create = True
        with pytest.raises(StreamProvisionFailed):
            run(tracking.track(1, "alice", "ETH", ETH_ADDR))
        outcome = run(tracking.untrack(1, "ETH", ETH_ADDR))
        assert outcome.status == STOPPED
        assert outcome.stream_released is None
        assert streams.deleted == []


class TestQueries:
    def test_list_and_stats(self, tracking):
        assert run(tracking.stats(1)) is None
        run(tracking.track(1, "alice", "ETH", ETH_ADDR))
        run(tracking.track(1, "alice", "SOL", SOL_ADDR))

        assert len(run(tracking.list_wallets(1))) == 2
        assert [w.chain_ticker for w in run(tracking.list_wallets(1, "sol"))] == ["SOL"]

        user, wallets = run(tracking.stats(1))
        assert user.username == "alice"
        assert len(wallets) == 2

    def test_list_with_unknown_chain(self, tracking):
        with pytest.raises(UnsupportedChain):
            run(tracking.list_wallets(1, "BTC"))
