"""Tests for the background player poller"""
import threading

import pytest

from conftest import FakeHandle, FakeSource, wait_for
from now_playing import (
    EnumerationError,
    FetchError,
    FetchTimeoutError,
    MetadataStore,
    PlayerPoller,
    PollerState,
    TrackMetadata,
)
from now_playing.helpers import create_fetch_executor, shutdown_executor


def make_poller(store, source, **options):
    defaults = {
        "interval": 0.05,
        "fetch_timeout": 0.5,
        "enumerate_timeout": 0.5,
        "failure_backoff": 0.05,
        "max_workers": 4,
    }
    defaults.update(options)
    return PlayerPoller(store, source, **defaults)


class RecordingHandle(FakeHandle):
    """Records what the store looked like when its fetch ran."""

    def __init__(self, identity, store):
        super().__init__(identity)
        self.store = store
        self.seen_players = None
        self.seen_metadata = "unset"

    def fetch_metadata(self, timeout):
        self.seen_players = self.store.list_known_players()
        self.seen_metadata = self.store.get_metadata(self.identity)
        return super().fetch_metadata(timeout)


# ----------------------------------------------------------------------
# Single iterations (poll_once, no thread)
# ----------------------------------------------------------------------

def test_poll_once_publishes_players_and_metadata(store, fake_source):
    poller = make_poller(store, fake_source)

    assert poller.poll_once() is True

    assert store.list_known_players() == ["spotify", "vlc"]
    assert store.get_metadata("spotify") == TrackMetadata(title="Song", album="Album", artists=["A", "B"])
    assert store.get_metadata("vlc").title == "Movie"
    assert poller.working_set() == []
    assert poller.stats.cycles == 1
    assert poller.stats.fetches == 2


def test_player_list_is_published_before_metadata(store):
    handle = RecordingHandle("new-player", store)
    poller = make_poller(store, FakeSource([handle]))

    poller.poll_once()

    # Known but metadata-absent while its own fetch was running
    assert handle.seen_players == ["new-player"]
    assert handle.seen_metadata is None
    assert store.get_metadata("new-player") is not None


def test_simulated_timeout_keeps_previous_metadata(store):
    old = TrackMetadata(title="Old song")
    store.upsert_metadata("stuck", old)
    source = FakeSource([
        FakeHandle("first", TrackMetadata(title="One")),
        FakeHandle("stuck", error=FetchTimeoutError("stuck", 0.5)),
        FakeHandle("third", TrackMetadata(title="Three")),
    ])
    poller = make_poller(store, source)

    assert poller.poll_once() is True

    assert store.get_metadata("first").title == "One"
    assert store.get_metadata("third").title == "Three"
    assert store.get_metadata("stuck") is old
    assert store.list_known_players() == ["first", "stuck", "third"]
    assert poller.stats.fetch_timeouts == 1


def test_fetch_failure_only_affects_that_player(store):
    source = FakeSource([
        FakeHandle("broken", error=FetchError("broken", "player is gone")),
        FakeHandle("ok", TrackMetadata(title="Fine")),
    ])
    poller = make_poller(store, source)

    assert poller.poll_once() is True

    assert store.get_metadata("broken") is None
    assert store.get_metadata("ok").title == "Fine"
    assert poller.stats.fetch_failures == 1


def test_unexpected_fetch_exception_is_contained(store):
    source = FakeSource([
        FakeHandle("weird", error=RuntimeError("boom")),
        FakeHandle("ok", TrackMetadata(title="Fine")),
    ])
    poller = make_poller(store, source)

    assert poller.poll_once() is True
    assert store.get_metadata("ok").title == "Fine"
    assert poller.stats.fetch_failures == 1


def test_non_metadata_result_counts_as_failure(store):
    handle = FakeHandle("odd")
    handle.metadata = {"title": "not a TrackMetadata"}
    poller = make_poller(store, FakeSource([handle]))

    poller.poll_once()

    assert store.get_metadata("odd") is None
    assert poller.stats.fetch_failures == 1


def test_enumeration_failure_returns_false_and_keeps_store(store, fake_source):
    poller = make_poller(store, fake_source)
    poller.poll_once()

    fake_source.error = EnumerationError("bus is down")
    assert poller.poll_once() is False

    assert store.list_known_players() == ["spotify", "vlc"]
    assert store.get_metadata("spotify").title == "Song"
    assert poller.stats.enumeration_failures == 1


def test_disappeared_player_keeps_last_metadata(store, fake_source):
    poller = make_poller(store, fake_source)
    poller.poll_once()

    fake_source.players = [p for p in fake_source.players if p.identity != "vlc"]
    poller.poll_once()

    assert store.list_known_players() == ["spotify"]
    assert store.get_metadata("vlc").title == "Movie"


def test_no_players_publishes_empty_list(store):
    store.replace_known_players(["old"])
    poller = make_poller(store, FakeSource([]))

    assert poller.poll_once() is True
    assert store.list_known_players() == []


def test_stop_mid_cycle_leaves_rest_for_next_merge(store):
    source = FakeSource()
    poller = make_poller(store, source)

    class StoppingHandle(FakeHandle):
        def fetch_metadata(self, timeout):
            poller._stop_event.set()
            return super().fetch_metadata(timeout)

    source.players = [StoppingHandle("a"), FakeHandle("b"), FakeHandle("c")]
    poller.poll_once()
    assert poller.working_set() == ["b", "c"]
    assert store.get_metadata("b") is None

    # Next cycle: leftovers are retained and merged with the new enumeration
    poller._stop_event.clear()
    source.players = [FakeHandle("c"), FakeHandle("d")]
    poller.poll_once()

    assert store.list_known_players() == ["b", "c", "d"]
    for identity in ("b", "c", "d"):
        assert store.get_metadata(identity) is not None
    assert poller.working_set() == []


# ----------------------------------------------------------------------
# Background thread
# ----------------------------------------------------------------------

def test_start_and_stop(store, fake_source):
    poller = make_poller(store, fake_source)
    assert poller.state == PollerState.STOPPED

    poller.start()
    try:
        assert poller.state == PollerState.RUNNING
        assert poller.is_alive()
        assert wait_for(lambda: store.get_metadata("vlc") is not None)
    finally:
        assert poller.stop(timeout=5) is True

    assert not poller.is_alive()
    assert poller.state == PollerState.STOPPED
    assert poller.error is None


def test_stop_without_start_is_a_noop(store, fake_source):
    poller = make_poller(store, fake_source)
    assert poller.stop() is True


def test_start_twice_runs_one_thread(store, fake_source):
    poller = make_poller(store, fake_source)
    poller.start()
    try:
        thread = poller._thread
        poller.start()
        assert poller._thread is thread
    finally:
        poller.stop(timeout=5)


def test_hung_fetch_is_bounded_by_timeout(store):
    old = TrackMetadata(title="Old song")
    store.upsert_metadata("hung", old)
    source = FakeSource([
        FakeHandle("first", TrackMetadata(title="One")),
        FakeHandle("hung", TrackMetadata(title="Never"), delay=1.0),
        FakeHandle("third", TrackMetadata(title="Three")),
    ])
    poller = make_poller(store, source, fetch_timeout=0.2, interval=5.0)

    poller.start()
    try:
        assert wait_for(lambda: store.get_metadata("third") is not None, timeout=3.0)
        assert store.get_metadata("first").title == "One"
        assert store.get_metadata("hung") is old
        assert poller.stats.fetch_timeouts == 1
    finally:
        assert poller.stop(timeout=5) is True


def test_enumeration_failure_retries_after_backoff(store, fake_source):
    fake_source.error = EnumerationError("bus is down")
    # Long interval, short backoff: fast retries prove the backoff is used
    poller = make_poller(store, fake_source, interval=30.0, failure_backoff=0.05)

    poller.start()
    try:
        assert wait_for(lambda: fake_source.enumerations >= 3)
        assert poller.is_alive()
        assert store.list_known_players() == []

        fake_source.error = None
        assert wait_for(lambda: store.list_known_players() == ["spotify", "vlc"])
    finally:
        poller.stop(timeout=5)
    assert poller.error is None


def test_stop_interrupts_sleep(store, fake_source):
    poller = make_poller(store, fake_source, interval=60.0)
    poller.start()
    assert wait_for(lambda: store.get_metadata("vlc") is not None)

    assert poller.stop(timeout=2) is True


def test_crash_is_recorded_and_reported(fake_source):
    class ExplodingStore(MetadataStore):
        def replace_known_players(self, player_ids):
            raise RuntimeError("store exploded")

    reported = []
    called = threading.Event()

    def on_fatal(error):
        reported.append(error)
        called.set()

    poller = make_poller(ExplodingStore(), fake_source, on_fatal=on_fatal)
    poller.start()
    try:
        assert called.wait(2.0)
        assert wait_for(lambda: not poller.is_alive())
    finally:
        poller.stop(timeout=5)

    assert isinstance(poller.error, RuntimeError)
    assert reported == [poller.error]
    assert poller.state == PollerState.STOPPED


@pytest.mark.parametrize("bad_callback", [None, lambda error: 1 / 0])
def test_crash_with_missing_or_failing_callback(fake_source, bad_callback):
    class ExplodingStore(MetadataStore):
        def replace_known_players(self, player_ids):
            raise RuntimeError("store exploded")

    poller = make_poller(ExplodingStore(), fake_source, on_fatal=bad_callback)
    poller.start()
    try:
        assert wait_for(lambda: not poller.is_alive())
    finally:
        poller.stop(timeout=5)
    assert isinstance(poller.error, RuntimeError)


def test_hung_player_does_not_starve_others(store):
    release = threading.Event()

    class BlockedHandle(FakeHandle):
        def fetch_metadata(self, timeout):
            self.calls += 1
            # Ignores its own timeout
            release.wait()
            return TrackMetadata(title="late")

    class CountingHandle(FakeHandle):
        def fetch_metadata(self, timeout):
            self.calls += 1
            return TrackMetadata(title=f"ok {self.calls}")

    blocked = BlockedHandle("hung")
    healthy = CountingHandle("healthy")
    poller = make_poller(store, FakeSource([blocked, healthy]), fetch_timeout=0.2, max_workers=2)
    poller._executor = create_fetch_executor(poller.max_workers)

    titles = []
    try:
        for _ in range(4):
            poller.poll_once()
            titles.append(store.get_metadata("healthy").title)
    finally:
        release.set()
        shutdown_executor(poller._executor)

    assert titles == ["ok 1", "ok 2", "ok 3", "ok 4"]
    # Submitted once, then skipped while still running
    assert blocked.calls == 1
    assert poller.stats.fetch_timeouts == 1
    assert poller.stats.fetch_skips == 3
    assert store.get_metadata("hung") is None


def test_player_is_fetched_again_once_its_call_finishes(store):
    release = threading.Event()

    class SlowHandle(FakeHandle):
        def fetch_metadata(self, timeout):
            self.calls += 1
            if self.calls == 1:
                release.wait()
            return TrackMetadata(title=f"call {self.calls}")

    slow = SlowHandle("slow")
    poller = make_poller(store, FakeSource([slow]), fetch_timeout=0.2, max_workers=2)
    poller._executor = create_fetch_executor(poller.max_workers)
    try:
        poller.poll_once()
        assert store.get_metadata("slow") is None

        release.set()
        assert wait_for(lambda: poller._in_flight["slow"].done())
        poller.poll_once()
    finally:
        shutdown_executor(poller._executor)

    assert store.get_metadata("slow").title == "call 2"
    assert poller.stats.fetch_skips == 0
