"""
Background player poller.

One long-lived thread that keeps the MetadataStore current:

    enumerate players -> merge into working set -> publish player list
    -> fetch each player's metadata (hard timeout) -> upsert -> sleep

Subscribers never wait on this thread; they only read the store.
"""
from __future__ import annotations

import concurrent.futures
import enum
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from logging_config import get_logger
from .helpers import (
    PollerStats,
    create_fetch_executor,
    log_state_summary,
    shutdown_executor,
    wait_with_timeout,
)
from .sources.base import BasePlayerSource, FetchTimeoutError, PlayerHandle, PlayerSourceError
from .state import MetadataStore, TrackMetadata

logger = get_logger(__name__)

DEFAULT_INTERVAL = 5.0
DEFAULT_FETCH_TIMEOUT = 5.0
DEFAULT_ENUMERATE_TIMEOUT = 5.0
DEFAULT_FAILURE_BACKOFF = 5.0


class PollerState(enum.Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    STOPPING = "stopping"


class PlayerPoller:
    """
    Owns the poll thread and its lifecycle.

    Cancellation is cooperative: ``stop()`` sets an event that the loop checks
    once per iteration (and between two player fetches), then joins the
    thread. A fetch already in flight is never interrupted; the poller simply
    stops waiting for it after ``fetch_timeout``.
    """

    def __init__(
        self,
        store: MetadataStore,
        source: BasePlayerSource,
        interval: float = DEFAULT_INTERVAL,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        enumerate_timeout: float = DEFAULT_ENUMERATE_TIMEOUT,
        failure_backoff: float = DEFAULT_FAILURE_BACKOFF,
        max_workers: int = 4,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
    ):
        self.store = store
        self.source = source
        self.interval = float(interval)
        self.fetch_timeout = float(fetch_timeout)
        self.enumerate_timeout = float(enumerate_timeout)
        self.failure_backoff = float(failure_backoff)
        self.max_workers = max_workers
        self.on_fatal = on_fatal

        self.stats = PollerStats()
        # Set when an unexpected exception killed the thread
        self.error: Optional[BaseException] = None

        self._state = PollerState.STOPPED
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        # Players discovered this cycle and not yet processed; only touched by the poll thread
        self._working_set: Dict[str, PlayerHandle] = {}
        # Last submitted fetch per player; a player is not resubmitted while it is still running
        self._in_flight: Dict[str, concurrent.futures.Future] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> PollerState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: PollerState) -> None:
        with self._state_lock:
            self._state = state

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the poll thread. No-op when it is already running."""
        with self._state_lock:
            if self._thread is not None and self._thread.is_alive():
                logger.debug("Player poller already running")
                return
            self._stop_event.clear()
            self.error = None
            self._executor = create_fetch_executor(self.max_workers)
            self._thread = threading.Thread(target=self._run, name="NowPlaying_Poller", daemon=True)
            self._state = PollerState.RUNNING
        self._thread.start()
        logger.info(
            f"Player poller started ({self.source.display_name}, every {self.interval:.1f}s, "
            f"fetch timeout {self.fetch_timeout:.1f}s)"
        )

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Ask the poll thread to stop and wait for its current iteration to finish.

        Args:
            timeout: Max seconds to wait for the join (None = wait for good)

        Returns:
            True if the thread is no longer running
        """
        thread = self._thread
        if thread is None:
            return True

        if thread.is_alive():
            self._set_state(PollerState.STOPPING)
            self._stop_event.set()
            thread.join(timeout)
            if thread.is_alive():
                logger.warning("Player poller did not stop in time (a player call is probably hung)")
                return False

        self._thread = None
        self._set_state(PollerState.STOPPED)
        shutdown_executor(self._executor)
        self._executor = None
        self._in_flight.clear()
        logger.info("Player poller stopped")
        return True

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                if self.poll_once():
                    delay = self.interval
                else:
                    delay = self.failure_backoff
                # Interruptible sleep: stop() wakes us immediately
                self._stop_event.wait(delay)
        except Exception as e:
            # Nothing else refreshes metadata if this thread dies: make it loud
            self.error = e
            logger.critical(f"Player poller crashed: {e}", exc_info=True)
            if self.on_fatal is not None:
                try:
                    self.on_fatal(e)
                except Exception as callback_error:
                    logger.error(f"on_fatal callback failed: {callback_error}", exc_info=True)
        finally:
            self._set_state(PollerState.STOPPED)

    def poll_once(self) -> bool:
        """
        Run one poll iteration on the calling thread.

        Returns:
            False if enumeration failed (caller should back off), True otherwise
        """
        self.stats.cycles += 1
        started = time.monotonic()

        # 1. Enumerate
        try:
            players = self.source.enumerate_players(self.enumerate_timeout)
        except Exception as e:
            self.stats.enumeration_failures += 1
            logger.error(f"Failed to get player list: {e}")
            return False

        # 2. Merge: known identities are refreshed, not reset
        for handle in players:
            self._working_set[handle.identity] = handle

        # 3. Publish the whole list, even before any metadata is known
        player_ids = list(self._working_set)
        self.store.replace_known_players(player_ids)
        logger.debug(f"Poll cycle {self.stats.cycles}: {len(player_ids)} player(s): {', '.join(player_ids) or 'none'}")

        # Forget finished calls of players that were not seen again
        self._in_flight = {k: f for k, f in self._in_flight.items() if not f.done()}

        # 4 + 5. Drain the working set, one bounded fetch per player
        while self._working_set:
            if self._stop_event.is_set():
                logger.debug(f"Stop requested, {len(self._working_set)} player(s) left unprocessed")
                break
            identity = next(iter(self._working_set))
            handle = self._working_set.pop(identity)
            metadata = self._fetch(handle)
            if metadata is not None:
                self.store.upsert_metadata(identity, metadata)

        self.stats.last_cycle_time = time.monotonic() - started
        log_state_summary(self.store, self.stats)
        return True

    def _fetch(self, handle: PlayerHandle) -> Optional[TrackMetadata]:
        """Fetch one player's metadata; failures are logged and yield None (stale data is kept)."""
        identity = handle.identity
        if self._executor is None:
            # poll_once() called without start(): run inline
            self.stats.fetches += 1
            return self._check_result(identity, lambda: handle.fetch_metadata(self.fetch_timeout))

        pending = self._in_flight.get(identity)
        if pending is not None and not pending.done():
            # Still hung from an earlier cycle: resubmitting would tie up another worker
            self.stats.fetch_skips += 1
            logger.warning(f"Previous metadata fetch for '{identity}' is still running, keeping stale metadata")
            return None

        self.stats.fetches += 1
        future = self._executor.submit(handle.fetch_metadata, self.fetch_timeout)
        self._in_flight[identity] = future
        try:
            return self._check_result(identity, lambda: wait_with_timeout(future, self.fetch_timeout))
        finally:
            if future.done():
                self._in_flight.pop(identity, None)

    def _check_result(self, identity: str, call: Callable[[], Any]) -> Optional[TrackMetadata]:
        """Run ``call`` and turn every failure into a logged None."""
        try:
            metadata = call()
        except (concurrent.futures.TimeoutError, FetchTimeoutError):
            self.stats.fetch_timeouts += 1
            logger.warning(f"Metadata fetch for '{identity}' timed out after {self.fetch_timeout:.1f}s")
            return None
        except PlayerSourceError as e:
            self.stats.fetch_failures += 1
            logger.warning(f"Metadata fetch for '{identity}' failed: {e}")
            return None
        except Exception as e:
            self.stats.fetch_failures += 1
            logger.warning(f"Unexpected error fetching metadata for '{identity}': {e}", exc_info=True)
            return None

        if not isinstance(metadata, TrackMetadata):
            self.stats.fetch_failures += 1
            logger.warning(f"Player '{identity}' returned {type(metadata).__name__}, expected TrackMetadata")
            return None
        return metadata

    def working_set(self) -> List[str]:
        """Identities currently waiting in the working set (empty between cycles)."""
        return list(self._working_set)
