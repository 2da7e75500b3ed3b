"""
Helper functions for the now_playing package.
Pure utility functions with minimal dependencies.

Dependencies: state
"""
from __future__ import annotations

import concurrent.futures
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, Optional

from logging_config import get_logger
from .state import MetadataStore

logger = get_logger(__name__)

# Log a poller summary at most every 5 minutes
STATE_LOG_INTERVAL = 300


# =============================================================================
# Thread Executor for Bounded Player Calls
# =============================================================================
# Player calls run on a small pool so the poller can stop waiting after a hard
# timeout even when the call itself never returns. A hung call keeps its
# worker busy until it finishes; the poller skips a player whose previous
# call is still running, so each hung player holds at most one worker.
# shutdown(wait=False) never blocks on hung calls.

def create_fetch_executor(max_workers: int = 4) -> ThreadPoolExecutor:
    """Create the worker pool used for bounded metadata fetches."""
    return ThreadPoolExecutor(
        max_workers=max(1, int(max_workers)),
        thread_name_prefix="NowPlaying_Fetch"
    )


def wait_with_timeout(future: concurrent.futures.Future, timeout: float) -> Any:
    """
    Wait at most ``timeout`` seconds for a submitted player call.

    Args:
        future: Future returned by the fetch executor
        timeout: Seconds to wait for the result

    Returns:
        Result of the call

    Raises:
        concurrent.futures.TimeoutError: the call did not finish in time. The
            call keeps running in the background and keeps its worker.
        Exception: whatever the call raised.
    """
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError:
        # Only cancels if the call never started (pool saturated by hung calls)
        future.cancel()
        raise


def shutdown_executor(executor: Optional[ThreadPoolExecutor]) -> None:
    """Shutdown a fetch executor without waiting for hung calls."""
    if executor is None:
        return
    # wait=False ensures we don't block if threads are hung
    # cancel_futures=True drops queued work
    executor.shutdown(wait=False, cancel_futures=True)


def matches_any(name: str, patterns: Iterable[str]) -> bool:
    """Case-insensitive partial match of ``name`` against any pattern."""
    lowered = name.lower()
    return any(p and p.lower() in lowered for p in patterns)


class PollerStats:
    """Counters kept by the poller for the periodic state summary."""

    def __init__(self):
        self.cycles = 0
        self.enumeration_failures = 0
        self.fetches = 0
        self.fetch_timeouts = 0
        self.fetch_failures = 0
        self.fetch_skips = 0
        self.last_cycle_time: Optional[float] = None
        self.last_summary_time: float = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "cycles": self.cycles,
            "enumeration_failures": self.enumeration_failures,
            "fetches": self.fetches,
            "fetch_timeouts": self.fetch_timeouts,
            "fetch_failures": self.fetch_failures,
            "fetch_skips": self.fetch_skips,
            "last_cycle_time": self.last_cycle_time,
        }


def log_state_summary(store: MetadataStore, stats: PollerStats, force: bool = False) -> None:
    """Log key poller state periodically."""
    current_time = time.time()
    if not force and current_time - stats.last_summary_time < STATE_LOG_INTERVAL:
        return
    stats.last_summary_time = current_time

    if not logger.isEnabledFor(logging.INFO):
        return

    known = store.list_known_players()
    snapshot = store.metadata_snapshot()
    summary = (
        f"\nNow Playing State Summary:\n"
        f"|- Time: {time.strftime('%I:%M %p - %b %d, %Y')}\n"
        f"|- Known Players: {', '.join(known) if known else 'none'}\n"
        f"|- Players With Metadata: {len(snapshot)}\n"
        f"|- Poll Cycles: {stats.cycles}\n"
        f"|- Enumeration Failures: {stats.enumeration_failures}\n"
        f"|- Metadata Fetches: {stats.fetches}\n"
        f"|  |- Timeouts: {stats.fetch_timeouts}\n"
        f"|  |- Failures: {stats.fetch_failures}\n"
        f"|  `- Skipped (still running): {stats.fetch_skips}\n"
    )
    for player_id in known:
        meta = snapshot.get(player_id)
        if meta is None:
            summary += f"|  {player_id}: (no metadata yet)\n"
        else:
            artists = ", ".join(meta.artists or ())
            summary += f"|  {player_id}: {artists or '?'} - {meta.title or '?'}\n"
    logger.info(summary.rstrip("\n"))
