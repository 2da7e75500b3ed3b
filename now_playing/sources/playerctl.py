"""
Linux MPRIS player source via playerctl.

This source reaches any MPRIS-compatible media player on the session bus
(Spotify, VLC, Firefox, mpv with mpv-mpris, Rhythmbox, ...).

Requirements:
- Linux operating system
- playerctl installed: sudo apt install playerctl

Every call is a short-lived ``playerctl`` subprocess bounded by the timeout
the poller passes in, so a wedged player can never stall the poll loop.
"""
from __future__ import annotations

import subprocess
from typing import Dict, Iterable, List, Optional, Sequence

from logging_config import get_logger
from ..helpers import matches_any
from ..state import TrackMetadata
from .base import (
    BasePlayerSource,
    EnumerationError,
    FetchError,
    FetchTimeoutError,
    PlayerHandle,
    SourceConfig,
)

logger = get_logger(__name__)

TITLE_KEY = "xesam:title"
ALBUM_KEY = "xesam:album"
ARTIST_KEY = "xesam:artist"

_NO_PLAYERS_MARKERS = ("no players", "no player could handle")


def _is_no_players(stderr: str) -> bool:
    lowered = (stderr or "").lower()
    return any(marker in lowered for marker in _NO_PLAYERS_MARKERS)


def parse_player_list(output: str) -> List[str]:
    """Parse ``playerctl --list-all`` output: one player name per line, order kept, duplicates dropped."""
    players: List[str] = []
    for line in output.splitlines():
        name = line.strip()
        if name and name not in players:
            players.append(name)
    return players


def parse_metadata_table(output: str) -> TrackMetadata:
    """
    Parse the table printed by ``playerctl --player=NAME metadata``.

    Each line is ``<player> <key> <value>``; list values (artists) get one
    line per element, in order. Empty values count as unknown.
    """
    values: Dict[str, List[str]] = {}
    for line in output.splitlines():
        parts = line.strip().split(None, 2)
        if len(parts) < 2:
            continue
        key = parts[1]
        value = parts[2].strip() if len(parts) > 2 else ""
        if value:
            values.setdefault(key, []).append(value)

    def first(key: str) -> Optional[str]:
        found = values.get(key)
        return found[0] if found else None

    artists = values.get(ARTIST_KEY)
    return TrackMetadata(
        title=first(TITLE_KEY),
        album=first(ALBUM_KEY),
        artists=tuple(artists) if artists else None,
    )


class PlayerctlPlayer(PlayerHandle):
    """One MPRIS player, addressed by its playerctl instance name."""

    def __init__(self, source: "PlayerctlSource", name: str):
        self._source = source
        self._name = name

    @property
    def identity(self) -> str:
        return self._name

    def fetch_metadata(self, timeout: float) -> TrackMetadata:
        try:
            result = self._source.run(["--player=" + self._name, "metadata"], timeout)
        except subprocess.TimeoutExpired as e:
            raise FetchTimeoutError(self._name, timeout) from e
        except OSError as e:
            raise FetchError(self._name, f"could not run playerctl: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            if _is_no_players(stderr):
                raise FetchError(self._name, "player is gone")
            raise FetchError(self._name, stderr or f"playerctl exited with {result.returncode}")

        return parse_metadata_table(result.stdout)


class PlayerctlSource(BasePlayerSource):
    """
    MPRIS integration via playerctl.

    Configuration:
    - playerctl.binary: playerctl executable (name on PATH or full path)
    - playerctl.ignore_players: player names to skip (partial match)
    """

    def __init__(self, binary: str = "playerctl", ignore_players: Sequence[str] = ()):
        super().__init__()
        self.binary = binary
        self.ignore_players = list(ignore_players)
        self._playerctl_available: Optional[bool] = None

    @classmethod
    def get_config(cls) -> SourceConfig:
        return SourceConfig(
            name="playerctl",
            display_name="Linux (MPRIS via playerctl)",
            platforms=["Linux"],
        )

    def run(self, args: Iterable[str], timeout: float) -> subprocess.CompletedProcess:
        """Run playerctl with ``args``. Raises subprocess.TimeoutExpired / OSError."""
        return subprocess.run(
            [self.binary, *args],
            capture_output=True,
            encoding="utf-8",
            # Invalid UTF-8 in a tag becomes U+FFFD instead of raising
            errors="replace",
            timeout=timeout,
        )

    def is_available(self) -> bool:
        """
        Check if playerctl can be run.

        Caches the result to avoid repeated subprocess calls.
        """
        if self._playerctl_available is None:
            try:
                result = self.run(["--version"], timeout=2)
                self._playerctl_available = result.returncode == 0
                if self._playerctl_available:
                    logger.debug(f"playerctl found: {result.stdout.strip()}")
                else:
                    logger.warning("playerctl not available (command failed)")
            except FileNotFoundError:
                self._playerctl_available = False
                logger.warning("playerctl not installed. Install with: sudo apt install playerctl")
            except (OSError, subprocess.TimeoutExpired) as e:
                self._playerctl_available = False
                logger.warning(f"playerctl check failed: {e}")
        return self._playerctl_available

    def enumerate_players(self, timeout: float) -> List[PlayerHandle]:
        try:
            result = self.run(["--list-all"], timeout)
        except subprocess.TimeoutExpired as e:
            raise EnumerationError(f"playerctl --list-all timed out after {timeout:.1f}s") from e
        except FileNotFoundError as e:
            raise EnumerationError(f"playerctl not found ({self.binary})") from e
        except OSError as e:
            raise EnumerationError(f"could not run playerctl: {e}") from e

        if result.returncode != 0:
            if _is_no_players(result.stderr):
                return []
            raise EnumerationError(
                result.stderr.strip() or f"playerctl --list-all exited with {result.returncode}"
            )

        players = []
        for name in parse_player_list(result.stdout):
            if matches_any(name, self.ignore_players):
                continue
            players.append(PlayerctlPlayer(self, name))
        return players
