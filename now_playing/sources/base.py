"""
Base classes for player sources.

A player source is the transport the poller uses to reach media players:
it lists the players that are currently reachable and hands out one
PlayerHandle per player, which can fetch that player's track metadata.

To create a new source:
1. Create a new file in now_playing/sources/
2. Subclass BasePlayerSource and PlayerHandle
3. Implement get_config(), enumerate_players() and fetch_metadata()
4. Import the module in sources/__init__.py so get_source() can find it

Both player calls take an explicit timeout. Sources MUST honour it so the
poller's shutdown latency stays bounded; the poller additionally stops
waiting after its own hard timeout.
"""
from __future__ import annotations

import platform
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List

from ..state import TrackMetadata


class PlayerSourceError(Exception):
    """Base class for transport failures talking to media players."""


class EnumerationError(PlayerSourceError):
    """Listing the reachable players failed. Transient: the poller retries after a backoff."""


class FetchError(PlayerSourceError):
    """Fetching one player's metadata failed. Only affects that player."""

    def __init__(self, identity: str, reason: str):
        self.identity = identity
        self.reason = reason
        super().__init__(f"{identity}: {reason}")


class FetchTimeoutError(FetchError):
    def __init__(self, identity: str, timeout: float):
        self.timeout = timeout
        super().__init__(identity, f"no metadata within {timeout:.1f}s")


@dataclass
class SourceConfig:
    """
    Static configuration for a player source.
    """
    name: str                              # Internal ID used in settings (poller.source)
    display_name: str                      # Human-readable name for logs/UI
    platforms: List[str] = field(default_factory=lambda: ["Linux"])


class PlayerHandle(ABC):
    """One reachable media player."""

    @property
    @abstractmethod
    def identity(self) -> str:
        """Stable, opaque name of the player (unique key for all per-player state)."""

    @abstractmethod
    def fetch_metadata(self, timeout: float) -> TrackMetadata:
        """
        Fetch the player's current track metadata.

        Args:
            timeout: Seconds the call may take

        Returns:
            TrackMetadata (fields the player does not report are None)

        Raises:
            FetchTimeoutError: the player did not answer in time
            FetchError: any other failure
        """

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.identity}>"


class BasePlayerSource(ABC):
    """
    Abstract base class for player sources.

    Required methods:
        get_config() - Return static SourceConfig
        enumerate_players() - List reachable players

    Optional methods:
        is_available() - Check if source can run (platform, dependencies)
    """

    def __init__(self):
        self._config = self.get_config()

    @classmethod
    @abstractmethod
    def get_config(cls) -> SourceConfig:
        """Return static source configuration."""

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def display_name(self) -> str:
        return self._config.display_name

    def is_available(self) -> bool:
        """
        Check if this source can be used.

        Default implementation checks if current platform is in config.platforms.
        """
        return platform.system() in self._config.platforms

    @abstractmethod
    def enumerate_players(self, timeout: float) -> List[PlayerHandle]:
        """
        List every currently reachable player.

        Args:
            timeout: Seconds the call may take

        Returns:
            Handles in the order the transport reports them. No players is an
            empty list, not an error.

        Raises:
            EnumerationError: the list could not be obtained
        """
