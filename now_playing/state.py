"""
Shared state for the now_playing package.

Holds the metadata store written by the player poller and read by every
subscriber tick. It imports NOTHING from the rest of the package so every
other module can depend on it.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class TrackMetadata:
    """
    Title/album/artists snapshot for one player.

    Every field is optional: None means "unknown", never an error.
    Instances are immutable so a snapshot handed to a reader cannot change
    under it when the poller publishes a newer record.
    """
    title: Optional[str] = None
    album: Optional[str] = None
    artists: Optional[Tuple[str, ...]] = field(default=None)

    def __post_init__(self):
        # Accept any sequence (playerctl gives lists) but store a tuple
        if self.artists is not None and not isinstance(self.artists, tuple):
            object.__setattr__(self, "artists", tuple(self.artists))

    def is_empty(self) -> bool:
        return self.title is None and self.album is None and not self.artists

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "album": self.album,
            "artists": list(self.artists) if self.artists is not None else None,
        }


EMPTY_METADATA = TrackMetadata()


class MetadataStore:
    """
    Concurrency-safe map of player identity -> TrackMetadata, plus the list
    of player identities seen by the most recent enumeration.

    Each table has its own lock and every critical section is a copy or a
    swap, so a tick reading the store never waits on player I/O.
    """

    def __init__(self):
        self._metadata_lock = threading.Lock()
        self._players_lock = threading.Lock()
        self._metadata: Dict[str, TrackMetadata] = {}
        self._known_players: Tuple[str, ...] = ()

    def replace_known_players(self, player_ids: Iterable[str]) -> None:
        """Discard the previous player list and install a new one in a single swap."""
        snapshot = tuple(player_ids)
        with self._players_lock:
            self._known_players = snapshot

    def list_known_players(self) -> List[str]:
        with self._players_lock:
            return list(self._known_players)

    def upsert_metadata(self, player_id: str, data: TrackMetadata) -> None:
        """Replace (or insert) the whole record for player_id. Never merges."""
        with self._metadata_lock:
            self._metadata[player_id] = data

    def get_metadata(self, player_id: Optional[str]) -> Optional[TrackMetadata]:
        if player_id is None:
            return None
        with self._metadata_lock:
            return self._metadata.get(player_id)

    def metadata_snapshot(self) -> Dict[str, TrackMetadata]:
        with self._metadata_lock:
            return dict(self._metadata)
