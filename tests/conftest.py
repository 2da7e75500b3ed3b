"""Pytest configuration and shared fixtures"""
import os
import sys
import tempfile
import threading
import time

# Keep settings/state/log files out of the source tree. Must happen before
# settings.py / state_manager.py / logging_config.py are first imported.
_TMP_DIR = tempfile.mkdtemp(prefix="now_playing_tests_")
os.environ.setdefault("NOW_PLAYING_SETTINGS_FILE", os.path.join(_TMP_DIR, "settings.json"))
os.environ.setdefault("NOW_PLAYING_STATE_FILE", os.path.join(_TMP_DIR, "state.json"))
os.environ.setdefault("NOW_PLAYING_LOGS_DIR", os.path.join(_TMP_DIR, "logs"))

# Add parent directory to path so the top-level modules import
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from now_playing import BasePlayerSource, MetadataStore, PlayerHandle, TemplateRegistry, TrackMetadata
from now_playing.sources.base import SourceConfig


class FakeHandle(PlayerHandle):
    """Player whose fetch result is scripted by the test."""

    def __init__(self, identity, metadata=None, delay=0.0, error=None):
        self._identity = identity
        self.metadata = metadata if metadata is not None else TrackMetadata(title=f"{identity} song")
        self.delay = delay
        self.error = error
        self.calls = 0

    @property
    def identity(self):
        return self._identity

    def fetch_metadata(self, timeout):
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.metadata


class FakeSource(BasePlayerSource):
    """
    Source returning the handles in ``players``. Set ``error`` to make
    enumeration fail, ``on_enumerate`` to observe each call.
    """

    def __init__(self, players=None):
        super().__init__()
        self.players = list(players or [])
        self.error = None
        self.enumerations = 0
        self.on_enumerate = None
        self.enumerated = threading.Event()

    @classmethod
    def get_config(cls):
        return SourceConfig(name="fake", display_name="Fake players", platforms=["Linux", "Windows", "Darwin"])

    def enumerate_players(self, timeout):
        self.enumerations += 1
        self.enumerated.set()
        if self.on_enumerate is not None:
            self.on_enumerate(self)
        if self.error is not None:
            raise self.error
        return list(self.players)


@pytest.fixture
def store():
    return MetadataStore()


@pytest.fixture
def registry():
    return TemplateRegistry(artists_separator=", ")


@pytest.fixture
def fake_source():
    return FakeSource([
        FakeHandle("spotify", TrackMetadata(title="Song", album="Album", artists=["A", "B"])),
        FakeHandle("vlc", TrackMetadata(title="Movie")),
    ])


@pytest.fixture
def fast_poller_options():
    """Poller settings that keep threaded tests quick."""
    return {
        "interval": 0.05,
        "fetch_timeout": 0.5,
        "enumerate_timeout": 0.5,
        "failure_backoff": 0.05,
        "max_workers": 2,
    }


def wait_for(predicate, timeout=2.0, interval=0.01):
    """Poll ``predicate`` until it is truthy or ``timeout`` expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())
