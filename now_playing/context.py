"""
Application context: everything one activation of the plugin owns.

A host builds one NowPlayingContext when it loads, activates it (starts the
poller), creates one Subscriber per text output, and deactivates it when it
unloads. Tests build a fresh context each.
"""
from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional

from logging_config import get_logger
from .poller import PlayerPoller
from .sources import get_source
from .sources.base import BasePlayerSource
from .state import MetadataStore, TrackMetadata
from .subscriber import Subscriber, TextSink
from .templates import TemplateRegistry

logger = get_logger(__name__)


class NowPlayingContext:
    """
    Args:
        source: Player source for the poller (default: configured poller.source)
        store: Metadata store (default: new, empty store)
        registry: Template registry (default: new registry using template config)
        poller_options: Overrides for PlayerPoller keyword arguments
        refresh_period: Default refresh period for new subscribers
        default_template: Template body registered for subscribers created without one
    """

    def __init__(
        self,
        source: Optional[BasePlayerSource] = None,
        store: Optional[MetadataStore] = None,
        registry: Optional[TemplateRegistry] = None,
        poller_options: Optional[Dict[str, Any]] = None,
        refresh_period: Optional[float] = None,
        default_template: Optional[str] = None,
    ):
        import config  # Import here so tests can build contexts without a settings file first

        self.store = store or MetadataStore()
        self.registry = registry or TemplateRegistry(
            artists_separator=config.TEMPLATES["artists_separator"],
            strict=config.TEMPLATES["strict"],
        )
        self.refresh_period = refresh_period if refresh_period is not None else config.SUBSCRIBER["refresh_period"]
        self.default_template = default_template if default_template is not None else config.TEMPLATES["default"]

        options = {
            "interval": config.POLLER["interval"],
            "fetch_timeout": config.POLLER["fetch_timeout"],
            "enumerate_timeout": config.POLLER["enumerate_timeout"],
            "failure_backoff": config.POLLER["failure_backoff"],
            "max_workers": config.POLLER["max_workers"],
            "on_fatal": self._on_poller_fatal,
        }
        options.update(poller_options or {})
        self.poller = PlayerPoller(self.store, source or get_source(), **options)

        self._subscribers_lock = threading.Lock()
        self._subscribers: Dict[str, Subscriber] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def activate(self) -> None:
        self.poller.start()

    def deactivate(self, timeout: Optional[float] = None) -> bool:
        """Stop the poller (joins its current iteration) and drop all subscribers."""
        stopped = self.poller.stop(timeout)
        with self._subscribers_lock:
            template_names = {s.template_name for s in self._subscribers.values()}
            self._subscribers.clear()
        for template_name in template_names:
            self.registry.unregister(template_name)
        return stopped

    def __enter__(self) -> "NowPlayingContext":
        self.activate()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.deactivate()

    def _on_poller_fatal(self, error: BaseException) -> None:
        logger.critical(
            f"Metadata is no longer refreshed: player poller died ({type(error).__name__}: {error}). "
            f"Reload the script to restart it."
        )

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def create_subscriber(
        self,
        name: str,
        sink: Optional[TextSink] = None,
        player: Optional[str] = None,
        template: Optional[str] = None,
        template_name: Optional[str] = None,
        refresh_period: Optional[float] = None,
        initial_cooldown: float = 0.0,
    ) -> Subscriber:
        """
        Create (or replace) the subscriber called ``name``.

        The template body falls back to the configured default template. An
        invalid body raises TemplateInvalidError and no subscriber is created.
        """
        subscriber = Subscriber(
            name,
            self.store,
            self.registry,
            sink=sink,
            refresh_period=self.refresh_period if refresh_period is None else refresh_period,
            template_name=template_name,
            initial_cooldown=initial_cooldown,
        )
        if template is not None or subscriber.template_name not in self.registry:
            subscriber.set_template(template if template is not None else self.default_template)
        subscriber.set_bound_player(player)

        with self._subscribers_lock:
            self._subscribers[name] = subscriber
        logger.debug(f"Created {subscriber!r}")
        return subscriber

    def remove_subscriber(self, name: str) -> bool:
        with self._subscribers_lock:
            subscriber = self._subscribers.pop(name, None)
        if subscriber is None:
            return False
        # Shared template names stay while another subscriber still uses them
        if not any(s.template_name == subscriber.template_name for s in self.subscribers()):
            self.registry.unregister(subscriber.template_name)
        return True

    def get_subscriber(self, name: str) -> Optional[Subscriber]:
        with self._subscribers_lock:
            return self._subscribers.get(name)

    def subscribers(self) -> List[Subscriber]:
        with self._subscribers_lock:
            return list(self._subscribers.values())

    # ------------------------------------------------------------------
    # Queries for hosts
    # ------------------------------------------------------------------

    def list_known_players(self) -> List[str]:
        return self.store.list_known_players()

    def render(self, template_name: str, player_id: Optional[str] = None, metadata: Optional[TrackMetadata] = None) -> str:
        """
        Render ``template_name`` for ``player_id`` (or an explicit metadata record).

        Raises:
            TemplateError: same as TemplateRegistry.render
        """
        if metadata is None:
            metadata = self.store.get_metadata(player_id)
        return self.registry.render(template_name, metadata)

    def health(self) -> Dict[str, Any]:
        return {
            "poller_state": self.poller.state.value,
            "poller_alive": self.poller.is_alive(),
            "poller_error": repr(self.poller.error) if self.poller.error else None,
            "known_players": self.store.list_known_players(),
            "subscribers": [s.name for s in self.subscribers()],
            "stats": self.poller.stats.as_dict(),
        }
