"""
Subscriber: one configured (player, template) binding producing one text output.

The host drives ``tick(dt)`` once per frame. The subscriber counts down its
cooldown and, when it runs out, renders its template against the bound
player's metadata and pushes the text to its sink. It never does player I/O.
"""
from __future__ import annotations

import threading
from typing import Any, Callable, Mapping, Optional

from logging_config import get_logger
from .state import EMPTY_METADATA, MetadataStore
from .templates import TemplateError, TemplateInvalidError, TemplateRegistry

logger = get_logger(__name__)

DEFAULT_REFRESH_PERIOD = 1.0

# Host settings keys understood by Subscriber.update()
SETTING_PLAYER = "player"
SETTING_TEMPLATE = "template"

TextSink = Callable[[str], None]


class Subscriber:
    """
    Args:
        name: Unique subscriber name (also the default template name)
        store: Shared metadata store
        registry: Shared template registry
        sink: Called with the rendered text on every refresh (None = render only)
        refresh_period: Seconds between refreshes
        template_name: Registry entry to render (default: ``name``). Several
            subscribers may share one name.
        initial_cooldown: Seconds before the first refresh (0 = first tick)
    """

    def __init__(
        self,
        name: str,
        store: MetadataStore,
        registry: TemplateRegistry,
        sink: Optional[TextSink] = None,
        refresh_period: float = DEFAULT_REFRESH_PERIOD,
        template_name: Optional[str] = None,
        initial_cooldown: float = 0.0,
    ):
        self.name = name
        self.store = store
        self.registry = registry
        self.sink = sink
        self.refresh_period = float(refresh_period)
        self.cooldown = float(initial_cooldown)
        self.last_text: Optional[str] = None

        # Guards the fields set by configuration updates (host UI thread)
        self._config_lock = threading.Lock()
        self._bound_player: Optional[str] = None
        self._template_name = template_name or name

    def __repr__(self) -> str:
        return f"<Subscriber {self.name} player={self.bound_player!r} template={self.template_name!r}>"

    # ------------------------------------------------------------------
    # Configuration (may arrive from another thread; applies on next tick)
    # ------------------------------------------------------------------

    @property
    def bound_player(self) -> Optional[str]:
        with self._config_lock:
            return self._bound_player

    @property
    def template_name(self) -> str:
        with self._config_lock:
            return self._template_name

    def set_bound_player(self, player_id: Optional[str]) -> None:
        player_id = (player_id or "").strip() or None
        with self._config_lock:
            self._bound_player = player_id

    def set_template_name(self, template_name: str) -> None:
        with self._config_lock:
            self._template_name = template_name

    def set_template(self, body: Optional[str]) -> None:
        """
        Register ``body`` under this subscriber's template name.

        Raises:
            TemplateInvalidError: body does not compile; the previous template stays active
        """
        self.registry.register(self.template_name, body)

    def update(self, settings: Mapping[str, Any]) -> None:
        """Apply a host settings update. Invalid templates are logged, never raised."""
        if SETTING_TEMPLATE in settings:
            try:
                self.set_template(settings.get(SETTING_TEMPLATE))
            except TemplateInvalidError as e:
                logger.warning(f"Subscriber '{self.name}': {e} (keeping previous template)")
        if SETTING_PLAYER in settings:
            self.set_bound_player(settings.get(SETTING_PLAYER))

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self, dt: float) -> Optional[str]:
        """
        Advance the cooldown by ``dt`` seconds and refresh when it runs out.

        Returns:
            The text pushed to the sink, or None when nothing was refreshed
        """
        self.cooldown -= dt
        if self.cooldown > 0:
            return None

        text = self.render()
        if self.sink is not None:
            try:
                self.sink(text)
            except Exception as e:
                # The host's text target failing must not break the host tick
                logger.error(f"Subscriber '{self.name}': text sink failed: {e}", exc_info=True)

        self.cooldown = self.refresh_period
        return text

    def render(self) -> str:
        """Render the current text now. Template errors become the displayed text."""
        with self._config_lock:
            player_id = self._bound_player
            template_name = self._template_name

        metadata = self.store.get_metadata(player_id) or EMPTY_METADATA
        try:
            text = self.registry.render(template_name, metadata)
        except TemplateError as e:
            text = str(e)
            if text != self.last_text:
                logger.debug(f"Subscriber '{self.name}': {e}")
        self.last_text = text
        return text
