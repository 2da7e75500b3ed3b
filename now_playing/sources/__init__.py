"""
Player source registry.

Usage:
    from now_playing.sources import get_source

    source = get_source("playerctl")
    for handle in source.enumerate_players(timeout=5):
        handle.fetch_metadata(timeout=5)
"""
from typing import Dict, Optional, Type

from logging_config import get_logger
from .base import (
    BasePlayerSource,
    EnumerationError,
    FetchError,
    FetchTimeoutError,
    PlayerHandle,
    PlayerSourceError,
    SourceConfig,
)
from .playerctl import PlayerctlSource

logger = get_logger(__name__)

# Registry of known source classes, keyed by SourceConfig.name
# When adding a new source, add it here.
_registry: Dict[str, Type[BasePlayerSource]] = {
    PlayerctlSource.get_config().name: PlayerctlSource,
}


def get_source(name: Optional[str] = None) -> BasePlayerSource:
    """
    Build the player source configured under ``name`` (default: poller.source).

    Raises:
        KeyError: no source registered under that name
    """
    import config  # Import here to avoid circular imports

    name = name or config.POLLER["source"]
    source_cls = _registry.get(name)
    if source_cls is None:
        raise KeyError(f"Unknown player source '{name}' (available: {', '.join(sorted(_registry))})")

    if source_cls is PlayerctlSource:
        source = PlayerctlSource(
            binary=config.PLAYERCTL["binary"],
            ignore_players=config.PLAYERCTL["ignore_players"],
        )
    else:
        source = source_cls()

    if not source.is_available():
        # Still usable: enumeration failures are retried by the poller
        logger.warning(f"Player source {source.display_name} is not available on this system")
    logger.info(f"Using player source: {source.display_name} ({source.name})")
    return source


def get_all_source_classes() -> Dict[str, Type[BasePlayerSource]]:
    return dict(_registry)


__all__ = [
    'BasePlayerSource',
    'EnumerationError',
    'FetchError',
    'FetchTimeoutError',
    'PlayerHandle',
    'PlayerSourceError',
    'PlayerctlSource',
    'SourceConfig',
    'get_source',
    'get_all_source_classes',
]
