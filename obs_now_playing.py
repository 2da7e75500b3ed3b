"""
OBS Studio script: show the current track of an MPRIS player in a text source.

Add this file under Tools > Scripts (Python). Pick the text source to write
to, the player to follow and a template such as ``{artists} - {title}``.

OBS calls the ``script_*`` functions below; each loaded copy of the script
owns one NowPlayingContext (poller + store + registry) and one subscriber.
"""
from __future__ import annotations

from typing import Optional

try:
    import obspython as obs  # type: ignore
except ImportError:  # pragma: no cover - running outside OBS (tests, linting)
    obs = None

from config import DEBUG, TEMPLATES, VERSION
from logging_config import get_logger, setup_logging
from now_playing import NowPlayingContext, Subscriber, build_properties
from now_playing.properties import KIND_LIST, KIND_MULTILINE, SETTING_TEXT_SOURCE
from now_playing.subscriber import SETTING_PLAYER, SETTING_TEMPLATE

logger = get_logger(__name__)

SUBSCRIBER_NAME = "obs_now_playing"

_context: Optional[NowPlayingContext] = None
_subscriber: Optional[Subscriber] = None
_text_source_name: str = ""
_missing_source_logged = False


class ObsTextSink:
    """Writes text into the OBS text source named by the script settings."""

    def __call__(self, text: str) -> None:
        global _missing_source_logged
        if not _text_source_name:
            return
        source = obs.obs_get_source_by_name(_text_source_name)
        if source is None:
            if not _missing_source_logged:
                logger.warning(f"Text source '{_text_source_name}' not found")
                _missing_source_logged = True
            return
        _missing_source_logged = False
        data = obs.obs_data_create()
        try:
            obs.obs_data_set_string(data, "text", text)
            obs.obs_source_update(source, data)
        finally:
            obs.obs_data_release(data)
            obs.obs_source_release(source)


def _text_source_names():
    names = []
    sources = obs.obs_enum_sources()
    if sources is None:
        return names
    try:
        for source in sources:
            if obs.obs_source_get_unversioned_id(source).startswith("text_"):
                names.append(obs.obs_source_get_name(source))
    finally:
        obs.source_list_release(sources)
    return names


def _apply_settings(settings) -> None:
    global _text_source_name, _missing_source_logged
    _text_source_name = obs.obs_data_get_string(settings, SETTING_TEXT_SOURCE) or ""
    _missing_source_logged = False
    if _subscriber is not None:
        _subscriber.update({
            SETTING_PLAYER: obs.obs_data_get_string(settings, SETTING_PLAYER),
            SETTING_TEMPLATE: obs.obs_data_get_string(settings, SETTING_TEMPLATE),
        })


# ----------------------------------------------------------------------
# OBS script entry points
# ----------------------------------------------------------------------

def script_description():
    return (
        "<b>Now Playing (MPRIS)</b><br>"
        f"Writes the current track of a media player into a text source. v{VERSION}"
    )


def script_defaults(settings):
    obs.obs_data_set_default_string(settings, SETTING_TEMPLATE, TEMPLATES["default"])


def script_load(settings):
    global _context, _subscriber
    setup_logging(
        console_level=DEBUG.get("log_level", "INFO"),
        file_level="DEBUG" if DEBUG.get("log_detailed", False) else "INFO",
        console=DEBUG.get("log_to_console", True),
        log_file=DEBUG.get("log_file", "now_playing.log"),
        log_polling=DEBUG.get("log_polling", False),
        max_bytes=DEBUG["log_rotation"]["max_bytes"],
        backup_count=DEBUG["log_rotation"]["backup_count"],
    )
    _context = NowPlayingContext()
    _subscriber = _context.create_subscriber(SUBSCRIBER_NAME, sink=ObsTextSink())
    _apply_settings(settings)
    _context.activate()
    logger.info(f"Now Playing script loaded (v{VERSION})")


def script_update(settings):
    _apply_settings(settings)


def script_tick(seconds):
    if _subscriber is not None:
        _subscriber.tick(seconds)


def script_unload():
    global _context, _subscriber
    if _context is not None:
        # Joins the poller; bounded by the player call timeouts
        _context.deactivate()
    _context = None
    _subscriber = None
    logger.info("Now Playing script unloaded")


def _refresh_players(props, prop):
    """Button callback: rebuild the property UI with the latest player list."""
    return True


def script_properties():
    props = obs.obs_properties_create()
    store = _context.store if _context is not None else None
    current_player = _subscriber.bound_player if _subscriber is not None else None
    if store is None:
        return props

    for spec in build_properties(store, _text_source_names(), current_player):
        if spec.kind == KIND_LIST:
            combo = obs.OBS_COMBO_TYPE_EDITABLE if spec.editable else obs.OBS_COMBO_TYPE_LIST
            prop = obs.obs_properties_add_list(props, spec.key, spec.description, combo, obs.OBS_COMBO_FORMAT_STRING)
            for value, label in spec.options:
                obs.obs_property_list_add_string(prop, label, value)
        elif spec.kind == KIND_MULTILINE:
            obs.obs_properties_add_text(props, spec.key, spec.description, obs.OBS_TEXT_MULTILINE)
        else:
            obs.obs_properties_add_text(props, spec.key, spec.description, obs.OBS_TEXT_DEFAULT)

    obs.obs_properties_add_button(props, "refresh_players", "Refresh player list", _refresh_players)
    return props
