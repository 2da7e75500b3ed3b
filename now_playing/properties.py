"""
Host-agnostic description of a subscriber's editable properties.

Hosts (the OBS script, the terminal watcher) translate these into their own
settings UI. The player list is filled from the store so the picklist works
before any metadata has arrived.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple

from .state import MetadataStore
from .subscriber import SETTING_PLAYER, SETTING_TEMPLATE
from .templates import TEMPLATE_VARIABLES

SETTING_TEXT_SOURCE = "text_source"

KIND_LIST = "list"
KIND_TEXT = "text"
KIND_MULTILINE = "multiline"

TEMPLATE_HELP = (
    "The text template to show.\n"
    "Use {variable} to show a variable.\n"
    "Available variables are:\n"
    + ", ".join("{" + name + "}" for name in TEMPLATE_VARIABLES)
)


@dataclass
class PropertySpec:
    key: str
    description: str
    kind: str
    # (value, label) pairs for list properties
    options: List[Tuple[str, str]] = field(default_factory=list)
    editable: bool = False


def player_options(store: MetadataStore, current: Optional[str] = None) -> List[Tuple[str, str]]:
    """Known players as (value, label); the current choice is kept even if the player is gone."""
    options = []
    for player_id in store.list_known_players():
        metadata = store.get_metadata(player_id)
        label = player_id
        if metadata is not None and metadata.title:
            label = f"{player_id} ({metadata.title})"
        options.append((player_id, label))
    if current and current not in [value for value, _ in options]:
        options.insert(0, (current, f"{current} (not running)"))
    return options


def build_properties(
    store: MetadataStore,
    text_sources: Optional[Iterable[str]] = None,
    current_player: Optional[str] = None,
) -> List[PropertySpec]:
    """
    Build the property list for one subscriber.

    Args:
        store: Metadata store (player picklist)
        text_sources: Names of host text targets; None for outputs that
            write to their own parent (filters), which get no target list
        current_player: Player currently bound, kept in the list even when absent
    """
    props: List[PropertySpec] = []
    if text_sources is not None:
        props.append(PropertySpec(
            SETTING_TEXT_SOURCE,
            "The text source to write to",
            KIND_LIST,
            options=[(name, name) for name in text_sources],
        ))
    props.append(PropertySpec(
        SETTING_PLAYER,
        "The MPRIS player to monitor",
        KIND_LIST,
        options=player_options(store, current_player),
        editable=True,
    ))
    props.append(PropertySpec(SETTING_TEMPLATE, TEMPLATE_HELP, KIND_MULTILINE))
    return props
