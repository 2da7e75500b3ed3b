"""
now_playing package - live "now playing" text for host applications.

External code uses:
    from now_playing import NowPlayingContext, TrackMetadata

The internal structure is:
    state.py      - TrackMetadata and the shared MetadataStore
    helpers.py    - Bounded-call executor, poller stats and summaries
    templates.py  - Named template registry and template errors
    sources/      - Player transports (playerctl / MPRIS)
    poller.py     - Background player poller
    subscriber.py - Per-output tick logic
    properties.py - Host-agnostic property descriptions
    context.py    - Explicitly owned context tying it all together
"""

# --- Level 0: State ---
from .state import EMPTY_METADATA, MetadataStore, TrackMetadata

# --- Level 1: Templates and sources ---
from .templates import (
    TEMPLATE_VARIABLES,
    TemplateError,
    TemplateInvalidError,
    TemplateNotFoundError,
    TemplateRegistry,
    TemplateRenderError,
)
from .sources import (
    BasePlayerSource,
    EnumerationError,
    FetchError,
    FetchTimeoutError,
    PlayerHandle,
    PlayerSourceError,
    PlayerctlSource,
    get_source,
)

# --- Level 2: Poller, subscribers ---
from .poller import PlayerPoller, PollerState
from .subscriber import Subscriber
from .properties import PropertySpec, build_properties

# --- Level 3: Context ---
from .context import NowPlayingContext

__all__ = [
    'EMPTY_METADATA',
    'MetadataStore',
    'TrackMetadata',
    'TEMPLATE_VARIABLES',
    'TemplateError',
    'TemplateInvalidError',
    'TemplateNotFoundError',
    'TemplateRegistry',
    'TemplateRenderError',
    'BasePlayerSource',
    'EnumerationError',
    'FetchError',
    'FetchTimeoutError',
    'PlayerHandle',
    'PlayerSourceError',
    'PlayerctlSource',
    'get_source',
    'PlayerPoller',
    'PollerState',
    'Subscriber',
    'PropertySpec',
    'build_properties',
    'NowPlayingContext',
]
