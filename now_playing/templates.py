"""
Named text templates rendered against track metadata.

Templates use Python format-field syntax::

    {artists} - {title}
    {title:.30} ({album})
    {artists[0]}

Recognized variables are ``title``, ``album`` and ``artists``. Unknown
values render as empty strings, ``artists`` renders joined with a fixed
separator, and the output is emitted verbatim (no escaping).
"""
from __future__ import annotations

import re
import string
import threading
from typing import Any, Dict, List, Mapping, Optional, Tuple

from logging_config import get_logger
from .state import EMPTY_METADATA, TrackMetadata

logger = get_logger(__name__)

TEMPLATE_VARIABLES = ("title", "album", "artists")
DEFAULT_ARTISTS_SEPARATOR = ", "

_FIELD_ROOT = re.compile(r"[^.\[]*")
# The only lookup allowed after a variable name: one integer index into artists
_ARTISTS_INDEX = re.compile(r"\[\d+\]")
_VALID_CONVERSIONS = (None, "r", "s", "a")


class TemplateError(Exception):
    """Base class for everything the registry reports to its callers."""


class TemplateInvalidError(TemplateError):
    """The template body could not be compiled; the previous entry stays active."""

    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid template '{name}': {reason}")


class TemplateNotFoundError(TemplateError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Template '{name}' not found")


class TemplateRenderError(TemplateError):
    def __init__(self, name: str, reason: str):
        self.name = name
        self.reason = reason
        super().__init__(f"Error rendering template '{name}': {reason}")


class ArtistList(tuple):
    """Tuple of artist names that formats as one joined string but still supports indexing."""

    separator = DEFAULT_ARTISTS_SEPARATOR

    def __new__(cls, artists=(), separator: str = DEFAULT_ARTISTS_SEPARATOR):
        instance = super().__new__(cls, artists)
        instance.separator = separator
        return instance

    def __str__(self) -> str:
        return self.separator.join(self)

    def __format__(self, format_spec: str) -> str:
        return format(str(self), format_spec)


class _MetadataFormatter(string.Formatter):
    """string.Formatter that resolves names from the metadata context only."""

    def get_value(self, key, args, kwargs):
        if isinstance(key, int):
            raise KeyError(key)
        # Unknown variables are empty, like a missing title
        return kwargs.get(key, "")


_FORMATTER = _MetadataFormatter()


def _parse(body: str) -> List[Tuple[str, Optional[str], Optional[str], Optional[str]]]:
    parsed = []
    for literal, field_name, format_spec, conversion in _FORMATTER.parse(body):
        parsed.append((literal, field_name, format_spec, conversion))
        # Nested fields inside a format spec ({title:>{width}}) must be valid too
        if format_spec:
            parsed.extend(_parse(format_spec))
    return parsed


class CompiledTemplate:
    """A validated template body. Immutable once built."""

    __slots__ = ("name", "body", "variables")

    def __init__(self, name: str, body: str, strict: bool = False):
        self.name = name
        self.body = body
        self.variables = self._validate(strict)

    def _validate(self, strict: bool) -> Tuple[str, ...]:
        try:
            pieces = _parse(self.body)
        except ValueError as e:
            raise TemplateInvalidError(self.name, str(e)) from e

        variables = []
        for _literal, field_name, _format_spec, conversion in pieces:
            if field_name is None:
                continue
            root = _FIELD_ROOT.match(field_name).group(0)
            if not root or root.isdigit():
                raise TemplateInvalidError(
                    self.name, f"positional field '{{{field_name}}}' is not supported, use a variable name"
                )
            if not root.isidentifier():
                raise TemplateInvalidError(self.name, f"'{root}' is not a valid variable name")
            lookup = field_name[len(root):]
            if lookup and not (root == "artists" and _ARTISTS_INDEX.fullmatch(lookup)):
                raise TemplateInvalidError(
                    self.name, f"'{{{field_name}}}' is not supported, only {{artists[N]}} may be indexed"
                )
            if conversion not in _VALID_CONVERSIONS:
                raise TemplateInvalidError(self.name, f"unknown conversion '!{conversion}'")
            if strict and root not in TEMPLATE_VARIABLES:
                raise TemplateInvalidError(
                    self.name, f"unknown variable '{root}' (available: {', '.join(TEMPLATE_VARIABLES)})"
                )
            if root not in variables:
                variables.append(root)
        return tuple(variables)

    def render(self, context: Mapping[str, Any]) -> str:
        try:
            return _FORMATTER.vformat(self.body, (), context)
        except (KeyError, IndexError, AttributeError, ValueError, TypeError) as e:
            raise TemplateRenderError(self.name, f"{type(e).__name__}: {e}") from e


def build_context(metadata: Optional[TrackMetadata], artists_separator: str = DEFAULT_ARTISTS_SEPARATOR) -> Dict[str, Any]:
    """Turn a metadata record into template variables (None -> empty string)."""
    metadata = metadata or EMPTY_METADATA
    return {
        "title": metadata.title or "",
        "album": metadata.album or "",
        "artists": ArtistList(metadata.artists or (), artists_separator),
    }


class TemplateRegistry:
    """
    Concurrency-safe table of named templates.

    ``register`` compiles outside the lock and swaps the entry in; ``render``
    copies the entry reference under the lock and renders outside it.
    """

    def __init__(self, artists_separator: str = DEFAULT_ARTISTS_SEPARATOR, strict: bool = False):
        self._lock = threading.Lock()
        self._templates: Dict[str, CompiledTemplate] = {}
        self.artists_separator = artists_separator
        self.strict = strict

    def register(self, name: str, body: Optional[str]) -> None:
        """
        Compile ``body`` and store it under ``name``, replacing any previous entry.

        Raises:
            TemplateInvalidError: the body does not compile. The previous
                entry for ``name`` (if any) is left untouched.
        """
        compiled = CompiledTemplate(name, body or "", strict=self.strict)
        with self._lock:
            self._templates[name] = compiled
        logger.debug(f"Registered template '{name}' (variables: {', '.join(compiled.variables) or 'none'})")

    def unregister(self, name: str) -> bool:
        with self._lock:
            return self._templates.pop(name, None) is not None

    def render(self, name: str, metadata: Optional[TrackMetadata]) -> str:
        """
        Render the template ``name`` against ``metadata``.

        Raises:
            TemplateNotFoundError: nothing registered under ``name``.
            TemplateRenderError: a substitution failed (bad index, bad format spec).
        """
        with self._lock:
            compiled = self._templates.get(name)
        if compiled is None:
            raise TemplateNotFoundError(name)
        return compiled.render(build_context(metadata, self.artists_separator))

    def get_body(self, name: str) -> Optional[str]:
        with self._lock:
            compiled = self._templates.get(name)
        return compiled.body if compiled else None

    def names(self) -> List[str]:
        with self._lock:
            return list(self._templates)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._templates

    def __len__(self) -> int:
        with self._lock:
            return len(self._templates)
