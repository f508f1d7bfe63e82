"""Attribute and directive resolution for a single image reference.

Merges three sources of per-image configuration into the strings used
by the rewritten ``<enhanced:img>`` node and its import:

1. Plugin-wide defaults (:class:`~enhanced_images.config.EnhancedImageConfig`).
2. Query parameters on the image URL (``./a.jpg?loading=lazy&w=400``).
3. CSS classes from both, given as ``class="a b"`` in the config and
   ``?class=a;b`` (repeatable) in the URL.

Query keys listed in :data:`HTML_ATTRIBUTES` become element attributes;
every other key is an imagetools directive.  Query values override
config values for the same key.

:func:`resolve` is a pure function.  It never mutates the config it is
given, so one config can be shared by every image of a document.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from enhanced_images.config import EnhancedImageConfig, Scalar, stringify

_log = logging.getLogger("resolver")

HTML_ATTRIBUTES: frozenset[str] = frozenset({
    "fetchpriority", "loading", "decoding", "class",
})
"""Query keys rendered as element attributes rather than directives."""

_CLASS_KEY = "class"

_QUERY_CLASS_SEPARATOR = ";"
"""Separates several class names inside one ``class`` query value."""


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResolvedAttributes:
    """Rendered output of :func:`resolve` for one image."""

    class_attribute: str = ""
    """``class="a b c"`` or the empty string."""

    element_attributes: str = ""
    """Space-joined ``key="value"`` fragments (may be empty)."""

    directive_params: str = ""
    """``&key=value&...`` suffix for the import URL, or the empty string."""


# ---------------------------------------------------------------------------
# Reference helpers
# ---------------------------------------------------------------------------


def is_relative_reference(reference: str) -> bool:
    """Return ``True`` if *reference* names neither a scheme nor a host.

    ``./a.jpg``, ``../img/a.png`` and ``a.jpg`` are relative;
    ``https://cdn/a.jpg``, ``//cdn/a.jpg`` and ``data:...`` are not.
    A reference with an empty path (``?x=1``, ``#top``) is not an image
    and is never relative.
    """
    parts = urlsplit(reference)
    return not parts.scheme and not parts.netloc and bool(parts.path)


def strip_query(reference: str) -> str:
    """Return the path of *reference* without query string or fragment."""
    return urlsplit(reference).path


def is_element_attribute(key: str) -> bool:
    """Classify a query key: element attribute (``True``) or directive."""
    return key in HTML_ATTRIBUTES


def split_by_keys(
    mapping: Mapping[str, Any],
    predicate: Callable[[str], bool],
) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split *mapping* into ``(included, excluded)`` by *predicate* on keys.

    Both results keep the iteration order of *mapping*.
    """
    included: dict[str, Any] = {}
    excluded: dict[str, Any] = {}
    for key, value in mapping.items():
        if predicate(key):
            included[key] = value
        else:
            excluded[key] = value
    return included, excluded


# ---------------------------------------------------------------------------
# Class handling
# ---------------------------------------------------------------------------


def _query_classes(pairs: list[tuple[str, str]]) -> list[str]:
    """Class tokens from every ``class`` query value, in order."""
    tokens: list[str] = []
    for key, value in pairs:
        if key != _CLASS_KEY:
            continue
        for token in value.split(_QUERY_CLASS_SEPARATOR):
            token = token.strip()
            if token:
                tokens.append(token)
    return tokens


def _config_classes(value: Scalar | None) -> list[str]:
    """Whitespace-separated class tokens of the config ``class`` attribute."""
    if value is None:
        return []
    return stringify(value).split()


def merge_classes(
    config_classes: Iterable[str],
    query_classes: Iterable[str],
) -> str:
    """Render the deduplicated union of *config_classes* then *query_classes*.

    Returns ``class="..."`` or the empty string when there are no tokens.
    """
    merged = list(dict.fromkeys([*config_classes, *query_classes]))
    if not merged:
        return ""
    return f'class="{" ".join(merged)}"'


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _render_attributes(attributes: Mapping[str, Scalar]) -> str:
    return " ".join(
        f'{key}="{stringify(value)}"' for key, value in attributes.items()
    )


def _render_directives(directives: Mapping[str, Scalar]) -> str:
    params = "&".join(
        f"{key}={stringify(value)}" for key, value in directives.items()
    )
    return f"&{params}" if params else ""


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def resolve(
    reference: str,
    config: EnhancedImageConfig | Mapping[str, Any] | None = None,
) -> ResolvedAttributes:
    """Resolve the class, attribute and directive strings for *reference*.

    Steps (in order):

    1. Parse the query string into ordered ``(key, value)`` pairs.
       Pairs with an empty key are dropped.
    2. Merge config classes (first) with query classes, deduplicated.
    3. Drop ``class`` from both sources.
    4. Partition the remaining query keys into element attributes
       (:data:`HTML_ATTRIBUTES`) and directives.
    5. Overlay query attributes on config attributes, and query
       directives on config directives.  An overriding key keeps the
       position it had in the config.

    Args:
        reference: Image URL, optionally with a query string.
        config: Plugin configuration (``None`` means empty defaults).

    Returns:
        The rendered :class:`ResolvedAttributes`.

    Raises:
        ValueError: If *reference* cannot be parsed as a URL, or
            *config* is malformed.
    """
    cfg = EnhancedImageConfig.coerce(config)

    # Working copies -- cfg is shared by every image of the document.
    attributes: dict[str, Scalar] = dict(cfg.attributes)
    directives: dict[str, Scalar] = dict(cfg.imagetools_directives)

    query = urlsplit(reference).query
    pairs = [
        (key, value)
        for key, value in parse_qsl(query, keep_blank_values=True)
        if key
    ]

    class_attribute = merge_classes(
        _config_classes(attributes.pop(_CLASS_KEY, None)),
        _query_classes(pairs),
    )

    # Later duplicates win; a key keeps its first-seen position.
    params: dict[str, str] = {}
    for key, value in pairs:
        if key != _CLASS_KEY:
            params[key] = value

    query_attributes, query_directives = split_by_keys(
        params, is_element_attribute,
    )
    attributes.update(query_attributes)
    directives.update(query_directives)

    resolved = ResolvedAttributes(
        class_attribute=class_attribute,
        element_attributes=_render_attributes(attributes),
        directive_params=_render_directives(directives),
    )
    _log.debug("  Resolved %s -> %s", reference, resolved)
    return resolved
