"""Centralized markup definitions for rewritten documents.

Single source of truth for every string the rewriter generates or
searches for: the script-region opening tag, the import statement
consumed by the downstream module loader, and the ``<enhanced:img>``
component.  No other module hard-codes these formats.

Usage::

    from enhanced_images.markup import format_import, splice_imports

    line = format_import("_img1", "./a%20b.jpg", "&w=400")
    # "import _img1 from './a b.jpg?enhanced&w=400';\\n"

    splice_imports("<script>let x;</script>", line)
    # "<script>\\nimport _img1 from ...;\\nlet x;</script>"
"""

from __future__ import annotations

import re
from urllib.parse import unquote

IMPORT_NAME_PREFIX = "_img"
"""Prefix of every generated import identifier."""

ENHANCED_QUERY = "?enhanced"
"""Query marker that routes an import through the enhanced-image loader."""

_MALFORMED_ESCAPE_RE = re.compile(r"%(?![0-9A-Fa-f]{2})")
"""A ``%`` not followed by two hex digits."""

SCRIPT_START_RE = re.compile(r"<script(?:\s[^>]*)?>")
"""Matches a script-region opening tag, with or without attributes.

Matches ``<script>``, ``<script lang="ts">`` and
``<script context="module">``; does not match ``<scripts>`` or
``</script>``.
"""


def decode_path(path: str) -> str:
    """Percent-decode *path* for use inside an import statement.

    Raises:
        ValueError: If *path* contains a malformed escape (``100%.jpg``)
            or an escape sequence that is not valid UTF-8.
    """
    m = _MALFORMED_ESCAPE_RE.search(path)
    if m is not None:
        raise ValueError(
            f"Malformed percent-escape at offset {m.start()} in {path!r}"
        )
    return unquote(path, errors="strict")


def format_import(identifier: str, path: str, directive_params: str) -> str:
    """Build one import line (newline-terminated).

    Format: ``import <identifier> from '<decoded path>?enhanced<params>';``
    """
    return (
        f"import {identifier} from "
        f"'{decode_path(path)}{ENHANCED_QUERY}{directive_params}';\n"
    )


def format_component(
    identifier: str,
    alt: str,
    class_attribute: str,
    element_attributes: str,
) -> str:
    """Build the ``<enhanced:img>`` markup for one image.

    Empty *class_attribute* / *element_attributes* are omitted so the
    tag never contains doubled spaces.
    """
    parts = [f"src={{{identifier}}}", f'alt="{alt}"']
    parts.extend(p for p in (class_attribute, element_attributes) if p)
    return f"<enhanced:img {' '.join(parts)}></enhanced:img>"


def format_script_block(imports: str) -> str:
    """Wrap *imports* in a new script region."""
    return f"<script>\n{imports}</script>"


def splice_imports(value: str, imports: str) -> str | None:
    """Insert *imports* right after the first script-opening tag in *value*.

    Everything else in *value* is preserved unchanged.

    Returns:
        The new value, or ``None`` if *value* has no script-opening tag.
    """
    m = SCRIPT_START_RE.search(value)
    if m is None:
        return None
    return f"{value[:m.end()]}\n{imports}{value[m.end():]}"
