"""Two-phase rewrite of a markdown syntax tree.

Trees are mdast-shaped JSON values: every node is a ``dict`` with a
``type`` key; parents carry a ``children`` list; ``image`` nodes carry
``url`` and optional ``alt``; ``html`` nodes carry a raw ``value``.

Phase 1 (:func:`transform_images`) turns every relative ``image`` node
into an ``html`` node holding an ``<enhanced:img>`` component and
returns a :class:`ScriptBuffer` with one import line per image, in
document order.

Phase 2 (:func:`inject_imports`) consumes that buffer: the imports are
spliced into the first ``html`` node that opens a script region, or a
new script node is appended to the root when there is none.

:func:`rewrite` runs both phases.  The buffer is passed explicitly
between them so each phase can be run and tested on its own.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from enhanced_images.config import EnhancedImageConfig
from enhanced_images.markup import (
    IMPORT_NAME_PREFIX,
    format_component,
    format_import,
    format_script_block,
    splice_imports,
)
from enhanced_images.resolver import is_relative_reference, resolve, strip_query

_log = logging.getLogger("rewriter")

Node = dict[str, Any]
"""One mdast node (JSON object)."""

IMAGE_TYPE = "image"
HTML_TYPE = "html"


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------


def iter_nodes(tree: Node, node_type: str) -> Iterator[Node]:
    """Yield every node of *node_type* in document (pre-) order.

    The root itself is included when it matches.  Nodes may be modified
    in place while iterating; children lists must not be resized.
    """
    stack = [tree]
    while stack:
        node = stack.pop()
        if node.get("type") == node_type:
            yield node
        children = node.get("children")
        if children:
            stack.extend(reversed(children))


# ---------------------------------------------------------------------------
# Phase state
# ---------------------------------------------------------------------------


class ImportNameGenerator:
    """Per-document factory of distinct import identifiers.

    Produces ``_img1``, ``_img2``, ...  Create one per document pass.
    """

    def __init__(self, prefix: str = IMPORT_NAME_PREFIX) -> None:
        self._prefix = prefix
        self._count = 0

    def __call__(self) -> str:
        self._count += 1
        return f"{self._prefix}{self._count}"


@dataclass
class ScriptBuffer:
    """Import lines accumulated by phase 1, consumed once by phase 2."""

    lines: list[str] = field(default_factory=list)
    """Newline-terminated import statements, in document order."""

    nodes: list[Node] = field(default_factory=list)
    """Nodes rewritten by phase 1 (never script regions themselves)."""

    _node_ids: set[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._node_ids = {id(n) for n in self.nodes}

    def add(self, line: str, node: Node | None = None) -> None:
        self.lines.append(line)
        if node is not None:
            self.nodes.append(node)
            self._node_ids.add(id(node))

    def produced(self, node: Node) -> bool:
        """Return ``True`` if *node* was rewritten by phase 1."""
        return id(node) in self._node_ids

    def render(self) -> str:
        return "".join(self.lines)

    def __len__(self) -> int:
        return len(self.lines)


# ---------------------------------------------------------------------------
# Phase 1: images
# ---------------------------------------------------------------------------


def _transform_image(
    node: Node,
    config: EnhancedImageConfig,
    identifier: str,
) -> str:
    """Rewrite one relative image node in place and return its import line."""
    resolved = resolve(node["url"], config)
    node["url"] = strip_query(node["url"])
    line = format_import(identifier, node["url"], resolved.directive_params)

    alt = node.get("alt")
    node["type"] = HTML_TYPE
    node["value"] = format_component(
        identifier,
        "" if alt is None else alt,
        resolved.class_attribute,
        resolved.element_attributes,
    )
    return line


def transform_images(
    tree: Node,
    config: EnhancedImageConfig | Mapping[str, Any] | None = None,
    *,
    names: Callable[[], str] | None = None,
) -> ScriptBuffer:
    """Phase 1: rewrite every relative image node of *tree* in place.

    Absolute references (scheme or host) are left untouched.

    Args:
        tree: Root node, modified in place.
        config: Plugin configuration shared by all images.
        names: Identifier factory (default: a fresh
            :class:`ImportNameGenerator`).

    Returns:
        A new :class:`ScriptBuffer` holding one import per rewritten image.

    Raises:
        ValueError: On a malformed reference or configuration.  Images
            processed before the error keep their rewrite.
    """
    cfg = EnhancedImageConfig.coerce(config)
    next_name = names if names is not None else ImportNameGenerator()
    buffer = ScriptBuffer()
    skipped = 0

    for node in iter_nodes(tree, IMAGE_TYPE):
        url = node.get("url", "")
        if not is_relative_reference(url):
            skipped += 1
            continue
        identifier = next_name()
        buffer.add(_transform_image(node, cfg, identifier), node)
        _log.debug("  Image %s -> %s", url, identifier)

    if skipped:
        _log.debug("  Skipped %d non-relative image(s)", skipped)
    return buffer


# ---------------------------------------------------------------------------
# Phase 2: script injection
# ---------------------------------------------------------------------------


def inject_imports(tree: Node, buffer: ScriptBuffer) -> Node | None:
    """Phase 2: place the buffered imports into a script region.

    The first ``html`` node (document order) that opens a script region
    receives all imports right after its opening tag.  Later script
    nodes are not touched, and neither are the components phase 1
    produced (their alt text may contain a script tag).  Without a
    script region, a new script node is appended to ``tree["children"]``.

    Returns:
        The node that received the imports, or ``None`` when *buffer*
        is empty (the tree is not touched at all).
    """
    if not buffer:
        return None
    imports = buffer.render()

    for node in iter_nodes(tree, HTML_TYPE):
        if buffer.produced(node):
            continue
        spliced = splice_imports(node.get("value", ""), imports)
        if spliced is not None:
            node["value"] = spliced
            _log.debug("  Injected %d import(s) into existing script", len(buffer))
            return node

    script: Node = {"type": HTML_TYPE, "value": format_script_block(imports)}
    tree.setdefault("children", []).append(script)
    _log.debug("  Appended script with %d import(s)", len(buffer))
    return script


# ---------------------------------------------------------------------------
# Main entry points
# ---------------------------------------------------------------------------


def rewrite(
    tree: Node,
    config: EnhancedImageConfig | Mapping[str, Any] | None = None,
    *,
    names: Callable[[], str] | None = None,
) -> None:
    """Rewrite relative images of *tree* and inject their imports, in place."""
    buffer = transform_images(tree, config, names=names)
    inject_imports(tree, buffer)


def enhanced_image(
    config: EnhancedImageConfig | Mapping[str, Any] | None = None,
) -> Callable[[Node], None]:
    """Plugin factory: bind *config* once and return a tree transformer.

    The config is validated here, at plugin construction.  Each call of
    the returned transformer is one independent document pass.
    """
    cfg = EnhancedImageConfig.coerce(config)

    def transformer(tree: Node) -> None:
        rewrite(tree, cfg)

    return transformer
