"""Shared test fixtures and helpers for enhanced-images tests."""

from __future__ import annotations

from typing import Any


def image(url: str, alt: str | None = "") -> dict[str, Any]:
    """Build an mdast ``image`` node.

    Args:
        url: Image reference (may carry a query string).
        alt: Alt text; ``None`` omits the key entirely.
    """
    node: dict[str, Any] = {"type": "image", "url": url}
    if alt is not None:
        node["alt"] = alt
    return node


def html(value: str) -> dict[str, Any]:
    """Build an mdast ``html`` node."""
    return {"type": "html", "value": value}


def paragraph(*children: dict[str, Any]) -> dict[str, Any]:
    """Wrap *children* in a ``paragraph`` node."""
    return {"type": "paragraph", "children": list(children)}


def root(*children: dict[str, Any]) -> dict[str, Any]:
    """Build a ``root`` node with the given top-level children."""
    return {"type": "root", "children": list(children)}
