"""Plugin configuration for enhanced image rewriting.

The host supplies one configuration per document pass::

    {
        "attributes": {"loading": "lazy", "class": "rounded"},
        "imagetoolsDirectives": {"quality": 80, "normalize": true}
    }

``attributes`` are rendered onto every generated ``<enhanced:img>``;
``imagetoolsDirectives`` are appended to every generated import URL.
Both sections are optional.

:class:`EnhancedImageConfig` is immutable by contract: it is shared by
every image of a document (and by every document of a parallel run), so
nothing in this package mutates it.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

Scalar = Union[str, int, float, bool]
"""Value type accepted for attributes and directives."""

AUTO_CONFIG_FILENAME = ".enhanced-images.json"
"""Filename auto-discovered next to each input tree (when no ``--config``)."""

_ATTRIBUTES_KEY = "attributes"
_DIRECTIVES_KEY = "imagetoolsDirectives"

_SECTIONS = (_ATTRIBUTES_KEY, _DIRECTIVES_KEY)
"""Top-level keys accepted in a configuration mapping."""


def stringify(value: Scalar) -> str:
    """Render a scalar the way it appears in markup and import URLs.

    Booleans are lower-case (``true``/``false``) and integral floats
    drop their fractional part (``1.0`` -> ``1``), so values read from
    JSON render the same as they would in the host's own config.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, float):
        return repr(value)
    return str(value)


def _validate_section(name: str, section: Any) -> dict[str, Scalar]:
    """Copy and validate one ``attributes``/``imagetoolsDirectives`` mapping."""
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        raise ValueError(
            f"Config section '{name}' must be a mapping, "
            f"got {type(section).__name__}"
        )
    result: dict[str, Scalar] = {}
    for key, value in section.items():
        if not isinstance(key, str) or not key:
            raise ValueError(
                f"Config section '{name}' has an invalid key: {key!r}"
            )
        if not isinstance(value, (str, int, float, bool)):
            raise ValueError(
                f"Config value '{name}.{key}' must be a string, number or "
                f"boolean, got {type(value).__name__}"
            )
        result[key] = value
    return result


@dataclass(frozen=True)
class EnhancedImageConfig:
    """Default attributes and imagetools directives applied to all images."""

    attributes: dict[str, Scalar] = field(default_factory=dict)
    """HTML attributes added to every ``<enhanced:img>`` element."""

    imagetools_directives: dict[str, Scalar] = field(default_factory=dict)
    """Directives appended to every generated ``?enhanced`` import URL."""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> EnhancedImageConfig:
        """Build a config from the host's mapping.

        Missing or ``None`` sections become empty mappings.  Input
        mappings are copied, so later changes to *data* are not seen.

        Raises:
            ValueError: If *data* has unknown keys, a section is not a
                mapping, or a value is not a scalar.
        """
        if data is None:
            return cls()
        if not isinstance(data, Mapping):
            raise ValueError(
                f"Config must be a mapping, got {type(data).__name__}"
            )
        unknown = sorted(str(k) for k in data if k not in _SECTIONS)
        if unknown:
            raise ValueError(
                f"Unknown config key(s): {', '.join(unknown)}. "
                f"Expected: {', '.join(_SECTIONS)}"
            )
        return cls(
            attributes=_validate_section(
                _ATTRIBUTES_KEY, data.get(_ATTRIBUTES_KEY),
            ),
            imagetools_directives=_validate_section(
                _DIRECTIVES_KEY, data.get(_DIRECTIVES_KEY),
            ),
        )

    @classmethod
    def coerce(
        cls,
        config: EnhancedImageConfig | Mapping[str, Any] | None,
    ) -> EnhancedImageConfig:
        """Return *config* as an :class:`EnhancedImageConfig`.

        Accepts ``None`` (empty defaults), a host mapping, or an existing
        instance (returned as-is).
        """
        if isinstance(config, cls):
            return config
        return cls.from_dict(config)

    def to_dict(self) -> dict[str, dict[str, Scalar]]:
        """JSON-compatible mapping using the host's key names."""
        return {
            _ATTRIBUTES_KEY: dict(self.attributes),
            _DIRECTIVES_KEY: dict(self.imagetools_directives),
        }


def load_config(path: Path) -> EnhancedImageConfig:
    """Read and validate a JSON configuration file.

    Raises:
        ValueError: If the file is not valid JSON or has an invalid
            structure.  The message names the file.
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in config file {path}: {exc}") from exc
    try:
        return EnhancedImageConfig.from_dict(data)
    except ValueError as exc:
        raise ValueError(f"{path}: {exc}") from exc


_TEMPLATE = {
    _ATTRIBUTES_KEY: {
        "fetchpriority": "auto",
        "loading": "eager",
        "decoding": "auto",
        "class": "",
    },
    _DIRECTIVES_KEY: {
        "quality": 100,
        "effort": "max",
    },
}
"""Starter configuration: browser-default attributes, common directives."""


def generate_config_template() -> str:
    """Return the text of a starter JSON configuration file."""
    return json.dumps(_TEMPLATE, indent=2) + "\n"
