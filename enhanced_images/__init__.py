"""Enhanced image rewriting for markdown syntax trees.

Rewrites relative image references in an mdast tree into
``<enhanced:img>`` components and injects the matching
``import ... from '...?enhanced'`` statements into the document's
script region, once per document.

Key features:
- Per-image attributes and imagetools directives from URL query
  parameters (``./a.jpg?loading=lazy&w=400``)
- Plugin-wide defaults merged under the query values
- CSS classes from config and query, deduplicated in order
- Absolute references left untouched

Typical use::

    from enhanced_images import enhanced_image

    transform = enhanced_image({"attributes": {"loading": "lazy"}})
    transform(tree)
"""

from importlib.metadata import version, PackageNotFoundError

from enhanced_images.config import EnhancedImageConfig, load_config
from enhanced_images.resolver import HTML_ATTRIBUTES, ResolvedAttributes, resolve
from enhanced_images.rewriter import (
    ImportNameGenerator,
    ScriptBuffer,
    enhanced_image,
    inject_imports,
    rewrite,
    transform_images,
)

try:
    __version__ = version("enhanced-images")
except PackageNotFoundError:
    __version__ = "0.0.0"  # fallback for uninstalled dev usage


__all__ = [
    "EnhancedImageConfig",
    "enhanced_image",
    "HTML_ATTRIBUTES",
    "ImportNameGenerator",
    "inject_imports",
    "load_config",
    "resolve",
    "ResolvedAttributes",
    "rewrite",
    "ScriptBuffer",
    "transform_images",
]
