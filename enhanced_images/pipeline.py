"""Single-document processing pipeline.

Orchestrates the flow for one syntax-tree file: load the JSON tree,
run the processing steps, write the rewritten tree.

Each step receives a shared :class:`ProcessingContext`.  The two
built-in steps are the two rewrite phases, so the import accumulator
travels between them on the context:

- :class:`EnhanceImagesStep` -- rewrites relative images, fills
  ``ctx.imports``.
- :class:`InjectImportsStep` -- splices ``ctx.imports`` into a script
  region (or appends one).
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from enhanced_images.config import EnhancedImageConfig
from enhanced_images.rewriter import (
    ImportNameGenerator,
    Node,
    ScriptBuffer,
    inject_imports,
    transform_images,
)

_log = logging.getLogger("pipeline")

_OUTPUT_SUFFIX = ".enhanced.json"
"""Suffix replacing the input's ``.json`` for the rewritten tree."""


# ---------------------------------------------------------------------------
# Pipeline-level helpers
# ---------------------------------------------------------------------------


def resolve_output(tree_path: Path, output_dir: Path | None) -> Path:
    """Resolve output file path for a given tree file.

    Default: written next to the source tree.
    With *output_dir*: all output goes to the specified directory.
    """
    base = output_dir if output_dir else tree_path.parent
    return base / f"{tree_path.stem}{_OUTPUT_SUFFIX}"


def load_tree(path: Path) -> Node:
    """Read a JSON syntax tree.

    Raises:
        ValueError: If the file is not valid JSON.
        RuntimeError: If the root is not a node with a ``children`` list.
    """
    try:
        tree = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in tree file {path}: {exc}") from exc
    if not isinstance(tree, dict) or not isinstance(tree.get("children"), list):
        raise RuntimeError(
            f"{path}: root must be a node object with a 'children' list"
        )
    return tree


def _node_line(node: Node | None) -> int | None:
    """1-indexed start line of *node* from its mdast ``position``, if any."""
    if node is None:
        return None
    line = node.get("position", {}).get("start", {}).get("line")
    return line if isinstance(line, int) else None


def save_tree(path: Path, tree: Node) -> None:
    """Write *tree* as indented JSON, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(tree, indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )


# ---------------------------------------------------------------------------
# Processing context and step protocol
# ---------------------------------------------------------------------------


@dataclass
class ProcessingContext:
    """Shared mutable state passed through all processing steps.

    Created once per document and flows through all steps in order.
    """

    tree: Node
    """Document tree (steps modify it in place)."""

    config: EnhancedImageConfig
    """Plugin configuration (read-only, shared across documents)."""

    imports: ScriptBuffer = field(default_factory=ScriptBuffer)
    """Import lines produced by :class:`EnhanceImagesStep`."""

    script_node: Node | None = None
    """Node that received the imports (set by :class:`InjectImportsStep`)."""

    script_created: bool = False
    """``True`` when a new script node had to be appended."""


@runtime_checkable
class ProcessingStep(Protocol):
    """Protocol for a single processing step in the pipeline.

    Any class with a :attr:`name`, :attr:`key` property and a :meth:`run`
    method that accepts a :class:`ProcessingContext` qualifies.
    """

    @property
    def name(self) -> str:
        """Human-readable step name for logging."""
        ...

    @property
    def key(self) -> str:
        """Stable identifier for the step."""
        ...

    def run(self, ctx: ProcessingContext) -> None:
        """Execute this processing step."""
        ...


# ---------------------------------------------------------------------------
# Built-in steps
# ---------------------------------------------------------------------------


@dataclass
class EnhanceImagesStep:
    """Rewrite relative images into ``<enhanced:img>`` components.

    Wraps :func:`~enhanced_images.rewriter.transform_images`.  Replaces
    ``ctx.imports`` with the buffer of the current pass.
    """

    @property
    def name(self) -> str:
        return "enhance images"

    @property
    def key(self) -> str:
        return "images"

    def run(self, ctx: ProcessingContext) -> None:
        ctx.imports = transform_images(
            ctx.tree, ctx.config, names=ImportNameGenerator(),
        )


@dataclass
class InjectImportsStep:
    """Place the accumulated imports into the document's script region.

    Wraps :func:`~enhanced_images.rewriter.inject_imports`.  Must run
    after :class:`EnhanceImagesStep`.
    """

    @property
    def name(self) -> str:
        return "inject imports"

    @property
    def key(self) -> str:
        return "scripts"

    def run(self, ctx: ProcessingContext) -> None:
        children = ctx.tree.get("children", [])
        before = len(children)
        ctx.script_node = inject_imports(ctx.tree, ctx.imports)
        ctx.script_created = len(ctx.tree.get("children", [])) > before


def run_steps(
    ctx: ProcessingContext,
    steps: list[ProcessingStep],
) -> dict[str, float]:
    """Run *steps* in order on *ctx*; return per-step elapsed seconds."""
    timings: dict[str, float] = {}
    for step in steps:
        _log.debug("  Step: %s", step.name)
        t0 = time.monotonic()
        step.run(ctx)
        timings[step.name] = time.monotonic() - t0
    return timings


# ---------------------------------------------------------------------------
# Pipeline result
# ---------------------------------------------------------------------------


@dataclass
class PipelineResult:
    """Result of processing one tree file.

    Returned by :meth:`DocumentPipeline.run` for the CLI to consume.
    """

    output_file: Path
    images: int
    """Number of images rewritten (one import each)."""
    script_created: bool
    """``True`` when a new script node was appended."""
    script_line: int | None = None
    """Source line of the existing script that received the imports
    (``None`` when a script was created or the tree has no positions)."""
    step_timings: dict[str, float] = field(default_factory=dict)
    """Per-step execution time in seconds (step name -> elapsed)."""


# ---------------------------------------------------------------------------
# DocumentPipeline class
# ---------------------------------------------------------------------------


class DocumentPipeline:
    """Processes one JSON tree file end to end.

    Usage::

        pipeline = DocumentPipeline(tree_path, output_file, config)
        if pipeline.needs_processing(force=False):
            result = pipeline.run()
    """

    def __init__(
        self,
        tree_path: Path,
        output_file: Path,
        config: EnhancedImageConfig,
    ) -> None:
        self._tree_path = tree_path
        self._output_file = output_file
        self._config = config
        self._steps: list[ProcessingStep] = [
            EnhanceImagesStep(),
            InjectImportsStep(),
        ]

    @property
    def steps(self) -> list[ProcessingStep]:
        return list(self._steps)

    def needs_processing(self, force: bool = False) -> bool:
        """Check if the tree needs to be (re)processed.

        Args:
            force: If True, always reprocess.
        """
        return force or not self._output_file.exists()

    def run(self) -> PipelineResult:
        """Load, rewrite and save the tree.

        Raises:
            ValueError: Malformed tree file, reference or configuration.
            RuntimeError: Tree root has no ``children`` list.
        """
        _log.info("Processing %s", self._tree_path)
        ctx = ProcessingContext(
            tree=load_tree(self._tree_path),
            config=self._config,
        )
        timings = run_steps(ctx, self._steps)
        save_tree(self._output_file, ctx.tree)

        script_line = _node_line(ctx.script_node)
        if ctx.script_created:
            _log.info("  %d image(s) enhanced, imports added in new script", len(ctx.imports))
        elif ctx.script_node is not None:
            _log.info(
                "  %d image(s) enhanced, imports injected into script at line %s",
                len(ctx.imports), script_line if script_line is not None else "?",
            )
        else:
            _log.info("  No relative images found")
        _log.info("  Wrote %s", self._output_file)

        return PipelineResult(
            output_file=self._output_file,
            images=len(ctx.imports),
            script_created=ctx.script_created,
            script_line=script_line,
            step_timings=timings,
        )
