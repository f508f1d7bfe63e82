"""CLI entry point for enhanced-images.

Rewrite image references in markdown syntax trees (mdast JSON) into
``<enhanced:img>`` components with matching imports.

Usage::

    enhanced-images enhance page.json
    enhanced-images enhance docs/*.json -o out/ -j
    enhanced-images enhance page.json -c images.json
    enhanced-images show-config
    enhanced-images init-config
"""

import argparse
import json
import logging
import sys
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path

import colorlog

from enhanced_images import __version__
from enhanced_images.config import (
    AUTO_CONFIG_FILENAME,
    EnhancedImageConfig,
    generate_config_template,
    load_config,
)
from enhanced_images.pipeline import DocumentPipeline, PipelineResult, resolve_output


_log = logging.getLogger("enhanced-images")

_SUMMARY_SEP = "=" * 78
"""Separator line for the run summary block."""


# ---------------------------------------------------------------------------
# Thread-local logging context (for parallel document processing)
# ---------------------------------------------------------------------------

_thread_context = threading.local()
"""Per-thread storage for the current document name."""


class _DocumentContextFilter(logging.Filter):
    """Inject per-thread document name into every log record.

    Records emitted from a worker that called
    :func:`set_document_context` carry ``doc_prefix`` (e.g.
    ``"[page] "``); otherwise ``doc_prefix`` is empty.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        doc = getattr(_thread_context, "doc_name", "")
        record.doc_prefix = f"[{doc}] " if doc else ""  # type: ignore[attr-defined]
        return True


def set_document_context(doc_name: str) -> None:
    """Set the document name for the current thread's log lines."""
    _thread_context.doc_name = doc_name


def clear_document_context() -> None:
    """Clear the document name for the current thread."""
    _thread_context.doc_name = ""


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def setup_colorized_logging():
    """Configure colorized logging output."""
    handler = colorlog.StreamHandler()
    handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(levelname)-8s%(reset)s %(blue)s%(name)-9s%(reset)s: "
            "%(doc_prefix)s%(message)s",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler.addFilter(_DocumentContextFilter())
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)


def _setup_logging(verbose: bool) -> None:
    """Initialize colorized logging and optionally enable debug level."""
    setup_colorized_logging()
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

_JOBS_AUTO = 0
"""Sentinel for ``-j`` without a number (auto = one worker per document)."""


def _build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser with subcommands."""
    verbose_parent = argparse.ArgumentParser(add_help=False)
    verbose_parent.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    config_parent = argparse.ArgumentParser(add_help=False)
    config_parent.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="JSON config with default 'attributes' and "
             "'imagetoolsDirectives'. If omitted, "
             f"{AUTO_CONFIG_FILENAME} next to each tree is used when present.",
    )

    parser = argparse.ArgumentParser(
        prog="enhanced-images",
        description="Rewrite markdown image references into enhanced "
                    "image components",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  enhance       Rewrite image nodes in mdast JSON trees
  show-config   Print the effective configuration as JSON
  init-config   Generate a configuration template file

Examples:
  %(prog)s enhance page.json                 Rewrite a single tree
  %(prog)s enhance docs/*.json -o out/       Write results to out/
  %(prog)s enhance docs/*.json -j            One worker per document
  %(prog)s show-config -c images.json        Show validated config
  %(prog)s init-config                       Generate .enhanced-images.json

Run '%(prog)s COMMAND --help' for command-specific options.
        """,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # -- enhance ---------------------------------------------------------------
    p_enhance = subparsers.add_parser(
        "enhance",
        parents=[verbose_parent, config_parent],
        help="Rewrite image nodes in mdast JSON trees",
        description="Rewrite relative image nodes into <enhanced:img> "
                    "components and inject their imports.",
    )
    p_enhance.add_argument(
        "trees",
        nargs="+",
        type=Path,
        help="mdast JSON file(s) to process (supports shell globs)",
    )
    p_enhance.add_argument(
        "-o", "--output-dir",
        type=Path,
        default=None,
        help="Output directory for rewritten trees "
             "(default: same directory as each input)",
    )
    p_enhance.add_argument(
        "-f", "--force",
        action="store_true",
        help="Reprocess even if the output already exists",
    )
    p_enhance.add_argument(
        "-j", "--jobs",
        type=int,
        default=1,
        nargs="?",
        const=_JOBS_AUTO,
        metavar="N",
        help="Number of documents to process in parallel. "
             "'-j' alone = one worker per document; "
             "'-j N' = exactly N workers (default: 1, sequential).",
    )

    # -- show-config -----------------------------------------------------------
    subparsers.add_parser(
        "show-config",
        parents=[config_parent],
        help="Print the effective configuration as JSON",
        description="Validate a configuration file and print it as JSON.",
    )

    # -- init-config -----------------------------------------------------------
    p_init = subparsers.add_parser(
        "init-config",
        help="Generate a configuration template file",
        description="Write a starter configuration file.",
    )
    p_init.add_argument(
        "path",
        nargs="?",
        type=Path,
        default=Path(AUTO_CONFIG_FILENAME),
        help=f"Destination file (default: {AUTO_CONFIG_FILENAME})",
    )
    p_init.add_argument(
        "-f", "--force",
        action="store_true",
        help="Overwrite an existing file",
    )

    return parser


# ---------------------------------------------------------------------------
# Config resolution
# ---------------------------------------------------------------------------


def _resolve_config(
    explicit: Path | None,
    tree_path: Path,
) -> EnhancedImageConfig:
    """Pick the configuration for *tree_path*.

    An explicit ``--config`` wins; otherwise :data:`AUTO_CONFIG_FILENAME`
    next to the tree is used when present; otherwise empty defaults.
    """
    if explicit is not None:
        return load_config(explicit)
    auto = tree_path.parent / AUTO_CONFIG_FILENAME
    if auto.is_file():
        _log.debug("  Using auto-discovered config %s", auto)
        return load_config(auto)
    return EnhancedImageConfig()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass
class _DocResult:
    """Outcome of one document in an ``enhance`` run."""

    tree_path: Path
    result: PipelineResult | None = None
    skipped: bool = False
    error: str = ""


def _enhance_one(args: argparse.Namespace, tree_path: Path) -> _DocResult:
    """Process one tree; errors are logged and reported, not raised."""
    set_document_context(tree_path.stem)
    try:
        output_file = resolve_output(tree_path, args.output_dir)
        config = _resolve_config(args.config, tree_path)
        pipeline = DocumentPipeline(tree_path, output_file, config)
        if not pipeline.needs_processing(force=args.force):
            _log.info("Skipping %s (output exists, use -f)", tree_path)
            return _DocResult(tree_path, skipped=True)
        return _DocResult(tree_path, result=pipeline.run())
    except (ValueError, RuntimeError, OSError) as exc:
        _log.error("Failed: %s", exc)
        return _DocResult(tree_path, error=str(exc))
    finally:
        clear_document_context()


def _log_summary(results: list[_DocResult], elapsed: float) -> None:
    """Log a one-block summary of the run."""
    done = [r for r in results if r.result is not None]
    failed = [r for r in results if r.error]
    images = sum(r.result.images for r in done if r.result is not None)
    _log.info(_SUMMARY_SEP)
    _log.info(
        "Processed %d document(s), %d image(s) enhanced, %d skipped, "
        "%d failed in %.2fs",
        len(done), images, sum(r.skipped for r in results),
        len(failed), elapsed,
    )
    for r in failed:
        _log.error("  %s: %s", r.tree_path, r.error)
    _log.info(_SUMMARY_SEP)


def _cmd_enhance(args: argparse.Namespace) -> int:
    """Handle the ``enhance`` command."""
    _setup_logging(args.verbose)

    missing = [p for p in args.trees if not p.is_file()]
    for p in missing:
        _log.error("File not found: %s", p)
    if missing:
        return 1

    t0 = time.monotonic()
    jobs = args.jobs if args.jobs != _JOBS_AUTO else len(args.trees)
    jobs = max(1, min(jobs, len(args.trees)))

    if jobs == 1:
        results = [_enhance_one(args, p) for p in args.trees]
    else:
        _log.info("Processing %d document(s) with %d workers", len(args.trees), jobs)
        by_path: dict[Path, _DocResult] = {}
        with ThreadPoolExecutor(max_workers=jobs) as pool:
            futures = {pool.submit(_enhance_one, args, p): p for p in args.trees}
            for future in as_completed(futures):
                by_path[futures[future]] = future.result()
        results = [by_path[p] for p in args.trees]

    _log_summary(results, time.monotonic() - t0)
    return 1 if any(r.error for r in results) else 0


def _cmd_show_config(args: argparse.Namespace) -> int:
    """Handle the ``show-config`` command."""
    if args.config is None:
        config = EnhancedImageConfig()
    else:
        if not args.config.is_file():
            print(f"error: Config file not found: {args.config}", file=sys.stderr)
            return 1
        try:
            config = load_config(args.config)
        except ValueError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
    print(json.dumps(config.to_dict(), indent=2))
    return 0


def _cmd_init_config(args: argparse.Namespace) -> int:
    """Handle the ``init-config`` command."""
    if args.path.exists() and not args.force:
        print(
            f"error: {args.path} already exists (use -f to overwrite)",
            file=sys.stderr,
        )
        return 1
    args.path.write_text(generate_config_template(), encoding="utf-8")
    print(f"Wrote {args.path}")
    return 0


def main() -> int:
    """Main entry point."""
    parser = _build_parser()

    # Show help if no arguments provided.
    if len(sys.argv) == 1:
        parser.print_help()
        return 0

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return 0

    handlers = {
        "enhance": _cmd_enhance,
        "show-config": _cmd_show_config,
        "init-config": _cmd_init_config,
    }
    return handlers[args.command](args)


if __name__ == "__main__":
    sys.exit(main())
