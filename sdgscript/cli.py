#!/usr/bin/env python3
"""sdgscript/cli.py — command-line entry point.

Usage examples
--------------
    # Analyse a package and print the summary
    sdgscript analyze src/ --format summary

    # Write the full per-function results as JSON
    sdgscript analyze src/ -o sdg-report.json

    # Strict mode with a project-wide default budget and extra keywords
    sdgscript analyze src/ --strict --carbon-budget 0.5 --keywords extra.sexp --extend

    # Show the effective keyword table
    sdgscript keywords

Exit codes
----------
    0   Success (no error-severity violations).
    1   One or more error-severity violations were found.
    2   Infrastructure failure (bad path, bad keyword table, ...).

``python -m sdgscript`` calls :func:`main` via ``sdgscript/__main__.py``.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from pathlib import Path
from typing import Optional, Sequence, TextIO

from sdgscript import __version__
from sdgscript.analyzer import AnalyzerOptions, SustainabilityAnalyzer, summarize
from sdgscript.errors import KeywordTableError
from sdgscript.keywords import DEFAULT_KEYWORDS, KeywordTable, load_keyword_table

_log = logging.getLogger("sdgscript")

EXIT_OK: int = 0
EXIT_VIOLATION: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``sdgscript`` logger: 0 → WARNING, 1 → INFO, 2+ → DEBUG."""
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("sdgscript")
    root.setLevel(level)
    root.addHandler(handler)


def _open_output(dest: Optional[str]) -> TextIO:
    """``None`` or ``"-"`` → stdout; otherwise open *dest* for writing."""
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _load_keywords(args: argparse.Namespace) -> KeywordTable:
    if not args.keywords:
        return DEFAULT_KEYWORDS
    return load_keyword_table(args.keywords, extend=args.extend)


# ===========================================================================
# Commands
# ===========================================================================

def cmd_analyze(args: argparse.Namespace) -> int:
    missing = [p for p in args.paths if not Path(p).exists()]
    if missing:
        for p in missing:
            _log.error("Path not found: %s", p)
        return EXIT_INFRA

    try:
        keywords = _load_keywords(args)
    except KeywordTableError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA

    options = AnalyzerOptions(
        keywords=keywords,
        strict_mode=args.strict,
        default_carbon_budget=args.carbon_budget,
    )
    results = SustainabilityAnalyzer(options).analyze_paths(args.paths)
    summary = summarize(results)
    _log.info("Analysis complete: %d functions", summary.total_functions)

    out = _open_output(args.output)
    try:
        if args.format == "json":
            json.dump(
                {
                    "summary": summary.to_dict(),
                    "results": [r.to_dict() for r in results],
                },
                out,
                indent=2,
            )
            out.write("\n")
        else:
            out.write(summary.generate_report() + "\n")
    finally:
        if out is not sys.stdout:
            out.close()

    has_errors = any(r.errors for r in results)
    return EXIT_VIOLATION if has_errors else EXIT_OK


def cmd_keywords(args: argparse.Namespace) -> int:
    try:
        keywords = _load_keywords(args)
    except KeywordTableError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA
    json.dump(keywords.to_dict(), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sdgscript",
        description=(
            "sdgscript — static sustainability-cost analysis of Python functions.\n\n"
            "Reads @sdg / @carbonBudget annotations from docstrings and comments,\n"
            "estimates energy use from code structure, and scores compliance."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              sdgscript analyze src/ --format summary
              sdgscript analyze app.py -o sdg-report.json --strict
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    def _add_keyword_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--keywords",
            metavar="FILE",
            default=None,
            help="S-expression keyword table replacing the built-in categories it lists.",
        )
        p.add_argument(
            "--extend",
            action="store_true",
            help="Append the --keywords table to the built-in one instead of replacing.",
        )

    # --- analyze -----------------------------------------------------------
    p_analyze = subparsers.add_parser(
        "analyze",
        aliases=["analyse"],
        help="Analyse Python files for SDG compliance.",
    )
    p_analyze.add_argument(
        "paths",
        nargs="+",
        metavar="PATH",
        help="Python files or directories (searched recursively).",
    )
    p_analyze.add_argument(
        "-o", "--output",
        default=None,
        metavar="FILE",
        help='Output file ("-" or omit for stdout).',
    )
    p_analyze.add_argument(
        "-f", "--format",
        choices=["json", "summary"],
        default="json",
        help="Output format (default: json).",
    )
    p_analyze.add_argument(
        "--strict",
        action="store_true",
        help="Enable strict-mode rules (default budget, missing tracking context).",
    )
    p_analyze.add_argument(
        "--carbon-budget",
        type=float,
        default=1.0,
        metavar="KWH",
        help="Default carbon budget for unannotated functions in strict mode (default: 1.0).",
    )
    _add_keyword_args(p_analyze)
    p_analyze.set_defaults(func=cmd_analyze)

    # --- keywords ----------------------------------------------------------
    p_keywords = subparsers.add_parser(
        "keywords",
        help="Print the effective call classification table as JSON.",
    )
    _add_keyword_args(p_keywords)
    p_keywords.set_defaults(func=cmd_keywords)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
