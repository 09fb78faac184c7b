"""Command-line interface for xtm."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass, replace
from pathlib import Path

from xtm.config import Settings, load_config, resolve_settings
from xtm.errors import OffsetError, ReplError
from xtm.syntax import offset_at

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed CLI options."""

    command: str
    input_file: Path | None
    output_file: Path | None
    position: str | None
    check: bool
    debug: bool
    settings: Settings


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="xtm",
        description="Extempore source tools: indentation, expression selection, evaluation",
    )
    p.add_argument(
        "--config",
        metavar="FILE",
        help="Config file (default: auto-discover xtm.toml)",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    p.add_argument("--debug", action="store_true", help="Dump character classes to stderr")
    sub = p.add_subparsers(dest="command", required=True)

    indent = sub.add_parser("indent", help="Re-indent a file")
    indent.add_argument("input", help="Input .xtm file")
    indent.add_argument("-o", "--output", help="Output file (default: stdout)")
    indent.add_argument(
        "--check",
        action="store_true",
        help="Exit 1 if the file is not already indented, write nothing",
    )
    indent.add_argument("--body-indent", type=int, default=None, metavar="N")

    expr = sub.add_parser("expr", help="Print the expression at a position")
    expr.add_argument("input", help="Input .xtm file")
    expr.add_argument("position", help="LINE:COL (1-based) or character offset")

    send = sub.add_parser("send", help="Send the expression at a position to Extempore")
    send.add_argument("input", help="Input .xtm file")
    send.add_argument("position", help="LINE:COL (1-based) or character offset")
    send.add_argument("--host", default=None, help="Extempore hostname (default: localhost)")
    send.add_argument("--port", type=int, default=None, help="Extempore port (default: 7099)")

    links = sub.add_parser("links", help="List the files loaded with sys:load")
    links.add_argument("input", help="Input .xtm file")

    sub.add_parser("lsp", help="Run the language server on stdio")
    return p


def parse_position_arg(s: str, source: str) -> int:
    """Parse LINE:COL (1-based) or a plain offset into a character offset."""
    if ":" in s:
        line, _, col = s.partition(":")
        if not (line.isdigit() and col.isdigit()) or int(line) < 1 or int(col) < 1:
            raise argparse.ArgumentTypeError(f"invalid position (expected LINE:COL): {s}")
        return offset_at(source, int(line) - 1, int(col) - 1)
    if not s.isdigit():
        raise argparse.ArgumentTypeError(f"invalid position (expected LINE:COL or OFFSET): {s}")
    return int(s)


def resolve_options(args: argparse.Namespace) -> CliOptions:
    """Merge config file, environment, and CLI args into CliOptions.

    Precedence: config file < environment < CLI flags.
    """
    input_file = Path(args.input) if getattr(args, "input", None) else None
    search_dir = input_file.parent if input_file is not None else Path(".")
    if not search_dir.parts:
        search_dir = Path(".")

    config_path = Path(args.config) if args.config else None
    config = load_config(config_path, search_dir)
    settings = resolve_settings(config, os.environ, Path.cwd())

    overrides: dict[str, object] = {}
    if getattr(args, "host", None):
        overrides["hostname"] = args.host
    if getattr(args, "port", None) is not None:
        overrides["port"] = args.port
    if getattr(args, "body_indent", None) is not None:
        overrides["body_indent"] = args.body_indent
    settings = replace(settings, **overrides)

    output = getattr(args, "output", None)
    return CliOptions(
        command=args.command,
        input_file=input_file,
        output_file=Path(output) if output else None,
        position=getattr(args, "position", None),
        check=getattr(args, "check", False),
        debug=args.debug,
        settings=settings,
    )


def run_indent(options: CliOptions, source: str) -> int:
    from xtm.indent import reindent

    result = reindent(source, options.settings.body_indent)
    if options.check:
        if result != source:
            print(f"would reindent {options.input_file}", file=sys.stderr)
            return 1
        return 0
    if options.output_file:
        options.output_file.write_text(result, encoding="utf-8")
    else:
        sys.stdout.write(result)
    return 0


def select_text(options: CliOptions, source: str) -> str:
    """Return the expression text the position in options points at."""
    from xtm import evaluation_text

    offset = parse_position_arg(options.position or "", source)
    return evaluation_text(source, offset)


def run_expr(options: CliOptions, source: str) -> int:
    text = select_text(options, source)
    if text:
        sys.stdout.write(text + "\n")
    return 0


def run_send(options: CliOptions, source: str) -> int:
    from xtm.client import ReplClient

    text = select_text(options, source)
    if not text:
        print("nothing to evaluate at that position", file=sys.stderr)
        return 0

    settings = options.settings
    with ReplClient(settings.hostname, settings.port, settings.timeout) as client:
        reply = client.evaluate(text)
    sys.stdout.write(reply + "\n")
    return 0


def run_links(options: CliOptions, source: str) -> int:
    from xtm.links import find_load_links
    from xtm.syntax import position_at

    for link in find_load_links(source, options.settings.sharedir):
        pos = position_at(source, link.span.start)
        sys.stdout.write(f"{options.input_file}:{pos.line + 1}:{pos.column + 1}: {link.target}\n")
    return 0


_COMMANDS = {
    "indent": run_indent,
    "expr": run_expr,
    "send": run_send,
    "links": run_links,
}


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    if args.command == "lsp":
        from xtm.lsp import main as lsp_main

        lsp_main()
        return 0

    options = resolve_options(args)
    try:
        source = Path(args.input).read_text(encoding="utf-8")
    except OSError as exc:
        print(f"error: cannot read {args.input}: {exc.strerror}", file=sys.stderr)
        return 2

    if options.debug:
        from xtm.debug import dump_classes

        dump_classes(source)

    try:
        return _COMMANDS[options.command](options, source)
    except argparse.ArgumentTypeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    except OffsetError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    except ReplError as exc:
        logger.debug("repl failure", exc_info=True)
        print(str(exc), file=sys.stderr)
        return 1
