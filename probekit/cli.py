"""
Command-line interface for probekit.

Usage:
    probekit rewrite path/to/module.py           # print rewritten source
    probekit rewrite path/to/module.py --check   # exit 1 if directives found
"""

import argparse
import logging
import sys
from pathlib import Path

from probekit.directive import DirectiveOptions, DirectiveTransformer
from probekit.observability import configure_logging

logger = logging.getLogger(__name__)


def cmd_rewrite(args: argparse.Namespace) -> int:
    """Rewrite one file's probe directives and print the result."""
    path = Path(args.path)
    if not path.is_file():
        print(f"Error: {path} is not a file", file=sys.stderr)
        return 2

    options = DirectiveOptions(
        probe_ident=args.ident,
        directive=args.directive,
        include=lambda _: True,
        keep_default_excludes=False,
    )
    transformer = DirectiveTransformer(options)
    source = path.read_text(encoding="utf-8")
    # The transformer only rewrites .py paths; an explicit file is always eligible
    target = str(path.resolve())
    if not target.endswith(".py"):
        target += ".py"

    if args.check:
        found = transformer.has_directives(source)
        logger.info(f"{path}: {'directives found' if found else 'no directives'}")
        return 1 if found else 0

    rewritten = transformer.transform(source, target)
    sys.stdout.write(source if rewritten is None else rewritten)
    return 0


def register_commands(subparsers: argparse._SubParsersAction) -> None:
    rewrite = subparsers.add_parser("rewrite", help="Rewrite '# #probe(...)' directives in a file")
    rewrite.add_argument("path", help="Python source file")
    rewrite.add_argument("--check", action="store_true", help="Exit 1 if the file contains directives")
    rewrite.add_argument("--ident", default="__PROBE__", help="Identifier used for emit calls")
    rewrite.add_argument("--directive", default="#probe", help="Directive token")
    rewrite.set_defaults(func=cmd_rewrite)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="probekit",
        description="probekit - scoped probe events for tests",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)
    register_commands(subparsers)

    args = parser.parse_args(argv)
    configure_logging(level="DEBUG" if args.verbose else "WARNING", format="human")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
