"""Command-line entry point.

Without arguments starts the interactive calculator; ``-e`` evaluates a
single expression and exits.
"""

import argparse
import logging
import sys
from typing import List, Optional

from cli_calc import __version__
from cli_calc.config import DATA_DIR, LOG_FORMAT, VERSION_STRING
from cli_calc.engine import Engine
from cli_calc.memory import Memory
from cli_calc.persistence import SlotStore
from cli_calc.repl import Repl, setup_readline

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cli-calc",
        description="Command-line calculator with units, currencies and variables",
    )
    parser.add_argument(
        "-v", "--version", action="version", version=VERSION_STRING.format(version=__version__),
        help="Display version information",
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Do not display banner at startup")
    parser.add_argument("-e", "--expression", type=str, help="Evaluate expression (non-interactive)")
    parser.add_argument("--data-dir", type=str, default=str(DATA_DIR), help="Directory for saved memory files")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING, format=LOG_FORMAT
    )

    engine = Engine()

    if args.expression is not None:
        result, error = engine.evaluate(args.expression)
        if error:
            print(error, file=sys.stderr)
            return 1
        print(result)
        return 0

    memory = Memory()
    slots = SlotStore(args.data_dir)
    has_readline = setup_readline(memory, slots)
    logger.debug(f"Starting REPL (readline: {has_readline}, data dir: {slots.data_dir})")

    if not args.quiet:
        print(VERSION_STRING.format(version=__version__))
        print("")

    return Repl(memory, slots, engine.evaluate).run()


if __name__ == "__main__":
    sys.exit(main())
