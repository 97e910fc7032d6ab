"""Command line interface for shpack."""

import argparse
import logging
import pathlib
import sys

from shpack import __version__
from shpack.builder import build_project, init_project, make_from_folder
from shpack.errors import ShpackError
from shpack.toolchain import available_toolchains


def _configure_logging(*, verbose: int, quiet: int) -> logging.Logger:
    """Configure the shpack logger.

    :param verbose: Verbosity count (0+).
    :param quiet: Quietness count (0+).
    :returns: Configured logger.
    """

    level: int = logging.INFO
    if quiet >= 2:
        level = logging.ERROR
    elif quiet >= 1:
        level = logging.WARNING
    elif verbose >= 1:
        level = logging.DEBUG

    logger: logging.Logger = logging.getLogger("shpack")
    logger.setLevel(level)
    logger.propagate = False

    handler: logging.Handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger.handlers.clear()
    logger.addHandler(handler)
    return logger


def _add_logging_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable verbose logging. Pass multiple times for more detail.",
    )
    p.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="Reduce logging. Pass multiple times to suppress more output.",
    )


def _add_build_flags(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "-o",
        "--output",
        type=pathlib.Path,
        default=None,
        help="Output path for the executable (relative paths resolve against the current directory).",
    )
    p.add_argument(
        "--toolchain",
        type=str,
        default=None,
        choices=available_toolchains(),
        help="Toolchain used to produce the executable (overrides shpack.yaml).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="shpack",
        description="Shell Script Bundler - package multiple scripts into a single executable.",
        epilog=(
            "Examples:\n"
            "  shpack build              # Build from current directory\n"
            "  shpack make ./myscripts   # Quick build from folder (auto-setup)\n"
            "  shpack init ./newproject  # Initialize new project"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_build = subparsers.add_parser("build", help="Build executable from scripts.")
    p_build.add_argument(
        "dir",
        nargs="?",
        type=pathlib.Path,
        default=pathlib.Path("."),
        help="Project directory containing shpack.yaml (default: current directory).",
    )
    _add_build_flags(p_build)
    _add_logging_flags(p_build)

    p_make = subparsers.add_parser("make", help="Quick build from an existing script folder.")
    p_make.add_argument("dir", type=pathlib.Path, help="Folder containing main.sh and helper scripts.")
    _add_build_flags(p_make)
    _add_logging_flags(p_make)

    p_init = subparsers.add_parser("init", help="Initialize a new project.")
    p_init.add_argument(
        "dir",
        nargs="?",
        type=pathlib.Path,
        default=pathlib.Path("."),
        help="Directory to initialize (default: current directory).",
    )
    _add_logging_flags(p_init)

    subparsers.add_parser("version", help="Show version.")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the shpack CLI.

    :param argv: Optional argv list (excluding program name).
    :returns: Exit code.
    """

    parser: argparse.ArgumentParser = _build_parser()
    ns = parser.parse_args(argv)

    if ns.command == "version":
        print(f"shpack version {__version__}")
        return 0

    logger: logging.Logger = _configure_logging(verbose=ns.verbose, quiet=ns.quiet)
    try:
        if ns.command == "build":
            build_project(ns.dir, output_path=ns.output, toolchain_name=ns.toolchain, logger=logger)
        elif ns.command == "make":
            make_from_folder(ns.dir, output_path=ns.output, toolchain_name=ns.toolchain, logger=logger)
        elif ns.command == "init":
            init_project(ns.dir, logger=logger)
        else:
            raise AssertionError(f"Unhandled command: {ns.command}")
    except ShpackError as exc:
        logger.error(f"Error: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
