"""Argument parsing functionality for nugetfu."""

import argparse


def build_parser():
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="nugetfu",
        description="nugetfu - NuGet package restore for game-engine projects",
        add_help=True,
    )
    subparsers = parser.add_subparsers(dest="COMMAND", metavar="command")
    subparsers.required = True

    restore = subparsers.add_parser(
        "restore",
        help="Install every package listed in packages.config and remove orphans",
    )
    restore.add_argument("CONTEXT_PATH",
                         help="Project root (default: current directory)",
                         nargs="?",
                         default=".")
    restore.add_argument("-c", "--config",
                         dest="CONFIG",
                         help="Path to configuration file (YAML)",
                         action="store",
                         type=str)
    restore.add_argument("-s", "--source",
                         dest="SOURCES",
                         help="Additional package source path or URL (can be used multiple times)",
                         action="append",
                         type=str,
                         default=[])
    restore.add_argument("--loglevel",
                         dest="LOG_LEVEL",
                         help="Set the logging level",
                         action="store",
                         type=str.upper,
                         choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                         default='INFO')
    restore.add_argument("--logfile",
                         dest="LOG_FILE",
                         help="Log output file",
                         action="store",
                         type=str)
    restore.add_argument("-q", "--quiet",
                         dest="QUIET",
                         help="Do not output to console.",
                         action="store_true")
    return parser


def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    return build_parser().parse_args(argv)
