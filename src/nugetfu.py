"""nugetfu - NuGet package restore for game-engine projects.

Returns:
    int: Exit code
"""
import logging
import os
import sys

from constants import ExitCodes, Constants
from common.config import load_config
from common.errors import ConfigError
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from args import parse_args
from install.context import RestoreContext

logger = logging.getLogger(__name__)


def run_restore(args) -> int:
    """Restore the project named on the command line.

    Returns:
        int: ExitCodes value.
    """
    context_path = os.path.abspath(args.CONTEXT_PATH)
    if not os.path.isdir(context_path):
        logger.error("Project directory not found: %s", context_path)
        return ExitCodes.USAGE_ERROR.value

    try:
        config = load_config(context_path, args.CONFIG)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return ExitCodes.CONFIG_ERROR.value

    try:
        with RestoreContext(config, extra_sources=args.SOURCES) as ctx:
            report = ctx.engine.restore()
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return ExitCodes.CONFIG_ERROR.value

    if is_debug_enabled(logger):
        logger.debug(
            "Restore finished",
            extra=extra_context(
                event="function_exit",
                component="cli",
                action="restore",
                outcome="success" if report.success else "failure",
                count=len(report.results),
            ),
        )
    for name in report.removed:
        logger.info("Removed unnecessary package %s", name)
    if not report.success:
        logger.error("%s package(s) failed to restore.", len(report.failed) + len(report.errors))
        return ExitCodes.INSTALL_FAILURE.value
    logger.info("Restore complete.")
    return ExitCodes.SUCCESS.value


def main(argv=None) -> int:
    """Main function of the program."""
    try:
        args = parse_args(argv)
    except SystemExit as exc:
        # argparse exits 0 for --help and 2 for bad usage
        if exc.code in (0, None):
            return ExitCodes.SUCCESS.value
        return ExitCodes.USAGE_ERROR.value

    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()
    configure_logging(args.LOG_FILE, args.QUIET)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action=args.COMMAND),
        )

    if args.COMMAND == "restore":
        return run_restore(args)
    return ExitCodes.USAGE_ERROR.value


if __name__ == "__main__":
    sys.exit(main())
