"""plugload - load a NuGet package and its dependencies into memory.

    Returns:
        int: Exit code
"""
import asyncio
import json
import logging
import os
import sys

from constants import ExitCodes, Constants
from common.errors import (
    AlreadyInstalled,
    ConstraintSyntaxError,
    PackageNotFound,
    PlugloadError,
    ResolutionConflict,
    TransportFailure,
    UnsupportedArtifact,
)
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from args import parse_args
from loader import LoadResult, LoaderSession, PlugloadConfig
from versioning.models import PackageRequest, format_version


def exit_code_for(error: Exception) -> ExitCodes:
    """Map a loader error to the process exit code."""
    if isinstance(error, TransportFailure):
        return ExitCodes.CONNECTION_ERROR
    if isinstance(error, (PackageNotFound, ConstraintSyntaxError, ResolutionConflict)):
        return ExitCodes.RESOLUTION_ERROR
    if isinstance(error, (UnsupportedArtifact, AlreadyInstalled)):
        return ExitCodes.INSTALL_ERROR
    return ExitCodes.FILE_ERROR


def render(result: LoadResult, output_format: str) -> str:
    """Format a load result for stdout."""
    if output_format == "json":
        payload = {
            "package": result.resolved_version.name,
            "version": format_version(result.resolved_version.version),
            "packages": [
                {"id": ident.name, "version": format_version(ident.version)}
                for ident in result.resolved_packages
            ],
            "modules": [
                {
                    "name": module.name,
                    "package": str(module.package),
                    "path": module.path,
                    "size": module.size,
                    "sha256": module.sha256,
                }
                for module in result.modules
            ],
        }
        return json.dumps(payload, indent=2)
    lines = [f"Loaded {result.resolved_version}"]
    lines.extend(f"  package {ident}" for ident in result.resolved_packages)
    lines.extend(f"  module  {module.name} ({module.path})" for module in result.modules)
    return "\n".join(lines)


async def run(args) -> LoadResult:
    config = PlugloadConfig.from_args(args)
    request = PackageRequest(args.PACKAGE, args.VERSION_RANGE, bool(args.PRERELEASE))
    async with LoaderSession(config) as session:
        return await session.load_package(request)


def main(argv=None):
    """Main function of the program."""
    logger = logging.getLogger(__name__)

    args = parse_args(argv)
    # Honor CLI --loglevel by passing it to centralized logger via env
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()
    configure_logging()
    if args.LOG_FILE:
        handler = logging.FileHandler(args.LOG_FILE, encoding="utf-8")
        handler.setFormatter(logging.Formatter(Constants.LOG_FORMAT))
        logging.getLogger().addHandler(handler)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main")
        )

    try:
        result = asyncio.run(run(args))
    except PlugloadError as exc:
        logger.error("%s", exc)
        sys.exit(exit_code_for(exc).value)
    except (OSError, ValueError) as exc:
        # Unreadable or malformed configuration file
        logger.error("Configuration error: %s", exc)
        sys.exit(ExitCodes.FILE_ERROR.value)

    print(render(result, args.OUTPUT_FORMAT))
    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
