"""Argument parsing functionality for plugload."""

import argparse
from constants import Constants

def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="plugload",
        description=(
            "plugload - resolve, select and load NuGet packages into memory"
        ),
        add_help=True,
    )

    parser.add_argument("-p", "--package",
                        dest="PACKAGE",
                        help="Package id to load, i.e: Newtonsoft.Json",
                        action="store", type=str,
                        required=True)
    parser.add_argument("-v", "--version-range",
                        dest="VERSION_RANGE",
                        help="Version or range to accept, i.e: 13.0.1, [1.0,2.0), 1.*",
                        action="store", type=str)
    parser.add_argument("--prerelease",
                        dest="PRERELEASE",
                        help="Allow prerelease versions.",
                        action="store_true")
    parser.add_argument("-s", "--source",
                        dest="SOURCES",
                        help="Feed service index URL; repeat to add feeds in priority order "
                             f"(default: {Constants.DEFAULT_FEED_URL})",
                        action="append", type=str)
    parser.add_argument("--profile",
                        dest="PROFILE",
                        help=f"Target framework to load for (default: {Constants.DEFAULT_TARGET_PROFILE})",
                        action="store", type=str)
    parser.add_argument("--max-concurrency",
                        dest="MAX_CONCURRENCY",
                        help="Maximum concurrent requests per feed",
                        action="store", type=int)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to a YAML configuration file",
                        action="store", type=str)
    parser.add_argument("-f", "--format",
                        dest="OUTPUT_FORMAT",
                        help="Output format (json or text, default: text)",
                        action="store",
                        type=str.lower,
                        choices=['json', 'text'],
                        default='text')
    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    return parser.parse_args(argv)
