"""Constants used in the project."""

import logging
import os
from enum import Enum
from typing import Any, Dict, List, Optional


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    RESOLUTION_ERROR = 3
    INSTALL_ERROR = 4


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    DEFAULT_FEED_URL = "https://api.nuget.org/v3/index.json"
    DEFAULT_FEED_NAME = "nuget.org"
    DEFAULT_TARGET_PROFILE = "net5.0"
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    USER_AGENT = "plugload/0.3"
    ENV_LOG_LEVEL = "PLUGLOAD_LOG_LEVEL"
    ENV_CONFIG = "PLUGLOAD_CONFIG"
    CONFIG_FILE_NAME = "plugload.yml"

    # Transport tunables
    REQUEST_TIMEOUT = 100  # seconds until response headers arrive
    DOWNLOAD_TIMEOUT = 60  # seconds to read a response body
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.2
    HTTP_RETRY_STATUSES = (408, 429, 500, 502, 503, 504)

    # NuGet V3 resource types, newest first
    PACKAGE_BASE_ADDRESS_TYPES = ("PackageBaseAddress/3.0.0",)
    MODULE_EXTENSION = ".dll"


def _config_candidates(explicit: Optional[str]) -> List[str]:
    """Return config file locations in lookup order."""
    paths: List[str] = []
    if explicit:
        paths.append(explicit)
    env_path = os.environ.get(Constants.ENV_CONFIG)
    if env_path:
        paths.append(env_path)
    paths.append(os.path.join(os.getcwd(), Constants.CONFIG_FILE_NAME))
    paths.append(
        os.path.join(os.path.expanduser("~"), ".config", "plugload", Constants.CONFIG_FILE_NAME)
    )
    return paths


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the first YAML configuration file found.

    Args:
        path: Explicit config path; takes precedence over the environment and
            default locations.

    Returns:
        Parsed mapping, or an empty dict when no file exists.

    Raises:
        ValueError: If a config file exists but does not contain a mapping.
    """
    import yaml  # pylint: disable=import-outside-toplevel

    for candidate in _config_candidates(path):
        if not os.path.isfile(candidate):
            continue
        with open(candidate, "r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration file {candidate} must contain a mapping.")
        logging.getLogger(__name__).debug("Loaded configuration from %s", candidate)
        return data
    return {}
