"""
Configuration file discovery and loading.

Configuration is read from the first readable file among the search paths.
The same JSON document doubles as the persistence unit for learned error
patterns, so callers that enable learning also need ``find_config_path``.
"""

import json
import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from ..errors import ConfigurationError
from .constants import CONFIG_FILE_NAME, CONFIG_PATH_ENV_VAR
from .models import FallbackConfig

logger = logging.getLogger(__name__)


def get_config_search_paths(directory: Union[str, Path]) -> List[Path]:
    """Return candidate configuration paths in priority order."""
    directory = Path(directory)
    home = Path.home()
    paths = []

    env_path = os.getenv(CONFIG_PATH_ENV_VAR)
    if env_path:
        paths.append(Path(env_path).expanduser())

    paths.extend([
        directory / ".opencode" / CONFIG_FILE_NAME,
        directory / CONFIG_FILE_NAME,
        home / ".opencode" / CONFIG_FILE_NAME,
        home / ".config" / "opencode" / CONFIG_FILE_NAME,
    ])
    return paths


def find_config_path(directory: Union[str, Path]) -> Optional[Path]:
    """Return the first existing configuration file, if any."""
    for path in get_config_search_paths(directory):
        if path.is_file():
            return path
    return None


def parse_config(path: Union[str, Path]) -> FallbackConfig:
    """Read and validate one configuration file.

    Raises:
        ConfigurationError: If the file cannot be read, is not JSON, or fails validation
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
        data = json.loads(content)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(str(path), str(e)) from e

    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top-level value must be an object")

    try:
        return FallbackConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(str(path), str(e)) from e


def load_config(directory: Union[str, Path]) -> FallbackConfig:
    """Load configuration for a project directory.

    Invalid files are logged and skipped; when no file can be loaded the
    defaults are returned.
    """
    for path in get_config_search_paths(directory):
        if not path.is_file():
            continue
        try:
            config = parse_config(path)
            logger.debug(f"Loaded configuration from {path}")
            return config
        except ConfigurationError as e:
            logger.error(f"Failed to load config from {path}: {e.reason}")

    return FallbackConfig()
