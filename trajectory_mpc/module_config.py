"""
Controller configuration loader.

Loads config/controller.yaml and builds the immutable MPCConfig. Keys
missing from the file fall back to the MPCConfig defaults; unknown keys
and out-of-range values raise ConfigError, which is fatal at startup.

Search order when no path is given:
    1. $TRAJECTORY_MPC_CONFIG
    2. Installed share directory (<prefix>/share/trajectory_mpc/config)
    3. Source tree config/controller.yaml (development)

Usage:
    from trajectory_mpc.module_config import load_controller_config
    config = load_controller_config()
    print(config.horizon)  # 10
"""

import os
import sys
import logging
from dataclasses import fields

import yaml

from .mpc_core.errors import ConfigError
from .mpc_core.solver import MPCConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = 'TRAJECTORY_MPC_CONFIG'
CONFIG_FILENAME = 'controller.yaml'
SECTION = 'controller'
PACKAGE_NAME = 'trajectory_mpc'


def load_controller_config(config_path=None, **overrides):
    """Load the controller configuration from YAML.

    Args:
        config_path: Path to controller.yaml. If None, searches the
            standard locations; defaults are used if nothing is found.
        **overrides: Values applied on top of the file (e.g. from the CLI).

    Returns:
        Validated MPCConfig.

    Raises:
        ConfigError: unreadable file, unknown keys or invalid values.
    """
    if config_path is None:
        config_path = _find_config_file(CONFIG_FILENAME)
    elif not os.path.isfile(config_path):
        raise ConfigError(f"Config file not found: {config_path}")

    values = {}
    if config_path is not None:
        values.update(_read_section(config_path))
        logger.info("Loaded controller config from %s", config_path)
    else:
        logger.info("No %s found, using built-in defaults", CONFIG_FILENAME)

    values.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(MPCConfig)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigError(f"Unknown controller config keys: {unknown}")

    try:
        return MPCConfig(**values)
    except TypeError as e:
        raise ConfigError(f"Invalid controller config: {e}") from e


def _read_section(config_path):
    """Read the 'controller' mapping out of a YAML file."""
    try:
        with open(config_path, 'r') as f:
            file_config = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read {config_path}: {e}") from e

    if not isinstance(file_config, dict):
        raise ConfigError(f"{config_path}: top level must be a mapping")
    section = file_config.get(SECTION, {}) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"{config_path}: '{SECTION}' must be a mapping")
    return section


def _find_config_file(filename):
    """Search for a config file in standard locations."""
    # 1. Explicit environment override
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        if not os.path.isfile(env_path):
            raise ConfigError(f"{CONFIG_ENV_VAR} points to a missing file: {env_path}")
        return env_path

    # 2. Installed share directory (setup.py data_files)
    share_path = os.path.join(sys.prefix, 'share', PACKAGE_NAME, 'config', filename)
    if os.path.isfile(share_path):
        return share_path

    # 3. Source tree (development)
    source_path = os.path.join(os.path.dirname(__file__), '..', 'config', filename)
    if os.path.isfile(source_path):
        return os.path.abspath(source_path)

    return None
