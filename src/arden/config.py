# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Configuration management for the Arden CLI.

Loads configuration from ~/.arden/config.yaml and environment variables.
Explicit command-line values always win over both.

Priority:
  1. CLI options (passed explicitly)
  2. Environment variables
  3. Config file (~/.arden/config.yaml)
  4. Defaults
"""

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_HOST = "https://ardenstats.com"
DEFAULT_CONFIG_DIR = Path.home() / ".arden"
CONFIG_FILENAME = "config.yaml"


@dataclass
class ArdenConfig:
    """Process-wide Arden CLI settings."""
    host: str = DEFAULT_HOST
    api_token: Optional[str] = None
    user_id: Optional[str] = None
    log_level: str = "INFO"
    timeout: float = 30.0

    @classmethod
    def load(cls, config_dir: Optional[Path] = None) -> 'ArdenConfig':
        """
        Load configuration from YAML file with environment variable overrides.

        Args:
            config_dir: Directory containing config.yaml.
                        Defaults to $ARDEN_CONFIG_DIR or ~/.arden

        Returns:
            ArdenConfig instance
        """
        if config_dir is None:
            config_dir = Path(os.getenv('ARDEN_CONFIG_DIR', str(DEFAULT_CONFIG_DIR))).expanduser()

        config_file = Path(config_dir) / CONFIG_FILENAME
        config_data: Dict[str, Any] = {}

        if config_file.exists():
            try:
                with open(config_file, 'r') as f:
                    config_data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to read config file {config_file}: {e}")
                config_data = {}

            if not isinstance(config_data, dict):
                logger.warning(f"Ignoring config file {config_file}: expected a mapping")
                config_data = {}

        config_data = cls._apply_env_overrides(config_data)
        return cls._from_dict(config_data)

    @classmethod
    def _apply_env_overrides(cls, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        data = dict(config_data)

        host = os.getenv('ARDEN_HOST', os.getenv('HOST'))
        if host:
            data['host'] = host

        token = os.getenv('ARDEN_API_TOKEN')
        if token:
            data['api_token'] = token

        user_id = os.getenv('ARDEN_USER_ID')
        if user_id:
            data['user_id'] = user_id

        log_level = os.getenv('LOG_LEVEL')
        if log_level:
            data['log_level'] = log_level

        return data

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> 'ArdenConfig':
        """Create ArdenConfig from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.debug(f"Ignoring unknown config keys: {sorted(unknown)}")

        values = {key: value for key, value in data.items() if key in known and value is not None}
        if 'timeout' in values:
            try:
                timeout = float(values['timeout'])
                if not timeout > 0:
                    raise ValueError(timeout)
                values['timeout'] = timeout
            except (TypeError, ValueError):
                logger.warning(f"Ignoring invalid timeout {values['timeout']!r}, using default")
                del values['timeout']
        if 'log_level' in values:
            values['log_level'] = str(values['log_level']).upper()
        return cls(**values)


# =============================================================================
# Convenience Functions
# =============================================================================

def load_config(config_dir: Optional[Path] = None) -> ArdenConfig:
    """Load Arden configuration."""
    return ArdenConfig.load(config_dir)


def get_host(cli_host: Optional[str] = None, config: Optional[ArdenConfig] = None) -> str:
    """Resolve the API host, without a trailing slash."""
    if cli_host:
        return cli_host.rstrip("/")
    config = config or load_config()
    return (config.host or DEFAULT_HOST).rstrip("/")


def get_api_token(cli_token: Optional[str] = None, config: Optional[ArdenConfig] = None) -> Optional[str]:
    """Resolve the bearer token used for API requests."""
    if cli_token:
        return cli_token
    config = config or load_config()
    return config.api_token


def get_user_id(cli_user: Optional[str] = None, config: Optional[ArdenConfig] = None) -> Optional[str]:
    """Resolve the user ULID attached to events."""
    if cli_user:
        return cli_user
    config = config or load_config()
    return config.user_id
