#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ChainWeaver v0.1.0

Configuration parser: YAML config loading, merging, and validation.

Author: ChainWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import os
import re
import yaml
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..graph_core.errors import ChainWeaverError
from .schema import DEFAULT_CONFIG, _deep_merge, validate_config

ENV_PATTERN = re.compile(r'\$\{([^}:]+)(?::-(.*?))?\}')


class ConfigValidationError(ChainWeaverError):
    """Raised when configuration validation fails."""
    pass


class ConfigParser:
    """
    Parse and validate ChainWeaver configuration files.

    Features:
    - Load YAML configuration files
    - Merge with default values
    - Environment variable substitution (${VAR} and ${VAR:-default})
    - CLI parameter overrides
    - Schema validation
    - Dotted notation access (e.g., config.get('compression.seed'))
    """

    def __init__(self, config_file: Optional[Union[str, Path]] = None):
        """
        Initialize configuration parser.

        Args:
            config_file: Path to YAML configuration file (optional)
        """
        self.config_file = Path(config_file) if config_file else None
        self._config: Dict[str, Any] = {}

        self._load_defaults()

        if self.config_file:
            self._load_user_config()

    def _load_defaults(self):
        """Load default configuration values."""
        defaults_path = Path(__file__).parent / "defaults.yaml"

        if defaults_path.exists():
            with open(defaults_path, 'r') as f:
                self._config = yaml.safe_load(f) or {}
        else:
            self._config = deepcopy(DEFAULT_CONFIG)

    def _load_user_config(self):
        """Load and merge user configuration file."""
        if not self.config_file.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_file}"
            )

        try:
            with open(self.config_file, 'r') as f:
                user_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigValidationError(
                f"Invalid YAML in config file {self.config_file}: {e}"
            ) from e

        if user_config is None:
            return
        if not isinstance(user_config, dict):
            raise ConfigValidationError(
                f"Config file {self.config_file} must contain a mapping, got {type(user_config).__name__}"
            )

        # User values override defaults
        self._config = _deep_merge(self._config, user_config)
        self._config = self._substitute_env_vars(self._config)

    def _substitute_env_vars(self, config: Any) -> Any:
        """
        Recursively substitute environment variables in configuration.

        Supports:
        - ${VAR}: Replace with environment variable VAR
        - ${VAR:-default}: Replace with VAR, or 'default' if not set

        A value made of a single placeholder is re-parsed as YAML so that
        ``seed: ${SEED:-7}`` yields an integer.
        """
        if isinstance(config, dict):
            return {k: self._substitute_env_vars(v) for k, v in config.items()}

        elif isinstance(config, list):
            return [self._substitute_env_vars(item) for item in config]

        elif isinstance(config, str):
            def replace_var(match):
                return os.environ.get(match.group(1), match.group(2) or '')

            substituted = ENV_PATTERN.sub(replace_var, config)
            if substituted != config and ENV_PATTERN.fullmatch(config):
                try:
                    return yaml.safe_load(substituted)
                except yaml.YAMLError:
                    return substituted
            return substituted

        else:
            return config

    def merge_cli_overrides(self, overrides: Dict[str, Any]):
        """
        Merge command-line overrides into configuration.

        Args:
            overrides: Dictionary of override values. Keys can use dotted
                notation (e.g., 'execution.num_partitions'). None values are
                skipped so unset CLI options keep the configured value.
        """
        for key, value in overrides.items():
            if value is None:
                continue
            keys = key.split('.')

            target = self._config
            for k in keys[:-1]:
                if not isinstance(target.get(k), dict):
                    target[k] = {}
                target = target[k]

            target[keys[-1]] = value

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by key.

        Supports dotted notation for nested access.

        Args:
            key: Configuration key (e.g., 'compression.max_rounds')
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value = self._config

        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def get_compression_config(self) -> Dict[str, Any]:
        """Get compression configuration section."""
        return self._config.get('compression', {})

    def get_execution_config(self) -> Dict[str, Any]:
        """Get execution configuration section."""
        return self._config.get('execution', {})

    def get_snapshots_config(self) -> Dict[str, Any]:
        """Get snapshots configuration section."""
        return self._config.get('snapshots', {})

    def get_output_config(self) -> Dict[str, Any]:
        """Get output configuration section."""
        return self._config.get('output', {})

    def to_dict(self) -> Dict[str, Any]:
        """
        Export configuration as dictionary.

        Returns:
            Complete configuration dictionary
        """
        return deepcopy(self._config)

    def validate(self) -> bool:
        """
        Validate configuration.

        Returns:
            True if valid

        Raises:
            ConfigValidationError: If validation fails
        """
        for section in ('compression', 'execution', 'snapshots', 'output'):
            if section not in self._config:
                raise ConfigValidationError(
                    f"Missing required configuration section: {section}"
                )

        errors = validate_config(self._config)
        if errors:
            raise ConfigValidationError("; ".join(errors))

        return True

    def __repr__(self) -> str:
        return f"ConfigParser(config_file={self.config_file})"

# ChainWeaver v0.1.0
# Any usage is subject to this software's license.
