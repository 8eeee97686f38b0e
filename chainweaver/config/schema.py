"""
ChainWeaver v0.1.0

Configuration schema for ChainWeaver.

Defines all available configuration parameters with defaults and validation.

Author: ChainWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

from copy import deepcopy
from typing import Dict, Any, Optional, List
from pathlib import Path
import yaml

from ..utils.bsp_runner import EXECUTORS


# Default configuration values
DEFAULT_CONFIG = {
    # ========================================================================
    # Chain Compression
    # ========================================================================
    'compression': {
        'seed': 0,  # Non-negative; part of every coin flip
        'max_rounds': None,  # None = run until no merge happens
        'overlap': 0,  # Bases shared by adjacent fragments
        'fail_on_budget': False,  # Treat an exhausted round budget as an error
        'round_retries': 1,  # Re-runs of a round after a transient executor failure
    },

    # ========================================================================
    # Execution
    # ========================================================================
    'execution': {
        'executor': 'serial',  # 'serial', 'thread', 'process'
        'workers': None,  # Auto-detect from system
        'num_partitions': 4,
        'stage_timeout': None,  # Seconds per map or reduce phase
    },

    # ========================================================================
    # Snapshots
    # ========================================================================
    'snapshots': {
        'work_dir': None,  # Default: <output>.rounds
        'keep_last': 2,  # 0 keeps every round
        'validate_input': False,  # Check edge symmetry before round 1
    },

    # ========================================================================
    # Output
    # ========================================================================
    'output': {
        'logging': {
            'level': 'INFO',
            'log_file': None,
        },
    },
}

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from file or return defaults.

    Args:
        config_path: Path to YAML config file (None = use defaults)

    Returns:
        Configuration dictionary
    """
    config = deepcopy(DEFAULT_CONFIG)

    if config_path:
        config_path = Path(config_path)
        if config_path.exists():
            with open(config_path) as f:
                user_config = yaml.safe_load(f)

            if user_config:
                config = _deep_merge(config, user_config)

    return config


def _deep_merge(base: Dict, override: Dict) -> Dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Override dictionary

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def save_config_template(output_path: Path, template: str = 'default'):
    """
    Save a configuration template to file.

    Args:
        output_path: Output file path
        template: Template type ('default', 'parallel', 'debug')
    """
    config = deepcopy(DEFAULT_CONFIG)

    # Customize for specific templates
    if template == 'parallel':
        config['execution']['executor'] = 'process'
        config['execution']['num_partitions'] = 16
        config['compression']['round_retries'] = 2

    elif template == 'debug':
        config['snapshots']['keep_last'] = 0
        config['snapshots']['validate_input'] = True
        config['output']['logging']['level'] = 'DEBUG'

    elif template != 'default':
        raise ValueError(f"Unknown config template: {template}")

    with open(output_path, 'w') as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Validate configuration dictionary.

    Args:
        config: Configuration to validate

    Returns:
        List of validation errors (empty if valid)
    """
    errors = []

    compression = config.get('compression', {})
    seed = compression.get('seed', 0)
    if not isinstance(seed, int) or isinstance(seed, bool) or seed < 0:
        errors.append(f"compression.seed must be a non-negative integer, got {seed!r}")

    max_rounds = compression.get('max_rounds')
    if max_rounds is not None and (not isinstance(max_rounds, int) or max_rounds < 1):
        errors.append(f"compression.max_rounds must be a positive integer or null, got {max_rounds!r}")

    overlap = compression.get('overlap', 0)
    if not isinstance(overlap, int) or overlap < 0:
        errors.append(f"compression.overlap must be a non-negative integer, got {overlap!r}")

    retries = compression.get('round_retries', 1)
    if not isinstance(retries, int) or retries < 0:
        errors.append(f"compression.round_retries must be a non-negative integer, got {retries!r}")

    execution = config.get('execution', {})
    executor = execution.get('executor', 'serial')
    if executor not in EXECUTORS:
        errors.append(f"Invalid executor: {executor} (expected one of {', '.join(EXECUTORS)})")

    partitions = execution.get('num_partitions', 1)
    if not isinstance(partitions, int) or partitions < 1:
        errors.append(f"execution.num_partitions must be >= 1, got {partitions!r}")

    workers = execution.get('workers')
    if workers is not None and (not isinstance(workers, int) or workers < 1):
        errors.append(f"execution.workers must be >= 1 or null, got {workers!r}")

    timeout = execution.get('stage_timeout')
    if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
        errors.append(f"execution.stage_timeout must be positive or null, got {timeout!r}")

    keep_last = config.get('snapshots', {}).get('keep_last', 0)
    if not isinstance(keep_last, int) or keep_last < 0:
        errors.append(f"snapshots.keep_last must be a non-negative integer, got {keep_last!r}")

    level = config.get('output', {}).get('logging', {}).get('level', 'INFO')
    if str(level).upper() not in LOG_LEVELS:
        errors.append(f"Invalid logging level: {level}")

    return errors
