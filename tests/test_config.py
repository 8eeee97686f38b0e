#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ChainWeaver v0.1.0

Tests for configuration loading, overrides and validation.

Author: ChainWeaver Development Team
License: Dual License (Academic/Commercial) - See LICENSE_ACADEMIC.md and LICENSE_COMMERCIAL.md
"""

import pytest
import yaml

from chainweaver.config import (
    DEFAULT_CONFIG,
    ConfigParser,
    ConfigValidationError,
    load_config,
    save_config_template,
    validate_config,
)
from chainweaver.utils.round_controller import CompressionConfig


class TestSchema:
    """Test defaults and validation."""

    def test_defaults_are_valid(self):
        assert validate_config(DEFAULT_CONFIG) == []

    def test_invalid_values_reported(self):
        config = load_config()
        config['compression']['seed'] = -3
        config['execution']['executor'] = 'cluster'
        config['execution']['num_partitions'] = 0
        errors = validate_config(config)
        assert len(errors) == 3
        assert any('executor' in e for e in errors)

    def test_load_config_does_not_mutate_defaults(self, temp_output_dir):
        path = temp_output_dir / "user.yaml"
        path.write_text("compression:\n  seed: 9\n")
        config = load_config(path)
        assert config['compression']['seed'] == 9
        assert config['compression']['overlap'] == 0
        assert DEFAULT_CONFIG['compression']['seed'] == 0

    @pytest.mark.parametrize("template", ["default", "parallel", "debug"])
    def test_templates_are_valid(self, template, temp_output_dir):
        path = temp_output_dir / f"{template}.yaml"
        save_config_template(path, template=template)
        assert validate_config(load_config(path)) == []

    def test_parallel_template(self, temp_output_dir):
        path = temp_output_dir / "parallel.yaml"
        save_config_template(path, template="parallel")
        assert yaml.safe_load(path.read_text())['execution']['executor'] == 'process'

    def test_unknown_template(self, temp_output_dir):
        with pytest.raises(ValueError):
            save_config_template(temp_output_dir / "x.yaml", template="gpu")


class TestConfigParser:
    """Test the layered configuration parser."""

    def test_defaults_file_loaded(self):
        parser = ConfigParser()
        assert parser.get('execution.num_partitions') == 4
        assert parser.get('compression.max_rounds') is None
        assert parser.validate()

    def test_user_file_overrides(self, temp_output_dir):
        path = temp_output_dir / "user.yaml"
        path.write_text("execution:\n  executor: thread\n  workers: 3\n")
        parser = ConfigParser(path)
        assert parser.get('execution.executor') == 'thread'
        assert parser.get('execution.workers') == 3
        assert parser.get('execution.num_partitions') == 4

    def test_env_substitution(self, temp_output_dir, monkeypatch):
        monkeypatch.setenv("CW_SEED", "17")
        monkeypatch.delenv("CW_WORK", raising=False)
        path = temp_output_dir / "user.yaml"
        path.write_text(
            "compression:\n  seed: ${CW_SEED}\n"
            "snapshots:\n  work_dir: ${CW_WORK:-/tmp/rounds}/run\n"
        )
        parser = ConfigParser(path)
        assert parser.get('compression.seed') == 17
        assert parser.get('snapshots.work_dir') == '/tmp/rounds/run'

    def test_cli_overrides_skip_unset(self):
        parser = ConfigParser()
        parser.merge_cli_overrides({'compression.seed': 5, 'execution.workers': None})
        assert parser.get('compression.seed') == 5
        assert parser.get('execution.workers') is None

    def test_missing_file(self, temp_output_dir):
        with pytest.raises(FileNotFoundError):
            ConfigParser(temp_output_dir / "missing.yaml")

    def test_invalid_yaml(self, temp_output_dir):
        path = temp_output_dir / "bad.yaml"
        path.write_text("compression: [unclosed\n")
        with pytest.raises(ConfigValidationError):
            ConfigParser(path)

    def test_validate_rejects_bad_values(self):
        parser = ConfigParser()
        parser.merge_cli_overrides({'compression.overlap': -1})
        with pytest.raises(ConfigValidationError):
            parser.validate()

    def test_get_default(self):
        assert ConfigParser().get('no.such.key', 'fallback') == 'fallback'


class TestCompressionConfig:
    """Test conversion into controller parameters."""

    def test_from_config(self):
        parser = ConfigParser()
        parser.merge_cli_overrides({
            'compression.seed': 42,
            'compression.max_rounds': 10,
            'execution.executor': 'thread',
            'snapshots.keep_last': 0,
        })
        config = CompressionConfig.from_config(parser.to_dict())
        assert config.seed == 42
        assert config.max_rounds == 10
        assert config.executor == 'thread'
        assert config.keep_last == 0
        assert config.round_retries == 1

# ChainWeaver v0.1.0
# Any usage is subject to this software's license.
