"""
Tests for the YAML configuration loader.

Run with:
    python3 -m pytest test/test_module_config.py -v
"""

import sys
import os
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from trajectory_mpc.module_config import CONFIG_ENV_VAR, load_controller_config
from trajectory_mpc.mpc_core.errors import ConfigError
from trajectory_mpc.mpc_core.solver import MPCConfig


@pytest.fixture(autouse=True)
def no_env_config(monkeypatch, tmp_path):
    """No env override and an empty install prefix unless a test sets one."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.setattr(sys, 'prefix', str(tmp_path / 'prefix'))


@pytest.fixture
def write_config(tmp_path):
    def _write(text, name='controller.yaml'):
        path = tmp_path / name
        path.write_text(text)
        return str(path)
    return _write


class TestLoadControllerConfig:

    def test_shipped_config_matches_defaults(self):
        """config/controller.yaml mirrors the MPCConfig defaults."""
        assert load_controller_config() == MPCConfig()

    def test_file_values_override_defaults(self, write_config):
        path = write_config("controller:\n  horizon: 12\n  reference_velocity: 25.0\n")
        config = load_controller_config(path)
        assert config.horizon == 12
        assert config.reference_velocity == 25.0
        assert config.dt == MPCConfig().dt

    def test_keyword_overrides_win(self, write_config):
        path = write_config("controller:\n  horizon: 12\n")
        config = load_controller_config(path, horizon=8, actuation_latency=None)
        assert config.horizon == 8
        assert config.actuation_latency == 0.0

    def test_missing_section_uses_defaults(self, write_config):
        path = write_config("other:\n  key: 1\n")
        assert load_controller_config(path) == MPCConfig()

    def test_empty_file_uses_defaults(self, write_config):
        assert load_controller_config(write_config("")) == MPCConfig()

    def test_env_var(self, write_config, monkeypatch):
        path = write_config("controller:\n  horizon: 7\n", name='env.yaml')
        monkeypatch.setenv(CONFIG_ENV_VAR, path)
        assert load_controller_config().horizon == 7

    def test_installed_share_directory(self, tmp_path):
        share = tmp_path / 'prefix' / 'share' / 'trajectory_mpc' / 'config'
        share.mkdir(parents=True)
        (share / 'controller.yaml').write_text("controller:\n  horizon: 9\n")
        assert load_controller_config().horizon == 9

    def test_env_var_beats_share_directory(self, tmp_path, write_config, monkeypatch):
        share = tmp_path / 'prefix' / 'share' / 'trajectory_mpc' / 'config'
        share.mkdir(parents=True)
        (share / 'controller.yaml').write_text("controller:\n  horizon: 9\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, write_config("controller:\n  horizon: 7\n", name='env.yaml'))
        assert load_controller_config().horizon == 7

    def test_env_var_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / 'nope.yaml'))
        with pytest.raises(ConfigError):
            load_controller_config()

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_controller_config(str(tmp_path / 'nope.yaml'))

    def test_unknown_key(self, write_config):
        path = write_config("controller:\n  horizon: 10\n  horizn: 12\n")
        with pytest.raises(ConfigError, match='horizn'):
            load_controller_config(path)

    def test_invalid_value(self, write_config):
        path = write_config("controller:\n  dt: -0.1\n")
        with pytest.raises(ConfigError):
            load_controller_config(path)

    def test_invalid_yaml(self, write_config):
        path = write_config("controller: [unclosed\n")
        with pytest.raises(ConfigError):
            load_controller_config(path)

    def test_section_not_a_mapping(self, write_config):
        path = write_config("controller: 5\n")
        with pytest.raises(ConfigError):
            load_controller_config(path)


if __name__ == '__main__':
    pytest.main([__file__, '-v', '--tb=short'])
