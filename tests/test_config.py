"""
Tests for the configuration system.
"""
import json
import os
import tempfile

import pytest
import yaml

from qpolicy.config import DEFAULT_POLICY_CONFIG, PolicyConfig, PolicyPresets
from qpolicy.errors import ConfigError


class TestPolicyConfig:
    """Tests for PolicyConfig."""

    def test_defaults(self):
        config = PolicyConfig()
        assert config.learning_rate == 0.1
        assert config.discount_factor == 0.95
        assert config.exploration_rate == 0.2
        assert config.exploration_decay == 0.995
        assert config.min_exploration == 0.05
        assert config.batch_size == 32
        assert config.save_interval_ms == 60000
        assert config.save_interval_seconds == 60.0
        assert config.policy_key == "rl-policy"
        assert config == DEFAULT_POLICY_CONFIG

    @pytest.mark.parametrize("changes", [
        {"learning_rate": 0.0},
        {"learning_rate": 1.5},
        {"discount_factor": -0.1},
        {"discount_factor": 1.01},
        {"exploration_rate": 1.2},
        {"exploration_decay": 0.0},
        {"min_exploration": 0.3},
        {"batch_size": 0},
        {"save_interval_ms": -1},
        {"max_episode_history": 0},
        {"policy_key": ""},
    ])
    def test_invalid_values_rejected(self, changes):
        with pytest.raises(ConfigError):
            PolicyConfig(**changes)

    def test_boundaries_accepted(self):
        config = PolicyConfig(
            learning_rate=1.0,
            discount_factor=0.0,
            exploration_rate=0.0,
            min_exploration=0.0,
            exploration_decay=1.0,
            save_interval_ms=0,
        )
        assert config.learning_rate == 1.0

    def test_frozen(self):
        config = PolicyConfig()
        with pytest.raises(Exception):
            config.learning_rate = 0.5

    def test_replace_revalidates(self):
        assert PolicyConfig().replace(learning_rate=0.5).learning_rate == 0.5
        with pytest.raises(ConfigError):
            PolicyConfig().replace(learning_rate=2.0)

    def test_from_dict_ignores_unknown(self):
        config = PolicyConfig.from_dict({"learning_rate": 0.3, "colour": "blue"})
        assert config.learning_rate == 0.3

    def test_roundtrip_dict(self):
        config = PolicyConfig(learning_rate=0.2, seed=3)
        assert PolicyConfig.from_dict(config.to_dict()) == config


class TestConfigFiles:
    """Tests for loading and saving config files."""

    def test_load_missing_returns_none(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            assert PolicyConfig.load(os.path.join(tmpdir, "nope.yaml")) is None

    def test_yaml_with_policy_section(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.yaml")
            with open(path, "w") as f:
                yaml.safe_dump({"policy": {"learning_rate": 0.25, "exploration_rate": 0.4}}, f)

            config = PolicyConfig.load(path)
            assert config.learning_rate == 0.25
            assert config.exploration_rate == 0.4

    def test_json_top_level(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with open(path, "w") as f:
                json.dump({"discount_factor": 0.5}, f)
            assert PolicyConfig.load(path).discount_factor == 0.5

    @pytest.mark.parametrize("filename", ["config.json", "config.yaml"])
    def test_save_and_load(self, filename):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "nested", filename)
            original = PolicyPresets.exploratory()
            original.save(path)
            assert PolicyConfig.load(path) == original

    def test_unparseable_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.json")
            with open(path, "w") as f:
                f.write("{broken")
            with pytest.raises(ConfigError):
                PolicyConfig.load(path)

    def test_non_mapping_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.yaml")
            with open(path, "w") as f:
                f.write("- 1\n- 2\n")
            with pytest.raises(ConfigError):
                PolicyConfig.load(path)

    def test_invalid_values_in_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "config.yaml")
            with open(path, "w") as f:
                yaml.safe_dump({"learning_rate": 5}, f)
            with pytest.raises(ConfigError):
                PolicyConfig.load(path)


class TestEnvOverrides:
    """Tests for QPOLICY_* overrides."""

    def test_overrides_applied(self):
        config = PolicyConfig().with_env({
            "QPOLICY_LEARNING_RATE": "0.3",
            "QPOLICY_SAVE_INTERVAL_MS": "0",
            "QPOLICY_SEED": "7",
            "UNRELATED": "x",
        })
        assert config.learning_rate == 0.3
        assert config.save_interval_ms == 0
        assert config.seed == 7

    def test_no_overrides_returns_same(self):
        config = PolicyConfig()
        assert config.with_env({}) is config
        assert config.with_env({"QPOLICY_SEED": ""}) is config

    def test_bad_value(self):
        with pytest.raises(ConfigError):
            PolicyConfig().with_env({"QPOLICY_LEARNING_RATE": "fast"})


class TestPresets:
    """Tests for PolicyPresets."""

    def test_presets_valid(self):
        assert PolicyPresets.default() == PolicyConfig()
        assert PolicyPresets.exploratory().exploration_rate == 0.5
        assert PolicyPresets.greedy().exploration_rate == 0.0

    def test_deterministic_test(self):
        config = PolicyPresets.deterministic_test(seed=9)
        assert config.seed == 9
        assert config.save_interval_ms == 0
        assert not config.enable_auto_observe
