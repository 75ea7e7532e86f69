"""
Tests for the training configuration and command line overrides.
"""

import pytest

from tictac.config import TrainingConfig, get_fast_config, get_production_config
from tictac.train import build_config, parse_args


class TestTrainingConfig:
    """Test TrainingConfig defaults, validation and serialization."""

    def test_defaults(self):
        config = TrainingConfig()
        assert config.dimension == 3
        assert config.alpha == 0.5
        assert config.gamma == 0.9
        assert config.epsilon == 1.0
        assert config.epsilon_min == 0.01
        assert config.epsilon_decay == 0.9995
        assert config.num_workers == 1
        assert config.seed is None
        assert config.validate() is True

    def test_presets(self):
        assert get_fast_config().num_episodes < get_production_config().num_episodes
        assert get_fast_config().validate()

    def test_agent_kwargs(self):
        config = TrainingConfig(alpha=0.2, epsilon_decay=0.99)
        assert config.agent_kwargs() == {
            'alpha': 0.2,
            'gamma': 0.9,
            'epsilon': 1.0,
            'epsilon_min': 0.01,
            'epsilon_decay': 0.99,
        }

    def test_save_and_load(self, tmp_path):
        config = TrainingConfig(dimension=5, num_episodes=1234, seed=7)
        path = tmp_path / "config.json"
        config.save(str(path))
        assert TrainingConfig.from_file(str(path)) == config

    def test_from_dict_ignores_unknown_keys(self):
        config = TrainingConfig.from_dict({'dimension': 4, 'learning_rate_schedule': 'cosine'})
        assert config.dimension == 4

    @pytest.mark.parametrize("overrides, message", [
        ({'dimension': 2}, "dimension"),
        ({'dimension': 10}, "dimension"),
        ({'alpha': 0.0}, "alpha"),
        ({'gamma': 1.5}, "gamma"),
        ({'epsilon': -0.1}, "epsilon"),
        ({'epsilon_min': 0.5, 'epsilon': 0.1}, "epsilon_min"),
        ({'epsilon_decay': 0.0}, "epsilon_decay"),
        ({'num_episodes': 0}, "num_episodes"),
        ({'checkpoint_interval': -5}, "checkpoint_interval"),
        ({'num_workers': 0}, "num_workers"),
    ])
    def test_validation(self, overrides, message):
        config = TrainingConfig(**overrides)
        with pytest.raises(ValueError, match=message):
            config.validate()

    def test_str(self):
        text = str(TrainingConfig(dimension=4))
        assert "Board: 4x4" in text
        assert "alpha=0.5" in text


class TestCommandLine:
    """Test argument parsing and config overrides."""

    def test_defaults_use_production_config(self):
        config = build_config(parse_args([]))
        assert config == get_production_config()

    def test_fast_flag(self):
        assert build_config(parse_args(['--fast'])) == get_fast_config()

    def test_overrides(self):
        args = parse_args([
            '--fast',
            '--episodes', '500',
            '--dimension', '4',
            '--seed', '3',
            '--workers', '2',
            '--models-dir', 'out/models',
            '--checkpoint-interval', '250',
            '--eval-episodes', '50',
            '--log-window', '100',
        ])
        config = build_config(args)
        assert config.num_episodes == 500
        assert config.dimension == 4
        assert config.seed == 3
        assert config.num_workers == 2
        assert config.models_dir == 'out/models'
        assert config.checkpoint_interval == 250
        assert config.eval_episodes == 50
        assert config.log_window == 100
        # Untouched values keep the preset
        assert config.epsilon_decay == get_fast_config().epsilon_decay

    def test_config_file(self, tmp_path):
        path = tmp_path / "custom.json"
        TrainingConfig(dimension=6, alpha=0.3).save(str(path))
        config = build_config(parse_args(['--config', str(path), '--episodes', '10']))
        assert config.dimension == 6
        assert config.alpha == 0.3
        assert config.num_episodes == 10

    def test_invalid_log_level(self):
        with pytest.raises(SystemExit):
            parse_args(['--log-level', 'LOUD'])
