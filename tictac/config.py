"""
Training Configuration System

Centralized configuration for tabular self-play training.
"""

import json
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional

from tictac.game.constants import MIN_DIMENSION, MAX_DIMENSION


@dataclass
class TrainingConfig:
    """Configuration for a training run."""

    # Game settings
    dimension: int = 3

    # Agent hyperparameters
    alpha: float = 0.5
    gamma: float = 0.9
    epsilon: float = 1.0
    epsilon_min: float = 0.01
    epsilon_decay: float = 0.9995

    # Training settings
    num_episodes: int = 200_000
    log_window: int = 5_000
    checkpoint_interval: int = 100_000

    # Evaluation settings
    eval_episodes: int = 10_000

    # Parallel self-play (1 worker = sequential training)
    num_workers: int = 1
    sync_every: int = 1_000

    # Reproducibility (None = fresh entropy every run)
    seed: Optional[int] = None

    # Paths
    models_dir: str = 'models/trained'
    log_dir: str = 'runs'

    def agent_kwargs(self) -> Dict[str, float]:
        """Keyword arguments for QLearningAgent hyperparameters."""
        return {
            'alpha': self.alpha,
            'gamma': self.gamma,
            'epsilon': self.epsilon,
            'epsilon_min': self.epsilon_min,
            'epsilon_decay': self.epsilon_decay,
        }

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert config to dictionary.

        Returns:
            Dictionary representation of config
        """
        return asdict(self)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'TrainingConfig':
        """
        Create config from dictionary.

        Args:
            config_dict: Dictionary of configuration values

        Returns:
            TrainingConfig instance
        """
        # Filter out keys that aren't valid config fields
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered_dict = {k: v for k, v in config_dict.items() if k in valid_keys}
        return cls(**filtered_dict)

    @classmethod
    def from_file(cls, filepath: str) -> 'TrainingConfig':
        """
        Load config from JSON file.

        Args:
            filepath: Path to JSON config file

        Returns:
            TrainingConfig instance
        """
        with open(filepath, 'r') as f:
            config_dict = json.load(f)
        return cls.from_dict(config_dict)

    def save(self, filepath: str):
        """
        Save config to JSON file.

        Args:
            filepath: Path to save config to
        """
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def validate(self) -> bool:
        """
        Validate configuration values.

        Returns:
            True if config is valid

        Raises:
            ValueError: If config values are invalid
        """
        if self.dimension < MIN_DIMENSION or self.dimension > MAX_DIMENSION:
            raise ValueError(
                f"dimension must be between {MIN_DIMENSION} and {MAX_DIMENSION}, "
                f"got {self.dimension}"
            )

        if not 0 < self.alpha <= 1:
            raise ValueError(f"alpha must be in (0, 1], got {self.alpha}")

        if not 0 <= self.gamma <= 1:
            raise ValueError(f"gamma must be in [0, 1], got {self.gamma}")

        if not 0 <= self.epsilon <= 1:
            raise ValueError(f"epsilon must be in [0, 1], got {self.epsilon}")

        if not 0 <= self.epsilon_min <= self.epsilon:
            raise ValueError(
                f"epsilon_min must be in [0, epsilon], got {self.epsilon_min}"
            )

        if not 0 < self.epsilon_decay <= 1:
            raise ValueError(
                f"epsilon_decay must be in (0, 1], got {self.epsilon_decay}"
            )

        for name in ('num_episodes', 'log_window', 'checkpoint_interval',
                     'eval_episodes', 'sync_every'):
            value = getattr(self, name)
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

        if self.num_workers < 1:
            raise ValueError(f"num_workers must be at least 1, got {self.num_workers}")

        return True

    def __str__(self) -> str:
        """String representation of config."""
        lines = ["Training Configuration:"]
        lines.append(f"  Board: {self.dimension}x{self.dimension}")
        lines.append(f"  Agent: alpha={self.alpha}, gamma={self.gamma}")
        lines.append(
            f"  Exploration: epsilon={self.epsilon} -> {self.epsilon_min} "
            f"(decay {self.epsilon_decay}/episode)"
        )
        lines.append(
            f"  Training: {self.num_episodes:,} episodes, log every {self.log_window:,}, "
            f"checkpoint every {self.checkpoint_interval:,}"
        )
        lines.append(f"  Workers: {self.num_workers} (merge every {self.sync_every:,} episodes)")
        lines.append(f"  Evaluation: {self.eval_episodes:,} games")
        lines.append(f"  Models: {self.models_dir}, seed={self.seed}")
        return "\n".join(lines)


def get_fast_config() -> TrainingConfig:
    """
    Get a fast training config for testing/debugging.

    Returns:
        TrainingConfig with a small episode budget
    """
    return TrainingConfig(
        num_episodes=2_000,
        log_window=500,
        checkpoint_interval=1_000,
        eval_episodes=200,
        epsilon_decay=0.998,
    )


def get_production_config() -> TrainingConfig:
    """
    Get the full production training config.

    Returns:
        TrainingConfig with full episode budget
    """
    return TrainingConfig()  # Uses defaults
