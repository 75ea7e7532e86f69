"""
Main Training Script

Entry point for self-play training, greedy evaluation and model merging.

Usage:
    # Train on the default 3x3 board, then evaluate and merge
    python -m tictac.train

    # 4x4 board with a custom episode budget
    python -m tictac.train --dimension 4 --episodes 100000

    # Use custom config
    python -m tictac.train --config configs/my_config.json

    # Fast test run
    python -m tictac.train --fast

    # Evaluate previously saved models only
    python -m tictac.train --evaluate-only
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from tictac.agent.qlearning import QLearningAgent
from tictac.config import TrainingConfig, get_fast_config, get_production_config
from tictac.game.board import TicTacToeEnv
from tictac.game.constants import PLAYER_ONE, PLAYER_TWO
from tictac.training.merge import MergeStats
from tictac.training.parallel import ParallelSelfPlay
from tictac.training.trainer import EvaluationResult, SelfPlayTrainer, TrainingSummary


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns:
        Parsed arguments
    """
    parser = argparse.ArgumentParser(
        description="Train tic-tac-toe Q-learning agents with self-play",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    # Training parameters
    parser.add_argument(
        '--episodes',
        type=int,
        default=None,
        help='Number of self-play episodes (overrides config)',
    )
    parser.add_argument(
        '--dimension',
        type=int,
        default=None,
        help='Board side length, 3-9 (overrides config)',
    )
    parser.add_argument(
        '--seed',
        type=int,
        default=None,
        help='Random seed for a reproducible run (overrides config)',
    )
    parser.add_argument(
        '--workers',
        type=int,
        default=None,
        help='Self-play worker processes; 1 trains sequentially (overrides config)',
    )

    # Configuration
    parser.add_argument(
        '--config',
        type=str,
        default=None,
        help='Path to JSON config file (overrides defaults)',
    )
    parser.add_argument(
        '--fast',
        action='store_true',
        help='Use fast config for testing/debugging',
    )

    # Logging
    parser.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Logging level',
    )
    parser.add_argument(
        '--log-window',
        type=int,
        default=None,
        help='Episodes per logged statistics window (overrides config)',
    )

    # Checkpointing
    parser.add_argument(
        '--models-dir',
        type=str,
        default=None,
        help='Directory for checkpoints and final models (overrides config)',
    )
    parser.add_argument(
        '--checkpoint-interval',
        type=int,
        default=None,
        help='Save checkpoint every N episodes (overrides config)',
    )

    # Pipeline stages
    parser.add_argument(
        '--eval-episodes',
        type=int,
        default=None,
        help='Greedy evaluation games (overrides config)',
    )
    parser.add_argument(
        '--skip-eval',
        action='store_true',
        help='Do not evaluate after training',
    )
    parser.add_argument(
        '--skip-merge',
        action='store_true',
        help='Do not build the merged super-agent after training',
    )
    parser.add_argument(
        '--evaluate-only',
        action='store_true',
        help='Skip training and evaluate the saved models',
    )

    return parser.parse_args(argv)


def setup_logging(config: TrainingConfig, log_level: str = 'INFO'):
    """
    Setup logging (file logging and console).

    Args:
        config: Training configuration
        log_level: Logging level
    """
    # Create log directory
    log_dir = Path(config.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    # Setup logging format
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    date_format = '%Y-%m-%d %H:%M:%S'

    # Setup file handler
    log_file = log_dir / 'training.log'
    logging.basicConfig(
        level=getattr(logging, log_level),
        format=log_format,
        datefmt=date_format,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stdout),
        ],
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized. Log file: {log_file}")
    logger.info(f"Python version: {sys.version}")
    logger.info(f"NumPy version: {np.__version__}")


def build_config(args: argparse.Namespace) -> TrainingConfig:
    """Load the base config and apply command line overrides."""
    if args.config:
        config = TrainingConfig.from_file(args.config)
    elif args.fast:
        config = get_fast_config()
    else:
        config = get_production_config()

    overrides = {
        'num_episodes': args.episodes,
        'dimension': args.dimension,
        'seed': args.seed,
        'num_workers': args.workers,
        'log_window': args.log_window,
        'models_dir': args.models_dir,
        'checkpoint_interval': args.checkpoint_interval,
        'eval_episodes': args.eval_episodes,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    return config


def create_trainer(config: TrainingConfig) -> SelfPlayTrainer:
    """
    Build the environment, both agents and the trainer from config.

    One generator, seeded from ``config.seed``, is shared by every component.
    """
    rng = np.random.default_rng(config.seed)
    env = TicTacToeEnv(config.dimension, rng=rng)
    agent_one = QLearningAgent(PLAYER_ONE, rng=rng, **config.agent_kwargs())
    agent_two = QLearningAgent(PLAYER_TWO, rng=rng, **config.agent_kwargs())
    return SelfPlayTrainer(agent_one, agent_two, env, models_dir=config.models_dir)


def _progress_bar(console: Console) -> Progress:
    return Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(bar_width=40),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        MofNCompleteColumn(),
        TimeRemainingColumn(),
        console=console,
    )


def run_training(
    trainer: SelfPlayTrainer,
    config: TrainingConfig,
    console: Console,
) -> TrainingSummary:
    """Run sequential or parallel self-play with a progress bar."""
    with _progress_bar(console) as progress:
        task = progress.add_task("Self-play", total=config.num_episodes)

        def progress_callback(count: int):
            progress.update(task, completed=count)

        if config.num_workers > 1:
            runner = ParallelSelfPlay(
                trainer,
                num_workers=config.num_workers,
                sync_every=config.sync_every,
                seed=config.seed,
            )
            return runner.run(
                config.num_episodes,
                log_window=config.log_window,
                checkpoint_interval=config.checkpoint_interval,
                progress_callback=progress_callback,
            )

        return trainer.train(
            config.num_episodes,
            log_window=config.log_window,
            checkpoint_interval=config.checkpoint_interval,
            progress_callback=progress_callback,
        )


def run_evaluation(
    trainer: SelfPlayTrainer,
    config: TrainingConfig,
    console: Console,
) -> EvaluationResult:
    """Run greedy evaluation with a progress bar."""
    with _progress_bar(console) as progress:
        task = progress.add_task("Evaluation", total=config.eval_episodes)

        def progress_callback(count: int):
            progress.update(task, completed=count)

        return trainer.evaluate(config.eval_episodes, progress_callback=progress_callback)


def render_training_summary(console: Console, summary: TrainingSummary):
    table = Table(title="Training Summary", show_header=False, padding=(0, 2))
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    table.add_row("Episodes", f"{summary.episodes:,}")
    table.add_row("X wins", f"{summary.player_one_wins:,}")
    table.add_row("O wins", f"{summary.player_two_wins:,}")
    table.add_row("Draws", f"{summary.draws:,}")
    table.add_row("Elapsed", f"{summary.elapsed_seconds:.2f}s")
    table.add_row("Episodes/s", f"{summary.episodes_per_second:.1f}")

    saved = sum(1 for cp in summary.checkpoints if cp.success)
    failed = len(summary.checkpoints) - saved
    checkpoint_str = f"{saved} saved"
    if failed:
        checkpoint_str += f", [red]{failed} failed[/red]"
    table.add_row("Checkpoints", checkpoint_str)
    console.print(table)


def render_evaluation(console: Console, result: EvaluationResult):
    table = Table(title="Greedy Evaluation")
    table.add_column("Outcome", style="cyan")
    table.add_column("Games", justify="right")
    table.add_column("Share", justify="right")

    table.add_row("X wins", f"{result.player_one_wins:,}", f"{result.player_one_win_rate:.1%}")
    table.add_row("O wins", f"{result.player_two_wins:,}", f"{result.player_two_win_rate:.1%}")
    table.add_row("Draws", f"{result.draws:,}", f"{result.draw_rate:.1%}")
    table.add_row("Total", f"{result.games_played:,}", "")
    console.print(table)


def render_merge(console: Console, stats: Optional[MergeStats]):
    if stats is None:
        console.print("[red]✗ Merge failed; see the log for details[/red]")
        return

    table = Table(title="Super-agent Merge", show_header=False, padding=(0, 2))
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")
    table.add_row("States in X", f"{stats.states_a:,}")
    table.add_row("States in O", f"{stats.states_b:,}")
    table.add_row("States only O knew", f"{stats.new_states:,}")
    table.add_row("New actions in shared states", f"{stats.new_actions:,}")
    table.add_row("Conflicts resolved", f"{stats.conflicts_resolved:,}/{stats.conflicts:,}")
    table.add_row("States in super-agent", f"{stats.states_merged:,}")
    console.print(table)


def main(argv: Optional[List[str]] = None):
    """Main training entry point."""
    args = parse_args(argv)
    config = build_config(args)
    config.validate()

    setup_logging(config, args.log_level)
    logger = logging.getLogger(__name__)
    console = Console()

    logger.info("=" * 80)
    logger.info("Tic-tac-toe Q-learning - Self-Play Training")
    logger.info("=" * 80)
    logger.info(f"\n{config}")

    # Save config
    models_dir = Path(config.models_dir)
    models_dir.mkdir(parents=True, exist_ok=True)
    config_save_path = models_dir / 'config.json'
    config.save(str(config_save_path))
    logger.info(f"Config saved to {config_save_path}")

    trainer = create_trainer(config)

    if not args.evaluate_only:
        try:
            summary = run_training(trainer, config, console)
        except KeyboardInterrupt:
            logger.info("Training interrupted by user")
            return
        except Exception as e:
            logger.error(f"Training failed with error: {e}", exc_info=True)
            raise
        render_training_summary(console, summary)

    if not args.skip_eval:
        render_evaluation(console, run_evaluation(trainer, config, console))

    if not args.evaluate_only and not args.skip_merge:
        render_merge(console, trainer.merge_trained_agents())


if __name__ == '__main__':
    main()
