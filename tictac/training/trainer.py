"""
Self-play training orchestration.

This module implements the SelfPlayTrainer that drives two Q-learning agents
against one environment:

    reset -> loop { agent to move observes state and valid actions
                    -> chooses -> records -> environment applies }
          -> terminal rewards (+1 winner, -1 loser, 0 each on a draw)
          -> each agent back-propagates its own reward

Training runs episodes strictly one after another. Every
``checkpoint_interval`` episodes both Q-tables are written to the models
directory; a failed checkpoint write is recorded and logged but never stops
the run. Final models are written when training completes.

Model file naming (all under ``models_dir``):
    agent_x_checkpoint_<episode>.json   agent_o_checkpoint_<episode>.json
    agent_x_final_<N>x<N>.json          agent_o_final_<N>x<N>.json
    superagent_final_<N>x<N>.json       (written by merge_trained_agents)
"""

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from tictac.agent.qlearning import QLearningAgent
from tictac.agent.qtable import MalformedModelFile, QTable
from tictac.game.board import TicTacToeEnv
from tictac.game.constants import (
    DRAW_REWARD,
    LOSS_REWARD,
    PLAYER_ONE,
    PLAYER_TWO,
    WIN_REWARD,
)
from tictac.training.merge import MergeStats, merge_model_files, merge_q_tables

logger = logging.getLogger(__name__)

DEFAULT_MODELS_DIR = "models/trained"

SEAT_NAMES = {PLAYER_ONE: "x", PLAYER_TWO: "o"}


# ============================================================================
# Model paths
# ============================================================================


def checkpoint_path(models_dir: Union[str, Path], player: int, episode: int) -> Path:
    """Path of the checkpoint written for ``player`` after ``episode`` episodes."""
    return Path(models_dir) / f"agent_{SEAT_NAMES[player]}_checkpoint_{episode}.json"


def final_model_path(models_dir: Union[str, Path], player: int, dimension: int) -> Path:
    """Path of ``player``'s final model for an N x N board."""
    return Path(models_dir) / f"agent_{SEAT_NAMES[player]}_final_{dimension}x{dimension}.json"


def superagent_path(models_dir: Union[str, Path], dimension: int) -> Path:
    """Path of the merged super-agent model for an N x N board."""
    return Path(models_dir) / f"superagent_final_{dimension}x{dimension}.json"


# ============================================================================
# Records
# ============================================================================


class CheckpointWriteFailure(Exception):
    """A checkpoint could not be written. Recorded, never fatal."""

    def __init__(self, episode: int, path: Union[str, Path], cause: Exception):
        self.episode = episode
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"Checkpoint at episode {episode} failed ({path}): {cause}")


@dataclass
class CheckpointRecord:
    """Outcome of one checkpoint attempt."""

    episode: int
    timestamp: float
    success: bool
    paths: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TrainingSummary:
    """Aggregate results of a ``train`` call."""

    episodes: int = 0
    player_one_wins: int = 0
    player_two_wins: int = 0
    draws: int = 0
    elapsed_seconds: float = 0.0
    checkpoints: List[CheckpointRecord] = field(default_factory=list)

    @property
    def episodes_per_second(self) -> float:
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.episodes / self.elapsed_seconds

    def record(self, winner: int) -> None:
        self.episodes += 1
        if winner == PLAYER_ONE:
            self.player_one_wins += 1
        elif winner == PLAYER_TWO:
            self.player_two_wins += 1
        else:
            self.draws += 1


@dataclass
class EvaluationResult:
    """Win/draw counts of a greedy evaluation run."""

    games_played: int = 0
    player_one_wins: int = 0
    player_two_wins: int = 0
    draws: int = 0

    def _rate(self, count: int) -> float:
        return count / self.games_played if self.games_played > 0 else 0.0

    @property
    def player_one_win_rate(self) -> float:
        return self._rate(self.player_one_wins)

    @property
    def player_two_win_rate(self) -> float:
        return self._rate(self.player_two_wins)

    @property
    def draw_rate(self) -> float:
        return self._rate(self.draws)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        result['player_one_win_rate'] = self.player_one_win_rate
        result['player_two_win_rate'] = self.player_two_win_rate
        result['draw_rate'] = self.draw_rate
        return result


# ============================================================================
# Trainer
# ============================================================================


class SelfPlayTrainer:
    """
    Runs self-play between two agents on one environment.

    Attributes:
        agent_one: Agent playing PLAYER_ONE ('X')
        agent_two: Agent playing PLAYER_TWO ('O')
        env: Shared game environment
        models_dir: Directory for checkpoints and final models
        checkpoints: Records of every checkpoint attempt in the last run
    """

    def __init__(
        self,
        agent_one: QLearningAgent,
        agent_two: QLearningAgent,
        env: TicTacToeEnv,
        models_dir: Union[str, Path] = DEFAULT_MODELS_DIR,
    ):
        """
        Args:
            agent_one: Agent for PLAYER_ONE
            agent_two: Agent for PLAYER_TWO
            env: Game environment
            models_dir: Directory for persisted models

        Raises:
            ValueError: If the agents are not seated as PLAYER_ONE and PLAYER_TWO
        """
        if agent_one.player != PLAYER_ONE or agent_two.player != PLAYER_TWO:
            raise ValueError(
                f"agent_one must play {PLAYER_ONE} and agent_two must play {PLAYER_TWO}, "
                f"got {agent_one.player} and {agent_two.player}"
            )

        self.agent_one = agent_one
        self.agent_two = agent_two
        self.env = env
        self.models_dir = Path(models_dir)
        self.checkpoints: List[CheckpointRecord] = []

    def agent_for(self, player: int) -> QLearningAgent:
        return self.agent_one if player == PLAYER_ONE else self.agent_two

    @staticmethod
    def terminal_rewards(winner: Optional[int]) -> Tuple[float, float]:
        """Zero-sum rewards (player one, player two) for a finished game."""
        if winner == PLAYER_ONE:
            return WIN_REWARD, LOSS_REWARD
        if winner == PLAYER_TWO:
            return LOSS_REWARD, WIN_REWARD
        return DRAW_REWARD, DRAW_REWARD

    # ------------------------------------------------------------------
    # Episodes
    # ------------------------------------------------------------------

    def _play_game(self, exploring: bool, learning: bool) -> int:
        """Play one game to completion and return the winner (or DRAW)."""
        self.env.reset()
        if learning:
            self.agent_one.begin_episode()
            self.agent_two.begin_episode()

        while not self.env.finished:
            agent = self.agent_for(self.env.current_player)
            state_key = self.env.state_key()
            valid_actions = self.env.valid_actions()
            action = agent.choose_action(state_key, valid_actions, exploring=exploring)
            if learning:
                agent.record(state_key, action)
            self.env.apply_action(action)

        winner = self.env.winner
        if learning:
            reward_one, reward_two = self.terminal_rewards(winner)
            self.agent_one.learn_from_outcome(reward_one)
            self.agent_two.learn_from_outcome(reward_two)
        return winner

    def run_episode(self) -> int:
        """
        Play and learn from one self-play episode.

        Returns:
            PLAYER_ONE, PLAYER_TWO, or DRAW
        """
        return self._play_game(exploring=True, learning=True)

    def train(
        self,
        num_episodes: int = 50_000,
        log_window: int = 1_000,
        checkpoint_interval: Optional[int] = 10_000,
        progress_callback: Optional[Callable[[int], None]] = None,
    ) -> TrainingSummary:
        """
        Run ``num_episodes`` self-play episodes.

        Args:
            num_episodes: Episodes to play
            log_window: Episodes per logged statistics window
            checkpoint_interval: Save both tables every N episodes (None disables)
            progress_callback: Optional callback(episodes_completed)

        Returns:
            TrainingSummary for this run

        Raises:
            OSError: If the final models cannot be written
        """
        logger.info(
            f"Starting self-play training: {num_episodes:,} episodes on a "
            f"{self.env.dimension}x{self.env.dimension} board"
        )

        self.checkpoints = []
        summary = TrainingSummary()
        window = TrainingSummary()
        start_time = time.time()

        for episode in range(1, num_episodes + 1):
            winner = self.run_episode()
            summary.record(winner)
            window.record(winner)

            if progress_callback is not None:
                progress_callback(episode)

            if log_window and episode % log_window == 0:
                self.log_window_summary(episode, num_episodes, window)
                window = TrainingSummary()

            if checkpoint_interval and episode % checkpoint_interval == 0:
                self.save_checkpoint(episode)

        summary.elapsed_seconds = time.time() - start_time
        summary.checkpoints = list(self.checkpoints)

        logger.info(
            f"Training complete: {summary.episodes:,} episodes in "
            f"{summary.elapsed_seconds:.2f}s ({summary.episodes_per_second:.1f} episodes/s)"
        )
        logger.info(self.checkpoint_summary())
        logger.info(self.agent_one.stats_summary())
        logger.info(self.agent_two.stats_summary())

        self.save_final_models()
        return summary

    def log_window_summary(
        self, episode: int, num_episodes: int, window: TrainingSummary
    ) -> None:
        """Log win and draw rates of the episodes in ``window`` plus both epsilons."""
        total = max(window.episodes, 1)
        logger.info(
            f"Episode {episode:,}/{num_episodes:,} | "
            f"X wins: {window.player_one_wins / total:.1%} | "
            f"O wins: {window.player_two_wins / total:.1%} | "
            f"draws: {window.draws / total:.1%} | "
            f"eps X: {self.agent_one.epsilon:.4f} | eps O: {self.agent_two.epsilon:.4f}"
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save_checkpoint(self, episode: int) -> CheckpointRecord:
        """Write both tables for ``episode``; failures are recorded, not raised."""
        paths = []
        current_path = None
        try:
            for player in (PLAYER_ONE, PLAYER_TWO):
                current_path = checkpoint_path(self.models_dir, player, episode)
                paths.append(str(self.agent_for(player).save(current_path)))
        except OSError as e:
            failure = CheckpointWriteFailure(episode, current_path, e)
            logger.warning(str(failure))
            record = CheckpointRecord(
                episode=episode,
                timestamp=time.time(),
                success=False,
                paths=paths,
                error=str(failure),
            )
        else:
            logger.info(f"Checkpoint saved at episode {episode:,}")
            record = CheckpointRecord(
                episode=episode,
                timestamp=time.time(),
                success=True,
                paths=paths,
            )

        self.checkpoints.append(record)
        return record

    def checkpoint_summary(self) -> str:
        """Human-readable list of the checkpoints taken during the last run."""
        if not self.checkpoints:
            return "No checkpoints were saved."

        succeeded = [cp for cp in self.checkpoints if cp.success]
        failed = [cp for cp in self.checkpoints if not cp.success]

        lines = [f"Checkpoints: {len(succeeded)} saved, {len(failed)} failed ({self.models_dir})"]
        for cp in succeeded:
            stamp = datetime.fromtimestamp(cp.timestamp).strftime('%Y-%m-%d %H:%M')
            lines.append(f"  episode {cp.episode:,} - {stamp}")
        for cp in failed:
            lines.append(f"  episode {cp.episode:,} FAILED - {cp.error}")
        return "\n".join(lines)

    def save_final_models(self) -> Tuple[Path, Path]:
        """
        Write both agents' final tables.

        Raises:
            OSError: If a file cannot be written
        """
        dimension = self.env.dimension
        path_one = final_model_path(self.models_dir, PLAYER_ONE, dimension)
        path_two = final_model_path(self.models_dir, PLAYER_TWO, dimension)
        try:
            saved_one = self.agent_one.save(path_one)
            saved_two = self.agent_two.save(path_two)
        except OSError as e:
            logger.error(f"Failed to save final models: {e}")
            raise
        return saved_one, saved_two

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def _ensure_trained(self, player: int) -> None:
        """Load a persisted model into an agent whose table is empty."""
        agent = self.agent_for(player)
        if agent.num_states > 0:
            return

        dimension = self.env.dimension
        candidates = [final_model_path(self.models_dir, player, dimension)]
        if player == PLAYER_ONE:
            candidates.insert(0, superagent_path(self.models_dir, dimension))

        logger.info(f"Agent {agent.symbol} is untrained; looking for a saved model")
        for path in candidates:
            if not path.exists():
                continue
            try:
                if agent.load(path):
                    return
            except MalformedModelFile as e:
                logger.error(f"Ignoring unreadable model: {e}")

        logger.warning(f"No usable model for agent {agent.symbol}; evaluating untrained")

    def evaluate(
        self,
        num_episodes: int = 10_000,
        progress_callback: Optional[Callable[[int], None]] = None,
    ) -> EvaluationResult:
        """
        Play greedy games without exploration or learning.

        Q-tables and agent statistics are left untouched. Agents with an empty
        table first try to load a model from the models directory.

        Args:
            num_episodes: Games to play
            progress_callback: Optional callback(games_completed)

        Returns:
            EvaluationResult with win and draw counts
        """
        logger.info(f"Starting greedy evaluation: {num_episodes:,} games")
        self._ensure_trained(PLAYER_ONE)
        self._ensure_trained(PLAYER_TWO)

        result = EvaluationResult()
        for game in range(1, num_episodes + 1):
            winner = self._play_game(exploring=False, learning=False)
            result.games_played += 1
            if winner == PLAYER_ONE:
                result.player_one_wins += 1
            elif winner == PLAYER_TWO:
                result.player_two_wins += 1
            else:
                result.draws += 1

            if progress_callback is not None:
                progress_callback(game)

        logger.info(
            f"Evaluation complete: {result.games_played:,} games | "
            f"X wins: {result.player_one_wins:,} ({result.player_one_win_rate:.1%}) | "
            f"O wins: {result.player_two_wins:,} ({result.player_two_win_rate:.1%}) | "
            f"draws: {result.draws:,} ({result.draw_rate:.1%})"
        )
        return result

    # ------------------------------------------------------------------
    # Merging
    # ------------------------------------------------------------------

    @staticmethod
    def merge(table_a: QTable, table_b: QTable) -> QTable:
        """Merge two tables keeping the higher value on overlap."""
        merged, _ = merge_q_tables(table_a, table_b)
        return merged

    def merge_trained_agents(self) -> Optional[MergeStats]:
        """
        Merge both final models into the super-agent file.

        Returns:
            Merge statistics, or None if the final models are unavailable
        """
        dimension = self.env.dimension
        logger.info("Merging final models into the super-agent")
        return merge_model_files(
            final_model_path(self.models_dir, PLAYER_ONE, dimension),
            final_model_path(self.models_dir, PLAYER_TWO, dimension),
            superagent_path(self.models_dir, dimension),
        )
