"""
Parallel self-play with replica merging.

Runs self-play on several processes without ever sharing a Q-table between
them. Each round:

    1. The parent snapshots both agents' tables and epsilons.
    2. Every worker builds its own environment, agent replicas and random
       generator from that snapshot and trains its share of the round.
    3. The parent merges the replica tables seat by seat with
       ``merge_q_tables`` and installs the result in its own agents.

Statistics from all workers are added to the parent's agents, and epsilon is
decayed once per episode played, as if the round had run sequentially.

Worker isolation:
    - One TicTacToeEnv, two QLearningAgents and one numpy Generator per task
    - Seeds are spawned from a single SeedSequence, so a seeded run is
      reproducible for a fixed worker count
    - Tables travel by pickling; the parent is the only writer of its tables
"""

import concurrent.futures
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from tictac.agent.qlearning import AgentStats, QLearningAgent
from tictac.agent.qtable import QTable, copy_q_table
from tictac.game.board import TicTacToeEnv
from tictac.game.constants import PLAYER_ONE, PLAYER_TWO
from tictac.training.merge import merge_q_tables
from tictac.training.trainer import SelfPlayTrainer, TrainingSummary

logger = logging.getLogger(__name__)


@dataclass
class WorkerTask:
    """Everything a worker needs to train one share of a round."""

    worker_id: int
    num_episodes: int
    dimension: int
    seed: np.random.SeedSequence
    hyperparameters: Dict[str, float]
    epsilon_one: float
    epsilon_two: float
    table_one: QTable
    table_two: QTable


@dataclass
class WorkerResult:
    """Replica tables and counters returned by a worker."""

    worker_id: int
    table_one: QTable
    table_two: QTable
    stats_one: AgentStats
    stats_two: AgentStats
    summary: TrainingSummary


def _selfplay_worker(task: WorkerTask) -> WorkerResult:
    """Train one replica pair for ``task.num_episodes`` episodes."""
    rng = np.random.default_rng(task.seed)
    env = TicTacToeEnv(task.dimension, rng=rng)

    agent_one = QLearningAgent(
        PLAYER_ONE, epsilon=task.epsilon_one, rng=rng, **task.hyperparameters
    )
    agent_two = QLearningAgent(
        PLAYER_TWO, epsilon=task.epsilon_two, rng=rng, **task.hyperparameters
    )
    agent_one.replace_table(task.table_one)
    agent_two.replace_table(task.table_two)

    trainer = SelfPlayTrainer(agent_one, agent_two, env)
    summary = TrainingSummary()
    start_time = time.time()
    for _ in range(task.num_episodes):
        summary.record(trainer.run_episode())
    summary.elapsed_seconds = time.time() - start_time

    return WorkerResult(
        worker_id=task.worker_id,
        table_one=agent_one.q_table,
        table_two=agent_two.q_table,
        stats_one=agent_one.stats,
        stats_two=agent_two.stats,
        summary=summary,
    )


class ParallelSelfPlay:
    """
    Splits self-play across worker processes and merges their tables.

    Attributes:
        trainer: Trainer whose agents receive the merged tables
        num_workers: Number of worker processes
        sync_every: Episodes each worker plays between merges
    """

    def __init__(
        self,
        trainer: SelfPlayTrainer,
        num_workers: int = 4,
        sync_every: int = 1_000,
        seed: Optional[int] = None,
    ):
        """
        Args:
            trainer: Trainer owning the agents and the models directory
            num_workers: Worker processes (1 runs in-process)
            sync_every: Episodes per worker per round
            seed: Root seed for every worker generator

        Raises:
            ValueError: If num_workers or sync_every is not positive
        """
        if num_workers < 1:
            raise ValueError(f"num_workers must be positive, got {num_workers}")
        if sync_every < 1:
            raise ValueError(f"sync_every must be positive, got {sync_every}")

        self.trainer = trainer
        self.num_workers = num_workers
        self.sync_every = sync_every
        self.seed_sequence = np.random.SeedSequence(seed)

    def _hyperparameters(self, agent: QLearningAgent) -> Dict[str, float]:
        return {
            'alpha': agent.alpha,
            'gamma': agent.gamma,
            'epsilon_min': agent.epsilon_min,
            'epsilon_decay': agent.epsilon_decay,
        }

    def _make_tasks(self, round_episodes: int) -> List[WorkerTask]:
        agent_one = self.trainer.agent_one
        agent_two = self.trainer.agent_two

        # Distribute episodes evenly across workers
        per_worker = round_episodes // self.num_workers
        remainder = round_episodes % self.num_workers
        seeds = self.seed_sequence.spawn(self.num_workers)

        tasks = []
        for worker_id in range(self.num_workers):
            worker_episodes = per_worker + (1 if worker_id < remainder else 0)
            if worker_episodes == 0:
                continue
            tasks.append(
                WorkerTask(
                    worker_id=worker_id,
                    num_episodes=worker_episodes,
                    dimension=self.trainer.env.dimension,
                    seed=seeds[worker_id],
                    hyperparameters=self._hyperparameters(agent_one),
                    epsilon_one=agent_one.epsilon,
                    epsilon_two=agent_two.epsilon,
                    table_one=agent_one.q_table,
                    table_two=agent_two.q_table,
                )
            )
        return tasks

    def _run_tasks(
        self,
        tasks: List[WorkerTask],
        pool: Optional[concurrent.futures.Executor],
    ) -> List[WorkerResult]:
        if pool is None:
            # In-process: give each task its own table copies
            results = []
            for task in tasks:
                task.table_one = copy_q_table(task.table_one)
                task.table_two = copy_q_table(task.table_two)
                results.append(_selfplay_worker(task))
            return results

        futures = [pool.submit(_selfplay_worker, task) for task in tasks]
        results = [future.result() for future in futures]
        return sorted(results, key=lambda r: r.worker_id)

    def _absorb(
        self,
        results: List[WorkerResult],
        summaries: Sequence[TrainingSummary],
    ) -> None:
        """Merge replica tables and counters into the parent agents and ``summaries``."""
        round_episodes = 0
        for player, agent in ((PLAYER_ONE, self.trainer.agent_one),
                              (PLAYER_TWO, self.trainer.agent_two)):
            tables = [r.table_one if player == PLAYER_ONE else r.table_two for r in results]
            merged = tables[0]
            for table in tables[1:]:
                merged, stats = merge_q_tables(merged, table)
                logger.debug(
                    f"Agent {agent.symbol} merge: {stats.new_states} new states, "
                    f"{stats.conflicts_resolved}/{stats.conflicts} conflicts resolved"
                )
            agent.replace_table(merged)

            for r in results:
                agent.stats.accumulate(r.stats_one if player == PLAYER_ONE else r.stats_two)

        for r in results:
            round_episodes += r.summary.episodes
            for summary in summaries:
                summary.episodes += r.summary.episodes
                summary.player_one_wins += r.summary.player_one_wins
                summary.player_two_wins += r.summary.player_two_wins
                summary.draws += r.summary.draws

        for agent in (self.trainer.agent_one, self.trainer.agent_two):
            agent.epsilon = max(
                agent.epsilon_min, agent.epsilon * agent.epsilon_decay ** round_episodes
            )

    def run(
        self,
        num_episodes: int,
        log_window: Optional[int] = None,
        checkpoint_interval: Optional[int] = None,
        progress_callback: Optional[Callable[[int], None]] = None,
    ) -> TrainingSummary:
        """
        Train for ``num_episodes`` episodes spread over the workers.

        Checkpoints are taken at the first merge point at or after each
        multiple of ``checkpoint_interval``; window statistics are logged the
        same way for ``log_window``. Final models are saved at the end.

        Args:
            num_episodes: Total episodes across all workers
            log_window: Episodes per logged statistics window (None disables)
            checkpoint_interval: Episodes between checkpoints (None disables)
            progress_callback: Optional callback(episodes_completed)

        Returns:
            TrainingSummary for the whole run
        """
        logger.info(
            f"Starting parallel self-play: {num_episodes:,} episodes, "
            f"{self.num_workers} workers, merge every {self.sync_every:,} episodes per worker"
        )

        self.trainer.checkpoints = []
        summary = TrainingSummary()
        window = TrainingSummary()
        start_time = time.time()

        pool: Optional[concurrent.futures.Executor] = None
        if self.num_workers > 1:
            pool = concurrent.futures.ProcessPoolExecutor(max_workers=self.num_workers)

        try:
            remaining = num_episodes
            while remaining > 0:
                round_episodes = min(remaining, self.num_workers * self.sync_every)
                previous = summary.episodes

                results = self._run_tasks(self._make_tasks(round_episodes), pool)
                self._absorb(results, (summary, window))
                remaining -= round_episodes

                if progress_callback is not None:
                    progress_callback(summary.episodes)

                if log_window and (
                    summary.episodes // log_window > previous // log_window
                ):
                    self.trainer.log_window_summary(summary.episodes, num_episodes, window)
                    window = TrainingSummary()

                if checkpoint_interval and (
                    summary.episodes // checkpoint_interval > previous // checkpoint_interval
                ):
                    self.trainer.save_checkpoint(summary.episodes)
        finally:
            if pool is not None:
                pool.shutdown()

        summary.elapsed_seconds = time.time() - start_time
        summary.checkpoints = list(self.trainer.checkpoints)

        logger.info(
            f"Parallel training complete: {summary.episodes:,} episodes in "
            f"{summary.elapsed_seconds:.2f}s ({summary.episodes_per_second:.1f} episodes/s)"
        )
        logger.info(self.trainer.agent_one.stats_summary())
        logger.info(self.trainer.agent_two.stats_summary())

        self.trainer.save_final_models()
        return summary

