"""
Tabular Q-learning agent.

The agent owns a Q-table and an exploration rate. During a game it picks
moves with an epsilon-greedy policy and records every (state, action) pair
it plays. When the game ends, the terminal reward is replayed backwards
through that trajectory, discounting it by gamma at every step, so the
decisive move gets full credit and earlier moves progressively less.

Update rule (one-step TD / Bellman correction):
    target    = reward + (0 if terminal else gamma * max_a Q(next_state, a))
    Q(s, a)  <- Q(s, a) + alpha * (target - Q(s, a))

Hyperparameters:
    alpha: Step size toward the new estimate
    gamma: Discount applied to future value and to backward credit
    epsilon: Probability of a random move while exploring
    epsilon_min: Floor for epsilon
    epsilon_decay: Multiplicative per-episode decay of epsilon
"""

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from tictac.agent.qtable import (
    MissingModelFile,
    QTable,
    count_entries,
    load_q_table,
    save_q_table,
)
from tictac.game.board import StateKey
from tictac.game.constants import PLAYER_ONE, SYMBOLS

logger = logging.getLogger(__name__)


class AgentException(Exception):
    """Base exception for agent errors."""

    pass


class NoValidActions(AgentException):
    """Raised when an action is requested with an empty valid-action set."""

    pass


@dataclass
class AgentStats:
    """Per-agent training counters. Only the owning agent updates them."""

    episodes_trained: int = 0
    wins: int = 0
    losses: int = 0
    draws: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

    def accumulate(self, other: "AgentStats") -> None:
        """Add the counters of ``other`` (e.g. from a worker replica)."""
        self.episodes_trained += other.episodes_trained
        self.wins += other.wins
        self.losses += other.losses
        self.draws += other.draws


class QLearningAgent:
    """
    Epsilon-greedy tabular Q-learning agent for one seat of the game.

    Attributes:
        player: Seat this agent plays (PLAYER_ONE or PLAYER_TWO)
        alpha: Learning rate
        gamma: Discount factor
        epsilon: Current exploration rate
        epsilon_min: Exploration floor
        epsilon_decay: Per-episode multiplicative decay
        stats: Training counters
        trajectory: (state, action) pairs played in the current episode
    """

    def __init__(
        self,
        player: int = PLAYER_ONE,
        alpha: float = 0.5,
        gamma: float = 0.9,
        epsilon: float = 1.0,
        epsilon_min: float = 0.01,
        epsilon_decay: float = 0.9995,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
    ):
        """
        Initialize an agent with an empty Q-table.

        Args:
            player: Seat this agent plays
            alpha: Learning rate
            gamma: Discount factor
            epsilon: Initial exploration rate
            epsilon_min: Minimum exploration rate
            epsilon_decay: Multiplicative decay applied after each episode
            rng: Random generator for exploration and tie-breaks
            seed: Seed for a fresh generator (ignored when rng is given)
        """
        self.player = player
        self.alpha = alpha
        self.gamma = gamma
        self.epsilon = epsilon
        self.epsilon_min = epsilon_min
        self.epsilon_decay = epsilon_decay
        self.rng = rng if rng is not None else np.random.default_rng(seed)

        self._q_table: QTable = {}
        self.stats = AgentStats()
        self.trajectory: List[Tuple[StateKey, int]] = []

    @classmethod
    def from_file(cls, path: Union[str, Path], **kwargs: Any) -> "QLearningAgent":
        """
        Create an agent and load its Q-table from ``path``.

        A missing file yields an untrained agent; a malformed file raises.
        """
        agent = cls(**kwargs)
        agent.load(path)
        return agent

    @property
    def symbol(self) -> str:
        return SYMBOLS[self.player]

    @property
    def q_table(self) -> QTable:
        return self._q_table

    @property
    def num_states(self) -> int:
        return len(self._q_table)

    def replace_table(self, table: QTable) -> None:
        """Install ``table`` as this agent's Q-table (the agent takes ownership)."""
        self._q_table = table

    # ------------------------------------------------------------------
    # Value access
    # ------------------------------------------------------------------

    def value(self, state_key: StateKey, action: int) -> float:
        """Return Q(state, action), storing a 0.0 default on first access."""
        actions = self._q_table.setdefault(state_key, {})
        if action not in actions:
            actions[action] = 0.0
        return actions[action]

    def best_value(self, state_key: StateKey) -> float:
        """Highest recorded value for ``state_key``; 0.0 when nothing is known."""
        actions = self._q_table.get(state_key)
        if not actions:
            return 0.0
        return max(actions.values())

    def update(
        self,
        state_key: StateKey,
        action: int,
        reward: float,
        next_state_key: StateKey,
        terminal: bool,
    ) -> float:
        """
        Apply one TD correction to Q(state, action).

        When ``terminal`` is true the future term is dropped, even if
        ``next_state_key`` equals ``state_key``.

        Returns:
            The new value
        """
        old_value = self.value(state_key, action)
        target = reward
        if not terminal:
            target += self.gamma * self.best_value(next_state_key)
        new_value = old_value + self.alpha * (target - old_value)
        self._q_table[state_key][action] = new_value
        return new_value

    # ------------------------------------------------------------------
    # Action selection
    # ------------------------------------------------------------------

    def choose_action(
        self,
        state_key: StateKey,
        valid_actions: Sequence[int],
        exploring: bool = True,
    ) -> int:
        """
        Pick a move with the epsilon-greedy policy.

        Args:
            state_key: Current board key
            valid_actions: Legal moves
            exploring: When False, always act greedily and leave the
                Q-table untouched

        Returns:
            Chosen action

        Raises:
            NoValidActions: If ``valid_actions`` is empty
        """
        if len(valid_actions) == 0:
            raise NoValidActions(f"No valid actions for state {state_key}")

        if not exploring:
            return self._greedy_action(state_key, valid_actions, persist=False)

        if self.rng.random() < self.epsilon:
            return int(valid_actions[self.rng.integers(len(valid_actions))])
        return self._greedy_action(state_key, valid_actions, persist=True)

    def _greedy_action(
        self,
        state_key: StateKey,
        valid_actions: Sequence[int],
        persist: bool,
    ) -> int:
        # Ties are broken uniformly at random
        if persist:
            values = [self.value(state_key, a) for a in valid_actions]
        else:
            known = self._q_table.get(state_key, {})
            values = [known.get(a, 0.0) for a in valid_actions]

        best = max(values)
        tied = [a for a, v in zip(valid_actions, values) if v == best]
        return int(tied[self.rng.integers(len(tied))])

    # ------------------------------------------------------------------
    # Episode lifecycle
    # ------------------------------------------------------------------

    def begin_episode(self) -> None:
        self.trajectory = []

    def record(self, state_key: StateKey, action: int) -> None:
        self.trajectory.append((state_key, action))

    def learn_from_outcome(self, terminal_reward: float) -> None:
        """
        Credit the finished episode's moves with the terminal reward.

        Moves are replayed from the last to the first; each gets one terminal
        update with the current reward, which is then multiplied by gamma
        before moving to the earlier move. Epsilon decays afterwards.
        """
        self.stats.episodes_trained += 1
        if terminal_reward > 0:
            self.stats.wins += 1
        elif terminal_reward < 0:
            self.stats.losses += 1
        else:
            self.stats.draws += 1

        reward = terminal_reward
        for state_key, action in reversed(self.trajectory):
            self.update(state_key, action, reward, state_key, terminal=True)
            reward *= self.gamma
        self.trajectory = []

        self.decay_epsilon()

    def decay_epsilon(self) -> None:
        self.epsilon = max(self.epsilon_min, self.epsilon * self.epsilon_decay)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: Union[str, Path]) -> Path:
        """
        Persist the full Q-table as JSON.

        Raises:
            OSError: If the file cannot be written
        """
        saved_path = save_q_table(self._q_table, path)
        logger.info(
            f"Agent {self.symbol} saved to {saved_path} "
            f"({self.num_states:,} states, {count_entries(self._q_table):,} entries)"
        )
        return saved_path

    def load(self, path: Union[str, Path]) -> bool:
        """
        Replace the Q-table with the one stored at ``path``.

        A missing file is not an error: the agent keeps an empty table and a
        warning is logged.

        Returns:
            True if a table was loaded, False on cold start

        Raises:
            MalformedModelFile: If the file exists but cannot be parsed
        """
        try:
            table = load_q_table(path)
        except MissingModelFile:
            logger.warning(
                f"No model file found at {path}; agent {self.symbol} starts from scratch"
            )
            self._q_table = {}
            return False

        self._q_table = table
        logger.info(f"Agent {self.symbol} loaded from {path} ({self.num_states:,} known states)")
        return True

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def stats_summary(self) -> str:
        """Human-readable training statistics."""
        total = self.stats.episodes_trained
        if total > 0:
            win_rate = self.stats.wins / total
            loss_rate = self.stats.losses / total
            draw_rate = self.stats.draws / total
        else:
            win_rate = loss_rate = draw_rate = 0.0

        lines = [f"Agent {self.symbol} statistics:"]
        lines.append(f"  Episodes trained: {total:,}")
        lines.append(f"  Wins: {self.stats.wins:,} ({win_rate:.1%})")
        lines.append(f"  Losses: {self.stats.losses:,} ({loss_rate:.1%})")
        lines.append(f"  Draws: {self.stats.draws:,} ({draw_rate:.1%})")
        lines.append(f"  Epsilon: {self.epsilon:.4f}")
        lines.append(f"  Known states: {self.num_states:,}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"QLearningAgent(player={self.symbol}, alpha={self.alpha}, gamma={self.gamma}, "
            f"epsilon={self.epsilon:.4f}, states={self.num_states})"
        )
