"""
Core game logic for N x N tic-tac-toe.

This module implements the deterministic two-player game state machine used
for self-play training. The environment holds no learning logic: it keeps the
board, validates and applies moves, detects wins and draws, and hands out
step rewards.

States:
    IN_PROGRESS -> WON(player) | DRAWN

The starting player of every game is decided by a fair coin flip, so that
self-play does not bias either seat.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import numpy as np

from tictac.game.constants import (
    CELL_VALUES,
    DEFAULT_DIMENSION,
    DRAW,
    DRAW_REWARD,
    EMPTY,
    PLAYER_ONE,
    PLAYER_TWO,
    SYMBOLS,
    WIN_REWARD,
    generate_win_combinations,
    other_player,
)


# ============================================================================
# Custom Exceptions
# ============================================================================


class GameException(Exception):
    """Base exception for tic-tac-toe game errors."""

    pass


class InvalidAction(GameException):
    """Raised when a move targets an occupied cell or the game is over."""

    def __init__(self, action: int, reason: str):
        self.action = action
        self.reason = reason
        super().__init__(f"Invalid action {action}: {reason}")


# ============================================================================
# State Key
# ============================================================================


@dataclass(frozen=True)
class StateKey:
    """
    Immutable lookup key for a board position.

    Two cell-wise identical boards always produce equal keys. No symmetry
    folding is applied.

    Attributes:
        cells: Cell values in board order
    """

    cells: Tuple[int, ...]

    def __post_init__(self):
        """Validate cell contents."""
        for value in self.cells:
            if value not in CELL_VALUES:
                raise ValueError(f"Invalid cell value: {value!r}")

    @classmethod
    def from_board(cls, board) -> "StateKey":
        """Build a key from any sequence of cell values."""
        return cls(tuple(int(v) for v in board))

    @classmethod
    def from_string(cls, text: str) -> "StateKey":
        """
        Parse the persisted form produced by :meth:`to_string`.

        Raises:
            ValueError: If ``text`` is not a JSON list of cell values
        """
        try:
            values = json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"State key is not a JSON list: {text!r}") from e
        if not isinstance(values, list):
            raise ValueError(f"State key is not a JSON list: {text!r}")
        if any(isinstance(v, bool) or not isinstance(v, int) for v in values):
            raise ValueError(f"State key holds non-integer cells: {text!r}")
        return cls(tuple(values))

    def to_string(self) -> str:
        """Compact JSON list form, e.g. ``'[0,1,2,0,0,0,0,0,0]'``."""
        return "[" + ",".join(str(v) for v in self.cells) + "]"

    def __str__(self) -> str:
        return self.to_string()

    def __len__(self) -> int:
        return len(self.cells)


class GameStatus(Enum):
    """Lifecycle of a single game."""

    IN_PROGRESS = "in_progress"
    WON = "won"
    DRAWN = "drawn"


# ============================================================================
# Environment
# ============================================================================


class TicTacToeEnv:
    """
    N x N tic-tac-toe environment (3 <= N <= 9).

    The board is a flat list of ``N * N`` cells, each EMPTY, PLAYER_ONE or
    PLAYER_TWO. Winning requires a full row, column or diagonal.

    Attributes:
        dimension: Board side length
        num_cells: Total number of cells (dimension squared)
        win_combinations: Precomputed winning lines, immutable
        board: Current cell values
        current_player: Player to move (PLAYER_ONE or PLAYER_TWO)
        finished: Whether the game has ended
        winner: None while in progress, the winning player, or DRAW
    """

    def __init__(
        self,
        dimension: int = DEFAULT_DIMENSION,
        rng: Optional[np.random.Generator] = None,
        seed: Optional[int] = None,
    ):
        """
        Initialize the environment and start a first game.

        Args:
            dimension: Board side length (3-9)
            rng: Random generator for the starting-player coin flip
            seed: Seed for a fresh generator (ignored when rng is given)

        Raises:
            ValueError: If dimension is outside the supported range
        """
        self.win_combinations = generate_win_combinations(dimension)
        self.dimension = dimension
        self.num_cells = dimension * dimension
        self.rng = rng if rng is not None else np.random.default_rng(seed)

        self.board: List[int] = []
        self.current_player = PLAYER_ONE
        self.starting_player = PLAYER_ONE
        self.finished = False
        self.winner: Optional[int] = None

        self.reset()

    def reset(self) -> Tuple[int, ...]:
        """
        Clear the board and flip a fair coin for the starting player.

        Returns:
            The initial (empty) board state
        """
        self.board = [EMPTY] * self.num_cells
        self.starting_player = PLAYER_ONE if self.rng.random() < 0.5 else PLAYER_TWO
        self.current_player = self.starting_player
        self.finished = False
        self.winner = None
        return self.state()

    def state(self) -> Tuple[int, ...]:
        """Return an immutable copy of the board."""
        return tuple(self.board)

    def state_key(self) -> StateKey:
        """Return the Q-table lookup key for the current board."""
        return StateKey(tuple(self.board))

    @property
    def status(self) -> GameStatus:
        if not self.finished:
            return GameStatus.IN_PROGRESS
        if self.winner == DRAW:
            return GameStatus.DRAWN
        return GameStatus.WON

    def valid_actions(self) -> List[int]:
        """Return the indices of all empty cells in ascending order."""
        return [i for i, value in enumerate(self.board) if value == EMPTY]

    def apply_action(self, action: int) -> Tuple[Tuple[int, ...], float, bool]:
        """
        Place the current player's mark on ``action``.

        Termination is checked in order: win for the acting player
        (reward 1.0), then draw when the board is full (reward 0.0).
        The active player is toggled after every move.

        Args:
            action: Cell index (0 to N*N - 1)

        Returns:
            Tuple of (next_state, reward, finished)

        Raises:
            InvalidAction: If the cell is occupied or out of range, or the
                game has already finished
        """
        if not 0 <= action < self.num_cells:
            raise InvalidAction(action, f"cell must be in [0, {self.num_cells - 1}]")
        if self.board[action] != EMPTY:
            raise InvalidAction(action, "cell is occupied")
        if self.finished:
            raise InvalidAction(action, "game is already finished")

        player = self.current_player
        self.board[action] = player
        reward = 0.0

        if self._has_won(player):
            self.finished = True
            self.winner = player
            reward = WIN_REWARD
        elif EMPTY not in self.board:
            self.finished = True
            self.winner = DRAW
            reward = DRAW_REWARD

        self.current_player = other_player(player)
        return self.state(), reward, self.finished

    def _has_won(self, player: int) -> bool:
        return any(
            all(self.board[cell] == player for cell in combination)
            for combination in self.win_combinations
        )

    def render(self) -> str:
        """
        Format the board as a grid.

        Example (3x3)::

             X │ O │
            ───┼───┼───
               │ X │
            ───┼───┼───
               │   │ O
        """
        lines = []
        for row in range(self.dimension):
            start = row * self.dimension
            cells = [SYMBOLS[v] for v in self.board[start:start + self.dimension]]
            lines.append(" " + " │ ".join(cells))
            if row < self.dimension - 1:
                lines.append("───" + "┼───" * (self.dimension - 1))
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.render()

    def __repr__(self) -> str:
        return (
            f"TicTacToeEnv(dimension={self.dimension}, "
            f"current_player={self.current_player}, status={self.status.value})"
        )
