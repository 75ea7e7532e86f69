"""
Tic-tac-toe game engine package.

This package contains the N x N game state machine, the typed state key
used by the Q-table, and the shared game constants.
"""

from tictac.game.constants import (
    EMPTY,
    PLAYER_ONE,
    PLAYER_TWO,
    DRAW,
    SYMBOLS,
    MIN_DIMENSION,
    MAX_DIMENSION,
    WIN_REWARD,
    LOSS_REWARD,
    DRAW_REWARD,
    generate_win_combinations,
    other_player,
)
from tictac.game.board import (
    GameException,
    InvalidAction,
    StateKey,
    GameStatus,
    TicTacToeEnv,
)

__all__ = [
    "EMPTY",
    "PLAYER_ONE",
    "PLAYER_TWO",
    "DRAW",
    "SYMBOLS",
    "MIN_DIMENSION",
    "MAX_DIMENSION",
    "WIN_REWARD",
    "LOSS_REWARD",
    "DRAW_REWARD",
    "generate_win_combinations",
    "other_player",
    "GameException",
    "InvalidAction",
    "StateKey",
    "GameStatus",
    "TicTacToeEnv",
]
