"""
Game constants for N x N tic-tac-toe.

This module defines the cell symbols, board size constraints, terminal
rewards, and the win-combination generator shared by the environment,
the agents and the trainer.
"""

from typing import Dict, FrozenSet, Tuple

# Cell values
EMPTY = 0
PLAYER_ONE = 1
PLAYER_TWO = 2
CELL_VALUES = (EMPTY, PLAYER_ONE, PLAYER_TWO)

# Winner marker for a finished game with no winner (None means "no result yet")
DRAW = 0

SYMBOLS: Dict[int, str] = {
    EMPTY: ' ',
    PLAYER_ONE: 'X',
    PLAYER_TWO: 'O',
}

# Board constraints
MIN_DIMENSION = 3
MAX_DIMENSION = 9
DEFAULT_DIMENSION = 3

# Rewards
WIN_REWARD = 1.0
LOSS_REWARD = -1.0
DRAW_REWARD = 0.0


def other_player(player: int) -> int:
    """Return the opponent of ``player``."""
    return PLAYER_TWO if player == PLAYER_ONE else PLAYER_ONE


def generate_win_combinations(dimension: int) -> Tuple[FrozenSet[int], ...]:
    """
    Generate every winning line for an N x N board.

    A line is won by filling a whole row, a whole column, or one of the two
    full diagonals, so there are exactly ``2 * dimension + 2`` combinations.

    Args:
        dimension: Board side length (3-9)

    Returns:
        Tuple of frozensets of cell indices, in the order rows, columns,
        main diagonal, anti-diagonal

    Raises:
        ValueError: If dimension is outside [MIN_DIMENSION, MAX_DIMENSION]

    Examples:
        >>> [sorted(c) for c in generate_win_combinations(3)][-2:]
        [[0, 4, 8], [2, 4, 6]]
    """
    if dimension < MIN_DIMENSION or dimension > MAX_DIMENSION:
        raise ValueError(
            f"Board dimension must be between {MIN_DIMENSION} and "
            f"{MAX_DIMENSION}, got {dimension}"
        )

    num_cells = dimension * dimension
    combinations = []

    # Rows
    for start in range(0, num_cells, dimension):
        combinations.append(frozenset(start + j for j in range(dimension)))

    # Columns
    for col in range(dimension):
        combinations.append(frozenset(col + j * dimension for j in range(dimension)))

    # Main diagonal (top-left to bottom-right)
    combinations.append(frozenset(j * (dimension + 1) for j in range(dimension)))

    # Anti-diagonal (top-right to bottom-left)
    combinations.append(frozenset((j + 1) * (dimension - 1) for j in range(dimension)))

    return tuple(combinations)
