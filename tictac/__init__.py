"""
Tabular Q-learning for N x N tic-tac-toe.

Packages:
    game: Board state machine, state keys and game constants
    agent: Epsilon-greedy Q-learning agent and Q-table persistence
    training: Self-play trainer, parallel self-play and Q-table merging
"""

__version__ = "0.1.0"
