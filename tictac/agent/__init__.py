"""Tabular Q-learning agent and Q-table persistence."""

from tictac.agent.qlearning import (
    AgentException,
    AgentStats,
    NoValidActions,
    QLearningAgent,
)
from tictac.agent.qtable import (
    QTable,
    ModelFileException,
    MalformedModelFile,
    MissingModelFile,
    copy_q_table,
    count_entries,
    load_q_table,
    save_q_table,
)

__all__ = [
    "AgentException",
    "AgentStats",
    "NoValidActions",
    "QLearningAgent",
    "QTable",
    "ModelFileException",
    "MalformedModelFile",
    "MissingModelFile",
    "copy_q_table",
    "count_entries",
    "load_q_table",
    "save_q_table",
]
