"""
Training package for tabular self-play.

Main Components:
    - SelfPlayTrainer: Runs, checkpoints and evaluates self-play between two agents
    - ParallelSelfPlay: Spreads self-play over processes, merging replica tables
    - merge_q_tables / merge_model_files: Super-agent construction
"""

from tictac.training.merge import MergeStats, merge_q_tables, merge_model_files
from tictac.training.trainer import (
    CheckpointRecord,
    CheckpointWriteFailure,
    EvaluationResult,
    SelfPlayTrainer,
    TrainingSummary,
    checkpoint_path,
    final_model_path,
    superagent_path,
)
from tictac.training.parallel import ParallelSelfPlay

__all__ = [
    "MergeStats",
    "merge_q_tables",
    "merge_model_files",
    "CheckpointRecord",
    "CheckpointWriteFailure",
    "EvaluationResult",
    "SelfPlayTrainer",
    "TrainingSummary",
    "checkpoint_path",
    "final_model_path",
    "superagent_path",
    "ParallelSelfPlay",
]
