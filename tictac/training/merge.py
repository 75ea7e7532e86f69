"""
Q-table merging.

Combines two independently trained Q-tables into a single "super-agent"
table. The first table is deep-copied as the base; then every entry of the
second table is folded in:

    - state unknown to the base:      copy its whole action map
    - action unknown in a known state: copy the single entry
    - both know the (state, action):  keep the higher value

The winning value at any (state, action) pair does not depend on the order
of the inputs; exact ties keep the first table's value. No entry present in
either input is ever dropped.
"""

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from tictac.agent.qtable import (
    ModelFileException,
    QTable,
    copy_q_table,
    load_q_table,
    save_q_table,
)

logger = logging.getLogger(__name__)


@dataclass
class MergeStats:
    """Counts describing how two tables were combined."""

    states_a: int = 0
    states_b: int = 0
    new_states: int = 0
    new_actions: int = 0
    conflicts: int = 0
    conflicts_resolved: int = 0
    states_merged: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


def merge_q_tables(table_a: QTable, table_b: QTable) -> Tuple[QTable, MergeStats]:
    """
    Merge two Q-tables, keeping the higher value on overlap.

    Neither input is modified.

    Args:
        table_a: Base table (wins exact ties)
        table_b: Table folded into the copy of ``table_a``

    Returns:
        Tuple of (merged_table, stats). ``stats.conflicts_resolved`` counts
        the overlapping entries where ``table_b`` held the higher value.
    """
    merged = copy_q_table(table_a)
    stats = MergeStats(states_a=len(table_a), states_b=len(table_b))

    for state, actions_b in table_b.items():
        actions_merged = merged.get(state)
        if actions_merged is None:
            merged[state] = dict(actions_b)
            stats.new_states += 1
            continue

        for action, value_b in actions_b.items():
            if action not in actions_merged:
                actions_merged[action] = value_b
                stats.new_actions += 1
                continue

            stats.conflicts += 1
            if value_b > actions_merged[action]:
                actions_merged[action] = value_b
                stats.conflicts_resolved += 1

    stats.states_merged = len(merged)
    return merged, stats


def merge_model_files(
    path_a: Union[str, Path],
    path_b: Union[str, Path],
    output_path: Union[str, Path],
) -> Optional[MergeStats]:
    """
    Load two persisted tables, merge them and save the result.

    Failures are reported through the log instead of raised, so callers such
    as the training CLI keep running.

    Args:
        path_a: First model file (wins exact ties)
        path_b: Second model file
        output_path: Where to write the merged table

    Returns:
        Merge statistics, or None if an input could not be read or the
        output could not be written
    """
    try:
        table_a = load_q_table(path_a)
        table_b = load_q_table(path_b)
    except ModelFileException as e:
        logger.error(f"Cannot merge models: {e}")
        return None

    logger.info(f"Loaded {len(table_a):,} states from {path_a}")
    logger.info(f"Loaded {len(table_b):,} states from {path_b}")

    merged, stats = merge_q_tables(table_a, table_b)

    try:
        saved_path = save_q_table(merged, output_path)
    except OSError as e:
        logger.error(f"Failed to write merged model {output_path}: {e}")
        return None

    logger.info(
        f"Merged model saved to {saved_path}: {stats.states_merged:,} states "
        f"({stats.new_states:,} new states, {stats.new_actions:,} new actions, "
        f"{stats.conflicts_resolved:,}/{stats.conflicts:,} conflicts resolved in favour of {path_b})"
    )
    return stats
