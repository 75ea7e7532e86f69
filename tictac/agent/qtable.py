"""
Q-table storage and persistence.

A Q-table maps a board position (:class:`StateKey`) to the values of the
actions tried in that position::

    {StateKey((0, 0, 1, ...)): {4: 0.36, 7: -0.12}, ...}

On disk a table is a single JSON object whose keys are the state keys in
compact list form and whose values map string-encoded action indices to
floats::

    {
      "[0,0,1,0,0,0,0,0,0]": {"4": 0.36, "7": -0.12}
    }

Older saves that wrap the table under a ``"q_table"``, ``"tabelaQ"`` or
``"table"`` field are accepted as well. There is no schema versioning.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Union

from tictac.game.board import StateKey

logger = logging.getLogger(__name__)

QTable = Dict[StateKey, Dict[int, float]]

# Field names older saves used to nest the table under
WRAPPER_KEYS = ("q_table", "tabelaQ", "table")


class ModelFileException(Exception):
    """Base exception for persisted Q-table problems."""

    def __init__(self, path: Union[str, Path], message: str):
        self.path = Path(path)
        super().__init__(message)


class MissingModelFile(ModelFileException):
    """Raised when a model file does not exist (callers usually cold-start)."""

    def __init__(self, path: Union[str, Path]):
        super().__init__(path, f"Model file not found: {path}")


class MalformedModelFile(ModelFileException):
    """Raised when a model file is not JSON or does not hold a Q-table."""

    def __init__(self, path: Union[str, Path], reason: str):
        self.reason = reason
        super().__init__(path, f"Malformed model file {path}: {reason}")


def copy_q_table(table: QTable) -> QTable:
    """Deep copy a table (keys are immutable, action maps are copied)."""
    return {state: dict(actions) for state, actions in table.items()}


def count_entries(table: QTable) -> int:
    """Total number of (state, action) pairs in ``table``."""
    return sum(len(actions) for actions in table.values())


def table_to_json(table: QTable) -> Dict[str, Dict[str, float]]:
    """Convert a table into its JSON-ready form."""
    return {
        state.to_string(): {str(action): float(value) for action, value in actions.items()}
        for state, actions in table.items()
    }


def table_from_json(data: Any) -> QTable:
    """
    Convert the JSON form back into a table.

    Args:
        data: Parsed JSON (optionally wrapped under one of WRAPPER_KEYS)

    Returns:
        Q-table keyed by StateKey with integer actions

    Raises:
        ValueError: If ``data`` does not match the table shape
    """
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")

    for field in WRAPPER_KEYS:
        if isinstance(data.get(field), dict):
            data = data[field]
            break

    table: QTable = {}
    for state_text, actions in data.items():
        state = StateKey.from_string(state_text)
        if not isinstance(actions, dict):
            raise ValueError(f"actions for state {state_text} are not an object")

        parsed: Dict[int, float] = {}
        for action_text, value in actions.items():
            try:
                action = int(action_text)
            except ValueError as e:
                raise ValueError(
                    f"action {action_text!r} in state {state_text} is not an integer"
                ) from e
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(
                    f"value for action {action_text} in state {state_text} "
                    f"is not a number: {value!r}"
                )
            parsed[action] = float(value)
        table[state] = parsed

    return table


def load_q_table(path: Union[str, Path]) -> QTable:
    """
    Load a Q-table from a JSON file.

    Args:
        path: Path to the model file

    Returns:
        The loaded table

    Raises:
        MissingModelFile: If the file does not exist
        MalformedModelFile: If the file cannot be read, is not valid JSON,
            or does not hold a Q-table
    """
    path = Path(path)
    if not path.exists():
        raise MissingModelFile(path)

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise MalformedModelFile(path, f"invalid JSON ({e})") from e
    except UnicodeDecodeError as e:
        raise MalformedModelFile(path, f"not a text file ({e})") from e
    except OSError as e:
        raise MalformedModelFile(path, f"cannot be read ({e})") from e

    try:
        return table_from_json(data)
    except ValueError as e:
        raise MalformedModelFile(path, str(e)) from e


def save_q_table(table: QTable, path: Union[str, Path]) -> Path:
    """
    Write a Q-table to ``path`` as JSON, creating parent directories.

    The table is written to a temporary file beside ``path`` and then moved
    into place, so an interrupted save never truncates an existing model.

    Args:
        table: Table to persist
        path: Destination file

    Returns:
        Resolved destination path

    Raises:
        OSError: If the file cannot be written
    """
    path = Path(path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(table_to_json(table), f, indent=2)
        os.replace(tmp_path, path)
    except OSError:
        if tmp_path.exists():
            tmp_path.unlink()
        raise

    logger.debug(f"Wrote {len(table):,} states to {path}")
    return path
