"""
Tests for Q-table persistence (JSON format, wrappers, malformed files).
"""

import json

import pytest

from tictac.agent.qtable import (
    MalformedModelFile,
    MissingModelFile,
    copy_q_table,
    count_entries,
    load_q_table,
    save_q_table,
    table_from_json,
    table_to_json,
)
from tictac.game.board import StateKey


@pytest.fixture
def table():
    return {
        StateKey((0, 0, 0, 0, 0, 0, 0, 0, 0)): {4: 0.36, 0: -0.12},
        StateKey((1, 2, 0, 0, 0, 0, 0, 0, 0)): {8: 1.0},
    }


class TestJsonForm:
    """Test conversion to and from the on-disk representation."""

    def test_keys_are_strings(self, table):
        data = table_to_json(table)
        assert data["[0,0,0,0,0,0,0,0,0]"] == {"4": 0.36, "0": -0.12}
        assert data["[1,2,0,0,0,0,0,0,0]"] == {"8": 1.0}

    def test_written_file_layout(self, table, tmp_path):
        path = save_q_table(table, tmp_path / "model.json")
        with open(path) as f:
            data = json.load(f)
        assert set(data) == {"[0,0,0,0,0,0,0,0,0]", "[1,2,0,0,0,0,0,0,0]"}

    @pytest.mark.parametrize("wrapper", ["q_table", "tabelaQ", "table"])
    def test_wrapped_table_is_accepted(self, table, wrapper):
        data = {wrapper: table_to_json(table), "episodes": 5000}
        assert table_from_json(data) == table

    def test_integer_values_become_floats(self):
        loaded = table_from_json({"[0,0,0,0,0,0,0,0,0]": {"3": 1}})
        value = loaded[StateKey((0,) * 9)][3]
        assert value == 1.0
        assert isinstance(value, float)

    @pytest.mark.parametrize("data", [
        [],
        {"[0,0,0]": [1, 2]},
        {"[0,0,0]": {"x": 1.0}},
        {"[0,0,0]": {"1": "high"}},
        {"[0,0,0]": {"1": True}},
        {"[0,5,0]": {"1": 0.5}},
        {"board": {"1": 0.5}},
    ])
    def test_malformed_shapes(self, data):
        with pytest.raises(ValueError):
            table_from_json(data)


class TestFiles:
    """Test loading and saving model files."""

    def test_save_creates_directories(self, table, tmp_path):
        path = save_q_table(table, tmp_path / "a" / "b" / "model.json")
        assert path.exists()
        assert load_q_table(path) == table

    def test_missing_file(self, tmp_path):
        with pytest.raises(MissingModelFile) as exc_info:
            load_q_table(tmp_path / "nope.json")
        assert exc_info.value.path.name == "nope.json"

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{\"[0,0,0]\": ")
        with pytest.raises(MalformedModelFile, match="invalid JSON"):
            load_q_table(path)

    def test_binary_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_bytes(b"\xff\xfe\x00\x81")
        with pytest.raises(MalformedModelFile):
            load_q_table(path)

    def test_legacy_wrapped_file(self, tmp_path):
        path = tmp_path / "agente_x_final_3x3.json"
        path.write_text('{"tabelaQ": {"[0,0,0,0,0,0,0,0,0]": {"4": 0.5}}}')
        assert load_q_table(path) == {StateKey((0,) * 9): {4: 0.5}}

    def test_unreadable_path(self, tmp_path):
        path = tmp_path / "model.json"
        path.mkdir()
        with pytest.raises(MalformedModelFile, match="cannot be read"):
            load_q_table(path)

    def test_failed_save_keeps_previous_file(self, table, tmp_path, monkeypatch):
        path = save_q_table(table, tmp_path / "model.json")
        before = path.read_text()

        def interrupted_dump(obj, f, **kwargs):
            f.write('{"[0,0,0,0,0,0,0,0,0]": ')
            raise OSError("no space left on device")

        monkeypatch.setattr(json, "dump", interrupted_dump)
        with pytest.raises(OSError, match="no space left"):
            save_q_table({}, path)

        assert path.read_text() == before
        assert [p.name for p in tmp_path.iterdir()] == ["model.json"]

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2, 3]")
        with pytest.raises(MalformedModelFile, match="expected a JSON object"):
            load_q_table(path)


class TestHelpers:
    """Test table utilities."""

    def test_copy_is_deep(self, table):
        copied = copy_q_table(table)
        assert copied == table
        copied[StateKey((0,) * 9)][4] = 99.0
        assert table[StateKey((0,) * 9)][4] == 0.36

    def test_count_entries(self, table):
        assert count_entries(table) == 3
        assert count_entries({}) == 0
