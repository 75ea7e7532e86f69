"""
Unit tests for the Q-learning agent.

Covers the TD update, backward credit assignment, epsilon-greedy action
selection, exploration decay, statistics, and model persistence.
"""

from collections import Counter

import pytest

from tictac.agent.qlearning import AgentStats, NoValidActions, QLearningAgent
from tictac.agent.qtable import MalformedModelFile
from tictac.game.board import StateKey
from tictac.game.constants import PLAYER_ONE, PLAYER_TWO

EMPTY_BOARD = StateKey((0,) * 9)


def key(*cells):
    return StateKey(tuple(cells))


@pytest.fixture
def agent():
    """Agent with the default hyperparameters and a fixed seed."""
    return QLearningAgent(PLAYER_ONE, seed=0)


# ============================================================================
# Test Updates
# ============================================================================


class TestUpdate:
    """Test the one-step TD correction."""

    def test_bellman_update(self):
        """0 + 0.5 * (0 + 0.9 * 0.8 - 0) = 0.36"""
        agent = QLearningAgent(alpha=0.5, gamma=0.9, seed=0)
        state = key(1, 0, 0, 0, 0, 0, 0, 0, 0)
        next_state = key(1, 2, 0, 0, 0, 0, 0, 0, 0)
        agent.q_table[next_state] = {2: 0.8, 5: -0.3}

        new_value = agent.update(state, 4, 0.0, next_state, terminal=False)

        assert new_value == pytest.approx(0.36)
        assert agent.q_table[state][4] == pytest.approx(0.36)

    def test_terminal_update_ignores_future(self):
        agent = QLearningAgent(alpha=0.5, gamma=0.9, seed=0)
        state = key(1, 0, 0, 0, 0, 0, 0, 0, 0)
        agent.q_table[state] = {4: 0.0, 7: 10.0}

        # Same key as next state: the future term must still be dropped
        new_value = agent.update(state, 4, 1.0, state, terminal=True)

        assert new_value == pytest.approx(0.5)

    def test_unknown_next_state_has_zero_value(self):
        agent = QLearningAgent(alpha=1.0, gamma=0.9, seed=0)
        new_value = agent.update(EMPTY_BOARD, 0, 0.25, key(1, 0, 0, 0, 0, 0, 0, 0, 0), False)
        assert new_value == pytest.approx(0.25)

    def test_value_defaults_to_zero_and_persists(self, agent):
        assert agent.value(EMPTY_BOARD, 3) == 0.0
        assert agent.q_table[EMPTY_BOARD] == {3: 0.0}

    def test_best_value(self, agent):
        assert agent.best_value(EMPTY_BOARD) == 0.0
        agent.q_table[EMPTY_BOARD] = {0: -0.5, 1: -0.2}
        assert agent.best_value(EMPTY_BOARD) == pytest.approx(-0.2)


class TestLearnFromOutcome:
    """Test backward credit assignment over an episode trajectory."""

    def test_backward_credit(self):
        """With alpha=1 the moves receive 1.0, 0.9 and 0.81, last to first."""
        agent = QLearningAgent(alpha=1.0, gamma=0.9, seed=0)
        first = key(0, 0, 0, 0, 0, 0, 0, 0, 0)
        second = key(1, 2, 0, 0, 0, 0, 0, 0, 0)
        third = key(1, 2, 1, 2, 0, 0, 0, 0, 0)

        agent.begin_episode()
        agent.record(first, 0)
        agent.record(second, 2)
        agent.record(third, 4)
        agent.learn_from_outcome(1.0)

        assert agent.q_table[third][4] == pytest.approx(1.0)
        assert agent.q_table[second][2] == pytest.approx(0.9)
        assert agent.q_table[first][0] == pytest.approx(0.81)
        assert agent.trajectory == []

    def test_loss_propagates_negative_credit(self):
        agent = QLearningAgent(alpha=0.5, gamma=0.9, seed=0)
        agent.record(EMPTY_BOARD, 4)
        agent.learn_from_outcome(-1.0)
        assert agent.q_table[EMPTY_BOARD][4] == pytest.approx(-0.5)

    def test_statistics(self, agent):
        for reward in (1.0, 1.0, -1.0, 0.0):
            agent.begin_episode()
            agent.record(EMPTY_BOARD, 0)
            agent.learn_from_outcome(reward)

        assert agent.stats == AgentStats(episodes_trained=4, wins=2, losses=1, draws=1)
        summary = agent.stats_summary()
        assert "Episodes trained: 4" in summary
        assert "Wins: 2 (50.0%)" in summary

    def test_epsilon_decays_after_each_episode(self):
        agent = QLearningAgent(epsilon=1.0, epsilon_decay=0.5, epsilon_min=0.1, seed=0)
        agent.learn_from_outcome(0.0)
        assert agent.epsilon == pytest.approx(0.5)
        agent.learn_from_outcome(0.0)
        agent.learn_from_outcome(0.0)
        agent.learn_from_outcome(0.0)
        assert agent.epsilon == pytest.approx(0.1)

    def test_stats_accumulate(self):
        stats = AgentStats(episodes_trained=2, wins=1, losses=1)
        stats.accumulate(AgentStats(episodes_trained=3, draws=3))
        assert stats.to_dict() == {
            'episodes_trained': 5, 'wins': 1, 'losses': 1, 'draws': 3,
        }


# ============================================================================
# Test Action Selection
# ============================================================================


class TestChooseAction:
    """Test epsilon-greedy action selection."""

    def test_full_exploration_is_uniform(self):
        agent = QLearningAgent(epsilon=1.0, seed=123)
        agent.q_table[EMPTY_BOARD] = {4: 100.0}
        counts = Counter(agent.choose_action(EMPTY_BOARD, list(range(9))) for _ in range(9000))

        assert set(counts) == set(range(9))
        for action in range(9):
            assert 800 < counts[action] < 1200

    def test_no_exploration_is_greedy(self):
        agent = QLearningAgent(epsilon=0.0, seed=0)
        agent.q_table[EMPTY_BOARD] = {3: 0.5, 4: 0.1}
        choices = {agent.choose_action(EMPTY_BOARD, list(range(9))) for _ in range(200)}
        assert choices == {3}

    def test_greedy_ignores_invalid_actions(self):
        agent = QLearningAgent(epsilon=0.0, seed=0)
        agent.q_table[EMPTY_BOARD] = {3: 0.5, 4: 0.1}
        assert agent.choose_action(EMPTY_BOARD, [4, 5]) == 4

    def test_ties_are_broken_randomly(self):
        agent = QLearningAgent(epsilon=0.0, seed=5)
        choices = {agent.choose_action(EMPTY_BOARD, [0, 1, 2]) for _ in range(300)}
        assert choices == {0, 1, 2}

    def test_exploring_greedy_stores_defaults(self):
        agent = QLearningAgent(epsilon=0.0, seed=0)
        agent.choose_action(EMPTY_BOARD, [0, 1, 2])
        assert agent.q_table[EMPTY_BOARD] == {0: 0.0, 1: 0.0, 2: 0.0}

    def test_non_exploring_leaves_table_untouched(self):
        agent = QLearningAgent(epsilon=1.0, seed=0)
        agent.q_table[EMPTY_BOARD] = {7: 0.9}

        for _ in range(50):
            assert agent.choose_action(EMPTY_BOARD, list(range(9)), exploring=False) == 7
        unseen = key(1, 0, 0, 0, 0, 0, 0, 0, 0)
        agent.choose_action(unseen, list(range(1, 9)), exploring=False)

        assert agent.q_table == {EMPTY_BOARD: {7: 0.9}}

    def test_no_valid_actions(self, agent):
        with pytest.raises(NoValidActions):
            agent.choose_action(EMPTY_BOARD, [])

    def test_returns_python_int(self, agent):
        assert type(agent.choose_action(EMPTY_BOARD, [2, 6])) is int


# ============================================================================
# Test Persistence
# ============================================================================


class TestPersistence:
    """Test saving and loading agents."""

    def test_save_and_load(self, tmp_path):
        agent = QLearningAgent(PLAYER_TWO, seed=0)
        agent.q_table[EMPTY_BOARD] = {4: 0.25, 0: -0.5}
        agent.q_table[key(1, 0, 0, 0, 2, 0, 0, 0, 0)] = {8: 1.0}
        path = agent.save(tmp_path / "nested" / "agent.json")

        loaded = QLearningAgent.from_file(path, player=PLAYER_TWO)
        assert loaded.player == PLAYER_TWO
        assert loaded.q_table == agent.q_table

    def test_load_missing_file_cold_starts(self, tmp_path, caplog):
        agent = QLearningAgent(seed=0)
        agent.q_table[EMPTY_BOARD] = {0: 1.0}

        assert agent.load(tmp_path / "missing.json") is False
        assert agent.num_states == 0
        assert "starts from scratch" in caplog.text

    def test_load_malformed_file_raises(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(MalformedModelFile):
            QLearningAgent(seed=0).load(path)

    def test_replace_table(self, agent):
        table = {EMPTY_BOARD: {1: 0.5}}
        agent.replace_table(table)
        assert agent.q_table is table
        assert agent.num_states == 1

    def test_repr(self, agent):
        assert "player=X" in repr(agent)
        assert agent.symbol == "X"
