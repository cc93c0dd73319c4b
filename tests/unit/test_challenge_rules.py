"""Challenge scoring and the state machine table."""

import pytest

from scrolily.competition.challenge_engine import (
    VALID_TRANSITIONS,
    compute_score,
    decide_winner,
    validate_transition,
)
from scrolily.errors import InvalidTransition


class TestComputeScore:
    def test_per_active_member_rate(self):
        assert compute_score(140, 7) == 20.0
        assert compute_score(150, 10) == 15.0

    def test_smaller_group_can_win_on_rate(self):
        """A 7-active group earning 140 beats a 10-active group earning 150."""
        assert compute_score(140, 7) > compute_score(150, 10)

    def test_no_active_members_divides_by_one(self):
        assert compute_score(30, 0) == 30.0

    def test_zero_over_zero_is_zero(self):
        assert compute_score(0, 0) == 0.0


class TestDecideWinner:
    def test_higher_score_wins(self):
        assert decide_winner(1, 20.0, 2, 15.0) == 1
        assert decide_winner(1, 15.0, 2, 20.0) == 2

    def test_equal_scores_tie(self):
        assert decide_winner(1, 12.5, 2, 12.5) is None

    def test_both_empty_is_tie(self):
        assert decide_winner(1, compute_score(0, 0), 2, compute_score(0, 0)) is None


class TestChallengeStateMachine:
    def test_states(self):
        assert set(VALID_TRANSITIONS) == {"pending", "active", "completed", "declined", "cancelled"}

    @pytest.mark.parametrize("target", ["active", "declined", "cancelled"])
    def test_pending_exits(self, target: str):
        validate_transition("pending", target)

    def test_active_only_completes(self):
        validate_transition("active", "completed")
        with pytest.raises(InvalidTransition):
            validate_transition("active", "cancelled")

    @pytest.mark.parametrize("terminal", ["completed", "declined", "cancelled"])
    def test_terminal_states(self, terminal: str):
        assert VALID_TRANSITIONS[terminal] == []
        with pytest.raises(InvalidTransition, match=f"Cannot move a {terminal} challenge"):
            validate_transition(terminal, "active")

    def test_pending_cannot_complete_directly(self):
        with pytest.raises(InvalidTransition):
            validate_transition("pending", "completed")

    def test_invalid_transition_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_transition("declined", "pending")
