"""Tests for src.core.conversation — pending input state machine."""

import pytest

from src.core.conversation import (
    ConversationEvent,
    ConversationState,
    ConversationTracker,
    InvalidTransition,
    TRANSITIONS,
    parse_deadline,
    parse_goal_lines,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(clock):
    return ConversationTracker(ttl_seconds=60, clock=clock)


class TestTransitions:
    def test_starts_idle(self, tracker):
        assert tracker.current(1).state is ConversationState.IDLE

    def test_addgoal_waits_for_deadline(self, tracker):
        entry = tracker.dispatch(1, ConversationEvent.ADD_GOAL, pending_goal="Run 5k")
        assert entry.state is ConversationState.AWAITING_DEADLINE
        assert tracker.current(1).pending_goal == "Run 5k"

    def test_reply_returns_to_idle(self, tracker):
        tracker.dispatch(1, ConversationEvent.ADD_MANY)
        tracker.dispatch(1, ConversationEvent.REPLY)
        assert tracker.current(1).state is ConversationState.IDLE

    def test_new_command_replaces_pending(self, tracker):
        tracker.dispatch(1, ConversationEvent.ADD_GOAL, pending_goal="Run 5k")
        entry = tracker.dispatch(1, ConversationEvent.ADD_MANY)
        assert entry.state is ConversationState.AWAITING_MULTIPLE_GOALS
        assert entry.pending_goal is None

    def test_cancel_from_any_state(self, tracker):
        tracker.dispatch(1, ConversationEvent.ADD_GOAL, pending_goal="x")
        tracker.dispatch(1, ConversationEvent.CANCEL)
        assert tracker.current(1).state is ConversationState.IDLE
        tracker.dispatch(1, ConversationEvent.CANCEL)
        assert tracker.current(1).state is ConversationState.IDLE

    def test_reply_while_idle_is_invalid(self, tracker):
        with pytest.raises(InvalidTransition):
            tracker.dispatch(1, ConversationEvent.REPLY)

    def test_chats_are_independent(self, tracker):
        tracker.dispatch(1, ConversationEvent.ADD_MANY)
        assert tracker.current(2).state is ConversationState.IDLE

    def test_every_pending_state_can_be_left(self):
        for state in ConversationState:
            assert TRANSITIONS[(state, ConversationEvent.CANCEL)] is ConversationState.IDLE


class TestExpiry:
    def test_pending_state_expires(self, tracker, clock):
        tracker.dispatch(1, ConversationEvent.ADD_GOAL, pending_goal="x")
        clock.now += 61
        assert tracker.current(1).state is ConversationState.IDLE

    def test_pending_state_alive_within_ttl(self, tracker, clock):
        tracker.dispatch(1, ConversationEvent.ADD_GOAL, pending_goal="x")
        clock.now += 59
        assert tracker.current(1).state is ConversationState.AWAITING_DEADLINE

    def test_zero_ttl_never_expires(self, clock):
        tracker = ConversationTracker(ttl_seconds=0, clock=clock)
        tracker.dispatch(1, ConversationEvent.ADD_MANY)
        clock.now += 10_000
        assert tracker.current(1).state is ConversationState.AWAITING_MULTIPLE_GOALS


class TestParseDeadline:
    @pytest.mark.parametrize("text", ["skip", "SKIP ", "No deadline", ""])
    def test_opt_out(self, text):
        assert parse_deadline(text) is None

    def test_free_text_kept(self):
        assert parse_deadline("  End of semester ") == "End of semester"


class TestParseGoalLines:
    def test_with_and_without_deadline(self):
        assert parse_goal_lines("A | soon\nB") == [("A", "soon"), ("B", None)]

    def test_blank_lines_skipped(self):
        assert parse_goal_lines("\n  \nRead\n") == [("Read", None)]

    def test_extra_pipes_stay_in_deadline(self):
        assert parse_goal_lines("Ship | Q1 | maybe Q2") == [("Ship", "Q1 | maybe Q2")]

    def test_empty_goal_part_dropped(self):
        assert parse_goal_lines("| only deadline") == []

    def test_empty_deadline_part(self):
        assert parse_goal_lines("Run |") == [("Run", None)]
