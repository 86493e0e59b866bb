"""
Goal Tracker — Pending input state.

/addgoal and /addmany are two-step interactions: the command, then a free-text
reply (a deadline, or a list of goals). This module tracks which reply each
chat owes us, using an explicit state map and transition table.

State lives in process memory and is lost on restart; a pending reply also
expires after settings.PENDING_INPUT_TTL_MINUTES.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class ConversationState(str, Enum):
    IDLE = "idle"
    AWAITING_DEADLINE = "awaiting_deadline"
    AWAITING_MULTIPLE_GOALS = "awaiting_multiple_goals"


class ConversationEvent(str, Enum):
    ADD_GOAL = "add_goal"      # /addgoal <text>
    ADD_MANY = "add_many"      # /addmany
    REPLY = "reply"            # free-text answer consumed
    CANCEL = "cancel"          # /cancel


class InvalidTransition(ValueError):
    """Raised when an event is not allowed in the chat's current state."""


_S = ConversationState
_E = ConversationEvent

# A new command always wins over a pending reply.
TRANSITIONS: dict[tuple[ConversationState, ConversationEvent], ConversationState] = {
    (_S.IDLE, _E.ADD_GOAL): _S.AWAITING_DEADLINE,
    (_S.IDLE, _E.ADD_MANY): _S.AWAITING_MULTIPLE_GOALS,
    (_S.IDLE, _E.CANCEL): _S.IDLE,
    (_S.AWAITING_DEADLINE, _E.ADD_GOAL): _S.AWAITING_DEADLINE,
    (_S.AWAITING_DEADLINE, _E.ADD_MANY): _S.AWAITING_MULTIPLE_GOALS,
    (_S.AWAITING_DEADLINE, _E.REPLY): _S.IDLE,
    (_S.AWAITING_DEADLINE, _E.CANCEL): _S.IDLE,
    (_S.AWAITING_MULTIPLE_GOALS, _E.ADD_GOAL): _S.AWAITING_DEADLINE,
    (_S.AWAITING_MULTIPLE_GOALS, _E.ADD_MANY): _S.AWAITING_MULTIPLE_GOALS,
    (_S.AWAITING_MULTIPLE_GOALS, _E.REPLY): _S.IDLE,
    (_S.AWAITING_MULTIPLE_GOALS, _E.CANCEL): _S.IDLE,
}


@dataclass
class PendingInput:
    state: ConversationState = ConversationState.IDLE
    pending_goal: str | None = None   # goal text waiting for its deadline
    started_at: float = 0.0


class ConversationTracker:
    """Per-chat pending-input state, owned by the bot dispatcher."""

    def __init__(self, ttl_seconds: float | None = None, clock=time.monotonic) -> None:
        if ttl_seconds is None:
            from src.config import settings
            ttl_seconds = settings.PENDING_INPUT_TTL_MINUTES * 60
        self._ttl = ttl_seconds
        self._clock = clock
        self._states: dict[int, PendingInput] = {}

    def current(self, chat_id: int) -> PendingInput:
        """Return the chat's state, dropping it first if it has expired."""
        entry = self._states.get(chat_id)
        if entry is None:
            return PendingInput()
        if self._ttl > 0 and self._clock() - entry.started_at > self._ttl:
            logger.warning("Pending %s for chat %d expired", entry.state.value, chat_id)
            del self._states[chat_id]
            return PendingInput()
        return entry

    def dispatch(
        self,
        chat_id: int,
        event: ConversationEvent,
        pending_goal: str | None = None,
    ) -> PendingInput:
        """Apply an event and return the chat's new state."""
        state = self.current(chat_id).state
        new_state = TRANSITIONS.get((state, event))
        if new_state is None:
            raise InvalidTransition(f"{event.value} not allowed in state {state.value}")

        if new_state is ConversationState.IDLE:
            self._states.pop(chat_id, None)
            return PendingInput()

        entry = PendingInput(
            state=new_state,
            pending_goal=pending_goal if new_state is ConversationState.AWAITING_DEADLINE else None,
            started_at=self._clock(),
        )
        self._states[chat_id] = entry
        return entry


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

_NO_DEADLINE_REPLIES = {"skip", "no deadline", "none", "-"}


def parse_deadline(text: str) -> str | None:
    """Free-text deadline, or None when the user opted out."""
    value = text.strip()
    if not value or value.lower() in _NO_DEADLINE_REPLIES:
        return None
    return value


def parse_goal_lines(text: str) -> list[tuple[str, str | None]]:
    """Parse /addmany input: one goal per line, optionally "goal | deadline"."""
    entries: list[tuple[str, str | None]] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        if "|" in line:
            goal, _, deadline = line.partition("|")
            goal = goal.strip()
            if not goal:
                continue
            entries.append((goal, deadline.strip() or None))
        else:
            entries.append((line, None))
    return entries
