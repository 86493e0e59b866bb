"""
Goal Tracker — Data Models.

Users own goals and one daily activity record per calendar day. A daily
activity keeps the raw LLM plan text next to the structured task list that
backs the inline checkboxes.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """A registered bot user, identified by their Telegram chat."""

    id: int
    chat_id: int
    username: str | None = None
    created_at: str = ""


@dataclass
class Goal:
    """A long-term objective. The deadline is free text and never parsed."""

    id: int
    user_id: int
    description: str                  # e.g. "Win 4 hackathons"
    deadline: str | None = None       # e.g. "End of year"
    priority: int = 0
    created_at: str = ""


@dataclass
class Task:
    """One checkable item of a daily plan.

    ``id`` is the ordinal the LLM put in front of the line. It is reused as
    the button identifier, so it must never be renumbered after parsing.
    """

    id: int
    text: str
    done: bool = False

    def to_dict(self) -> dict:
        return {"id": self.id, "text": self.text, "done": self.done}

    @classmethod
    def from_dict(cls, data: dict) -> Task:
        return cls(
            id=int(data["id"]),
            text=str(data.get("text", "")),
            done=bool(data.get("done", False)),
        )


@dataclass
class DailyActivity:
    """The single plan record for a (user, date) pair."""

    user_id: int
    activity_date: str                # ISO date YYYY-MM-DD, in settings.TIMEZONE
    content: str                      # raw LLM text, shown to the user as-is
    tasks: list[Task] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    def unfinished_tasks(self) -> list[Task]:
        return [t for t in self.tasks if not t.done]

    def done_count(self) -> int:
        return sum(1 for t in self.tasks if t.done)
