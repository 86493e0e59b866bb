"""
Goal Tracker — SQLite storage.

Users, goals and daily activities live in a single SQLite file. Each table has
its own accessor class; all of them share the same database path.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path

from src.data.models import DailyActivity, Goal, Task, User

logger = logging.getLogger(__name__)


class UserDB:
    """SQLite-backed storage for registered bot users."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id     INTEGER NOT NULL UNIQUE,
                    username    TEXT,
                    created_at  TEXT NOT NULL
                )
            """)
        logger.debug("Users table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            chat_id=row["chat_id"],
            username=row["username"],
            created_at=row["created_at"],
        )

    def register_user(self, chat_id: int, username: str | None = None) -> User:
        """Register a chat on first contact. Existing users are returned unchanged."""
        now = datetime.now().isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO users (chat_id, username, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT (chat_id) DO NOTHING
                """,
                (chat_id, username, now),
            )
            row = conn.execute(
                "SELECT * FROM users WHERE chat_id = ?", (chat_id,),
            ).fetchone()
        if cursor.rowcount > 0:
            logger.info("User registered: chat %d '%s'", chat_id, username)
        return self._row_to_user(row)

    def get_by_chat_id(self, chat_id: int) -> User | None:
        """Fetch a user by Telegram chat ID."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM users WHERE chat_id = ?", (chat_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_user(row)

    def list_users(self) -> list[User]:
        """Return all registered users in registration order."""
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
        return [self._row_to_user(r) for r in rows]


class GoalDB:
    """SQLite-backed storage for user goals.

    Goals are always listed ``priority DESC, id ASC`` so that the numbers
    shown by /mygoals are the numbers /delete understands.
    """

    _ORDER_BY = "ORDER BY priority DESC, id ASC"

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS goals (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id     INTEGER NOT NULL,
                    description TEXT    NOT NULL,
                    deadline    TEXT,
                    priority    INTEGER NOT NULL DEFAULT 0,
                    created_at  TEXT    NOT NULL
                )
            """)
        logger.debug("Goals table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_goal(row: sqlite3.Row) -> Goal:
        return Goal(
            id=row["id"],
            user_id=row["user_id"],
            description=row["description"],
            deadline=row["deadline"],
            priority=row["priority"],
            created_at=row["created_at"],
        )

    def add_goal(
        self,
        user_id: int,
        description: str,
        deadline: str | None = None,
        priority: int = 0,
    ) -> Goal:
        """Insert a single goal."""
        now = datetime.now().isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO goals (user_id, description, deadline, priority, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (user_id, description, deadline, priority, now),
            )
            goal_id = cursor.lastrowid

        logger.info("Goal added: #%d for user %d", goal_id, user_id)
        return Goal(
            id=goal_id,
            user_id=user_id,
            description=description,
            deadline=deadline,
            priority=priority,
            created_at=now,
        )

    def add_goals(
        self, user_id: int, entries: list[tuple[str, str | None]],
    ) -> list[Goal]:
        """Insert several (description, deadline) goals in one transaction."""
        now = datetime.now().isoformat()
        goals: list[Goal] = []
        with self._connect() as conn:
            for description, deadline in entries:
                cursor = conn.execute(
                    """
                    INSERT INTO goals (user_id, description, deadline, priority, created_at)
                    VALUES (?, ?, ?, 0, ?)
                    """,
                    (user_id, description, deadline, now),
                )
                goals.append(Goal(
                    id=cursor.lastrowid,
                    user_id=user_id,
                    description=description,
                    deadline=deadline,
                    created_at=now,
                ))
        logger.info("Added %d goals for user %d", len(goals), user_id)
        return goals

    def list_goals(self, user_id: int) -> list[Goal]:
        """Return the user's goals in stable display order."""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM goals WHERE user_id = ? {self._ORDER_BY}",
                (user_id,),
            ).fetchall()
        return [self._row_to_goal(r) for r in rows]

    def count_goals(self, user_id: int) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM goals WHERE user_id = ?", (user_id,),
            ).fetchone()
        return row[0]

    def delete_goal(self, user_id: int, goal_id: int) -> Goal | None:
        """Delete a goal by ID, scoped to its owner. Returns the deleted goal."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM goals WHERE id = ? AND user_id = ?",
                (goal_id, user_id),
            ).fetchone()
            if row is None:
                return None
            conn.execute("DELETE FROM goals WHERE id = ?", (goal_id,))
        logger.info("Goal #%d deleted for user %d", goal_id, user_id)
        return self._row_to_goal(row)

    def delete_by_position(self, user_id: int, position: int) -> Goal | None:
        """Delete the N-th goal (1-based) of the user's listing.

        Returns None when the position is out of range; nothing is deleted.
        """
        goals = self.list_goals(user_id)
        if position < 1 or position > len(goals):
            return None
        return self.delete_goal(user_id, goals[position - 1].id)

    def clear_goals(self, user_id: int) -> int:
        """Delete all goals of a user. Returns how many were removed."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM goals WHERE user_id = ?", (user_id,),
            )
        deleted = cursor.rowcount
        logger.info("Cleared %d goals for user %d", deleted, user_id)
        return deleted


class ActivityDB:
    """SQLite-backed storage for daily plans, one row per (user, date)."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from src.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS daily_activities (
                    id             INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id        INTEGER NOT NULL,
                    activity_date  TEXT    NOT NULL,
                    content        TEXT    NOT NULL,
                    tasks          TEXT    NOT NULL DEFAULT '[]',
                    created_at     TEXT    NOT NULL,
                    updated_at     TEXT    NOT NULL,
                    UNIQUE (user_id, activity_date)
                )
            """)
        logger.debug("Daily activities table initialized at %s", self._db_path)

    @staticmethod
    def _row_to_activity(row: sqlite3.Row) -> DailyActivity:
        try:
            raw_tasks = json.loads(row["tasks"] or "[]")
        except json.JSONDecodeError:
            logger.warning(
                "Corrupt task list for user %d on %s, treating as empty",
                row["user_id"], row["activity_date"],
            )
            raw_tasks = []
        return DailyActivity(
            user_id=row["user_id"],
            activity_date=row["activity_date"],
            content=row["content"],
            tasks=[Task.from_dict(t) for t in raw_tasks],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _dump_tasks(tasks: list[Task]) -> str:
        return json.dumps([t.to_dict() for t in tasks], ensure_ascii=False)

    def get_activity(self, user_id: int, activity_date: str) -> DailyActivity | None:
        """Fetch the plan of a user for a given ISO date."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM daily_activities WHERE user_id = ? AND activity_date = ?",
                (user_id, activity_date),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_activity(row)

    def upsert_activity(
        self,
        user_id: int,
        activity_date: str,
        content: str,
        tasks: list[Task],
    ) -> DailyActivity:
        """Create or overwrite the plan of a user for a date."""
        now = datetime.now().isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO daily_activities
                    (user_id, activity_date, content, tasks, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (user_id, activity_date) DO UPDATE SET
                    content = excluded.content,
                    tasks = excluded.tasks,
                    updated_at = excluded.updated_at
                """,
                (user_id, activity_date, content, self._dump_tasks(tasks), now, now),
            )
        logger.info(
            "Daily plan saved for user %d on %s (%d tasks)",
            user_id, activity_date, len(tasks),
        )
        return DailyActivity(
            user_id=user_id,
            activity_date=activity_date,
            content=content,
            tasks=list(tasks),
            updated_at=now,
        )

    def save_tasks(self, user_id: int, activity_date: str, tasks: list[Task]) -> bool:
        """Overwrite only the task list of an existing plan."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE daily_activities SET tasks = ?, updated_at = ?
                WHERE user_id = ? AND activity_date = ?
                """,
                (self._dump_tasks(tasks), datetime.now().isoformat(), user_id, activity_date),
            )
        return cursor.rowcount > 0

    def count_activities(self, user_id: int) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM daily_activities WHERE user_id = ?", (user_id,),
            ).fetchone()
        return row[0]


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")

    path = "data/test_goals.db"
    users = UserDB(db_path=path)
    goals = GoalDB(db_path=path)
    activities = ActivityDB(db_path=path)

    user = users.register_user(1001, "demo")
    goals.add_goal(user.id, "Read 12 books", deadline="End of year")
    goals.add_goal(user.id, "Run a half marathon")
    print(f"Goals: {goals.list_goals(user.id)}")

    activities.upsert_activity(
        user.id, "2026-01-01", "1. Read 20 pages", [Task(1, "Read 20 pages")],
    )
    print(f"Plan: {activities.get_activity(user.id, '2026-01-01')}")
