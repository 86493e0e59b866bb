"""Shared test fixtures and configuration.

Sets up fake environment variables so src.config doesn't sys.exit(),
and provides DB fixtures that share one temp SQLite file.
"""

import os

# Patch env vars BEFORE any src imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("ALLOWED_USER_IDS", "")
os.environ.setdefault("DATABASE_PATH", ":memory:")
os.environ.setdefault("TIMEZONE", "UTC")

import pytest


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_goals.db")


@pytest.fixture
def user_db(tmp_db_path):
    """Return a UserDB instance backed by a temp file."""
    from src.data.db import UserDB
    return UserDB(db_path=tmp_db_path)


@pytest.fixture
def goal_db(tmp_db_path):
    """Return a GoalDB instance sharing the temp file."""
    from src.data.db import GoalDB
    return GoalDB(db_path=tmp_db_path)


@pytest.fixture
def activity_db(tmp_db_path):
    """Return an ActivityDB instance sharing the temp file."""
    from src.data.db import ActivityDB
    return ActivityDB(db_path=tmp_db_path)


@pytest.fixture
def registered_user(user_db):
    """A user registered under chat id 12345."""
    return user_db.register_user(12345, "amit")
