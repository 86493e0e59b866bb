"""Tests for src.core.planner — daily plan pipeline and task toggling.

Storage is a real temp SQLite file; the LLM and the notifier are mocked.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from src.core.planner import (
    FAILURE_MESSAGE,
    GENERATING_MESSAGE,
    MAX_MESSAGE_CHARS,
    NO_GOALS_MESSAGE,
    build_task_buttons,
    generate_daily_plan,
    parse_check_task_data,
    plan_dates,
    render_checked_plan,
    render_new_plan,
    toggle_task,
)
from src.core.task_parser import parse_tasks
from src.data.models import Task

TODAY = date(2026, 2, 7)
LLM_PLAN = "1. Finish report\n2) Call client\n**3:** Review notes\nKeep going!"

# 20:00 UTC on Feb 7 is already Feb 8 in Tokyo
UTC_EVENING = datetime(2026, 2, 7, 20, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class _FrozenDatetime(datetime):
    """datetime whose now() is pinned to UTC_EVENING."""

    @classmethod
    def now(cls, tz=None):
        return UTC_EVENING.astimezone(tz)


@pytest.fixture
def frozen_clock():
    with patch("src.core.planner.datetime", _FrozenDatetime):
        yield


async def _run(user, notifier, goal_db, activity_db, llm_response=LLM_PLAN, today=TODAY):
    mock_llm = AsyncMock(return_value=llm_response)
    with patch("src.core.planner.complete", mock_llm):
        await generate_daily_plan(
            user.chat_id, user.id, notifier, goal_db, activity_db, today=today,
        )
    return mock_llm


def _last_send(notifier):
    return notifier.send_message.await_args_list[-1]


# ---------------------------------------------------------------------------
# Day boundaries and rendering
# ---------------------------------------------------------------------------


class TestPlanDates:
    def test_yesterday_and_today(self):
        assert plan_dates(TODAY) == ("2026-02-06", "2026-02-07")

    def test_month_boundary(self):
        assert plan_dates(date(2026, 3, 1)) == ("2026-02-28", "2026-03-01")

    def test_utc_clock(self, frozen_clock):
        with patch("src.core.planner.settings.TIMEZONE", "UTC"):
            assert plan_dates() == ("2026-02-06", "2026-02-07")

    def test_configured_timezone_ahead_of_utc(self, frozen_clock):
        with patch("src.core.planner.settings.TIMEZONE", "Asia/Tokyo"):
            assert plan_dates() == ("2026-02-07", "2026-02-08")

    def test_configured_timezone_behind_utc(self, frozen_clock):
        # 20:00 UTC is 12:00 the same day in Los Angeles
        with patch("src.core.planner.settings.TIMEZONE", "America/Los_Angeles"):
            assert plan_dates() == ("2026-02-06", "2026-02-07")


class TestButtons:
    def test_five_per_row(self):
        tasks = [Task(i, f"t{i}") for i in range(1, 8)]
        grid = build_task_buttons(tasks)
        assert [len(row) for row in grid] == [5, 2]
        assert grid[0][0].label == "⬜ 1"
        assert grid[1][1].callback_data == "check_task_7"

    def test_done_icon(self):
        grid = build_task_buttons([Task(1, "a", done=True)])
        assert grid[0][0].label == "✅ 1"

    def test_no_tasks_no_rows(self):
        assert build_task_buttons([]) == []

    def test_parse_check_task_data(self):
        assert parse_check_task_data("check_task_12") == 12
        assert parse_check_task_data("check_task_x") is None
        assert parse_check_task_data("delete_goal_1") is None


class TestRenderCheckedPlan:
    def test_strikes_done_tasks_and_keeps_quote(self):
        tasks = [Task(1, "Finish report", done=True), Task(2, "Call <client>")]
        rendered = render_checked_plan(LLM_PLAN, tasks)
        assert "✅ <s>1. Finish report</s>" in rendered.text
        assert "⬜ 2. Call &lt;client&gt;" in rendered.text
        assert "Progress: 1/2 done" in rendered.text
        assert rendered.text.endswith("<i>Keep going!</i>")

    def test_no_quote_when_last_line_is_task(self):
        rendered = render_checked_plan("1. A\n2. B", [Task(1, "A"), Task(2, "B")])
        assert "<i>" not in rendered.text

    def test_paren_numbered_plan_does_not_repeat_last_task(self):
        content = "1) Finish report\n2) Call client\n3) Review notes"
        rendered = render_checked_plan(content, parse_tasks(content))
        assert "<i>" not in rendered.text
        assert rendered.text.endswith("Progress: 0/3 done")


class TestRenderNewPlan:
    def test_short_plan_kept_whole(self):
        rendered = render_new_plan(LLM_PLAN, parse_tasks(LLM_PLAN), carried_over=0)
        assert "Keep going!" in rendered.text
        assert rendered.text.endswith("Tap a number when you finish that task.")

    def test_long_plan_truncated_to_message_limit(self):
        content = "1. Write\n" + "word " * 2000
        rendered = render_new_plan(content, parse_tasks(content), carried_over=2)

        assert len(rendered.text) <= MAX_MESSAGE_CHARS
        assert "1. Write" in rendered.text
        assert "…\n\nTap a number" in rendered.text

    def test_truncation_never_splits_an_entity(self):
        content = "1. Compare " + "<a> & <b> " * 1000
        text = render_new_plan(content, parse_tasks(content), carried_over=0).text

        assert len(text) <= MAX_MESSAGE_CHARS
        assert re.search(r"&[a-z]*…", text) is None


# ---------------------------------------------------------------------------
# generate_daily_plan
# ---------------------------------------------------------------------------


class TestGenerateDailyPlan:
    @pytest.mark.asyncio
    async def test_zero_goals_short_circuit(self, registered_user, goal_db, activity_db):
        notifier = AsyncMock()
        mock_llm = await _run(registered_user, notifier, goal_db, activity_db)

        mock_llm.assert_not_called()
        notifier.send_message.assert_awaited_once_with(registered_user.chat_id, NO_GOALS_MESSAGE)
        assert activity_db.count_activities(registered_user.id) == 0

    @pytest.mark.asyncio
    async def test_generates_saves_and_sends(self, registered_user, goal_db, activity_db):
        goal_db.add_goal(registered_user.id, "Grow the business")
        notifier = AsyncMock()

        await _run(registered_user, notifier, goal_db, activity_db)

        saved = activity_db.get_activity(registered_user.id, "2026-02-07")
        assert saved.content == LLM_PLAN
        assert [t.text for t in saved.tasks] == ["Finish report", "Call client", "Review notes"]

        assert notifier.send_message.await_args_list[0].args == (
            registered_user.chat_id, GENERATING_MESSAGE,
        )
        final = _last_send(notifier)
        assert final.kwargs["html"] is True
        assert "Keep going!" in final.args[1]
        labels = [b.label for row in final.kwargs["buttons"] for b in row]
        assert labels == ["⬜ 1", "⬜ 2", "⬜ 3"]

    @pytest.mark.asyncio
    async def test_rerun_same_day_overwrites(self, registered_user, goal_db, activity_db):
        goal_db.add_goal(registered_user.id, "Grow the business")
        notifier = AsyncMock()

        await _run(registered_user, notifier, goal_db, activity_db, "1. First run")
        await _run(registered_user, notifier, goal_db, activity_db, "1. Second run")

        assert activity_db.count_activities(registered_user.id) == 1
        saved = activity_db.get_activity(registered_user.id, "2026-02-07")
        assert saved.content == "1. Second run"
        assert saved.tasks == [Task(1, "Second run")]

    @pytest.mark.asyncio
    async def test_unfinished_tasks_carried_into_prompt(self, registered_user, goal_db, activity_db):
        goal_db.add_goal(registered_user.id, "Grow the business")
        activity_db.upsert_activity(
            registered_user.id, "2026-02-06", "old",
            [Task(1, "Call the accountant"), Task(2, "Send invoices", done=True)],
        )
        notifier = AsyncMock()

        mock_llm = await _run(registered_user, notifier, goal_db, activity_db)

        prompt = mock_llm.await_args.kwargs["user_message"]
        assert "Call the accountant" in prompt
        assert "Send invoices" not in prompt
        assert "1 unfinished task from yesterday" in _last_send(notifier).args[1]

    @pytest.mark.asyncio
    async def test_leftovers_without_goals_still_generate(self, registered_user, goal_db, activity_db):
        activity_db.upsert_activity(
            registered_user.id, "2026-02-06", "old", [Task(1, "Call the accountant")],
        )
        notifier = AsyncMock()

        mock_llm = await _run(registered_user, notifier, goal_db, activity_db, "1. Call the accountant")

        mock_llm.assert_awaited_once()
        assert activity_db.get_activity(registered_user.id, "2026-02-07") is not None

    @pytest.mark.asyncio
    async def test_unparseable_output_saves_empty_task_list(self, registered_user, goal_db, activity_db):
        goal_db.add_goal(registered_user.id, "Rest")
        notifier = AsyncMock()

        await _run(registered_user, notifier, goal_db, activity_db, "Take the day off!")

        saved = activity_db.get_activity(registered_user.id, "2026-02-07")
        assert saved.tasks == []
        assert _last_send(notifier).kwargs["buttons"] == []

    @pytest.mark.asyncio
    async def test_llm_failure_is_contained(self, registered_user, goal_db, activity_db):
        goal_db.add_goal(registered_user.id, "Grow the business")
        notifier = AsyncMock()

        with patch("src.core.planner.complete", AsyncMock(side_effect=TimeoutError("slow"))):
            await generate_daily_plan(
                registered_user.chat_id, registered_user.id, notifier,
                goal_db, activity_db, today=TODAY,
            )

        assert _last_send(notifier).args == (registered_user.chat_id, FAILURE_MESSAGE)
        assert activity_db.count_activities(registered_user.id) == 0

    @pytest.mark.asyncio
    async def test_notifier_failure_never_raises(self, registered_user, goal_db, activity_db):
        goal_db.add_goal(registered_user.id, "Grow the business")
        notifier = AsyncMock()
        notifier.send_message.side_effect = RuntimeError("telegram down")

        # Must complete normally
        await _run(registered_user, notifier, goal_db, activity_db)

    @pytest.mark.asyncio
    async def test_delivery_failure_keeps_plan_without_retry_notice(
        self, registered_user, goal_db, activity_db,
    ):
        goal_db.add_goal(registered_user.id, "Grow the business")
        notifier = AsyncMock()

        async def _send(chat_id, text, buttons=None, html=False):
            if html:
                raise RuntimeError("Message is too long")

        notifier.send_message.side_effect = _send

        await _run(registered_user, notifier, goal_db, activity_db)

        sent = [c.args[1] for c in notifier.send_message.await_args_list]
        assert FAILURE_MESSAGE not in sent
        saved = activity_db.get_activity(registered_user.id, "2026-02-07")
        assert saved.content == LLM_PLAN

    @pytest.mark.asyncio
    async def test_plan_stored_under_configured_timezone_date(
        self, registered_user, user_db, goal_db, activity_db, frozen_clock,
    ):
        goal_db.add_goal(registered_user.id, "Grow the business")
        notifier = AsyncMock()

        with patch("src.core.planner.settings.TIMEZONE", "Asia/Tokyo"):
            await _run(registered_user, notifier, goal_db, activity_db, today=None)
            rendered = toggle_task(registered_user.chat_id, 1, user_db, activity_db)

        assert activity_db.get_activity(registered_user.id, "2026-02-08") is not None
        assert activity_db.get_activity(registered_user.id, "2026-02-07") is None
        assert rendered is not None
        assert "✅ <s>1. Finish report</s>" in rendered.text


# ---------------------------------------------------------------------------
# toggle_task
# ---------------------------------------------------------------------------


class TestToggleTask:
    def _seed(self, user, activity_db):
        activity_db.upsert_activity(
            user.id, "2026-02-07", LLM_PLAN,
            [Task(1, "Finish report"), Task(2, "Call client"), Task(3, "Review notes")],
        )

    def test_toggle_marks_done_and_persists(self, registered_user, user_db, activity_db):
        self._seed(registered_user, activity_db)

        rendered = toggle_task(12345, 2, user_db, activity_db, today=TODAY)

        assert rendered is not None
        assert "✅ <s>2. Call client</s>" in rendered.text
        saved = activity_db.get_activity(registered_user.id, "2026-02-07")
        assert [t.done for t in saved.tasks] == [False, True, False]
        assert rendered.buttons[0][1].label == "✅ 2"

    def test_toggle_twice_restores_state(self, registered_user, user_db, activity_db):
        self._seed(registered_user, activity_db)

        toggle_task(12345, 3, user_db, activity_db, today=TODAY)
        rendered = toggle_task(12345, 3, user_db, activity_db, today=TODAY)

        saved = activity_db.get_activity(registered_user.id, "2026-02-07")
        assert [t.done for t in saved.tasks] == [False, False, False]
        assert "⬜ 3. Review notes" in rendered.text

    def test_stale_ordinal_is_noop(self, registered_user, user_db, activity_db):
        self._seed(registered_user, activity_db)
        before = activity_db.get_activity(registered_user.id, "2026-02-07")

        with patch.object(activity_db, "save_tasks") as mock_save:
            assert toggle_task(12345, 9, user_db, activity_db, today=TODAY) is None
        mock_save.assert_not_called()
        assert activity_db.get_activity(registered_user.id, "2026-02-07") == before

    def test_no_plan_today_is_noop(self, registered_user, user_db, activity_db):
        activity_db.upsert_activity(registered_user.id, "2026-02-06", "old", [Task(1, "x")])
        assert toggle_task(12345, 1, user_db, activity_db, today=TODAY) is None

    def test_unknown_user_is_noop(self, user_db, activity_db):
        assert toggle_task(99999, 1, user_db, activity_db, today=TODAY) is None
