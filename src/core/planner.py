"""
Goal Tracker — Daily Plan Pipeline.

generate_daily_plan(): yesterday's leftovers + active goals → LLM → tasks →
stored plan → message with one checkbox button per task.

toggle_task(): flips one task's checkbox on today's plan and re-renders the
message so the bot can edit it in place.

Both are transport-agnostic: messages go out through NotificationPort and
rendered output uses provider-neutral Button grids.
"""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from src.config import settings
from src.core.llm import complete
from src.core.plan_prompt import PLAN_SYSTEM_PROMPT, build_plan_prompt
from src.core.task_parser import closing_remark, parse_tasks
from src.ports.notification_port import Button, ButtonGrid

if TYPE_CHECKING:
    from src.data.db import ActivityDB, GoalDB, UserDB
    from src.data.models import Task
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

BUTTONS_PER_ROW = 5
CHECK_TASK_PREFIX = "check_task_"

# Telegram rejects longer message texts
MAX_MESSAGE_CHARS = 4096
ELLIPSIS = "…"

# An HTML entity cut off by truncation ("&am")
_PARTIAL_ENTITY_RE = re.compile(r"&[^;\s]*$")

NO_GOALS_MESSAGE = "🌅 Good morning! You have no active goals. Use /addgoal to start."
GENERATING_MESSAGE = "🤖 Generating your daily activity plan..."
FAILURE_MESSAGE = "⚠️ I tried to generate your plan but hit a snag. Please try again later."


@dataclass
class RenderedPlan:
    """Message text (HTML) plus its checkbox grid."""

    text: str
    buttons: ButtonGrid


# ---------------------------------------------------------------------------
# Day boundaries
# ---------------------------------------------------------------------------


def local_today(tz_name: str | None = None) -> date:
    """Today's date in the configured timezone, independent of the host clock."""
    tz = ZoneInfo(tz_name or settings.TIMEZONE)
    return datetime.now(tz).date()


def plan_dates(today: date | None = None) -> tuple[str, str]:
    """Return (yesterday, today) as ISO dates."""
    if today is None:
        today = local_today()
    return (today - timedelta(days=1)).isoformat(), today.isoformat()


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def build_task_buttons(tasks: list[Task]) -> ButtonGrid:
    """One checkbox per task, BUTTONS_PER_ROW per row, keyed by ordinal."""
    buttons = [
        Button(
            label=f"{'✅' if t.done else '⬜'} {t.id}",
            callback_data=f"{CHECK_TASK_PREFIX}{t.id}",
        )
        for t in tasks
    ]
    return [
        buttons[i:i + BUTTONS_PER_ROW]
        for i in range(0, len(buttons), BUTTONS_PER_ROW)
    ]


def _fit_escaped(escaped: str, budget: int) -> str:
    """Cut HTML-escaped text to `budget` chars without splitting an entity."""
    if len(escaped) <= budget:
        return escaped
    cut = _PARTIAL_ENTITY_RE.sub("", escaped[:max(budget - len(ELLIPSIS), 0)])
    return cut.rstrip() + ELLIPSIS


def render_new_plan(content: str, tasks: list[Task], carried_over: int) -> RenderedPlan:
    """Render a freshly generated plan: header + raw LLM text + checkboxes.

    Overlong LLM text is truncated so the message stays within
    MAX_MESSAGE_CHARS; the full text is still what gets stored.
    """
    if carried_over:
        plural = "s" if carried_over != 1 else ""
        header = (
            "🌞 <b>Here is your plan for today</b>\n"
            f"🔁 Includes {carried_over} unfinished task{plural} from yesterday."
        )
    else:
        header = "🌞 <b>Here is your plan for today:</b>"

    footer = "\n\nTap a number when you finish that task." if tasks else ""
    budget = MAX_MESSAGE_CHARS - len(header) - len("\n\n") - len(footer)
    body = _fit_escaped(html.escape(content.strip()), budget)
    text = f"{header}\n\n{body}{footer}"
    return RenderedPlan(text=text, buttons=build_task_buttons(tasks))


def render_checked_plan(content: str, tasks: list[Task]) -> RenderedPlan:
    """Render a plan after a checkbox toggle: struck-through done tasks."""
    lines = ["🌞 <b>Your plan for today:</b>", ""]
    for t in tasks:
        item = html.escape(f"{t.id}. {t.text}")
        lines.append(f"✅ <s>{item}</s>" if t.done else f"⬜ {item}")

    done = sum(1 for t in tasks if t.done)
    lines.append("")
    lines.append(f"Progress: {done}/{len(tasks)} done")

    remark = closing_remark(content)
    if remark:
        lines.append("")
        lines.append(f"<i>{html.escape(remark)}</i>")

    return RenderedPlan(text="\n".join(lines), buttons=build_task_buttons(tasks))


# ---------------------------------------------------------------------------
# Plan orchestrator
# ---------------------------------------------------------------------------


async def generate_daily_plan(
    chat_id: int,
    user_id: int,
    notifier: NotificationPort,
    goal_db: GoalDB,
    activity_db: ActivityDB,
    today: date | None = None,
) -> None:
    """Generate, store and send today's plan for one user.

    Never raises: any failure is logged and the user gets a retry-later notice,
    so a scheduler batch keeps going past a single bad user. A plan that was
    stored but could not be delivered is only logged: generation succeeded,
    so the user is not told to retry.
    """
    try:
        yesterday_str, today_str = plan_dates(today)

        yesterday = activity_db.get_activity(user_id, yesterday_str)
        unfinished = (
            [t.text for t in yesterday.unfinished_tasks()] if yesterday else []
        )

        goals = goal_db.list_goals(user_id)
        if not goals and not unfinished:
            await notifier.send_message(chat_id, NO_GOALS_MESSAGE)
            logger.info("No goals for user %d, plan skipped", user_id)
            return

        await notifier.send_message(chat_id, GENERATING_MESSAGE)

        prompt = build_plan_prompt(goals, unfinished)
        content = await complete(
            system=PLAN_SYSTEM_PROMPT,
            user_message=prompt,
            max_tokens=settings.PLAN_MAX_TOKENS,
        )

        tasks = parse_tasks(content)
        activity_db.upsert_activity(user_id, today_str, content, tasks)
        rendered = render_new_plan(content, tasks, carried_over=len(unfinished))
    except Exception as exc:
        logger.error("Failed to generate daily plan for user %d: %s", user_id, exc)
        try:
            await notifier.send_message(chat_id, FAILURE_MESSAGE)
        except Exception as send_exc:
            logger.error("Failed to notify chat %d about plan failure: %s", chat_id, send_exc)
        return

    try:
        await notifier.send_message(chat_id, rendered.text, buttons=rendered.buttons, html=True)
    except Exception as exc:
        logger.error(
            "Plan for user %d saved on %s but delivery to chat %d failed: %s",
            user_id, today_str, chat_id, exc,
        )
        return
    logger.info(
        "Daily plan sent to chat %d: %d tasks, %d carried over",
        chat_id, len(tasks), len(unfinished),
    )


# ---------------------------------------------------------------------------
# Task toggle
# ---------------------------------------------------------------------------


def parse_check_task_data(data: str) -> int | None:
    """Extract the ordinal from "check_task_<n>" callback data."""
    if not data or not data.startswith(CHECK_TASK_PREFIX):
        return None
    raw = data[len(CHECK_TASK_PREFIX):]
    return int(raw) if raw.isdigit() else None


def toggle_task(
    chat_id: int,
    ordinal: int,
    user_db: UserDB,
    activity_db: ActivityDB,
    today: date | None = None,
) -> RenderedPlan | None:
    """Flip the done flag of task `ordinal` on today's plan.

    Returns the re-rendered plan, or None when there is nothing to toggle
    (unknown user, no plan today, stale ordinal). None is not an error.
    """
    user = user_db.get_by_chat_id(chat_id)
    if user is None:
        logger.debug("Toggle from unknown chat %d ignored", chat_id)
        return None

    _, today_str = plan_dates(today)
    activity = activity_db.get_activity(user.id, today_str)
    if activity is None:
        logger.debug("Toggle for chat %d ignored: no plan on %s", chat_id, today_str)
        return None

    target = next((t for t in activity.tasks if t.id == ordinal), None)
    if target is None:
        logger.debug("Toggle for chat %d ignored: no task %d", chat_id, ordinal)
        return None

    target.done = not target.done
    activity_db.save_tasks(user.id, today_str, activity.tasks)
    logger.info(
        "Task %d for user %d marked %s",
        ordinal, user.id, "done" if target.done else "not done",
    )
    return render_checked_plan(activity.content, activity.tasks)
