"""
Goal Tracker — Daily Schedulers.

Daily plans: once a day every registered user gets a freshly generated plan.

Reminders: at fixed hours users with goals get a short nudge, including
their progress on today's plan when they have one.

Both jobs are sequential batches with a pause between users; one user's
failure is logged and the batch moves on. This module is provider-agnostic:
it depends on the NotificationPort protocol, not on Telegram.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from src.config import settings
from src.core.planner import generate_daily_plan, plan_dates

if TYPE_CHECKING:
    from src.data.db import ActivityDB, GoalDB, UserDB
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

DEFAULT_REMINDER = "🔔 Reminder: Check your daily goals!"

REMINDER_MESSAGES: dict[int, str] = {
    9: "🕘 9 AM Check-in: Have you started your first task yet?",
    12: "🕛 12 PM Reminder: How's your progress going?",
    15: "🕒 3 PM Boost: Keep pushing! You're doing great!",
    18: "🕕 6 PM Review: Time to wrap up. How much did you finish?",
    21: "🌙 9 PM End of Day: Great work today! Get some rest. 😴",
}


# ---------------------------------------------------------------------------
# Daily plan batch
# ---------------------------------------------------------------------------


async def send_daily_plans(
    notifier: NotificationPort,
    user_db: UserDB,
    goal_db: GoalDB,
    activity_db: ActivityDB,
    delay_seconds: float | None = None,
) -> int:
    """Generate and send today's plan to every registered user.

    Returns the number of users processed.
    """
    if delay_seconds is None:
        delay_seconds = settings.PLAN_BATCH_DELAY_SECONDS

    try:
        users = user_db.list_users()
    except Exception as exc:
        logger.error("Daily plans: could not load users: %s", exc)
        return 0

    processed = 0
    for index, user in enumerate(users):
        try:
            await generate_daily_plan(
                user.chat_id, user.id, notifier, goal_db, activity_db,
            )
            processed += 1
        except Exception as exc:
            logger.error("Daily plan failed for chat %d: %s", user.chat_id, exc)
            continue
        finally:
            if delay_seconds > 0 and index < len(users) - 1:
                await asyncio.sleep(delay_seconds)

    logger.info("Sent daily plans to %d/%d user(s)", processed, len(users))
    return processed


# ---------------------------------------------------------------------------
# Reminder batch
# ---------------------------------------------------------------------------


def reminder_text(hour: int) -> str:
    return REMINDER_MESSAGES.get(hour, DEFAULT_REMINDER)


def _progress_line(user_id: int, activity_db: ActivityDB) -> str:
    _, today_str = plan_dates()
    activity = activity_db.get_activity(user_id, today_str)
    if activity is None or not activity.tasks:
        return ""
    return f"\n\nProgress today: {activity.done_count()}/{len(activity.tasks)} tasks done."


async def send_reminders(
    notifier: NotificationPort,
    user_db: UserDB,
    goal_db: GoalDB,
    activity_db: ActivityDB,
    hour: int,
    delay_seconds: float | None = None,
) -> int:
    """Send the reminder for `hour` to every user that has at least one goal.

    Returns the number of reminders delivered.
    """
    if delay_seconds is None:
        delay_seconds = settings.REMINDER_BATCH_DELAY_SECONDS

    try:
        users = user_db.list_users()
    except Exception as exc:
        logger.error("Reminders: could not load users: %s", exc)
        return 0

    base_text = reminder_text(hour)
    sent = 0
    for user in users:
        try:
            if goal_db.count_goals(user.id) == 0:
                continue
            text = base_text + _progress_line(user.id, activity_db)
            await notifier.send_message(user.chat_id, text)
            sent += 1
        except Exception as exc:
            logger.error("Error sending reminder to chat %d: %s", user.chat_id, exc)
            continue
        if delay_seconds > 0:
            await asyncio.sleep(delay_seconds)

    logger.info("Sent %02d:00 reminders to %d user(s)", hour, sent)
    return sent
