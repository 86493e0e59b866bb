"""
Goal Tracker — Telegram Bot.

Telegram is the only user interface. Users register with /start, manage
goals with /addgoal, /addmany, /mygoals, /delete and /clear, and get a daily
plan (on demand with /generate, or every morning from the job queue) whose
tasks they tick off with inline buttons.

Two-step commands (/addgoal → deadline, /addmany → goal list) are tracked by
an explicit ConversationTracker kept in bot_data.
"""

from __future__ import annotations

import html
import logging
from datetime import time as dt_time
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.error import BadRequest
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from src.adapters.telegram_notifier import to_inline_keyboard
from src.config import settings
from src.core.conversation import (
    ConversationEvent,
    ConversationState,
    ConversationTracker,
    parse_deadline,
    parse_goal_lines,
)
from src.core.planner import generate_daily_plan, parse_check_task_data, toggle_task

if TYPE_CHECKING:
    from telegram import User as TelegramUser

    from src.data.db import ActivityDB, GoalDB, UserDB
    from src.data.models import User
    from src.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

DELETE_GOAL_PREFIX = "delete_goal_"
GOAL_BUTTONS_PER_ROW = 5

START_FIRST_MESSAGE = "❌ Please start the bot first with /start"


# ---------------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------------


def _is_allowed(user: TelegramUser | None) -> bool:
    if user is None:
        return False
    if not settings.ALLOWED_USER_IDS:
        return True
    return user.id in settings.ALLOWED_USER_IDS


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores users outside ALLOWED_USER_IDS.

    With an empty allowlist every Telegram user may use the bot.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if not _is_allowed(user):
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# bot_data accessors
# ---------------------------------------------------------------------------


def _user_db(context: ContextTypes.DEFAULT_TYPE) -> UserDB:
    return context.bot_data["user_db"]


def _goal_db(context: ContextTypes.DEFAULT_TYPE) -> GoalDB:
    return context.bot_data["goal_db"]


def _activity_db(context: ContextTypes.DEFAULT_TYPE) -> ActivityDB:
    return context.bot_data["activity_db"]


def _tracker(context: ContextTypes.DEFAULT_TYPE) -> ConversationTracker:
    return context.bot_data["conversations"]


def _register(update: Update, context: ContextTypes.DEFAULT_TYPE) -> User:
    """Register the chat on first contact (no-op for known chats)."""
    tg_user = update.effective_user
    username = None
    if tg_user is not None:
        username = tg_user.username or tg_user.first_name
    return _user_db(context).register_user(update.effective_chat.id, username)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — register the chat and show the command list."""
    try:
        _register(update, context)
    except Exception as exc:
        logger.error("/start registration error: %s", exc)
        await update.message.reply_text("❌ Error. Please try again.")
        return

    await update.message.reply_text(
        "👋 Welcome to your AI Goal Tracker!\n\n"
        "Tell me your goals, and I'll generate a daily plan for you every morning "
        f"at {settings.DAILY_PLAN_HOUR:02d}:00 ({settings.TIMEZONE}).\n\n"
        "👇 Commands:\n"
        "/addgoal [goal] - Add a single goal\n"
        "/addmany - Add multiple goals at once\n"
        "/mygoals - View your goals list\n"
        "/delete [number] - Delete a specific goal (e.g., /delete 1)\n"
        "/clear - Delete ALL goals\n"
        "/generate - Generate today's plan now\n"
        "/help - Show help"
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — explain how the bot works."""
    reminder_hours = ", ".join(f"{h:02d}:00" for h in settings.REMINDER_HOURS)
    await update.message.reply_text(
        "📚 How to use Goal Tracker:\n\n"
        "1️⃣ Add goals:\n"
        "   • Single: /addgoal [goal]\n"
        "   • Multiple: /addmany (then paste goals, one per line)\n\n"
        "2️⃣ View all goals with /mygoals\n\n"
        "3️⃣ Generate your daily plan with /generate\n"
        "   The bot creates ONE task for EACH goal. Tap the numbered buttons "
        "to tick tasks off; unfinished ones come back tomorrow.\n\n"
        f"4️⃣ Receive a plan at {settings.DAILY_PLAN_HOUR:02d}:00 daily\n\n"
        f"5️⃣ Get reminders at {reminder_hours}\n\n"
        "🗑️ Delete a specific goal: /delete [number]\n"
        "🗑️ Delete all goals: /clear\n"
        "↩️ Abort a pending /addgoal or /addmany: /cancel\n\n"
        "💡 Tip: Start with 2-3 goals for best results!"
    )


@authorized_only
async def cmd_addgoal(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /addgoal <text> — remember the goal and ask for a deadline."""
    goal_text = " ".join(context.args or []).strip()
    if not goal_text:
        await update.message.reply_text(
            "Usage: /addgoal [your goal]\nExample: /addgoal Read 12 books"
        )
        return

    try:
        _register(update, context)
    except Exception as exc:
        logger.error("/addgoal registration error: %s", exc)
        await update.message.reply_text("❌ Error. Please try again.")
        return

    _tracker(context).dispatch(
        update.effective_chat.id, ConversationEvent.ADD_GOAL, pending_goal=goal_text,
    )
    await update.message.reply_text(
        "📅 Great! When do you want to achieve this goal?\n\n"
        "💡 Examples:\n"
        "• Before March 2026\n"
        "• End of semester\n"
        "• April 2026\n"
        "• This month\n\n"
        'Or type "skip" for no deadline.'
    )


@authorized_only
async def cmd_addmany(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /addmany — wait for a multi-line list of goals."""
    try:
        _register(update, context)
    except Exception as exc:
        logger.error("/addmany registration error: %s", exc)
        await update.message.reply_text("❌ Error. Please try again.")
        return

    _tracker(context).dispatch(update.effective_chat.id, ConversationEvent.ADD_MANY)
    await update.message.reply_text(
        "📝 <b>Add Multiple Goals with Deadlines</b>\n\n"
        "Send your goals, one per line.\n\n"
        "<b>Format Options:</b>\n"
        "• <code>Goal text</code> (no deadline)\n"
        "• <code>Goal text | Deadline</code>\n\n"
        "<b>Examples:</b>\n"
        "Win 4 hackathons | End of year\n"
        "Achieve 4.75 GPA | First semester\n"
        "Read daily\n\n"
        "I'll add all of them at once! 🚀",
        parse_mode=ParseMode.HTML,
    )


@authorized_only
async def cmd_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /cancel — drop any pending /addgoal or /addmany input."""
    tracker = _tracker(context)
    chat_id = update.effective_chat.id
    was_pending = tracker.current(chat_id).state is not ConversationState.IDLE
    tracker.dispatch(chat_id, ConversationEvent.CANCEL)
    if was_pending:
        await update.message.reply_text("↩️ Cancelled. Nothing was saved.")
    else:
        await update.message.reply_text("Nothing to cancel.")


@authorized_only
async def cmd_mygoals(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /mygoals — numbered goal list with delete buttons."""
    try:
        user = _user_db(context).get_by_chat_id(update.effective_chat.id)
        goals = _goal_db(context).list_goals(user.id) if user else []
    except Exception as exc:
        logger.error("/mygoals error: %s", exc)
        await update.message.reply_text("❌ Error fetching goals.")
        return

    if not goals:
        await update.message.reply_text(
            "📭 You have no goals set.\n\nUse /addgoal [your goal] to add one!"
        )
        return

    items = []
    for i, g in enumerate(goals, start=1):
        line = f"{i}. {html.escape(g.description)}"
        if g.deadline:
            line += f"\n   📅 {html.escape(g.deadline)}"
        items.append(line)

    buttons = [
        InlineKeyboardButton(f"🗑️ {i}", callback_data=f"{DELETE_GOAL_PREFIX}{g.id}")
        for i, g in enumerate(goals, start=1)
    ]
    keyboard = [
        buttons[i:i + GOAL_BUTTONS_PER_ROW]
        for i in range(0, len(buttons), GOAL_BUTTONS_PER_ROW)
    ]

    await update.message.reply_text(
        "🎯 <b>Your Goals:</b>\n\n" + "\n\n".join(items) + "\n\n"
        "💡 To delete: /delete [number] or tap a 🗑️ button\n"
        "📝 Generate plan: /generate",
        parse_mode=ParseMode.HTML,
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


@authorized_only
async def cmd_delete(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /delete <n> — delete the n-th goal as numbered by /mygoals."""
    args = context.args or []
    if len(args) != 1 or not args[0].isdigit():
        await update.message.reply_text("Usage: /delete [number]\nExample: /delete 1")
        return
    position = int(args[0])

    try:
        user = _user_db(context).get_by_chat_id(update.effective_chat.id)
        if user is None:
            await update.message.reply_text(START_FIRST_MESSAGE)
            return

        goal_db = _goal_db(context)
        deleted = goal_db.delete_by_position(user.id, position)
        if deleted is None:
            count = goal_db.count_goals(user.id)
            await update.message.reply_text(
                f"❌ Invalid number. You have {count} goal(s).\n\n"
                "Use /mygoals to see your goals."
            )
            return
    except Exception as exc:
        logger.error("/delete error: %s", exc)
        await update.message.reply_text("❌ Error deleting goal.")
        return

    await update.message.reply_text(
        f'🗑️ Deleted goal: "{deleted.description}"\n\n'
        "Use /mygoals to see remaining goals."
    )


@authorized_only
async def cmd_clear(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /clear — delete every goal of the user."""
    try:
        user = _user_db(context).get_by_chat_id(update.effective_chat.id)
        deleted = _goal_db(context).clear_goals(user.id) if user else 0
    except Exception as exc:
        logger.error("/clear error: %s", exc)
        await update.message.reply_text("❌ Error deleting goals.")
        return

    await update.message.reply_text(
        f"🗑️ All goals deleted! ({_plural(deleted, 'goal')})\n\n"
        "Ready for a fresh start! Use /addgoal to begin."
    )


@authorized_only
async def cmd_generate(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /generate — build today's plan now."""
    chat_id = update.effective_chat.id
    try:
        user = _user_db(context).get_by_chat_id(chat_id)
    except Exception as exc:
        logger.error("/generate error: %s", exc)
        await update.message.reply_text("❌ Error generating plan.")
        return

    if user is None:
        await update.message.reply_text(START_FIRST_MESSAGE)
        return

    notifier: NotificationPort = context.bot_data["notifier"]
    await generate_daily_plan(
        chat_id, user.id, notifier, _goal_db(context), _activity_db(context),
    )


# ---------------------------------------------------------------------------
# Free-text replies
# ---------------------------------------------------------------------------


async def _save_single_goal(
    text: str, goal_text: str, update: Update, context: ContextTypes.DEFAULT_TYPE,
) -> None:
    deadline = parse_deadline(text)
    user = _register(update, context)
    _goal_db(context).add_goal(user.id, goal_text, deadline=deadline)

    if deadline:
        await update.message.reply_text(
            "✅ Goal added!\n\n"
            f'🎯 Goal: "{goal_text}"\n'
            f"📅 Deadline: {deadline}\n\n"
            "Use /generate to create today's plan!"
        )
    else:
        await update.message.reply_text(
            f'✅ Goal added: "{goal_text}"\n\n'
            "Use /generate to create today's plan!"
        )


async def _save_many_goals(
    text: str, update: Update, context: ContextTypes.DEFAULT_TYPE,
) -> None:
    entries = parse_goal_lines(text)
    if not entries:
        await update.message.reply_text("❌ No valid goals found. Please try again.")
        return

    user = _register(update, context)
    added = _goal_db(context).add_goals(user.id, entries)
    await update.message.reply_text(
        f"✅ Successfully added {_plural(len(added), 'goal')}!\n\n"
        "Use /mygoals to view them all.\n"
        "Use /generate to create your daily plan! 🚀"
    )


@authorized_only
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle plain text — the answer to a pending /addgoal or /addmany."""
    chat_id = update.effective_chat.id
    tracker = _tracker(context)
    pending = tracker.current(chat_id)
    text = update.message.text or ""

    if pending.state is ConversationState.IDLE:
        await update.message.reply_text(
            "🤔 I'm not waiting for anything right now. Use /help to see what I can do."
        )
        return

    # The reply is consumed whether or not saving succeeds
    tracker.dispatch(chat_id, ConversationEvent.REPLY)

    if pending.state is ConversationState.AWAITING_DEADLINE:
        try:
            await _save_single_goal(text, pending.pending_goal or "", update, context)
        except Exception as exc:
            logger.error("Error saving goal for chat %d: %s", chat_id, exc)
            await update.message.reply_text("❌ Error saving goal.")
    else:
        try:
            await _save_many_goals(text, update, context)
        except Exception as exc:
            logger.error("Error saving goals for chat %d: %s", chat_id, exc)
            await update.message.reply_text("❌ Error saving goals. Please try again.")


# ---------------------------------------------------------------------------
# Inline button callbacks
# ---------------------------------------------------------------------------


async def _handle_check_task_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Toggle a task checkbox and edit the plan message in place.

    Stale buttons (old plan, unknown task) are silently ignored.
    """
    query = update.callback_query
    await query.answer()

    if not _is_allowed(query.from_user):
        return

    ordinal = parse_check_task_data(query.data)
    if ordinal is None:
        return

    try:
        rendered = toggle_task(
            update.effective_chat.id, ordinal, _user_db(context), _activity_db(context),
        )
    except Exception as exc:
        logger.error("check_task callback error: %s", exc)
        return

    if rendered is None:
        return

    try:
        await query.edit_message_text(
            rendered.text,
            parse_mode=ParseMode.HTML,
            reply_markup=to_inline_keyboard(rendered.buttons),
        )
    except BadRequest as exc:
        # e.g. "Message is not modified" after a double tap race
        logger.warning("Could not edit plan message: %s", exc)


async def _handle_delete_goal_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle the 🗑️ button under /mygoals."""
    query = update.callback_query
    await query.answer()

    if not _is_allowed(query.from_user):
        return

    goal_id = int(query.data[len(DELETE_GOAL_PREFIX):])

    try:
        user = _user_db(context).get_by_chat_id(update.effective_chat.id)
        deleted = _goal_db(context).delete_goal(user.id, goal_id) if user else None
        if deleted is None:
            await query.edit_message_text("Goal not found or already deleted.")
            return
        await query.edit_message_text(
            f'🗑️ Deleted goal: "{deleted.description}"\n\n'
            "Use /mygoals to see remaining goals."
        )
    except Exception as exc:
        logger.error("delete_goal callback error: %s", exc)
        await query.edit_message_text("❌ Error deleting goal.")


async def _on_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log errors that escaped a handler or came from the polling loop."""
    logger.error("Telegram error while handling %r: %s", update, context.error)


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    notifier: NotificationPort | None = None,
    user_db: UserDB | None = None,
    goal_db: GoalDB | None = None,
    activity_db: ActivityDB | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
        user_db, goal_db, activity_db: Storage; default to settings.DATABASE_PATH.
    """
    from src.data.db import ActivityDB, GoalDB, UserDB

    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    if notifier is None:
        from src.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    user_db = user_db or UserDB()
    goal_db = goal_db or GoalDB()
    activity_db = activity_db or ActivityDB()

    # Store ports and storage in bot_data for handler access
    app.bot_data["notifier"] = notifier
    app.bot_data["user_db"] = user_db
    app.bot_data["goal_db"] = goal_db
    app.bot_data["activity_db"] = activity_db
    app.bot_data["conversations"] = ConversationTracker()

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("addgoal", cmd_addgoal))
    app.add_handler(CommandHandler("addmany", cmd_addmany))
    app.add_handler(CommandHandler("cancel", cmd_cancel))
    app.add_handler(CommandHandler("mygoals", cmd_mygoals))
    app.add_handler(CommandHandler("delete", cmd_delete))
    app.add_handler(CommandHandler("clear", cmd_clear))
    app.add_handler(CommandHandler("generate", cmd_generate))

    # Inline buttons
    app.add_handler(CallbackQueryHandler(_handle_check_task_callback, pattern=r"^check_task_\d+$"))
    app.add_handler(CallbackQueryHandler(_handle_delete_goal_callback, pattern=r"^delete_goal_\d+$"))

    # Text messages (non-command): pending-input replies
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))

    app.add_error_handler(_on_error)

    _setup_schedulers(app, notifier, user_db, goal_db, activity_db)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_schedulers(
    app: Application,
    notifier: NotificationPort,
    user_db: UserDB,
    goal_db: GoalDB,
    activity_db: ActivityDB,
) -> None:
    """Register the daily plan job and the reminder jobs in settings.TIMEZONE."""
    from src.core.scheduler import send_daily_plans, send_reminders

    tz = ZoneInfo(settings.TIMEZONE)

    async def _daily_plan_job(context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.info("Running daily plan job")
        await send_daily_plans(notifier, user_db, goal_db, activity_db)

    async def _reminder_job(context: ContextTypes.DEFAULT_TYPE) -> None:
        await send_reminders(notifier, user_db, goal_db, activity_db, hour=context.job.data)

    app.job_queue.run_daily(
        _daily_plan_job,
        time=dt_time(hour=settings.DAILY_PLAN_HOUR, minute=0, tzinfo=tz),
        name="daily_plans",
    )
    for hour in settings.REMINDER_HOURS:
        app.job_queue.run_daily(
            _reminder_job,
            time=dt_time(hour=hour, minute=0, tzinfo=tz),
            name=f"reminder_{hour:02d}",
            data=hour,
        )

    logger.info(
        "Scheduled: %02d:00 daily plan, reminders at %s (%s)",
        settings.DAILY_PLAN_HOUR,
        ", ".join(f"{h:02d}:00" for h in settings.REMINDER_HOURS),
        settings.TIMEZONE,
    )


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Goal Tracker bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
