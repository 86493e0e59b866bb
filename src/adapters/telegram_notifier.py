"""Telegram notification adapter — implements NotificationPort.

Wraps a telegram.Bot instance to satisfy the NotificationPort protocol.
"""

from __future__ import annotations

import logging

from telegram import Bot, InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ParseMode

from src.ports.notification_port import ButtonGrid

logger = logging.getLogger(__name__)


def to_inline_keyboard(buttons: ButtonGrid | None) -> InlineKeyboardMarkup | None:
    """Convert a provider-neutral button grid into a Telegram inline keyboard."""
    if not buttons:
        return None
    return InlineKeyboardMarkup([
        [InlineKeyboardButton(b.label, callback_data=b.callback_data) for b in row]
        for row in buttons
    ])


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(
        self,
        chat_id: int,
        text: str,
        buttons: ButtonGrid | None = None,
        html: bool = False,
    ) -> None:
        await self._bot.send_message(
            chat_id=chat_id,
            text=text,
            parse_mode=ParseMode.HTML if html else None,
            reply_markup=to_inline_keyboard(buttons),
        )
