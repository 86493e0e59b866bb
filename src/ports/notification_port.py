"""Notification port — abstract interface for sending messages to users.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class Button:
    """A provider-neutral inline button: visible label + opaque callback data."""

    label: str
    callback_data: str


# Rows of buttons, top to bottom
ButtonGrid = list[list[Button]]


class NotificationPort(Protocol):
    """Abstract notification interface used by core modules."""

    async def send_message(
        self,
        chat_id: int,
        text: str,
        buttons: ButtonGrid | None = None,
        html: bool = False,
    ) -> None: ...
