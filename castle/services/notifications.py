"""Capabilities the presentation layer hands to the coordinator: toasts, chat lines and confirmation dialogs."""

from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from castle.core.shared_types import Variant


class Action(StrEnum):
    """Operations that need the player's confirmation first."""

    RESIGN = "resign"
    RESET = "reset"
    EXIT = "exit"


@dataclass(frozen=True)
class Notification:
    title: str
    description: str = ""
    variant: Variant = Variant.DEFAULT


@dataclass(frozen=True)
class ChatMessage:
    content: str
    role: str = "assistant"


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class Confirmation(Protocol):
    def confirm(self, action: Action) -> bool:
        """Ask the player. False means the dialog was cancelled."""
        ...


class NotificationLog:
    """Keeps every notification; the UI drains it, tests inspect it."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    @property
    def titles(self) -> list[str]:
        return [notification.title for notification in self.notifications]


class AlwaysConfirm:
    def confirm(self, action: Action) -> bool:
        return True
