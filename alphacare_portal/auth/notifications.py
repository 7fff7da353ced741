from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Literal

NotificationLevel = Literal["success", "error", "info"]


@dataclass(frozen=True)
class Notification:
    level: NotificationLevel
    title: str
    description: str | None = None


class Notifier:
    """Transient user-facing notifications (toasts)."""

    def __init__(self) -> None:
        self.items: list[Notification] = []

    def success(self, title: str, description: str | None = None) -> None:
        self.items.append(Notification(level="success", title=title, description=description))

    def error(self, title: str, description: str | None = None) -> None:
        self.items.append(Notification(level="error", title=title, description=description))

    def drain(self) -> list[dict[str, Any]]:
        drained = [asdict(item) for item in self.items]
        self.items.clear()
        return drained
