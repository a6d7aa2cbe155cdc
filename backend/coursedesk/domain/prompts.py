"""Confirmation and notice interfaces implemented by the console layer."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional, Protocol

logger = logging.getLogger(__name__)

NoticeLevel = Literal["success", "error", "info"]

_IRREGULAR_PAST = {"ban": "banned", "submit": "submitted", "send": "sent", "export": "exported"}


def humanize(label: str) -> str:
    return label.replace("_", " ")


def past_tense(label: str) -> str:
    """``ban`` -> ``banned``, ``mark_pending`` -> ``marked pending``."""
    head, _, rest = humanize(label).partition(" ")
    if head in _IRREGULAR_PAST:
        past = _IRREGULAR_PAST[head]
    elif head.endswith("e"):
        past = f"{head}d"
    else:
        past = f"{head}ed"
    return f"{past} {rest}" if rest else past


class Confirmer(Protocol):
    """Yes/no gate shown before any mutation."""

    async def confirm(self, prompt: str) -> bool:
        ...


@dataclass
class StaticConfirmer(Confirmer):
    """Answers every prompt the same way and remembers what was asked."""

    answer: bool = True
    prompts: list[str] = field(default_factory=list)

    async def confirm(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self.answer


@dataclass(frozen=True, slots=True)
class Notice:
    level: NoticeLevel
    message: str
    undo_token: Optional[str] = None
    expires_at: Optional[datetime] = None


class NoticeSink(Protocol):
    def publish(self, notice: Notice) -> None:
        ...


@dataclass
class NoticeLog(NoticeSink):
    """Collects notices in publication order."""

    notices: list[Notice] = field(default_factory=list)

    def publish(self, notice: Notice) -> None:
        self.notices.append(notice)

    @property
    def last(self) -> Notice | None:
        return self.notices[-1] if self.notices else None

    def messages(self, level: NoticeLevel | None = None) -> list[str]:
        return [notice.message for notice in self.notices if level is None or notice.level == level]


class LoggingNoticeSink(NoticeSink):
    """Default sink for headless use: notices become log lines."""

    def publish(self, notice: Notice) -> None:
        level = logging.WARNING if notice.level == "error" else logging.INFO
        logger.log(level, notice.message, extra={"notice_level": notice.level, "undo": bool(notice.undo_token)})
