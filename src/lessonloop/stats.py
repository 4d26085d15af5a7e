"""Learner statistics: total XP, streak and XP earned per day."""

from __future__ import annotations

from datetime import date

from pydantic import Field

from src.lessonloop.widgets.base import CamelModel


class UserStats(CamelModel):
    streak: int = 0
    xp: int = 0
    gems: int = 0
    last_played: str = ""
    history: dict[str, int] = Field(default_factory=dict)  # YYYY-MM-DD -> XP

    @classmethod
    def from_document(cls, document: dict | None) -> "UserStats":
        if not document:
            return cls()
        return cls.model_validate(document)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    def apply_session(self, xp: int, streak: int, day: date | None = None) -> "UserStats":
        """Return stats with a finished session's XP and streak folded in."""
        today = (day or date.today()).isoformat()
        history = dict(self.history)
        history[today] = history.get(today, 0) + xp
        return self.model_copy(update={
            "xp": self.xp + xp,
            # A session that ended on a miss does not wipe the running streak
            "streak": streak if streak > 0 else self.streak,
            "last_played": today,
            "history": history,
        })
