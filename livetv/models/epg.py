"""
EPG (Electronic Program Guide) data models.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel


@dataclass(slots=True, frozen=True)
class Program:
    """One scheduled entry in a channel's guide."""
    start: datetime
    stop: datetime
    title: str
    description: str | None = None
    category: str | None = None

    def is_live(self, now: datetime) -> bool:
        """Check if program is airing at `now` (both ends inclusive)."""
        return self.start <= now <= self.stop

    @property
    def duration_minutes(self) -> int:
        return int((self.stop - self.start).total_seconds() / 60)


class GuideStatus(BaseModel):
    """Snapshot of the program guide state for status endpoints."""
    updating: bool
    last_update: str
    channel_count: int
    program_count: int
    timezone: str
