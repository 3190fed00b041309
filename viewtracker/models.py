"""
Plain value types passed between the store, provider and updater.

SQLAlchemy rows stay inside the store; everything handed to worker
threads is an immutable snapshot from this module.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class EntityStatus(str, Enum):
    ACTIVE = "active"
    ERROR = "error"
    STOPPED = "stopped"


@dataclass(frozen=True)
class TrackedEntity:
    id: int
    external_id: str
    url: str
    current_views: int
    current_earnings: float
    status: EntityStatus
    created_at: datetime
    updated_at: datetime
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "video_id": self.id,
            "tiktok_id": self.external_id,
            "url": self.url,
            "current_views": self.current_views,
            "current_earnings": self.current_earnings,
            "currency": "USD",
            "status": self.status.value,
            "last_error": self.last_error,
            "last_error_at": self.last_error_at.isoformat() if self.last_error_at else None,
            "created_at": self.created_at.isoformat(),
            "last_updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class HistoryPoint:
    video_id: int
    captured_at: datetime
    views: int
    earnings: float

    def to_dict(self) -> dict:
        return {
            "captured_at": self.captured_at.isoformat(),
            "views": self.views,
            "earnings": self.earnings,
        }


@dataclass(frozen=True)
class FetchResult:
    """Counts reported by the provider for one video at one moment."""

    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0

    @property
    def metric(self) -> int:
        return self.views
