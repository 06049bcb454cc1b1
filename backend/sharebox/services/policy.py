from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Protocol


class ShareState(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


class PolicySubject(Protocol):
    expires_at: datetime
    max_downloads: int
    download_count: int


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def evaluate(record: PolicySubject, now: datetime) -> ShareState:
    """Decide whether a share can still be accessed at ``now``.

    Expiry wins over exhaustion when both hold. The result depends only on
    the arguments.
    """
    if _as_utc(now) > _as_utc(record.expires_at):
        return ShareState.EXPIRED
    if record.max_downloads > 0 and record.download_count >= record.max_downloads:
        return ShareState.EXHAUSTED
    return ShareState.ACTIVE


def remaining_downloads(record: PolicySubject) -> int | None:
    if record.max_downloads <= 0:
        return None
    return max(0, record.max_downloads - record.download_count)
