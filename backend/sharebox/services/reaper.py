from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sharebox.services.lifecycle import ShareManager
from sharebox.services.policy import ShareState, evaluate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReapReport:
    scanned: int = 0
    expired: int = 0
    exhausted: int = 0
    orphaned_dirs: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def reaped(self) -> int:
        return self.expired + self.exhausted

    def as_dict(self) -> dict[str, object]:
        return {
            "scanned": self.scanned,
            "expired": self.expired,
            "exhausted": self.exhausted,
            "orphaned_dirs": self.orphaned_dirs,
            "errors": list(self.errors),
        }


async def sweep(manager: ShareManager, now: datetime | None = None) -> ReapReport:
    """Reap every share that is no longer ACTIVE, then drop orphaned payload dirs.

    A failure on one share is logged and recorded; the sweep moves on.
    """
    now = now or manager.now()
    report = ReapReport()
    batch_size = manager.config.reaper_batch_size

    async for share in manager.store.list_all(batch_size=batch_size):
        report.scanned += 1
        state = evaluate(share, now)
        if state is ShareState.ACTIVE:
            continue
        try:
            await manager.reap(share.share_id)
        except Exception as exc:  # noqa: BLE001
            message = f"Error reaping share {share.share_id}: {exc}"
            report.errors.append(message)
            logger.error(message, exc_info=True)
            continue
        if state is ShareState.EXPIRED:
            report.expired += 1
        else:
            report.exhausted += 1

    try:
        report.orphaned_dirs = await _remove_orphaned_dirs(manager, now)
    except Exception as exc:  # noqa: BLE001
        message = f"Error cleaning up orphaned payload directories: {exc}"
        report.errors.append(message)
        logger.error(message, exc_info=True)

    logger.info(
        "Reaper sweep done - scanned: %d, expired: %d, exhausted: %d, orphaned dirs: %d, errors: %d",
        report.scanned,
        report.expired,
        report.exhausted,
        report.orphaned_dirs,
        len(report.errors),
    )
    return report


async def _remove_orphaned_dirs(manager: ShareManager, now: datetime) -> int:
    # Directories are reserved before their record is written, so only old
    # ones without a record are orphans.
    cutoff = now - timedelta(minutes=manager.config.orphan_grace_minutes)
    removed = 0
    for share_id, modified_at in list(manager.storage.iter_share_dirs()):
        if modified_at > cutoff:
            continue
        if await manager.store.exists(share_id):
            continue
        await manager.reap(share_id)
        logger.warning("Removed orphaned payload directory %s", share_id)
        removed += 1
    return removed
