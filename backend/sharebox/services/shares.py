from __future__ import annotations

import logging
from typing import AsyncIterator

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sharebox.models.share import Share, SharedFile
from sharebox.services.errors import DuplicateKey, NotFound

logger = logging.getLogger(__name__)


class ShareStore:
    """Share metadata persistence.

    Every call runs in its own session so the store can be shared between
    request handlers and the reaper without leaking transactions.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, share: Share) -> Share:
        async with self._session_factory() as db:
            db.add(share)
            try:
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                raise DuplicateKey(f"Share {share.share_id} already exists") from exc
        return await self.load(share.share_id)

    async def load(self, share_id: str) -> Share:
        async with self._session_factory() as db:
            result = await db.execute(select(Share).where(Share.share_id == share_id))
            share = result.scalar_one_or_none()
        if share is None:
            raise NotFound()
        return share

    async def exists(self, share_id: str) -> bool:
        async with self._session_factory() as db:
            result = await db.execute(select(Share.share_id).where(Share.share_id == share_id))
            return result.scalar_one_or_none() is not None

    async def increment_download_count(self, share_id: str) -> int | None:
        """Count one download unless the share is missing or already exhausted.

        The limit check and the increment are a single conditional UPDATE,
        so concurrent callers can never push the count past ``max_downloads``.
        Returns the new count, or ``None`` when nothing was incremented.
        """
        stmt = (
            update(Share)
            .where(
                Share.share_id == share_id,
                or_(Share.max_downloads == 0, Share.download_count < Share.max_downloads),
            )
            .values(download_count=Share.download_count + 1)
            .returning(Share.download_count)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as db:
            result = await db.execute(stmt)
            new_count = result.scalar_one_or_none()
            await db.commit()
        return new_count

    async def delete(self, share_id: str) -> bool:
        async with self._session_factory() as db:
            await db.execute(
                delete(SharedFile).where(SharedFile.share_id == share_id).execution_options(synchronize_session=False)
            )
            result = await db.execute(
                delete(Share).where(Share.share_id == share_id).execution_options(synchronize_session=False)
            )
            await db.commit()
        removed = bool(result.rowcount)
        if removed:
            logger.debug("Deleted metadata for share %s", share_id)
        return removed

    async def list_all(self, batch_size: int = 200) -> AsyncIterator[Share]:
        last_id: str | None = None
        while True:
            stmt = select(Share).order_by(Share.share_id).limit(batch_size)
            if last_id is not None:
                stmt = stmt.where(Share.share_id > last_id)
            async with self._session_factory() as db:
                batch = list((await db.execute(stmt)).scalars())
            if not batch:
                return
            for share in batch:
                yield share
            last_id = batch[-1].share_id
            if len(batch) < batch_size:
                return
