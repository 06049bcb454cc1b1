"""Share lifecycle: create, access checks, counted downloads and reaping.

``ShareManager`` is the only place that decides whether a share may be read.
Policy is re-evaluated from the stored record on every call; nothing about a
share's state is cached between requests.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Awaitable, BinaryIO, Callable, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sharebox.core.config import Settings, settings as default_settings
from sharebox.models.share import Share, SharedFile
from sharebox.services.errors import (
    DuplicateKey,
    Gone,
    NotFound,
    OutOfRange,
    PayloadTooLarge,
    ShareError,
    StorageFailure,
    Unauthorized,
    ValidationError,
)
from sharebox.services.guards import StreamGuard
from sharebox.services.notifier import Notifier, NullNotifier, format_share_summary
from sharebox.services.policy import ShareState, evaluate, remaining_downloads
from sharebox.services.shares import ShareStore
from sharebox.services.storage import StorageService, safe_stored_name
from sharebox.utils.formatting import describe_expiry
from sharebox.utils.security import (
    burn_password_check,
    create_share_access_token,
    generate_share_id,
    get_password_hash,
    share_token_grants,
    verify_password,
)

logger = logging.getLogger(__name__)

MAX_ID_ATTEMPTS = 5


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class IncomingFile:
    filename: str
    stream: BinaryIO
    size: int | None = None
    content_type: str | None = None


@dataclass(frozen=True, slots=True)
class ShareReceipt:
    share_id: str
    expires_at: datetime
    expiry_description: str
    max_downloads: int
    file_count: int


@dataclass(frozen=True, slots=True)
class ShareFileView:
    index: int
    name: str
    size_bytes: int
    mime_type: str | None


@dataclass(frozen=True, slots=True)
class ShareView:
    share_id: str
    files: tuple[ShareFileView, ...]
    created_at: datetime
    expires_at: datetime
    max_downloads: int
    download_count: int
    remaining_downloads: int | None
    password_protected: bool
    access_token: str | None = None
    access_token_expires_at: datetime | None = None

    @property
    def total_size(self) -> int:
        return sum(entry.size_bytes for entry in self.files)


class ShareDownload:
    """An opened payload whose stream slot is released when iteration ends."""

    def __init__(
        self,
        entry: SharedFile,
        handle: BinaryIO,
        on_close: Callable[[], Awaitable[None]],
    ) -> None:
        self.filename = entry.original_name
        self.size = entry.size_bytes
        self.media_type = entry.mime_type or "application/octet-stream"
        self._handle = handle
        self._on_close = on_close
        self._closed = False

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in StorageService.iter_chunks(self._handle):
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._handle.close()
        await self._on_close()


class ShareManager:
    def __init__(
        self,
        store: ShareStore,
        storage: StorageService,
        *,
        notifier: Notifier | None = None,
        config: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
        guard: StreamGuard | None = None,
    ) -> None:
        self._store = store
        self._storage = storage
        self._notifier = notifier or NullNotifier()
        self._config = config or default_settings
        self._clock = clock
        self._guard = guard or StreamGuard()
        self._background_tasks: set[asyncio.Task[None]] = set()

    @property
    def store(self) -> ShareStore:
        return self._store

    @property
    def storage(self) -> StorageService:
        return self._storage

    @property
    def config(self) -> Settings:
        return self._config

    def now(self) -> datetime:
        return self._clock()

    # create

    async def create(
        self,
        files: Sequence[IncomingFile],
        ttl_hours: float | None = None,
        max_downloads: int = 0,
        password: str | None = None,
    ) -> ShareReceipt:
        ttl = self._config.default_ttl_hours if ttl_hours is None else ttl_hours
        self._validate_upload(files, ttl, max_downloads)

        created_at = self.now()
        try:
            expires_at = created_at + timedelta(hours=ttl)
        except OverflowError as exc:
            raise ValidationError("ttl_hours is out of range") from exc
        password_hash = await asyncio.to_thread(get_password_hash, password) if password else None

        for attempt in range(1, MAX_ID_ATTEMPTS + 1):
            share_id = generate_share_id()
            try:
                share = await self._persist(share_id, files, created_at, expires_at, max_downloads, password_hash)
            except DuplicateKey:
                logger.warning("Share id collision on attempt %d; regenerating", attempt)
                continue
            break
        else:
            raise StorageFailure("Could not allocate a share id")

        logger.info(
            "Created share %s with %d file(s), %d bytes, expires at %s, max downloads %d, password %s",
            share.share_id,
            len(share.files),
            share.total_size,
            share.expires_at.isoformat(),
            share.max_downloads,
            "set" if share.password_protected else "unset",
        )
        self._schedule_notification(share)
        return ShareReceipt(
            share_id=share.share_id,
            expires_at=share.expires_at,
            expiry_description=describe_expiry(share.expires_at, created_at),
            max_downloads=share.max_downloads,
            file_count=len(share.files),
        )

    def _validate_upload(self, files: Sequence[IncomingFile], ttl_hours: float, max_downloads: int) -> None:
        if not files:
            raise ValidationError("No files uploaded")
        if not math.isfinite(ttl_hours) or ttl_hours <= 0:
            raise ValidationError("ttl_hours must be positive")
        if max_downloads < 0:
            raise ValidationError("max_downloads must not be negative")

        total = 0
        for incoming in files:
            if not incoming.filename or not incoming.filename.strip():
                raise ValidationError("Every file needs a name")
            if incoming.size is None:
                continue
            if incoming.size > self._config.max_file_size_bytes:
                raise PayloadTooLarge(f"{incoming.filename} exceeds the maximum file size")
            total += incoming.size
        if total > self._config.max_request_size_bytes:
            raise PayloadTooLarge("Upload exceeds the maximum request size")

    async def _persist(
        self,
        share_id: str,
        files: Sequence[IncomingFile],
        created_at: datetime,
        expires_at: datetime,
        max_downloads: int,
        password_hash: str | None,
    ) -> Share:
        try:
            self._storage.reserve_share_dir(share_id)
        except OSError as exc:
            logger.exception("Failed to reserve payload directory for share %s", share_id)
            raise StorageFailure() from exc
        try:
            entries: list[SharedFile] = []
            budget = self._config.max_request_size_bytes
            for index, incoming in enumerate(files):
                stored_name = safe_stored_name(index, incoming.filename)
                limit = min(self._config.max_file_size_bytes, budget)
                written = await self._storage.write_payload(share_id, stored_name, incoming.stream, limit)
                budget -= written
                entries.append(
                    SharedFile(
                        position=index,
                        original_name=incoming.filename,
                        stored_name=stored_name,
                        size_bytes=written,
                        mime_type=incoming.content_type,
                    )
                )
            share = Share(
                share_id=share_id,
                created_at=created_at,
                expires_at=expires_at,
                max_downloads=max_downloads,
                download_count=0,
                password_hash=password_hash,
                files=entries,
            )
            return await self._store.create(share)
        except ShareError:
            await self._discard_payload(share_id)
            raise
        except (OSError, SQLAlchemyError) as exc:
            logger.exception("Failed to persist share %s", share_id)
            await self._discard_payload(share_id)
            raise StorageFailure() from exc

    async def _discard_payload(self, share_id: str) -> None:
        try:
            await self._storage.remove_share_dir(share_id)
        except OSError:
            logger.exception("Failed to roll back payload directory for share %s", share_id)

    # access

    async def inspect(
        self,
        share_id: str,
        password: str | None = None,
        access_token: str | None = None,
    ) -> ShareView:
        share, password_verified = await self._load_accessible(share_id, password, access_token)
        token: str | None = None
        token_expires_at: datetime | None = None
        if password_verified:
            token, token_expires_at = create_share_access_token(share.share_id, share.expires_at)
        return self._to_view(share, token, token_expires_at)

    async def download_file(
        self,
        share_id: str,
        file_index: int,
        password: str | None = None,
        access_token: str | None = None,
    ) -> ShareDownload:
        share, _ = await self._load_accessible(share_id, password, access_token)
        if file_index < 0 or file_index >= len(share.files):
            raise OutOfRange()
        entry = share.files[file_index]

        # The handle is opened before the download is counted, so a reaper in
        # another process cannot unlink the payload between the two.
        self._guard.acquire(share_id)
        try:
            handle = await self._open_payload(share_id, entry)
            try:
                new_count = await self._store.increment_download_count(share_id)
            except BaseException:
                handle.close()
                raise
            if new_count is None:
                handle.close()
                raise Gone()
        except Gone:
            await self._release_stream(share_id)
            logger.info("Share %s is no longer available for download", share_id)
            await self.reap(share_id)
            raise
        except BaseException:
            await self._release_stream(share_id)
            raise

        logger.info(
            "Share %s file %d downloaded (%d/%s)",
            share_id,
            file_index,
            new_count,
            share.max_downloads or "unlimited",
        )
        return ShareDownload(entry, handle, on_close=lambda: self._release_stream(share_id))

    async def _load_accessible(
        self,
        share_id: str,
        password: str | None,
        access_token: str | None,
    ) -> tuple[Share, bool]:
        try:
            share = await self._store.load(share_id)
        except NotFound:
            if password:
                await asyncio.to_thread(burn_password_check)
            raise

        state = evaluate(share, self.now())
        if state is not ShareState.ACTIVE:
            logger.info("Share %s is %s; reaping on access", share_id, state.value)
            await self.reap(share_id)
            raise Gone()

        if not share.password_protected:
            return share, False
        if share_token_grants(access_token, share.share_id):
            return share, False
        if password and await asyncio.to_thread(verify_password, password, share.password_hash):
            return share, True
        raise Unauthorized()

    async def _open_payload(self, share_id: str, entry: SharedFile) -> BinaryIO:
        try:
            return await self._storage.open_payload(share_id, entry.stored_name)
        except OSError as exc:
            if not await self._store.exists(share_id):
                raise Gone() from exc
            logger.error("Payload %s missing for share %s", entry.stored_name, share_id)
            raise StorageFailure() from exc

    def _to_view(
        self,
        share: Share,
        access_token: str | None = None,
        access_token_expires_at: datetime | None = None,
    ) -> ShareView:
        return ShareView(
            share_id=share.share_id,
            files=tuple(
                ShareFileView(
                    index=entry.position,
                    name=entry.original_name,
                    size_bytes=entry.size_bytes,
                    mime_type=entry.mime_type,
                )
                for entry in share.files
            ),
            created_at=share.created_at,
            expires_at=share.expires_at,
            max_downloads=share.max_downloads,
            download_count=share.download_count,
            remaining_downloads=remaining_downloads(share),
            password_protected=share.password_protected,
            access_token=access_token,
            access_token_expires_at=access_token_expires_at,
        )

    # reap

    async def reap(self, share_id: str) -> bool:
        """Delete a share's record and payload. Safe to call repeatedly."""
        removed = await self._store.delete(share_id)
        if self._guard.defer_purge(share_id):
            logger.info(
                "Share %s payload removal deferred until %d stream(s) finish",
                share_id,
                self._guard.active_streams(share_id),
            )
        else:
            await self._purge(share_id)
        if removed:
            logger.info("Reaped share %s", share_id)
        return removed

    async def _purge(self, share_id: str) -> None:
        try:
            await self._storage.remove_share_dir(share_id)
        except OSError as exc:
            raise StorageFailure(f"Could not remove payload for share {share_id}") from exc

    async def _release_stream(self, share_id: str) -> None:
        if not self._guard.release(share_id):
            return
        try:
            await self._purge(share_id)
        except StorageFailure:
            logger.exception("Deferred payload removal failed for share %s", share_id)
        else:
            logger.info("Removed payload of share %s after last stream finished", share_id)

    # notifications

    def _schedule_notification(self, share: Share) -> None:
        text = format_share_summary(share, self.now())
        task = asyncio.create_task(self._deliver_notification(share.share_id, text))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _deliver_notification(self, share_id: str, text: str) -> None:
        try:
            await self._notifier.send(text)
        except Exception:  # noqa: BLE001
            logger.warning("Notification for share %s failed", share_id, exc_info=True)

    async def drain_notifications(self) -> None:
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)


def build_share_manager(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    storage: StorageService | None = None,
    notifier: Notifier | None = None,
    config: Settings | None = None,
) -> ShareManager:
    return ShareManager(
        ShareStore(session_factory),
        storage or StorageService(),
        notifier=notifier,
        config=config,
    )
