from __future__ import annotations

import asyncio
import shutil
import unicodedata
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Iterator

from sharebox.core.config import settings
from sharebox.services.errors import DuplicateKey, PayloadTooLarge

COPY_CHUNK_SIZE = 1024 * 1024
STORED_NAME_MAX_BYTES = 200


def safe_stored_name(index: int, original_name: str) -> str:
    """Build the on-disk name for the ``index``-th file of a share.

    The index prefix keeps names unique inside a share; the rest stays
    readable (NFC normalised, UTF-8, no separators or control characters).
    """
    name = unicodedata.normalize("NFC", original_name)
    name = name.replace("\\", "/").rsplit("/", 1)[-1]
    name = "".join("_" if unicodedata.category(ch).startswith("C") else ch for ch in name)
    name = name.strip().lstrip(".") or "file"
    encoded = name.encode("utf-8")
    if len(encoded) > STORED_NAME_MAX_BYTES:
        name = encoded[:STORED_NAME_MAX_BYTES].decode("utf-8", "ignore")
    return f"{index:04d}-{name}"


class StorageService:
    def __init__(self, root: Path | None = None) -> None:
        self._root = root or settings.storage_root
        self._shares_dir = self._root / settings.shares_dir_name

    @property
    def shares_dir(self) -> Path:
        return self._shares_dir

    def ensure_base_dirs(self) -> None:
        for directory in (self._root, self._shares_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def share_dir(self, share_id: str) -> Path:
        return self._shares_dir / share_id

    def payload_path(self, share_id: str, stored_name: str) -> Path:
        return self.share_dir(share_id) / stored_name

    def reserve_share_dir(self, share_id: str) -> Path:
        self.ensure_base_dirs()
        path = self.share_dir(share_id)
        try:
            path.mkdir()
        except FileExistsError as exc:
            raise DuplicateKey(f"Payload directory for {share_id} already exists") from exc
        return path

    async def write_payload(self, share_id: str, stored_name: str, source: BinaryIO, limit: int) -> int:
        path = self.payload_path(share_id, stored_name)

        def _write() -> int:
            byte_count = 0
            with open(path, "wb") as out_handle:
                while True:
                    chunk = source.read(COPY_CHUNK_SIZE)
                    if not chunk:
                        break
                    byte_count += len(chunk)
                    if byte_count > limit:
                        raise PayloadTooLarge()
                    out_handle.write(chunk)
            return byte_count

        return await asyncio.to_thread(_write)

    async def open_payload(self, share_id: str, stored_name: str) -> BinaryIO:
        path = self.payload_path(share_id, stored_name)
        return await asyncio.to_thread(open, path, "rb")

    async def remove_share_dir(self, share_id: str) -> bool:
        path = self.share_dir(share_id)

        def _remove() -> bool:
            if not path.exists():
                return False
            shutil.rmtree(path)
            return True

        return await asyncio.to_thread(_remove)

    def iter_share_dirs(self) -> Iterator[tuple[str, datetime]]:
        if not self._shares_dir.exists():
            return
        for entry in self._shares_dir.iterdir():
            if entry.is_dir():
                modified = datetime.fromtimestamp(entry.stat().st_mtime, tz=timezone.utc)
                yield entry.name, modified

    @staticmethod
    async def iter_chunks(handle: BinaryIO, chunk_size: int = COPY_CHUNK_SIZE) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await asyncio.to_thread(handle.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()


storage_service = StorageService()
