"""Shared test doubles for sharebox tests."""
from __future__ import annotations

import io
from datetime import datetime, timedelta, timezone

from sharebox.services.lifecycle import IncomingFile


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.messages: list[str] = []

    async def send(self, text: str) -> None:
        if self.fail:
            raise RuntimeError('webhook unreachable')
        self.messages.append(text)


def make_files(*items: tuple[str, bytes]) -> list[IncomingFile]:
    return [
        IncomingFile(filename=name, stream=io.BytesIO(data), size=len(data), content_type='text/plain')
        for name, data in items
    ]


async def read_all(download) -> bytes:
    return b''.join([chunk async for chunk in download.iter_bytes()])
