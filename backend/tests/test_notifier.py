"""Tests for share notifications and their formatting helpers."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from sharebox.core.config import settings
from sharebox.models.share import Share, SharedFile
from sharebox.services.notifier import (
    NullNotifier,
    TelegramNotifier,
    build_notifier,
    format_share_summary,
)
from sharebox.utils.formatting import describe_expiry, format_file_size

NOW = datetime(2026, 5, 4, 10, 0, tzinfo=timezone.utc)


def _share(**overrides) -> Share:
    values = dict(
        share_id='ab' * 16,
        created_at=NOW,
        expires_at=NOW + timedelta(hours=5),
        max_downloads=0,
        download_count=0,
        password_hash=None,
        files=[
            SharedFile(position=0, original_name='report.pdf', stored_name='0000-report.pdf', size_bytes=2048),
            SharedFile(position=1, original_name='photo.jpg', stored_name='0001-photo.jpg', size_bytes=1536),
        ],
    )
    values.update(overrides)
    return Share(**values)


class TestFormatting:

    @pytest.mark.parametrize(
        'size,expected',
        [
            (0, '0 B'),
            (512, '512 B'),
            (1024, '1 KB'),
            (1536, '1.5 KB'),
            (1024 * 1024, '1 MB'),
            (5 * 1024**3, '5 GB'),
        ],
    )
    def test_format_file_size(self, size, expected):
        assert format_file_size(size) == expected

    @pytest.mark.parametrize(
        'delta,expected',
        [
            (timedelta(minutes=45), '45 min'),
            (timedelta(hours=3, minutes=20), '3h'),
            (timedelta(hours=24), '1 day'),
            (timedelta(days=3, hours=2), '3 days'),
            (timedelta(seconds=-10), '0 min'),
        ],
    )
    def test_describe_expiry(self, delta, expected):
        assert describe_expiry(NOW + delta, NOW) == expected


class TestSummary:

    def test_summary_lists_files_and_policy(self):
        text = format_share_summary(_share(), NOW)
        assert 'Files: 2' in text
        assert '  - report.pdf (2 KB)' in text
        assert '  - photo.jpg (1.5 KB)' in text
        assert 'Total size: 3.5 KB' in text
        assert 'Expires in: 5h' in text
        assert 'Max downloads: unlimited' in text
        assert 'Password: no' in text
        assert 'ab' * 16 in text

    def test_summary_flags_password_and_limit(self):
        text = format_share_summary(_share(password_hash='$2b$04$hash', max_downloads=2), NOW)
        assert 'Max downloads: 2' in text
        assert 'Password: yes' in text
        assert '$2b$' not in text


class TestTelegramNotifier:

    @pytest.mark.asyncio
    async def test_posts_message_to_bot_api(self):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={'ok': True})

        notifier = TelegramNotifier(
            'bot-token',
            '4242',
            api_url='https://telegram.test',
            transport=httpx.MockTransport(handler),
        )
        await notifier.send('hello')

        assert len(seen) == 1
        assert str(seen[0].url) == 'https://telegram.test/botbot-token/sendMessage'
        assert json.loads(seen[0].content) == {'chat_id': '4242', 'text': 'hello'}

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        notifier = TelegramNotifier(
            'bot-token',
            '4242',
            transport=httpx.MockTransport(lambda request: httpx.Response(403, json={'ok': False})),
        )
        with pytest.raises(httpx.HTTPStatusError):
            await notifier.send('hello')


class TestBuildNotifier:

    def test_disabled_by_default(self):
        assert isinstance(build_notifier(settings.model_copy(update={'telegram_enabled': False})), NullNotifier)

    def test_enabled_without_credentials_falls_back(self):
        config = settings.model_copy(update={'telegram_enabled': True, 'telegram_bot_token': ''})
        assert isinstance(build_notifier(config), NullNotifier)

    def test_enabled_with_credentials(self):
        config = settings.model_copy(
            update={'telegram_enabled': True, 'telegram_bot_token': 't', 'telegram_chat_id': '1'}
        )
        assert isinstance(build_notifier(config), TelegramNotifier)

    @pytest.mark.asyncio
    async def test_null_notifier_accepts_messages(self):
        await NullNotifier().send('ignored')
