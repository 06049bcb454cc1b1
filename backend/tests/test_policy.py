"""Tests for share policy evaluation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from sharebox.services.policy import ShareState, evaluate, remaining_downloads

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)


def _record(
    expires_in: timedelta = timedelta(hours=1),
    max_downloads: int = 0,
    download_count: int = 0,
) -> SimpleNamespace:
    return SimpleNamespace(
        expires_at=NOW + expires_in,
        max_downloads=max_downloads,
        download_count=download_count,
    )


class TestEvaluate:

    def test_fresh_share_is_active(self):
        assert evaluate(_record(), NOW) is ShareState.ACTIVE

    def test_expiry_instant_is_still_active(self):
        assert evaluate(_record(expires_in=timedelta(0)), NOW) is ShareState.ACTIVE

    def test_past_expiry_is_expired(self):
        record = _record(expires_in=timedelta(microseconds=-1))
        assert evaluate(record, NOW) is ShareState.EXPIRED

    def test_reaching_limit_is_exhausted(self):
        assert evaluate(_record(max_downloads=3, download_count=3), NOW) is ShareState.EXHAUSTED

    def test_below_limit_is_active(self):
        assert evaluate(_record(max_downloads=3, download_count=2), NOW) is ShareState.ACTIVE

    def test_zero_limit_means_unlimited(self):
        assert evaluate(_record(max_downloads=0, download_count=10_000), NOW) is ShareState.ACTIVE

    def test_expiry_takes_precedence_over_exhaustion(self):
        record = _record(expires_in=timedelta(seconds=-5), max_downloads=1, download_count=1)
        assert evaluate(record, NOW) is ShareState.EXPIRED

    def test_naive_expiry_is_treated_as_utc(self):
        record = _record()
        record.expires_at = (NOW - timedelta(minutes=1)).replace(tzinfo=None)
        assert evaluate(record, NOW) is ShareState.EXPIRED

    @pytest.mark.parametrize(
        'expires_in,max_downloads,download_count',
        [
            (timedelta(hours=2), 0, 0),
            (timedelta(seconds=-1), 0, 0),
            (timedelta(hours=2), 2, 2),
        ],
    )
    def test_same_inputs_give_same_state(self, expires_in, max_downloads, download_count):
        record = _record(expires_in, max_downloads, download_count)
        first = evaluate(record, NOW)
        assert all(evaluate(record, NOW) is first for _ in range(5))
        assert record.download_count == download_count


class TestRemainingDownloads:

    def test_unlimited_share_has_no_remaining_count(self):
        assert remaining_downloads(_record(max_downloads=0, download_count=4)) is None

    def test_remaining_counts_down(self):
        assert remaining_downloads(_record(max_downloads=5, download_count=2)) == 3

    def test_remaining_never_negative(self):
        assert remaining_downloads(_record(max_downloads=1, download_count=1)) == 0
