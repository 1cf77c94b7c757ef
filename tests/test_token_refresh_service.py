from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock, patch
from uuid import uuid4

import pytest

from app.services.channel_service import ChannelCredential
from app.services.result import META_API_ERROR, Result
from app.services.token_refresh_service import (
    DEFAULT_EXPIRES_IN_SECONDS,
    refresh_channel_token,
    refresh_expiring_tokens,
    seconds_until_next_run,
)

NOW = datetime(2026, 2, 25, 12, 0, tzinfo=timezone.utc)


def _credential(token="old-token"):
    return ChannelCredential(
        id=uuid4(),
        tenant_id="tenant-1",
        external_account_id="acct-1",
        page_id="page-1",
        access_token=token,
        token_expires_at=NOW + timedelta(days=3),
        status="connected",
    )


class TestSecondsUntilNextRun:
    def test_later_today(self):
        now = datetime(2026, 2, 25, 1, 30, tzinfo=timezone.utc)
        assert seconds_until_next_run(now, 3) == 90 * 60

    def test_tomorrow_when_hour_passed(self):
        assert seconds_until_next_run(NOW, 3) == 15 * 3600

    def test_exact_hour_schedules_next_day(self):
        now = datetime(2026, 2, 25, 3, 0, tzinfo=timezone.utc)
        assert seconds_until_next_run(now, 3) == 24 * 3600


class TestRefreshChannelToken:
    @pytest.mark.asyncio
    @patch("app.services.token_refresh_service.update_channel_credential")
    @patch("app.services.token_refresh_service.refresh_long_lived_token", new_callable=AsyncMock)
    async def test_stores_new_token(self, mock_refresh, mock_update):
        mock_refresh.return_value = Result.success({"access_token": "new-token", "expires_in": 3600})
        db = Mock()
        channel = _credential()

        result = await refresh_channel_token(db, channel, now=NOW)

        assert result.ok is True
        assert result.value == NOW + timedelta(hours=1)
        mock_update.assert_called_once_with(db, channel.id, "new-token", NOW + timedelta(hours=1))
        db.commit.assert_called_once()

    @pytest.mark.asyncio
    @patch("app.services.token_refresh_service.update_channel_credential")
    @patch("app.services.token_refresh_service.refresh_long_lived_token", new_callable=AsyncMock)
    async def test_default_expiry(self, mock_refresh, mock_update):
        mock_refresh.return_value = Result.success({"access_token": "new-token"})

        result = await refresh_channel_token(Mock(), _credential(), now=NOW)

        assert result.value == NOW + timedelta(seconds=DEFAULT_EXPIRES_IN_SECONDS)

    @pytest.mark.asyncio
    @patch("app.services.token_refresh_service.alert_token_refresh_failed", new_callable=AsyncMock)
    @patch("app.services.token_refresh_service.update_channel_credential")
    @patch("app.services.token_refresh_service.refresh_long_lived_token", new_callable=AsyncMock)
    async def test_failure_alerts_and_keeps_token(self, mock_refresh, mock_update, mock_alert):
        mock_refresh.return_value = Result.failure("Token refresh error 400", META_API_ERROR, status_code=400)
        db = Mock()

        result = await refresh_channel_token(db, _credential(), now=NOW)

        assert result.ok is False
        assert result.error_code == META_API_ERROR
        mock_update.assert_not_called()
        mock_alert.assert_awaited_once()
        db.commit.assert_not_called()

    @pytest.mark.asyncio
    @patch("app.services.token_refresh_service.refresh_long_lived_token", new_callable=AsyncMock)
    async def test_channel_without_token_is_skipped(self, mock_refresh):
        result = await refresh_channel_token(Mock(), _credential(token=None), now=NOW)

        assert result.ok is False
        mock_refresh.assert_not_awaited()


class TestRefreshExpiringTokens:
    @pytest.mark.asyncio
    @patch("app.services.token_refresh_service.refresh_channel_token", new_callable=AsyncMock)
    @patch("app.services.token_refresh_service.list_expiring_channels")
    async def test_pauses_between_channels(self, mock_list, mock_refresh):
        mock_list.return_value = [_credential(), _credential(), _credential()]
        mock_refresh.side_effect = [
            Result.success(NOW),
            Result.failure("boom", META_API_ERROR),
            Result.success(NOW),
        ]
        sleep = AsyncMock()

        stats = await refresh_expiring_tokens(Mock(), now=NOW, sleep_func=sleep)

        assert stats == {"checked": 3, "refreshed": 2, "failed": 1}
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    @patch("app.services.token_refresh_service.refresh_channel_token", new_callable=AsyncMock)
    @patch("app.services.token_refresh_service.list_expiring_channels")
    async def test_crash_in_one_channel_does_not_stop_others(self, mock_list, mock_refresh):
        mock_list.return_value = [_credential(), _credential()]
        mock_refresh.side_effect = [RuntimeError("db gone"), Result.success(NOW)]
        db = Mock()

        stats = await refresh_expiring_tokens(db, now=NOW, sleep_func=AsyncMock())

        assert stats == {"checked": 2, "refreshed": 1, "failed": 1}
        db.rollback.assert_called_once()

    @pytest.mark.asyncio
    @patch("app.services.token_refresh_service.list_expiring_channels")
    async def test_uses_configured_threshold(self, mock_list):
        mock_list.return_value = []

        stats = await refresh_expiring_tokens(Mock(), now=NOW, sleep_func=AsyncMock())

        assert stats["checked"] == 0
        assert mock_list.call_args[1]["threshold_days"] == 7
