"""Periodic renewal of channel credentials that are about to expire."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.logging_config import get_logger
from app.services.alert_service import alert_token_refresh_failed
from app.services.channel_service import ChannelCredential, list_expiring_channels, update_channel_credential
from app.services.meta_api_service import refresh_long_lived_token
from app.services.result import MISSING_CREDENTIAL, Result

logger = get_logger("token_refresh_service")

DEFAULT_EXPIRES_IN_SECONDS = 60 * 24 * 60 * 60


def seconds_until_next_run(now: datetime, hour: int) -> float:
    """Seconds from ``now`` until the next occurrence of ``hour``:00 UTC."""
    next_run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def refresh_channel_token(db: Session, channel: ChannelCredential, *, now: Optional[datetime] = None) -> Result[datetime]:
    """Exchange one channel's credential and store the new one with its expiry."""
    now = now or datetime.now(timezone.utc)
    if not channel.access_token:
        return Result.failure("Channel has no access token", MISSING_CREDENTIAL)

    result = await refresh_long_lived_token(channel.access_token)
    if not result.ok:
        logger.error(
            "Token refresh failed",
            extra={"context": {"channel_id": str(channel.id), "error": result.error}},
        )
        await alert_token_refresh_failed(channel.external_account_id or str(channel.id), str(channel.id), result.error)
        return Result.failure(result.error, result.error_code, status_code=result.status_code)

    expires_in = int(result.value.get("expires_in") or DEFAULT_EXPIRES_IN_SECONDS)
    expires_at = now + timedelta(seconds=expires_in)
    update_channel_credential(db, channel.id, result.value["access_token"], expires_at)
    db.commit()

    logger.info(
        "Token refreshed",
        extra={"context": {"channel_id": str(channel.id), "expires_at": expires_at.isoformat()}},
    )
    return Result.success(expires_at)


async def refresh_expiring_tokens(
    db: Session,
    *,
    now: Optional[datetime] = None,
    sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> dict:
    """Refresh every connected channel expiring within the threshold, one at a time."""
    now = now or datetime.now(timezone.utc)
    channels = list_expiring_channels(db, threshold_days=settings.token_refresh_threshold_days, now=now)

    stats = {"checked": len(channels), "refreshed": 0, "failed": 0}
    for index, channel in enumerate(channels):
        if index > 0 and settings.token_refresh_pause_seconds > 0:
            await sleep_func(settings.token_refresh_pause_seconds)
        try:
            result = await refresh_channel_token(db, channel, now=now)
        except Exception as exc:
            db.rollback()
            logger.error(
                "Token refresh crashed",
                extra={"context": {"channel_id": str(channel.id), "error": str(exc)}},
                exc_info=True,
            )
            stats["failed"] += 1
            continue

        if result.ok:
            stats["refreshed"] += 1
        else:
            stats["failed"] += 1

    logger.info("Token refresh run finished", extra={"context": stats})
    return stats
