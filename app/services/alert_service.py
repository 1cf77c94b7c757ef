"""Alert service for sending operator notifications to Telegram."""

import asyncio
from typing import Optional

import httpx

from app.config import settings
from app.logging_config import get_logger

logger = get_logger("alert_service")


def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Send alert to Telegram.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict

    Returns:
        True if sent successfully
    """
    if not settings.alert_bot_token or not settings.alert_chat_id:
        logger.warning(f"Alert not configured: {level} - {message}")
        return False

    emoji = {"INFO": "ℹ️", "WARNING": "⚠️", "ERROR": "❌", "CRITICAL": "🔥"}

    text = f"{emoji.get(level, '📢')} *{level}*\n\n{message}"

    if context:
        context_str = "\n".join(f"  {k}: {v}" for k, v in context.items())
        text += f"\n\n```\n{context_str}\n```"

    try:
        with httpx.Client(timeout=10) as client:
            response = client.post(
                f"https://api.telegram.org/bot{settings.alert_bot_token}/sendMessage",
                json={"chat_id": settings.alert_chat_id, "text": text, "parse_mode": "Markdown"},
            )
            return response.status_code == 200
    except httpx.HTTPError as e:
        logger.error(f"Failed to send alert: {e}")
        return False


def alert_error(message: str, context: Optional[dict] = None) -> bool:
    """Shortcut for ERROR level alert."""
    return send_alert("ERROR", message, context)


def alert_warning(message: str, context: Optional[dict] = None) -> bool:
    """Shortcut for WARNING level alert."""
    return send_alert("WARNING", message, context)


async def alert_token_refresh_failed(channel_name: str, channel_id, error: Optional[str]) -> bool:
    """Tell operators that a channel credential could not be renewed.

    The Telegram call is blocking, so it runs in a worker thread.
    """
    return await asyncio.to_thread(
        alert_error,
        f"Access token refresh failed for channel {channel_name}",
        {"channel_id": channel_id, "error": error},
    )


async def alert_missing_credential(channel_name: str, channel_id, automation_id) -> bool:
    """Tell operators that a matched automation could not run for lack of a credential."""
    return await asyncio.to_thread(
        alert_warning,
        f"Channel {channel_name} has no access token; automation was not sent",
        {"channel_id": channel_id, "automation_id": automation_id},
    )
