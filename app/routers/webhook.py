import asyncio
import json
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from starlette.requests import ClientDisconnect

from app.config import settings
from app.logging_config import get_logger
from app.services.webhook_processor import process_webhook

logger = get_logger("webhook")

router = APIRouter()

ACKNOWLEDGEMENT = "EVENT_RECEIVED"

_background_tasks: set[asyncio.Task] = set()


async def parse_webhook_body(request: Request) -> Optional[Any]:
    """
    Parse the delivery body with tolerant decoding.
    Returns the decoded JSON or None.
    """
    try:
        return await request.json()
    except ClientDisconnect:
        logger.info("Webhook client disconnected during read")
        return None
    except Exception as e:
        logger.warning(f"Standard request.json() failed: {e}, fallback decoding")

    raw = await request.body()
    if not raw or not raw.strip():
        logger.info("Webhook delivery with empty body")
        return None

    for enc in ("utf-8", "latin-1"):
        try:
            return json.loads(raw.decode(enc, errors="replace"))
        except ValueError:
            continue

    logger.error(
        "Failed to decode webhook payload after fallbacks",
        extra={"context": {"body_preview": raw[:200].decode("utf-8", "ignore")}},
    )
    return None


def schedule_processing(channel_route: str, body: Any) -> asyncio.Task:
    """Start processing in the background without waiting for it."""
    task = asyncio.create_task(process_webhook(channel_route, body))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)
    return task


@router.get("/webhook/{channel_route}")
async def verify_webhook(
    channel_route: str,
    hub_mode: Optional[str] = Query(default=None, alias="hub.mode"),
    hub_verify_token: Optional[str] = Query(default=None, alias="hub.verify_token"),
    hub_challenge: Optional[str] = Query(default=None, alias="hub.challenge"),
):
    """Subscription handshake: echo the challenge when the verify token matches."""
    if (
        hub_mode == "subscribe"
        and settings.meta_verify_token
        and hub_verify_token == settings.meta_verify_token
    ):
        logger.info("Webhook verified", extra={"context": {"route": channel_route}})
        return PlainTextResponse(hub_challenge or "")

    logger.warning("Webhook verification failed", extra={"context": {"route": channel_route, "mode": hub_mode}})
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")


@router.post("/webhook/{channel_route}")
async def receive_webhook(channel_route: str, request: Request):
    """Acknowledge the delivery at once; processing continues in the background."""
    try:
        body = await parse_webhook_body(request)
        if body is not None:
            schedule_processing(channel_route, body)
    except Exception as e:
        logger.error(f"Webhook intake error: {e}", extra={"context": {"route": channel_route}}, exc_info=True)

    return PlainTextResponse(ACKNOWLEDGEMENT, status_code=status.HTTP_200_OK)
