"""Background processing of one webhook delivery.

Each delivery is split into sub-events (messaging events and comment
changes). Every sub-event runs through save -> match -> dispatch -> record
inside its own error boundary, so one failure never stops its siblings.

Database sessions are opened only around synchronous reads and writes and
are closed before any await on the send API, so sequence delays never hold
a pooled connection.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.database import SessionLocal
from app.logging_config import LoggerAdapter, get_logger
from app.schemas.webhook import WebhookEntry, WebhookPayload
from app.services.alert_service import alert_missing_credential
from app.services.automation_rules import AutomationRule, ResponseStatus
from app.services.channel_service import (
    ChannelCredential,
    ChannelInfo,
    get_channel_by_routing_key,
    get_channel_with_credential,
)
from app.services.dispatch_service import DispatchResult, dispatch_automation
from app.services.event_service import (
    CommentEvent,
    InboundEvent,
    is_self_echo,
    mark_event_replied,
    parse_comment,
    parse_direct_message,
    save_inbound_event,
)
from app.services.meta_api_service import MetaAPIService
from app.services.notifier_service import notifier
from app.services.report_service import record_interaction
from app.services.result import MISSING_CREDENTIAL
from app.services.rule_matcher import find_matching_automation

logger = get_logger("webhook_processor")

INSTAGRAM_OBJECT = "instagram"

PROCESSED = "processed"
NO_MATCH = "no_match"
DUPLICATE = "duplicate"
SKIPPED = "skipped"
FAILED = "failed"
UNROUTED = "unrouted"

SessionFactory = Callable[[], Session]
SleepFunc = Callable[[float], Awaitable[None]]


def _empty_stats() -> dict[str, int]:
    return {PROCESSED: 0, NO_MATCH: 0, DUPLICATE: 0, SKIPPED: 0, FAILED: 0, UNROUTED: 0}


def _is_own_comment(channel: ChannelInfo, event: CommentEvent) -> bool:
    own_ids = {channel.external_account_id, channel.page_id} - {None, ""}
    return event.from_user_id in own_ids


def _prepare_event(
    session_factory: SessionFactory, channel: ChannelInfo, event: InboundEvent
) -> tuple[Optional[str], Optional[AutomationRule], Optional[ChannelCredential]]:
    """Store the event and read what the dispatch needs, in one short session.

    Returns (outcome, None, None) when the event stops here, otherwise
    (None, rule, credential).
    """
    db = session_factory()
    try:
        if not save_inbound_event(db, channel, event):
            db.rollback()
            return DUPLICATE, None, None
        db.commit()

        rule = find_matching_automation(db, channel.id, event.interaction_kind, event.text)
        if rule is None:
            return NO_MATCH, None, None

        credential = get_channel_with_credential(db, channel.id)
        return None, rule, credential
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _record_outcome(
    session_factory: SessionFactory,
    channel: ChannelInfo,
    event: InboundEvent,
    rule: AutomationRule,
    result: DispatchResult,
) -> None:
    db = session_factory()
    try:
        record_interaction(
            db,
            channel=channel,
            event=event,
            automation_id=rule.id,
            status=result.status,
            response_text=result.response_text,
        )
        if result.status == ResponseStatus.SENT:
            mark_event_replied(db, channel.id, event, reply_text=rule.reply_text)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


async def process_event(
    session_factory: SessionFactory,
    channel: ChannelInfo,
    event: InboundEvent,
    *,
    sleep_func: SleepFunc = asyncio.sleep,
) -> str:
    """Run one normalized event through the pipeline. Returns the outcome name."""
    log = LoggerAdapter(
        logger,
        {"channel_id": str(channel.id), "event_id": event.event_id, "kind": event.interaction_kind.value},
    )

    outcome, rule, credential = _prepare_event(session_factory, channel, event)
    if outcome == DUPLICATE:
        log.info("Duplicate delivery ignored")
        return outcome
    if outcome == NO_MATCH:
        log.info("No automation matched")
        return outcome

    if credential is None or not credential.access_token:
        log.warning("Matched automation but channel has no credential", context={"automation_id": str(rule.id)})
        await alert_missing_credential(channel.username or channel.route_name, str(channel.id), str(rule.id))
        result = DispatchResult.failed("Channel has no access token", MISSING_CREDENTIAL)
    else:
        api = MetaAPIService(credential.access_token, credential.page_id)
        result = await dispatch_automation(api, rule, event, sleep_func=sleep_func)

    _record_outcome(session_factory, channel, event, rule, result)

    log.info(
        "Automation dispatched",
        context={
            "automation_id": str(rule.id),
            "status": result.status.value,
            "steps_sent": result.steps_sent,
            "error": result.error,
        },
    )
    notifier.emit(
        channel.tenant_id,
        {
            "type": "interaction",
            "channel_id": str(channel.id),
            "interaction_kind": event.interaction_kind.value,
            "event_id": event.event_id,
            "automation_id": str(rule.id),
            "status": result.status.value,
        },
    )
    return PROCESSED


async def _run_isolated(
    session_factory: SessionFactory, channel: ChannelInfo, event: InboundEvent, stats: dict, sleep_func
) -> None:
    try:
        outcome = await process_event(session_factory, channel, event, sleep_func=sleep_func)
    except Exception as exc:
        logger.error(
            f"Sub-event processing failed: {exc}",
            extra={"context": {"channel_id": str(channel.id), "event_id": event.event_id}},
            exc_info=True,
        )
        outcome = FAILED
    stats[outcome] += 1


def _resolve_channel(
    session_factory: SessionFactory, route_channel: Optional[ChannelInfo], entry: WebhookEntry
) -> Optional[ChannelInfo]:
    if route_channel is not None:
        return route_channel
    if not entry.id:
        return None
    db = session_factory()
    try:
        return get_channel_by_routing_key(db, entry.id)
    finally:
        db.close()


async def process_entry(
    session_factory: SessionFactory,
    channel: ChannelInfo,
    entry: WebhookEntry,
    stats: dict[str, int],
    *,
    sleep_func: SleepFunc = asyncio.sleep,
) -> None:
    """Process the sub-events of one entry in payload order."""
    for raw in entry.messaging:
        if is_self_echo(raw):
            stats[SKIPPED] += 1
            continue
        try:
            event = parse_direct_message(raw, entry.id)
        except ValidationError as exc:
            logger.warning(f"Invalid messaging event: {exc}", extra={"context": {"entry_id": entry.id}})
            event = None
        if event is None:
            stats[SKIPPED] += 1
            continue
        await _run_isolated(session_factory, channel, event, stats, sleep_func)

    for raw in entry.changes:
        try:
            event = parse_comment(raw)
        except ValidationError as exc:
            logger.warning(f"Invalid change event: {exc}", extra={"context": {"entry_id": entry.id}})
            event = None
        if event is None or _is_own_comment(channel, event):
            stats[SKIPPED] += 1
            continue
        await _run_isolated(session_factory, channel, event, stats, sleep_func)


async def process_webhook(
    channel_route: str,
    body: Any,
    *,
    session_factory: SessionFactory = SessionLocal,
    sleep_func: SleepFunc = asyncio.sleep,
) -> dict[str, int]:
    """Process a whole delivery. Never raises; returns per-outcome counts."""
    stats = _empty_stats()
    try:
        payload = WebhookPayload.model_validate(body)
    except ValidationError as exc:
        logger.warning(f"Unparseable webhook payload: {exc}", extra={"context": {"route": channel_route}})
        return stats

    if payload.object != INSTAGRAM_OBJECT:
        logger.info(
            "Ignoring webhook for unsupported object",
            extra={"context": {"route": channel_route, "object": payload.object}},
        )
        return stats

    try:
        db = session_factory()
        try:
            route_channel = get_channel_by_routing_key(db, channel_route)
        finally:
            db.close()

        for raw_entry in payload.entry:
            try:
                entry = WebhookEntry.model_validate(raw_entry)
            except ValidationError as exc:
                logger.warning(f"Invalid webhook entry: {exc}", extra={"context": {"route": channel_route}})
                continue

            channel = _resolve_channel(session_factory, route_channel, entry)
            if channel is None:
                dropped = len(entry.messaging) + len(entry.changes)
                stats[UNROUTED] += dropped
                logger.warning(
                    "Channel not found, dropping entry",
                    extra={"context": {"route": channel_route, "entry_id": entry.id, "dropped": dropped}},
                )
                continue

            await process_entry(session_factory, channel, entry, stats, sleep_func=sleep_func)
    except Exception as exc:
        logger.error(f"Webhook processing failed: {exc}", extra={"context": {"route": channel_route}}, exc_info=True)

    logger.info("Webhook processed", extra={"context": {"route": channel_route, **stats}})
    return stats
