"""Execute a matched automation's response plan against the send API."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from app.logging_config import get_logger
from app.services.automation_rules import (
    AutomationRule,
    ResponseKind,
    ResponsePlan,
    ResponseStatus,
    SequencePlan,
    SequenceStep,
    StepKind,
)
from app.services.event_service import CommentEvent, InboundEvent
from app.services.meta_api_service import MetaAPIService, comment_recipient, user_recipient
from app.services.result import INVALID_RECIPIENT, Result

logger = get_logger("dispatch_service")

SleepFunc = Callable[[float], Awaitable[None]]


@dataclass
class DispatchResult:
    status: ResponseStatus
    response_text: Optional[str] = None
    steps_sent: int = 0
    error: Optional[str] = None
    error_code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ResponseStatus.SENT

    @classmethod
    def failed(cls, error: Optional[str], code: Optional[str], *, response_text=None, steps_sent: int = 0):
        return cls(
            status=ResponseStatus.FAILED,
            response_text=response_text,
            steps_sent=steps_sent,
            error=error,
            error_code=code,
        )


async def _send_step(api: MetaAPIService, recipient: dict, step: SequenceStep) -> Result[dict]:
    if step.kind == StepKind.TEXT:
        return await api.send_text(recipient, step.content)
    return await api.send_attachment(recipient, step.kind.value, step.content)


async def run_sequence(
    api: MetaAPIService,
    recipient: dict,
    steps: tuple[SequenceStep, ...],
    *,
    sleep_func: SleepFunc = asyncio.sleep,
) -> Result[int]:
    """Send steps strictly in order; each step waits its delay after the previous send returns.

    The first failed send aborts the remaining steps. Steps already delivered
    stay delivered. The value is the number of steps sent.
    """
    sent = 0
    for index, step in enumerate(steps):
        if step.delay_seconds > 0:
            await sleep_func(step.delay_seconds)

        result = await _send_step(api, recipient, step)
        if not result.ok:
            logger.warning(
                "Sequence step failed, aborting remaining steps",
                extra={
                    "context": {
                        "step": index,
                        "kind": step.kind.value,
                        "steps_sent": sent,
                        "steps_skipped": len(steps) - index - 1,
                        "error": result.error,
                    }
                },
            )
            return Result(ok=False, value=sent, error=result.error, error_code=result.error_code)
        sent += 1

    return Result.success(sent)


async def send_direct_plan(
    api: MetaAPIService,
    recipient: dict,
    plan: ResponsePlan,
    *,
    sleep_func: SleepFunc = asyncio.sleep,
) -> Result[int]:
    if isinstance(plan, SequencePlan):
        return await run_sequence(api, recipient, plan.steps, sleep_func=sleep_func)

    result = await api.send_text(recipient, plan.text)
    if not result.ok:
        return Result(ok=False, value=0, error=result.error, error_code=result.error_code)
    return Result.success(1)


def _recorded_text(plan: Optional[ResponsePlan]) -> Optional[str]:
    # Sequences vary per step, so no single text is recorded for them.
    if plan is None or isinstance(plan, SequencePlan):
        return None
    return plan.text


async def dispatch_automation(
    api: MetaAPIService,
    rule: AutomationRule,
    event: InboundEvent,
    *,
    sleep_func: SleepFunc = asyncio.sleep,
) -> DispatchResult:
    """Run the rule's response for the event and report sent/failed.

    Platform errors never raise; they come back as a failed result.
    """
    kind = rule.response_kind
    plan = rule.direct_plan

    if kind in (ResponseKind.COMMENT, ResponseKind.COMMENT_AND_DM) and not isinstance(event, CommentEvent):
        return DispatchResult.failed(f"Response kind '{kind.value}' needs a comment event", INVALID_RECIPIENT)

    # The legacy global delay only applies to responses without a sequence;
    # sequence steps carry their own delays.
    if rule.delay_seconds > 0 and not isinstance(plan, SequencePlan):
        await sleep_func(rule.delay_seconds)

    if kind == ResponseKind.COMMENT:
        reply = await api.reply_to_comment(event.comment_id, rule.reply_text or "")
        if not reply.ok:
            return DispatchResult.failed(reply.error, reply.error_code, response_text=rule.reply_text)
        return DispatchResult(status=ResponseStatus.SENT, response_text=rule.reply_text, steps_sent=1)

    if plan is None:
        return DispatchResult.failed("Automation has no direct message response", "unknown")

    if kind == ResponseKind.DIRECT:
        result = await send_direct_plan(api, user_recipient(event.user_id), plan, sleep_func=sleep_func)
        if not result.ok:
            return DispatchResult.failed(
                result.error, result.error_code, response_text=_recorded_text(plan), steps_sent=result.value or 0
            )
        return DispatchResult(status=ResponseStatus.SENT, response_text=_recorded_text(plan), steps_sent=result.value)

    # COMMENT_AND_DM: public reply first, then a private reply addressed by comment id.
    reply = await api.reply_to_comment(event.comment_id, rule.reply_text or "")
    if not reply.ok:
        return DispatchResult.failed(reply.error, reply.error_code, response_text=rule.reply_text)

    result = await send_direct_plan(api, comment_recipient(event.comment_id), plan, sleep_func=sleep_func)
    if not result.ok:
        return DispatchResult.failed(
            result.error, result.error_code, response_text=rule.reply_text, steps_sent=1 + (result.value or 0)
        )
    return DispatchResult(status=ResponseStatus.SENT, response_text=rule.reply_text, steps_sent=1 + result.value)
