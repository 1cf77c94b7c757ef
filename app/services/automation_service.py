from dataclasses import fields, replace
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.logging_config import get_logger
from app.models import Automation
from app.services.automation_rules import (
    AutomationDraft,
    AutomationRule,
    InteractionKind,
    ResponseKind,
    ResponsePlan,
    SequencePlan,
    SequenceStep,
    StepKind,
    TextPlan,
    TriggerKind,
    clean_keywords,
    validate_automation,
)

logger = get_logger("automation_service")


def _parse_sequence(raw: Any) -> tuple[SequenceStep, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(
        SequenceStep(
            kind=StepKind(item.get("type")),
            content=item.get("content") or "",
            delay_seconds=int(item.get("delay") or 0),
        )
        for item in raw
        if isinstance(item, dict)
    )


def _serialize_sequence(plan: Optional[ResponsePlan]) -> Optional[list[dict]]:
    if not isinstance(plan, SequencePlan):
        return None
    return [{"type": step.kind.value, "content": step.content, "delay": step.delay_seconds} for step in plan.steps]


def rule_from_row(row: Automation) -> AutomationRule:
    response_kind = ResponseKind(row.response_kind)

    reply_text = None
    if response_kind in (ResponseKind.COMMENT, ResponseKind.COMMENT_AND_DM):
        reply_text = row.response_text

    direct_plan: Optional[ResponsePlan] = None
    if response_kind != ResponseKind.COMMENT:
        steps = _parse_sequence(row.response_sequence)
        if steps:
            direct_plan = SequencePlan(steps=steps)
        else:
            text = row.response_text_dm if response_kind == ResponseKind.COMMENT_AND_DM else row.response_text
            if text and text.strip():
                direct_plan = TextPlan(text=text)

    return AutomationRule(
        id=row.id,
        tenant_id=row.tenant_id,
        channel_id=row.channel_id,
        name=row.name,
        interaction_kind=InteractionKind(row.interaction_kind),
        trigger_kind=TriggerKind(row.trigger_kind),
        keywords=tuple(clean_keywords(row.keywords)),
        response_kind=response_kind,
        reply_text=reply_text,
        direct_plan=direct_plan,
        delay_seconds=row.delay_seconds or 0,
        created_at=row.created_at,
    )


def get_active_automations(db: Session, channel_id: UUID) -> list[AutomationRule]:
    """Active rules for a channel, most recently created first."""
    rows = (
        db.query(Automation)
        .filter(Automation.channel_id == channel_id, Automation.is_active == True)  # noqa: E712
        .order_by(Automation.created_at.desc())
        .all()
    )
    rules = []
    for row in rows:
        try:
            rules.append(rule_from_row(row))
        except (ValueError, TypeError) as exc:
            logger.warning(
                f"Skipping malformed automation: {exc}",
                extra={"context": {"automation_id": str(row.id), "channel_id": str(channel_id)}},
            )
    return rules


def _columns_from_draft(draft: AutomationDraft) -> dict:
    plan = draft.direct_plan
    text_plan = plan.text if isinstance(plan, TextPlan) else None

    if draft.response_kind == ResponseKind.DIRECT:
        response_text, response_text_dm = text_plan, None
    elif draft.response_kind == ResponseKind.COMMENT_AND_DM:
        response_text, response_text_dm = draft.reply_text, text_plan
    else:
        response_text, response_text_dm = draft.reply_text, None

    keywords = clean_keywords(draft.keywords) if draft.trigger_kind == TriggerKind.KEYWORD else None
    return {
        "name": draft.name.strip(),
        "interaction_kind": draft.interaction_kind.value,
        "trigger_kind": draft.trigger_kind.value,
        "keywords": keywords,
        "response_kind": draft.response_kind.value,
        "response_text": response_text.strip() if response_text else None,
        "response_text_dm": response_text_dm,
        "response_sequence": _serialize_sequence(plan),
        "delay_seconds": draft.delay_seconds,
        "is_active": draft.is_active,
    }


def _draft_from_row(row: Automation) -> AutomationDraft:
    rule = rule_from_row(row)
    return AutomationDraft(
        name=rule.name,
        interaction_kind=rule.interaction_kind,
        trigger_kind=rule.trigger_kind,
        response_kind=rule.response_kind,
        keywords=list(rule.keywords),
        reply_text=rule.reply_text,
        direct_plan=rule.direct_plan,
        delay_seconds=rule.delay_seconds,
        is_active=bool(row.is_active),
    )


def create_automation(db: Session, *, tenant_id: str, channel_id: UUID, draft: AutomationDraft) -> AutomationRule:
    """Validate and persist a new automation. Raises AutomationValidationError."""
    draft = replace(draft, keywords=clean_keywords(draft.keywords))
    validate_automation(draft)

    row = Automation(tenant_id=tenant_id, channel_id=channel_id, **_columns_from_draft(draft))
    db.add(row)
    db.flush()
    logger.info(
        "Automation created",
        extra={"context": {"automation_id": str(row.id), "channel_id": str(channel_id)}},
    )
    return rule_from_row(row)


def update_automation(
    db: Session, automation_id: UUID, tenant_id: str, changes: dict[str, Any]
) -> Optional[AutomationRule]:
    """Merge partial changes over the stored automation and re-validate the result."""
    row = db.query(Automation).filter(Automation.id == automation_id, Automation.tenant_id == tenant_id).first()
    if not row:
        return None

    allowed = {f.name for f in fields(AutomationDraft)}
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Unknown automation fields: {', '.join(sorted(unknown))}")

    draft = replace(_draft_from_row(row), **changes)
    draft = replace(draft, keywords=clean_keywords(draft.keywords))
    validate_automation(draft)

    for column, value in _columns_from_draft(draft).items():
        setattr(row, column, value)
    row.updated_at = datetime.now(timezone.utc)
    db.flush()
    return rule_from_row(row)
