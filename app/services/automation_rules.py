"""Automation rule types and the write-time legality rules.

An automation's response is a tagged union (``TextPlan | SequencePlan``).
Which variant is legal for which (interaction kind, response kind) pair is
decided by ``RESPONSE_RULES``; both the create and the update path call
``validate_automation`` against that table.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union
from uuid import UUID


class InteractionKind(str, Enum):
    DIRECT_MESSAGE = "dm"
    COMMENT = "comment"


class TriggerKind(str, Enum):
    KEYWORD = "keyword"
    ALL = "all"


class ResponseKind(str, Enum):
    DIRECT = "direct"
    COMMENT = "comment"
    COMMENT_AND_DM = "comment_and_dm"


class StepKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    AUDIO = "audio"


class ResponseStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


MAX_SEQUENCE_STEPS = 4
MIN_NAME_LENGTH = 3

MEDIA_EXTENSIONS = {
    StepKind.IMAGE: ("jpg", "jpeg", "png"),
    StepKind.VIDEO: ("mp4", "ogg", "avi", "mov", "webm"),
    StepKind.AUDIO: ("aac", "m4a", "wav", "mp4", "mp3"),
}


@dataclass(frozen=True)
class SequenceStep:
    kind: StepKind
    content: str
    delay_seconds: int = 0


@dataclass(frozen=True)
class TextPlan:
    text: str


@dataclass(frozen=True)
class SequencePlan:
    steps: tuple[SequenceStep, ...]


ResponsePlan = Union[TextPlan, SequencePlan]


@dataclass(frozen=True)
class ResponseRule:
    reply_text: bool
    direct_plan: bool


# (interaction kind, response kind) -> which payload parts are required.
# Pairs missing from the table are rejected outright.
RESPONSE_RULES: dict[tuple[InteractionKind, ResponseKind], ResponseRule] = {
    (InteractionKind.DIRECT_MESSAGE, ResponseKind.DIRECT): ResponseRule(reply_text=False, direct_plan=True),
    (InteractionKind.COMMENT, ResponseKind.COMMENT): ResponseRule(reply_text=True, direct_plan=False),
    (InteractionKind.COMMENT, ResponseKind.DIRECT): ResponseRule(reply_text=False, direct_plan=True),
    (InteractionKind.COMMENT, ResponseKind.COMMENT_AND_DM): ResponseRule(reply_text=True, direct_plan=True),
}


@dataclass
class AutomationDraft:
    """Automation fields as submitted by the management surface."""

    name: str
    interaction_kind: InteractionKind
    trigger_kind: TriggerKind
    response_kind: ResponseKind
    keywords: list[str] = field(default_factory=list)
    reply_text: Optional[str] = None
    direct_plan: Optional[ResponsePlan] = None
    delay_seconds: int = 0
    is_active: bool = True


@dataclass(frozen=True)
class AutomationRule:
    """Read-only view of an active automation as used by the pipeline."""

    id: UUID
    tenant_id: str
    channel_id: UUID
    name: str
    interaction_kind: InteractionKind
    trigger_kind: TriggerKind
    keywords: tuple[str, ...]
    response_kind: ResponseKind
    reply_text: Optional[str]
    direct_plan: Optional[ResponsePlan]
    delay_seconds: int = 0
    created_at: Optional[datetime] = None


class AutomationValidationError(Exception):
    def __init__(self, violations: list[str]):
        self.violations = list(violations)
        super().__init__("; ".join(self.violations))


def clean_keywords(keywords: Optional[list[str]]) -> list[str]:
    """Trim keywords and drop blank ones."""
    return [keyword.strip() for keyword in keywords or [] if keyword and keyword.strip()]


def is_valid_media_url(url: str, kind: StepKind) -> bool:
    if not url.startswith("https://"):
        return False
    path = url.split("?", 1)[0].split("#", 1)[0].lower()
    return any(path.endswith(f".{ext}") for ext in MEDIA_EXTENSIONS.get(kind, ()))


def _is_whole_non_negative(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def sequence_violations(steps) -> list[str]:
    violations = []
    if not steps:
        return ["Sequence must contain at least one step"]
    if len(steps) > MAX_SEQUENCE_STEPS:
        violations.append(f"Sequence may contain at most {MAX_SEQUENCE_STEPS} steps")

    for index, step in enumerate(steps, start=1):
        if not isinstance(step.kind, StepKind):
            violations.append(f"Step {index}: unsupported kind {step.kind!r}")
            continue
        if not step.content or not step.content.strip():
            violations.append(f"Step {index}: content must not be empty")
        elif step.kind != StepKind.TEXT and not is_valid_media_url(step.content, step.kind):
            allowed = ", ".join(MEDIA_EXTENSIONS[step.kind])
            violations.append(f"Step {index}: {step.kind.value} URL must be HTTPS and end with one of: {allowed}")
        if not _is_whole_non_negative(step.delay_seconds):
            violations.append(f"Step {index}: delay must be a whole number of seconds >= 0")
    return violations


def plan_violations(plan: ResponsePlan) -> list[str]:
    if isinstance(plan, SequencePlan):
        return sequence_violations(plan.steps)
    if not plan.text or not plan.text.strip():
        return ["Direct message text must not be empty"]
    return []


def validate_automation(draft: AutomationDraft) -> None:
    """Check a draft against every rule; raise with the full list of violations."""
    violations = []

    if not draft.name or len(draft.name.strip()) < MIN_NAME_LENGTH:
        violations.append(f"Name must be at least {MIN_NAME_LENGTH} characters")

    if draft.trigger_kind == TriggerKind.KEYWORD and not clean_keywords(draft.keywords):
        violations.append("Keyword trigger requires at least one non-blank keyword")

    if not _is_whole_non_negative(draft.delay_seconds):
        violations.append("Delay must be a whole number of seconds >= 0")

    rule = RESPONSE_RULES.get((draft.interaction_kind, draft.response_kind))
    if rule is None:
        violations.append(
            f"Response kind '{draft.response_kind.value}' is not allowed for "
            f"'{draft.interaction_kind.value}' automations"
        )
        raise AutomationValidationError(violations)

    has_reply_text = bool(draft.reply_text and draft.reply_text.strip())
    if rule.reply_text and not has_reply_text:
        violations.append("In-place reply text is required")
    if not rule.reply_text and has_reply_text:
        violations.append("In-place reply text is not allowed for this response kind")

    if rule.direct_plan:
        if draft.direct_plan is None:
            violations.append("Direct message response (text or sequence) is required")
        else:
            violations.extend(plan_violations(draft.direct_plan))
    elif draft.direct_plan is not None:
        violations.append("Direct message response is not allowed for this response kind")

    if violations:
        raise AutomationValidationError(violations)
