from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session

from app.services.automation_rules import AutomationRule, InteractionKind, TriggerKind
from app.services.automation_service import get_active_automations


def rule_matches(rule: AutomationRule, text: str) -> bool:
    if rule.trigger_kind == TriggerKind.ALL:
        return True
    if rule.trigger_kind == TriggerKind.KEYWORD:
        folded = (text or "").casefold()
        return any(keyword.casefold() in folded for keyword in rule.keywords if keyword)
    return False


def match_automation(
    rules: list[AutomationRule], interaction_kind: InteractionKind, text: str
) -> Optional[AutomationRule]:
    """Return the first rule of the given kind that fires for the text.

    Rules are scanned in the order given (most recently created first), so
    the newest matching rule wins. At most one rule is ever returned.
    """
    for rule in rules:
        if rule.interaction_kind != interaction_kind:
            continue
        if rule_matches(rule, text):
            return rule
    return None


def find_matching_automation(
    db: Session, channel_id: UUID, interaction_kind: InteractionKind, text: str
) -> Optional[AutomationRule]:
    return match_automation(get_active_automations(db, channel_id), interaction_kind, text)
