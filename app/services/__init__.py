from app.services.automation_rules import (
    AutomationRule,
    AutomationValidationError,
    InteractionKind,
    ResponseKind,
    ResponseStatus,
    StepKind,
    TriggerKind,
    validate_automation,
)
from app.services.channel_service import (
    get_channel_by_routing_key,
    get_channel_with_credential,
)
from app.services.dispatch_service import (
    DispatchResult,
    dispatch_automation,
    run_sequence,
)
from app.services.report_service import (
    record_interaction,
)
from app.services.rule_matcher import (
    find_matching_automation,
    match_automation,
)
