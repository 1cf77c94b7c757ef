from datetime import datetime, timezone
from uuid import uuid4

import pytest

from app.services.automation_rules import (
    AutomationRule,
    InteractionKind,
    ResponseKind,
    TriggerKind,
)
from app.services.channel_service import ChannelInfo


@pytest.fixture
def channel():
    return ChannelInfo(
        id=uuid4(),
        tenant_id="tenant-1",
        route_name="shop-main",
        external_account_id="17841400000000001",
        username="shop",
        page_id="100200300",
        status="connected",
    )


def make_rule(**overrides) -> AutomationRule:
    values = dict(
        id=uuid4(),
        tenant_id="tenant-1",
        channel_id=uuid4(),
        name="Price reply",
        interaction_kind=InteractionKind.DIRECT_MESSAGE,
        trigger_kind=TriggerKind.KEYWORD,
        keywords=("price",),
        response_kind=ResponseKind.DIRECT,
        reply_text=None,
        direct_plan=None,
        delay_seconds=0,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return AutomationRule(**values)


@pytest.fixture
def rule_factory():
    return make_rule
