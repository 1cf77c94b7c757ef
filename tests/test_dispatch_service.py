from unittest.mock import AsyncMock, Mock

import pytest

from app.services.automation_rules import (
    InteractionKind,
    ResponseKind,
    ResponseStatus,
    SequencePlan,
    SequenceStep,
    StepKind,
    TextPlan,
)
from app.services.dispatch_service import dispatch_automation, run_sequence
from app.services.event_service import CommentEvent, DirectMessageEvent
from app.services.result import INVALID_RECIPIENT, META_API_ERROR, Result

OK = Result.success({"message_id": "m_out"})
FAIL = Result.failure("Meta API error 400: bad url", META_API_ERROR, status_code=400)


class Timeline:
    """Fake send API plus sleep that record every call in order."""

    def __init__(self, fail_on_call: int | None = None):
        self.calls: list[tuple] = []
        self._fail_on_call = fail_on_call
        self._sends = 0
        self.api = Mock()
        self.api.send_text = AsyncMock(side_effect=self._send("text"))
        self.api.send_attachment = AsyncMock(side_effect=self._send("attachment"))
        self.api.reply_to_comment = AsyncMock(side_effect=self._send("reply"))

    def _send(self, name):
        async def _call(*args):
            self._sends += 1
            self.calls.append((name, *args))
            if self._fail_on_call == self._sends:
                return FAIL
            return OK

        return _call

    async def sleep(self, seconds):
        self.calls.append(("sleep", seconds))


def _dm_event():
    return DirectMessageEvent(
        sender_id="user-1", recipient_id="acct-1", message_id="mid.1", text="price?", timestamp=1700000000000
    )


def _comment_event():
    return CommentEvent(
        comment_id="c-1",
        media_id="media-1",
        from_user_id="user-2",
        from_username="buyer",
        text="price?",
        timestamp=1700000000,
    )


def _three_steps():
    return (
        SequenceStep(StepKind.TEXT, "Hi!", delay_seconds=0),
        SequenceStep(StepKind.IMAGE, "https://cdn.example.com/menu.png", delay_seconds=5),
        SequenceStep(StepKind.TEXT, "Anything else?", delay_seconds=10),
    )


class TestRunSequence:
    @pytest.mark.asyncio
    async def test_steps_sent_in_order_with_delays(self):
        timeline = Timeline()
        recipient = {"id": "user-1"}

        result = await run_sequence(timeline.api, recipient, _three_steps(), sleep_func=timeline.sleep)

        assert result.ok is True
        assert result.value == 3
        assert timeline.calls == [
            ("text", recipient, "Hi!"),
            ("sleep", 5),
            ("attachment", recipient, "image", "https://cdn.example.com/menu.png"),
            ("sleep", 10),
            ("text", recipient, "Anything else?"),
        ]

    @pytest.mark.asyncio
    async def test_zero_delay_never_sleeps(self):
        timeline = Timeline()
        steps = (SequenceStep(StepKind.TEXT, "a"), SequenceStep(StepKind.TEXT, "b"))

        await run_sequence(timeline.api, {"id": "u"}, steps, sleep_func=timeline.sleep)

        assert [call[0] for call in timeline.calls] == ["text", "text"]

    @pytest.mark.asyncio
    async def test_first_step_delay_counts_from_trigger(self):
        timeline = Timeline()
        steps = (SequenceStep(StepKind.TEXT, "late", delay_seconds=3),)

        await run_sequence(timeline.api, {"id": "u"}, steps, sleep_func=timeline.sleep)

        assert timeline.calls[0] == ("sleep", 3)

    @pytest.mark.asyncio
    async def test_failure_aborts_remaining_steps(self):
        timeline = Timeline(fail_on_call=2)

        result = await run_sequence(timeline.api, {"id": "u"}, _three_steps(), sleep_func=timeline.sleep)

        assert result.ok is False
        assert result.value == 1
        assert result.error_code == META_API_ERROR
        assert timeline.api.send_attachment.await_count == 1
        assert timeline.api.send_text.await_count == 1
        assert ("sleep", 10) not in timeline.calls


class TestDispatchDirect:
    @pytest.mark.asyncio
    async def test_text_reply_to_sender(self, rule_factory):
        timeline = Timeline()
        rule = rule_factory(direct_plan=TextPlan(text="10 USD"))

        result = await dispatch_automation(timeline.api, rule, _dm_event(), sleep_func=timeline.sleep)

        assert result.status == ResponseStatus.SENT
        assert result.response_text == "10 USD"
        timeline.api.send_text.assert_awaited_once_with({"id": "user-1"}, "10 USD")

    @pytest.mark.asyncio
    async def test_legacy_delay_before_text(self, rule_factory):
        timeline = Timeline()
        rule = rule_factory(direct_plan=TextPlan(text="10 USD"), delay_seconds=7)

        await dispatch_automation(timeline.api, rule, _dm_event(), sleep_func=timeline.sleep)

        assert timeline.calls[0] == ("sleep", 7)
        assert timeline.calls[1][0] == "text"

    @pytest.mark.asyncio
    async def test_sequence_ignores_legacy_delay(self, rule_factory):
        timeline = Timeline()
        rule = rule_factory(direct_plan=SequencePlan(steps=_three_steps()), delay_seconds=7)

        result = await dispatch_automation(timeline.api, rule, _dm_event(), sleep_func=timeline.sleep)

        assert result.status == ResponseStatus.SENT
        assert result.response_text is None
        assert result.steps_sent == 3
        assert ("sleep", 7) not in timeline.calls

    @pytest.mark.asyncio
    async def test_sequence_failure_is_failed(self, rule_factory):
        timeline = Timeline(fail_on_call=3)
        rule = rule_factory(direct_plan=SequencePlan(steps=_three_steps()))

        result = await dispatch_automation(timeline.api, rule, _dm_event(), sleep_func=timeline.sleep)

        assert result.status == ResponseStatus.FAILED
        assert result.steps_sent == 2
        assert result.error_code == META_API_ERROR

    @pytest.mark.asyncio
    async def test_text_failure_is_failed(self, rule_factory):
        timeline = Timeline(fail_on_call=1)
        rule = rule_factory(direct_plan=TextPlan(text="10 USD"))

        result = await dispatch_automation(timeline.api, rule, _dm_event(), sleep_func=timeline.sleep)

        assert result.status == ResponseStatus.FAILED
        assert result.ok is False

    @pytest.mark.asyncio
    async def test_comment_via_dm_goes_to_author(self, rule_factory):
        timeline = Timeline()
        rule = rule_factory(interaction_kind=InteractionKind.COMMENT, direct_plan=TextPlan(text="see DM"))

        await dispatch_automation(timeline.api, rule, _comment_event(), sleep_func=timeline.sleep)

        timeline.api.send_text.assert_awaited_once_with({"id": "user-2"}, "see DM")


class TestDispatchInPlace:
    @pytest.mark.asyncio
    async def test_reply_to_comment(self, rule_factory):
        timeline = Timeline()
        rule = rule_factory(
            interaction_kind=InteractionKind.COMMENT, response_kind=ResponseKind.COMMENT, reply_text="Thanks!"
        )

        result = await dispatch_automation(timeline.api, rule, _comment_event(), sleep_func=timeline.sleep)

        assert result.status == ResponseStatus.SENT
        assert result.response_text == "Thanks!"
        timeline.api.reply_to_comment.assert_awaited_once_with("c-1", "Thanks!")
        timeline.api.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reply_in_place_needs_comment_event(self, rule_factory):
        timeline = Timeline()
        rule = rule_factory(response_kind=ResponseKind.COMMENT, reply_text="Thanks!")

        result = await dispatch_automation(timeline.api, rule, _dm_event(), sleep_func=timeline.sleep)

        assert result.status == ResponseStatus.FAILED
        assert result.error_code == INVALID_RECIPIENT
        assert timeline.calls == []

    @pytest.mark.asyncio
    async def test_both_replies_then_dms_by_comment_id(self, rule_factory):
        timeline = Timeline()
        rule = rule_factory(
            interaction_kind=InteractionKind.COMMENT,
            response_kind=ResponseKind.COMMENT_AND_DM,
            reply_text="Sent you a DM",
            direct_plan=SequencePlan(steps=(SequenceStep(StepKind.TEXT, "Here it is", delay_seconds=2),)),
        )

        result = await dispatch_automation(timeline.api, rule, _comment_event(), sleep_func=timeline.sleep)

        assert result.status == ResponseStatus.SENT
        assert result.response_text == "Sent you a DM"
        assert timeline.calls == [
            ("reply", "c-1", "Sent you a DM"),
            ("sleep", 2),
            ("text", {"comment_id": "c-1"}, "Here it is"),
        ]

    @pytest.mark.asyncio
    async def test_both_stops_when_public_reply_fails(self, rule_factory):
        timeline = Timeline(fail_on_call=1)
        rule = rule_factory(
            interaction_kind=InteractionKind.COMMENT,
            response_kind=ResponseKind.COMMENT_AND_DM,
            reply_text="Sent you a DM",
            direct_plan=TextPlan(text="Here it is"),
        )

        result = await dispatch_automation(timeline.api, rule, _comment_event(), sleep_func=timeline.sleep)

        assert result.status == ResponseStatus.FAILED
        timeline.api.send_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_both_failed_dm_is_failed(self, rule_factory):
        timeline = Timeline(fail_on_call=2)
        rule = rule_factory(
            interaction_kind=InteractionKind.COMMENT,
            response_kind=ResponseKind.COMMENT_AND_DM,
            reply_text="Sent you a DM",
            direct_plan=TextPlan(text="Here it is"),
        )

        result = await dispatch_automation(timeline.api, rule, _comment_event(), sleep_func=timeline.sleep)

        assert result.status == ResponseStatus.FAILED
        assert result.steps_sent == 1
