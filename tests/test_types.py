"""
Tests for hook types and payloads.

Tests cover:
- EventKind / SourceTier parsing
- Payload serialization and validation
- Match subjects per event kind
- ResolvedAction factories
"""

import pytest

from hookchain.hooks import (
    ActionType,
    EventKind,
    PostOperationPayload,
    PreOperationPayload,
    PromptSubmitPayload,
    ResolvedAction,
    SessionStopPayload,
    SourceTier,
    SubAgentStopPayload,
    payload_from_dict,
)


class TestEventKind:

    def test_all_kinds_exist(self):
        assert EventKind.PreOperation.value == "pre_operation"
        assert EventKind.PostOperation.value == "post_operation"
        assert EventKind.SessionStop.value == "session_stop"
        assert EventKind.SubAgentStop.value == "sub_agent_stop"
        assert EventKind.PromptSubmit.value == "prompt_submit"
        assert len(EventKind) == 5

    def test_parse_name_or_value(self):
        assert EventKind.parse("PreOperation") is EventKind.PreOperation
        assert EventKind.parse("post_operation") is EventKind.PostOperation
        assert EventKind.parse(EventKind.SessionStop) is EventKind.SessionStop

    def test_parse_unknown(self):
        with pytest.raises(ValueError):
            EventKind.parse("BeforeTool")

    def test_blocking_kinds(self):
        assert EventKind.PreOperation.is_blocking
        assert EventKind.PromptSubmit.is_blocking
        assert not EventKind.PostOperation.is_blocking
        assert not EventKind.SessionStop.is_blocking
        assert not EventKind.SubAgentStop.is_blocking


class TestSourceTier:

    def test_ordering(self):
        assert SourceTier.Builtin < SourceTier.SetupManifest < SourceTier.AddonManifest < SourceTier.UserSettings

    def test_parse(self):
        assert SourceTier.parse("UserSettings") is SourceTier.UserSettings
        assert SourceTier.parse(0) is SourceTier.Builtin
        with pytest.raises(ValueError):
            SourceTier.parse("Global")


class TestPayloads:

    def test_pre_operation_to_dict(self):
        payload = PreOperationPayload(operation_name="Bash", parameters={"command": "ls"}, session_id="s1")
        data = payload.to_dict()
        assert data["event"] == "pre_operation"
        assert data["operation_name"] == "Bash"
        assert data["parameters"] == {"command": "ls"}
        assert data["session_id"] == "s1"

    def test_round_trip_from_dict(self):
        payload = PostOperationPayload(
            operation_name="Write",
            parameters={"path": "a.txt"},
            result={"status": "ok"},
            succeeded=True,
            duration_ms=12,
        )
        assert PostOperationPayload.from_dict(payload.to_dict()) == payload

    def test_missing_required_field(self):
        with pytest.raises(ValueError, match="operation_name"):
            PreOperationPayload.from_dict({"parameters": {}})

    def test_unknown_field(self):
        with pytest.raises(ValueError, match="colour: Extra inputs are not permitted"):
            PreOperationPayload.from_dict({"operation_name": "Bash", "parameters": {}, "colour": "red"})

    def test_wrong_type(self):
        with pytest.raises(ValueError, match="parameters"):
            PreOperationPayload.from_dict({"operation_name": "Bash", "parameters": "ls"})

    def test_no_coercion(self):
        with pytest.raises(ValueError, match="succeeded"):
            PostOperationPayload.from_dict({"operation_name": "Write", "parameters": {}, "succeeded": "yes"})
        with pytest.raises(ValueError, match="operation_name"):
            PreOperationPayload.from_dict({"operation_name": 7, "parameters": {}})

    def test_payloads_are_frozen(self):
        payload = PromptSubmitPayload(prompt="hi")
        with pytest.raises(ValueError):
            payload.prompt = "bye"

    def test_mismatched_event(self):
        with pytest.raises(ValueError, match="does not match"):
            PreOperationPayload.from_dict({"event": "post_operation", "operation_name": "Bash", "parameters": {}})

    def test_stop_reason_validated(self):
        assert SessionStopPayload.from_dict({"reason": "budget_exceeded"}).reason == "budget_exceeded"
        with pytest.raises(ValueError, match="reason"):
            SessionStopPayload.from_dict({"reason": "bored"})

    def test_replace_with(self):
        payload = PreOperationPayload(operation_name="Bash", parameters={"command": "rm -rf /"})
        modified = payload.replace_with({"parameters": {"command": "echo blocked"}})
        assert modified.parameters == {"command": "echo blocked"}
        assert modified.operation_name == "Bash"
        assert payload.parameters == {"command": "rm -rf /"}

    def test_payload_from_dict(self):
        payload = payload_from_dict(EventKind.PromptSubmit, {"prompt": "hello"})
        assert isinstance(payload, PromptSubmitPayload)
        assert payload.prompt == "hello"


class TestMatchSubject:

    def test_subjects(self):
        assert PreOperationPayload(operation_name="Bash", parameters={}).match_subject == "Bash"
        assert PostOperationPayload(operation_name="Write", parameters={}, succeeded=True).match_subject == "Write"
        assert SubAgentStopPayload(agent_type="explore", reason="complete").match_subject == "explore"
        assert SessionStopPayload(reason="timeout").match_subject == "timeout"
        assert PromptSubmitPayload(prompt="hi").match_subject == ""


class TestResolvedAction:

    def test_proceed(self):
        payload = PreOperationPayload(operation_name="Bash", parameters={})
        action = ResolvedAction.proceed(payload)
        assert action.action is ActionType.PROCEED
        assert action.allowed is True
        assert action.payload is payload

    def test_suppress(self):
        action = ResolvedAction.suppress("dangerous")
        assert action.allowed is False
        assert action.to_dict() == {"action": "suppress", "payload": None, "reason": "dangerous"}

    def test_abort(self):
        action = ResolvedAction.abort("boom")
        assert action.action is ActionType.ABORT
        assert action.reason == "boom"
