"""
Tests for chain dispatch.

Tests cover:
- No matching hooks -> Continue with the payload unchanged
- Short circuit on Skip / Modify / Error (later hooks never run)
- Exit code classification
- Modify output parsing
- Async hooks
- Cancellation
- Snapshot swap while a dispatch is running
"""

import json
import threading

from hookchain.hooks import (
    ChainError,
    Dispatcher,
    HandlerCancelled,
    HandlerCrash,
    HandlerTimeout,
    HookRegistry,
    InvocationResult,
    OutcomeKind,
    PreOperationPayload,
    SnapshotStore,
    SourceTier,
)

from conftest import FakeInvoker, exit_with, ok


BASH = PreOperationPayload(operation_name="Bash", parameters={"command": "ls"})


def _hooks(*records):
    return {SourceTier.UserSettings: [dict({"event": "PreOperation"}, **record) for record in records]}


class TestNoMatch:

    def test_no_hooks(self, hook_manager, fake_invoker):
        outcome = hook_manager.dispatch(BASH)

        assert outcome.kind is OutcomeKind.CONTINUE
        assert outcome.payload is BASH
        assert fake_invoker.calls == []

    def test_non_matching_hooks_not_invoked(self, hook_manager, fake_invoker, make_handler):
        handler = make_handler("write_guard.py")
        hook_manager.load_records(_hooks({"matcher": "Write", "handler": handler}))

        outcome = hook_manager.dispatch(BASH)

        assert outcome.kind is OutcomeKind.CONTINUE
        assert outcome.payload == BASH
        assert fake_invoker.calls == []


class TestChain:

    def test_all_continue(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        b = make_handler("b.py")
        hook_manager.load_records(_hooks({"handler": a}, {"handler": b, "priority": 1}))

        outcome = hook_manager.dispatch(BASH)

        assert outcome.kind is OutcomeKind.CONTINUE
        assert outcome.invoked == 2
        assert fake_invoker.called() == [b, a]

    def test_skip_stops_chain(self, hook_manager, fake_invoker, make_handler):
        high = make_handler("high.py")
        mid = make_handler("mid.py")
        low = make_handler("low.py")
        fake_invoker.responses[mid] = exit_with(2, "destructive command")
        hook_manager.load_records(_hooks(
            {"matcher": "Bash", "handler": low, "priority": -100},
            {"matcher": "Bash", "handler": high, "priority": 100},
            {"matcher": "Bash", "handler": mid, "priority": 50},
        ))

        outcome = hook_manager.dispatch(BASH)

        assert fake_invoker.called() == [high, mid]
        assert outcome.kind is OutcomeKind.SKIP
        assert outcome.reason == "destructive command"
        assert outcome.hook.handler_path == mid
        assert outcome.invoked == 2

    def test_skip_reason_falls_back_to_stdout(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        fake_invoker.responses[a] = InvocationResult(exit_code=2, stdout="not allowed\n", stderr="")
        hook_manager.load_records(_hooks({"handler": a}))

        assert hook_manager.dispatch(BASH).reason == "not allowed"

    def test_error_stops_chain(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        b = make_handler("b.py")
        fake_invoker.responses[a] = exit_with(1, "policy check failed")
        hook_manager.load_records(_hooks({"handler": a, "priority": 1}, {"handler": b}))

        outcome = hook_manager.dispatch(BASH)

        assert outcome.kind is OutcomeKind.ERROR
        assert isinstance(outcome.error, ChainError)
        assert "policy check failed" in outcome.reason
        assert fake_invoker.called() == [a]

    def test_unexpected_exit_code_is_crash(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        fake_invoker.responses[a] = exit_with(139, "segfault")
        hook_manager.load_records(_hooks({"handler": a}))

        outcome = hook_manager.dispatch(BASH)

        assert outcome.kind is OutcomeKind.ERROR
        assert isinstance(outcome.error, HandlerCrash)
        assert "139" in outcome.reason

    def test_invoker_exception_is_crash(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        b = make_handler("b.py")

        def broken(payload):
            raise UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

        fake_invoker.responses[a] = broken
        hook_manager.load_records(_hooks({"handler": a, "priority": 1}, {"handler": b}))

        outcome = hook_manager.dispatch(BASH)

        assert outcome.kind is OutcomeKind.ERROR
        assert isinstance(outcome.error, HandlerCrash)
        assert "invocation failed" in outcome.reason
        assert outcome.invoked == 1
        assert fake_invoker.called() == [a]

    def test_timeout_is_error(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        b = make_handler("b.py")
        fake_invoker.responses[a] = InvocationResult(exit_code=-9, stdout="", stderr="", timed_out=True)
        hook_manager.load_records(_hooks({"handler": a, "priority": 1, "timeout_ms": 50}, {"handler": b}))

        outcome = hook_manager.dispatch(BASH)

        assert outcome.kind is OutcomeKind.ERROR
        assert isinstance(outcome.error, HandlerTimeout)
        assert "50ms" in outcome.reason
        assert fake_invoker.called() == [a]


class TestModify:

    def test_modify_replaces_payload_and_stops(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        b = make_handler("b.py")
        fake_invoker.responses[a] = ok(json.dumps({"parameters": {"command": "ls -la"}}))
        hook_manager.load_records(_hooks({"handler": a, "priority": 1}, {"handler": b}))

        outcome = hook_manager.dispatch(BASH)

        assert outcome.kind is OutcomeKind.MODIFY
        assert outcome.payload.parameters == {"command": "ls -la"}
        assert outcome.payload.operation_name == "Bash"
        assert fake_invoker.called() == [a]

    def test_handler_sees_original_payload(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        hook_manager.load_records(_hooks({"handler": a}))

        hook_manager.dispatch(BASH)

        _, payload = fake_invoker.calls[0]
        assert payload["event"] == "pre_operation"
        assert payload["operation_name"] == "Bash"
        assert payload["parameters"] == {"command": "ls"}

    def test_malformed_json_is_error(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        fake_invoker.responses[a] = ok("this is not json")
        hook_manager.load_records(_hooks({"handler": a}))

        outcome = hook_manager.dispatch(BASH)

        assert outcome.kind is OutcomeKind.ERROR
        assert isinstance(outcome.error, HandlerCrash)
        assert "malformed modify output" in outcome.reason

    def test_modify_with_unknown_field_is_error(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        fake_invoker.responses[a] = ok(json.dumps({"bogus": 1}))
        hook_manager.load_records(_hooks({"handler": a}))

        outcome = hook_manager.dispatch(BASH)

        assert outcome.kind is OutcomeKind.ERROR
        assert isinstance(outcome.error, HandlerCrash)
        assert "bogus: Extra inputs are not permitted" in outcome.reason

    def test_modify_with_wrong_type_is_error(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        fake_invoker.responses[a] = ok(json.dumps({"parameters": "rm -rf /"}))
        hook_manager.load_records(_hooks({"handler": a}))

        outcome = hook_manager.dispatch(BASH)

        assert isinstance(outcome.error, HandlerCrash)
        assert "parameters" in outcome.reason

    def test_modify_with_non_object_is_error(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        fake_invoker.responses[a] = ok("[1, 2]")
        hook_manager.load_records(_hooks({"handler": a}))

        assert hook_manager.dispatch(BASH).kind is OutcomeKind.ERROR

    def test_whitespace_output_is_continue(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        fake_invoker.responses[a] = ok("  \n")
        hook_manager.load_records(_hooks({"handler": a}))

        assert hook_manager.dispatch(BASH).kind is OutcomeKind.CONTINUE


class TestAsyncHooks:

    def test_async_hook_does_not_affect_outcome(self, hook_manager, fake_invoker, make_handler):
        background = make_handler("audit.py")
        blocking = make_handler("guard.py")
        fake_invoker.responses[background] = exit_with(2, "ignored")
        hook_manager.load_records(_hooks(
            {"handler": background, "async": True, "priority": 10},
            {"handler": blocking},
        ))

        outcome = hook_manager.dispatch(BASH)
        assert hook_manager.dispatcher.wait_for_background(timeout=5)

        assert outcome.kind is OutcomeKind.CONTINUE
        assert outcome.invoked == 1
        assert sorted(fake_invoker.called()) == sorted([background, blocking])

    def test_async_hook_after_termination_not_started(self, hook_manager, fake_invoker, make_handler):
        blocker = make_handler("blocker.py")
        background = make_handler("audit.py")
        fake_invoker.responses[blocker] = exit_with(2, "no")
        hook_manager.load_records(_hooks(
            {"handler": blocker, "priority": 10},
            {"handler": background, "async": True},
        ))

        hook_manager.dispatch(BASH)
        hook_manager.dispatcher.wait_for_background(timeout=5)

        assert fake_invoker.called() == [blocker]


class TestCancellation:

    def test_cancelled_before_start(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        hook_manager.load_records(_hooks({"handler": a}))
        cancel = threading.Event()
        cancel.set()

        outcome = hook_manager.dispatch(BASH, cancel_event=cancel)

        assert outcome.kind is OutcomeKind.ERROR
        assert isinstance(outcome.error, HandlerCancelled)
        assert fake_invoker.calls == []

    def test_cancelled_while_running(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        b = make_handler("b.py")
        cancel = threading.Event()

        def cancelled_run(payload):
            cancel.set()
            return InvocationResult(exit_code=-9, stdout="", stderr="", cancelled=True)

        fake_invoker.responses[a] = cancelled_run
        hook_manager.load_records(_hooks({"handler": a, "priority": 1}, {"handler": b}))

        outcome = hook_manager.dispatch(BASH, cancel_event=cancel)

        assert isinstance(outcome.error, HandlerCancelled)
        assert fake_invoker.called() == [a]


class TestSnapshotSwap:

    def test_running_dispatch_keeps_its_snapshot(self, make_handler):
        first = make_handler("first.py")
        second = make_handler("second.py")
        late = make_handler("late.py")
        store = SnapshotStore()

        old = HookRegistry()
        old.register(SourceTier.UserSettings, [
            {"event": "PreOperation", "handler": first, "priority": 1},
            {"event": "PreOperation", "handler": second},
        ])
        store.rebuild(old)

        new = HookRegistry()
        new.register(SourceTier.UserSettings, [{"event": "PreOperation", "handler": late}])

        def reload_mid_chain(payload):
            store.rebuild(new)
            return ok()

        invoker = FakeInvoker({first: reload_mid_chain})
        dispatcher = Dispatcher(store, invoker)
        try:
            dispatcher.dispatch(BASH)
            assert invoker.called() == [first, second]

            dispatcher.dispatch(BASH)
            assert invoker.called() == [first, second, late]
        finally:
            dispatcher.close()

    def test_concurrent_dispatches(self, hook_manager, fake_invoker, make_handler):
        a = make_handler("a.py")
        hook_manager.load_records(_hooks({"handler": a}))
        results = []

        def run():
            results.append(hook_manager.dispatch(BASH).kind)

        threads = [threading.Thread(target=run) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results == [OutcomeKind.CONTINUE] * 8
        assert len(fake_invoker.calls) == 8
