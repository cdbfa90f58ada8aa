"""Shared fixtures for the hookchain tests."""

import threading

import pytest

from hookchain.hooks import HandlerInvoker, HookManager, InvocationResult


class FakeInvoker(HandlerInvoker):
    """
    In-memory invoker that records every call.

    ``responses`` maps a handler path to an InvocationResult, or to a
    callable taking the payload dict and returning one. Unknown handlers
    exit 0 with no output.
    """

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []
        self._lock = threading.Lock()

    def invoke(self, handler_path, payload, timeout_ms, cancel_event=None):
        with self._lock:
            self.calls.append((handler_path, payload))
        response = self.responses.get(handler_path, InvocationResult(0, "", ""))
        if callable(response):
            return response(payload)
        return response

    def called(self):
        with self._lock:
            return [path for path, _ in self.calls]


def ok(stdout=""):
    return InvocationResult(exit_code=0, stdout=stdout, stderr="")


def exit_with(code, stderr=""):
    return InvocationResult(exit_code=code, stdout="", stderr=stderr)


@pytest.fixture
def make_handler(tmp_path):
    """Create an executable handler file and return its absolute path."""
    def _make(name, body="import sys\nsys.exit(0)\n"):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body)
        path.chmod(0o755)
        return str(path)
    return _make


@pytest.fixture
def fake_invoker():
    return FakeInvoker()


@pytest.fixture
def hook_manager(fake_invoker):
    """A HookManager that runs handlers through the FakeInvoker."""
    manager = HookManager(invoker=fake_invoker)
    yield manager
    manager.close(wait=True)
