"""
Handler invokers.

An invoker runs one external handler program: it writes the payload JSON to
the program's stdin, captures stdout/stderr and enforces a wall-clock
timeout. The dispatcher only talks to the ``HandlerInvoker`` interface, so
the process mechanism can be swapped (tests use in-memory fakes).
"""

import json
import os
import signal
import subprocess
import sys
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..logger import logger


# Seconds between cancellation checks while waiting on a handler
POLL_INTERVAL = 0.05

# Exit code reported when a handler could not be started at all
EXIT_NOT_STARTED = 127

INTERPRETERS: Dict[str, List[str]] = {
    ".py": [sys.executable],
    ".sh": ["bash"],
    ".js": ["node"],
    ".mjs": ["node"],
    ".cjs": ["node"],
    ".ts": ["bun"],
}


@dataclass
class InvocationResult:
    """Result of running one handler."""
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False
    cancelled: bool = False
    duration_ms: float = 0.0

    def to_json(self) -> dict:
        return {
            "exit_code": self.exit_code,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "timed_out": self.timed_out,
            "cancelled": self.cancelled,
            "duration_ms": round(self.duration_ms, 1),
        }


class HandlerInvoker(ABC):
    """Abstract base class for handler invokers."""

    @abstractmethod
    def invoke(
        self,
        handler_path: str,
        payload: Dict[str, Any],
        timeout_ms: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> InvocationResult:
        """
        Run a handler with ``payload`` on its input channel.

        Args:
            handler_path: Path of the handler program
            payload: JSON-serializable document for the handler's stdin
            timeout_ms: Wall-clock limit; the handler is killed when it expires
            cancel_event: When set, the handler is killed early

        Returns:
            Exit code and captured output of the handler
        """
        pass


def build_command(handler_path: str) -> List[str]:
    """Pick the command line for a handler based on its file extension."""
    _, ext = os.path.splitext(handler_path)
    interpreter = INTERPRETERS.get(ext.lower())
    if interpreter:
        return interpreter + [handler_path]
    return [handler_path]


class SubprocessInvoker(HandlerInvoker):
    """
    Run handlers as isolated local processes.

    On timeout or cancellation the process is killed and reaped, so no
    handler outlives the invocation that started it.
    """

    def __init__(self, cwd: Optional[str] = None, env: Optional[Dict[str, str]] = None):
        self.cwd = cwd
        self.env = env

    def invoke(
        self,
        handler_path: str,
        payload: Dict[str, Any],
        timeout_ms: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> InvocationResult:
        cmd = build_command(handler_path)
        payload_json = json.dumps(payload, default=str)
        started = time.monotonic()
        deadline = started + timeout_ms / 1000.0

        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                encoding="utf-8",
                errors="replace",
                cwd=self.cwd,
                env=self._build_env(),
                start_new_session=(os.name == "posix"),
            )
        except OSError as e:
            logger.error(f"[hooks] Could not start handler {handler_path}: {e}")
            return InvocationResult(
                exit_code=EXIT_NOT_STARTED,
                stdout="",
                stderr=str(e),
                duration_ms=(time.monotonic() - started) * 1000,
            )

        pending_input = payload_json
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                stdout, stderr = self._kill(proc)
                logger.warning(f"[hooks] Handler {handler_path} timed out after {timeout_ms}ms")
                return InvocationResult(
                    exit_code=proc.returncode,
                    stdout=stdout,
                    stderr=stderr,
                    timed_out=True,
                    duration_ms=(time.monotonic() - started) * 1000,
                )
            if cancel_event is not None and cancel_event.is_set():
                stdout, stderr = self._kill(proc)
                logger.info(f"[hooks] Handler {handler_path} cancelled")
                return InvocationResult(
                    exit_code=proc.returncode,
                    stdout=stdout,
                    stderr=stderr,
                    cancelled=True,
                    duration_ms=(time.monotonic() - started) * 1000,
                )

            wait = remaining if cancel_event is None else min(remaining, POLL_INTERVAL)
            try:
                # Input may only be passed on the first communicate() call
                stdout, stderr = proc.communicate(input=pending_input, timeout=wait)
            except subprocess.TimeoutExpired:
                pending_input = None
                continue

            return InvocationResult(
                exit_code=proc.returncode,
                stdout=stdout or "",
                stderr=stderr or "",
                duration_ms=(time.monotonic() - started) * 1000,
            )

    def _build_env(self) -> Optional[Dict[str, str]]:
        if self.env is None:
            return None
        env = dict(os.environ)
        env.update(self.env)
        return env

    @staticmethod
    def _kill(proc: subprocess.Popen):
        """Kill a handler (and anything it spawned) and collect its output."""
        if os.name == "posix":
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError):
                proc.kill()
        else:
            proc.kill()
        stdout, stderr = proc.communicate()
        return stdout or "", stderr or ""
