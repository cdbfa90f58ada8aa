"""
Hook Dispatcher.

Runs the composed chain for one event occurrence. Blocking hooks run one
after another in priority order and the first Skip, Modify or Error ends
the chain. Async hooks are handed to a background pool and never waited on.

Handler exit codes:
    0 = continue (stdout may carry a JSON document that modifies the payload)
    1 = error, abort the chain
    2 = skip / suppress the operation
    anything else, or a timeout = error
"""

import json
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional, Set

from .composer import SnapshotStore
from .errors import ChainError, HandlerCancelled, HandlerCrash, HandlerTimeout
from .invoker import HandlerInvoker, InvocationResult, SubprocessInvoker
from .types import ChainOutcome, EventPayload, HookDefinition
from ..logger import logger


EXIT_CONTINUE = 0
EXIT_ERROR = 1
EXIT_SKIP = 2


class Dispatcher:
    """
    Executes hook chains against event payloads.

    Example:
        dispatcher = Dispatcher(store, SubprocessInvoker())
        outcome = dispatcher.dispatch(PreOperationPayload(operation_name="Bash", parameters={"command": "ls"}))
    """

    def __init__(
        self,
        store: SnapshotStore,
        invoker: Optional[HandlerInvoker] = None,
        max_background_workers: int = 4,
    ):
        """
        Initialize the dispatcher.

        Args:
            store: Holder of the current composed snapshot
            invoker: How handlers are run (default: local subprocesses)
            max_background_workers: Thread pool size for async hooks
        """
        self.store = store
        self.invoker = invoker or SubprocessInvoker()
        self._background = ThreadPoolExecutor(
            max_workers=max_background_workers,
            thread_name_prefix="hookchain-async",
        )
        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()

    def dispatch(
        self,
        payload: EventPayload,
        cancel_event: Optional[threading.Event] = None,
    ) -> ChainOutcome:
        """
        Run every matching hook for ``payload`` and return the chain outcome.

        Args:
            payload: The event occurrence
            cancel_event: Set by the caller to cancel the triggering operation

        Returns:
            CONTINUE with the original payload when no hook ends the chain,
            otherwise the terminating SKIP / MODIFY / ERROR outcome
        """
        snapshot = self.store.current()
        effective = snapshot.hooks_for(payload.kind)
        matching = effective.matching(payload.match_subject)

        if not matching:
            logger.debug(f"[hooks] No {payload.kind.value} hooks match {payload.match_subject!r}")
            return ChainOutcome.continued(payload)

        logger.debug(
            f"[hooks] Dispatching {payload.kind.value} for {payload.match_subject!r}: "
            f"{len(matching)} hooks (snapshot v{snapshot.version})"
        )

        current = payload
        invoked = 0
        for hook in matching:
            if hook.is_async:
                self._fire_async(hook, current)
                continue

            if cancel_event is not None and cancel_event.is_set():
                return ChainOutcome.failed(HandlerCancelled(hook, "operation cancelled before handler started"), invoked)

            invoked += 1
            try:
                result = self.invoker.invoke(hook.handler_path, current.to_dict(), hook.timeout_ms, cancel_event)
            except Exception as e:
                logger.error(f"[hooks] Invoking {hook.describe()} failed: {e}")
                return ChainOutcome.failed(HandlerCrash(hook, f"invocation failed: {e}"), invoked)

            if result.stderr.strip():
                logger.debug(f"[hooks] {hook.describe()} stderr: {result.stderr.strip()}")

            outcome = self._classify(hook, current, result, invoked)
            if outcome is not None:
                logger.debug(f"[hooks] Chain ended by {hook.describe()}: {outcome.kind.value}")
                return outcome

        return ChainOutcome.continued(payload, invoked)

    def _classify(
        self,
        hook: HookDefinition,
        current: EventPayload,
        result: InvocationResult,
        invoked: int,
    ) -> Optional[ChainOutcome]:
        """Turn one invocation result into a terminating outcome, or None to continue."""
        if result.cancelled:
            return ChainOutcome.failed(HandlerCancelled(hook, result.stderr), invoked)

        if result.timed_out:
            return ChainOutcome.failed(
                HandlerTimeout(hook, f"exceeded {hook.timeout_ms}ms"),
                invoked,
            )

        if result.exit_code == EXIT_CONTINUE:
            output = result.stdout.strip()
            if not output:
                return None
            try:
                changes = json.loads(output)
                if not isinstance(changes, dict):
                    raise ValueError(f"expected a JSON object, got {type(changes).__name__}")
                modified = current.replace_with(changes)
            except (ValueError, TypeError) as e:
                return ChainOutcome.failed(
                    HandlerCrash(hook, f"malformed modify output: {e}"),
                    invoked,
                )
            return ChainOutcome.modified(modified, hook, invoked)

        if result.exit_code == EXIT_SKIP:
            reason = result.stderr.strip() or result.stdout.strip() or f"skipped by {hook.handler_path}"
            return ChainOutcome.skipped(reason, hook, invoked)

        if result.exit_code == EXIT_ERROR:
            return ChainOutcome.failed(ChainError(hook, result.stderr or result.stdout), invoked)

        return ChainOutcome.failed(
            HandlerCrash(hook, f"unexpected exit code {result.exit_code}: {result.stderr}"),
            invoked,
        )

    def _fire_async(self, hook: HookDefinition, payload: EventPayload) -> None:
        """Start an async hook without waiting for it."""
        logger.debug(f"[hooks] Starting async hook {hook.describe()}")
        try:
            future = self._background.submit(
                self.invoker.invoke, hook.handler_path, payload.to_dict(), hook.timeout_ms
            )
        except RuntimeError as e:
            # Pool already shut down
            logger.error(f"[hooks] Async hook {hook.describe()} not started: {e}")
            return

        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(lambda f: self._async_done(hook, f))

    def _async_done(self, hook: HookDefinition, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)
        try:
            result = future.result()
        except Exception as e:
            logger.error(f"[hooks] Async hook {hook.describe()} failed: {e}")
            return

        if result.timed_out:
            logger.warning(f"[hooks] Async hook {hook.describe()} timed out after {hook.timeout_ms}ms")
        elif result.exit_code != EXIT_CONTINUE:
            detail = result.stderr.strip()
            logger.warning(f"[hooks] Async hook {hook.describe()} exited with {result.exit_code}: {detail}")
        else:
            logger.debug(f"[hooks] Async hook {hook.describe()} finished")

    def wait_for_background(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for running async hooks to finish.

        Returns:
            True if every async hook finished within ``timeout``
        """
        with self._pending_lock:
            pending = list(self._pending)
        done = True
        for future in pending:
            try:
                future.result(timeout=timeout)
            except Exception:
                # Failures are already logged by the done callback
                done = done and future.done()
        return done

    def close(self, wait: bool = True) -> None:
        """Shut down the async hook pool."""
        self._background.shutdown(wait=wait)
