"""
Hook Manager for the hooks engine.

The HookManager ties the pieces together: it loads the configuration
sources into a registry, composes them into a snapshot, dispatches events
through the chain and resolves the outcome into an action for the caller.
"""

import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .composer import HookSnapshot, SnapshotStore
from .dispatcher import Dispatcher
from .invoker import HandlerInvoker, InvocationResult, SubprocessInvoker
from .loader import HookSources, load_registry
from .matcher import describe_pattern
from .registry import HookRegistry, RawHook
from .resolver import resolve
from .types import (
    ChainOutcome,
    EventKind,
    EventPayload,
    HookDefinition,
    HookDiagnostic,
    ResolvedAction,
    SourceTier,
)
from ..logger import logger


class HookManager:
    """
    Manages hook configuration and dispatch for the agent.

    The HookManager provides methods to:
    - Load hooks from the four configuration sources (and reload them)
    - Trigger an event and get back the action to take
    - Inspect the effective hooks and why others were excluded
    - Run a single handler directly with synthetic input

    Example:
        hooks = HookManager(HookSources(user_settings="~/.hookchain/settings.yaml"))
        hooks.load()

        action = hooks.trigger(PreOperationPayload(operation_name="Bash", parameters={"command": "rm -rf /"}))
        if not action.allowed:
            print(action.reason)
    """

    def __init__(
        self,
        sources: Optional[HookSources] = None,
        invoker: Optional[HandlerInvoker] = None,
        max_background_workers: int = 4,
    ):
        """
        Initialize the hook manager.

        Args:
            sources: Configuration source locations (default: none)
            invoker: How handlers are run (default: local subprocesses)
            max_background_workers: Thread pool size for async hooks
        """
        self.sources = sources or HookSources()
        self.invoker = invoker or SubprocessInvoker()
        self._store = SnapshotStore()
        self._reload_lock = threading.Lock()
        self.dispatcher = Dispatcher(self._store, self.invoker, max_background_workers)

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load(self) -> HookSnapshot:
        """
        Load every configuration source and install a new snapshot.

        Dispatches already running keep the snapshot they started with.
        """
        with self._reload_lock:
            registry = load_registry(self.sources)
            snapshot = self._store.rebuild(registry)
        self._log_diagnostics(snapshot)
        return snapshot

    def reload(self) -> HookSnapshot:
        """Reload configuration from the same sources."""
        logger.info("[hooks] Reloading hook configuration")
        return self.load()

    def load_records(
        self,
        records: Mapping[SourceTier, Iterable[RawHook]],
        base_dir: Optional[str] = None,
    ) -> HookSnapshot:
        """
        Install a snapshot built from in-memory records instead of files.

        Args:
            records: Raw hook records per source tier
            base_dir: Directory relative handler paths are resolved against
        """
        with self._reload_lock:
            registry = HookRegistry()
            for tier in sorted(records, key=int):
                registry.register(tier, records[tier], base_dir=base_dir)
            snapshot = self._store.rebuild(registry)
        self._log_diagnostics(snapshot)
        return snapshot

    @property
    def snapshot(self) -> HookSnapshot:
        return self._store.current()

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def dispatch(
        self,
        payload: EventPayload,
        cancel_event: Optional[threading.Event] = None,
    ) -> ChainOutcome:
        """Run the chain for ``payload`` and return the raw outcome."""
        return self.dispatcher.dispatch(payload, cancel_event)

    def trigger(
        self,
        payload: EventPayload,
        cancel_event: Optional[threading.Event] = None,
    ) -> ResolvedAction:
        """
        Trigger the hooks for an event.

        Args:
            payload: The event occurrence
            cancel_event: Set it to cancel the triggering operation

        Returns:
            PROCEED (with the payload to use), SUPPRESS or ABORT
        """
        outcome = self.dispatcher.dispatch(payload, cancel_event)
        return resolve(outcome, payload)

    def test_handler(
        self,
        handler_path: str,
        payload: EventPayload,
        timeout_ms: int = 10_000,
    ) -> InvocationResult:
        """Invoke one handler directly, bypassing composition and the chain."""
        return self.invoker.invoke(handler_path, payload.to_dict(), timeout_ms)

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    def has_hooks(self, kind: EventKind) -> bool:
        """Check if any hooks are composed for an event kind."""
        return len(self.snapshot.hooks_for(kind)) > 0

    def list_hooks(
        self,
        kind: Optional[EventKind] = None,
        source: Optional[SourceTier] = None,
        name: Optional[str] = None,
    ) -> Dict[str, List[HookDefinition]]:
        """
        List effective hooks in execution order.

        Args:
            kind: Optional event kind to filter by
            source: Only hooks registered by this source tier
            name: Only hooks with this name

        Returns:
            Dictionary of event value -> ordered hook definitions
        """
        snapshot = self.snapshot
        kinds = [kind] if kind else list(EventKind)
        result = {}
        for k in kinds:
            hooks = [
                h for h in snapshot.hooks_for(k)
                if (source is None or h.source_tier is source) and (name is None or h.name == name)
            ]
            if hooks:
                result[k.value] = hooks
        return result

    def explain(self, kind: EventKind, subject: str) -> List[Dict[str, Any]]:
        """
        Explain the match order for an operation name.

        Returns:
            One entry per effective hook, in execution order, with its
            matcher form and whether it matches ``subject``
        """
        entries = []
        position = 0
        for hook in self.snapshot.hooks_for(kind):
            matched = hook.matches(subject)
            if matched:
                position += 1
            entries.append({
                'hook': hook,
                'form': describe_pattern(hook.matcher_pattern),
                'matches': matched,
                'position': position if matched else None,
            })
        return entries

    def diagnostics(self) -> List[HookDiagnostic]:
        """Every exclusion recorded for the current snapshot."""
        return list(self.snapshot.diagnostics)

    def close(self, wait: bool = True) -> None:
        """Stop the async hook pool."""
        self.dispatcher.close(wait=wait)

    def _log_diagnostics(self, snapshot: HookSnapshot) -> None:
        if snapshot.diagnostics:
            logger.info(f"[hooks] {len(snapshot.diagnostics)} hook definitions excluded; run 'doctor' for details")
