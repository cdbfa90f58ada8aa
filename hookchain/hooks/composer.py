"""
Hook Composer.

Merges the registry's definitions from all sources into one ordered
EffectiveHookSet per event kind, and keeps the current composed snapshot.

Ordering is (priority DESC, source_tier DESC, registration_index ASC): an
explicit priority always wins, and on equal priority the source closest to
the end user runs first.
"""

import itertools
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .registry import HookRegistry
from .types import EffectiveHookSet, EventKind, HookDefinition, HookDiagnostic
from ..logger import logger


def _dedupe(definitions: Iterable[HookDefinition]) -> Tuple[List[HookDefinition], List[HookDiagnostic]]:
    """
    Collapse records that point the same handler at the same matcher.

    The highest source tier wins; within one tier the first registration wins.
    """
    kept: Dict[Tuple[str, str], HookDefinition] = {}
    shadowed: List[HookDiagnostic] = []

    for definition in sorted(definitions, key=lambda d: (-int(d.source_tier), d.registration_index)):
        key = (definition.handler_path, definition.matcher_pattern)
        winner = kept.get(key)
        if winner is None:
            kept[key] = definition
            continue
        shadowed.append(HookDiagnostic(
            source_tier=definition.source_tier,
            event=definition.event.value,
            matcher_pattern=definition.matcher_pattern,
            handler_path=definition.handler_path,
            reason=f"duplicate of the {winner.source_tier.name} definition",
            error_type="Duplicate",
        ))

    return list(kept.values()), shadowed


def compose_with_diagnostics(
    definitions: Iterable[HookDefinition],
    kind: EventKind,
) -> Tuple[EffectiveHookSet, List[HookDiagnostic]]:
    """Compose one event kind and report what was left out and why."""
    for_kind = [d for d in definitions if d.event is kind]
    unique, diagnostics = _dedupe(for_kind)

    enabled = []
    for definition in unique:
        if definition.enabled:
            enabled.append(definition)
        else:
            diagnostics.append(HookDiagnostic(
                source_tier=definition.source_tier,
                event=definition.event.value,
                matcher_pattern=definition.matcher_pattern,
                handler_path=definition.handler_path,
                reason="disabled",
                error_type="Disabled",
            ))

    enabled.sort(key=lambda d: d.sort_key)
    return EffectiveHookSet(kind=kind, hooks=tuple(enabled)), diagnostics


def compose(definitions: Iterable[HookDefinition], kind: EventKind) -> EffectiveHookSet:
    """
    Build the effective hook set for one event kind.

    Args:
        definitions: Validated definitions from every source
        kind: The event kind to compose

    Returns:
        Enabled, deduplicated hooks in execution order
    """
    effective, _ = compose_with_diagnostics(definitions, kind)
    return effective


@dataclass(frozen=True)
class HookSnapshot:
    """
    Immutable result of composing every event kind once.

    Shared read-only by all dispatches until the next reload replaces it.
    """
    version: int
    sets: Mapping[EventKind, EffectiveHookSet] = field(default_factory=lambda: MappingProxyType({}))
    diagnostics: Tuple[HookDiagnostic, ...] = ()

    def hooks_for(self, kind: EventKind) -> EffectiveHookSet:
        return self.sets.get(kind) or EffectiveHookSet(kind=kind)

    @property
    def hook_count(self) -> int:
        return sum(len(s) for s in self.sets.values())


def compose_all(registry: HookRegistry, version: int = 0) -> HookSnapshot:
    """
    Compose every event kind from a registry into a new snapshot.

    Args:
        registry: Registry holding all sources' definitions
        version: Version number for the snapshot

    Returns:
        A frozen HookSnapshot including registry and composition diagnostics
    """
    definitions = registry.definitions()
    diagnostics: List[HookDiagnostic] = registry.diagnostics()
    sets: Dict[EventKind, EffectiveHookSet] = {}

    for kind in EventKind:
        effective, excluded = compose_with_diagnostics(definitions, kind)
        sets[kind] = effective
        diagnostics.extend(excluded)

    snapshot = HookSnapshot(
        version=version,
        sets=MappingProxyType(sets),
        diagnostics=tuple(diagnostics),
    )
    logger.debug(f"[hooks] Composed snapshot v{version}: {snapshot.hook_count} hooks, {len(diagnostics)} diagnostics")
    return snapshot


class SnapshotStore:
    """
    Holds the current HookSnapshot.

    Readers take ``current()`` once per dispatch and keep that reference,
    so a concurrent ``swap()`` never changes a dispatch already running.
    """

    def __init__(self, snapshot: Optional[HookSnapshot] = None):
        self._lock = threading.Lock()
        self._versions = itertools.count(1)
        self._snapshot = snapshot or HookSnapshot(version=0, sets=MappingProxyType({}))

    def current(self) -> HookSnapshot:
        return self._snapshot

    def next_version(self) -> int:
        with self._lock:
            return next(self._versions)

    def swap(self, snapshot: HookSnapshot) -> HookSnapshot:
        """Install a new snapshot and return the previous one."""
        with self._lock:
            previous, self._snapshot = self._snapshot, snapshot
        logger.info(f"[hooks] Installed hook snapshot v{snapshot.version} ({snapshot.hook_count} hooks)")
        return previous

    def rebuild(self, registry: HookRegistry) -> HookSnapshot:
        """Compose ``registry`` into a new snapshot and swap it in."""
        snapshot = compose_all(registry, version=self.next_version())
        self.swap(snapshot)
        return snapshot
