"""
Hook types and data structures for the hooks engine.

Event payloads are what handlers receive on stdin. Definitions, outcomes and
resolved actions are immutable so a composed snapshot can be shared between
concurrent dispatches without locking.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any, ClassVar, Dict, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import DispatchError, validation_summary
from .matcher import compile_matcher


DEFAULT_TIMEOUT_MS = 10_000


class EventKind(Enum):
    """
    Event kinds that can trigger hook evaluation.

    - PreOperation: Before an operation (tool call) executes
    - PostOperation: After an operation completes
    - SessionStop: When the agent session ends
    - SubAgentStop: When a sub-agent finishes
    - PromptSubmit: When a user prompt is submitted, before it reaches the model
    """
    PreOperation = "pre_operation"
    PostOperation = "post_operation"
    SessionStop = "session_stop"
    SubAgentStop = "sub_agent_stop"
    PromptSubmit = "prompt_submit"

    @property
    def is_blocking(self) -> bool:
        """Blocking kinds gate an action that has not happened yet."""
        return self in (EventKind.PreOperation, EventKind.PromptSubmit)

    @classmethod
    def parse(cls, value: Any) -> "EventKind":
        """Parse an event kind from its member name or value."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            text = value.strip()
            if text in cls.__members__:
                return cls[text]
            for kind in cls:
                if kind.value == text:
                    return kind
        raise ValueError(f"Unknown event kind: {value!r}")


class SourceTier(IntEnum):
    """Configuration origin of a hook. Higher tiers win ties."""
    Builtin = 0
    SetupManifest = 1
    AddonManifest = 2
    UserSettings = 3

    @classmethod
    def parse(cls, value: Any) -> "SourceTier":
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        if isinstance(value, str) and value in cls.__members__:
            return cls[value]
        raise ValueError(f"Unknown source tier: {value!r}")


# =============================================================================
# Event payloads
# =============================================================================

StopReason = Literal["complete", "error", "user_cancel", "timeout", "budget_exceeded"]


class EventPayload(BaseModel):
    """
    Base class for event payloads.

    Payloads are immutable and strictly typed: unknown fields are rejected
    and values are never coerced, so a handler's modified payload either
    matches the schema exactly or is treated as malformed.
    """
    model_config = ConfigDict(extra="forbid", frozen=True, strict=True)

    kind: ClassVar[EventKind]

    @property
    def match_subject(self) -> str:
        """The name matchers are tested against."""
        return ""

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the document written to a handler's stdin."""
        data: Dict[str, Any] = {"event": self.kind.value}
        data.update(self.model_dump())
        return data

    def replace_with(self, changes: Dict[str, Any]) -> "EventPayload":
        """Return a new payload with ``changes`` merged over this one."""
        data = self.to_dict()
        data.update(changes)
        return type(self).from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EventPayload":
        """
        Build and validate a payload from a JSON document.

        Raises:
            ValueError: If the document is not a valid payload for this kind
        """
        if not isinstance(data, dict):
            raise ValueError(f"payload must be a JSON object, got {type(data).__name__}")

        values = dict(data)
        event = values.pop("event", cls.kind.value)
        if event not in (cls.kind.value, cls.kind.name):
            raise ValueError(f"payload event {event!r} does not match {cls.kind.value!r}")

        try:
            return cls.model_validate(values)
        except ValidationError as e:
            raise ValueError(f"invalid {cls.kind.value} payload: {validation_summary(e)}") from e


class PreOperationPayload(EventPayload):
    """Payload for PreOperation: the operation about to run."""
    kind: ClassVar[EventKind] = EventKind.PreOperation

    operation_name: str
    parameters: Dict[str, Any]
    session_id: Optional[str] = None
    agent_type: Optional[str] = None
    timestamp: Optional[str] = None

    @property
    def match_subject(self) -> str:
        return self.operation_name


class PostOperationPayload(PreOperationPayload):
    """Payload for PostOperation: the operation plus how it went."""
    kind: ClassVar[EventKind] = EventKind.PostOperation

    succeeded: bool
    result: Any = None
    error_message: Optional[str] = None
    duration_ms: Optional[float] = None


class SessionStopPayload(EventPayload):
    """Payload for SessionStop."""
    kind: ClassVar[EventKind] = EventKind.SessionStop

    reason: StopReason
    message: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    stats: Optional[Dict[str, Any]] = None
    session_id: Optional[str] = None
    timestamp: Optional[str] = None

    @property
    def match_subject(self) -> str:
        return self.reason


class SubAgentStopPayload(EventPayload):
    """Payload for SubAgentStop. Matchers see the sub-agent type."""
    kind: ClassVar[EventKind] = EventKind.SubAgentStop

    agent_type: str
    reason: StopReason
    agent_id: Optional[str] = None
    message: Optional[str] = None
    result: Any = None
    error: Optional[Dict[str, Any]] = None
    stats: Optional[Dict[str, Any]] = None
    session_id: Optional[str] = None
    timestamp: Optional[str] = None

    @property
    def match_subject(self) -> str:
        return self.agent_type


class PromptSubmitPayload(EventPayload):
    """Payload for PromptSubmit. Only the ``*`` matcher applies."""
    kind: ClassVar[EventKind] = EventKind.PromptSubmit

    prompt: str
    session_id: Optional[str] = None
    timestamp: Optional[str] = None


PAYLOAD_TYPES: Dict[EventKind, Type[EventPayload]] = {
    EventKind.PreOperation: PreOperationPayload,
    EventKind.PostOperation: PostOperationPayload,
    EventKind.SessionStop: SessionStopPayload,
    EventKind.SubAgentStop: SubAgentStopPayload,
    EventKind.PromptSubmit: PromptSubmitPayload,
}


def payload_from_dict(kind: EventKind, data: Dict[str, Any]) -> EventPayload:
    """Build the payload variant for ``kind`` from a JSON document."""
    return PAYLOAD_TYPES[kind].from_dict(data)


# =============================================================================
# Hook definitions
# =============================================================================

@dataclass(frozen=True)
class HookDefinition:
    """
    A validated hook, tagged with where it came from.

    Attributes:
        event: Event kind this hook handles
        matcher_pattern: Pattern tested against the payload's match subject
        handler_path: Absolute path of the handler program
        source_tier: Configuration source the hook was loaded from
        registration_index: Position in registration order (ordering tiebreak)
        priority: Higher runs first
        enabled: Disabled hooks are never composed
        timeout_ms: Wall-clock limit for one invocation
        is_async: Fire without waiting; results never affect the chain
        name: Optional display name
        description: Optional human-readable description
    """
    event: EventKind
    matcher_pattern: str
    handler_path: str
    source_tier: SourceTier
    registration_index: int
    priority: int = 0
    enabled: bool = True
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    is_async: bool = False
    name: Optional[str] = None
    description: Optional[str] = None

    @property
    def identity(self) -> Tuple[SourceTier, str, str]:
        return (self.source_tier, self.handler_path, self.matcher_pattern)

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        """(priority DESC, source_tier DESC, registration_index ASC)."""
        return (-self.priority, -int(self.source_tier), self.registration_index)

    def matches(self, subject: str) -> bool:
        return compile_matcher(self.matcher_pattern)(subject)

    def describe(self) -> str:
        return f"[{self.source_tier.name}] {self.matcher_pattern!r} -> {self.handler_path}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event': self.event.value,
            'name': self.name,
            'description': self.description,
            'matcher': self.matcher_pattern,
            'handler': self.handler_path,
            'priority': self.priority,
            'enabled': self.enabled,
            'timeout_ms': self.timeout_ms,
            'async': self.is_async,
            'source': self.source_tier.name,
            'registration_index': self.registration_index,
        }


@dataclass(frozen=True)
class HookDiagnostic:
    """
    A recorded reason why a hook definition was excluded.

    Exclusions never happen silently: every rejected, shadowed or disabled
    record leaves one of these behind.
    """
    source_tier: SourceTier
    event: Optional[str]
    matcher_pattern: Optional[str]
    handler_path: Optional[str]
    reason: str
    error_type: str = ""

    def describe(self) -> str:
        matcher = self.matcher_pattern if self.matcher_pattern is not None else "<none>"
        handler = self.handler_path if self.handler_path is not None else "<none>"
        event = self.event or "<none>"
        return f"[{self.source_tier.name}] {event} {matcher!r} -> {handler}: {self.reason}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'source': self.source_tier.name,
            'event': self.event,
            'matcher': self.matcher_pattern,
            'handler': self.handler_path,
            'reason': self.reason,
            'error_type': self.error_type,
        }


@dataclass(frozen=True)
class EffectiveHookSet:
    """Ordered, deduplicated, enabled hooks for one event kind."""
    kind: EventKind
    hooks: Tuple[HookDefinition, ...] = ()

    def __iter__(self):
        return iter(self.hooks)

    def __len__(self) -> int:
        return len(self.hooks)

    def matching(self, subject: str) -> Tuple[HookDefinition, ...]:
        """Hooks whose matcher accepts ``subject``, in execution order."""
        return tuple(h for h in self.hooks if h.enabled and h.matches(subject))


# =============================================================================
# Chain outcomes and resolved actions
# =============================================================================

class OutcomeKind(Enum):
    CONTINUE = "continue"
    SKIP = "skip"
    MODIFY = "modify"
    ERROR = "error"


@dataclass(frozen=True)
class ChainOutcome:
    """
    Raw result of running one chain.

    Attributes:
        kind: Which terminal state the chain reached
        payload: Original payload (CONTINUE) or replacement (MODIFY)
        reason: Diagnostic text for SKIP / ERROR
        hook: The hook that terminated the chain, if any
        error: Typed failure for ERROR outcomes
        invoked: Number of blocking handlers that ran
    """
    kind: OutcomeKind
    payload: Optional[EventPayload] = None
    reason: Optional[str] = None
    hook: Optional[HookDefinition] = None
    error: Optional[DispatchError] = None
    invoked: int = 0

    @property
    def terminated(self) -> bool:
        return self.kind is not OutcomeKind.CONTINUE

    @classmethod
    def continued(cls, payload: EventPayload, invoked: int = 0) -> 'ChainOutcome':
        return cls(kind=OutcomeKind.CONTINUE, payload=payload, invoked=invoked)

    @classmethod
    def skipped(cls, reason: str, hook: HookDefinition, invoked: int = 0) -> 'ChainOutcome':
        return cls(kind=OutcomeKind.SKIP, reason=reason, hook=hook, invoked=invoked)

    @classmethod
    def modified(cls, payload: EventPayload, hook: HookDefinition, invoked: int = 0) -> 'ChainOutcome':
        return cls(kind=OutcomeKind.MODIFY, payload=payload, hook=hook, invoked=invoked)

    @classmethod
    def failed(cls, error: DispatchError, invoked: int = 0) -> 'ChainOutcome':
        return cls(
            kind=OutcomeKind.ERROR,
            reason=str(error),
            hook=error.hook,
            error=error,
            invoked=invoked,
        )


class ActionType(Enum):
    PROCEED = "proceed"
    SUPPRESS = "suppress"
    ABORT = "abort"


@dataclass(frozen=True)
class ResolvedAction:
    """
    What the calling system must do after a dispatch.

    PROCEED carries the payload to use (possibly modified); SUPPRESS and
    ABORT carry a reason.
    """
    action: ActionType
    payload: Optional[EventPayload] = None
    reason: Optional[str] = None
    error: Optional[DispatchError] = None

    @property
    def allowed(self) -> bool:
        return self.action is ActionType.PROCEED

    @classmethod
    def proceed(cls, payload: EventPayload) -> 'ResolvedAction':
        """Let the operation go ahead with ``payload``."""
        return cls(action=ActionType.PROCEED, payload=payload)

    @classmethod
    def suppress(cls, reason: str) -> 'ResolvedAction':
        """Silently skip the operation."""
        return cls(action=ActionType.SUPPRESS, reason=reason)

    @classmethod
    def abort(cls, reason: str, error: Optional[DispatchError] = None) -> 'ResolvedAction':
        """Hard-stop the operation with an error."""
        return cls(action=ActionType.ABORT, reason=reason, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'action': self.action.value,
            'payload': self.payload.to_dict() if self.payload is not None else None,
            'reason': self.reason,
        }
