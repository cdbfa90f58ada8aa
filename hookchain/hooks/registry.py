"""
Hook Registry.

Validates raw hook records from a configuration source and stores them as
HookDefinitions tagged with their source tier. A bad record never aborts
the batch: it is recorded as a diagnostic and skipped.
"""

import os
from typing import Annotated, Any, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt, StrictStr, ValidationError, field_validator

from .errors import ConfigurationError, MatchCompileError, validation_summary
from .matcher import compile_matcher
from .types import DEFAULT_TIMEOUT_MS, EventKind, HookDefinition, HookDiagnostic, SourceTier
from ..logger import logger


# Raw hook record as read from a config file
RawHook = Dict[str, Any]


class HookRecord(BaseModel):
    """Schema of one raw hook record. Field values are never coerced."""
    model_config = ConfigDict(extra="forbid")

    event: Optional[EventKind] = None
    matcher: StrictStr = "*"
    handler: StrictStr
    priority: StrictInt = 0
    enabled: StrictBool = True
    timeout_ms: Annotated[StrictInt, Field(gt=0)] = DEFAULT_TIMEOUT_MS
    is_async: StrictBool = Field(default=False, alias="async")
    name: Optional[str] = None
    description: Optional[str] = None

    @field_validator("event", mode="before")
    @classmethod
    def parse_event(cls, value: Any) -> Optional[EventKind]:
        return EventKind.parse(value) if value is not None else None

    @field_validator("matcher")
    @classmethod
    def compile_pattern(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise MatchCompileError(value, "matcher must be a non-empty string")
        compile_matcher(value)
        return value

    @field_validator("handler")
    @classmethod
    def non_empty_handler(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("handler must be a non-empty path")
        return value

    @field_validator("name", "description", mode="before")
    @classmethod
    def as_text(cls, value: Any) -> Optional[str]:
        return str(value) if value is not None else None


def resolve_handler_path(handler: str, base_dir: Optional[str] = None) -> str:
    """
    Resolve a handler path to an absolute path.

    Relative paths are resolved against ``base_dir`` (or the working
    directory when no base is given); ``~`` is expanded.
    """
    path = os.path.expanduser(handler)
    if not os.path.isabs(path):
        path = os.path.join(base_dir or os.getcwd(), path)
    return os.path.normpath(path)


class HookRegistry:
    """
    Stores validated hook definitions from every configuration source.

    Example:
        registry = HookRegistry()
        registry.register(SourceTier.UserSettings, [
            {"event": "PreOperation", "matcher": "Bash", "handler": "./guard.py"},
        ], base_dir="/home/me/.hookchain")
    """

    def __init__(self):
        self._definitions: List[HookDefinition] = []
        self._diagnostics: List[HookDiagnostic] = []
        self._next_index = 0

    def register(
        self,
        source: SourceTier,
        raw_definitions: Iterable[RawHook],
        base_dir: Optional[str] = None,
        listed_event: Optional[Union[EventKind, str]] = None,
    ) -> List[HookDefinition]:
        """
        Validate and store a batch of raw hook records.

        Args:
            source: Tier of the configuration source
            raw_definitions: Raw records (dicts) from that source
            base_dir: Directory relative handler paths are resolved against
            listed_event: Event kind the records were listed under in their source.
                Records without an ``event`` take it; records declaring a
                different one are rejected.

        Returns:
            The records that passed validation, in input order
        """
        source = SourceTier.parse(source)
        valid: List[HookDefinition] = []

        for raw in raw_definitions:
            index = self._next_index
            self._next_index += 1
            try:
                definition = self._validate(source, raw, index, base_dir, listed_event)
            except ConfigurationError as e:
                self._record(source, raw, str(e), e, base_dir, listed_event)
                continue
            self._definitions.append(definition)
            valid.append(definition)
            logger.debug(f"[hooks] Registered {definition.event.value} hook {definition.describe()}")

        return valid

    def record_error(self, source: SourceTier, reason: str, error_type: str = "ConfigLoadError") -> None:
        """Record a diagnostic that is not tied to a single record (e.g. an unreadable file)."""
        diagnostic = HookDiagnostic(
            source_tier=SourceTier.parse(source),
            event=None,
            matcher_pattern=None,
            handler_path=None,
            reason=reason,
            error_type=error_type,
        )
        self._diagnostics.append(diagnostic)
        logger.warning(f"[hooks] {diagnostic.describe()}")

    def definitions(self) -> List[HookDefinition]:
        return list(self._definitions)

    def diagnostics(self) -> List[HookDiagnostic]:
        return list(self._diagnostics)

    def __len__(self) -> int:
        return len(self._definitions)

    def _validate(
        self,
        source: SourceTier,
        raw: RawHook,
        index: int,
        base_dir: Optional[str],
        listed_event: Optional[Union[EventKind, str]],
    ) -> HookDefinition:
        if not isinstance(raw, dict):
            raise ConfigurationError(f"hook record must be a mapping, got {type(raw).__name__}")

        try:
            record = HookRecord.model_validate(raw)
        except ValidationError as e:
            raise ConfigurationError(validation_summary(e)) from e

        listed = None
        if listed_event is not None:
            try:
                listed = EventKind.parse(listed_event)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
        if record.event is not None and listed is not None and record.event is not listed:
            raise ConfigurationError(
                f"listed under {listed.name} but declares event {record.event.name}"
            )
        event = record.event or listed
        if event is None:
            raise ConfigurationError("missing event kind")

        handler_path = resolve_handler_path(record.handler, base_dir)
        if not os.path.isfile(handler_path):
            raise ConfigurationError(f"handler not found: {handler_path}")

        return HookDefinition(
            event=event,
            matcher_pattern=record.matcher,
            handler_path=handler_path,
            source_tier=source,
            registration_index=index,
            priority=record.priority,
            enabled=record.enabled,
            timeout_ms=record.timeout_ms,
            is_async=record.is_async,
            name=record.name,
            description=record.description,
        )

    def _record(
        self,
        source: SourceTier,
        raw: Any,
        reason: str,
        error: ConfigurationError,
        base_dir: Optional[str],
        listed_event: Optional[Union[EventKind, str]],
    ) -> None:
        """Record why a raw record was rejected."""
        fields = raw if isinstance(raw, dict) else {}
        event = fields.get("event", listed_event)
        if isinstance(event, EventKind):
            event = event.name
        matcher = fields.get("matcher")
        handler = fields.get("handler")
        if isinstance(handler, str) and handler.strip():
            handler = resolve_handler_path(handler.strip(), base_dir)

        diagnostic = HookDiagnostic(
            source_tier=source,
            event=str(event) if event is not None else None,
            matcher_pattern=str(matcher) if matcher is not None else None,
            handler_path=str(handler) if handler is not None else None,
            reason=reason,
            error_type=type(error).__name__,
        )
        self._diagnostics.append(diagnostic)
        logger.warning(f"[hooks] Excluded hook {diagnostic.describe()}")
