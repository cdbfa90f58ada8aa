"""
Hooks Module

This module provides the hook composition and dispatch engine for the agent
lifecycle. Hooks are external handler programs that run at specific points
in the execution flow and can allow, suppress, modify or abort an operation.

Available Hook Events:
- PreOperation: Before executing an operation (e.g., Bash, Write)
- PostOperation: Immediately after an operation finishes
- SessionStop: When the agent session ends
- SubAgentStop: When a sub-agent finishes
- PromptSubmit: After user input, before it is sent to the model

Handlers receive the event payload as JSON on stdin and answer with their
exit code: 0 = continue (stdout may carry a modified payload), 1 = error,
2 = skip.

Example usage:
    from hookchain.hooks import HookManager, HookSources, PreOperationPayload

    hooks = HookManager(HookSources(user_settings=".hookchain/settings.yaml"))
    hooks.load()

    action = hooks.trigger(PreOperationPayload(
        operation_name="Bash",
        parameters={"command": "rm -rf /"},
    ))
    if not action.allowed:
        print(f"Blocked: {action.reason}")
"""

from .errors import (
    ChainError,
    ConfigLoadError,
    ConfigurationError,
    DispatchError,
    HandlerCancelled,
    HandlerCrash,
    HandlerTimeout,
    HookError,
    MatchCompileError,
)
from .types import (
    ActionType,
    ChainOutcome,
    EffectiveHookSet,
    EventKind,
    EventPayload,
    HookDefinition,
    HookDiagnostic,
    OutcomeKind,
    PostOperationPayload,
    PreOperationPayload,
    PromptSubmitPayload,
    ResolvedAction,
    SessionStopPayload,
    SourceTier,
    SubAgentStopPayload,
    payload_from_dict,
)
from .matcher import compile_matcher
from .registry import HookRegistry
from .composer import HookSnapshot, SnapshotStore, compose, compose_all
from .invoker import HandlerInvoker, InvocationResult, SubprocessInvoker
from .dispatcher import Dispatcher
from .resolver import resolve
from .loader import HookSources, load_registry
from .manager import HookManager

__all__ = [
    'ActionType', 'ChainError', 'ChainOutcome', 'ConfigLoadError', 'ConfigurationError',
    'DispatchError', 'Dispatcher', 'EffectiveHookSet', 'EventKind', 'EventPayload',
    'HandlerCancelled', 'HandlerCrash', 'HandlerInvoker', 'HandlerTimeout', 'HookDefinition',
    'HookDiagnostic', 'HookError', 'HookManager', 'HookRegistry', 'HookSnapshot', 'HookSources',
    'InvocationResult', 'MatchCompileError', 'OutcomeKind', 'PostOperationPayload',
    'PreOperationPayload', 'PromptSubmitPayload', 'ResolvedAction', 'SessionStopPayload',
    'SnapshotStore', 'SourceTier', 'SubAgentStopPayload', 'SubprocessInvoker', 'compile_matcher',
    'compose', 'compose_all', 'load_registry', 'payload_from_dict', 'resolve',
]
