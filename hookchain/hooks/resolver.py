"""
Result Resolver.

Maps a ChainOutcome to the action the calling system must take. Skip and
Error only gate blocking event kinds; for PostOperation, SessionStop and
SubAgentStop the action already happened, so they are logged and the
caller proceeds.
"""

from .types import ChainOutcome, EventPayload, OutcomeKind, ResolvedAction
from ..logger import logger


def resolve(outcome: ChainOutcome, payload: EventPayload) -> ResolvedAction:
    """
    Resolve a chain outcome into a caller-facing action.

    Args:
        outcome: Result of dispatching ``payload``
        payload: The payload that was dispatched (used when coercing to Proceed)

    Returns:
        PROCEED, SUPPRESS or ABORT
    """
    kind = payload.kind

    if outcome.kind is OutcomeKind.CONTINUE:
        return ResolvedAction.proceed(outcome.payload or payload)

    if outcome.kind is OutcomeKind.MODIFY:
        logger.info(f"[hooks] {kind.value} payload modified by {outcome.hook.describe()}")
        return ResolvedAction.proceed(outcome.payload)

    if outcome.kind is OutcomeKind.SKIP:
        if kind.is_blocking:
            logger.info(f"[hooks] {kind.value} suppressed by {outcome.hook.describe()}: {outcome.reason}")
            return ResolvedAction.suppress(outcome.reason)
        logger.warning(
            f"[hooks] Ignoring skip from {outcome.hook.describe()} on {kind.value}: {outcome.reason}"
        )
        return ResolvedAction.proceed(payload)

    if kind.is_blocking:
        logger.error(f"[hooks] {kind.value} aborted: {outcome.reason}")
        return ResolvedAction.abort(outcome.reason, outcome.error)
    logger.error(f"[hooks] {kind.value} hook failed (continuing): {outcome.reason}")
    return ResolvedAction.proceed(payload)
