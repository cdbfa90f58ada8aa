"""hookchain - hook composition and dispatch engine for coding agents."""

__version__ = "0.1.0"

from .logger import logger, setup_logging
from .hooks import HookManager, HookSources, EventKind, SourceTier, ResolvedAction
