#!/usr/bin/env python3
"""
Main entry point for hookchain.

Inspects and exercises the hooks configured for an agent: which hooks are
in effect, the order they run in for a given operation, what a single
handler answers for a synthetic payload, and why definitions were excluded.

Usage:
    python main.py list                          # Effective hooks per event kind
    python main.py list --event PreOperation     # Only one event kind
    python main.py list --source AddonManifest    # Only hooks from one source
    python main.py explain Bash                  # Match order for an operation
    python main.py test ./guard.py --operation Bash --input '{"parameters": {"command": "ls"}}'
    python main.py doctor                        # Excluded definitions (exit 1 if any)

Configuration locations come from the environment (or a .env file):
    HOOKCHAIN_BUILTIN_DIR, HOOKCHAIN_SETUP_MANIFEST, HOOKCHAIN_ADDONS_DIR,
    HOOKCHAIN_USER_SETTINGS, HOOKCHAIN_LOG_LEVEL
"""

import argparse
import json
import sys

from helper import get_hook_sources, get_log_level
from hookchain.hooks import EventKind, HookManager, SourceTier, payload_from_dict
from hookchain.hooks.types import DEFAULT_TIMEOUT_MS
from hookchain.logger import logger, setup_logging


EXIT_MEANINGS = {
    0: "continue",
    1: "error (aborts the chain)",
    2: "skip (suppresses the operation)",
}


def _event_kind(value: str) -> EventKind:
    try:
        return EventKind.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _source_tier(value: str) -> SourceTier:
    try:
        return SourceTier.parse(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def _default_payload(kind: EventKind, operation: str) -> dict:
    """Smallest valid payload document for an event kind."""
    if kind is EventKind.PreOperation:
        return {"operation_name": operation, "parameters": {}}
    if kind is EventKind.PostOperation:
        return {"operation_name": operation, "parameters": {}, "succeeded": True}
    if kind is EventKind.SessionStop:
        return {"reason": "complete"}
    if kind is EventKind.SubAgentStop:
        return {"agent_type": operation, "reason": "complete"}
    return {"prompt": ""}


def handle_list_command(manager: HookManager, args) -> int:
    hooks = manager.list_hooks(args.event, source=args.source, name=args.name)

    if args.json:
        print(json.dumps({k: [h.to_dict() for h in v] for k, v in hooks.items()}, indent=2))
        return 0

    if not hooks:
        print("No hooks configured.")
        return 0

    for kind, definitions in hooks.items():
        print(f"\n{kind}")
        print("-" * 80)
        for h in definitions:
            flags = " async" if h.is_async else ""
            print(f"  {h.priority:>5}  {h.source_tier.name:<14} {h.matcher_pattern:<20} {h.handler_path}{flags}")
    return 0


def handle_explain_command(manager: HookManager, args) -> int:
    kind = args.event or EventKind.PreOperation
    entries = manager.explain(kind, args.operation)

    if args.json:
        print(json.dumps([
            {**e['hook'].to_dict(), 'form': e['form'], 'matches': e['matches'], 'position': e['position']}
            for e in entries
        ], indent=2))
        return 0

    if not entries:
        print(f"No {kind.value} hooks configured.")
        return 0

    print(f"\n{kind.value} hooks for {args.operation!r} (execution order)")
    print("-" * 80)
    for e in entries:
        hook = e['hook']
        marker = f"{e['position']:>3}." if e['matches'] else "  -"
        print(f"{marker} {hook.matcher_pattern:<20} [{e['form']}] priority={hook.priority} "
              f"{hook.source_tier.name} {hook.handler_path}")
    matched = sum(1 for e in entries if e['matches'])
    print(f"\n{matched} of {len(entries)} hooks match.")
    return 0


def handle_test_command(manager: HookManager, args) -> int:
    kind = args.event or EventKind.PreOperation
    document = _default_payload(kind, args.operation)

    if args.input:
        try:
            extra = json.loads(args.input)
        except ValueError as e:
            print(f"Error: --input is not valid JSON: {e}", file=sys.stderr)
            return 2
        if not isinstance(extra, dict):
            print("Error: --input must be a JSON object", file=sys.stderr)
            return 2
        document.update(extra)

    try:
        payload = payload_from_dict(kind, document)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    result = manager.test_handler(args.handler, payload, timeout_ms=args.timeout_ms)
    print(json.dumps(result.to_json(), indent=2))

    if result.timed_out:
        meaning = "timeout (treated as error)"
    elif result.cancelled:
        meaning = "cancelled"
    else:
        meaning = EXIT_MEANINGS.get(result.exit_code, "unexpected exit code (treated as error)")
    print(f"\nResult: {meaning}")
    return 0


def handle_doctor_command(manager: HookManager, args) -> int:
    diagnostics = manager.diagnostics()

    if args.json:
        print(json.dumps([d.to_dict() for d in diagnostics], indent=2))
    elif not diagnostics:
        print("No problems found.")
    else:
        print(f"\n{len(diagnostics)} hook definitions excluded:")
        print("-" * 80)
        for d in diagnostics:
            print(f"  {d.error_type or 'Error'}: {d.describe()}")

    return 1 if diagnostics else 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="hookchain - inspect and test agent lifecycle hooks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py list --json                  # Dump effective hooks as JSON
  python main.py explain Write                # Which hooks run for Write, in order
  python main.py test ./guard.py --operation Bash
  python main.py doctor                       # Show excluded definitions
        """
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        help="Log level (default: $HOOKCHAIN_LOG_LEVEL or WARNING)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    list_parser = subparsers.add_parser("list", help="List effective hooks in execution order")
    list_parser.add_argument("--event", type=_event_kind, default=None, help="Only this event kind")
    list_parser.add_argument("--source", type=_source_tier, default=None, help="Only hooks from this source (e.g. UserSettings)")
    list_parser.add_argument("--name", default=None, help="Only the hook with this name")
    list_parser.add_argument("--json", action="store_true", help="Output JSON")

    explain_parser = subparsers.add_parser("explain", help="Show the match order for an operation")
    explain_parser.add_argument("operation", help="Operation name (e.g. Bash)")
    explain_parser.add_argument("--event", type=_event_kind, default=None,
                                help="Event kind (default: PreOperation)")
    explain_parser.add_argument("--json", action="store_true", help="Output JSON")

    test_parser = subparsers.add_parser("test", help="Run one handler with a synthetic payload")
    test_parser.add_argument("handler", help="Path of the handler program")
    test_parser.add_argument("--event", type=_event_kind, default=None,
                             help="Event kind (default: PreOperation)")
    test_parser.add_argument("--operation", type=str, default="Bash",
                             help="Operation name or sub-agent type (default: Bash)")
    test_parser.add_argument("--input", type=str, default=None,
                             help="JSON object merged into the payload")
    test_parser.add_argument("--timeout-ms", type=int, default=DEFAULT_TIMEOUT_MS,
                             help=f"Handler timeout in ms (default: {DEFAULT_TIMEOUT_MS})")

    doctor_parser = subparsers.add_parser("doctor", help="Show hook definitions that were excluded")
    doctor_parser.add_argument("--json", action="store_true", help="Output JSON")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(args.log_level or get_log_level())

    sources = get_hook_sources()
    logger.debug(f"Hook sources: {sources}")

    handlers = {
        "list": handle_list_command,
        "explain": handle_explain_command,
        "test": handle_test_command,
        "doctor": handle_doctor_command,
    }

    manager = HookManager(sources)
    try:
        if args.command != "test":
            manager.load()
        return handlers[args.command](manager, args)
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
    finally:
        manager.close(wait=False)


if __name__ == "__main__":
    sys.exit(main())
