"""
Hook configuration loading.

Reads the four configuration sources into raw hook records and registers
them in tier order:

- Builtin:        a directory of handler scripts that describe themselves
                  in a header comment (Hook:, Event:, Matcher:, ...)
- SetupManifest:  one YAML/JSON file with a ``hooks`` mapping
- AddonManifest:  ``<addons_dir>/<addon>/addon.yaml`` (or .yml / .json)
- UserSettings:   a YAML/JSON settings file with a ``hooks`` mapping

Manifest format::

    hooks:
      PreOperation:
        - matcher: "Bash"
          handler: ./guards/no-rm-rf.py
          priority: 100
          timeout_ms: 5000
      PostOperation:
        - matcher: "(Write|Edit)"
          handler: ./audit.sh
          async: true
"""

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .errors import ConfigLoadError
from .invoker import INTERPRETERS
from .registry import HookRegistry, RawHook
from .types import SourceTier
from ..logger import logger


ADDON_MANIFEST_NAMES = ("addon.yaml", "addon.yml", "addon.json")

# Header lines look like "# Matcher: Bash", " * Priority: 50" or "// Event: PreOperation"
HEADER_LINE = re.compile(
    r"^\s*(?:#|//|/\*\*|/\*|\*)?\s*"
    r"(Hook|Event|Matcher|Priority|Enabled|Timeout|Async|Description):\s*(.+?)\s*$"
)
HEADER_SCAN_LINES = 40


@dataclass
class HookSources:
    """Locations of the four configuration sources. ``None`` means absent."""
    builtin_dir: Optional[str] = None
    setup_manifest: Optional[str] = None
    addons_dir: Optional[str] = None
    user_settings: Optional[str] = None


# =============================================================================
# Manifests
# =============================================================================

def read_manifest(path: str) -> Dict[str, Any]:
    """
    Read a YAML or JSON configuration file.

    Returns:
        Parsed mapping. Empty dict if the file is empty.

    Raises:
        ConfigLoadError: If the file can't be read, parsed, or isn't a mapping
    """
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigLoadError(path, f"cannot read file: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigLoadError(path, f"invalid YAML/JSON: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigLoadError(path, f"expected a mapping at the top level, got {type(data).__name__}")
    return data


def hooks_from_manifest(data: Dict[str, Any], path: str = "<manifest>") -> List[Tuple[str, List[RawHook]]]:
    """
    Group a manifest's ``hooks`` mapping by the event each list is under.

    Records are passed through unvalidated so the registry can report them,
    including a record whose own ``event`` contradicts its list.

    Returns:
        ``(event, records)`` pairs in manifest order

    Raises:
        ConfigLoadError: If ``hooks`` is present but not a mapping of lists
    """
    hooks = data.get("hooks")
    if hooks is None:
        return []
    if not isinstance(hooks, dict):
        raise ConfigLoadError(path, "'hooks' must be a mapping of event kind to a list of hooks")

    groups: List[Tuple[str, List[RawHook]]] = []
    for event, entries in hooks.items():
        if entries is None:
            continue
        if not isinstance(entries, list):
            raise ConfigLoadError(path, f"hooks for {event!r} must be a list")
        groups.append((str(event), list(entries)))
    return groups


def find_addon_manifests(addons_dir: str) -> List[str]:
    """Return the manifest path of every addon under ``addons_dir``, sorted by addon name."""
    root = Path(addons_dir)
    if not root.is_dir():
        return []

    manifests = []
    for addon in sorted(p for p in root.iterdir() if p.is_dir()):
        for name in ADDON_MANIFEST_NAMES:
            candidate = addon / name
            if candidate.is_file():
                manifests.append(str(candidate))
                break
    return manifests


# =============================================================================
# Builtin script hooks
# =============================================================================

def _coerce_header_value(key: str, value: str) -> Any:
    if key in ("Enabled", "Async"):
        lowered = value.lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        return value
    if key in ("Priority", "Timeout"):
        try:
            return int(value)
        except ValueError:
            return value
    return value


def parse_script_header(path: str) -> Optional[RawHook]:
    """
    Read hook metadata from the header comment of a handler script.

    Recognized lines: Hook, Event, Matcher, Priority, Enabled, Timeout (ms),
    Async, Description. A script without a ``Hook:`` or ``Event:`` line is
    not a hook and yields None.
    """
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            lines = [f.readline() for _ in range(HEADER_SCAN_LINES)]
    except OSError as e:
        raise ConfigLoadError(path, f"cannot read hook script: {e}") from e

    header: Dict[str, Any] = {}
    for line in lines:
        match = HEADER_LINE.match(line)
        if match and match.group(1) not in header:
            header[match.group(1)] = _coerce_header_value(match.group(1), match.group(2))

    if "Hook" not in header and "Event" not in header:
        return None

    record: RawHook = {
        "name": header.get("Hook", Path(path).stem),
        "event": header.get("Event", "PreOperation"),
        "matcher": header.get("Matcher", "*"),
        "handler": os.path.abspath(path),
    }
    if "Description" in header:
        record["description"] = header["Description"]
    if "Priority" in header:
        record["priority"] = header["Priority"]
    if "Enabled" in header:
        record["enabled"] = header["Enabled"]
    if "Timeout" in header:
        record["timeout_ms"] = header["Timeout"]
    if "Async" in header:
        record["async"] = header["Async"]
    return record


def load_script_hooks(directory: str, errors: Optional[List[ConfigLoadError]] = None) -> List[RawHook]:
    """
    Collect self-describing hook scripts from a directory.

    Top-level scripts are read directly; a subdirectory contributes its
    ``hook.*`` or ``index.*`` script.

    Args:
        directory: Directory to scan
        errors: When given, unreadable scripts are appended here instead of raising
    """
    root = Path(directory)
    if not root.is_dir():
        return []

    records: List[RawHook] = []
    for entry in sorted(root.iterdir()):
        script: Optional[Path] = None
        if entry.is_file() and entry.suffix.lower() in INTERPRETERS:
            script = entry
        elif entry.is_dir():
            for stem in ("hook", "index"):
                found = sorted(p for p in entry.glob(f"{stem}.*") if p.suffix.lower() in INTERPRETERS)
                if found:
                    script = found[0]
                    break
        if script is None:
            continue

        try:
            record = parse_script_header(str(script))
        except ConfigLoadError as e:
            if errors is None:
                raise
            errors.append(e)
            continue
        if record is not None:
            records.append(record)
    return records


# =============================================================================
# Registry loading
# =============================================================================

def _register_manifest(registry: HookRegistry, tier: SourceTier, path: str) -> None:
    if not os.path.isfile(path):
        logger.debug(f"[config] No {tier.name} configuration at {path}")
        return
    try:
        groups = hooks_from_manifest(read_manifest(path), path)
    except ConfigLoadError as e:
        registry.record_error(tier, str(e))
        return
    base_dir = os.path.dirname(os.path.abspath(path))
    for event, records in groups:
        registry.register(tier, records, base_dir=base_dir, listed_event=event)
    logger.debug(f"[config] Loaded {sum(len(r) for _, r in groups)} {tier.name} hook records from {path}")


def load_registry(sources: HookSources, registry: Optional[HookRegistry] = None) -> HookRegistry:
    """
    Register every configuration source, lowest tier first.

    Unreadable sources are recorded as diagnostics; the remaining sources
    still load.

    Args:
        sources: Where each source lives
        registry: Registry to fill (default: a new one)

    Returns:
        The filled registry
    """
    registry = registry if registry is not None else HookRegistry()

    if sources.builtin_dir:
        errors: List[ConfigLoadError] = []
        records = load_script_hooks(sources.builtin_dir, errors)
        for error in errors:
            registry.record_error(SourceTier.Builtin, str(error))
        registry.register(SourceTier.Builtin, records, base_dir=sources.builtin_dir)

    if sources.setup_manifest:
        _register_manifest(registry, SourceTier.SetupManifest, sources.setup_manifest)

    if sources.addons_dir:
        for manifest in find_addon_manifests(sources.addons_dir):
            _register_manifest(registry, SourceTier.AddonManifest, manifest)

    if sources.user_settings:
        _register_manifest(registry, SourceTier.UserSettings, sources.user_settings)

    return registry
