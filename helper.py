# Environment helpers for the hookchain CLI.

import os
from dotenv import load_dotenv, find_dotenv

from hookchain.hooks import HookSources


DEFAULT_BUILTIN_DIR = os.path.join(".hookchain", "hooks")
DEFAULT_SETUP_MANIFEST = os.path.join(".hookchain", "setup.yaml")
DEFAULT_ADDONS_DIR = os.path.join(".hookchain", "addons")
DEFAULT_USER_SETTINGS = os.path.join("~", ".hookchain", "settings.yaml")


def load_env():
    _ = load_dotenv(find_dotenv(usecwd=True))


def _path_from_env(name: str, default: str) -> str:
    value = os.getenv(name) or default
    return os.path.abspath(os.path.expanduser(value))


def get_hook_sources() -> HookSources:
    """
    Build the configuration source locations from the environment.

    Each location can be overridden with an environment variable (or a
    .env file); unset variables fall back to the .hookchain/ defaults.
    """
    load_env()
    return HookSources(
        builtin_dir=_path_from_env("HOOKCHAIN_BUILTIN_DIR", DEFAULT_BUILTIN_DIR),
        setup_manifest=_path_from_env("HOOKCHAIN_SETUP_MANIFEST", DEFAULT_SETUP_MANIFEST),
        addons_dir=_path_from_env("HOOKCHAIN_ADDONS_DIR", DEFAULT_ADDONS_DIR),
        user_settings=_path_from_env("HOOKCHAIN_USER_SETTINGS", DEFAULT_USER_SETTINGS),
    )


def get_log_level() -> str:
    load_env()
    return os.getenv("HOOKCHAIN_LOG_LEVEL", "WARNING")
