"""Static configuration for dualprobe.

All user-editable settings (probe directory, server session defaults,
segment capacity, logging) live in a single JSON file for quick edits
without touching Python. DUALPROBE_CONFIG (environment or .env) points at
an alternative file.
"""

import json
import os

from dotenv import load_dotenv

from core.config import (
    DEFAULT_ACCEPT_TIMEOUT,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_LINGER_SECONDS,
    DEFAULT_SEGMENT_CAPACITY,
)

load_dotenv()

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.getenv("DUALPROBE_CONFIG") or os.path.join(PROJECT_ROOT, "config.json")


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Every segment has the same fixed capacity; socket reads use it as buffer size.
SEGMENT_CAPACITY = int(_CONFIG.get("segment_capacity", DEFAULT_SEGMENT_CAPACITY))

# Client probe settings.
_probe = _CONFIG.get("probe", {})
PROBE_HANDLE_DIRECTORY = _resolve_path(_probe.get("handle_directory", "handles"))
PROBE_CONNECT_TIMEOUT = float(_probe.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT))
PROBE_MAX_WORKERS = int(_probe.get("max_workers", 1))

# Server session defaults; every value can be overridden on the command line.
_serve = _CONFIG.get("serve", {})
SERVE_LISTEN_PORT = int(_serve.get("listen_port", 0))
SERVE_SHM_KEY_PATH = _serve.get("shm_key_path", "/tmp")
SERVE_SHM_PROJECT_ID = int(_serve.get("shm_project_id", 42))
SERVE_HANDLE_DIRECTORY = _resolve_path(_serve.get("handle_directory", "handles"))
SERVE_HANDLE_NAME = _serve.get("handle_name") or f"server-{os.getpid()}"
SERVE_ACCEPT_TIMEOUT = float(_serve.get("accept_timeout", DEFAULT_ACCEPT_TIMEOUT))
SERVE_LINGER_SECONDS = float(_serve.get("linger_seconds", DEFAULT_LINGER_SECONDS))
SERVE_SHM_MESSAGE = _serve.get("shm_message", "")
SERVE_SOCKET_MESSAGE = _serve.get("socket_message", "")

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
