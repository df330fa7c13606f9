"""Shared utilities for the editorbridge package.

Deduplicates common patterns used across multiple modules:
PID checks, directory and project-root resolution, token generation,
atomic writes, environment settings, and health checks.
"""

from __future__ import annotations

import json
import os
import secrets
import string
import sys
import tempfile
from pathlib import Path

TOKEN_LENGTH = 32
LOOPBACK_HOST = "127.0.0.1"
DEFAULT_IDE_NAME = "EditorBridge"
DEFAULT_DEBOUNCE_MS = 50

_TOKEN_ALPHABET = string.ascii_letters + string.digits

# ---------------------------------------------------------------------------
# PID check
# ---------------------------------------------------------------------------


def is_pid_alive(pid: int) -> bool:
    """Check if a process with the given PID is alive."""
    if sys.platform == "win32":
        import ctypes

        kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        PROCESS_QUERY_LIMITED_INFORMATION = 0x1000
        handle = kernel32.OpenProcess(PROCESS_QUERY_LIMITED_INFORMATION, False, pid)
        if handle:
            kernel32.CloseHandle(handle)
            return True
        return False
    else:
        try:
            os.kill(pid, 0)
            return True
        except PermissionError:
            # Exists but owned by another user
            return True
        except OSError:
            return False


# ---------------------------------------------------------------------------
# Directory + project resolution
# ---------------------------------------------------------------------------


def get_data_dir() -> Path:
    """Resolve the lockfile directory.

    Resolution order:
    1. ``EDITORBRIDGE_DATA_DIR`` environment variable (explicit override)
    2. Default: ``~/.claude/ide``
    """
    env = os.getenv("EDITORBRIDGE_DATA_DIR")
    if env:
        return Path(env)
    return Path.home() / ".claude" / "ide"


def canonical_project_root(path: str | os.PathLike[str]) -> str:
    """Return the resolved absolute form used as the session key."""
    return str(Path(path).expanduser().resolve())


# ---------------------------------------------------------------------------
# Environment settings
# ---------------------------------------------------------------------------


def get_ide_name() -> str:
    return os.getenv("EDITORBRIDGE_IDE_NAME") or DEFAULT_IDE_NAME


def env_flag(name: str, default: bool = False) -> bool:
    """Read a boolean environment variable (1/true/yes/on)."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_debounce_seconds() -> float:
    raw = os.getenv("EDITORBRIDGE_DEBOUNCE_MS")
    try:
        ms = int(raw) if raw else DEFAULT_DEBOUNCE_MS
    except ValueError:
        ms = DEFAULT_DEBOUNCE_MS
    return max(ms, 0) / 1000.0


# ---------------------------------------------------------------------------
# Tokens + files
# ---------------------------------------------------------------------------


def generate_token(length: int = TOKEN_LENGTH) -> str:
    """Random alphanumeric auth token."""
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` via a temp file in the same directory.

    Readers never observe a partially written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------


def health_check(port: int, host: str = LOOPBACK_HOST) -> dict | None:
    """GET /health on a session server. Returns the payload or None."""
    try:
        import urllib.request

        req = urllib.request.Request(f"http://{host}:{port}/health", method="GET")
        with urllib.request.urlopen(req, timeout=2) as resp:
            data = json.loads(resp.read())
            if data.get("status") != "ok":
                return None
            return data
    except Exception:
        return None
