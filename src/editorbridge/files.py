"""``readFile`` / ``editFile`` handlers confined to the project root."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from editorbridge._types import RequestError
from editorbridge.dispatch import RequestContext, RequestDispatcher

logger = logging.getLogger(__name__)


def _resolve(params: dict[str, Any], ctx: RequestContext) -> Path:
    raw = params.get("filePath")
    if not isinstance(raw, str) or not raw:
        raise RequestError(400, "Missing 'filePath'")
    root = Path(ctx.project_root).resolve()
    try:
        # Absolute paths replace the root when joined
        resolved = (root / raw).resolve()
    except (ValueError, OSError):
        raise RequestError(400, f"Invalid path: {raw}")

    # Path traversal check
    try:
        resolved.relative_to(root)
    except ValueError:
        raise RequestError(403, f"Path is outside the project: {raw}")
    return resolved


def handle_read_file(params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
    path = _resolve(params, ctx)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise RequestError(404, f"File not found: {params['filePath']}")
    except IsADirectoryError:
        raise RequestError(400, f"Not a file: {params['filePath']}")
    except UnicodeDecodeError:
        raise RequestError(415, f"Not a UTF-8 text file: {params['filePath']}")
    return {"filePath": str(path), "content": content}


def handle_edit_file(params: dict[str, Any], ctx: RequestContext) -> dict[str, Any]:
    """Replace the first occurrence of ``oldText`` with ``newText``.

    An empty ``oldText`` on a missing file creates it with ``newText``.
    """
    path = _resolve(params, ctx)
    old = params.get("oldText", "")
    new = params.get("newText", "")
    if not isinstance(old, str) or not isinstance(new, str):
        raise RequestError(400, "'oldText' and 'newText' must be strings")
    if path.is_dir():
        raise RequestError(400, f"Not a file: {params['filePath']}")

    if not path.exists():
        if old:
            raise RequestError(404, f"File not found: {params['filePath']}")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(new, encoding="utf-8")
        logger.debug(f"Created {path}")
        return {"filePath": str(path), "applied": True}

    if not old:
        raise RequestError(409, f"File already exists: {params['filePath']}")
    content = path.read_text(encoding="utf-8")
    if old not in content:
        raise RequestError(409, "oldText not found in file")
    path.write_text(content.replace(old, new, 1), encoding="utf-8")
    logger.debug(f"Edited {path}")
    return {"filePath": str(path), "applied": True}


def register_file_handlers(dispatcher: RequestDispatcher) -> None:
    dispatcher.register("readFile", handle_read_file)
    dispatcher.register("editFile", handle_edit_file)
