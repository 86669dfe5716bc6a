"""
File utilities for the persisted JSON documents.

Blocking helpers; async callers run them through asyncio.to_thread.
"""

import json
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


def parse_json_strict(text: str) -> tuple[Any, list[str]]:
    """
    Parse JSON, collecting keys that appear twice in the same object.

    The standard parser keeps the last value for a repeated key; the
    mapping documents must reject such files instead.

    Args:
        text: Raw JSON text

    Returns:
        Tuple of (parsed value, list of duplicated keys)

    Raises:
        json.JSONDecodeError: If the text is not valid JSON
    """
    duplicates: list[str] = []

    def collect(pairs: list[tuple[str, Any]]) -> dict:
        result: dict = {}
        for key, value in pairs:
            if key in result:
                duplicates.append(key)
            result[key] = value
        return result

    data = json.loads(text, object_pairs_hook=collect)
    return data, duplicates


def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def write_json_atomic(path: Path, payload: dict) -> None:
    """
    Write a JSON document via temp file + atomic replace.

    The temp file lives in the target directory so os.replace never
    crosses filesystems. On failure the original file is untouched.

    Raises:
        OSError: If the directory, temp file or replace fails
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, ensure_ascii=False, indent=2)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
    except OSError:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def backup_file(path: Path, backup_dir: Path) -> Optional[Path]:
    """
    Copy path into backup_dir with a UTC timestamp suffix.

    Returns:
        Backup path, or None if there was nothing to back up
    """
    if not path.exists():
        return None
    backup_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    target = backup_dir / f"{path.stem}.{stamp}{path.suffix}"
    shutil.copy2(path, target)
    return target
