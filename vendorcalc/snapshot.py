"""
Backup files: a snapshot serialized as one JSON document.
"""
from __future__ import annotations
import json
from datetime import date
from pathlib import Path
from typing import Optional, Union
from loguru import logger

from .errors import ImportFormatError
from .models import Snapshot
from .store import utc_now_iso


def default_backup_name(today: Optional[date] = None) -> str:
    today = today or date.today()
    return f"vendorcalc-backup-{today.strftime('%d-%m-%Y')}.json"


def write_snapshot(snapshot: Snapshot, path: Union[str, Path]) -> Path:
    """Write a snapshot (plus an exportedAt stamp) to disk."""
    path = Path(path)
    data = snapshot.model_dump(mode="json")
    data["exportedAt"] = utc_now_iso()
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info(f"Backup exported to {path}")
    return path


def read_snapshot(path: Union[str, Path]) -> dict:
    """
    Read a backup file.

    Returns the raw document; shape validation happens on import.

    Raises:
        ImportFormatError: If the file cannot be read or is not a JSON object
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ImportFormatError(f"Cannot read backup file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ImportFormatError("Invalid backup file format")
    return data
