# hydrolink/core/settings_store.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoragePaths:
    root: Path
    readings_jsonl: Path
    alerts_jsonl: Path
    dosing_jsonl: Path
    settings_json: Path


def storage_paths(data_dir: str | Path) -> StoragePaths:
    root = Path(data_dir)
    return StoragePaths(
        root=root,
        readings_jsonl=root / "readings.jsonl",
        alerts_jsonl=root / "alerts.jsonl",
        dosing_jsonl=root / "dosing.jsonl",
        settings_json=root / "settings.json",
    )


# ---------------- low-level json helpers ----------------

def load_settings_json(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f) or {}
    except FileNotFoundError:
        return {}
    except json.JSONDecodeError as e:
        _log.warning("SETTINGS_JSON_CORRUPT path=%s error=%s", path, e)
        return {}

    if not isinstance(data, dict):
        _log.warning("SETTINGS_JSON_NOT_OBJECT path=%s type=%s", path, type(data).__name__)
        return {}
    return data


def write_settings_json(path: Path, data: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

    now = datetime.now(timezone.utc).isoformat()
    data = dict(data)

    existing = load_settings_json(path)
    data.setdefault("created_at_utc", existing.get("created_at_utc") or now)
    data["updated_at_utc"] = now

    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    tmp.replace(path)
