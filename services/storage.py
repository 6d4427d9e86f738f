from __future__ import annotations

import json
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def ensure_session_dir(data_dir: Path, session_id: str) -> Path:
    target = Path(data_dir) / session_id
    target.mkdir(parents=True, exist_ok=True)
    return target


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f"{path.suffix}.tmp")
    try:
        with tmp_path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        for attempt in range(5):
            try:
                tmp_path.replace(path)
                break
            except OSError:
                if attempt >= 4:
                    raise
                time.sleep(0.02 * (attempt + 1))
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


def read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def write_status(session_dir: Path, snapshot: dict[str, Any]) -> None:
    payload = dict(snapshot)
    payload["updated_at"] = utc_now_iso()
    write_json(session_dir / "status.json", payload)


def read_status(session_dir: Path) -> dict[str, Any] | None:
    status_path = session_dir / "status.json"
    if not status_path.exists():
        return None
    try:
        data = read_json(status_path)
    except (OSError, json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def write_generation_artifact(session_dir: Path, name: str, generation: int, payload: Any) -> None:
    write_json(session_dir / f"{name}.json", {"generation": generation, "saved_at": utc_now_iso(), name: payload})
