from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping
from uuid import UUID

from app.config.settings import get_settings


_REDACT_KEYS = {
    # identity / location
    "email",
    "location",
    "latitude",
    "longitude",
    "timezone",
}


def _enabled() -> bool:
    return get_settings().dev_event_log


def _log_dir() -> Path:
    return Path(get_settings().dev_event_log_dir)


def _safe_meta(meta: Mapping[str, Any] | None) -> dict[str, Any]:
    if not meta:
        return {}
    out: dict[str, Any] = {}
    for k, v in meta.items():
        if k in _REDACT_KEYS:
            out[k] = "<redacted>"
        elif isinstance(v, Mapping):
            out[k] = _safe_meta(v)
        else:
            out[k] = v
    return out


def log_user_event(
    *,
    user_id: UUID | str | None,
    event: str,
    meta: Mapping[str, Any] | None = None,
) -> None:
    """
    Developer audit log of mirror activity (JSONL).

    - Writes to `logs/user_events/<user_id>.jsonl` by default
    - Redacts identity and location keys, including in nested meta
    - Controlled by env var `DEV_EVENT_LOG` (default: enabled)
    """
    if not _enabled():
        return

    uid = str(user_id) if user_id else "anonymous"
    rec = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "user_id": uid,
        "event": event,
        "meta": _safe_meta(meta),
    }

    d = _log_dir()
    d.mkdir(parents=True, exist_ok=True)
    path = d / f"{uid}.jsonl"
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(rec, ensure_ascii=False, default=str) + "\n")
