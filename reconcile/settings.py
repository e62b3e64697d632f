from __future__ import annotations
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional
from dotenv import load_dotenv
from .utils import BASE_DIR, load_json, rules_path

ATTENDANCE_THRESHOLD = 75.0
CHUNK_SIZE = 1000
MAX_UPLOAD_MB = 50
HEADER_SCAN_ROWS = 100
REQUEST_TIMEOUT = 15.0


@dataclass(frozen=True)
class Settings:
    attendance_threshold: float = ATTENDANCE_THRESHOLD
    chunk_size: int = CHUNK_SIZE
    max_upload_bytes: int = MAX_UPLOAD_MB * 1024 * 1024
    header_scan_rows: int = HEADER_SCAN_ROWS
    api_base_url: str = "http://localhost:5000/api"
    api_token: Optional[str] = None
    request_timeout: float = REQUEST_TIMEOUT

    def with_overrides(self, **changes: Any) -> "Settings":
        return replace(self, **changes)


def _env_number(name: str, cast):
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return cast(raw.strip())
    except ValueError:
        raise RuntimeError(f"Invalid {name}: {raw}")


def _from_rules(rules: Dict[str, Any]) -> Dict[str, Any]:
    # data/rules.json: {"attendance": {...}, "api": {...}}
    att = rules.get("attendance", {}) if isinstance(rules, dict) else {}
    api = rules.get("api", {}) if isinstance(rules, dict) else {}
    out: Dict[str, Any] = {}
    if "threshold" in att:
        out["attendance_threshold"] = float(att["threshold"])
    if "chunk_size" in att:
        out["chunk_size"] = int(att["chunk_size"])
    if "max_upload_mb" in att:
        out["max_upload_bytes"] = int(float(att["max_upload_mb"]) * 1024 * 1024)
    if "header_scan_rows" in att:
        out["header_scan_rows"] = int(att["header_scan_rows"])
    if api.get("base_url"):
        out["api_base_url"] = str(api["base_url"])
    if "timeout" in api:
        out["request_timeout"] = float(api["timeout"])
    return out


def load_settings(path: Optional[Path] = None, *, use_dotenv: bool = True) -> Settings:
    """
    Настройки страницы сверки. Порядок (последнее побеждает):
      1) значения по умолчанию (порог 75, чанк 1000, лимит 50MB)
      2) data/rules.json
      3) переменные окружения (в т.ч. из .env)
    """
    if use_dotenv:
        load_dotenv(BASE_DIR / ".env")

    values = _from_rules(load_json(path or rules_path(), {}))

    url = os.environ.get("PARTICIPATION_API_URL")
    if url:
        values["api_base_url"] = url.strip()
    token = os.environ.get("PARTICIPATION_API_TOKEN")
    if token:
        values["api_token"] = token.strip()

    threshold = _env_number("ATTENDANCE_THRESHOLD", float)
    if threshold is not None:
        values["attendance_threshold"] = threshold
    chunk = _env_number("ATTENDANCE_CHUNK_SIZE", int)
    if chunk is not None:
        values["chunk_size"] = chunk
    max_mb = _env_number("MAX_UPLOAD_MB", float)
    if max_mb is not None:
        values["max_upload_bytes"] = int(max_mb * 1024 * 1024)
    timeout = _env_number("REQUEST_TIMEOUT", float)
    if timeout is not None:
        values["request_timeout"] = timeout

    if values.get("chunk_size", CHUNK_SIZE) < 1:
        raise RuntimeError("ATTENDANCE_CHUNK_SIZE must be at least 1")

    return Settings(**values)
