import re
import json
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
from dateutil import parser as dtparser

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_DATA_DIR = BASE_DIR / "data"

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_NBSP_RE = re.compile(r"[\u00A0\u2007\u202F]")  # NBSP варианты
# ведущее число: "82%", " 75.5 ", "1e2"
_LEADING_NUMBER_RE = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?")

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def load_json(path: Path, default: Any):
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return default


def rules_path() -> Path:
    return DEFAULT_DATA_DIR / "rules.json"


def is_blank(v: Any) -> bool:
    # None / NaN из pandas / пустая строка - "нет значения"
    if v is None:
        return True
    if isinstance(v, float) and math.isnan(v):
        return True
    if isinstance(v, str) and not v.strip():
        return True
    return False


def cell_text(v: Any) -> str:
    """
    Текст ячейки для сравнения/нормализации:
    - None/NaN -> ""
    - целые float из Excel (231.0) -> "231"
    - BOM и неразрывные пробелы убираются
    """
    if is_blank(v):
        return ""
    if isinstance(v, bool):
        return str(v)
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    s = str(v).replace("\ufeff", "")
    return _NBSP_RE.sub(" ", s)


def normalize_identifier(raw: Any) -> str:
    """
    Каноничная форма регистрационного номера:
    - trim
    - lower
    - удаляется всё, кроме [a-z0-9]

    Никогда не падает; пустая строка означает "нет идентификатора".
    """
    s = cell_text(raw).strip().lower()
    return _NON_ALNUM_RE.sub("", s)


def parse_percent(v: Any, default: float = 0.0) -> float:
    # число из ячейки "Total %": берём ведущее число, иначе default
    if is_blank(v):
        return default
    if isinstance(v, bool):
        return default
    if isinstance(v, (int, float)):
        f = float(v)
        return default if math.isnan(f) else f
    m = _LEADING_NUMBER_RE.match(str(v))
    if not m:
        return default
    try:
        return float(m.group(0))
    except ValueError:
        return default


def parse_timestamp(v: Any) -> Optional[datetime]:
    # ISO-даты из API (startDate / registeredAt)
    if is_blank(v):
        return None
    if isinstance(v, datetime):
        dt = v
    else:
        try:
            dt = dtparser.isoparse(str(v).strip())
        except (ValueError, OverflowError):
            try:
                dt = dtparser.parse(str(v), fuzzy=True)
            except (ValueError, OverflowError):
                return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def timestamp_sort_value(dt: Optional[datetime]) -> float:
    if dt is None:
        return 0.0
    return (dt - _EPOCH).total_seconds()
