"""Utilidades de parsing para valores provenientes del backend (payloads OData)."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Mapping, Optional


def to_str(v: object) -> Optional[str]:
    """Convierte un valor escalar a string limpio o None."""
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def to_int(v: object) -> Optional[int]:
    """Convierte un valor a int de forma segura (strings numericos, floats...)."""
    if v is None or v == "":
        return None
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float):
        return int(v)
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return None
        try:
            return int(float(s))
        except ValueError:
            return None
    return None


def to_float(v: object) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return None
        try:
            return float(s)
        except ValueError:
            return None
    return None


def to_datetime(v: object) -> Optional[datetime]:
    """Convierte timestamps ISO-8601 (`...Z` o con offset) a datetime aware.

    Los valores sin zona se interpretan como UTC.
    """
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)
    if isinstance(v, date):
        return datetime(v.year, v.month, v.day, tzinfo=timezone.utc)
    if isinstance(v, str):
        s = v.strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(s)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def day_key(v: object) -> Optional[str]:
    """Trunca un timestamp a su dia `YYYY-MM-DD` tal como lo emite el backend.

    No se relocaliza: el dia es el de la zona en que viene el valor.
    """
    s = to_str(v)
    if not s or len(s) < 10:
        return None
    key = s[:10]
    try:
        date.fromisoformat(key)
    except ValueError:
        return None
    return key


def formatted_value(record: Mapping[str, Any], field: str) -> Optional[str]:
    """Etiqueta legible de un lookup (`Prefer: odata.include-annotations`)."""
    return to_str(record.get(f"{field}@OData.Community.Display.V1.FormattedValue"))
