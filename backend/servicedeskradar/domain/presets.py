"""Rangos de fechas predefinidos (hoy, 7D, 14D, 30D, 90D, YTD)."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Dict, Tuple

PRESET_DAYS: Dict[str, int] = {"today": 0, "7d": 7, "14d": 14, "30d": 30, "90d": 90}


def preset_range(name: str, today: date) -> Tuple[date, date]:
    """Devuelve (inicio, fin) locales para el preset; fin siempre es `today`."""
    key = (name or "").strip().lower()
    if key == "ytd":
        return date(today.year, 1, 1), today
    if key not in PRESET_DAYS:
        raise ValueError(f"Unknown preset: {name!r}")
    return today - timedelta(days=PRESET_DAYS[key]), today
