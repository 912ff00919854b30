"""Funciones puras de KPIs: ratios seguros, clasificacion frente a objetivo y duraciones.

Convenciones:
- "N/A" (constante `NA`) es un valor valido que se propaga hasta la UI, no un error.
- Los porcentajes se redondean al entero y se recortan a 100.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Iterable, Literal, Mapping, Optional, Sequence, Tuple, Union

from servicedeskradar.domain.catalog import TARGETS
from servicedeskradar.domain.enums import Comparison, KpiInstanceStatus, TargetStatus

NA: Literal["N/A"] = "N/A"

Rate = Union[int, Literal["N/A"]]
Average = Union[float, Literal["N/A"]]

WARN_BAND_HIGHER_IS_BETTER = 0.9
WARN_BAND_LOWER_IS_BETTER = 1.15

SECONDS_HEURISTIC_THRESHOLD = 1000
OUTLIER_MAX_HOURS = 168


def round_half_up(value: float, digits: int = 0) -> float:
    """Redondeo aritmetico (0.5 hacia arriba), no el redondeo bancario de `round`."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def safe_rate(numerator: float, denominator: float) -> Rate:
    """Porcentaje entero `numerator/denominator*100`, recortado a [0, 100].

    Devuelve "N/A" si el denominador es <= 0.
    """
    if denominator is None or denominator <= 0:
        return NA
    value = round_half_up(numerator / denominator * 100)
    return int(max(0, min(100, value)))


def safe_average(total: float, samples: int, digits: int = 1) -> Average:
    if samples <= 0:
        return NA
    return round_half_up(total / samples, digits)


def _as_number(value: object) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        s = value.strip()
        if not s or s == NA:
            return None
        try:
            return float(s)
        except ValueError:
            return None
    return None


def classify(metric_key: str, value: object) -> TargetStatus:
    """Clasifica `value` frente al objetivo de `metric_key`.

    Bandas de tolerancia fijas: 10% por debajo para metricas "mas es mejor",
    15% por encima para metricas "menos es mejor".
    """
    target = TARGETS.get(metric_key)
    if target is None:
        return TargetStatus.NA
    v = _as_number(value)
    if v is None:
        return TargetStatus.NA

    t = target.target_value
    cmp = target.comparison
    if cmp == Comparison.GTE:
        if v >= t:
            return TargetStatus.MET
        return TargetStatus.WARN if v >= t * WARN_BAND_HIGHER_IS_BETTER else TargetStatus.MISS
    if cmp == Comparison.GT:
        if v > t:
            return TargetStatus.MET
        return TargetStatus.WARN if v >= t * WARN_BAND_HIGHER_IS_BETTER else TargetStatus.MISS
    if cmp == Comparison.LTE:
        if v <= t:
            return TargetStatus.MET
        return TargetStatus.WARN if v <= t * WARN_BAND_LOWER_IS_BETTER else TargetStatus.MISS
    if cmp == Comparison.LT:
        if v < t:
            return TargetStatus.MET
        return TargetStatus.WARN if v <= t * WARN_BAND_LOWER_IS_BETTER else TargetStatus.MISS
    return TargetStatus.NA


def classify_many(values: Mapping[str, object]) -> dict[str, TargetStatus]:
    return {key: classify(key, value) for key, value in values.items()}


def is_abandoned_call(duration_minutes: object) -> bool:
    """Una llamada con duracion 0 (o sin duracion) se considera abandonada.

    Es una suposicion del dato de origen, no una inferencia.
    """
    v = _as_number(duration_minutes)
    return v is None or v <= 0


def count_kpi_statuses(records: Iterable[Mapping[str, object]], relation: str) -> Tuple[int, int]:
    """Cuenta (met, missed) segun `status` de la relacion KPI expandida.

    4 = cumplido, 1 = incumplido; el resto se ignora.
    """
    met = 0
    missed = 0
    for record in records:
        kpi = record.get(relation)
        if not isinstance(kpi, Mapping):
            continue
        status = _as_number(kpi.get("status"))
        if status is None:
            continue
        if int(status) == KpiInstanceStatus.SUCCEEDED:
            met += 1
        elif int(status) == KpiInstanceStatus.NONCOMPLIANT:
            missed += 1
    return met, missed


def duration_minutes(values: Iterable[object]) -> list[float]:
    """Normaliza muestras de duracion a minutos.

    Si la media supera 1000 se asume que el campo viene en segundos.
    """
    samples = [v for v in (_as_number(x) for x in values) if v is not None]
    if not samples:
        return []
    if sum(samples) / len(samples) > SECONDS_HEURISTIC_THRESHOLD:
        return [s / 60 for s in samples]
    return samples


def elapsed_minutes(spans: Iterable[Tuple[Optional[datetime], Optional[datetime]]]) -> list[float]:
    """Minutos entre creacion y resolucion, descartando deltas fuera de [0, 168) horas."""
    out: list[float] = []
    for created, resolved in spans:
        if created is None or resolved is None:
            continue
        hours = (resolved - created).total_seconds() / 3600
        if hours < 0 or hours >= OUTLIER_MAX_HOURS:
            continue
        out.append(hours * 60)
    return out


def format_duration(minutes: float) -> str:
    """`"{m} min"` por debajo de una hora; `"{h}h {m}m"` en otro caso.

    El umbral se compara con la media sin redondear: 59.6 da "60 min".
    """
    if minutes < 60:
        return f"{int(round_half_up(minutes))} min"
    hours, rest = divmod(int(round_half_up(minutes)), 60)
    return f"{hours}h {rest}m"


def format_elapsed(minutes: float) -> str:
    """`"{m} min"` por debajo de una hora; horas con un decimal en otro caso."""
    if minutes < 60:
        return f"{int(round_half_up(minutes))} min"
    return f"{minutes / 60:.1f} hrs"


def average_duration(
    values: Sequence[object],
    spans: Sequence[Tuple[Optional[datetime], Optional[datetime]]] = (),
) -> str:
    """Duracion media formateada o "N/A".

    Usa el campo de duracion si alguna muestra esta informada; si no, cae a
    (resuelto - creado) por registro.
    """
    samples = duration_minutes(values)
    if samples:
        return format_duration(sum(samples) / len(samples))
    elapsed = elapsed_minutes(spans)
    if elapsed:
        return format_elapsed(sum(elapsed) / len(elapsed))
    return NA
