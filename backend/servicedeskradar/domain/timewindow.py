"""Conversion de fecha/hora civil local a instantes UTC para filtros del backend.

La organizacion trabaja en hora central de EE. UU. La regla de cambio horario
esta codificada (`UsCentralRuleConverter`); `ZoneInfoConverter` permite usar la
base de datos de zonas sin tocar a los llamadores.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Protocol, Tuple, Union
from zoneinfo import ZoneInfo

from servicedeskradar.domain.models import ReportRequest, UtcInstant, UtcWindow

DateLike = Union[str, date]


class LocalToUtcConverter(Protocol):
    def offset_hours(self, local: datetime) -> float:
        """Horas a sumar a la hora local (naive) para obtener UTC."""
        ...


def nth_sunday(year: int, month: int, n: int) -> date:
    """N-esimo domingo del mes (n >= 1)."""
    first = date(year, month, 1)
    # 0 = domingo, como getDay() en el calendario civil
    first_weekday = (first.weekday() + 1) % 7
    first_sunday = 1 + ((7 - first_weekday) % 7)
    return date(year, month, first_sunday + 7 * (n - 1))


class UsCentralRuleConverter:
    """UTC-5 entre el 2o domingo de marzo 02:00 y el 1er domingo de noviembre 02:00; UTC-6 fuera."""

    standard_offset = 6
    daylight_offset = 5

    @staticmethod
    def dst_bounds(year: int) -> Tuple[datetime, datetime]:
        start = datetime.combine(nth_sunday(year, 3, 2), time(2, 0))
        end = datetime.combine(nth_sunday(year, 11, 1), time(2, 0))
        return start, end

    def offset_hours(self, local: datetime) -> float:
        dst_start, dst_end = self.dst_bounds(local.year)
        if dst_start <= local < dst_end:
            return self.daylight_offset
        return self.standard_offset


class ZoneInfoConverter:
    """Offset obtenido de la base de datos de zonas horarias."""

    def __init__(self, tz_name: str = "America/Chicago") -> None:
        self._tz = ZoneInfo(tz_name)

    def offset_hours(self, local: datetime) -> float:
        offset = local.replace(tzinfo=self._tz).utcoffset()
        if offset is None:
            return 0.0
        return -offset.total_seconds() / 3600


def build_converter(mode: str, tz_name: str = "America/Chicago") -> LocalToUtcConverter:
    """Selecciona la estrategia segun TIME_ZONE_MODE."""
    value = (mode or "").strip().lower()
    if value == "zoneinfo":
        return ZoneInfoConverter(tz_name)
    if value in ("", "us_central_rule"):
        return UsCentralRuleConverter()
    raise ValueError(f"Unknown TIME_ZONE_MODE: {mode!r}")


def _parse_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


def _parse_hhmm(value: str | None) -> time:
    raw = (value or "").strip() or "00:00"
    hours, _, minutes = raw.partition(":")
    return time(int(hours), int(minutes or 0))


class TimeWindowResolver:
    """Resuelve fechas/horas locales a instantes UTC."""

    def __init__(self, converter: LocalToUtcConverter | None = None) -> None:
        self._converter = converter or UsCentralRuleConverter()

    def resolve(
        self, local_date: DateLike, local_time: str | None = "00:00", is_window_end: bool = False
    ) -> UtcInstant:
        """Instante UTC; los segundos valen 59 en el extremo final para incluir el minuto."""
        wall = _parse_hhmm(local_time)
        probe = datetime.combine(
            _parse_date(local_date), wall.replace(second=59 if is_window_end else 0)
        )
        offset = self._converter.offset_hours(probe)
        utc = probe + timedelta(hours=offset)
        return UtcInstant(
            date=utc.strftime("%Y-%m-%d"),
            time=utc.strftime("%H:%M:%S") + "Z",
            offset_hours=offset,
        )

    def resolve_window(self, request: ReportRequest) -> UtcWindow:
        return UtcWindow(
            start=self.resolve(request.local_start_date, request.local_start_time, False),
            end=self.resolve(request.local_end_date, request.local_end_time, True),
            local_start_date=request.local_start_date,
            local_end_date=request.local_end_date,
        )
