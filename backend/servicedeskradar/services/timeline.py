"""Serie temporal diaria (casos por tier, llamadas, SLA y CSAT por dia)."""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from servicedeskradar.adapters.odata import ODataQuery, and_, eq, window_predicate
from servicedeskradar.adapters.query_client import QueryClient
from servicedeskradar.adapters.utils import day_key, to_float
from servicedeskradar.domain import kpis
from servicedeskradar.domain.catalog import CALL_START, CASES, CREATED_ON, MODIFIED_ON, PHONE_CALLS, TIERS
from servicedeskradar.domain.enums import KpiInstanceStatus
from servicedeskradar.domain.models import QueryFailure, TimelinePoint, UtcWindow
from servicedeskradar.logging_utils import get_logger
from servicedeskradar.services.batch_executor import (
    BatchOutcome,
    BatchQuery,
    ProgressCallback,
    ResilientBatchExecutor,
)

logger = get_logger(__name__)

MIN_DAYS = 2
SLA_MET = f"resolvebyslastatus eq {int(KpiInstanceStatus.SUCCEEDED)}"


def series_key(tier_code: int) -> str:
    return f"t{tier_code}_cases"


def bucket_counts(records: Iterable[Mapping[str, object]], field_name: str) -> Counter:
    """Numero de registros por dia (`YYYY-MM-DD` del timestamp tal cual llega)."""
    counts: Counter = Counter()
    for record in records:
        key = day_key(record.get(field_name))
        if key:
            counts[key] += 1
    return counts


def bucket_means(
    records: Iterable[Mapping[str, object]], date_field: str, value_field: str
) -> Dict[str, Tuple[float, int]]:
    """(suma, muestras) por dia para series de tipo media."""
    out: Dict[str, List[float]] = defaultdict(lambda: [0.0, 0])
    for record in records:
        key = day_key(record.get(date_field))
        value = to_float(record.get(value_field))
        if not key or value is None:
            continue
        out[key][0] += value
        out[key][1] += 1
    return {k: (v[0], int(v[1])) for k, v in out.items()}


def day_range(start: date, end: date) -> List[date]:
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def build_points(
    start: date,
    end: date,
    counts: Mapping[str, Mapping[str, int]],
    csat: Optional[Mapping[str, Tuple[float, int]]] = None,
) -> List[TimelinePoint]:
    """Un punto por dia de `[start, end]`, en orden y sin huecos.

    El SLA diario es `sla_met / t1_cases` del mismo dia de creacion (aproximacion).
    """
    csat = csat or {}
    points: List[TimelinePoint] = []
    for day in day_range(start, end):
        key = day.isoformat()
        day_counts = {name: int(series.get(key, 0)) for name, series in counts.items()}
        total, samples = csat.get(key, (0.0, 0))
        points.append(
            TimelinePoint(
                date=key,
                label=f"{day:%b} {day.day}",
                counts=day_counts,
                rates={
                    "sla": kpis.safe_rate(day_counts.get("sla_met", 0), day_counts.get(series_key(1), 0)),
                    "csat": kpis.safe_average(total, samples),
                },
            )
        )
    return points


class TimelineBucketer:
    """Lanza un lote concurrente de lecturas crudas y las agrupa por dia."""

    def __init__(
        self,
        client: QueryClient,
        concurrency: int = 3,
        max_days: int = 90,
        csat_flag_field: str = "",
        csat_score_field: str = "",
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._client = client
        self._concurrency = concurrency
        self._max_days = max_days
        self._csat_flag = csat_flag_field.strip()
        self._csat_score = csat_score_field.strip()
        self._progress = progress

    def enabled_for(self, window: UtcWindow) -> bool:
        """Al menos dos puntos y como mucho `max_days` dias entre inicio y fin."""
        return window.day_count() >= MIN_DAYS and window.span_days() <= self._max_days

    def build_queries(self, window: UtcWindow) -> List[BatchQuery]:
        client = self._client

        def fetch(label: str, query: ODataQuery) -> BatchQuery:
            return BatchQuery(label, lambda: client.fetch(label, query), default=[])

        queries = []
        for tier in TIERS.values():
            flt = and_(tier.predicate(), window_predicate(tier.primary_date_field, window))
            queries.append(
                fetch(f"Timeline {tier.label}", ODataQuery(CASES, filter=flt, select=(tier.primary_date_field,)))
            )

        tier_one = TIERS[1]
        queries.append(
            fetch(
                "Timeline SLA met",
                ODataQuery(
                    CASES,
                    filter=and_(tier_one.predicate(), SLA_MET, window_predicate(CREATED_ON, window)),
                    select=(CREATED_ON,),
                ),
            )
        )
        queries.append(
            fetch(
                "Timeline calls",
                ODataQuery(PHONE_CALLS, filter=window_predicate(CALL_START, window), select=(CALL_START,)),
            )
        )
        if self._csat_flag and self._csat_score:
            queries.append(
                fetch(
                    "Timeline CSAT",
                    ODataQuery(
                        CASES,
                        filter=and_(eq(self._csat_flag, True), window_predicate(MODIFIED_ON, window)),
                        select=(self._csat_score, MODIFIED_ON),
                    ),
                )
            )
        return queries

    async def build(self, window: UtcWindow) -> Tuple[List[TimelinePoint], List[QueryFailure]]:
        if not self.enabled_for(window):
            logger.debug(
                "Timeline skipped: %s days (span %s) outside [%s, %s]",
                window.day_count(),
                window.span_days(),
                MIN_DAYS,
                self._max_days,
            )
            return [], []
        executor = ResilientBatchExecutor(concurrency=self._concurrency, progress=self._progress)
        outcome = await executor.run(self.build_queries(window))
        points = self.assemble(window, outcome)
        logger.info("Timeline built: %s points (%s failures)", len(points), len(outcome.failures))
        return points, outcome.failures

    def assemble(self, window: UtcWindow, outcome: BatchOutcome) -> List[TimelinePoint]:
        counts: Dict[str, Mapping[str, int]] = {}
        for tier in TIERS.values():
            counts[series_key(tier.code)] = bucket_counts(
                outcome.get(f"Timeline {tier.label}", []), tier.primary_date_field
            )
        counts["calls"] = bucket_counts(outcome.get("Timeline calls", []), CALL_START)
        counts["sla_met"] = bucket_counts(outcome.get("Timeline SLA met", []), CREATED_ON)
        csat = bucket_means(outcome.get("Timeline CSAT", []), MODIFIED_ON, self._csat_score)
        # como mucho `max_days` puntos desde el inicio
        last = min(window.local_end_date, window.local_start_date + timedelta(days=self._max_days - 1))
        return build_points(window.local_start_date, last, counts, csat)
