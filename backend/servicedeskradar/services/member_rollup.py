"""Agregacion de KPIs por miembro del equipo (consultas filtradas por propietario).

`combine_members` construye el agregado de equipo sumando numeradores y
denominadores y recalculando los ratios; nunca promedia ratios ya calculados.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Tuple

from servicedeskradar.adapters.odata import ODataQuery, and_, eq, window_predicate
from servicedeskradar.adapters.query_client import QueryClient
from servicedeskradar.adapters.utils import to_datetime, to_float
from servicedeskradar.domain import kpis
from servicedeskradar.domain.catalog import (
    ACTIVITY_KEY,
    CALL_DURATION,
    CALL_START,
    CASE_KEY,
    CASES,
    CREATED_BY,
    CREATED_ON,
    MODIFIED_ON,
    OWNER,
    PHONE_CALLS,
    RESOLUTION_KPI,
)
from servicedeskradar.domain.enums import CaseOrigin
from servicedeskradar.domain.models import MemberMetrics, QueryFailure, UtcWindow
from servicedeskradar.logging_utils import get_logger
from servicedeskradar.services.batch_executor import (
    BatchOutcome,
    BatchQuery,
    ProgressCallback,
    ResilientBatchExecutor,
)
from servicedeskradar.services.tier_rollup import (
    ACTIVE,
    FIRST_RESPONSE_SENT,
    RESOLVED,
    kpi_expand,
)

logger = get_logger(__name__)

ORGANIZATION_ID = "organization"
TEAM_ID = "team"

TIER_ONE = "casetypecode eq 1"
ESCALATED = "isescalated eq true"
EMAIL_ORIGIN = f"caseorigincode eq {int(CaseOrigin.EMAIL)}"

_ADDITIVE_FIELDS = (
    "member_count",
    "owned",
    "created",
    "resolved",
    "active",
    "sla_met",
    "sla_missed",
    "tier_one_owned",
    "fcr",
    "escalated",
    "calls_total",
    "calls_answered",
    "calls_abandoned",
    "aht_minutes_total",
    "csat_responses",
    "csat_score_total",
    "csat_samples",
    "email_total",
    "email_responded",
    "email_resolved",
    "resolution_minutes_total",
    "resolution_samples",
)


def resolution_label(total_minutes: float, samples: int, source: str) -> str:
    if samples <= 0 or source == "none":
        return kpis.NA
    mean = total_minutes / samples
    if source == "duration":
        return kpis.format_duration(mean)
    return kpis.format_elapsed(mean)


def finalize(metrics: MemberMetrics) -> MemberMetrics:
    """Recalcula todos los ratios a partir de los campos aditivos."""
    metrics.sla_compliance = kpis.safe_rate(metrics.sla_met, metrics.sla_met + metrics.sla_missed)
    metrics.fcr_rate = kpis.safe_rate(metrics.fcr, metrics.tier_one_owned)
    metrics.escalation_rate = kpis.safe_rate(metrics.escalated, metrics.owned)
    metrics.answer_rate = kpis.safe_rate(metrics.calls_answered, metrics.calls_total)
    metrics.avg_aht = kpis.safe_average(metrics.aht_minutes_total, metrics.calls_answered)
    metrics.csat_avg = kpis.safe_average(metrics.csat_score_total, metrics.csat_samples)
    metrics.email_sla = kpis.safe_rate(metrics.email_responded, metrics.email_total)
    metrics.avg_resolution_time = resolution_label(
        metrics.resolution_minutes_total, metrics.resolution_samples, metrics.resolution_source
    )
    return metrics


def combine_members(
    members: Iterable[MemberMetrics],
    member_id: str = TEAM_ID,
    display_name: Optional[str] = "Team",
) -> MemberMetrics:
    """Agregado de equipo: suma de campos aditivos y ratios recalculados.

    Asociativo e independiente del orden: combinar agregados parciales da el
    mismo resultado que combinar todos los miembros de una vez.
    """
    items = list(members)
    combined = MemberMetrics(member_id=member_id, display_name=display_name, member_count=0)
    for field_name in _ADDITIVE_FIELDS:
        setattr(combined, field_name, sum(getattr(m, field_name) for m in items))

    sources = {m.resolution_source for m in items}
    if "duration" in sources:
        combined.resolution_source = "duration"
    elif "elapsed" in sources:
        combined.resolution_source = "elapsed"
    return finalize(combined)


class MemberRollupEngine:
    """Lote de consultas por propietario -> MemberMetrics.

    Con `member_id=None` no se aplica filtro de propietario y el resultado es
    el agregado de canales de toda la organizacion.
    """

    def __init__(
        self,
        client: QueryClient,
        csat_flag_field: str = "",
        csat_score_field: str = "",
        resolution_duration_field: str = "",
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._client = client
        self._csat_flag = csat_flag_field.strip()
        self._csat_score = csat_score_field.strip()
        self._duration_field = resolution_duration_field.strip()
        self._progress = progress

    def build_queries(
        self, member_id: Optional[str], window: UtcWindow, prefix: str
    ) -> List[BatchQuery]:
        client = self._client
        own = eq(OWNER, member_id) if member_id else ""
        created = window_predicate(CREATED_ON, window)
        modified = window_predicate(MODIFIED_ON, window)
        resolved = and_(own, RESOLVED, modified)
        email = and_(own, EMAIL_ORIGIN, created)

        def count(name: str, flt: str, key: str = CASE_KEY, collection: str = CASES) -> BatchQuery:
            label = f"{prefix} {name}"
            return BatchQuery(label, lambda: client.count(label, collection, flt, key))

        def fetch(name: str, query: ODataQuery) -> BatchQuery:
            label = f"{prefix} {name}"
            return BatchQuery(label, lambda: client.fetch(label, query), default=[])

        queries = [count("owned", and_(own, created))]
        if member_id:
            queries.append(count("created", and_(eq(CREATED_BY, member_id), created)))
        queries += [
            count("resolved", resolved),
            count("active", and_(own, ACTIVE)),
            fetch(
                "SLA",
                ODataQuery(CASES, filter=resolved, select=(CASE_KEY,), expand=kpi_expand(RESOLUTION_KPI)),
            ),
            count("tier 1 owned", and_(own, TIER_ONE, created)),
            count("FCR", and_(own, TIER_ONE, FIRST_RESPONSE_SENT, created)),
            count("escalations", and_(own, ESCALATED, created)),
            fetch(
                "phone calls",
                ODataQuery(
                    PHONE_CALLS,
                    filter=and_(own, window_predicate(CALL_START, window)),
                    select=(ACTIVITY_KEY, CALL_DURATION),
                ),
            ),
            count("email cases", email),
            count("email responded", and_(email, FIRST_RESPONSE_SENT)),
            count("email resolved", and_(email, RESOLVED)),
            fetch(
                "resolution time",
                ODataQuery(
                    CASES,
                    filter=resolved,
                    select=tuple(f for f in (self._duration_field, CREATED_ON, MODIFIED_ON) if f),
                ),
            ),
        ]
        if self._csat_flag and self._csat_score:
            queries.append(
                fetch(
                    "CSAT",
                    ODataQuery(
                        CASES,
                        filter=and_(own, eq(self._csat_flag, True), modified),
                        select=(CASE_KEY, self._csat_score),
                    ),
                )
            )
        return queries

    async def compute(
        self,
        member_id: Optional[str],
        window: UtcWindow,
        display_name: Optional[str] = None,
    ) -> Tuple[MemberMetrics, List[QueryFailure]]:
        if member_id is None:
            prefix = "Organization"
        else:
            prefix = display_name or member_id
        executor = ResilientBatchExecutor(progress=self._progress)
        outcome = await executor.run(self.build_queries(member_id, window, prefix))
        metrics = self.assemble(member_id, display_name, prefix, outcome)
        logger.info(
            "Member rollup %s: owned=%s resolved=%s calls=%s (%s failures)",
            prefix,
            metrics.owned,
            metrics.resolved,
            metrics.calls_total,
            len(outcome.failures),
        )
        return metrics, outcome.failures

    def assemble(
        self,
        member_id: Optional[str],
        display_name: Optional[str],
        prefix: str,
        outcome: BatchOutcome,
    ) -> MemberMetrics:
        def value(name: str, default: Any = 0) -> Any:
            return outcome.get(f"{prefix} {name}", default)

        owned = int(value("owned") or 0)
        metrics = MemberMetrics(
            member_id=member_id or ORGANIZATION_ID,
            display_name=display_name or ("Organization" if member_id is None else None),
            member_count=1 if member_id else 0,
            owned=owned,
            created=int(value("created", owned) or 0),
            resolved=int(value("resolved") or 0),
            active=int(value("active") or 0),
            tier_one_owned=int(value("tier 1 owned") or 0),
            fcr=int(value("FCR") or 0),
            escalated=int(value("escalations") or 0),
            email_total=int(value("email cases") or 0),
            email_responded=int(value("email responded") or 0),
            email_resolved=int(value("email resolved") or 0),
        )

        metrics.sla_met, metrics.sla_missed = kpis.count_kpi_statuses(value("SLA", []), RESOLUTION_KPI)
        self._apply_calls(metrics, value("phone calls", []))
        self._apply_csat(metrics, value("CSAT", []))
        self._apply_resolution(metrics, value("resolution time", []))
        return finalize(metrics)

    @staticmethod
    def _apply_calls(metrics: MemberMetrics, calls: List[dict]) -> None:
        answered = [c for c in calls if not kpis.is_abandoned_call(c.get(CALL_DURATION))]
        metrics.calls_total = len(calls)
        metrics.calls_answered = len(answered)
        metrics.calls_abandoned = len(calls) - len(answered)
        metrics.aht_minutes_total = sum(to_float(c.get(CALL_DURATION)) or 0.0 for c in answered)

    def _apply_csat(self, metrics: MemberMetrics, records: List[dict]) -> None:
        scores = [s for s in (to_float(r.get(self._csat_score)) for r in records) if s is not None]
        metrics.csat_responses = len(records)
        metrics.csat_samples = len(scores)
        metrics.csat_score_total = sum(scores)

    def _apply_resolution(self, metrics: MemberMetrics, records: List[dict]) -> None:
        values = [r.get(self._duration_field) for r in records] if self._duration_field else []
        durations = kpis.duration_minutes(values)
        if durations:
            metrics.resolution_source = "duration"
            metrics.resolution_minutes_total = sum(durations)
            metrics.resolution_samples = len(durations)
            return
        spans = [(to_datetime(r.get(CREATED_ON)), to_datetime(r.get(MODIFIED_ON))) for r in records]
        elapsed = kpis.elapsed_minutes(spans)
        if elapsed:
            metrics.resolution_source = "elapsed"
            metrics.resolution_minutes_total = sum(elapsed)
            metrics.resolution_samples = len(elapsed)
