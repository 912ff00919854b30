"""Agregacion de KPIs por tier de soporte."""

from __future__ import annotations

from typing import Any, List, Optional, Tuple

from servicedeskradar.adapters.odata import ODataQuery, and_, window_predicate
from servicedeskradar.adapters.query_client import QueryClient
from servicedeskradar.adapters.utils import to_datetime
from servicedeskradar.domain import kpis
from servicedeskradar.domain.catalog import (
    CASE_KEY,
    CASES,
    CREATED_ON,
    ESCALATED_ON,
    FIRST_RESPONSE_KPI,
    MODIFIED_ON,
    RESOLUTION_KPI,
    TIERS,
    Tier,
    get_tier,
)
from servicedeskradar.domain.enums import CaseState
from servicedeskradar.domain.models import QueryFailure, TierMetrics, UtcWindow
from servicedeskradar.logging_utils import get_logger
from servicedeskradar.services.batch_executor import (
    BatchOutcome,
    BatchQuery,
    ProgressCallback,
    ResilientBatchExecutor,
)

logger = get_logger(__name__)

RESOLVED = f"statecode eq {int(CaseState.RESOLVED)}"
ACTIVE = f"statecode eq {int(CaseState.ACTIVE)}"
FIRST_RESPONSE_SENT = "firstresponsesent eq true"


def kpi_expand(relation: str) -> str:
    return f"{relation}($select=status)"


class TierRollupEngine:
    """Lote fijo de consultas por tier y ventana UTC -> TierMetrics.

    Cada subconsulta puede fallar por separado; el KPI afectado queda "N/A"
    y el resto del informe sigue siendo valido.
    """

    def __init__(
        self,
        client: QueryClient,
        resolution_duration_field: str = "",
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self._client = client
        self._duration_field = resolution_duration_field.strip()
        self._progress = progress

    def build_queries(self, tier: Tier, window: UtcWindow) -> List[BatchQuery]:
        client = self._client
        base = and_(tier.predicate(), window_predicate(tier.primary_date_field, window))
        resolved = and_(base, RESOLVED)
        prefix = tier.label

        queries = [
            BatchQuery(f"{prefix} total cases", lambda: client.count(f"{prefix} total cases", CASES, base)),
            BatchQuery(f"{prefix} resolved", lambda: client.count(f"{prefix} resolved", CASES, resolved)),
            BatchQuery(
                f"{prefix} SLA",
                lambda: client.fetch(
                    f"{prefix} SLA",
                    ODataQuery(CASES, filter=resolved, select=(CASE_KEY,), expand=kpi_expand(RESOLUTION_KPI)),
                ),
                default=[],
            ),
            BatchQuery(
                f"{prefix} response SLA",
                lambda: client.fetch(
                    f"{prefix} response SLA",
                    ODataQuery(CASES, filter=base, select=(CASE_KEY,), expand=kpi_expand(FIRST_RESPONSE_KPI)),
                ),
                default=[],
            ),
        ]

        if tier.applies("open_breach_rate"):
            # sin ventana: casos activos ahora mismo
            active = and_(tier.predicate(), ACTIVE)
            queries.append(
                BatchQuery(
                    f"{prefix} open breaches",
                    lambda: client.fetch(
                        f"{prefix} open breaches",
                        ODataQuery(CASES, filter=active, select=(CASE_KEY,), expand=kpi_expand(RESOLUTION_KPI)),
                    ),
                    default=[],
                )
            )

        if tier.applies("fcr_rate"):
            fcr = and_(base, FIRST_RESPONSE_SENT)
            queries.append(
                BatchQuery(f"{prefix} FCR", lambda: client.count(f"{prefix} FCR", CASES, fcr))
            )

        next_tier = TIERS.get(tier.code + 1)
        if tier.applies("escalation_rate") and next_tier is not None:
            escalated = and_(next_tier.predicate(), window_predicate(ESCALATED_ON, window))
            queries.append(
                BatchQuery(
                    f"{prefix} escalations",
                    lambda: client.count(f"{prefix} escalations", CASES, escalated),
                )
            )

        if tier.applies("avg_resolution_time"):
            select = tuple(f for f in (self._duration_field, CREATED_ON, MODIFIED_ON) if f)
            queries.append(
                BatchQuery(
                    f"{prefix} resolution time",
                    lambda: client.fetch(
                        f"{prefix} resolution time", ODataQuery(CASES, filter=resolved, select=select)
                    ),
                    default=[],
                )
            )
        return queries

    async def compute(self, tier_code: int, window: UtcWindow) -> Tuple[TierMetrics, List[QueryFailure]]:
        tier = get_tier(tier_code)
        executor = ResilientBatchExecutor(progress=self._progress)
        outcome = await executor.run(self.build_queries(tier, window))
        metrics = self.assemble(tier, outcome)
        logger.info(
            "%s rollup: total=%s resolved=%s sla=%s (%s failures)",
            tier.label,
            metrics.total_cases,
            metrics.resolved,
            metrics.sla_compliance,
            len(outcome.failures),
        )
        return metrics, outcome.failures

    def assemble(self, tier: Tier, outcome: BatchOutcome) -> TierMetrics:
        prefix = tier.label
        total = int(outcome.get(f"{prefix} total cases", 0) or 0)
        resolved = int(outcome.get(f"{prefix} resolved", 0) or 0)

        sla_met, sla_missed = kpis.count_kpi_statuses(outcome.get(f"{prefix} SLA", []), RESOLUTION_KPI)
        resp_met, resp_missed = kpis.count_kpi_statuses(
            outcome.get(f"{prefix} response SLA", []), FIRST_RESPONSE_KPI
        )

        metrics = TierMetrics(
            tier_code=tier.code,
            tier_label=tier.label,
            tier_name=tier.name,
            total_cases=total,
            resolved=resolved,
            sla_met=sla_met,
            sla_missed=sla_missed,
            sla_compliance=kpis.safe_rate(sla_met, sla_met + sla_missed),
            response_sla_met=resp_met,
            response_sla_missed=resp_missed,
            response_sla=kpis.safe_rate(resp_met, resp_met + resp_missed),
            applicable_metrics=list(tier.applicable_metric_keys),
        )

        if tier.applies("open_breach_rate"):
            active: List[Any] = outcome.get(f"{prefix} open breaches", [])
            _, breached = kpis.count_kpi_statuses(active, RESOLUTION_KPI)
            metrics.open_breach_count = breached
            metrics.open_total = len(active)
            metrics.open_breach_rate = kpis.safe_rate(breached, len(active))

        if tier.applies("fcr_rate"):
            metrics.fcr_count = int(outcome.get(f"{prefix} FCR", 0) or 0)
            metrics.fcr_rate = kpis.safe_rate(metrics.fcr_count, total)

        if f"{prefix} escalations" in outcome.values:
            metrics.escalated = int(outcome.get(f"{prefix} escalations", 0) or 0)
            metrics.escalation_rate = kpis.safe_rate(metrics.escalated, total)

        if tier.applies("avg_resolution_time"):
            records = outcome.get(f"{prefix} resolution time", [])
            metrics.avg_resolution_time = self._average_resolution(records)
        return metrics

    def _average_resolution(self, records: List[dict]) -> str:
        values = [r.get(self._duration_field) for r in records] if self._duration_field else []
        spans = [(to_datetime(r.get(CREATED_ON)), to_datetime(r.get(MODIFIED_ON))) for r in records]
        return kpis.average_duration(values, spans)
