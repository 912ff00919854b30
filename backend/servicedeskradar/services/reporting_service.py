"""Servicio de reporting: orquesta ventana UTC, rollups, timeline y errores."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

import httpx

from servicedeskradar.adapters.identity import StaticTokenProvider, TokenProvider
from servicedeskradar.adapters.query_client import QueryClient, QueryClientConfig
from servicedeskradar.config import Settings
from servicedeskradar.domain.models import (
    AggregateReport,
    MembersScope,
    MemberMetrics,
    OverallSummary,
    QueryFailure,
    ReportRequest,
    Roster,
    TierMetrics,
    TimelinePoint,
    UtcWindow,
)
from servicedeskradar.domain.timewindow import LocalToUtcConverter, TimeWindowResolver, build_converter
from servicedeskradar.logging_utils import get_logger
from servicedeskradar.services.batch_executor import ProgressCallback
from servicedeskradar.services.member_rollup import MemberRollupEngine, combine_members
from servicedeskradar.services.roster import RosterService, default_probes
from servicedeskradar.services.tier_rollup import TierRollupEngine
from servicedeskradar.services.timeline import TimelineBucketer

logger = get_logger(__name__)


def overall_from(source: Optional[MemberMetrics]) -> OverallSummary:
    if source is None:
        return OverallSummary()
    return OverallSummary(
        created=source.created,
        resolved=source.resolved,
        csat_responses=source.csat_responses,
        answered_calls=source.calls_answered,
        abandoned_calls=source.calls_abandoned,
    )


class ReportingService:
    """Capa de servicio: construye un AggregateReport a partir de un ReportRequest.

    El proveedor de identidad se inyecta; por defecto se usa el token estatico
    configurado.
    """

    def __init__(
        self,
        settings: Settings,
        token_provider: Optional[TokenProvider] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        converter: Optional[LocalToUtcConverter] = None,
    ) -> None:
        self._settings = settings
        self._tokens = token_provider or StaticTokenProvider(settings.d365_access_token)
        self._transport = transport
        self._resolver = TimeWindowResolver(
            converter or build_converter(settings.time_zone_mode, settings.tz)
        )

    def resolve_window(self, request: ReportRequest) -> UtcWindow:
        return self._resolver.resolve_window(request)

    def _query_client(self) -> QueryClient:
        return QueryClient(
            QueryClientConfig.from_settings(self._settings),
            self._tokens,
            transport=self._transport,
        )

    async def build_report(
        self, request: ReportRequest, progress: Optional[ProgressCallback] = None
    ) -> AggregateReport:
        s = self._settings
        window = self.resolve_window(request)
        logger.info(
            "Report started: %s -> %s (%s)",
            window.start.iso,
            window.end.iso,
            request.scope.kind,
        )

        failures: List[QueryFailure] = []
        tiers: List[TierMetrics] = []
        members: List[MemberMetrics] = []
        team: Optional[MemberMetrics] = None
        organization: Optional[MemberMetrics] = None
        timeline: List[TimelinePoint] = []

        async with self._query_client() as client:
            member_engine = MemberRollupEngine(
                client,
                csat_flag_field=s.csat_flag_field,
                csat_score_field=s.csat_score_field,
                resolution_duration_field=s.resolution_duration_field,
                progress=progress,
            )

            scope = request.scope
            if isinstance(scope, MembersScope):
                # de uno en uno: progreso predecible y carga acotada sobre el backend
                for member_id in scope.member_ids:
                    metrics, errs = await member_engine.compute(
                        member_id, window, scope.member_names.get(member_id)
                    )
                    members.append(metrics)
                    failures.extend(errs)
                if len(members) > 1:
                    team = combine_members(members)
            else:
                tier_engine = TierRollupEngine(
                    client,
                    resolution_duration_field=s.resolution_duration_field,
                    progress=progress,
                )
                for code in scope.tier_codes:
                    metrics_t, errs = await tier_engine.compute(code, window)
                    tiers.append(metrics_t)
                    failures.extend(errs)
                organization, errs = await member_engine.compute(None, window)
                failures.extend(errs)

            if request.include_timeline:
                bucketer = TimelineBucketer(
                    client,
                    concurrency=s.timeline_concurrency,
                    max_days=s.timeline_max_days,
                    csat_flag_field=s.csat_flag_field,
                    csat_score_field=s.csat_score_field,
                    progress=progress,
                )
                timeline, errs = await bucketer.build(window)
                failures.extend(errs)

        if organization is not None:
            overall = overall_from(organization)
        else:
            overall = overall_from(team or (members[0] if members else None))

        report = AggregateReport(
            generated_at=datetime.now(timezone.utc),
            request=request,
            window=window,
            tiers=tiers,
            members=members,
            team=team,
            organization=organization,
            overall=overall,
            timeline=timeline,
            errors=[str(f) for f in failures],
        )
        logger.info("Report finished (%s errors)", len(report.errors))
        return report

    async def discover_roster(self, tier_code: int) -> Roster:
        async with self._query_client() as client:
            service = RosterService(client, default_probes(self._settings.roster_lookback_days))
            return await service.discover(tier_code)

    def run_report(
        self, request: ReportRequest, progress: Optional[ProgressCallback] = None
    ) -> AggregateReport:
        """Variante sincrona para el CLI."""
        return asyncio.run(self.build_report(request, progress))

    def run_roster(self, tier_code: int) -> Roster:
        return asyncio.run(self.discover_roster(tier_code))
