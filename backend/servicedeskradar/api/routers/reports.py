"""Endpoints de informes de KPIs."""

from __future__ import annotations

from fastapi import APIRouter, Request

from servicedeskradar.domain.models import AggregateReport, ReportRequest

router = APIRouter()


@router.post("", response_model=AggregateReport)
async def create_report(request: Request, body: ReportRequest) -> AggregateReport:
    """Ejecuta el informe; los fallos parciales viajan en `errors`, no como HTTP 5xx."""
    reporting = request.app.state.reporting
    return await reporting.build_report(body)
