from __future__ import annotations

import asyncio
from typing import Any, Callable

import httpx

from servicedeskradar.domain.enums import TargetStatus
from servicedeskradar.domain.models import UtcWindow
from servicedeskradar.services.tier_rollup import TierRollupEngine


def _tier_one_backend(backend: Any) -> Any:
    resolved = [
        {
            "incidentid": f"r{i}",
            "resolvebykpiid": {"status": 4 if i < 16 else 1},
            "cr7fe_resolutionminutes": 30,
        }
        for i in range(18)
    ]
    created = [{"incidentid": f"c{i}", "firstresponsebykpiid": {"status": 1 if i == 0 else 4}} for i in range(20)]
    active = [{"incidentid": f"a{i}", "resolvebykpiid": {"status": 1 if i == 0 else 0}} for i in range(4)]

    backend.add("incidents", "casetypecode eq 1", "createdon ge", count=20, records=created)
    backend.add("incidents", "casetypecode eq 1", "statecode eq 1", "createdon ge", count=18, records=resolved)
    backend.add("incidents", "casetypecode eq 1", "firstresponsesent eq true", "createdon ge", count=18)
    backend.add("incidents", "casetypecode eq 1", "statecode eq 0", records=active)
    backend.add("incidents", "casetypecode eq 2", "escalatedon ge", count=1)
    return backend


def test_tier_one_end_to_end_scenario(
    backend: Any, client_factory: Callable[..., Any], window: UtcWindow
) -> None:
    engine = TierRollupEngine(
        client_factory(_tier_one_backend(backend)), resolution_duration_field="cr7fe_resolutionminutes"
    )
    metrics, failures = asyncio.run(engine.compute(1, window))

    assert failures == []
    assert metrics.total_cases == 20
    assert metrics.resolved == 18
    assert (metrics.sla_met, metrics.sla_missed) == (16, 2)
    assert metrics.sla_compliance == 89
    assert metrics.statuses()["sla_compliance"] == TargetStatus.WARN
    assert metrics.response_sla == 95
    assert (metrics.open_breach_count, metrics.open_total) == (1, 4)
    assert metrics.open_breach_rate == 25
    assert metrics.fcr_count == 18
    assert metrics.fcr_rate == 90
    assert metrics.escalated == 1
    assert metrics.escalation_rate == 5
    assert metrics.avg_resolution_time == "30 min"


def test_failed_sla_query_yields_na_but_keeps_other_metrics(
    backend: Any, client_factory: Callable[..., Any], window: UtcWindow
) -> None:
    _tier_one_backend(backend)

    def handler(request: httpx.Request) -> httpx.Response:
        expand = request.url.params.get("$expand", "")
        if expand.startswith("resolvebykpiid") and "statecode eq 1" in request.url.params.get("$filter", ""):
            return httpx.Response(500, json={"error": {"code": "0x0", "message": "SQL timeout"}})
        return backend(request)

    engine = TierRollupEngine(client_factory(handler, max_retries=0))
    metrics, failures = asyncio.run(engine.compute(1, window))

    assert metrics.sla_compliance == "N/A"
    assert metrics.statuses()["sla_compliance"] == TargetStatus.NA
    assert metrics.total_cases == 20
    assert metrics.fcr_rate == 90
    assert [f.label for f in failures] == ["Tier 1 SLA"]
    assert "SQL timeout" in str(failures[0])


def test_tier_two_uses_escalation_date_and_tier_three_escalations(
    backend: Any, client_factory: Callable[..., Any], window: UtcWindow
) -> None:
    backend.add("incidents", "casetypecode eq 2", "escalatedon ge", count=10)
    backend.add("incidents", "casetypecode eq 3", "escalatedon ge", count=2)
    engine = TierRollupEngine(client_factory(backend))

    metrics, failures = asyncio.run(engine.compute(2, window))

    assert failures == []
    assert metrics.total_cases == 10
    assert metrics.escalated == 2
    assert metrics.escalation_rate == 20
    assert metrics.fcr_rate == "N/A"
    assert metrics.sla_compliance == "N/A"
    filters = backend.filters()
    assert all("createdon" not in f for f in filters)
    assert not any("firstresponsesent" in f for f in filters)


def test_tier_three_has_no_escalation_query(
    backend: Any, client_factory: Callable[..., Any], window: UtcWindow
) -> None:
    engine = TierRollupEngine(client_factory(backend))
    metrics, _ = asyncio.run(engine.compute(3, window))

    assert metrics.tier_name == "Relationship Managers"
    assert metrics.escalation_rate == "N/A"
    assert "escalation_rate" not in metrics.statuses()
    assert not any("casetypecode eq 4" in f for f in backend.filters())
