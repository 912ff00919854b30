"""Tests de endpoints FastAPI."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List

from fastapi.testclient import TestClient

from servicedeskradar.api.main import create_app
from servicedeskradar.domain.models import (
    AggregateReport,
    Member,
    ReportRequest,
    Roster,
    TierMetrics,
)
from servicedeskradar.domain.timewindow import TimeWindowResolver


class DummyReporting:
    def __init__(self) -> None:
        self.requests: List[ReportRequest] = []
        self.rosters: List[int] = []

    async def build_report(self, request: ReportRequest) -> AggregateReport:
        self.requests.append(request)
        tier = TierMetrics(
            tier_code=1,
            tier_label="Tier 1",
            tier_name="Service Desk",
            total_cases=20,
            sla_met=16,
            sla_missed=2,
            sla_compliance=89,
            applicable_metrics=["sla_compliance", "total_cases"],
        )
        return AggregateReport(
            generated_at=datetime.now(timezone.utc),
            request=request,
            window=TimeWindowResolver().resolve_window(request),
            tiers=[tier],
            errors=["Tier 1 escalations: HTTP 500"],
        )

    async def discover_roster(self, tier_code: int) -> Roster:
        self.rosters.append(tier_code)
        return Roster(tier_code=tier_code, source="queue", members=[Member(id="u1", name="Ryan Jones", tier=tier_code)])


def _client() -> tuple[TestClient, DummyReporting]:
    app = create_app()
    dummy = DummyReporting()
    app.state.reporting = dummy
    return TestClient(app), dummy


def test_health_ok() -> None:
    client, _ = _client()
    res = client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok", "date": date.today().isoformat()}


def test_targets_and_tiers_catalog() -> None:
    client, _ = _client()

    targets = client.get("/targets").json()
    assert targets["sla_compliance"] == {"target": 90, "compare": "gte", "label": "90%", "unit": "%"}
    assert targets["escalation_rate"]["compare"] == "lt"

    tiers = client.get("/tiers").json()
    assert [t["code"] for t in tiers] == [1, 2, 3]
    assert tiers[0]["filter"] == "casetypecode eq 1"
    assert tiers[1]["date_field"] == "escalatedon"
    assert "fcr_rate" in tiers[0]["metrics"]


def test_post_report_returns_aggregate_with_errors() -> None:
    client, dummy = _client()
    res = client.post(
        "/reports",
        json={
            "local_start_date": "2025-01-06",
            "local_end_date": "2025-01-10",
            "scope": {"kind": "by_tier", "tier_codes": [1]},
        },
    )
    assert res.status_code == 200
    payload = res.json()
    assert payload["window"]["start"]["date"] == "2025-01-06"
    assert payload["tiers"][0]["sla_compliance"] == 89
    assert payload["tiers"][0]["target_status"]["sla_compliance"] == "warn"
    assert payload["errors"] == ["Tier 1 escalations: HTTP 500"]
    assert dummy.requests[0].scope.tier_codes == [1]


def test_post_report_by_members() -> None:
    client, dummy = _client()
    res = client.post(
        "/reports",
        json={
            "local_start_date": "2025-01-06",
            "local_end_date": "2025-01-06",
            "scope": {"kind": "by_members", "member_ids": ["u1", "u2"]},
            "include_timeline": False,
        },
    )
    assert res.status_code == 200
    assert dummy.requests[0].scope.member_ids == ["u1", "u2"]


def test_post_report_rejects_invalid_range() -> None:
    client, dummy = _client()
    res = client.post(
        "/reports",
        json={"local_start_date": "2025-01-10", "local_end_date": "2025-01-06"},
    )
    assert res.status_code == 422
    assert dummy.requests == []


def test_roster_endpoint() -> None:
    client, dummy = _client()
    res = client.get("/roster/2")
    assert res.status_code == 200
    assert res.json()["members"] == [{"id": "u1", "name": "Ryan Jones", "tier": 2}]
    assert dummy.rosters == [2]

    missing = client.get("/roster/9")
    assert missing.status_code == 404
    assert dummy.rosters == [2]
