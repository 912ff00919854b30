from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Callable

import httpx

from servicedeskradar.domain.models import UtcWindow
from servicedeskradar.domain.presets import preset_range
from servicedeskradar.services.timeline import TimelineBucketer, bucket_counts, build_points


def _bucketer(client: Any, **kwargs: Any) -> TimelineBucketer:
    return TimelineBucketer(
        client,
        concurrency=3,
        csat_flag_field="cr7fe_new_csatresponsereceived",
        csat_score_field="cr7fe_new_csatscore",
        **kwargs,
    )


def test_five_day_window_has_one_point_per_day(
    backend: Any, client_factory: Callable[..., Any], window: UtcWindow
) -> None:
    backend.add(
        "incidents",
        "casetypecode eq 1",
        "createdon ge",
        records=[
            {"createdon": "2025-01-06T15:00:00Z"},
            {"createdon": "2025-01-08T10:00:00Z"},
            {"createdon": "2025-01-08T22:30:00Z"},
        ],
    )
    backend.add(
        "incidents",
        "casetypecode eq 1",
        "resolvebyslastatus eq 4",
        "createdon ge",
        records=[{"createdon": "2025-01-06T15:00:00Z"}],
    )
    backend.add("phonecalls", "actualstart ge", records=[{"actualstart": "2025-01-08T14:00:00Z"}])
    backend.add(
        "incidents",
        "cr7fe_new_csatresponsereceived eq true",
        records=[
            {"modifiedon": "2025-01-06T18:00:00Z", "cr7fe_new_csatscore": 5},
            {"modifiedon": "2025-01-06T19:00:00Z", "cr7fe_new_csatscore": 4},
        ],
    )

    progress: list[str] = []
    bucketer = _bucketer(client_factory(backend), progress=lambda d, t, label: progress.append(label))
    points, failures = asyncio.run(bucketer.build(window))

    assert failures == []
    assert [p.date for p in points] == ["2025-01-06", "2025-01-07", "2025-01-08", "2025-01-09", "2025-01-10"]
    assert points[0].label == "Jan 6"
    assert [p.counts["t1_cases"] for p in points] == [1, 0, 2, 0, 0]
    assert [p.counts["calls"] for p in points] == [0, 0, 1, 0, 0]
    assert all(p.counts["t2_cases"] == 0 and p.counts["t3_cases"] == 0 for p in points)
    assert points[0].rates == {"sla": 100, "csat": 4.5}
    assert points[1].rates == {"sla": "N/A", "csat": "N/A"}
    assert points[2].rates["sla"] == 0
    assert len(progress) == 6


def test_timeline_is_skipped_outside_day_range(
    backend: Any, client_factory: Callable[..., Any], window_factory: Callable[..., UtcWindow]
) -> None:
    bucketer = _bucketer(client_factory(backend))

    one_day = window_factory(date(2025, 1, 6), date(2025, 1, 6))
    too_long = window_factory(date(2025, 1, 1), date(2025, 4, 2))

    assert asyncio.run(bucketer.build(one_day)) == ([], [])
    assert asyncio.run(bucketer.build(too_long)) == ([], [])
    assert backend.requests == []


def test_ninety_day_preset_yields_ninety_points(
    backend: Any, client_factory: Callable[..., Any], window_factory: Callable[..., UtcWindow]
) -> None:
    start, end = preset_range("90d", date(2025, 5, 20))
    window = window_factory(start, end)
    assert window.span_days() == 90

    points, failures = asyncio.run(_bucketer(client_factory(backend)).build(window))

    assert failures == []
    assert len(points) == 90
    assert points[0].date == "2025-02-19"
    assert points[-1].date == "2025-05-19"


def test_two_day_window_has_two_points(
    backend: Any, client_factory: Callable[..., Any], window_factory: Callable[..., UtcWindow]
) -> None:
    window = window_factory(date(2025, 1, 6), date(2025, 1, 7))
    points, _ = asyncio.run(_bucketer(client_factory(backend)).build(window))
    assert [p.date for p in points] == ["2025-01-06", "2025-01-07"]


def test_failed_series_still_produces_zero_filled_points(
    client_factory: Callable[..., Any], window: UtcWindow
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("phonecalls"):
            return httpx.Response(403, json={"error": {"code": "0x80040220", "message": "no read on phonecall"}})
        return httpx.Response(200, json={"value": []})

    points, failures = asyncio.run(_bucketer(client_factory(handler)).build(window))
    assert len(points) == 5
    assert all(p.counts["calls"] == 0 for p in points)
    assert [f.label for f in failures] == ["Timeline calls"]


def test_bucket_helpers_do_not_relocalize() -> None:
    counts = bucket_counts([{"d": "2025-01-07T02:00:00Z"}, {"d": None}, {"d": "garbage"}], "d")
    assert counts == {"2025-01-07": 1}
    points = build_points(date(2025, 1, 6), date(2025, 1, 7), {"t1_cases": counts})
    assert [p.counts["t1_cases"] for p in points] == [0, 1]
