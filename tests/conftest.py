"""Fixtures compartidas para tests del backend."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
BACKEND = ROOT / "backend"

# Ensure the backend package is importable without installing.
if str(BACKEND) not in sys.path:
    sys.path.insert(0, str(BACKEND))

from servicedeskradar.adapters.identity import StaticTokenProvider  # noqa: E402
from servicedeskradar.adapters.query_client import QueryClient, QueryClientConfig  # noqa: E402
from servicedeskradar.domain.models import ReportRequest, UtcWindow  # noqa: E402
from servicedeskradar.domain.timewindow import TimeWindowResolver  # noqa: E402

BASE_URL = "https://org.example/api/data/v9.2"


@dataclass
class Route:
    collection: str
    fragments: Tuple[str, ...]
    records: List[Dict[str, Any]] = field(default_factory=list)
    count: Optional[int] = None
    status: int = 200


class FakeBackend:
    """Backend OData minimo: responde segun coleccion y fragmentos del `$filter`.

    Gana la ruta que casa con mas fragmentos; sin ruta devuelve 0 / lista vacia.
    """

    def __init__(self) -> None:
        self.routes: List[Route] = []
        self.requests: List[httpx.Request] = []

    def add(
        self,
        collection: str,
        *fragments: str,
        records: Optional[List[Dict[str, Any]]] = None,
        count: Optional[int] = None,
        status: int = 200,
    ) -> "FakeBackend":
        self.routes.append(Route(collection, fragments, list(records or []), count, status))
        return self

    def filters(self) -> List[str]:
        return [r.url.params.get("$filter", "") for r in self.requests]

    def _match(self, collection: str, flt: str) -> Optional[Route]:
        best: Optional[Route] = None
        for route in self.routes:
            if route.collection != collection:
                continue
            if not all(fragment in flt for fragment in route.fragments):
                continue
            if best is None or len(route.fragments) > len(best.fragments):
                best = route
        return best

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        collection = request.url.path.rsplit("/", 1)[-1]
        flt = request.url.params.get("$filter", "")
        route = self._match(collection, flt)
        if route is None:
            route = Route(collection, ())
        if route.status >= 400:
            return httpx.Response(route.status, json={"error": {"code": "0x0", "message": "boom"}})
        if request.url.params.get("$count") == "true":
            value = route.count if route.count is not None else len(route.records)
            return httpx.Response(200, json={"@odata.count": value, "value": route.records[:1]})
        return httpx.Response(200, json={"value": route.records})


def make_query_client(
    handler: Callable[[httpx.Request], httpx.Response],
    token: Optional[str] = "token",
    **config: Any,
) -> QueryClient:
    cfg = QueryClientConfig(
        base_url=BASE_URL,
        token_scope="https://org.example/.default",
        max_retries=config.pop("max_retries", 2),
        retry_backoff_sec=config.pop("retry_backoff_sec", 0.0),
        **config,
    )
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return QueryClient(cfg, StaticTokenProvider(token), client=client)


def make_window(start: date, end: date, start_time: str = "00:00", end_time: str = "23:59") -> UtcWindow:
    request = ReportRequest(
        local_start_date=start,
        local_end_date=end,
        local_start_time=start_time,
        local_end_time=end_time,
    )
    return TimeWindowResolver().resolve_window(request)


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def window() -> UtcWindow:
    return make_window(date(2025, 1, 6), date(2025, 1, 10))


@pytest.fixture()
def client_factory() -> Callable[..., QueryClient]:
    return make_query_client


@pytest.fixture()
def window_factory() -> Callable[..., UtcWindow]:
    return make_window
