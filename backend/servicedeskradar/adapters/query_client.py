"""Cliente OData del backend de casos (Dynamics 365 Web API) sobre httpx.

Cada operacion publica devuelve un `QueryOutcome`: los fallos de transporte,
autenticacion o backend se convierten en un `QueryFailure` con etiqueta y un
valor por defecto (0 o lista vacia). Un fallo nunca aborta el informe.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Generic, Optional, TypeVar

import httpx

from servicedeskradar.adapters.identity import TokenProvider
from servicedeskradar.adapters.odata import ODataQuery
from servicedeskradar.adapters.utils import to_float, to_int, to_str
from servicedeskradar.config import Settings
from servicedeskradar.domain.catalog import CASE_KEY
from servicedeskradar.domain.enums import FailureKind
from servicedeskradar.domain.models import QueryFailure
from servicedeskradar.logging_utils import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_COUNT_ANNOTATION = "@odata.count"
_NEXT_LINK = "@odata.nextLink"


class QueryError(RuntimeError):
    """Error amigable para respuestas no validas del backend."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MissingTokenError(QueryError):
    """El proveedor de identidad no devolvio token."""


@dataclass(frozen=True)
class QueryOutcome(Generic[T]):
    value: T
    failure: Optional[QueryFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass(frozen=True)
class QueryClientConfig:
    base_url: str
    token_scope: str = ""
    timeout_sec: float = 30.0
    max_retries: int = 2
    retry_backoff_sec: float = 1.0
    page_max: int = 5000
    verify_ssl: bool = True

    @classmethod
    def from_settings(cls, settings: Settings) -> "QueryClientConfig":
        return cls(
            base_url=settings.base_api_url(),
            token_scope=settings.token_scope(),
            timeout_sec=settings.query_timeout_sec,
            max_retries=settings.query_max_retries,
            retry_backoff_sec=settings.query_retry_backoff_sec,
            page_max=settings.query_page_max,
            verify_ssl=settings.query_verify_ssl,
        )


def _extract_error_detail(resp: httpx.Response | None) -> str | None:
    """Mensaje del cuerpo `{"error": {"code", "message"}}` de una respuesta OData."""
    if resp is None:
        return None
    try:
        data = resp.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if not isinstance(error, dict):
        return None
    parts: list[str] = []
    code = to_str(error.get("code"))
    message = to_str(error.get("message"))
    if code:
        parts.append(code)
    if message:
        parts.append(message)
    return " | ".join(parts) if parts else None


def _retry_after_seconds(resp: httpx.Response) -> float | None:
    value = to_float(resp.headers.get("retry-after"))
    if value is None or value < 0:
        return None
    return value


def _failure_kind(exc: Exception) -> FailureKind:
    if isinstance(exc, QueryError):
        if isinstance(exc, MissingTokenError) or exc.status_code in (401, 403):
            return FailureKind.AUTH
        return FailureKind.BACKEND
    if isinstance(exc, httpx.HTTPError):
        return FailureKind.TRANSPORT
    return FailureKind.UNEXPECTED


class QueryClient:
    """Conteos y lecturas paginadas contra colecciones OData."""

    def __init__(
        self,
        config: QueryClientConfig,
        token_provider: TokenProvider,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._cfg = config
        self._tokens = token_provider
        self._client = client
        self._transport = transport
        self._owns_client = False

    @property
    def page_max(self) -> int:
        return max(1, int(self._cfg.page_max))

    async def __aenter__(self) -> "QueryClient":
        if self._client is None:
            self._client = self._build_client()
            self._owns_client = True
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            self._owns_client = False

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._cfg.base_url.rstrip("/"),
            headers={
                "Accept": "application/json",
                "OData-MaxVersion": "4.0",
                "OData-Version": "4.0",
            },
            timeout=self._cfg.timeout_sec,
            verify=self._cfg.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )

    @asynccontextmanager
    async def _client_context(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with self._build_client() as client:
            yield client

    # ------------------------------------------------------------------
    # API publica
    # ------------------------------------------------------------------

    async def count(
        self, label: str, collection: str, filter: str, key_field: str = CASE_KEY
    ) -> QueryOutcome[int]:
        """Numero de registros que cumplen `filter`.

        Usa `$count=true`; si el backend lo rechaza (4xx) o no devuelve la
        anotacion, cae a traer claves (hasta `page_max`) y medir la lista.
        """
        try:
            value = await self._count(collection, filter, key_field)
        except (QueryError, httpx.HTTPError) as exc:
            return self._failed(label, exc, 0)
        logger.debug("[QueryClient] %s -> %s", label, value)
        return QueryOutcome(value)

    async def fetch(self, label: str, query: ODataQuery) -> QueryOutcome[list[dict[str, Any]]]:
        """Registros de `query`, siguiendo `@odata.nextLink` hasta `page_max`."""
        try:
            records = await self._fetch_all(query)
        except (QueryError, httpx.HTTPError) as exc:
            return self._failed(label, exc, [])
        logger.debug("[QueryClient] %s -> %s records", label, len(records))
        return QueryOutcome(records)

    # ------------------------------------------------------------------
    # Internos
    # ------------------------------------------------------------------

    def _failed(self, label: str, exc: Exception, default: T) -> QueryOutcome[T]:
        failure = QueryFailure(label=label, message=str(exc) or type(exc).__name__, kind=_failure_kind(exc))
        logger.warning("[QueryClient] Query failed: %s", failure)
        return QueryOutcome(default, failure)

    async def _count(self, collection: str, filter: str, key_field: str) -> int:
        native = ODataQuery(collection, filter=filter, select=(key_field,), top=1, count=True)
        try:
            data = await self._get_json(collection, native.to_params())
        except QueryError as exc:
            if isinstance(exc, MissingTokenError) or exc.status_code in (401, 403):
                raise
            if exc.status_code is None or not 400 <= exc.status_code < 500:
                raise
            logger.debug("[QueryClient] $count rejected on %s (%s); measuring", collection, exc)
            return await self._measured_count(collection, filter, key_field)

        value = to_int(data.get(_COUNT_ANNOTATION))
        if value is None:
            logger.debug("[QueryClient] No %s on %s; measuring", _COUNT_ANNOTATION, collection)
            return await self._measured_count(collection, filter, key_field)
        return value

    async def _measured_count(self, collection: str, filter: str, key_field: str) -> int:
        query = ODataQuery(collection, filter=filter, select=(key_field,), top=self.page_max)
        return len(await self._fetch_all(query))

    async def _fetch_all(self, query: ODataQuery) -> list[dict[str, Any]]:
        limit = self.page_max
        out: list[dict[str, Any]] = []
        url: str = query.collection
        params: dict[str, str] | None = query.to_params()
        while url:
            data = await self._get_json(url, params)
            values = data.get("value")
            if not isinstance(values, list):
                raise QueryError("Invalid OData response (missing 'value' list)")
            out.extend(v for v in values if isinstance(v, dict))
            if len(out) >= limit:
                if len(out) > limit or data.get(_NEXT_LINK):
                    logger.debug("[QueryClient] %s truncated at %s records", query.collection, limit)
                return out[:limit]
            next_link = to_str(data.get(_NEXT_LINK))
            url = next_link or ""
            # nextLink ya incluye la query string completa
            params = None
        return out

    async def _token(self) -> str:
        scope = self._cfg.token_scope
        try:
            token = await self._tokens.get_token(scope)
        except Exception as exc:
            logger.warning("[QueryClient] Token provider failed: %s", exc)
            token = None
        if not token:
            raise MissingTokenError("No access token available", status_code=401)
        return token

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Prefer": f'odata.include-annotations="*",odata.maxpagesize={self.page_max}',
        }

    def _parse_json_dict(self, resp: httpx.Response) -> dict[str, Any]:
        content_type = (resp.headers.get("content-type") or "").lower()
        try:
            data = resp.json()
        except ValueError as exc:
            raise QueryError(
                f"Unexpected backend response (non-JSON; content-type={content_type or 'unknown'})",
                status_code=resp.status_code,
            ) from exc
        if not isinstance(data, dict):
            raise QueryError("Invalid backend response (expected JSON object)", resp.status_code)
        return data

    async def _get_json(self, url: str, params: dict[str, str] | None) -> dict[str, Any]:
        """GET con reintentos ante errores de transporte, 429 y 5xx."""
        if not self._cfg.base_url and not url.lower().startswith(("http://", "https://")):
            raise QueryError("D365_ORG_URL is required (e.g. https://tu-org.crm.dynamics.com)")
        token = await self._token()
        headers = self._headers(token)
        retries = max(0, int(self._cfg.max_retries))
        backoff = max(0.0, float(self._cfg.retry_backoff_sec))

        async with self._client_context() as client:
            for attempt in range(retries + 1):
                delay = backoff * (2**attempt)
                try:
                    resp = await client.get(url, params=params, headers=headers)
                except httpx.TransportError as exc:
                    if attempt >= retries:
                        raise
                    logger.debug(
                        "[QueryClient] Transport error on %s (attempt %s): %s", url, attempt + 1, exc
                    )
                    await asyncio.sleep(delay)
                    continue

                status = resp.status_code
                if (status == 429 or status >= 500) and attempt < retries:
                    wait = _retry_after_seconds(resp)
                    logger.debug("[QueryClient] HTTP %s on %s (attempt %s)", status, url, attempt + 1)
                    await asyncio.sleep(wait if wait is not None else delay)
                    continue
                if status >= 400:
                    detail = _extract_error_detail(resp)
                    if detail:
                        raise QueryError(f"Backend request failed ({status}): {detail}", status)
                    raise QueryError(f"Backend request failed ({status}).", status)
                return self._parse_json_dict(resp)

        raise QueryError("Backend request failed (retries exhausted).")
