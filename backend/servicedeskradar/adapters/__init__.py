"""Adaptadores hacia el backend de casos (OData) y el proveedor de identidad."""

from servicedeskradar.adapters.identity import StaticTokenProvider, TokenProvider
from servicedeskradar.adapters.odata import ODataQuery
from servicedeskradar.adapters.query_client import (
    QueryClient,
    QueryClientConfig,
    QueryError,
    QueryOutcome,
)

__all__ = [
    "ODataQuery",
    "QueryClient",
    "QueryClientConfig",
    "QueryError",
    "QueryOutcome",
    "StaticTokenProvider",
    "TokenProvider",
]
