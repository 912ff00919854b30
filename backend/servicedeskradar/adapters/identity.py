"""Contrato con el proveedor de identidad (tokens bearer bajo demanda)."""

from __future__ import annotations

from typing import Optional, Protocol


class TokenProvider(Protocol):
    """Devuelve un token valido para `scope` o None si no hay acceso.

    Un None no es un error fatal: las consultas afectadas quedan sin datos.
    """

    async def get_token(self, scope: str) -> Optional[str]: ...


class StaticTokenProvider:
    """Token fijo configurado (D365_ACCESS_TOKEN)."""

    def __init__(self, token: Optional[str]) -> None:
        self._token = (token or "").strip()

    async def get_token(self, scope: str) -> Optional[str]:
        return self._token or None
