"""Configuracion central del motor de KPIs.

Lee variables de entorno y expone parametros usados por el cliente de consultas,
los motores de agregacion, la API y el CLI.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Repo / env paths
PACKAGE_DIR = Path(__file__).resolve().parent
if PACKAGE_DIR.parent.name == "backend":
    REPO_ROOT = PACKAGE_DIR.parent.parent
else:
    REPO_ROOT = PACKAGE_DIR.parent

SDR_ENV_PATH = PACKAGE_DIR / ".env"
SDR_ENV_EXAMPLE = PACKAGE_DIR / ".env.example"


def _ensure_env_file() -> None:
    """Crear `backend/servicedeskradar/.env` desde su `.env.example` si falta."""
    if SDR_ENV_PATH.exists():
        return
    if not SDR_ENV_EXAMPLE.exists():
        return
    try:
        SDR_ENV_PATH.write_text(SDR_ENV_EXAMPLE.read_text(encoding="utf-8"), encoding="utf-8")
    except OSError:
        # Instalaciones de solo lectura: se usan variables de entorno.
        return


# Ensure backend env exists before pydantic reads it
_ensure_env_file()


class Settings(BaseSettings):
    """Parametros de configuracion de la aplicacion.

    Se cargan desde entorno/.env con pydantic-settings.
    """

    model_config = SettingsConfigDict(
        env_file=str(SDR_ENV_PATH),
        env_file_encoding="utf-8",
        extra="allow",
    )

    ########################################
    # App
    ########################################
    app_name: str = Field(default="Service Desk Radar", validation_alias="APP_NAME")
    tz: str = Field(default="America/Chicago", validation_alias="TZ")
    time_zone_mode: str = Field(
        default="us_central_rule",
        validation_alias="TIME_ZONE_MODE",
        description="us_central_rule (hard-coded US DST rule) or zoneinfo (tz database).",
    )

    ########################################
    # Dynamics 365 backend
    ########################################
    d365_org_url: str = Field(default="", validation_alias="D365_ORG_URL")
    d365_api_version: str = Field(default="v9.2", validation_alias="D365_API_VERSION")
    d365_access_token: str = Field(default="", validation_alias="D365_ACCESS_TOKEN")
    d365_token_scope: str = Field(default="", validation_alias="D365_TOKEN_SCOPE")

    ########################################
    # Query client
    ########################################
    query_timeout_sec: float = Field(default=30.0, validation_alias="QUERY_TIMEOUT_SEC")
    query_max_retries: int = Field(default=2, validation_alias="QUERY_MAX_RETRIES")
    query_retry_backoff_sec: float = Field(default=1.0, validation_alias="QUERY_RETRY_BACKOFF_SEC")
    query_page_max: int = Field(default=5000, validation_alias="QUERY_PAGE_MAX")
    query_verify_ssl: bool = Field(default=True, validation_alias="QUERY_VERIFY_SSL")

    ########################################
    # Timeline
    ########################################
    timeline_max_days: int = Field(default=90, validation_alias="TIMELINE_MAX_DAYS")
    timeline_concurrency: int = Field(default=3, validation_alias="TIMELINE_CONCURRENCY")

    ########################################
    # Custom fields (solution-specific)
    ########################################
    csat_flag_field: str = Field(
        default="cr7fe_new_csatresponsereceived", validation_alias="CSAT_FLAG_FIELD"
    )
    csat_score_field: str = Field(default="cr7fe_new_csatscore", validation_alias="CSAT_SCORE_FIELD")
    resolution_duration_field: str = Field(
        default="cr7fe_resolutionminutes", validation_alias="RESOLUTION_DURATION_FIELD"
    )

    ########################################
    # Roster discovery
    ########################################
    roster_lookback_days: int = Field(default=30, validation_alias="ROSTER_LOOKBACK_DAYS")

    ########################################
    # Logging
    ########################################
    log_enabled: bool = Field(default=False, validation_alias="LOG_ENABLED")
    log_to_file: bool = Field(default=False, validation_alias="LOG_TO_FILE")
    log_file_name: str = Field(default="servicedeskradar.log", validation_alias="LOG_FILE_NAME")
    log_debug: bool = Field(default=False, validation_alias="LOG_DEBUG")

    def base_api_url(self) -> str:
        """Devuelve la raiz de la Web API: `{org_url}/api/data/{version}`."""
        org = self.d365_org_url.strip().rstrip("/")
        if not org:
            return ""
        version = self.d365_api_version.strip().strip("/") or "v9.2"
        return f"{org}/api/data/{version}"

    def token_scope(self) -> str:
        """Scope solicitado al proveedor de identidad."""
        if self.d365_token_scope.strip():
            return self.d365_token_scope.strip()
        org = self.d365_org_url.strip().rstrip("/")
        return f"{org}/.default" if org else ""


settings = Settings()


def reload_settings() -> None:
    """Recarga `settings` desde `backend/servicedeskradar/.env`."""
    new_settings = Settings()
    for field_name in Settings.model_fields:
        setattr(settings, field_name, getattr(new_settings, field_name))
