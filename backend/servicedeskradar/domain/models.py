"""Modelos canonicos del dominio (Pydantic)."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from servicedeskradar.domain.catalog import TIERS
from servicedeskradar.domain.enums import FailureKind, TargetStatus
from servicedeskradar.domain.kpis import NA, Average, Rate, classify_many

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _check_hhmm(value: str) -> str:
    value = (value or "").strip() or "00:00"
    if not _HHMM.match(value):
        raise ValueError(f"time must be HH:MM (got {value!r})")
    return value


class TierScope(BaseModel):
    """Organizacion completa desglosada por tier."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["by_tier"] = "by_tier"
    tier_codes: List[int] = Field(default_factory=lambda: sorted(TIERS))

    @field_validator("tier_codes")
    @classmethod
    def _known_tiers(cls, value: List[int]) -> List[int]:
        if not value:
            raise ValueError("tier_codes must not be empty")
        unknown = [code for code in value if code not in TIERS]
        if unknown:
            raise ValueError(f"unknown tier codes: {unknown}")
        return list(dict.fromkeys(value))


class MembersScope(BaseModel):
    """Lista explicita de miembros del equipo (por id de usuario)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["by_members"] = "by_members"
    member_ids: List[str] = Field(min_length=1)
    member_names: Dict[str, str] = Field(default_factory=dict)

    @field_validator("member_ids")
    @classmethod
    def _clean_ids(cls, value: List[str]) -> List[str]:
        cleaned = [v.strip() for v in value if v and v.strip()]
        if not cleaned:
            raise ValueError("member_ids must contain at least one id")
        return list(dict.fromkeys(cleaned))


ReportScope = Annotated[Union[TierScope, MembersScope], Field(discriminator="kind")]


class ReportRequest(BaseModel):
    """Peticion de informe en hora civil local de la organizacion. Inmutable."""

    model_config = ConfigDict(frozen=True)

    local_start_date: date
    local_end_date: date
    local_start_time: str = "00:00"
    local_end_time: str = "23:59"
    scope: ReportScope = Field(default_factory=TierScope)
    include_timeline: bool = True

    @field_validator("local_start_time", "local_end_time")
    @classmethod
    def _check_times(cls, value: str) -> str:
        return _check_hhmm(value)

    @model_validator(mode="after")
    def _ordered(self) -> "ReportRequest":
        if self.local_start_date > self.local_end_date:
            raise ValueError("local_start_date must be <= local_end_date")
        return self

    def day_count(self) -> int:
        """Dias del rango, ambos extremos incluidos."""
        return (self.local_end_date - self.local_start_date).days + 1


class UtcInstant(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: str
    time: str
    offset_hours: float

    @property
    def iso(self) -> str:
        """`YYYY-MM-DDTHH:MM:SSZ`, listo para un filtro OData."""
        return f"{self.date}T{self.time}"


class UtcWindow(BaseModel):
    """Limites UTC `[start, end]` derivados una sola vez por ejecucion."""

    model_config = ConfigDict(frozen=True)

    start: UtcInstant
    end: UtcInstant
    local_start_date: date
    local_end_date: date

    def day_count(self) -> int:
        return (self.local_end_date - self.local_start_date).days + 1

    def span_days(self) -> int:
        """Dias entre inicio y fin (`end - start`); un preset de 90D da 90."""
        return (self.local_end_date - self.local_start_date).days


class QueryFailure(BaseModel):
    """Fallo de consulta no fatal: siempre acaba en `AggregateReport.errors`."""

    model_config = ConfigDict(frozen=True)

    label: str
    message: str
    kind: FailureKind = FailureKind.BACKEND

    def __str__(self) -> str:
        return f"{self.label}: {self.message}"


class Member(BaseModel):
    id: str
    name: str
    tier: Optional[int] = None


class Roster(BaseModel):
    """Miembros descubiertos para un tier y la estrategia que los encontro."""

    tier_code: int
    source: Optional[str] = None
    members: List[Member] = Field(default_factory=list)


class TierMetrics(BaseModel):
    """Conteos y ratios de un tier sobre una ventana UTC."""

    tier_code: int
    tier_label: str
    tier_name: str

    total_cases: int = 0
    resolved: int = 0

    sla_met: int = 0
    sla_missed: int = 0
    sla_compliance: Rate = NA

    response_sla_met: int = 0
    response_sla_missed: int = 0
    response_sla: Rate = NA

    open_breach_count: int = 0
    open_total: int = 0
    open_breach_rate: Rate = NA

    fcr_count: int = 0
    fcr_rate: Rate = NA

    escalated: int = 0
    escalation_rate: Rate = NA

    avg_resolution_time: str = NA
    applicable_metrics: List[str] = Field(default_factory=list)

    def statuses(self) -> Dict[str, TargetStatus]:
        """Clasificacion de los KPIs con objetivo aplicables a este tier."""
        values: Dict[str, Any] = {
            "sla_compliance": self.sla_compliance,
            "response_sla": self.response_sla,
            "open_breach_rate": self.open_breach_rate,
            "fcr_rate": self.fcr_rate,
            "escalation_rate": self.escalation_rate,
        }
        return classify_many({k: v for k, v in values.items() if k in self.applicable_metrics})

    @computed_field  # type: ignore[prop-decorator]
    @property
    def target_status(self) -> Dict[str, TargetStatus]:
        return self.statuses()


class MemberMetrics(BaseModel):
    """Metricas de un miembro (o de un agregado de equipo / organizacion).

    Los campos `*_total` y `*_samples` permiten recombinar sin promediar ratios.
    """

    member_id: str
    display_name: Optional[str] = None
    member_count: int = 1

    owned: int = 0
    created: int = 0
    resolved: int = 0
    active: int = 0

    sla_met: int = 0
    sla_missed: int = 0
    sla_compliance: Rate = NA

    tier_one_owned: int = 0
    fcr: int = 0
    fcr_rate: Rate = NA
    escalated: int = 0
    escalation_rate: Rate = NA

    calls_total: int = 0
    calls_answered: int = 0
    calls_abandoned: int = 0
    answer_rate: Rate = NA
    aht_minutes_total: float = 0.0
    avg_aht: Average = NA

    csat_responses: int = 0
    csat_score_total: float = 0.0
    csat_samples: int = 0
    csat_avg: Average = NA

    email_total: int = 0
    email_responded: int = 0
    email_resolved: int = 0
    email_sla: Rate = NA

    resolution_minutes_total: float = 0.0
    resolution_samples: int = 0
    resolution_source: Literal["duration", "elapsed", "none"] = "none"
    avg_resolution_time: str = NA

    def statuses(self) -> Dict[str, TargetStatus]:
        return classify_many(
            {
                "sla_compliance": self.sla_compliance,
                "fcr_rate": self.fcr_rate,
                "escalation_rate": self.escalation_rate,
                "answer_rate": self.answer_rate,
                "avg_phone_aht": self.avg_aht,
                "csat_score": self.csat_avg,
                "email_sla": self.email_sla,
            }
        )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def target_status(self) -> Dict[str, TargetStatus]:
        return self.statuses()


class OverallSummary(BaseModel):
    created: int = 0
    resolved: int = 0
    csat_responses: int = 0
    answered_calls: int = 0
    abandoned_calls: int = 0


class TimelinePoint(BaseModel):
    """Un dia del rango: conteos por categoria y ratios por categoria."""

    date: str
    label: str
    counts: Dict[str, int] = Field(default_factory=dict)
    rates: Dict[str, Union[int, float, Literal["N/A"]]] = Field(default_factory=dict)


class AggregateReport(BaseModel):
    """Resultado final de una ejecucion. Propiedad exclusiva del llamador."""

    generated_at: datetime
    request: ReportRequest
    window: UtcWindow
    tiers: List[TierMetrics] = Field(default_factory=list)
    members: List[MemberMetrics] = Field(default_factory=list)
    team: Optional[MemberMetrics] = None
    organization: Optional[MemberMetrics] = None
    overall: OverallSummary = Field(default_factory=OverallSummary)
    timeline: List[TimelinePoint] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)
