"""Catalogos estaticos: niveles de soporte (tiers) y objetivos por KPI."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

from servicedeskradar.domain.enums import Comparison

CASES = "incidents"
PHONE_CALLS = "phonecalls"
QUEUES = "queues"
TEAMS = "teams"

CASE_KEY = "incidentid"
ACTIVITY_KEY = "activityid"

CREATED_ON = "createdon"
MODIFIED_ON = "modifiedon"
ESCALATED_ON = "escalatedon"
OWNER = "_ownerid_value"
CREATED_BY = "_createdby_value"
RESOLUTION_KPI = "resolvebykpiid"
FIRST_RESPONSE_KPI = "firstresponsebykpiid"
CALL_DURATION = "actualdurationminutes"
CALL_START = "actualstart"


@dataclass(frozen=True)
class Tier:
    """Entrada del catalogo de tiers.

    Los tiers 2 y 3 se pueblan por fecha de escalado, no por fecha de creacion.
    """

    code: int
    label: str
    name: str
    filter_predicate_template: str
    primary_date_field: str
    applicable_metric_keys: Tuple[str, ...] = field(default_factory=tuple)

    def predicate(self) -> str:
        return self.filter_predicate_template.format(code=self.code)

    def applies(self, metric_key: str) -> bool:
        return metric_key in self.applicable_metric_keys

    @property
    def queue_name(self) -> str:
        return self.name


@dataclass(frozen=True)
class MetricTarget:
    key: str
    target_value: float
    comparison: Comparison
    display_label: str
    unit: str = ""


TIERS: Dict[int, Tier] = {
    1: Tier(
        code=1,
        label="Tier 1",
        name="Service Desk",
        filter_predicate_template="casetypecode eq {code}",
        primary_date_field=CREATED_ON,
        applicable_metric_keys=(
            "sla_compliance",
            "response_sla",
            "open_breach_rate",
            "fcr_rate",
            "escalation_rate",
            "avg_resolution_time",
            "total_cases",
        ),
    ),
    2: Tier(
        code=2,
        label="Tier 2",
        name="Programming Team",
        filter_predicate_template="casetypecode eq {code}",
        primary_date_field=ESCALATED_ON,
        applicable_metric_keys=(
            "sla_compliance",
            "response_sla",
            "open_breach_rate",
            "escalation_rate",
            "total_cases",
            "resolved",
        ),
    ),
    3: Tier(
        code=3,
        label="Tier 3",
        name="Relationship Managers",
        filter_predicate_template="casetypecode eq {code}",
        primary_date_field=ESCALATED_ON,
        applicable_metric_keys=(
            "sla_compliance",
            "response_sla",
            "open_breach_rate",
            "total_cases",
            "resolved",
        ),
    ),
}


TARGETS: Dict[str, MetricTarget] = {
    "sla_compliance": MetricTarget("sla_compliance", 90, Comparison.GTE, "90%", "%"),
    "response_sla": MetricTarget("response_sla", 90, Comparison.GTE, "90%", "%"),
    "fcr_rate": MetricTarget("fcr_rate", 90, Comparison.GTE, "90-95%", "%"),
    "escalation_rate": MetricTarget("escalation_rate", 10, Comparison.LT, "<10%", "%"),
    "open_breach_rate": MetricTarget("open_breach_rate", 5, Comparison.LTE, "<=5%", "%"),
    "answer_rate": MetricTarget("answer_rate", 95, Comparison.GTE, ">95%", "%"),
    "avg_phone_aht": MetricTarget("avg_phone_aht", 6, Comparison.LTE, "<6 min", " min"),
    "csat_score": MetricTarget("csat_score", 4.0, Comparison.GTE, "4.0+", "/5"),
    "email_sla": MetricTarget("email_sla", 90, Comparison.GTE, "90%", "%"),
}


def get_tier(code: int) -> Tier:
    """Devuelve el tier por codigo o lanza KeyError con un mensaje claro."""
    try:
        return TIERS[int(code)]
    except (KeyError, TypeError, ValueError):
        raise KeyError(f"Unknown tier code: {code!r}") from None
