"""Enums de dominio: comparadores de objetivos, estados de KPI y de casos."""

from __future__ import annotations

from enum import Enum, IntEnum


class Comparison(str, Enum):
    """Sentido en que un valor cumple su objetivo."""

    GTE = "gte"
    GT = "gt"
    LTE = "lte"
    LT = "lt"


class TargetStatus(str, Enum):
    """Clasificacion de un valor frente a su objetivo."""

    MET = "met"
    WARN = "warn"
    MISS = "miss"
    NA = "na"


class FailureKind(str, Enum):
    """Origen de un fallo de consulta no fatal."""

    AUTH = "AUTH"
    TRANSPORT = "TRANSPORT"
    BACKEND = "BACKEND"
    UNEXPECTED = "UNEXPECTED"


class KpiInstanceStatus(IntEnum):
    """Valores de `status` en la relacion KPI (slakpiinstance)."""

    IN_PROGRESS = 0
    NONCOMPLIANT = 1
    NEARING_NONCOMPLIANCE = 2
    PAUSED = 3
    SUCCEEDED = 4
    CANCELED = 5


class CaseState(IntEnum):
    """Valores de `statecode` de un caso."""

    ACTIVE = 0
    RESOLVED = 1
    CANCELLED = 2


class CaseOrigin(IntEnum):
    """Valores de `caseorigincode` de un caso."""

    PHONE = 1
    EMAIL = 2
    WEB = 3
