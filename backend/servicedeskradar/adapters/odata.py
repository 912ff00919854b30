"""Construccion de consultas OData (filter/select/expand/count/top/orderby)."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Tuple

from servicedeskradar.domain.models import UtcWindow

_GUID = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")


def literal(value: object) -> str:
    """Literal OData: GUIDs y numeros sin comillas, strings con `'` duplicada."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, datetime):
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    if isinstance(value, date):
        return value.isoformat()
    text = str(value)
    if _GUID.match(text):
        return text
    return "'" + text.replace("'", "''") + "'"


def eq(field_name: str, value: object) -> str:
    return f"{field_name} eq {literal(value)}"


def and_(*clauses: str) -> str:
    """Une clausulas no vacias con `and`."""
    parts = [c.strip() for c in clauses if c and c.strip()]
    return " and ".join(parts)


def window_predicate(field_name: str, window: UtcWindow) -> str:
    """`field ge <inicio> and field le <fin>` sobre la ventana UTC."""
    return f"{field_name} ge {window.start.iso} and {field_name} le {window.end.iso}"


@dataclass(frozen=True)
class ODataQuery:
    collection: str
    filter: str = ""
    select: Tuple[str, ...] = field(default_factory=tuple)
    expand: str = ""
    orderby: str = ""
    top: int | None = None
    count: bool = False

    def to_params(self) -> Dict[str, str]:
        params: Dict[str, str] = {}
        if self.filter:
            params["$filter"] = self.filter
        if self.select:
            params["$select"] = ",".join(self.select)
        if self.expand:
            params["$expand"] = self.expand
        if self.orderby:
            params["$orderby"] = self.orderby
        if self.top is not None:
            params["$top"] = str(self.top)
        if self.count:
            params["$count"] = "true"
        return params
