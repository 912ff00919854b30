"""Catalogos estaticos: objetivos por KPI y tiers de soporte."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter

from servicedeskradar.domain.catalog import TARGETS, TIERS

router = APIRouter()


@router.get("/targets")
def list_targets() -> Dict[str, Dict[str, Any]]:
    return {
        key: {
            "target": target.target_value,
            "compare": target.comparison.value,
            "label": target.display_label,
            "unit": target.unit,
        }
        for key, target in TARGETS.items()
    }


@router.get("/tiers")
def list_tiers() -> List[Dict[str, Any]]:
    return [
        {
            "code": tier.code,
            "label": tier.label,
            "name": tier.name,
            "filter": tier.predicate(),
            "date_field": tier.primary_date_field,
            "metrics": list(tier.applicable_metric_keys),
        }
        for tier in TIERS.values()
    ]
