"""Descubrimiento de miembros por tier."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from servicedeskradar.domain.catalog import TIERS
from servicedeskradar.domain.models import Roster

router = APIRouter()


@router.get("/{tier_code}", response_model=Roster)
async def get_roster(request: Request, tier_code: int) -> Roster:
    if tier_code not in TIERS:
        raise HTTPException(status_code=404, detail=f"Unknown tier code: {tier_code}")
    reporting = request.app.state.reporting
    return await reporting.discover_roster(tier_code)
