"""Descubrimiento de los miembros de un tier mediante una cadena ordenada de sondas."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence

from servicedeskradar.adapters.odata import ODataQuery, and_, eq
from servicedeskradar.adapters.query_client import QueryClient
from servicedeskradar.adapters.utils import formatted_value, to_str
from servicedeskradar.domain.catalog import CASES, OWNER, QUEUES, TEAMS, Tier, get_tier
from servicedeskradar.domain.models import Member, Roster
from servicedeskradar.logging_utils import get_logger

logger = get_logger(__name__)

QUEUE_MEMBERS = "queuemembership_association"
TEAM_MEMBERS = "teammembership_association"
_MEMBER_SELECT = "($select=systemuserid,fullname)"


def _members_from_association(records: List[dict], relation: str, tier: Tier) -> List[Member]:
    out: Dict[str, Member] = {}
    for record in records:
        users = record.get(relation)
        if not isinstance(users, list):
            continue
        for user in users:
            if not isinstance(user, dict):
                continue
            user_id = to_str(user.get("systemuserid"))
            if not user_id or user_id in out:
                continue
            out[user_id] = Member(id=user_id, name=to_str(user.get("fullname")) or user_id, tier=tier.code)
    return list(out.values())


class RosterProbe(ABC):
    """Estrategia de descubrimiento; devuelve lista vacia si no encuentra nada."""

    name: str

    @abstractmethod
    async def probe(self, client: QueryClient, tier: Tier) -> List[Member]:
        raise NotImplementedError


class QueueMembershipProbe(RosterProbe):
    name = "queue"

    async def probe(self, client: QueryClient, tier: Tier) -> List[Member]:
        outcome = await client.fetch(
            f"{tier.label} queue members",
            ODataQuery(
                QUEUES,
                filter=eq("name", tier.queue_name),
                select=("name", "queueid"),
                expand=QUEUE_MEMBERS + _MEMBER_SELECT,
            ),
        )
        if outcome.failure is not None:
            logger.warning("Roster probe %s failed: %s", self.name, outcome.failure)
        return _members_from_association(outcome.value, QUEUE_MEMBERS, tier)


class TeamMembershipProbe(RosterProbe):
    name = "team"

    async def probe(self, client: QueryClient, tier: Tier) -> List[Member]:
        outcome = await client.fetch(
            f"{tier.label} team members",
            ODataQuery(
                TEAMS,
                filter=eq("name", tier.queue_name),
                select=("name", "teamid"),
                expand=TEAM_MEMBERS + _MEMBER_SELECT,
            ),
        )
        if outcome.failure is not None:
            logger.warning("Roster probe %s failed: %s", self.name, outcome.failure)
        return _members_from_association(outcome.value, TEAM_MEMBERS, tier)


class CaseOwnerProbe(RosterProbe):
    """Propietarios distintos de los casos recientes del tier."""

    name = "case_owners"

    def __init__(self, lookback_days: int = 30, now: Optional[Callable[[], datetime]] = None) -> None:
        self._lookback_days = max(1, int(lookback_days))
        self._now = now or (lambda: datetime.now(timezone.utc))

    async def probe(self, client: QueryClient, tier: Tier) -> List[Member]:
        since = self._now() - timedelta(days=self._lookback_days)
        field_name = tier.primary_date_field
        outcome = await client.fetch(
            f"{tier.label} case owners",
            ODataQuery(
                CASES,
                filter=and_(tier.predicate(), f"{field_name} ge {since:%Y-%m-%dT%H:%M:%SZ}"),
                select=(OWNER,),
            ),
        )
        if outcome.failure is not None:
            logger.warning("Roster probe %s failed: %s", self.name, outcome.failure)

        out: Dict[str, Member] = {}
        for record in outcome.value:
            owner_id = to_str(record.get(OWNER))
            if not owner_id or owner_id in out:
                continue
            name = formatted_value(record, OWNER) or owner_id
            out[owner_id] = Member(id=owner_id, name=name, tier=tier.code)
        return sorted(out.values(), key=lambda m: m.name.lower())


def default_probes(lookback_days: int = 30) -> List[RosterProbe]:
    return [QueueMembershipProbe(), TeamMembershipProbe(), CaseOwnerProbe(lookback_days)]


class RosterService:
    """Prueba las sondas en orden; gana el primer resultado no vacio."""

    def __init__(self, client: QueryClient, probes: Optional[Sequence[RosterProbe]] = None) -> None:
        self._client = client
        self._probes = list(probes) if probes is not None else default_probes()

    async def discover(self, tier_code: int) -> Roster:
        tier = get_tier(tier_code)
        for probe in self._probes:
            try:
                members = await probe.probe(self._client, tier)
            except Exception as exc:
                logger.warning("Roster probe %s failed: %s", probe.name, exc)
                continue
            if members:
                logger.info("Roster for %s: %s members via %s", tier.label, len(members), probe.name)
                return Roster(tier_code=tier.code, source=probe.name, members=members)
            logger.debug("Roster probe %s found no members for %s", probe.name, tier.label)
        logger.warning("Roster for %s: no members found", tier.label)
        return Roster(tier_code=tier.code)
