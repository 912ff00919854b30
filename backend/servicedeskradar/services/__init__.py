"""Servicios de negocio (rollups, timeline, roster, reporting)."""

from servicedeskradar.services.batch_executor import BatchQuery, ResilientBatchExecutor
from servicedeskradar.services.member_rollup import MemberRollupEngine, combine_members
from servicedeskradar.services.reporting_service import ReportingService
from servicedeskradar.services.roster import RosterService
from servicedeskradar.services.tier_rollup import TierRollupEngine
from servicedeskradar.services.timeline import TimelineBucketer

__all__ = [
    "BatchQuery",
    "MemberRollupEngine",
    "ReportingService",
    "ResilientBatchExecutor",
    "RosterService",
    "TierRollupEngine",
    "TimelineBucketer",
    "combine_members",
]
