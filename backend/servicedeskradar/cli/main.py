"""CLI para lanzar informes de KPIs, descubrir miembros y servir la API."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

import uvicorn
from pydantic import ValidationError

from servicedeskradar.config import settings
from servicedeskradar.domain.catalog import TIERS
from servicedeskradar.domain.models import MembersScope, ReportRequest, TierScope
from servicedeskradar.domain.presets import PRESET_DAYS, preset_range
from servicedeskradar.logging_utils import configure_logging
from servicedeskradar.services import ReportingService


@dataclass(frozen=True)
class Exit:
    code: int = 0


def _progress(done: int, total: int, label: str) -> None:
    print(f"[{done + 1}/{total}] {label}", file=sys.stderr)


def build_request(args: argparse.Namespace, today: Optional[date] = None) -> ReportRequest:
    """Traduce los argumentos a un ReportRequest (puede lanzar ValidationError/ValueError)."""
    start, end = args.start, args.end
    if args.preset:
        start, end = preset_range(args.preset, today or date.today())
    if start is None or end is None:
        raise ValueError("--start and --end are required unless --preset is given")

    if args.member:
        scope: TierScope | MembersScope = MembersScope(member_ids=list(args.member))
    elif args.tier:
        scope = TierScope(tier_codes=list(args.tier))
    else:
        scope = TierScope()

    return ReportRequest(
        local_start_date=start,
        local_end_date=end,
        local_start_time=args.start_time,
        local_end_time=args.end_time,
        scope=scope,
        include_timeline=not args.no_timeline,
    )


def cmd_report(args: argparse.Namespace, service: Optional[ReportingService] = None) -> Exit:
    try:
        request = build_request(args)
    except (ValidationError, ValueError) as exc:
        print(f"[ERROR] Invalid report request: {exc}", file=sys.stderr)
        return Exit(2)

    reporting = service or ReportingService(settings)
    report = reporting.run_report(request, progress=None if args.quiet else _progress)
    print(report.model_dump_json(indent=2))
    for error in report.errors:
        print(f"[WARN] {error}", file=sys.stderr)
    return Exit(0)


def cmd_roster(tier_code: int, service: Optional[ReportingService] = None) -> Exit:
    reporting = service or ReportingService(settings)
    roster = reporting.run_roster(tier_code)
    if not roster.members:
        print(f"[WARN] No members found for tier {tier_code}", file=sys.stderr)
        return Exit(1)
    print(f"[OK] {len(roster.members)} members via {roster.source}")
    for member in roster.members:
        print(f"{member.id}\t{member.name}")
    return Exit(0)


def cmd_serve(host: str, port: int) -> Exit:
    # FastAPI app import path
    uvicorn.run("servicedeskradar.api.main:app", host=host, port=port, reload=True)
    return Exit(0)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="sdr", description="Service Desk Radar CLI")
    sub = p.add_subparsers(dest="cmd", required=True)

    rp = sub.add_parser("report", help="Run a KPI report and print it as JSON")
    rp.add_argument("--start", type=date.fromisoformat, help="Local start date (YYYY-MM-DD)")
    rp.add_argument("--end", type=date.fromisoformat, help="Local end date (YYYY-MM-DD)")
    rp.add_argument("--start-time", default="00:00", help="Local start time (HH:MM)")
    rp.add_argument("--end-time", default="23:59", help="Local end time (HH:MM)")
    rp.add_argument("--tier", type=int, action="append", choices=sorted(TIERS), help="Tier code (repeatable)")
    rp.add_argument("--member", action="append", help="Member (system user) id (repeatable)")
    rp.add_argument("--preset", choices=[*PRESET_DAYS, "ytd"], help="Date range preset ending today")
    rp.add_argument("--no-timeline", action="store_true", help="Skip the daily timeline")
    rp.add_argument("--quiet", action="store_true", help="Do not print progress on stderr")

    ro = sub.add_parser("roster", help="Discover the members of a tier")
    ro.add_argument("--tier", type=int, required=True, choices=sorted(TIERS))

    sp = sub.add_parser("serve", help="Serve FastAPI")
    sp.add_argument("--host", default="127.0.0.1")
    sp.add_argument("--port", type=int, default=8000)

    return p


def app(argv: Optional[Sequence[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging()

    if args.cmd == "report":
        raise SystemExit(cmd_report(args).code)
    if args.cmd == "roster":
        raise SystemExit(cmd_roster(args.tier).code)
    if args.cmd == "serve":
        raise SystemExit(cmd_serve(args.host, args.port).code)

    raise SystemExit(2)


if __name__ == "__main__":
    app()
