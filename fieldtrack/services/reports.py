from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from fieldtrack.errors import bad_request
from fieldtrack.models import Checkin, User
from fieldtrack.services.business_day import (
    business_day_bounds_utc,
    business_day_of,
    normalize_ts,
    parse_date_param,
)

logger = logging.getLogger("fieldtrack.reports")


@dataclass(frozen=True)
class TeamMemberRow:
    employee_id: int
    employee_name: str


@dataclass(frozen=True)
class CheckinRow:
    employee_id: int
    client_id: int
    checkin_time: datetime
    checkout_time: datetime | None


@dataclass
class EmployeeDayStats:
    employee_id: int
    employee_name: str
    total_checkins: int = 0
    clients_visited_count: int = 0
    total_hours: float = 0.0


@dataclass
class TeamDaySummary:
    total_checkins: int = 0
    total_hours: float = 0.0
    active_employees: int = 0
    total_unique_clients: int = 0


@dataclass
class DailySummary:
    date: date
    team_summary: TeamDaySummary
    employee_breakdown: list[EmployeeDayStats] = field(default_factory=list)


def _worked_hours(row: CheckinRow) -> float:
    # In-progress visits count toward check-ins but not hours.
    if row.checkout_time is None:
        return 0.0
    seconds = (normalize_ts(row.checkout_time) - normalize_ts(row.checkin_time)).total_seconds()
    return max(0.0, seconds) / 3600.0


def aggregate_daily_summary(
    day: date,
    members: Sequence[TeamMemberRow],
    checkins: Iterable[CheckinRow],
) -> DailySummary:
    """Fold one business day of check-ins into per-employee and team totals.

    Every member gets a breakdown row even without check-ins. Rows whose
    employee is not a member, or whose check-in falls on another business
    day, are ignored. The team's unique client count is taken over the union
    of all rows, so a client seen by two employees counts once.
    """
    hours_by_employee: dict[int, float] = {member.employee_id: 0.0 for member in members}
    count_by_employee: dict[int, int] = {member.employee_id: 0 for member in members}
    clients_by_employee: dict[int, set[int]] = {member.employee_id: set() for member in members}
    team_clients: set[int] = set()

    for row in checkins:
        if row.employee_id not in count_by_employee:
            continue
        if business_day_of(row.checkin_time) != day:
            continue
        count_by_employee[row.employee_id] += 1
        clients_by_employee[row.employee_id].add(row.client_id)
        hours_by_employee[row.employee_id] += _worked_hours(row)
        team_clients.add(row.client_id)

    breakdown: list[EmployeeDayStats] = []
    team = TeamDaySummary()
    raw_team_hours = 0.0
    for member in sorted(members, key=lambda item: item.employee_id):
        total_checkins = count_by_employee[member.employee_id]
        raw_hours = hours_by_employee[member.employee_id]
        breakdown.append(
            EmployeeDayStats(
                employee_id=member.employee_id,
                employee_name=member.employee_name,
                total_checkins=total_checkins,
                clients_visited_count=len(clients_by_employee[member.employee_id]),
                total_hours=round(raw_hours, 2),
            )
        )
        team.total_checkins += total_checkins
        raw_team_hours += raw_hours
        if total_checkins > 0:
            team.active_employees += 1

    team.total_hours = round(raw_team_hours, 2)
    team.total_unique_clients = len(team_clients)
    return DailySummary(date=day, team_summary=team, employee_breakdown=breakdown)


def _load_team_members(
    db: Session,
    *,
    manager_id: int,
    employee_id: int | None,
) -> list[TeamMemberRow]:
    stmt = select(User.id, User.name).where(User.manager_id == manager_id).order_by(User.id.asc())
    if employee_id is not None:
        stmt = stmt.where(User.id == employee_id)
    return [TeamMemberRow(employee_id=row[0], employee_name=row[1]) for row in db.execute(stmt).all()]


def _load_team_checkins(
    db: Session,
    *,
    manager_id: int,
    employee_id: int | None,
    day: date,
) -> list[CheckinRow]:
    window_start, window_end = business_day_bounds_utc(day)
    stmt = (
        select(Checkin.employee_id, Checkin.client_id, Checkin.checkin_time, Checkin.checkout_time)
        .join(User, User.id == Checkin.employee_id)
        .where(
            User.manager_id == manager_id,
            Checkin.checkin_time >= window_start,
            Checkin.checkin_time < window_end,
        )
    )
    if employee_id is not None:
        stmt = stmt.where(User.id == employee_id)
    return [
        CheckinRow(
            employee_id=row[0],
            client_id=row[1],
            checkin_time=row[2],
            checkout_time=row[3],
        )
        for row in db.execute(stmt).all()
    ]


def build_daily_summary(
    db: Session,
    *,
    manager_id: int,
    date_text: str | None,
    employee_id: int | None = None,
) -> DailySummary:
    if not date_text:
        raise bad_request("DATE_REQUIRED", "Date parameter is required (YYYY-MM-DD).")
    day = parse_date_param(date_text, field="date")

    members = _load_team_members(db, manager_id=manager_id, employee_id=employee_id)
    if not members:
        # Unknown or foreign employee filter yields an empty report, not an error.
        return DailySummary(date=day, team_summary=TeamDaySummary())

    checkins = _load_team_checkins(db, manager_id=manager_id, employee_id=employee_id, day=day)
    summary = aggregate_daily_summary(day, members, checkins)

    logger.info(
        "daily_summary_built",
        extra={
            "manager_id": manager_id,
            "report_date": day.isoformat(),
            "employee_filter": employee_id,
            "employees": len(summary.employee_breakdown),
            "total_checkins": summary.team_summary.total_checkins,
        },
    )
    return summary
