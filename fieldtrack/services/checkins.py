from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from fieldtrack.errors import ApiError, bad_request, forbidden, not_found
from fieldtrack.models import ACTIVE_CHECKIN_INDEX, Checkin, CheckinStatus, Client, EmployeeClient
from fieldtrack.services.business_day import business_day_bounds_utc, parse_date_param
from fieldtrack.services.location import DistanceCheck, evaluate_client_distance

logger = logging.getLogger("fieldtrack.checkins")


def _active_checkin_conflict() -> ApiError:
    return bad_request(
        "ACTIVE_CHECKIN_EXISTS",
        "You already have an active check-in. Please checkout first.",
    )


def _resolve_assigned_client(db: Session, *, employee_id: int, client_id: int) -> Client | None:
    return db.scalar(
        select(Client)
        .join(EmployeeClient, EmployeeClient.client_id == Client.id)
        .where(
            EmployeeClient.employee_id == employee_id,
            EmployeeClient.client_id == client_id,
        )
    )


def _violates_active_checkin_guard(exc: IntegrityError) -> bool:
    diag = getattr(exc.orig, "diag", None)
    constraint_name = getattr(diag, "constraint_name", None)
    if constraint_name:
        return constraint_name == ACTIVE_CHECKIN_INDEX
    # SQLite reports the indexed column instead of the index name.
    message = str(exc.orig)
    return ACTIVE_CHECKIN_INDEX in message or "UNIQUE constraint failed: checkins.employee_id" in message


def _resolve_active_checkin(db: Session, *, employee_id: int, for_update: bool = False) -> Checkin | None:
    stmt = (
        select(Checkin)
        .options(selectinload(Checkin.client))
        .where(
            Checkin.employee_id == employee_id,
            Checkin.status == CheckinStatus.CHECKED_IN,
        )
        .order_by(Checkin.checkin_time.desc(), Checkin.id.desc())
        .limit(1)
    )
    if for_update:
        stmt = stmt.with_for_update(of=Checkin)
    return db.scalar(stmt)


def list_assigned_clients(db: Session, *, employee_id: int) -> list[Client]:
    return list(
        db.scalars(
            select(Client)
            .join(EmployeeClient, EmployeeClient.client_id == Client.id)
            .where(EmployeeClient.employee_id == employee_id)
            .order_by(Client.name.asc(), Client.id.asc())
        ).all()
    )


def get_active_checkin(db: Session, *, employee_id: int) -> Checkin | None:
    return _resolve_active_checkin(db, employee_id=employee_id)


def start_checkin(
    db: Session,
    *,
    employee_id: int,
    client_id: int | None,
    lat: float | None,
    lon: float | None,
    notes: str | None = None,
) -> tuple[Checkin, DistanceCheck]:
    if not client_id:
        raise bad_request("CLIENT_ID_REQUIRED", "Client ID is required.")
    if lat is None or lon is None:
        raise bad_request("LOCATION_REQUIRED", "Location (latitude and longitude) is required.")

    if _resolve_active_checkin(db, employee_id=employee_id) is not None:
        raise _active_checkin_conflict()

    client = _resolve_assigned_client(db, employee_id=employee_id, client_id=client_id)
    if client is None:
        raise forbidden("CLIENT_NOT_ASSIGNED", "You are not assigned to this client.")

    distance_check = evaluate_client_distance(client, lat, lon)
    checkin = Checkin(
        employee_id=employee_id,
        client_id=client.id,
        checkin_time=datetime.now(timezone.utc),
        status=CheckinStatus.CHECKED_IN,
        notes=(notes or "").strip() or None,
        latitude=lat,
        longitude=lon,
        distance_from_client=distance_check.distance_km,
    )
    db.add(checkin)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not _violates_active_checkin_guard(exc):
            raise
        logger.warning(
            "checkin_race_rejected",
            extra={"employee_id": employee_id, "client_id": client_id},
        )
        raise _active_checkin_conflict() from exc
    db.refresh(checkin)
    checkin.client = client

    logger.info(
        "checkin_started",
        extra={
            "employee_id": employee_id,
            "client_id": client.id,
            "checkin_id": checkin.id,
            "distance_km": distance_check.distance_km,
        },
    )
    if distance_check.is_far:
        logger.warning(
            "checkin_far_from_client",
            extra={
                "employee_id": employee_id,
                "client_id": client.id,
                "checkin_id": checkin.id,
                "distance_km": distance_check.distance_km,
            },
        )
    return checkin, distance_check


def stop_checkin(db: Session, *, employee_id: int) -> Checkin:
    # Row lock: a concurrent checkout waits, then finds no open session.
    checkin = _resolve_active_checkin(db, employee_id=employee_id, for_update=True)
    if checkin is None:
        raise not_found("NO_ACTIVE_CHECKIN", "No active check-in found.")

    checkin.checkout_time = datetime.now(timezone.utc)
    checkin.status = CheckinStatus.CHECKED_OUT
    db.commit()
    db.refresh(checkin)

    logger.info(
        "checkin_stopped",
        extra={"employee_id": employee_id, "checkin_id": checkin.id},
    )
    return checkin


def list_checkin_history(
    db: Session,
    *,
    employee_id: int,
    start_date: str | None = None,
    end_date: str | None = None,
) -> list[Checkin]:
    # Parse both bounds first so a malformed value never reaches the database.
    start_day = parse_date_param(start_date, field="start_date") if start_date else None
    end_day = parse_date_param(end_date, field="end_date") if end_date else None

    stmt = (
        select(Checkin)
        .options(selectinload(Checkin.client))
        .where(Checkin.employee_id == employee_id)
        .order_by(Checkin.checkin_time.desc(), Checkin.id.desc())
    )
    if start_day is not None:
        window_start, _ = business_day_bounds_utc(start_day)
        stmt = stmt.where(Checkin.checkin_time >= window_start)
    if end_day is not None:
        _, window_end = business_day_bounds_utc(end_day)
        stmt = stmt.where(Checkin.checkin_time < window_end)
    return list(db.scalars(stmt).all())
