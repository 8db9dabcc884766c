from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from fieldtrack.audit import audit_request
from fieldtrack.db import get_db
from fieldtrack.models import Checkin
from fieldtrack.schemas import (
    ActiveCheckinResponse,
    CheckinCreateRequest,
    CheckinCreateResponse,
    CheckinRead,
    CheckoutResponse,
    ClientRead,
)
from fieldtrack.security import CurrentUser, require_user
from fieldtrack.services.checkins import (
    get_active_checkin,
    list_assigned_clients,
    list_checkin_history,
    start_checkin,
    stop_checkin,
)

router = APIRouter(prefix="/api/checkin", tags=["checkin"])


def _checkin_read(checkin: Checkin) -> CheckinRead:
    client = checkin.client
    return CheckinRead(
        id=checkin.id,
        employee_id=checkin.employee_id,
        client_id=checkin.client_id,
        client_name=client.name if client is not None else None,
        client_address=client.address if client is not None else None,
        checkin_time=checkin.checkin_time,
        checkout_time=checkin.checkout_time,
        status=checkin.status,
        notes=checkin.notes,
        latitude=checkin.latitude,
        longitude=checkin.longitude,
        distance_from_client=checkin.distance_from_client,
    )


@router.get("/clients", response_model=list[ClientRead])
def assigned_clients(
    current_user: CurrentUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[ClientRead]:
    clients = list_assigned_clients(db, employee_id=current_user.id)
    return [ClientRead.model_validate(client) for client in clients]


@router.post("", response_model=CheckinCreateResponse, status_code=status.HTTP_201_CREATED)
def create_checkin(
    payload: CheckinCreateRequest,
    request: Request,
    current_user: CurrentUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> CheckinCreateResponse:
    request.state.employee_id = current_user.id
    checkin, distance_check = start_checkin(
        db,
        employee_id=current_user.id,
        client_id=payload.client_id,
        lat=payload.latitude,
        lon=payload.longitude,
        notes=payload.notes,
    )
    request.state.checkin_id = checkin.id
    request.state.distance_km = distance_check.distance_km
    audit_request(
        db,
        request,
        action="CHECKIN_CREATED",
        actor_id=str(current_user.id),
        entity_type="checkin",
        entity_id=str(checkin.id),
        details={
            "client_id": checkin.client_id,
            "distance_km": distance_check.distance_km,
            "far_from_client": distance_check.is_far,
        },
    )
    return CheckinCreateResponse(
        id=checkin.id,
        client_id=checkin.client_id,
        checkin_time=checkin.checkin_time,
        distance_from_client=checkin.distance_from_client,
        warning=distance_check.warning,
    )


@router.put("/checkout", response_model=CheckoutResponse)
def checkout(
    request: Request,
    current_user: CurrentUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> CheckoutResponse:
    request.state.employee_id = current_user.id
    checkin = stop_checkin(db, employee_id=current_user.id)
    request.state.checkin_id = checkin.id
    audit_request(
        db,
        request,
        action="CHECKOUT_COMPLETED",
        actor_id=str(current_user.id),
        entity_type="checkin",
        entity_id=str(checkin.id),
    )
    return CheckoutResponse(id=checkin.id, checkout_time=checkin.checkout_time)


@router.get("/history", response_model=list[CheckinRead])
def checkin_history(
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    current_user: CurrentUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> list[CheckinRead]:
    checkins = list_checkin_history(
        db,
        employee_id=current_user.id,
        start_date=start_date,
        end_date=end_date,
    )
    return [_checkin_read(checkin) for checkin in checkins]


@router.get("/active", response_model=ActiveCheckinResponse)
def active_checkin(
    current_user: CurrentUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> ActiveCheckinResponse:
    checkin = get_active_checkin(db, employee_id=current_user.id)
    if checkin is None:
        return ActiveCheckinResponse(active=None)
    return ActiveCheckinResponse(active=_checkin_read(checkin))
