from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from fieldtrack.audit import audit_request
from fieldtrack.db import get_db
from fieldtrack.errors import not_found, unauthorized
from fieldtrack.models import AuditActorType, User
from fieldtrack.routers.request_info import client_ip
from fieldtrack.schemas import LoginRequest, LoginResponse, UserRead
from fieldtrack.security import (
    CurrentUser,
    create_access_token,
    ensure_login_attempt_allowed,
    normalize_email,
    register_login_failure,
    register_login_success,
    require_user,
    verify_password,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> LoginResponse:
    email = normalize_email(payload.email)
    ip = client_ip(request)
    request.state.actor = "system"
    request.state.actor_id = "system"

    if ip:
        ensure_login_attempt_allowed(ip)

    user = db.scalar(select(User).where(User.email == email))
    if user is None or not verify_password(payload.password, user.password_hash):
        if ip:
            register_login_failure(ip)
        audit_request(
            db,
            request,
            action="LOGIN_FAIL",
            actor_type=AuditActorType.SYSTEM,
            actor_id=email,
            success=False,
            details={"reason": "INVALID_CREDENTIALS"},
        )
        raise unauthorized("INVALID_CREDENTIALS", "Invalid credentials.")

    if ip:
        register_login_success(ip)

    access_token, expires_in, _claims = create_access_token(user)
    audit_request(
        db,
        request,
        action="LOGIN_SUCCESS",
        actor_id=str(user.id),
        entity_type="user",
        entity_id=str(user.id),
    )
    return LoginResponse(
        access_token=access_token,
        expires_in=expires_in,
        user=UserRead.model_validate(user),
    )


@router.get("/me", response_model=UserRead)
def me(
    current_user: CurrentUser = Depends(require_user),
    db: Session = Depends(get_db),
) -> UserRead:
    user = db.get(User, current_user.id)
    if user is None:
        raise not_found("USER_NOT_FOUND", "User not found.")
    return UserRead.model_validate(user)
