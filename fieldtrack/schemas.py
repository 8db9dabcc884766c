from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from fieldtrack.models import CheckinStatus, UserRole


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class UserRead(BaseModel):
    id: int
    name: str
    email: str
    role: UserRole
    manager_id: int | None = None

    model_config = ConfigDict(from_attributes=True)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead


class ClientRead(BaseModel):
    id: int
    name: str
    address: str | None = None
    latitude: float | None = None
    longitude: float | None = None

    model_config = ConfigDict(from_attributes=True)


class CheckinCreateRequest(BaseModel):
    # Optional so that a missing value surfaces as a domain error, not a schema error.
    client_id: int | None = None
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    notes: str | None = Field(default=None, max_length=2000)


class CheckinCreateResponse(BaseModel):
    ok: bool = True
    id: int
    client_id: int
    checkin_time: datetime
    distance_from_client: float | None = None
    warning: str | None = None
    message: str = "Checked in successfully"


class CheckoutResponse(BaseModel):
    ok: bool = True
    id: int
    checkout_time: datetime
    message: str = "Checked out successfully"


class CheckinRead(BaseModel):
    id: int
    employee_id: int
    client_id: int
    client_name: str | None = None
    client_address: str | None = None
    checkin_time: datetime
    checkout_time: datetime | None = None
    status: CheckinStatus
    notes: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    distance_from_client: float | None = None


class ActiveCheckinResponse(BaseModel):
    active: CheckinRead | None = None


class EmployeeDayStatsRead(BaseModel):
    employee_id: int
    employee_name: str
    total_checkins: int
    clients_visited_count: int
    total_hours: float

    model_config = ConfigDict(from_attributes=True)


class TeamDaySummaryRead(BaseModel):
    total_checkins: int
    total_hours: float
    active_employees: int
    total_unique_clients: int

    model_config = ConfigDict(from_attributes=True)


class DailySummaryResponse(BaseModel):
    date: date
    team_summary: TeamDaySummaryRead
    employee_breakdown: list[EmployeeDayStatsRead]

    model_config = ConfigDict(from_attributes=True)
