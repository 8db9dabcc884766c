from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from fieldtrack.db import get_db
from fieldtrack.schemas import DailySummaryResponse
from fieldtrack.security import CurrentUser, require_manager
from fieldtrack.services.reports import build_daily_summary

router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get("/daily-summary", response_model=DailySummaryResponse)
def daily_summary(
    date: str | None = Query(default=None),
    employee_id: int | None = Query(default=None, ge=1),
    manager: CurrentUser = Depends(require_manager),
    db: Session = Depends(get_db),
) -> DailySummaryResponse:
    summary = build_daily_summary(
        db,
        manager_id=manager.id,
        date_text=date,
        employee_id=employee_id,
    )
    return DailySummaryResponse.model_validate(summary)
