"""Income router - read-only reports over completed appointments."""

from dataclasses import asdict
from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from agenda.core.deps import get_current_owner_id, get_db
from agenda.schemas.settings import CustomerIncomeRead, IncomeSummaryRead
from agenda.services import income_service
from agenda.services.income_service import IncomeSummary

router = APIRouter()


def _to_summary_read(summary: IncomeSummary) -> IncomeSummaryRead:
    return IncomeSummaryRead(
        date_from=summary.date_from,
        date_to=summary.date_to,
        total=summary.total,
        completed_appointments=summary.completed_appointments,
        pending_appointments=summary.pending_appointments,
        upcoming_appointments=summary.upcoming_appointments,
        average_per_appointment=summary.average_per_appointment,
        by_customer=[CustomerIncomeRead(**asdict(c)) for c in summary.by_customer],
    )


@router.get("/summary", response_model=IncomeSummaryRead)
def income_summary(
    date_from: datetime = Query(...),
    date_to: datetime = Query(...),
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """Income of completed appointments starting in [date_from, date_to)."""
    try:
        summary = income_service.summarize_income(db, owner_id, date_from, date_to)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_summary_read(summary)


@router.get("/overview")
def income_overview(
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    """This month against last month, plus year-to-date figures."""
    overview = income_service.monthly_overview(db, owner_id)
    return {
        "this_month": _to_summary_read(overview["this_month"]),
        "last_month": _to_summary_read(overview["last_month"]),
        "year_total": overview["year_total"],
        "monthly_average": overview["monthly_average"],
        "growth_percentage": overview["growth_percentage"],
    }
