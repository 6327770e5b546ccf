"""Income reporting - read-only projection over completed appointments."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Protocol

from sqlalchemy.orm import Session, joinedload

from agenda.db.enums import AppointmentStatus
from agenda.db.models import Appointment
from agenda.services.settings_service import get_scheduling_config, owner_now


class Priced(Protocol):
    internal_price: int | None
    public_price: int | None


def resolve_price(appointment: Priced, default_price: int | None = None) -> int:
    """
    Amount an appointment is worth to the owner.

    internal price, else public price, else the owner's default, else 0.
    A price of 0 is an explicit value, not a missing one.
    """
    for candidate in (appointment.internal_price, appointment.public_price, default_price):
        if candidate is not None:
            return candidate
    return 0


def customer_price(appointment: Priced) -> int | None:
    """Price shown to the customer. Never the internal price."""
    return appointment.public_price


@dataclass
class CustomerIncome:
    customer_id: uuid.UUID
    customer_name: str
    total: int = 0
    appointments: int = 0


@dataclass
class IncomeSummary:
    date_from: datetime
    date_to: datetime
    total: int = 0
    completed_appointments: int = 0
    pending_appointments: int = 0
    upcoming_appointments: int = 0
    by_customer: list[CustomerIncome] = field(default_factory=list)

    @property
    def average_per_appointment(self) -> float:
        if not self.completed_appointments:
            return 0.0
        return self.total / self.completed_appointments


def _month_start(day: date) -> datetime:
    return datetime.combine(day.replace(day=1), time.min)


def _next_month_start(day: date) -> datetime:
    if day.month == 12:
        return datetime(day.year + 1, 1, 1)
    return datetime(day.year, day.month + 1, 1)


def summarize_income(
    db: Session,
    owner_id: uuid.UUID,
    date_from: datetime,
    date_to: datetime,
    *,
    now: datetime | None = None,
) -> IncomeSummary:
    """
    Income of completed appointments starting in [date_from, date_to).

    Pending/upcoming counts are future appointments (from `now`) in the
    same range.
    """
    if date_to <= date_from:
        raise ValueError("date_to must be after date_from")
    config = get_scheduling_config(db, owner_id)
    current = now or owner_now(config.timezone)

    appointments = (
        db.query(Appointment)
        .options(joinedload(Appointment.customer))
        .filter(
            Appointment.owner_id == owner_id,
            Appointment.start_at >= date_from,
            Appointment.start_at < date_to,
        )
        .order_by(Appointment.start_at)
        .all()
    )

    summary = IncomeSummary(date_from=date_from, date_to=date_to)
    per_customer: dict[uuid.UUID, CustomerIncome] = {}
    for appointment in appointments:
        if appointment.status == AppointmentStatus.COMPLETED.value:
            amount = resolve_price(appointment, config.default_price)
            summary.total += amount
            summary.completed_appointments += 1
            entry = per_customer.get(appointment.customer_id)
            if entry is None:
                entry = per_customer[appointment.customer_id] = CustomerIncome(
                    customer_id=appointment.customer_id,
                    customer_name=appointment.customer.name if appointment.customer else "",
                )
            entry.total += amount
            entry.appointments += 1
        elif appointment.start_at >= current:
            if appointment.status == AppointmentStatus.PENDING.value:
                summary.pending_appointments += 1
            elif appointment.status == AppointmentStatus.CONFIRMED.value:
                summary.upcoming_appointments += 1

    summary.by_customer = sorted(per_customer.values(), key=lambda c: (-c.total, c.customer_name))
    return summary


def monthly_overview(
    db: Session, owner_id: uuid.UUID, today: date | None = None
) -> dict:
    """This month vs last month, plus year-to-date total and monthly average."""
    config = get_scheduling_config(db, owner_id)
    now = owner_now(config.timezone)
    today = today or now.date()

    this_month = summarize_income(
        db, owner_id, _month_start(today), _next_month_start(today), now=now
    )
    last_month_day = (
        date(today.year - 1, 12, 1) if today.month == 1 else date(today.year, today.month - 1, 1)
    )
    last_month = summarize_income(
        db, owner_id, _month_start(last_month_day), _month_start(today), now=now
    )
    year = summarize_income(
        db, owner_id, datetime(today.year, 1, 1), datetime(today.year + 1, 1, 1), now=now
    )

    if last_month.total > 0:
        growth = (this_month.total - last_month.total) / last_month.total * 100
    else:
        growth = 100.0 if this_month.total > 0 else 0.0

    return {
        "this_month": this_month,
        "last_month": last_month,
        "year_total": year.total,
        "monthly_average": year.total / today.month,
        "growth_percentage": round(growth, 2),
    }
