"""Customer service - CRUD for an owner's customers."""

from __future__ import annotations

import uuid

from sqlalchemy import func
from sqlalchemy.orm import Session

from agenda.db.models import Customer
from agenda.services.appointment_store import commit
from agenda.services.errors import CustomerNotFoundError


def create_customer(
    db: Session,
    owner_id: uuid.UUID,
    name: str,
    email: str | None = None,
    phone: str | None = None,
) -> Customer:
    name = (name or "").strip()
    if not name:
        raise ValueError("Customer name is required")
    customer = Customer(
        owner_id=owner_id,
        name=name,
        email=(email or "").strip().lower() or None,
        phone=(phone or "").strip() or None,
    )
    db.add(customer)
    commit(db)
    db.refresh(customer)
    return customer


def get_customer(db: Session, owner_id: uuid.UUID, customer_id: uuid.UUID) -> Customer:
    """Raises CustomerNotFoundError when the customer belongs to another owner."""
    customer = (
        db.query(Customer)
        .filter(Customer.id == customer_id, Customer.owner_id == owner_id)
        .first()
    )
    if not customer:
        raise CustomerNotFoundError(f"Customer {customer_id} not found")
    return customer


def list_customers(
    db: Session,
    owner_id: uuid.UUID,
    q: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Customer]:
    """List customers by name; `q` matches name, email or phone."""
    query = db.query(Customer).filter(Customer.owner_id == owner_id)
    if q:
        pattern = f"%{q.strip().lower()}%"
        query = query.filter(
            func.lower(Customer.name).like(pattern)
            | func.lower(Customer.email).like(pattern)
            | Customer.phone.like(pattern)
        )
    return query.order_by(Customer.name).offset(offset).limit(limit).all()
