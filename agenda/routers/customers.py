"""Customers router."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from agenda.core.deps import get_current_owner_id, get_db
from agenda.schemas.customer import CustomerCreate, CustomerRead
from agenda.services import customer_service

router = APIRouter()


@router.get("", response_model=list[CustomerRead])
def list_customers(
    q: str | None = Query(None, max_length=100),
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    return customer_service.list_customers(db, owner_id, q=q, limit=limit, offset=offset)


@router.post("", response_model=CustomerRead, status_code=201)
def create_customer(
    data: CustomerCreate,
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    try:
        return customer_service.create_customer(
            db, owner_id, data.name, email=data.email, phone=data.phone
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/{customer_id}", response_model=CustomerRead)
def get_customer(
    customer_id: UUID,
    owner_id: UUID = Depends(get_current_owner_id),
    db: Session = Depends(get_db),
):
    return customer_service.get_customer(db, owner_id, customer_id)
