"""Tests for customer management."""

import uuid

import pytest

from agenda.services import customer_service
from agenda.services.errors import CustomerNotFoundError


def test_create_customer_normalizes_fields(db, owner):
    customer = customer_service.create_customer(
        db, owner.owner_id, "  Carla Soto ", email=" Carla@Example.COM ", phone=""
    )
    assert customer.name == "Carla Soto"
    assert customer.email == "carla@example.com"
    assert customer.phone is None


def test_create_customer_requires_name(db, owner):
    with pytest.raises(ValueError):
        customer_service.create_customer(db, owner.owner_id, "   ")


def test_get_customer_is_owner_scoped(db, owner, customer):
    assert customer_service.get_customer(db, owner.owner_id, customer.id).id == customer.id
    with pytest.raises(CustomerNotFoundError):
        customer_service.get_customer(db, uuid.uuid4(), customer.id)


def test_list_customers_search(db, owner, customer):
    customer_service.create_customer(db, owner.owner_id, "Bruno Diaz", phone="+56 9 8765 4321")

    assert [c.name for c in customer_service.list_customers(db, owner.owner_id)] == [
        "Ana Rojas",
        "Bruno Diaz",
    ]
    assert [c.name for c in customer_service.list_customers(db, owner.owner_id, q="ana@")] == [
        "Ana Rojas"
    ]
    assert [c.name for c in customer_service.list_customers(db, owner.owner_id, q="8765")] == [
        "Bruno Diaz"
    ]
    assert customer_service.list_customers(db, uuid.uuid4()) == []
