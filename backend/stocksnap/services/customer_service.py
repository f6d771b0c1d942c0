# Overview: Service-layer operations for customers.

from __future__ import annotations

from ..extensions import db
from ..errors import CustomerNotFound
from ..models import Customer


CUSTOMER_FIELDS = {"name", "email", "phone", "address"}


def create_customer(patch: dict) -> Customer:
    customer = Customer(**{k: v for k, v in patch.items() if k in CUSTOMER_FIELDS})
    db.session.add(customer)
    db.session.commit()
    return customer


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerNotFound(customer_id)
    return customer


def list_customers() -> list[Customer]:
    return db.session.query(Customer).order_by(Customer.name.asc(), Customer.id.asc()).all()
