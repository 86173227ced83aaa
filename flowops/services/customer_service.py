"""Customer reference data."""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from flowops.db.models import Customer


def get_customer(db: Session, customer_id: str) -> Customer | None:
    return db.get(Customer, customer_id)


def upsert_customer(db: Session, customer_id: str, email: str, plan: str) -> Customer:
    """Create the customer or refresh email/plan from the latest account facts."""
    customer = get_customer(db, customer_id)
    if customer is None:
        customer = Customer(id=customer_id, email=email, plan=plan)
        db.add(customer)
        try:
            db.commit()
            return customer
        except IntegrityError:
            # Concurrent request inserted it first
            db.rollback()
            customer = get_customer(db, customer_id)

    if customer.email != email or customer.plan != plan:
        customer.email = email
        customer.plan = plan
        db.commit()
    return customer
