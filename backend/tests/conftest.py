"""
Pytest fixtures for the Elhamd finance backend tests.

Provides test database setup, the test client, and small factories for
branches, customers, parts, vehicles and invoices.
"""

import pytest

from elhamd import create_app
from elhamd.extensions import db
from elhamd.models import Branch, Customer, InventoryItem, Vehicle
from elhamd.services import invoice_service
from elhamd.services.inventory_service import set_quantity


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def branch(db_session):
    """Cairo showroom."""
    branch = Branch(name="Cairo Showroom", code="CAI", currency="EGP")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Mona Adel", email="mona@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def make_part(db_session):
    """Factory for stocked parts; status is derived from the quantity."""
    counter = {"n": 0}

    def _make(quantity=10, min_stock_level=3, unit_price_cents=10000, status=None):
        counter["n"] += 1
        item = InventoryItem(
            name=f"Part {counter['n']}",
            part_number=f"PN-{counter['n']:04d}",
            min_stock_level=min_stock_level,
            unit_price_cents=unit_price_cents,
        )
        if status:
            item.status = status
        set_quantity(item, quantity)
        db_session.add(item)
        db_session.commit()
        return item

    return _make


@pytest.fixture(scope='function')
def make_vehicle(db_session):
    counter = {"n": 0}

    def _make(status="AVAILABLE", price_cents=50000, branch_id=None):
        counter["n"] += 1
        vehicle = Vehicle(
            make="Tata",
            model="Nexon",
            year=2025,
            vin=f"VIN{counter['n']:014d}",
            price_cents=price_cents,
            branch_id=branch_id,
            status=status,
        )
        db_session.add(vehicle)
        db_session.commit()
        return vehicle

    return _make


@pytest.fixture(scope='function')
def make_invoice(db_session, customer):
    """Factory that creates invoices through the invoice service."""

    def _make(items=None, **fields):
        payload = {"customer_id": customer.id, "invoice_type": "SERVICE", "status": "DRAFT"}
        payload.update(fields)
        payload["items"] = items or [
            {"description": "Labour", "quantity": 1, "unit_price_cents": 1000},
        ]
        return invoice_service.create_invoice(payload)

    return _make


def part_line(part, quantity=1, unit_price_cents=None, **extra):
    """Invoice line referencing an inventory item."""
    metadata = {"itemType": "PART", "inventoryItemId": part.id}
    metadata.update(extra.pop("metadata", {}))
    return {
        "description": part.name,
        "quantity": quantity,
        "unit_price_cents": part.unit_price_cents if unit_price_cents is None else unit_price_cents,
        "metadata": metadata,
        **extra,
    }


def vehicle_line(vehicle, unit_price_cents=None):
    """Invoice line referencing a vehicle."""
    return {
        "description": f"{vehicle.make} {vehicle.model}",
        "quantity": 1,
        "unit_price_cents": vehicle.price_cents if unit_price_cents is None else unit_price_cents,
        "metadata": {"itemType": "VEHICLE", "vehicleId": vehicle.id},
    }
