"""
Pytest fixtures for PharmaPOS backend tests.

Provides an in-memory SQLite app, per-test table wipe, branch/user/product
fixtures and X-User-Id header helpers.
"""

import pytest

from pharmapos import create_app
from pharmapos.extensions import db
from pharmapos.models import Branch, Customer, Product, User
from pharmapos.permissions import Role
from pharmapos.services.sales_service import CheckoutPolicy
from pharmapos.services.unit_of_work import SqlAlchemyUnitOfWork


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SQLITE_IMMEDIATE_TRANSACTIONS': False,
        'LOG_LEVEL': 'WARNING',
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
def uow(db_session):
    return SqlAlchemyUnitOfWork(db_session, sqlite_immediate=False)


def sequential_receipts(*numbers):
    """Receipt generator that hands out the given numbers in order."""
    pending = list(numbers)

    def _generate(now):
        return pending.pop(0)
    return _generate


@pytest.fixture(scope='function')
def policy():
    return CheckoutPolicy(retry_backoff=0)


@pytest.fixture(scope='function')
def branch(db_session):
    """Create Branch A."""
    branch = Branch(name="Branch A - Downtown", code="A")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def other_branch(db_session):
    """Create Branch B."""
    branch = Branch(name="Branch B - Uptown", code="B")
    db_session.add(branch)
    db_session.commit()
    return branch


def _make_user(db_session, username, role, branch_id):
    user = User(username=username, full_name=username.title(), role=role, branch_id=branch_id)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def cashier(db_session, branch):
    return _make_user(db_session, "cashier_a", Role.CASHIER, branch.id)


@pytest.fixture(scope='function')
def manager(db_session, branch):
    return _make_user(db_session, "manager_a", Role.MANAGER, branch.id)


@pytest.fixture(scope='function')
def pharmacist(db_session, branch):
    return _make_user(db_session, "pharmacist_a", Role.PHARMACIST, branch.id)


@pytest.fixture(scope='function')
def super_admin(db_session, branch):
    return _make_user(db_session, "superadmin", Role.SUPER_ADMIN, branch.id)


@pytest.fixture(scope='function')
def other_cashier(db_session, other_branch):
    return _make_user(db_session, "cashier_b", Role.CASHIER, other_branch.id)


@pytest.fixture(scope='function')
def product(db_session, branch):
    """Paracetamol in Branch A: 85.00 each, 10 on hand."""
    product = Product(
        branch_id=branch.id,
        name="Paracetamol 500mg",
        barcode="8901000000011",
        cost_price_cents=5000,
        selling_price_cents=8500,
        stock=10,
        min_stock=2,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def second_product(db_session, branch):
    product = Product(
        branch_id=branch.id,
        name="Amoxicillin 250mg",
        barcode="8901000000028",
        cost_price_cents=12000,
        selling_price_cents=18000,
        stock=5,
        min_stock=1,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def customer(db_session, branch):
    customer = Customer(branch_id=branch.id, name="Ayesha Khan", phone="0300-1234567")
    db_session.add(customer)
    db_session.commit()
    return customer


def auth_headers(user) -> dict:
    """Helper to create identity headers for a user."""
    return {'X-User-Id': str(user.id)}
