import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-for-the-gstbook-suite-0123456789")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("CRON_SECRET", "cron-test-secret")
os.environ.setdefault("RATE_LIMIT_ENABLED", "true")

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from gstbook.core.database import Base, get_db, init_db
from gstbook.core.mailer import LogMailer
from gstbook.core.rate_limit import InMemoryRateLimitStore
from gstbook.core.security import get_password_hash, create_access_token
from gstbook.main import create_app
from gstbook.models import Team, User, TeamMember, Customer, Supplier, TeamRole
from gstbook.schemas import InvoiceCreate, LineItemCreate, SupplierBillCreate
from gstbook.services.bill_service import SupplierBillService
from gstbook.services.feature_service import FeatureService
from gstbook.services.invoice_service import InvoiceService


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    FeatureService(session).seed_catalog()
    session.commit()
    yield session
    session.close()


# ---------- factories ----------

@pytest.fixture
def team(db):
    team = Team(name="Druk Traders", business_name="Druk Traders Pvt Ltd", tpn="TPN1001",
                email="accounts@druktraders.bt")
    db.add(team)
    db.commit()
    return team


@pytest.fixture
def owner(db, team):
    user = User(email="owner@druktraders.bt", name="Karma", hashed_password=get_password_hash("password123"))
    db.add(user)
    db.flush()
    db.add(TeamMember(team_id=team.id, user_id=user.id, role=TeamRole.OWNER.value))
    db.commit()
    return user


@pytest.fixture
def customer(db, team):
    customer = Customer(team_id=team.id, name="Tashi Enterprises", email="tashi@example.bt")
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture
def supplier(db, team):
    supplier = Supplier(team_id=team.id, name="Bhutan Wholesale", email="sales@wholesale.bt")
    db.add(supplier)
    db.commit()
    return supplier


def line(description="Consulting", quantity="1", unit_price="100.00", gst_rate="5",
         discount_percent="0", is_exempt=False):
    return LineItemCreate(
        description=description,
        quantity=Decimal(quantity),
        unit_price=Decimal(unit_price),
        gst_rate=Decimal(gst_rate),
        discount_percent=Decimal(discount_percent),
        is_exempt=is_exempt,
    )


@pytest.fixture
def make_invoice(db, team, customer):
    """Create an invoice for the team's customer, sent unless send=False"""
    def _make(items=None, send=True, due_date=None, customer_id=None, invoice_date=None):
        service = InvoiceService(db)
        invoice = service.create(
            InvoiceCreate(
                customer_id=customer_id or customer.id,
                invoice_date=invoice_date,
                due_date=due_date,
                items=items or [line()],
            ),
            team,
        )
        if send:
            service.send(invoice.id, team.id)
        db.commit()
        return invoice
    return _make


@pytest.fixture
def make_bill(db, team, supplier):
    def _make(items=None, receive=True, bill_date=None):
        service = SupplierBillService(db)
        bill = service.create(
            SupplierBillCreate(supplier_id=supplier.id, bill_date=bill_date, items=items or [line()]),
            team,
        )
        if receive:
            service.receive(bill.id, team.id)
        db.commit()
        return bill
    return _make


# ---------- HTTP ----------

@pytest.fixture
def rate_limiter():
    return InMemoryRateLimitStore()


@pytest.fixture
def mailer():
    return LogMailer()


@pytest.fixture
def app(session_factory, db, rate_limiter, mailer):
    app = create_app(rate_limiter=rate_limiter, mailer=mailer, manage_database=False)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


@pytest.fixture
def auth_headers(owner, team):
    token = create_access_token({"sub": str(owner.id), "team_id": team.id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def yesterday():
    return date.today() - timedelta(days=1)
