import os
import pathlib
import sys
import tempfile
from datetime import datetime
from decimal import Decimal

import pytest


REPO_ROOT = pathlib.Path(__file__).resolve().parents[2]
sys.path.append(str(REPO_ROOT))


def pytest_configure():
    if os.getenv("DATABASE_URL") or os.getenv("SQLALCHEMY_DATABASE_URL"):
        return
    temp_dir = tempfile.mkdtemp(prefix="statements-tests-")
    db_path = pathlib.Path(temp_dir) / "pytest.db"
    os.environ["DATABASE_URL"] = f"sqlite:///{db_path}"


@pytest.fixture(scope="session")
def sqlite_engine():
    from backend.app.db import Base, engine
    from backend.app import models  # noqa: F401

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def sqlite_session(sqlite_engine):
    from backend.app.db import SessionLocal

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def statement_db(tmp_path):
    """A private file database per test; statement pages read it from worker threads."""
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker

    from backend.app.db import Base
    from backend.app import models  # noqa: F401

    engine = create_engine(
        f"sqlite:///{tmp_path / 'statements.db'}",
        future=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    try:
        yield factory
    finally:
        engine.dispose()


class LedgerBuilder:
    """Writes source rows with explicit timestamps and ids, committing each one."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def _add(self, row):
        with self.session_factory() as db:
            db.add(row)
            db.commit()
            return row.id

    def user(self, full_name="Cashier", **kw):
        from backend.app.models import UserProfile

        return self._add(UserProfile(full_name=full_name, **kw))

    def safe(self, name="Main safe", balance="0", **kw):
        from backend.app.models import Safe

        return self._add(Safe(name=name, balance=Decimal(balance), **kw))

    def set_safe_balance(self, safe_id, balance):
        from backend.app.models import Safe

        with self.session_factory() as db:
            db.get(Safe, safe_id).balance = Decimal(balance)
            db.commit()

    def customer(self, name="Customer", opening="0", **kw):
        from backend.app.models import Customer

        return self._add(Customer(name=name, opening_balance=Decimal(opening), **kw))

    def supplier(self, name="Supplier", opening="0", **kw):
        from backend.app.models import Supplier

        return self._add(Supplier(name=name, opening_balance=Decimal(opening), **kw))

    def link(self, customer_id, supplier_id):
        from backend.app.models import Customer, Supplier

        with self.session_factory() as db:
            db.get(Customer, customer_id).linked_supplier_id = supplier_id
            db.get(Supplier, supplier_id).linked_customer_id = customer_id
            db.commit()

    def sale(self, customer_id, amount, at: datetime, *, is_return=False, number="S-1", **kw):
        from backend.app.models import SALE_INVOICE, SALE_RETURN, Sale

        return self._add(
            Sale(
                customer_id=customer_id,
                invoice_number=number,
                invoice_type=SALE_RETURN if is_return else SALE_INVOICE,
                total_amount=Decimal(amount),
                created_at=at,
                **kw,
            )
        )

    def purchase(self, supplier_id, amount, at: datetime, *, is_return=False, number="P-1", **kw):
        from backend.app.models import PURCHASE_INVOICE, PURCHASE_RETURN, PurchaseInvoice

        return self._add(
            PurchaseInvoice(
                supplier_id=supplier_id,
                invoice_number=number,
                invoice_type=PURCHASE_RETURN if is_return else PURCHASE_INVOICE,
                total_amount=Decimal(amount),
                created_at=at,
                **kw,
            )
        )

    def customer_payment(self, customer_id, amount, at: datetime, *, kind="payment", **kw):
        from backend.app.models import CustomerPayment

        return self._add(
            CustomerPayment(customer_id=customer_id, amount=Decimal(amount), kind=kind, created_at=at, **kw)
        )

    def supplier_payment(self, supplier_id, amount, at: datetime, **kw):
        from backend.app.models import SupplierPayment

        return self._add(SupplierPayment(supplier_id=supplier_id, amount=Decimal(amount), created_at=at, **kw))

    def drawer(self, record_id, amount, at: datetime, *, transaction_type="deposit", **kw):
        from backend.app.models import CashDrawerTransaction

        return self._add(
            CashDrawerTransaction(
                record_id=record_id,
                transaction_type=transaction_type,
                amount=Decimal(amount),
                created_at=at,
                **kw,
            )
        )


@pytest.fixture()
def ledger(statement_db):
    return LedgerBuilder(statement_db)


@pytest.fixture()
def make_controller(statement_db):
    from backend.app.statements.config import StatementSettings
    from backend.app.statements.controller import StatementController

    controllers = []

    def _make(**kw):
        settings = kw.pop("settings", None) or StatementSettings(
            page_size=kw.pop("page_size", 200),
            fetch_workers=kw.pop("fetch_workers", 4),
            fetch_retries=kw.pop("fetch_retries", 0),
            retry_backoff_seconds=0,
            fetch_timeout_seconds=kw.pop("fetch_timeout_seconds", 10.0),
            name_cache_enabled=False,
        )
        controller = StatementController(statement_db, settings, sleep=lambda _s: None, **kw)
        controllers.append(controller)
        return controller

    yield _make
    for controller in controllers:
        controller.shutdown()


@pytest.fixture()
def api_client(statement_db):
    from fastapi.testclient import TestClient

    from backend.app.main import app
    from backend.app.services import statement_service
    from backend.app.statements.config import StatementSettings
    from backend.app.statements.controller import StatementController

    controller = StatementController(
        statement_db,
        StatementSettings(page_size=50, fetch_retries=0, name_cache_enabled=False),
        pending_queue=statement_service.pending_queue,
    )
    statement_service.reset_controller(controller)
    client = TestClient(app)
    try:
        yield client
    finally:
        statement_service.pending_queue.clear()
        statement_service.reset_controller()
