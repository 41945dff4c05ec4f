from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.db import Base


# -------------------------
# Helpers
# -------------------------

def utcnow() -> datetime:
    # stored naive (UTC) so keyset comparisons behave the same on every backend
    return datetime.now(timezone.utc).replace(tzinfo=None)


def uuid_str() -> str:
    return str(uuid.uuid4())


Money = Numeric(14, 2)

SALE_INVOICE = "Sale Invoice"
SALE_RETURN = "Sale Return"
PURCHASE_INVOICE = "Purchase Invoice"
PURCHASE_RETURN = "Purchase Return"

# legacy marker for drawer transactions recorded without a safe
NO_SAFE_RECORD_ID = "00000000-0000-0000-0000-000000000000"


# -------------------------
# Parties
# -------------------------

class UserProfile(Base):
    __tablename__ = "user_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Safe(Base):
    """A cash safe / drawer. ``balance`` is the materialized running total."""

    __tablename__ = "records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    opening_balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    # customers and suppliers reference each other, so the link is a plain column
    linked_supplier_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Supplier(Base):
    __tablename__ = "suppliers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    opening_balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    linked_customer_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


# -------------------------
# Ledger sources
# -------------------------

class Sale(Base):
    __tablename__ = "sales"
    __table_args__ = (
        Index("ix_sales_customer_keyset", "customer_id", "created_at", "id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    invoice_number: Mapped[str] = mapped_column(String(60), nullable=False)
    customer_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )
    record_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    cashier_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    invoice_type: Mapped[str] = mapped_column(String(40), default=SALE_INVOICE, nullable=False)
    # always stored positive; invoice_type carries the direction
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class PurchaseInvoice(Base):
    __tablename__ = "purchase_invoices"
    __table_args__ = (
        Index("ix_purchase_invoices_supplier_keyset", "supplier_id", "created_at", "id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    invoice_number: Mapped[str] = mapped_column(String(60), nullable=False)
    supplier_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False
    )
    record_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    invoice_type: Mapped[str] = mapped_column(String(40), default=PURCHASE_INVOICE, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class CustomerPayment(Base):
    __tablename__ = "customer_payments"
    __table_args__ = (
        Index("ix_customer_payments_customer_keyset", "customer_id", "created_at", "id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    customer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    # set when the payment settles a specific sale; NULL for standalone payments
    sale_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("sales.id", ondelete="SET NULL"), nullable=True, index=True
    )
    safe_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    # payment | loan | discount
    kind: Mapped[str] = mapped_column(String(20), default="payment", nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class SupplierPayment(Base):
    __tablename__ = "supplier_payments"
    __table_args__ = (
        Index("ix_supplier_payments_supplier_keyset", "supplier_id", "created_at", "id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    supplier_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False
    )
    purchase_invoice_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        ForeignKey("purchase_invoices.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    safe_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payment_method: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class CashDrawerTransaction(Base):
    __tablename__ = "cash_drawer_transactions"
    __table_args__ = (
        Index("ix_cash_drawer_transactions_record_keyset", "record_id", "created_at", "id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)
    record_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    # sale | return | deposit | withdrawal | adjustment | transfer_in | transfer_out | payment
    transaction_type: Mapped[str] = mapped_column(String(40), nullable=False)
    # signed: positive into the safe, negative out of it
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    balance_after: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    sale_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("sales.id", ondelete="SET NULL"), nullable=True, index=True
    )
    performed_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
