"""create statement source tables

Revision ID: 4a1c0e7b9d20
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "4a1c0e7b9d20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _money() -> sa.Numeric:
    return sa.Numeric(14, 2)


def upgrade() -> None:
    op.create_table(
        "user_profiles",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "records",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("balance", _money(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "customers",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("opening_balance", _money(), nullable=False),
        sa.Column("linked_supplier_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_customers_linked_supplier_id", "customers", ["linked_supplier_id"], unique=False)
    op.create_table(
        "suppliers",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("opening_balance", _money(), nullable=False),
        sa.Column("linked_customer_id", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_suppliers_linked_customer_id", "suppliers", ["linked_customer_id"], unique=False)

    op.create_table(
        "sales",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("invoice_number", sa.String(length=60), nullable=False),
        sa.Column("customer_id", sa.String(length=36), nullable=True),
        sa.Column("record_id", sa.String(length=36), nullable=True),
        sa.Column("cashier_id", sa.String(length=36), nullable=True),
        sa.Column("invoice_type", sa.String(length=40), nullable=False),
        sa.Column("total_amount", _money(), nullable=False),
        sa.Column("payment_method", sa.String(length=40), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sales_customer_keyset", "sales", ["customer_id", "created_at", "id"], unique=False)

    op.create_table(
        "purchase_invoices",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("invoice_number", sa.String(length=60), nullable=False),
        sa.Column("supplier_id", sa.String(length=36), nullable=False),
        sa.Column("record_id", sa.String(length=36), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("invoice_type", sa.String(length=40), nullable=False),
        sa.Column("total_amount", _money(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_purchase_invoices_supplier_keyset",
        "purchase_invoices",
        ["supplier_id", "created_at", "id"],
        unique=False,
    )

    op.create_table(
        "customer_payments",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("customer_id", sa.String(length=36), nullable=False),
        sa.Column("sale_id", sa.String(length=36), nullable=True),
        sa.Column("safe_id", sa.String(length=36), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False),
        sa.Column("payment_method", sa.String(length=40), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["customer_id"], ["customers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_customer_payments_sale_id", "customer_payments", ["sale_id"], unique=False)
    op.create_index(
        "ix_customer_payments_customer_keyset",
        "customer_payments",
        ["customer_id", "created_at", "id"],
        unique=False,
    )

    op.create_table(
        "supplier_payments",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("supplier_id", sa.String(length=36), nullable=False),
        sa.Column("purchase_invoice_id", sa.String(length=36), nullable=True),
        sa.Column("safe_id", sa.String(length=36), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("payment_method", sa.String(length=40), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["purchase_invoice_id"], ["purchase_invoices.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_supplier_payments_purchase_invoice_id",
        "supplier_payments",
        ["purchase_invoice_id"],
        unique=False,
    )
    op.create_index(
        "ix_supplier_payments_supplier_keyset",
        "supplier_payments",
        ["supplier_id", "created_at", "id"],
        unique=False,
    )

    op.create_table(
        "cash_drawer_transactions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("record_id", sa.String(length=36), nullable=True),
        sa.Column("transaction_type", sa.String(length=40), nullable=False),
        sa.Column("amount", _money(), nullable=False),
        sa.Column("balance_after", _money(), nullable=True),
        sa.Column("sale_id", sa.String(length=36), nullable=True),
        sa.Column("performed_by", sa.String(length=36), nullable=True),
        sa.Column("payment_method", sa.String(length=40), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["sale_id"], ["sales.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_cash_drawer_transactions_sale_id", "cash_drawer_transactions", ["sale_id"], unique=False)
    op.create_index(
        "ix_cash_drawer_transactions_record_keyset",
        "cash_drawer_transactions",
        ["record_id", "created_at", "id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_cash_drawer_transactions_record_keyset", table_name="cash_drawer_transactions")
    op.drop_index("ix_cash_drawer_transactions_sale_id", table_name="cash_drawer_transactions")
    op.drop_table("cash_drawer_transactions")
    op.drop_index("ix_supplier_payments_supplier_keyset", table_name="supplier_payments")
    op.drop_index("ix_supplier_payments_purchase_invoice_id", table_name="supplier_payments")
    op.drop_table("supplier_payments")
    op.drop_index("ix_customer_payments_customer_keyset", table_name="customer_payments")
    op.drop_index("ix_customer_payments_sale_id", table_name="customer_payments")
    op.drop_table("customer_payments")
    op.drop_index("ix_purchase_invoices_supplier_keyset", table_name="purchase_invoices")
    op.drop_table("purchase_invoices")
    op.drop_index("ix_sales_customer_keyset", table_name="sales")
    op.drop_table("sales")
    op.drop_index("ix_suppliers_linked_customer_id", table_name="suppliers")
    op.drop_table("suppliers")
    op.drop_index("ix_customers_linked_supplier_id", table_name="customers")
    op.drop_table("customers")
    op.drop_table("records")
    op.drop_table("user_profiles")
