from datetime import timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from backend.app.models import (
    PURCHASE_INVOICE,
    SALE_INVOICE,
    SALE_RETURN,
    CashDrawerTransaction,
    Customer,
    CustomerPayment,
    PurchaseInvoice,
    Safe,
    Sale,
    Supplier,
    SupplierPayment,
    UserProfile,
    utcnow,
)

DEMO_CUSTOMER_NAME = "Demo Trading Co."


def seed_demo_parties(db: Session) -> dict:
    """Create a linked customer/supplier pair, a safe and a short interleaved history."""
    existing = db.query(Customer).filter(Customer.name == DEMO_CUSTOMER_NAME).first()
    if existing:
        return {
            "customer_id": existing.id,
            "supplier_id": existing.linked_supplier_id,
            "safe_id": db.query(Safe.id).filter(Safe.name == "Main safe").scalar(),
        }

    now = utcnow().replace(microsecond=0)
    day = timedelta(days=1)

    cashier = UserProfile(full_name="Demo Cashier")
    safe = Safe(name="Main safe", balance=Decimal("0"))
    customer = Customer(name=DEMO_CUSTOMER_NAME, opening_balance=Decimal("50.00"))
    supplier = Supplier(name=DEMO_CUSTOMER_NAME, opening_balance=Decimal("0"))
    db.add_all([cashier, safe, customer, supplier])
    db.flush()
    customer.linked_supplier_id = supplier.id
    supplier.linked_customer_id = customer.id

    sale = Sale(
        invoice_number="S-1001",
        customer_id=customer.id,
        record_id=safe.id,
        cashier_id=cashier.id,
        invoice_type=SALE_INVOICE,
        total_amount=Decimal("300.00"),
        payment_method="cash",
        created_at=now - 6 * day,
    )
    db.add(sale)
    db.flush()

    db.add_all(
        [
            CashDrawerTransaction(
                record_id=safe.id,
                transaction_type="sale",
                amount=Decimal("100.00"),
                sale_id=sale.id,
                performed_by=cashier.id,
                payment_method="cash",
                created_at=sale.created_at,
            ),
            CustomerPayment(
                customer_id=customer.id,
                safe_id=safe.id,
                created_by=cashier.id,
                amount=Decimal("80.00"),
                kind="payment",
                payment_method="cash",
                notes="on account",
                created_at=now - 4 * day,
            ),
            CustomerPayment(
                customer_id=customer.id,
                created_by=cashier.id,
                amount=Decimal("20.00"),
                kind="discount",
                created_at=now - 3 * day,
            ),
            Sale(
                invoice_number="S-1002",
                customer_id=customer.id,
                record_id=safe.id,
                cashier_id=cashier.id,
                invoice_type=SALE_RETURN,
                total_amount=Decimal("40.00"),
                created_at=now - 2 * day,
            ),
            PurchaseInvoice(
                invoice_number="P-2001",
                supplier_id=supplier.id,
                record_id=safe.id,
                created_by=cashier.id,
                invoice_type=PURCHASE_INVOICE,
                total_amount=Decimal("120.00"),
                created_at=now - 5 * day,
            ),
            SupplierPayment(
                supplier_id=supplier.id,
                safe_id=safe.id,
                created_by=cashier.id,
                amount=Decimal("30.00"),
                payment_method="cash",
                created_at=now - day,
            ),
            CashDrawerTransaction(
                record_id=safe.id,
                transaction_type="withdrawal",
                amount=Decimal("-30.00"),
                performed_by=cashier.id,
                notes="supplier payment",
                created_at=now - day,
            ),
        ]
    )
    safe.balance = Decimal("70.00")
    db.commit()

    return {"customer_id": customer.id, "supplier_id": supplier.id, "safe_id": safe.id}


if __name__ == "__main__":
    from backend.app.db import SessionLocal

    with SessionLocal() as session:
        print(seed_demo_parties(session))
