"""
Statements - anchor balances.

The anchor is the party's present balance, computed once per session with
the same sign conventions the fold uses, so that walking the full history
backwards from it ends exactly at the opening balance.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.models import (
    PURCHASE_RETURN,
    SALE_RETURN,
    CashDrawerTransaction,
    Customer,
    CustomerPayment,
    PurchaseInvoice,
    Safe,
    Sale,
    Supplier,
    SupplierPayment,
)

from .errors import AnchorUnavailable, InvalidParty
from .records import ZERO, Party, PartyType, PaymentKind, to_money
from .sources import ALL_SAFES, NO_SAFE, drawer_owner_filter

logger = logging.getLogger(__name__)


def load_party(db: Session, party_type: PartyType | str, party_id: Optional[str]) -> Party:
    try:
        party_type = PartyType(party_type)
    except ValueError as exc:
        raise InvalidParty(str(party_type), party_id) from exc

    if not party_id or not party_id.strip():
        raise InvalidParty(party_type.value, party_id)

    if party_type == PartyType.CUSTOMER:
        customer = db.get(Customer, party_id)
        if not customer:
            raise InvalidParty(party_type.value, party_id)
        return Party(party_type, customer.id, customer.name, customer.linked_supplier_id)

    if party_type == PartyType.SUPPLIER:
        supplier = db.get(Supplier, party_id)
        if not supplier:
            raise InvalidParty(party_type.value, party_id)
        return Party(party_type, supplier.id, supplier.name, supplier.linked_customer_id)

    if party_id == NO_SAFE:
        return Party(party_type, NO_SAFE, "No safe")
    if party_id == ALL_SAFES:
        return Party(party_type, ALL_SAFES, "All safes")
    safe = db.get(Safe, party_id)
    if not safe:
        raise InvalidParty(party_type.value, party_id)
    return Party(party_type, safe.id, safe.name)


def _invoice_net(db: Session, model, owner_col, owner_id: str, return_type: str) -> Decimal:
    """Σ invoices - Σ returns for one owner, before settlements."""
    rows = db.execute(
        select(model.invoice_type, func.sum(model.total_amount))
        .where(owner_col == owner_id)
        .group_by(model.invoice_type)
    ).all()
    net = ZERO
    for invoice_type, total in rows:
        amount = abs(to_money(total))
        net += -amount if invoice_type == return_type else amount
    return net


def _settlement_adjustment(
    db: Session,
    model,
    owner_col,
    owner_id: str,
    return_type: str,
    key_col,
    amount_col,
    *criteria,
) -> Decimal:
    """Settlements reduce an invoice's effect and a return's effect alike (per invoice)."""
    rows = db.execute(
        select(model.invoice_type, func.sum(amount_col))
        .select_from(key_col.class_)
        .join(model, model.id == key_col)
        .where(owner_col == owner_id, *criteria)
        .group_by(model.id, model.invoice_type)
    ).all()
    adjustment = ZERO
    for invoice_type, total in rows:
        paid = abs(to_money(total))
        adjustment += paid if invoice_type == return_type else -paid
    return adjustment


def customer_net(db: Session, customer_id: str) -> Decimal:
    """What a customer's own records contribute to their balance (excluding opening)."""
    sales = _invoice_net(db, Sale, Sale.customer_id, customer_id, SALE_RETURN)
    sales += _settlement_adjustment(
        db,
        Sale,
        Sale.customer_id,
        customer_id,
        SALE_RETURN,
        CustomerPayment.sale_id,
        CustomerPayment.amount,
    )
    sales += _settlement_adjustment(
        db,
        Sale,
        Sale.customer_id,
        customer_id,
        SALE_RETURN,
        CashDrawerTransaction.sale_id,
        CashDrawerTransaction.amount,
        CashDrawerTransaction.transaction_type == "sale",
    )

    payments = ZERO
    rows = db.execute(
        select(CustomerPayment.kind, func.sum(CustomerPayment.amount))
        .where(CustomerPayment.customer_id == customer_id, CustomerPayment.sale_id.is_(None))
        .group_by(CustomerPayment.kind)
    ).all()
    for kind, total in rows:
        amount = abs(to_money(total))
        payments += amount if PaymentKind.parse(kind) == PaymentKind.LOAN else -amount

    return sales + payments


def supplier_net(db: Session, supplier_id: str) -> Decimal:
    """What a supplier's own records contribute to what we owe them (excluding opening)."""
    purchases = _invoice_net(db, PurchaseInvoice, PurchaseInvoice.supplier_id, supplier_id, PURCHASE_RETURN)
    purchases += _settlement_adjustment(
        db,
        PurchaseInvoice,
        PurchaseInvoice.supplier_id,
        supplier_id,
        PURCHASE_RETURN,
        SupplierPayment.purchase_invoice_id,
        SupplierPayment.amount,
    )
    standalone = db.execute(
        select(func.sum(SupplierPayment.amount)).where(
            SupplierPayment.supplier_id == supplier_id,
            SupplierPayment.purchase_invoice_id.is_(None),
        )
    ).scalar()
    return purchases - abs(to_money(standalone))


class AnchorResolver:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def load_party(self, party_type: PartyType | str, party_id: Optional[str]) -> Party:
        with self._session_factory() as db:
            return load_party(db, party_type, party_id)

    def resolve(self, party: Party) -> Decimal:
        try:
            with self._session_factory() as db:
                balance = self._resolve(db, party)
        except SQLAlchemyError as exc:
            logger.warning("anchor unavailable for %s %s: %s", party.type.value, party.id, exc)
            raise AnchorUnavailable(f"current balance unavailable for {party.type.value} {party.id}") from exc

        logger.info("anchor %s %s = %s", party.type.value, party.id, balance)
        return balance

    def _resolve(self, db: Session, party: Party) -> Decimal:
        if party.type == PartyType.CUSTOMER:
            customer = db.get(Customer, party.id)
            if customer is None:
                raise AnchorUnavailable(f"customer {party.id} disappeared")
            balance = to_money(customer.opening_balance) + customer_net(db, party.id)
            if party.linked_id:
                balance -= supplier_net(db, party.linked_id)
            return balance

        if party.type == PartyType.SUPPLIER:
            supplier = db.get(Supplier, party.id)
            if supplier is None:
                raise AnchorUnavailable(f"supplier {party.id} disappeared")
            balance = to_money(supplier.opening_balance) + supplier_net(db, party.id)
            if party.linked_id:
                balance -= customer_net(db, party.linked_id)
            return balance

        if party.id in (NO_SAFE, ALL_SAFES):
            orphans = to_money(
                db.execute(
                    select(func.sum(CashDrawerTransaction.amount)).where(drawer_owner_filter(NO_SAFE))
                ).scalar()
            )
            if party.id == NO_SAFE:
                return orphans
            return orphans + to_money(db.execute(select(func.sum(Safe.balance))).scalar())

        safe = db.get(Safe, party.id)
        if safe is None:
            raise AnchorUnavailable(f"safe {party.id} disappeared")
        return to_money(safe.balance)
