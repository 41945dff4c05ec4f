"""
Statements - per-kind source fetchers.

Every fetcher reads one backing table for one party, newest first, with a
composite keyset cursor:

  ORDER BY created_at DESC, id DESC
  WHERE created_at < :ts OR (created_at = :ts AND id < :id)

and attaches its paired amounts (settlements linked to the page's invoices)
with one batched IN (...) query per page.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import Select, and_, func, or_, select, true
from sqlalchemy.orm import Session

from backend.app.models import (
    NO_SAFE_RECORD_ID,
    PURCHASE_RETURN,
    SALE_RETURN,
    CashDrawerTransaction,
    CustomerPayment,
    PurchaseInvoice,
    Sale,
    SupplierPayment,
)

from .records import (
    Cursor,
    DateRange,
    DrawerFilter,
    Party,
    PartyType,
    PaymentKind,
    RawSourceRecord,
    SourceKind,
    to_money,
)

logger = logging.getLogger(__name__)

NO_SAFE = "no_safe"
ALL_SAFES = "all"


@dataclass(frozen=True)
class FetchResult:
    records: List[RawSourceRecord]
    # local hint only: fewer than page_size rows came back from this source
    exhausted: bool


def apply_date_range(stmt: Select, column, date_range: Optional[DateRange]) -> Select:
    if date_range is None:
        return stmt
    if date_range.start is not None:
        stmt = stmt.where(column >= date_range.start)
    if date_range.end is not None:
        stmt = stmt.where(column <= date_range.end)
    return stmt


def apply_keyset(stmt: Select, ts_column, id_column, cursor: Optional[Cursor]) -> Select:
    if cursor is None:
        return stmt
    return stmt.where(
        or_(
            ts_column < cursor.timestamp,
            and_(ts_column == cursor.timestamp, id_column < cursor.id),
        )
    )


def _sum_by(db: Session, key_column, amount_column, keys: Sequence[str], *criteria) -> Dict[str, Decimal]:
    if not keys:
        return {}
    stmt = (
        select(key_column, func.sum(amount_column))
        .where(key_column.in_(list(keys)), *criteria)
        .group_by(key_column)
    )
    return {key: to_money(total) for key, total in db.execute(stmt).all()}


class SourceFetcher:
    """Base fetcher; subclasses bind a model, a party filter and a row mapper."""

    source: SourceKind
    model = None

    def __init__(self, owner_id: str, *, linked: bool = False):
        self.owner_id = owner_id
        self.linked = linked

    def __repr__(self) -> str:
        return f"{type(self).__name__}(owner_id={self.owner_id!r}, linked={self.linked})"

    def eligible(self) -> Select:
        raise NotImplementedError

    def to_records(self, db: Session, rows: Sequence) -> List[RawSourceRecord]:
        raise NotImplementedError

    def fetch(
        self,
        db: Session,
        date_range: Optional[DateRange],
        cursor: Optional[Cursor],
        page_size: int,
    ) -> FetchResult:
        model = self.model
        stmt = self.eligible()
        stmt = apply_date_range(stmt, model.created_at, date_range)
        stmt = apply_keyset(stmt, model.created_at, model.id, cursor)
        stmt = stmt.order_by(model.created_at.desc(), model.id.desc()).limit(page_size)

        rows = db.execute(stmt).scalars().all()
        records = self.to_records(db, rows)
        logger.debug("%r fetched %d rows (cursor=%s)", self, len(records), cursor)
        return FetchResult(records=records, exhausted=len(records) < page_size)


class SaleFetcher(SourceFetcher):
    source = SourceKind.SALE
    model = Sale

    def eligible(self) -> Select:
        return select(Sale).where(Sale.customer_id == self.owner_id)

    def to_records(self, db: Session, rows: Sequence[Sale]) -> List[RawSourceRecord]:
        sale_ids = [row.id for row in rows]
        paid = defaultdict(Decimal)
        for sale_id, total in _sum_by(db, CustomerPayment.sale_id, CustomerPayment.amount, sale_ids).items():
            paid[sale_id] += abs(total)
        # cash taken at the till when the sale was rung up
        for sale_id, total in _sum_by(
            db,
            CashDrawerTransaction.sale_id,
            CashDrawerTransaction.amount,
            sale_ids,
            CashDrawerTransaction.transaction_type == "sale",
        ).items():
            paid[sale_id] += abs(total)

        return [
            RawSourceRecord(
                id=row.id,
                source=self.source,
                timestamp=row.created_at,
                amount=abs(to_money(row.total_amount)),
                paid_amount=to_money(paid.get(row.id)),
                is_return=row.invoice_type == SALE_RETURN,
                reference=row.invoice_number,
                notes=row.notes,
                payment_method=row.payment_method,
                safe_id=row.record_id,
                user_id=row.cashier_id,
                linked=self.linked,
            )
            for row in rows
        ]


class PurchaseFetcher(SourceFetcher):
    source = SourceKind.PURCHASE
    model = PurchaseInvoice

    def eligible(self) -> Select:
        return select(PurchaseInvoice).where(PurchaseInvoice.supplier_id == self.owner_id)

    def to_records(self, db: Session, rows: Sequence[PurchaseInvoice]) -> List[RawSourceRecord]:
        paid = _sum_by(
            db,
            SupplierPayment.purchase_invoice_id,
            SupplierPayment.amount,
            [row.id for row in rows],
        )
        paid = {invoice_id: abs(total) for invoice_id, total in paid.items()}
        methods: Dict[str, str] = {}
        if rows:
            method_rows = db.execute(
                select(SupplierPayment.purchase_invoice_id, SupplierPayment.payment_method).where(
                    SupplierPayment.purchase_invoice_id.in_([row.id for row in rows]),
                    SupplierPayment.payment_method.is_not(None),
                )
            ).all()
            methods = {invoice_id: method for invoice_id, method in method_rows}

        return [
            RawSourceRecord(
                id=row.id,
                source=self.source,
                timestamp=row.created_at,
                amount=abs(to_money(row.total_amount)),
                paid_amount=to_money(paid.get(row.id)),
                is_return=row.invoice_type == PURCHASE_RETURN,
                reference=row.invoice_number,
                notes=row.notes,
                payment_method=methods.get(row.id),
                safe_id=row.record_id,
                user_id=row.created_by,
                linked=self.linked,
            )
            for row in rows
        ]


class CustomerPaymentFetcher(SourceFetcher):
    """Standalone customer payments; ones tied to a sale are folded into that sale."""

    source = SourceKind.CUSTOMER_PAYMENT
    model = CustomerPayment

    def eligible(self) -> Select:
        return select(CustomerPayment).where(
            CustomerPayment.customer_id == self.owner_id,
            CustomerPayment.sale_id.is_(None),
        )

    def to_records(self, db: Session, rows: Sequence[CustomerPayment]) -> List[RawSourceRecord]:
        return [
            RawSourceRecord(
                id=row.id,
                source=self.source,
                timestamp=row.created_at,
                amount=abs(to_money(row.amount)),
                payment_kind=PaymentKind.parse(row.kind),
                notes=row.notes,
                payment_method=row.payment_method,
                safe_id=row.safe_id,
                user_id=row.created_by,
                linked=self.linked,
            )
            for row in rows
        ]


class SupplierPaymentFetcher(SourceFetcher):
    source = SourceKind.SUPPLIER_PAYMENT
    model = SupplierPayment

    def eligible(self) -> Select:
        return select(SupplierPayment).where(
            SupplierPayment.supplier_id == self.owner_id,
            SupplierPayment.purchase_invoice_id.is_(None),
        )

    def to_records(self, db: Session, rows: Sequence[SupplierPayment]) -> List[RawSourceRecord]:
        return [
            RawSourceRecord(
                id=row.id,
                source=self.source,
                timestamp=row.created_at,
                amount=abs(to_money(row.amount)),
                notes=row.notes,
                payment_method=row.payment_method,
                safe_id=row.safe_id,
                user_id=row.created_by,
                linked=self.linked,
            )
            for row in rows
        ]


def drawer_owner_filter(safe_id: str):
    if safe_id == ALL_SAFES:
        return true()
    if safe_id == NO_SAFE:
        return or_(
            CashDrawerTransaction.record_id.is_(None),
            CashDrawerTransaction.record_id == NO_SAFE_RECORD_ID,
        )
    return CashDrawerTransaction.record_id == safe_id


class DrawerFetcher(SourceFetcher):
    """
    Cash drawer rows of one safe, of ``no_safe`` or of ``all`` safes.

    A narrowing ``drawer_filter`` does not drop rows from the query: rows it
    rejects come back with ``hidden=True`` so the running balance still
    steps over them.
    """

    source = SourceKind.DRAWER
    model = CashDrawerTransaction

    def __init__(self, owner_id: str, drawer_filter: Optional[DrawerFilter] = None):
        super().__init__(owner_id)
        self.drawer_filter = drawer_filter or DrawerFilter()

    def __repr__(self) -> str:
        return f"DrawerFetcher(owner_id={self.owner_id!r}, filter={self.drawer_filter})"

    def eligible(self) -> Select:
        return select(CashDrawerTransaction).where(drawer_owner_filter(self.owner_id))

    def to_records(self, db: Session, rows: Sequence[CashDrawerTransaction]) -> List[RawSourceRecord]:
        sale_ids = sorted({row.sale_id for row in rows if row.sale_id})
        sales = {}
        if sale_ids:
            stmt = select(Sale.id, Sale.invoice_number, Sale.invoice_type, Sale.payment_method).where(
                Sale.id.in_(sale_ids)
            )
            sales = {sale_id: (number, kind, method) for sale_id, number, kind, method in db.execute(stmt).all()}

        records = []
        for row in rows:
            amount = to_money(row.amount)
            invoice_number, invoice_type, sale_method = sales.get(row.sale_id, (None, None, None))
            records.append(
                RawSourceRecord(
                    id=row.id,
                    source=self.source,
                    timestamp=row.created_at,
                    amount=abs(amount),
                    direction=1 if amount >= 0 else -1,
                    is_return=invoice_type == SALE_RETURN,
                    transaction_type=row.transaction_type,
                    reference=invoice_number,
                    notes=row.notes,
                    payment_method=row.payment_method or sale_method,
                    safe_id=row.record_id,
                    user_id=row.performed_by,
                    sale_id=row.sale_id,
                    hidden=not self.drawer_filter.matches(row.transaction_type, row.sale_id),
                )
            )
        return records


def sources_for(party: Party, drawer_filter: Optional[DrawerFilter] = None) -> List[SourceFetcher]:
    """The source plan of a statement: which tables feed which party type."""
    if party.type == PartyType.CUSTOMER:
        plan: List[SourceFetcher] = [SaleFetcher(party.id), CustomerPaymentFetcher(party.id)]
        if party.linked_id:
            plan.append(PurchaseFetcher(party.linked_id, linked=True))
            plan.append(SupplierPaymentFetcher(party.linked_id, linked=True))
        return plan

    if party.type == PartyType.SUPPLIER:
        plan = [PurchaseFetcher(party.id), SupplierPaymentFetcher(party.id)]
        if party.linked_id:
            plan.append(SaleFetcher(party.linked_id, linked=True))
            plan.append(CustomerPaymentFetcher(party.linked_id, linked=True))
        return plan

    return [DrawerFetcher(party.id, drawer_filter)]


def unique_sources(fetchers: Iterable[SourceFetcher]) -> List[SourceFetcher]:
    seen = set()
    out = []
    for fetcher in fetchers:
        if fetcher.source in seen:
            raise ValueError(f"duplicate source in plan: {fetcher.source.value}")
        seen.add(fetcher.source)
        out.append(fetcher)
    return out
