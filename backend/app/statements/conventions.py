"""
Statements - per-source sign conventions.

Each (party type, source kind) pair maps to one EffectRule:
  net_effect = direction(record) * (gross - paid)

Rules for records that belong to a cross-linked party are the mirror of the
linked party's own rule: whatever raises what a customer owes us lowers what
we owe the same counterparty as a supplier, and vice versa.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Tuple

from .records import EntryKind, PartyType, PaymentKind, RawSourceRecord, SourceKind


@dataclass(frozen=True)
class EffectRule:
    direction: Callable[[RawSourceRecord], int]
    kind: Callable[[RawSourceRecord], EntryKind]
    describe: Callable[[RawSourceRecord], str]

    def net_effect(self, record: RawSourceRecord) -> Decimal:
        return self.direction(record) * (record.amount - record.paid_amount)

    def is_debit(self, record: RawSourceRecord) -> bool:
        return self.direction(record) > 0


def mirrored(rule: EffectRule) -> EffectRule:
    return EffectRule(
        direction=lambda record: -rule.direction(record),
        kind=rule.kind,
        describe=rule.describe,
    )


def _with_notes(label: str, notes: str | None) -> str:
    notes = (notes or "").strip()
    return f"{label}: {notes}" if notes else label


# -------------------------
# Invoices
# -------------------------

def _invoice_direction(record: RawSourceRecord) -> int:
    return -1 if record.is_return else 1


def _invoice_kind(record: RawSourceRecord) -> EntryKind:
    return EntryKind.RETURN if record.is_return else EntryKind.INVOICE


def _invoice_describer(prefix: str) -> Callable[[RawSourceRecord], str]:
    def describe(record: RawSourceRecord) -> str:
        label = f"{prefix} return" if record.is_return else f"{prefix} invoice"
        if record.paid_amount > 0:
            label = f"{label} - payment"
        return f"{label} {record.reference}" if record.reference else label

    return describe


SALE_RULE = EffectRule(
    direction=_invoice_direction,
    kind=_invoice_kind,
    describe=_invoice_describer("Sale"),
)

PURCHASE_RULE = EffectRule(
    direction=_invoice_direction,
    kind=_invoice_kind,
    describe=_invoice_describer("Purchase"),
)


# -------------------------
# Payments
# -------------------------

_PAYMENT_KINDS = {
    PaymentKind.PAYMENT: EntryKind.PAYMENT,
    PaymentKind.LOAN: EntryKind.LOAN,
    PaymentKind.DISCOUNT: EntryKind.DISCOUNT,
}

_PAYMENT_LABELS = {
    PaymentKind.PAYMENT: "Payment",
    PaymentKind.LOAN: "Loan",
    PaymentKind.DISCOUNT: "Discount",
}


def _customer_payment_direction(record: RawSourceRecord) -> int:
    # a loan adds to what the customer owes; payments and discounts reduce it
    return 1 if record.payment_kind == PaymentKind.LOAN else -1


def _payment_kind(record: RawSourceRecord) -> EntryKind:
    return _PAYMENT_KINDS[record.payment_kind]


def _describe_customer_payment(record: RawSourceRecord) -> str:
    label = _PAYMENT_LABELS[record.payment_kind]
    if record.linked and record.payment_kind == PaymentKind.PAYMENT:
        label = "Customer payment"
    return _with_notes(label, record.notes)


CUSTOMER_PAYMENT_RULE = EffectRule(
    direction=_customer_payment_direction,
    kind=_payment_kind,
    describe=_describe_customer_payment,
)

SUPPLIER_PAYMENT_RULE = EffectRule(
    direction=lambda record: -1,
    kind=lambda record: EntryKind.PAYMENT,
    describe=lambda record: _with_notes("Payment", record.notes),
)


# -------------------------
# Cash drawer
# -------------------------

_DRAWER_KINDS = {
    "sale": EntryKind.SALE,
    "return": EntryKind.RETURN,
    "deposit": EntryKind.DEPOSIT,
    "withdrawal": EntryKind.WITHDRAWAL,
    "adjustment": EntryKind.ADJUSTMENT,
    "transfer_in": EntryKind.TRANSFER,
    "transfer_out": EntryKind.TRANSFER,
}

_DRAWER_LABELS = {
    EntryKind.SALE: "Sale invoice",
    EntryKind.RETURN: "Sale return",
    EntryKind.DEPOSIT: "Deposit",
    EntryKind.WITHDRAWAL: "Withdrawal",
    EntryKind.ADJUSTMENT: "Adjustment",
    EntryKind.TRANSFER: "Transfer",
    EntryKind.PAYMENT: "Payment",
}


def _drawer_kind(record: RawSourceRecord) -> EntryKind:
    if record.sale_id and record.reference:
        return EntryKind.RETURN if record.is_return else EntryKind.SALE
    return _DRAWER_KINDS.get((record.transaction_type or "").lower(), EntryKind.PAYMENT)


def _describe_drawer(record: RawSourceRecord) -> str:
    label = _DRAWER_LABELS[_drawer_kind(record)]
    if record.sale_id and record.reference:
        return f"{label} - {record.reference}"
    return (record.notes or "").strip() or label


DRAWER_RULE = EffectRule(
    direction=lambda record: record.direction,
    kind=_drawer_kind,
    describe=_describe_drawer,
)


RULES: Dict[Tuple[PartyType, SourceKind], EffectRule] = {
    (PartyType.CUSTOMER, SourceKind.SALE): SALE_RULE,
    (PartyType.CUSTOMER, SourceKind.CUSTOMER_PAYMENT): CUSTOMER_PAYMENT_RULE,
    (PartyType.CUSTOMER, SourceKind.PURCHASE): mirrored(PURCHASE_RULE),
    (PartyType.CUSTOMER, SourceKind.SUPPLIER_PAYMENT): mirrored(SUPPLIER_PAYMENT_RULE),
    (PartyType.SUPPLIER, SourceKind.PURCHASE): PURCHASE_RULE,
    (PartyType.SUPPLIER, SourceKind.SUPPLIER_PAYMENT): SUPPLIER_PAYMENT_RULE,
    (PartyType.SUPPLIER, SourceKind.SALE): mirrored(SALE_RULE),
    (PartyType.SUPPLIER, SourceKind.CUSTOMER_PAYMENT): mirrored(CUSTOMER_PAYMENT_RULE),
    (PartyType.SAFE, SourceKind.DRAWER): DRAWER_RULE,
}


def rule_for(party_type: PartyType, source: SourceKind) -> EffectRule:
    try:
        return RULES[(party_type, source)]
    except KeyError as exc:
        raise ValueError(f"no sign convention for {source.value} on a {party_type.value} statement") from exc
