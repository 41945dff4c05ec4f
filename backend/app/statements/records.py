"""
Statements - value types shared by every stage of the pipeline.

Records flow one way:
  RawSourceRecord (per source table) -> interleave -> StatementEntry (with balance_after)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_money(value: object) -> Decimal:
    """Coerce a driver value (Decimal, float, int, str, None) to cents."""
    if value is None:
        return ZERO.quantize(CENT)
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT)


class PartyType(str, Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"
    SAFE = "safe"


class SourceKind(str, Enum):
    """Backing table a raw record was read from."""

    SALE = "sale"
    PURCHASE = "purchase"
    CUSTOMER_PAYMENT = "customer_payment"
    SUPPLIER_PAYMENT = "supplier_payment"
    DRAWER = "drawer"


class EntryKind(str, Enum):
    """What a statement row represents to the reader."""

    INVOICE = "invoice"
    RETURN = "return"
    PAYMENT = "payment"
    LOAN = "loan"
    DISCOUNT = "discount"
    SALE = "sale"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    ADJUSTMENT = "adjustment"
    TRANSFER = "transfer"


class PaymentKind(str, Enum):
    PAYMENT = "payment"
    LOAN = "loan"
    DISCOUNT = "discount"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "PaymentKind":
        try:
            return cls((raw or "payment").strip().lower())
        except ValueError:
            return cls.PAYMENT


@dataclass(frozen=True)
class Party:
    """A resolved party. ``linked_id`` is the cross-linked account, if any."""

    type: PartyType
    id: str
    name: str
    linked_id: Optional[str] = None


@dataclass(frozen=True, order=True)
class Cursor:
    """Keyset pointer: everything strictly older than (timestamp, id) is eligible."""

    timestamp: datetime
    id: str

    @classmethod
    def of(cls, record: "RawSourceRecord") -> "Cursor":
        return cls(timestamp=record.timestamp, id=record.id)


@dataclass(frozen=True)
class DateRange:
    """Inclusive bounds on record timestamps; ``None`` means unbounded."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.start and self.end and self.start > self.end:
            raise ValueError("date range start must not be after its end")


DRAWER_TRANSACTION_TYPES = (
    "sale",
    "return",
    "deposit",
    "withdrawal",
    "adjustment",
    "transfer_in",
    "transfer_out",
    "payment",
)


@dataclass(frozen=True)
class DrawerFilter:
    """
    Narrows a cash-drawer log.

    ``transaction_type`` is "all", one stored type, or "transfer" for both
    transfer directions. ``exclude_sales`` keeps only rows with no sale.
    """

    transaction_type: str = "all"
    exclude_sales: bool = False

    def __post_init__(self) -> None:
        allowed = ("all", "transfer") + DRAWER_TRANSACTION_TYPES
        if self.transaction_type not in allowed:
            raise ValueError(f"unknown transaction type: {self.transaction_type}")

    @property
    def narrows(self) -> bool:
        return self.transaction_type != "all" or self.exclude_sales

    def matches(self, transaction_type: Optional[str], sale_id: Optional[str]) -> bool:
        if self.exclude_sales and sale_id is not None:
            return False
        if self.transaction_type == "all":
            return True
        if self.transaction_type == "transfer":
            return transaction_type in ("transfer_in", "transfer_out")
        return transaction_type == self.transaction_type


@dataclass(frozen=True)
class RawSourceRecord:
    """
    One row from a source table, normalized enough to merge with other kinds.

    ``amount`` is the absolute gross value; ``direction`` (+1/-1) is set by the
    source for tables that store signed amounts (cash drawer) and is otherwise 1.
    ``paid_amount`` is the linked settlement found by the source's paired lookup.
    """

    id: str
    source: SourceKind
    timestamp: datetime
    amount: Decimal
    paid_amount: Decimal = ZERO
    direction: int = 1
    is_return: bool = False
    payment_kind: PaymentKind = PaymentKind.PAYMENT
    transaction_type: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    payment_method: Optional[str] = None
    safe_id: Optional[str] = None
    user_id: Optional[str] = None
    sale_id: Optional[str] = None
    linked: bool = False
    # folded into the running balance but not shown (narrowed drawer views)
    hidden: bool = False

    @property
    def sort_key(self) -> Tuple[datetime, str]:
        return (self.timestamp, self.id)


@dataclass(frozen=True)
class StatementEntry:
    """
    A reconstructed statement row.

    Invariant (committed rows, newest -> oldest):
      entries[i].balance_after - entries[i].net_effect == entries[i + 1].balance_after
    """

    id: str
    record_id: str
    source: SourceKind
    kind: EntryKind
    timestamp: datetime
    description: str
    gross_amount: Decimal
    paid_amount: Decimal
    net_effect: Decimal
    balance_after: Optional[Decimal]
    is_debit: bool
    counterparty_name: Optional[str] = None
    safe_name: Optional[str] = None
    employee_name: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    pending: bool = False

    @property
    def balance_before(self) -> Optional[Decimal]:
        if self.balance_after is None:
            return None
        return self.balance_after - self.net_effect


@dataclass(frozen=True)
class PendingEntry:
    """A locally queued event that has not been committed to the store yet."""

    local_id: str
    party_type: PartyType
    party_id: str
    created_at: datetime
    kind: EntryKind
    net_effect: Decimal
    gross_amount: Decimal
    description: str = ""
    notes: Optional[str] = None
    extra: dict = field(default_factory=dict, compare=False)
