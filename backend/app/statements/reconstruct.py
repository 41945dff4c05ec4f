"""
Statements - backward balance reconstruction.

Responsibility:
- Turn a newest-first page of raw records into StatementEntry rows, each with
  the balance that held right after the event.

Design notes:
- Only the present balance is known. Walking newest -> oldest, the running
  value before a record is its balance_after; subtracting its net effect
  yields the balance before it, which is the next (older) row's balance_after.
- One session is a single unbroken fold: the outgoing balance of page N is the
  incoming balance of page N + 1.
- Hidden records (filtered out of a drawer view) move the balance but emit no
  row, so consecutive rows of a narrowed view are not contiguous.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from .conventions import rule_for
from .errors import StatementIntegrityError
from .names import PageNames
from .records import ZERO, PartyType, RawSourceRecord, StatementEntry


def entry_id(record: RawSourceRecord) -> str:
    return f"{record.source.value}-{record.id}"


@dataclass(frozen=True)
class ReconstructedPage:
    entries: List[StatementEntry]
    outgoing_balance: Decimal


class BalanceReconstructor:
    def __init__(self, party_type: PartyType):
        self.party_type = party_type

    def net_effect(self, record: RawSourceRecord) -> Decimal:
        return rule_for(self.party_type, record.source).net_effect(record)

    def fold(self, records: Iterable[RawSourceRecord], incoming_balance: Decimal) -> Decimal:
        """Balance before the oldest record, without building entries."""
        balance = incoming_balance
        for record in records:
            balance -= self.net_effect(record)
        return balance

    def reconstruct(
        self,
        records: Sequence[RawSourceRecord],
        incoming_balance: Decimal,
        names: Optional[PageNames] = None,
    ) -> ReconstructedPage:
        names = names or PageNames()
        balance = incoming_balance
        entries: List[StatementEntry] = []

        for record in records:
            rule = rule_for(self.party_type, record.source)
            net = rule.net_effect(record)
            balance_after = balance
            balance = balance - net
            if record.hidden:
                continue

            entries.append(
                StatementEntry(
                    id=entry_id(record),
                    record_id=record.id,
                    source=record.source,
                    kind=rule.kind(record),
                    timestamp=record.timestamp,
                    description=rule.describe(record),
                    gross_amount=record.amount,
                    paid_amount=record.paid_amount,
                    net_effect=net,
                    balance_after=balance_after,
                    is_debit=rule.is_debit(record),
                    counterparty_name=names.counterparty_name(record),
                    safe_name=names.safe_name(record),
                    employee_name=names.employee_name(record),
                    payment_method=record.payment_method,
                    notes=record.notes,
                )
            )

        return ReconstructedPage(entries=entries, outgoing_balance=balance)


def check_statement_continuity(
    entries: Iterable[StatementEntry],
    *,
    anchor_balance: Optional[Decimal] = None,
    contiguous: bool = True,
) -> dict:
    """
    Side-effect-free check of a session's accumulated rows.

    Invariants:
    - balance_after(i) - net_effect(i) == balance_after(i + 1)
    - rows are non-increasing in (timestamp, record id)
    - entry ids are unique
    - the newest committed row's balance_after equals the anchor, when given
    Pending rows are skipped; they are not part of the fold. A narrowed
    drawer view passes ``contiguous=False``: its rows skip hidden records, so
    only ids, ordering and the presence of balances are checked.
    """
    rows = [entry for entry in entries if not entry.pending]
    seen: set[str] = set()
    prev: Optional[StatementEntry] = None
    total = ZERO

    for idx, row in enumerate(rows):
        if row.balance_after is None:
            raise StatementIntegrityError(f"Invariant violation: committed row {idx} has no balance.")
        if row.id in seen:
            raise StatementIntegrityError(f"Invariant violation: duplicate entry {row.id}.")
        seen.add(row.id)

        if prev is not None:
            if (row.timestamp, row.record_id) > (prev.timestamp, prev.record_id):
                raise StatementIntegrityError(
                    f"Invariant violation: row {idx} is newer than the row before it."
                )
            if contiguous and prev.balance_before != row.balance_after:
                raise StatementIntegrityError(
                    f"Invariant violation: running balance mismatch at row {idx}."
                )

        total += row.net_effect
        prev = row

    if contiguous and rows and anchor_balance is not None and rows[0].balance_after != anchor_balance:
        raise StatementIntegrityError(
            "Invariant violation: newest row does not reconcile to the anchor balance."
        )

    oldest_before = prev.balance_before if prev is not None else anchor_balance
    return {
        "rows": len(rows),
        "net_effect_total": total,
        "oldest_balance_before": oldest_before,
    }

