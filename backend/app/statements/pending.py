"""
Statements - locally queued events that have not been committed yet.

Pending rows are shown on top of the first page so a user sees what they
just recorded, but they carry no balance and never move the fold.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Protocol, Tuple

from .records import PartyType, PendingEntry, SourceKind, StatementEntry, to_money


class PendingQueue(Protocol):
    def pending_for(self, party_type: PartyType, party_id: str) -> List[PendingEntry]: ...


class InMemoryPendingQueue:
    def __init__(self):
        self._lock = threading.Lock()
        self._items: Dict[Tuple[PartyType, str], List[PendingEntry]] = {}

    def add(self, entry: PendingEntry) -> None:
        with self._lock:
            self._items.setdefault((PartyType(entry.party_type), entry.party_id), []).append(entry)

    def clear(self, party_type: PartyType | None = None, party_id: str | None = None) -> None:
        with self._lock:
            if party_type is None:
                self._items.clear()
                return
            self._items.pop((PartyType(party_type), party_id), None)

    def pending_for(self, party_type: PartyType, party_id: str) -> List[PendingEntry]:
        with self._lock:
            items = list(self._items.get((PartyType(party_type), party_id), []))
        return sorted(items, key=lambda item: (item.created_at, item.local_id), reverse=True)


_PENDING_SOURCE = {
    PartyType.CUSTOMER: SourceKind.CUSTOMER_PAYMENT,
    PartyType.SUPPLIER: SourceKind.SUPPLIER_PAYMENT,
    PartyType.SAFE: SourceKind.DRAWER,
}


def to_statement_entry(item: PendingEntry) -> StatementEntry:
    net = to_money(item.net_effect)
    return StatementEntry(
        id=f"pending-{item.local_id}",
        record_id=item.local_id,
        source=_PENDING_SOURCE[PartyType(item.party_type)],
        kind=item.kind,
        timestamp=item.created_at,
        description=item.description or item.kind.value.capitalize(),
        gross_amount=to_money(item.gross_amount),
        paid_amount=to_money(None),
        net_effect=net,
        balance_after=None,
        is_debit=net > 0,
        notes=item.notes,
        pending=True,
    )


def pending_entries(queue: PendingQueue | None, party_type: PartyType, party_id: str) -> List[StatementEntry]:
    if queue is None:
        return []
    return [to_statement_entry(item) for item in queue.pending_for(party_type, party_id)]
