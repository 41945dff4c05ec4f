"""
Statements - batched display-name lookups for one page of records.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.models import NO_SAFE_RECORD_ID, Customer, Safe, Sale, UserProfile

from .records import RawSourceRecord, SourceKind

logger = logging.getLogger(__name__)

NO_SAFE_LABEL = "No safe"
UNKNOWN_SAFE_LABEL = "Unknown safe"


class NameResolver(Protocol):
    def safe_names(self, safe_ids: Sequence[str]) -> Dict[str, str]: ...

    def user_names(self, user_ids: Sequence[str]) -> Dict[str, str]: ...

    def customer_names_for_sales(self, sale_ids: Sequence[str]) -> Dict[str, str]: ...


def _distinct(values: Iterable[Optional[str]]) -> list[str]:
    return sorted({value for value in values if value})


class SqlNameResolver:
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def safe_names(self, safe_ids: Sequence[str]) -> Dict[str, str]:
        ids = _distinct(safe_ids)
        if not ids:
            return {}
        with self._session_factory() as db:
            rows = db.execute(select(Safe.id, Safe.name).where(Safe.id.in_(ids))).all()
        return {safe_id: name for safe_id, name in rows}

    def user_names(self, user_ids: Sequence[str]) -> Dict[str, str]:
        ids = _distinct(user_ids)
        if not ids:
            return {}
        with self._session_factory() as db:
            rows = db.execute(
                select(UserProfile.id, UserProfile.full_name).where(UserProfile.id.in_(ids))
            ).all()
        return {user_id: name for user_id, name in rows}

    def customer_names_for_sales(self, sale_ids: Sequence[str]) -> Dict[str, str]:
        ids = _distinct(sale_ids)
        if not ids:
            return {}
        with self._session_factory() as db:
            rows = db.execute(
                select(Sale.id, Customer.name)
                .join(Customer, Customer.id == Sale.customer_id)
                .where(Sale.id.in_(ids))
            ).all()
        return {sale_id: name for sale_id, name in rows}


class CachingNameResolver:
    """
    Process-wide memo over another resolver.

    Only hits are cached, so a safe created after the first lookup is still
    found on the next page.
    """

    def __init__(self, inner: NameResolver):
        self._inner = inner
        self._lock = threading.Lock()
        self._buckets: Dict[str, Dict[str, str]] = {"safes": {}, "users": {}, "sale_customers": {}}

    def _lookup(self, bucket: str, ids: Sequence[str], load) -> Dict[str, str]:
        wanted = _distinct(ids)
        with self._lock:
            cached = self._buckets[bucket]
            found = {key: cached[key] for key in wanted if key in cached}
        missing = [key for key in wanted if key not in found]
        if missing:
            loaded = load(missing)
            with self._lock:
                self._buckets[bucket].update(loaded)
            found.update(loaded)
        return found

    def safe_names(self, safe_ids: Sequence[str]) -> Dict[str, str]:
        return self._lookup("safes", safe_ids, self._inner.safe_names)

    def user_names(self, user_ids: Sequence[str]) -> Dict[str, str]:
        return self._lookup("users", user_ids, self._inner.user_names)

    def customer_names_for_sales(self, sale_ids: Sequence[str]) -> Dict[str, str]:
        return self._lookup("sale_customers", sale_ids, self._inner.customer_names_for_sales)

    def clear(self) -> None:
        with self._lock:
            for bucket in self._buckets.values():
                bucket.clear()


@dataclass(frozen=True)
class PageNames:
    safes: Dict[str, str] = field(default_factory=dict)
    users: Dict[str, str] = field(default_factory=dict)
    sale_customers: Dict[str, str] = field(default_factory=dict)

    def safe_name(self, record: RawSourceRecord) -> Optional[str]:
        if record.source == SourceKind.DRAWER:
            if record.safe_id in (None, NO_SAFE_RECORD_ID):
                return NO_SAFE_LABEL
            return self.safes.get(record.safe_id, UNKNOWN_SAFE_LABEL)
        if not record.safe_id:
            return None
        return self.safes.get(record.safe_id)

    def employee_name(self, record: RawSourceRecord) -> Optional[str]:
        return self.users.get(record.user_id) if record.user_id else None

    def counterparty_name(self, record: RawSourceRecord) -> Optional[str]:
        return self.sale_customers.get(record.sale_id) if record.sale_id else None


def resolve_page_names(resolver: NameResolver, records: Sequence[RawSourceRecord]) -> PageNames:
    return PageNames(
        safes=resolver.safe_names([record.safe_id for record in records]),
        users=resolver.user_names([record.user_id for record in records]),
        sale_customers=resolver.customer_names_for_sales(
            [record.sale_id for record in records if record.source == SourceKind.DRAWER]
        ),
    )
