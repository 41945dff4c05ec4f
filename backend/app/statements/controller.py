"""
Statements - session orchestration.

Responsibility:
- Open a statement session for one party + date filter: resolve the anchor
  once, then fetch the first page.
- Extend it page by page (load_more), replace it (refresh), or close it.

Design notes:
- One session is strictly sequential. A load_more that arrives while a fetch
  is in flight is a no-op, not a queued request.
- Inside a page, the source fetches run concurrently on the session's own
  thread pool, each with its own ORM session; all of them are collected
  before the merge. A timed-out page retires that pool, so stalled threads
  never hold workers another page or session needs.
- Every fetch is tagged with the session generation. refresh/close bump the
  generation, so a late result from the previous configuration is dropped
  instead of touching the new cursor or balance.
- A failed page leaves cursor and carried balance untouched, so load_more can
  be retried with the same outcome.
"""

from __future__ import annotations

import logging
import threading
import uuid
import weakref
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.models import utcnow

from .anchor import AnchorResolver
from .config import StatementSettings
from .cursor import CursorManager, CursorState
from .date_filters import DateFilter
from .errors import AnchorUnavailable, SourceFetchFailed, StaleSessionDiscarded, StatementError
from .interleave import consumed_counts, merge
from .names import CachingNameResolver, NameResolver, SqlNameResolver, resolve_page_names
from .pending import PendingQueue, pending_entries
from .reconstruct import BalanceReconstructor
from .records import (
    Cursor,
    DateRange,
    DrawerFilter,
    Party,
    PartyType,
    RawSourceRecord,
    SourceKind,
    StatementEntry,
)
from .retry import RetryPolicy, retry_call
from .sources import FetchResult, SourceFetcher, sources_for, unique_sources

logger = logging.getLogger(__name__)

SourcePlan = Callable[[Party, DrawerFilter], List[SourceFetcher]]


class StatementSession:
    """Mutable state of one open statement. Guarded by ``lock``."""

    def __init__(
        self,
        party: Party,
        date_filter: DateFilter,
        page_size: int,
        now: Optional[datetime] = None,
        drawer_filter: Optional[DrawerFilter] = None,
    ):
        self.id = str(uuid.uuid4())
        self.party = party
        self.date_filter = date_filter
        self.drawer_filter = drawer_filter or DrawerFilter()
        self.page_size = page_size
        self.pinned_now = now
        self.date_range: DateRange = date_filter.to_range(now or utcnow())

        self.lock = threading.RLock()
        self.generation = 0
        self.closed = False

        self.anchor_balance: Optional[Decimal] = None
        self.seed_balance: Optional[Decimal] = None
        self.cursor = CursorManager()
        self.entries: List[StatementEntry] = []
        self.first_page_loaded = False

        self.is_loading_first_page = False
        self.is_loading_more = False
        self.error: Optional[str] = None

        self._in_flight: List[Future] = []
        # private workers: a stalled source cannot starve another session
        self.executor: Optional[ThreadPoolExecutor] = None

    def __repr__(self) -> str:
        return f"StatementSession(id={self.id!r}, party={self.party.type.value}:{self.party.id})"

    @property
    def party_type(self) -> PartyType:
        return self.party.type

    @property
    def is_loading(self) -> bool:
        return self.is_loading_first_page or self.is_loading_more

    @property
    def has_more(self) -> bool:
        with self.lock:
            if self.closed:
                return False
            if not self.first_page_loaded:
                return True
            return self.cursor.has_more

    @property
    def current_balance(self) -> Optional[Decimal]:
        return self.anchor_balance

    @property
    def total_loaded(self) -> int:
        with self.lock:
            return sum(1 for entry in self.entries if not entry.pending)

    def is_current(self, generation: int) -> bool:
        with self.lock:
            return not self.closed and self.generation == generation

    def track(self, futures: Iterable[Future]) -> None:
        with self.lock:
            self._in_flight.extend(futures)

    def untrack(self, futures: Iterable[Future]) -> None:
        with self.lock:
            done = set(futures)
            self._in_flight = [future for future in self._in_flight if future not in done]

    def cancel_in_flight(self) -> int:
        with self.lock:
            futures, self._in_flight = self._in_flight, []
        return sum(1 for future in futures if future.cancel())


@dataclass(frozen=True)
class _Page:
    records: List[RawSourceRecord]
    entries: List[StatementEntry]
    outgoing_balance: Decimal
    full: bool


class StatementController:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: Optional[StatementSettings] = None,
        *,
        name_resolver: Optional[NameResolver] = None,
        pending_queue: Optional[PendingQueue] = None,
        anchor_resolver: Optional[AnchorResolver] = None,
        source_plan: SourcePlan = sources_for,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.settings = settings or StatementSettings.from_env()
        self._session_factory = session_factory
        self._anchors = anchor_resolver or AnchorResolver(session_factory)
        if name_resolver is None:
            name_resolver = SqlNameResolver(session_factory)
            if self.settings.name_cache_enabled:
                name_resolver = CachingNameResolver(name_resolver)
        self._names = name_resolver
        self._pending = pending_queue
        self._source_plan = source_plan
        self._sleep = sleep
        self._retry_policy = RetryPolicy(
            total=self.settings.fetch_retries,
            base=self.settings.retry_backoff_seconds,
            cap=self.settings.retry_backoff_cap_seconds,
        )
        self._sessions_lock = threading.Lock()
        self._open_sessions: "weakref.WeakSet[StatementSession]" = weakref.WeakSet()

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(
            max_workers=self.settings.fetch_workers,
            thread_name_prefix="statement-fetch",
        )

    def shutdown(self) -> None:
        with self._sessions_lock:
            sessions = list(self._open_sessions)
        executors = [session.executor for session in sessions if session.executor is not None]
        for session in sessions:
            self.close(session)
        for executor in executors:
            executor.shutdown(wait=True, cancel_futures=True)

    # -------------------------
    # Public operations
    # -------------------------

    def open(
        self,
        party_type: PartyType | str,
        party_id: Optional[str],
        date_filter: Optional[DateFilter] = None,
        *,
        page_size: Optional[int] = None,
        now: Optional[datetime] = None,
        drawer_filter: Optional[DrawerFilter] = None,
    ) -> StatementSession:
        """
        Start a session and load its first page.

        Raises InvalidParty for an absent/unknown party and AnchorUnavailable
        when the current balance cannot be computed. A failed first page does
        not raise; it is reported on ``session.error`` and load_more retries it.
        ``drawer_filter`` only applies to safe statements.
        """
        party = self._anchors.load_party(party_type, party_id)
        if drawer_filter is not None and drawer_filter.narrows and party.type != PartyType.SAFE:
            raise ValueError("transaction filters only apply to safe statements")
        session = StatementSession(
            party=party,
            date_filter=date_filter or DateFilter(),
            page_size=self.settings.clamp_page_size(page_size),
            now=now,
            drawer_filter=drawer_filter,
        )
        session.executor = self._new_executor()
        with self._sessions_lock:
            self._open_sessions.add(session)
        logger.info(
            "open statement %s for %s %s (filter=%s, drawer=%s, page_size=%d)",
            session.id,
            party.type.value,
            party.id,
            session.date_filter.type,
            session.drawer_filter,
            session.page_size,
        )
        with session.lock:
            session.is_loading_first_page = True
            generation = session.generation
        try:
            self._load_first_page(session, generation, raise_anchor=True)
        except AnchorUnavailable:
            self.close(session)
            raise
        return session

    def load_more(self, session: StatementSession) -> List[StatementEntry]:
        """Append the next page. Returns only the rows this call appended."""
        with session.lock:
            if session.closed or session.is_loading:
                logger.debug("load_more ignored for %s (closed or in flight)", session.id)
                return []
            generation = session.generation
            if not session.first_page_loaded:
                # nothing committed yet: the first page (or anchor) failed earlier
                session.is_loading_first_page = True
                first = True
            elif not session.cursor.has_more:
                return []
            else:
                session.is_loading_more = True
                first = False
            state = session.cursor.snapshot()

        if first:
            return self._load_first_page(session, generation)
        return self._load_next_page(session, generation, state)

    def refresh(self, session: StatementSession) -> List[StatementEntry]:
        """Discard all accumulated state and load page one again."""
        with session.lock:
            if session.closed:
                return []
            session.generation += 1
            generation = session.generation
            cancelled = session.cancel_in_flight()
            session.date_range = session.date_filter.to_range(session.pinned_now or utcnow())
            session.anchor_balance = None
            session.seed_balance = None
            session.cursor = CursorManager()
            session.entries = []
            session.first_page_loaded = False
            session.error = None
            session.is_loading_more = False
            session.is_loading_first_page = True

        logger.info("refresh statement %s (generation=%d, cancelled=%d)", session.id, generation, cancelled)
        return self._load_first_page(session, generation)

    def close(self, session: StatementSession) -> None:
        with session.lock:
            if session.closed:
                return
            session.closed = True
            session.generation += 1
            cancelled = session.cancel_in_flight()
            session.is_loading_first_page = False
            session.is_loading_more = False
            executor, session.executor = session.executor, None
        with self._sessions_lock:
            self._open_sessions.discard(session)
        if executor is not None:
            executor.shutdown(wait=False, cancel_futures=True)
        logger.info("close statement %s (cancelled=%d)", session.id, cancelled)

    # -------------------------
    # Page pipeline
    # -------------------------

    def _load_first_page(
        self,
        session: StatementSession,
        generation: int,
        *,
        raise_anchor: bool = False,
    ) -> List[StatementEntry]:
        try:
            if session.anchor_balance is None:
                self._resolve_seed(session, generation)

            with session.lock:
                if not session.is_current(generation):
                    raise StaleSessionDiscarded(session.id)
                state = session.cursor.snapshot()

            page = self._fetch_with_retry(session, generation, state)
            pending = self._pending_for(session)

            with session.lock:
                if not session.is_current(generation):
                    raise StaleSessionDiscarded(session.id)
                session.cursor.advance(
                    page.records[-1] if page.records else None,
                    page.outgoing_balance,
                    page.full,
                )
                session.entries = pending + page.entries
                session.first_page_loaded = True
                session.error = None
            logger.info(
                "statement %s first page: %d rows, %d pending, has_more=%s",
                session.id,
                len(page.entries),
                len(pending),
                session.cursor.has_more,
            )
            return list(session.entries)

        except StaleSessionDiscarded:
            logger.debug("discarded stale first page for %s (generation=%d)", session.id, generation)
            return []
        except AnchorUnavailable as exc:
            self._record_error(session, generation, exc)
            if raise_anchor:
                raise
            return []
        except StatementError as exc:
            self._record_error(session, generation, exc)
            return []
        finally:
            with session.lock:
                if session.generation == generation:
                    session.is_loading_first_page = False

    def _load_next_page(
        self,
        session: StatementSession,
        generation: int,
        state: CursorState,
    ) -> List[StatementEntry]:
        try:
            page = self._fetch_with_retry(session, generation, state)
            with session.lock:
                if not session.is_current(generation):
                    raise StaleSessionDiscarded(session.id)
                session.cursor.advance(
                    page.records[-1] if page.records else None,
                    page.outgoing_balance,
                    page.full,
                )
                session.entries.extend(page.entries)
                session.error = None
            logger.debug(
                "statement %s appended %d rows (has_more=%s)",
                session.id,
                len(page.entries),
                session.cursor.has_more,
            )
            return list(page.entries)

        except StaleSessionDiscarded:
            logger.debug("discarded stale page for %s (generation=%d)", session.id, generation)
            return []
        except StatementError as exc:
            self._record_error(session, generation, exc)
            return []
        finally:
            with session.lock:
                if session.generation == generation:
                    session.is_loading_more = False

    def _record_error(self, session: StatementSession, generation: int, exc: StatementError) -> None:
        with session.lock:
            if session.generation != generation:
                return
            session.error = str(exc)
        logger.warning("statement %s failed: %s", session.id, exc)

    def _resolve_seed(self, session: StatementSession, generation: int) -> None:
        anchor = self._anchors.resolve(session.party)
        seed = anchor
        date_range = session.date_range
        if date_range.end is not None:
            seed = self._roll_back(session, generation, anchor, date_range.end)

        with session.lock:
            if not session.is_current(generation):
                raise StaleSessionDiscarded(session.id)
            session.anchor_balance = anchor
            session.seed_balance = seed
            session.cursor.reset(seed)

    def _roll_back(self, session: StatementSession, generation: int, anchor: Decimal, end: datetime) -> Decimal:
        """Fold the anchor back over every record newer than ``end``."""
        after_end = DateRange(start=end + timedelta(microseconds=1))
        fetchers = unique_sources(self._source_plan(session.party, session.drawer_filter))

        def drain(fetcher: SourceFetcher) -> List[RawSourceRecord]:
            out: List[RawSourceRecord] = []
            cursor: Optional[Cursor] = None
            while True:
                with self._session_factory() as db:
                    result = fetcher.fetch(db, after_end, cursor, session.page_size)
                out.extend(result.records)
                if result.exhausted or not result.records:
                    return out
                cursor = Cursor.of(result.records[-1])

        per_source = self._fan_out(session, fetchers, drain)
        newer = [record for records in per_source.values() for record in records]
        seed = BalanceReconstructor(session.party.type).fold(newer, anchor)
        logger.debug("statement %s rolled anchor %s back over %d rows to %s", session.id, anchor, len(newer), seed)
        return seed

    def _fetch_with_retry(self, session: StatementSession, generation: int, state: CursorState) -> _Page:
        def retry_on(exc: Exception) -> bool:
            return isinstance(exc, SourceFetchFailed) and session.is_current(generation)

        kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        return retry_call(
            lambda: self._fetch_page(session, generation, state),
            policy=self._retry_policy,
            retry_on=retry_on,
            **kwargs,
        )

    def _fetch_page(self, session: StatementSession, generation: int, state: CursorState) -> _Page:
        if not session.is_current(generation):
            raise StaleSessionDiscarded(session.id)

        fetchers = unique_sources(self._source_plan(session.party, session.drawer_filter))
        date_range = session.date_range
        page_size = session.page_size

        def fetch(fetcher: SourceFetcher) -> List[RawSourceRecord]:
            with self._session_factory() as db:
                result: FetchResult = fetcher.fetch(db, date_range, state.cursor, page_size)
            return result.records

        per_source = self._fan_out(session, fetchers, fetch)
        records = merge(per_source, page_size)
        logger.debug("statement %s page consumed %s", session.id, consumed_counts(records))

        try:
            names = resolve_page_names(self._names, records)
        except SQLAlchemyError as exc:
            raise SourceFetchFailed("names", str(exc)) from exc

        reconstructed = BalanceReconstructor(session.party.type).reconstruct(
            records, state.carried_balance, names
        )
        return _Page(
            records=records,
            entries=reconstructed.entries,
            outgoing_balance=reconstructed.outgoing_balance,
            full=len(records) == page_size,
        )

    def _fan_out(
        self,
        session: StatementSession,
        fetchers: Sequence[SourceFetcher],
        fn: Callable[[SourceFetcher], List[RawSourceRecord]],
    ) -> Dict[SourceKind, List[RawSourceRecord]]:
        """Run ``fn`` for every source concurrently; the page fails if any source does."""
        with session.lock:
            if session.closed or session.executor is None:
                raise StaleSessionDiscarded(session.id)
            executor = session.executor
            futures = {executor.submit(fn, fetcher): fetcher for fetcher in fetchers}
        session.track(futures)
        try:
            done, not_done = wait(futures, timeout=self.settings.fetch_timeout_seconds)
            if not_done:
                for future in not_done:
                    future.cancel()
                self._retire_executor(session, executor)
                late = futures[next(iter(not_done))]
                raise SourceFetchFailed(
                    late.source.value,
                    f"timed out after {self.settings.fetch_timeout_seconds}s",
                )

            results: Dict[SourceKind, List[RawSourceRecord]] = {}
            for future, fetcher in futures.items():
                if future.cancelled():
                    raise StaleSessionDiscarded(session.id)
                exc = future.exception()
                if exc is not None:
                    raise SourceFetchFailed(fetcher.source.value, str(exc)) from exc
                results[fetcher.source] = future.result()
            return results
        finally:
            session.untrack(futures)

    def _retire_executor(self, session: StatementSession, stalled: ThreadPoolExecutor) -> None:
        """Swap in fresh workers; threads stuck in a timed-out fetch finish on the old pool."""
        with session.lock:
            if session.closed or session.executor is not stalled:
                return
            session.executor = self._new_executor()
        stalled.shutdown(wait=False)
        logger.warning("statement %s replaced its fetch workers after a timeout", session.id)

    def _pending_for(self, session: StatementSession) -> List[StatementEntry]:
        """Unsynced rows belong to the present and to the unfiltered drawer log."""
        end = session.date_range.end
        if end is not None and end < (session.pinned_now or utcnow()):
            return []
        if session.drawer_filter.narrows:
            return []
        return pending_entries(self._pending, session.party.type, session.party.id)
