from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import HTTPException

from backend.app.db import SessionLocal
from backend.app.statements.config import StatementSettings
from backend.app.statements.controller import StatementController, StatementSession
from backend.app.statements.date_filters import DateFilter
from backend.app.statements.errors import AnchorUnavailable, InvalidParty, StatementIntegrityError
from backend.app.statements.pending import InMemoryPendingQueue
from backend.app.statements.reconstruct import check_statement_continuity
from backend.app.statements.records import DrawerFilter, StatementEntry

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_controller: Optional[StatementController] = None
# least recently used first
_sessions: "OrderedDict[str, StatementSession]" = OrderedDict()
_last_used: Dict[str, float] = {}
_clock = time.monotonic

# locally queued, not yet committed events; fed by the offline sync subsystem
pending_queue = InMemoryPendingQueue()


def get_controller() -> StatementController:
    global _controller
    with _lock:
        if _controller is None:
            _controller = StatementController(
                SessionLocal,
                StatementSettings.from_env(),
                pending_queue=pending_queue,
            )
        return _controller


def reset_controller(controller: Optional[StatementController] = None) -> None:
    """Close every session and swap the process-wide controller (tests, reloads)."""
    global _controller
    with _lock:
        sessions = list(_sessions.values())
        _sessions.clear()
        _last_used.clear()
        previous, _controller = _controller, controller
    for session in sessions:
        if previous is not None:
            previous.close(session)
    if previous is not None and previous is not controller:
        previous.shutdown()


def _expire_idle_locked(now: float, idle_seconds: float) -> List[StatementSession]:
    expired = []
    while _sessions:
        session_id, session = next(iter(_sessions.items()))
        if now - _last_used.get(session_id, now) < idle_seconds:
            break
        _sessions.pop(session_id)
        _last_used.pop(session_id, None)
        expired.append(session)
    return expired


def _close_evicted(controller: StatementController, sessions: List[StatementSession], reason: str) -> None:
    for session in sessions:
        logger.info("closing statement session %s (%s)", session.id, reason)
        controller.close(session)


def _register(session: StatementSession) -> None:
    controller = get_controller()
    settings = controller.settings
    with _lock:
        now = _clock()
        expired = _expire_idle_locked(now, settings.session_idle_seconds)
        _sessions[session.id] = session
        _last_used[session.id] = now
        evicted = []
        while len(_sessions) > settings.max_sessions:
            session_id, oldest = _sessions.popitem(last=False)
            _last_used.pop(session_id, None)
            evicted.append(oldest)
    _close_evicted(controller, expired, "idle")
    _close_evicted(controller, evicted, "session cap reached")


def require_session(session_id: str) -> StatementSession:
    controller = get_controller()
    with _lock:
        now = _clock()
        expired = _expire_idle_locked(now, controller.settings.session_idle_seconds)
        session = _sessions.get(session_id)
        if session is not None:
            _sessions.move_to_end(session_id)
            _last_used[session_id] = now
    _close_evicted(controller, expired, "idle")
    if session is None:
        raise HTTPException(404, "statement session not found")
    return session


def open_statement(
    party_type: str,
    party_id: str,
    *,
    date_filter: str = "all",
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page_size: Optional[int] = None,
    transaction_type: str = "all",
    exclude_sales: bool = False,
) -> Dict[str, Any]:
    try:
        flt = DateFilter(type=date_filter, start_date=start_date, end_date=end_date)
        drawer_filter = DrawerFilter(transaction_type=transaction_type, exclude_sales=exclude_sales)
        page_size = get_controller().settings.clamp_page_size(page_size)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc

    try:
        session = get_controller().open(
            party_type, party_id, flt, page_size=page_size, drawer_filter=drawer_filter
        )
    except InvalidParty as exc:
        raise HTTPException(404, str(exc)) from exc
    except AnchorUnavailable as exc:
        raise HTTPException(503, str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc

    _register(session)
    return session_view(session)


def get_statement(session_id: str) -> Dict[str, Any]:
    return session_view(require_session(session_id))


def load_more(session_id: str) -> Dict[str, Any]:
    session = require_session(session_id)
    appended = get_controller().load_more(session)
    view = session_view(session)
    view["appended"] = [entry_view(entry) for entry in appended]
    return view


def refresh_statement(session_id: str) -> Dict[str, Any]:
    session = require_session(session_id)
    get_controller().refresh(session)
    return session_view(session)


def close_statement(session_id: str) -> Dict[str, Any]:
    session = require_session(session_id)
    get_controller().close(session)
    with _lock:
        _sessions.pop(session_id, None)
        _last_used.pop(session_id, None)
    return {"session_id": session_id, "closed": True}


def entry_view(entry: StatementEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "record_id": entry.record_id,
        "source": entry.source.value,
        "kind": entry.kind.value,
        "timestamp": entry.timestamp,
        "description": entry.description,
        "gross_amount": entry.gross_amount,
        "paid_amount": entry.paid_amount,
        "net_effect": entry.net_effect,
        "balance_after": entry.balance_after,
        "is_debit": entry.is_debit,
        "counterparty_name": entry.counterparty_name,
        "safe_name": entry.safe_name,
        "employee_name": entry.employee_name,
        "payment_method": entry.payment_method,
        "notes": entry.notes,
        "pending": entry.pending,
    }


def session_view(session: StatementSession) -> Dict[str, Any]:
    with session.lock:
        entries: List[StatementEntry] = list(session.entries)
        return {
            "session_id": session.id,
            "party_type": session.party.type.value,
            "party_id": session.party.id,
            "party_name": session.party.name,
            "date_filter": session.date_filter.type,
            "transaction_type": session.drawer_filter.transaction_type,
            "exclude_sales": session.drawer_filter.exclude_sales,
            "range_start": session.date_range.start,
            "range_end": session.date_range.end,
            "page_size": session.page_size,
            "entries": [entry_view(entry) for entry in entries],
            "is_loading_first_page": session.is_loading_first_page,
            "is_loading_more": session.is_loading_more,
            "has_more": session.has_more,
            "error": session.error,
            "current_balance": session.current_balance,
            "total_loaded": session.total_loaded,
        }


def check_statement(session_id: str) -> Dict[str, Any]:
    session = require_session(session_id)
    with session.lock:
        entries = list(session.entries)
        anchor = session.seed_balance
        contiguous = not session.drawer_filter.narrows
    try:
        summary = check_statement_continuity(entries, anchor_balance=anchor, contiguous=contiguous)
    except StatementIntegrityError as exc:
        logger.error("statement %s failed continuity check: %s", session_id, exc)
        return {"session_id": session_id, "ok": False, "error": str(exc)}
    return {"session_id": session_id, "ok": True, **summary}
