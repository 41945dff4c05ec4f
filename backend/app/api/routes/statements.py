from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from backend.app.services import statement_service

router = APIRouter(prefix="/api/statements", tags=["statements"])


class StatementOpenIn(BaseModel):
    party_type: Literal["customer", "supplier", "safe"]
    party_id: str
    date_filter: Literal[
        "all",
        "today",
        "current_week",
        "last_week",
        "current_month",
        "last_month",
        "custom",
    ] = "all"
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    page_size: Optional[int] = Field(default=None, ge=1)
    # cash-drawer logs only
    transaction_type: Literal[
        "all",
        "transfer",
        "sale",
        "return",
        "deposit",
        "withdrawal",
        "adjustment",
        "transfer_in",
        "transfer_out",
        "payment",
    ] = "all"
    exclude_sales: bool = False


class StatementEntryOut(BaseModel):
    id: str
    record_id: str
    source: str
    kind: str
    timestamp: datetime
    description: str
    gross_amount: Decimal
    paid_amount: Decimal
    net_effect: Decimal
    balance_after: Optional[Decimal] = None
    is_debit: bool
    counterparty_name: Optional[str] = None
    safe_name: Optional[str] = None
    employee_name: Optional[str] = None
    payment_method: Optional[str] = None
    notes: Optional[str] = None
    pending: bool = False


class StatementSessionOut(BaseModel):
    session_id: str
    party_type: str
    party_id: str
    party_name: str
    date_filter: str
    transaction_type: str = "all"
    exclude_sales: bool = False
    range_start: Optional[datetime] = None
    range_end: Optional[datetime] = None
    page_size: int
    entries: List[StatementEntryOut]
    is_loading_first_page: bool
    is_loading_more: bool
    has_more: bool
    error: Optional[str] = None
    current_balance: Optional[Decimal] = None
    total_loaded: int


class StatementMoreOut(StatementSessionOut):
    appended: List[StatementEntryOut]


class StatementClosedOut(BaseModel):
    session_id: str
    closed: bool


@router.post("", response_model=StatementSessionOut)
def open_statement(req: StatementOpenIn):
    return statement_service.open_statement(
        req.party_type,
        req.party_id,
        date_filter=req.date_filter,
        start_date=req.start_date,
        end_date=req.end_date,
        page_size=req.page_size,
        transaction_type=req.transaction_type,
        exclude_sales=req.exclude_sales,
    )


@router.get("/{session_id}", response_model=StatementSessionOut)
def get_statement(session_id: str):
    return statement_service.get_statement(session_id)


@router.post("/{session_id}/more", response_model=StatementMoreOut)
def load_more(session_id: str):
    return statement_service.load_more(session_id)


@router.post("/{session_id}/refresh", response_model=StatementSessionOut)
def refresh_statement(session_id: str):
    return statement_service.refresh_statement(session_id)


@router.delete("/{session_id}", response_model=StatementClosedOut)
def close_statement(session_id: str):
    return statement_service.close_statement(session_id)


@router.get("/{session_id}/check")
def check_statement(session_id: str):
    return statement_service.check_statement(session_id)
