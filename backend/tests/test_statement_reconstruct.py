from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from backend.app.statements.errors import StatementIntegrityError
from backend.app.statements.names import PageNames
from backend.app.statements.reconstruct import BalanceReconstructor, check_statement_continuity
from backend.app.statements.records import (
    EntryKind,
    PartyType,
    PaymentKind,
    RawSourceRecord,
    SourceKind,
)

T0 = datetime(2024, 5, 1, 8, 0)


def _sale(rid, minutes, amount, paid="0", is_return=False, **kw):
    return RawSourceRecord(
        id=rid,
        source=SourceKind.SALE,
        timestamp=T0 + timedelta(minutes=minutes),
        amount=Decimal(amount),
        paid_amount=Decimal(paid),
        is_return=is_return,
        **kw,
    )


def _payment(rid, minutes, amount, kind=PaymentKind.PAYMENT, **kw):
    return RawSourceRecord(
        id=rid,
        source=SourceKind.CUSTOMER_PAYMENT,
        timestamp=T0 + timedelta(minutes=minutes),
        amount=Decimal(amount),
        payment_kind=kind,
        **kw,
    )


def test_backward_fold_matches_worked_example():
    # oldest -> newest: invoice A 100, standalone payment B 40, return C 60
    records = [
        _sale("c", 30, "60.00", is_return=True),
        _payment("b", 20, "40.00"),
        _sale("a", 10, "100.00"),
    ]

    page = BalanceReconstructor(PartyType.CUSTOMER).reconstruct(records, Decimal("0.00"))

    assert [e.record_id for e in page.entries] == ["c", "b", "a"]
    assert [e.balance_after for e in page.entries] == [Decimal("0.00"), Decimal("60.00"), Decimal("100.00")]
    assert [e.net_effect for e in page.entries] == [Decimal("-60.00"), Decimal("-40.00"), Decimal("100.00")]
    assert page.outgoing_balance == Decimal("0.00")
    assert [e.kind for e in page.entries] == [EntryKind.RETURN, EntryKind.PAYMENT, EntryKind.INVOICE]
    assert [e.is_debit for e in page.entries] == [False, False, True]


def test_fold_across_two_pages_is_one_unbroken_fold():
    records = [
        _sale("d", 40, "25.00"),
        _payment("c", 30, "10.00", kind=PaymentKind.LOAN),
        _payment("b", 20, "5.00", kind=PaymentKind.DISCOUNT),
        _sale("a", 10, "80.00", paid="30.00"),
    ]
    reconstructor = BalanceReconstructor(PartyType.CUSTOMER)

    whole = reconstructor.reconstruct(records, Decimal("80.00"))
    first = reconstructor.reconstruct(records[:2], Decimal("80.00"))
    second = reconstructor.reconstruct(records[2:], first.outgoing_balance)

    assert first.entries + second.entries == whole.entries
    assert second.outgoing_balance == whole.outgoing_balance == Decimal("0.00")
    assert reconstructor.fold(records, Decimal("80.00")) == whole.outgoing_balance


def test_paid_amount_reduces_invoice_effect_and_labels_it():
    page = BalanceReconstructor(PartyType.CUSTOMER).reconstruct(
        [_sale("a", 0, "100.00", paid="100.00", reference="S-9")], Decimal("0.00")
    )

    entry = page.entries[0]
    assert entry.net_effect == Decimal("0.00")
    assert entry.gross_amount == Decimal("100.00")
    assert entry.paid_amount == Decimal("100.00")
    assert entry.description == "Sale invoice - payment S-9"


def test_linked_records_are_mirrored_on_the_other_statement():
    linked_sale = _sale("a", 0, "50.00", linked=True)
    linked_loan = _payment("b", 5, "20.00", kind=PaymentKind.LOAN, linked=True)

    page = BalanceReconstructor(PartyType.SUPPLIER).reconstruct([linked_loan, linked_sale], Decimal("0.00"))

    assert [e.net_effect for e in page.entries] == [Decimal("-20.00"), Decimal("-50.00")]
    assert page.outgoing_balance == Decimal("70.00")


def test_drawer_rows_use_stored_sign_and_names():
    deposit = RawSourceRecord(
        id="d1",
        source=SourceKind.DRAWER,
        timestamp=T0,
        amount=Decimal("30.00"),
        direction=1,
        transaction_type="deposit",
        safe_id="safe-1",
        user_id="u1",
    )
    withdrawal = replace(deposit, id="d2", timestamp=T0 + timedelta(minutes=1), direction=-1, transaction_type="withdrawal")
    names = PageNames(safes={"safe-1": "Front"}, users={"u1": "Dana"})

    page = BalanceReconstructor(PartyType.SAFE).reconstruct([withdrawal, deposit], Decimal("70.00"), names)

    assert [e.balance_after for e in page.entries] == [Decimal("70.00"), Decimal("100.00")]
    assert [e.kind for e in page.entries] == [EntryKind.WITHDRAWAL, EntryKind.DEPOSIT]
    assert page.entries[0].safe_name == "Front"
    assert page.entries[0].employee_name == "Dana"
    assert page.outgoing_balance == Decimal("70.00")


def test_unknown_source_for_party_type_is_rejected():
    with pytest.raises(ValueError):
        BalanceReconstructor(PartyType.SAFE).reconstruct([_sale("a", 0, "1.00")], Decimal("0"))


def test_continuity_check_accepts_reconstructed_rows():
    records = [_sale("b", 10, "10.00"), _payment("a", 5, "4.00")]
    page = BalanceReconstructor(PartyType.CUSTOMER).reconstruct(records, Decimal("6.00"))

    summary = check_statement_continuity(page.entries, anchor_balance=Decimal("6.00"))

    assert summary == {
        "rows": 2,
        "net_effect_total": Decimal("6.00"),
        "oldest_balance_before": Decimal("0.00"),
    }


def test_continuity_check_flags_broken_balance():
    records = [_sale("b", 10, "10.00"), _payment("a", 5, "4.00")]
    entries = BalanceReconstructor(PartyType.CUSTOMER).reconstruct(records, Decimal("6.00")).entries
    entries[1] = replace(entries[1], balance_after=Decimal("1.00"))

    with pytest.raises(StatementIntegrityError):
        check_statement_continuity(entries)


def test_continuity_check_flags_anchor_mismatch_and_order():
    records = [_sale("b", 10, "10.00"), _payment("a", 5, "4.00")]
    entries = BalanceReconstructor(PartyType.CUSTOMER).reconstruct(records, Decimal("6.00")).entries

    with pytest.raises(StatementIntegrityError):
        check_statement_continuity(entries, anchor_balance=Decimal("7.00"))
    with pytest.raises(StatementIntegrityError):
        check_statement_continuity(list(reversed(entries)))
    with pytest.raises(StatementIntegrityError):
        check_statement_continuity([entries[0], entries[0]])


def test_continuity_check_skips_pending_rows():
    records = [_sale("a", 10, "10.00")]
    committed = BalanceReconstructor(PartyType.CUSTOMER).reconstruct(records, Decimal("10.00")).entries
    pending = replace(committed[0], id="pending-x", record_id="x", balance_after=None, pending=True)

    summary = check_statement_continuity([pending] + committed, anchor_balance=Decimal("10.00"))

    assert summary["rows"] == 1
