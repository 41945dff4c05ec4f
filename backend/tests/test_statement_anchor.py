from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from backend.app.statements.anchor import AnchorResolver
from backend.app.statements.errors import AnchorUnavailable, InvalidParty
from backend.app.statements.reconstruct import BalanceReconstructor
from backend.app.statements.records import PartyType
from backend.app.statements.sources import ALL_SAFES, NO_SAFE, sources_for

T0 = datetime(2024, 2, 1, 9, 0)


def _full_history(statement_db, party):
    records = []
    with statement_db() as db:
        for fetcher in sources_for(party):
            records.extend(fetcher.fetch(db, None, None, 1000).records)
    records.sort(key=lambda r: r.sort_key, reverse=True)
    return records


def _linked_pair(ledger):
    customer_id = ledger.customer(name="Both", opening="25.00")
    supplier_id = ledger.supplier(name="Both", opening="-10.00")
    ledger.link(customer_id, supplier_id)

    sale_id = ledger.sale(customer_id, "200.00", T0)
    ledger.customer_payment(customer_id, "50.00", T0 + timedelta(hours=1), sale_id=sale_id)
    ledger.sale(customer_id, "30.00", T0 + timedelta(hours=2), is_return=True)
    ledger.customer_payment(customer_id, "40.00", T0 + timedelta(hours=3))
    ledger.customer_payment(customer_id, "15.00", T0 + timedelta(hours=4), kind="loan")
    ledger.customer_payment(customer_id, "5.00", T0 + timedelta(hours=5), kind="discount")

    invoice_id = ledger.purchase(supplier_id, "90.00", T0 + timedelta(hours=6))
    ledger.supplier_payment(supplier_id, "20.00", T0 + timedelta(hours=7), purchase_invoice_id=invoice_id)
    ledger.purchase(supplier_id, "10.00", T0 + timedelta(hours=8), is_return=True)
    ledger.supplier_payment(supplier_id, "35.00", T0 + timedelta(hours=9))
    return customer_id, supplier_id


def test_customer_anchor_nets_linked_supplier(ledger, statement_db):
    customer_id, _ = _linked_pair(ledger)
    resolver = AnchorResolver(statement_db)
    party = resolver.load_party("customer", customer_id)

    anchor = resolver.resolve(party)

    # 25 + (200-50) - 30 - 40 + 15 - 5 = 115 ; supplier side: (90-20) - 10 - 35 = 25
    assert anchor == Decimal("90.00")


def test_supplier_anchor_nets_linked_customer(ledger, statement_db):
    _, supplier_id = _linked_pair(ledger)
    resolver = AnchorResolver(statement_db)
    party = resolver.load_party(PartyType.SUPPLIER, supplier_id)

    anchor = resolver.resolve(party)

    # -10 + 25 - 90
    assert anchor == Decimal("-75.00")


@pytest.mark.parametrize("party_type", ["customer", "supplier"])
def test_full_history_fold_ends_at_opening_balance(ledger, statement_db, party_type):
    customer_id, supplier_id = _linked_pair(ledger)
    resolver = AnchorResolver(statement_db)
    party = resolver.load_party(party_type, customer_id if party_type == "customer" else supplier_id)

    anchor = resolver.resolve(party)
    history = _full_history(statement_db, party)
    opening = BalanceReconstructor(party.type).fold(history, anchor)

    assert opening == (Decimal("25.00") if party_type == "customer" else Decimal("-10.00"))


def test_safe_anchor_is_materialized_balance(ledger, statement_db):
    safe_id = ledger.safe(name="Till", balance="123.45")
    ledger.drawer(safe_id, "999.00", T0)

    resolver = AnchorResolver(statement_db)
    assert resolver.resolve(resolver.load_party("safe", safe_id)) == Decimal("123.45")


def test_no_safe_anchor_sums_orphan_drawer_rows(ledger, statement_db):
    ledger.drawer(None, "10.00", T0)
    ledger.drawer(None, "-4.50", T0 + timedelta(minutes=1), transaction_type="withdrawal")

    resolver = AnchorResolver(statement_db)
    party = resolver.load_party("safe", NO_SAFE)

    assert party.name == "No safe"
    assert resolver.resolve(party) == Decimal("5.50")


@pytest.mark.parametrize(
    "party_type, party_id",
    [("customer", "missing"), ("supplier", ""), ("safe", None), ("vendor", "x"), ("customer", "   ")],
)
def test_invalid_party(statement_db, party_type, party_id):
    with pytest.raises(InvalidParty):
        AnchorResolver(statement_db).load_party(party_type, party_id)


def test_database_failure_is_anchor_unavailable(ledger, statement_db):
    customer_id = ledger.customer()
    resolver = AnchorResolver(statement_db)
    party = resolver.load_party("customer", customer_id)

    class BrokenSession:
        def __enter__(self):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        def __exit__(self, *exc):
            return False

    with pytest.raises(AnchorUnavailable):
        AnchorResolver(lambda: BrokenSession()).resolve(party)


def test_all_safes_anchor_sums_safe_balances_and_orphan_rows(ledger, statement_db):
    ledger.safe(name="Front", balance="100.00")
    ledger.safe(name="Back", balance="-20.00")
    ledger.drawer(None, "3.50", T0)

    resolver = AnchorResolver(statement_db)
    party = resolver.load_party("safe", ALL_SAFES)

    assert party.name == "All safes"
    assert resolver.resolve(party) == Decimal("83.50")
