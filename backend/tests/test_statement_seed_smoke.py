from decimal import Decimal

from backend.app.seed.run import seed_demo_parties
from backend.app.statements.reconstruct import check_statement_continuity


def test_seeded_parties_reconcile(statement_db, make_controller):
    with statement_db() as db:
        ids = seed_demo_parties(db)
        again = seed_demo_parties(db)

    assert again == ids

    controller = make_controller()
    for party_type, key, opening in [
        ("customer", "customer_id", Decimal("50.00")),
        ("supplier", "supplier_id", Decimal("0.00")),
        ("safe", "safe_id", Decimal("0.00")),
    ]:
        session = controller.open(party_type, ids[key], page_size=3)
        while session.has_more:
            controller.load_more(session)

        assert session.error is None
        summary = check_statement_continuity(session.entries, anchor_balance=session.current_balance)
        assert summary["oldest_balance_before"] == opening


def test_seed_against_configured_database(sqlite_session):
    from backend.app.db import SessionLocal
    from backend.app.statements.anchor import AnchorResolver

    ids = seed_demo_parties(sqlite_session)
    resolver = AnchorResolver(SessionLocal)

    assert resolver.resolve(resolver.load_party("safe", ids["safe_id"])) == Decimal("70.00")
    assert resolver.load_party("customer", ids["customer_id"]).linked_id == ids["supplier_id"]
