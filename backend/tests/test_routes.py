# Overview: HTTP-level coverage for ledger, POS, statement, stock and reconciliation routes.

import pytest

from restaurant_ledger.services.ledger_service import ROLE_CASH, ROLE_COGS


def _sale(client, headers, external_id="POS-9001", **overrides):
    body = {
        "external_id": external_id,
        "gross_cents": 150000,
        "tax_cents": 6000,
        "tip_cents": 4000,
        "occurred_at": "2026-08-01T19:00:00Z",
    }
    body.update(overrides)
    return client.post("/api/pos/transactions", json=body, headers=headers)


class TestSystemRoutes:

    def test_health(self, client, db_session):
        resp = client.get("/health")

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["status"] == "healthy"
        assert data["checks"]["ledger"]["status"] == "healthy"


class TestPosRoutes:

    def test_ingest_then_duplicate(self, client, headers_a, accounts_a):
        first = _sale(client, headers_a)
        second = _sale(client, headers_a)

        assert first.status_code == 201
        assert first.get_json()["outcome"] == "POSTED"
        assert second.status_code == 200
        assert second.get_json()["outcome"] == "DUPLICATE"
        assert second.get_json()["id"] == first.get_json()["id"]

    @pytest.mark.parametrize("overrides", [
        {"gross_cents": "12.50"},
        {"gross_cents": 1.5},
        {"tax_cents": -5},
        {"external_id": ""},
        {"items": [{"product_id": 1, "quantity": 0}]},
    ])
    def test_invalid_payload_rejected(self, client, headers_a, accounts_a, overrides):
        resp = _sale(client, headers_a, **overrides)
        assert resp.status_code == 400


class TestJournalRoutes:

    def test_manual_entry_and_reverse(self, client, headers_a, accounts_a):
        resp = client.post("/api/journal-entries", json={
            "lines": [
                {"role": ROLE_COGS, "side": "DEBIT", "amount_cents": 5000},
                {"role": ROLE_CASH, "side": "CREDIT", "amount_cents": 5000},
            ],
            "memo": "Produce delivery",
        }, headers=headers_a)
        assert resp.status_code == 201
        entry_id = resp.get_json()["id"]

        reverse = client.post(f"/api/journal-entries/{entry_id}/reverse", json={}, headers=headers_a)
        assert reverse.status_code == 201
        assert reverse.get_json()["reverses_entry_id"] == entry_id

        again = client.post(f"/api/journal-entries/{entry_id}/reverse", json={}, headers=headers_a)
        assert again.status_code == 400

    def test_unbalanced_entry_is_422(self, client, headers_a, accounts_a):
        resp = client.post("/api/journal-entries", json={
            "lines": [
                {"role": ROLE_COGS, "side": "DEBIT", "amount_cents": 5000},
                {"role": ROLE_CASH, "side": "CREDIT", "amount_cents": 4999},
            ],
        }, headers=headers_a)

        assert resp.status_code == 422
        assert resp.get_json()["debits_cents"] == 5000

    def test_reverse_unknown_entry_is_404(self, client, headers_a, accounts_a):
        resp = client.post("/api/journal-entries/999999/reverse", json={}, headers=headers_a)
        assert resp.status_code == 404

    def test_lines_query(self, client, headers_a, accounts_a):
        _sale(client, headers_a)

        resp = client.get("/api/journal-entries/lines?account_type=REVENUE", headers=headers_a)

        assert resp.status_code == 200
        assert [line["amount_cents"] for line in resp.get_json()["lines"]] == [150000]


class TestStatementRoutes:

    def test_income_statement(self, client, headers_a, accounts_a):
        _sale(client, headers_a)

        resp = client.get(
            "/api/statements/income?start=2026-08-01T00:00:00Z&end=2026-08-31T23:59:59Z",
            headers=headers_a,
        )

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["revenue"]["gross_revenue_cents"] == 150000
        assert data["revenue"]["net_sales_revenue_cents"] == 140000
        assert data["net_income_cents"] == 140000

    def test_bad_period_is_400(self, client, headers_a, accounts_a):
        resp = client.get("/api/statements/income?start=2026-09-01&end=2026-08-01", headers=headers_a)
        assert resp.status_code == 400

    def test_storage_failure_is_generic_500(self, client, headers_a, accounts_a, monkeypatch):
        from sqlalchemy.exc import OperationalError
        from restaurant_ledger.services import statement_service

        def _boom(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(statement_service, "account_balances", _boom)

        resp = client.get("/api/statements/income", headers=headers_a)
        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Unable to load statement, try again."}

    def test_storage_failure_rolls_back_session(self, client, db_session, headers_a, accounts_a, monkeypatch):
        from restaurant_ledger.models import Restaurant
        from restaurant_ledger.services import statement_service

        pending = Restaurant(name="Half-written", is_active=True)

        def _boom(*args, **kwargs):
            db_session.add(pending)
            raise RuntimeError("connection dropped")

        monkeypatch.setattr(statement_service, "account_balances", _boom)

        resp = client.get("/api/statements/income", headers=headers_a)

        assert resp.status_code == 500
        assert pending not in db_session
        assert db_session.query(Restaurant).filter_by(name="Half-written").count() == 0

    def test_date_only_end_covers_whole_day(self, client, headers_a, accounts_a):
        _sale(client, headers_a, occurred_at="2026-08-31T21:30:00Z")

        resp = client.get("/api/statements/income?start=2026-08-01&end=2026-08-31", headers=headers_a)

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["revenue"]["gross_revenue_cents"] == 150000
        assert data["period"] == {"start": "2026-08-01T00:00:00Z", "end": "2026-08-31T23:59:59Z"}


class TestStockAndReconciliationRoutes:

    def test_receive_and_read_stock(self, client, headers_a, accounts_a, product_a):
        resp = client.post(f"/api/stock/{product_a.id}/receive", json={"quantity": 5}, headers=headers_a)
        assert resp.status_code == 201
        assert resp.get_json()["quantity_on_hand"] == 5

        stock = client.get(f"/api/stock/{product_a.id}?movements=true", headers=headers_a)
        assert stock.status_code == 200
        assert stock.get_json()["quantity_on_hand"] == 5
        assert stock.get_json()["reconciliation_state"] == "NOT_STARTED"
        assert len(stock.get_json()["movements"]) == 1

    def test_full_reconciliation_flow(self, client, headers_a, accounts_a, product_a):
        client.post(f"/api/stock/{product_a.id}/receive", json={"quantity": 5}, headers=headers_a)

        start = client.post("/api/reconciliations", json={"product_id": product_a.id}, headers=headers_a)
        assert start.status_code == 201
        session = start.get_json()
        assert session["status"] == "COUNTING_IN_PROGRESS"

        conflict = client.post("/api/reconciliations", json={"product_id": product_a.id}, headers=headers_a)
        assert conflict.status_code == 409
        assert conflict.get_json()["retryable"] is True

        early = client.post(f"/api/reconciliations/{session['id']}/confirm", json={}, headers=headers_a)
        assert early.status_code == 409
        assert early.get_json()["retryable"] is False

        counted = client.post(
            f"/api/reconciliations/{session['id']}/count",
            json={"quantity": 9, "version": session["version_id"]},
            headers=headers_a,
        )
        assert counted.status_code == 200
        assert counted.get_json()["variance"] == 4

        stale = client.post(
            f"/api/reconciliations/{session['id']}/confirm",
            json={"version": session["version_id"]},
            headers=headers_a,
        )
        assert stale.status_code == 409

        confirm = client.post(
            f"/api/reconciliations/{session['id']}/confirm",
            json={"version": counted.get_json()["version_id"]},
            headers=headers_a,
        )
        assert confirm.status_code == 200
        assert confirm.get_json()["journal_entry_id"] is not None
        assert confirm.get_json()["session"]["status"] == "CONFIRMED"

        stock = client.get(f"/api/stock/{product_a.id}", headers=headers_a)
        assert stock.get_json()["quantity_on_hand"] == 9

        history = client.get("/api/reconciliations/history", headers=headers_a)
        assert [s["id"] for s in history.get_json()["sessions"]] == [session["id"]]

        summary = client.get("/api/reconciliations/variance-summary", headers=headers_a)
        assert summary.get_json()["total_overage_value_cents"] == 1000

    def test_cancel_and_recount_routes(self, client, headers_a, accounts_a, product_a):
        start = client.post("/api/reconciliations", json={"product_id": product_a.id}, headers=headers_a)
        session_id = start.get_json()["id"]

        client.post(f"/api/reconciliations/{session_id}/count", json={"quantity": 2}, headers=headers_a)
        recount = client.post(f"/api/reconciliations/{session_id}/recount", json={}, headers=headers_a)
        assert recount.get_json()["status"] == "COUNTING_IN_PROGRESS"

        cancel = client.post(
            f"/api/reconciliations/{session_id}/cancel", json={"reason": "wrong shelf"}, headers=headers_a
        )
        assert cancel.status_code == 200
        assert cancel.get_json()["status"] == "CANCELLED"

    def test_unknown_session_is_404(self, client, headers_a, accounts_a):
        resp = client.post("/api/reconciliations/999999/count", json={"quantity": 1}, headers=headers_a)
        assert resp.status_code == 404

    def test_negative_count_is_400(self, client, headers_a, accounts_a, product_a):
        start = client.post("/api/reconciliations", json={"product_id": product_a.id}, headers=headers_a)

        resp = client.post(
            f"/api/reconciliations/{start.get_json()['id']}/count", json={"quantity": -1}, headers=headers_a
        )
        assert resp.status_code == 400
