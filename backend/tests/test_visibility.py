"""
Record visibility between personnel users.

Personnel only see the sales, transactions and activity they created;
someone else's sale reads as 404. Admin sees everything.
"""

import pytest


def _create_sale(client, headers, product, customer, quantity=1):
    resp = client.post(
        "/api/sales",
        json={
            "customer_id": customer.id,
            "items": [{"product_id": product.id, "quantity": quantity}],
            "payment_status": "UNPAID",
            "due_date": "2026-12-01",
        },
        headers=headers,
    )
    assert resp.status_code == 201, resp.json
    return resp.json["sale"]


@pytest.fixture
def two_sales(client, personnel_headers, personnel_b_headers, product, customer):
    mine = _create_sale(client, personnel_headers, product, customer)
    theirs = _create_sale(client, personnel_b_headers, product, customer, quantity=2)
    return mine, theirs


class TestSaleVisibility:

    def test_list_shows_only_own_sales(self, client, personnel_headers, two_sales):
        mine, _ = two_sales
        resp = client.get("/api/sales", headers=personnel_headers)
        assert resp.status_code == 200
        assert [s["id"] for s in resp.json["items"]] == [mine["id"]]

    def test_foreign_sale_reads_as_missing(self, client, personnel_headers, two_sales):
        _, theirs = two_sales
        assert client.get(f"/api/sales/{theirs['id']}", headers=personnel_headers).status_code == 404

    def test_foreign_sale_cannot_be_changed(self, client, personnel_headers, customer, two_sales):
        _, theirs = two_sales
        resp = client.post(
            f"/api/sales/{theirs['id']}/payment-status",
            json={"payment_status": "PAID"},
            headers=personnel_headers,
        )
        assert resp.status_code == 404
        resp = client.post(
            f"/api/collections/sales/{theirs['id']}",
            json={"amount_cents": 100},
            headers=personnel_headers,
        )
        assert resp.status_code == 404
        assert customer.current_balance_cents == -(1200 + 2400)

    def test_admin_sees_all(self, client, admin_headers, two_sales):
        resp = client.get("/api/sales", headers=admin_headers)
        assert resp.json["count"] == 2


class TestActivityVisibility:

    def test_personnel_see_own_activity(self, client, personnel, personnel_headers, two_sales):
        resp = client.get("/api/activity", headers=personnel_headers)
        assert resp.status_code == 200
        assert resp.json["count"] > 0
        assert {e["user_id"] for e in resp.json["items"]} == {personnel.id}

    def test_admin_sees_everyone(self, client, personnel, personnel_b, admin_headers, two_sales):
        resp = client.get("/api/activity?entity=SALE", headers=admin_headers)
        assert {e["user_id"] for e in resp.json["items"]} == {personnel.id, personnel_b.id}

    def test_entries_carry_metadata(self, client, admin_headers, two_sales):
        resp = client.get("/api/activity?entity=SALE&limit=1", headers=admin_headers)
        entry = resp.json["items"][0]
        assert entry["action"] == "CREATE"
        assert "sale_id" in entry["metadata"]


def test_dashboard_receivables_follow_visibility(client, personnel_headers, admin_headers, two_sales):
    mine = client.get("/api/reports/dashboard", headers=personnel_headers).json
    everyone = client.get("/api/reports/dashboard", headers=admin_headers).json

    assert mine["receivables_cents"] == 1200
    assert mine["sale_count"] == 1
    assert everyone["receivables_cents"] == 3600
    assert everyone["sale_count"] == 2
