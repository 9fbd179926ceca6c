"""Dashboard and sales report aggregates."""

from shopledger.models import Customer
from shopledger.services import reporting_service, sales_service


def _sale(actor, product, customer=None, quantity=1, **kwargs):
    kwargs.setdefault("payment_status", "PAID")
    sale, _ = sales_service.create_sale(
        actor,
        items=[{"product_id": product.id, "quantity": quantity}],
        customer_id=customer.id if customer else None,
        **kwargs,
    )
    return sale


class TestDashboard:

    def test_admin_summary(self, db_session, admin, product, product_b, customer):
        _sale(admin, product, customer, quantity=2, payment_status="UNPAID", due_date="2026-12-01")
        _sale(admin, product_b)
        returned = _sale(admin, product)
        returned.status = "RETURNED"
        db_session.commit()

        summary = reporting_service.dashboard_summary(admin)

        assert summary["sale_count"] == 3
        assert summary["revenue_cents"] == 2000 + 2500
        assert summary["receivables_cents"] == 2400
        assert summary["pending_shipments"] == 2
        assert summary["customer_count"] == 1

    def test_low_stock_listed(self, db_session, admin, product, product_b):
        summary = reporting_service.dashboard_summary(admin)
        assert [p["id"] for p in summary["low_stock_products"]] == [product_b.id]


class TestSalesReport:

    def test_totals_exclude_gifts(self, db_session, admin, product, customer):
        _sale(admin, product, customer, quantity=2, payment_status="UNPAID", due_date="2026-12-01")
        _sale(admin, product, customer, sale_type="GIFT")

        report = reporting_service.sales_report(admin)

        assert report["count"] == 2
        assert report["totals"] == {
            "ex_tax_cents": 2000,
            "incl_tax_cents": 2400,
            "paid_cents": 0,
            "outstanding_cents": 2400,
        }

    def test_filters(self, db_session, admin, product, product_b, customer):
        other = Customer(name="Online Buyer", sales_channel="Online")
        db_session.add(other)
        db_session.commit()

        _sale(admin, product, customer)
        _sale(admin, product_b, other)

        by_channel = reporting_service.sales_report(admin, sales_channel="Online")
        assert [s["customer_name"] for s in by_channel["items"]] == ["Online Buyer"]

        by_product = reporting_service.sales_report(admin, product_id=product.id)
        assert by_product["count"] == 1

        by_search = reporting_service.sales_report(admin, search="acme")
        assert by_search["count"] == 1

    def test_report_route_validates_dates(self, client, admin_headers):
        resp = client.get("/api/reports/sales?date_from=yesterday", headers=admin_headers)
        assert resp.status_code == 400

    def test_report_route_date_range(self, client, admin, admin_headers, product):
        _sale(admin, product)
        resp = client.get("/api/reports/sales?date_from=2000-01-01&date_to=2100-01-01", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json["count"] == 1
