"""
Sale creation, full edit, payment status transitions and delivery.

Prices: product 10.00 x2 -> subtotal 20.00 -> grand total 24.00 (20% tax).
"""

import pytest

from shopledger.models import ActivityLog, CustomerBalanceEvent, Sale
from shopledger.services import sales_service
from shopledger.services.permission_service import PermissionDeniedError
from shopledger.services.sales_service import SaleError


DUE = "2026-12-01"


def _sell(actor, product, customer=None, quantity=2, **kwargs):
    kwargs.setdefault("payment_status", "UNPAID" if customer else "PAID")
    if kwargs["payment_status"] != "PAID":
        kwargs.setdefault("due_date", DUE)
    sale, _ = sales_service.create_sale(
        actor,
        items=[{"product_id": product.id, "quantity": quantity}],
        customer_id=customer.id if customer else None,
        **kwargs,
    )
    return sale


def _events_total(db_session, customer):
    return sum(
        e.delta_cents
        for e in db_session.query(CustomerBalanceEvent).filter_by(customer_id=customer.id)
    )


# =============================================================================
# CREATION
# =============================================================================


class TestCreateSale:

    def test_unpaid_sale_moves_stock_and_debt(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer)

        assert sale.document_number == "S-000001"
        assert sale.subtotal_cents == 2000
        assert sale.paid_cents == 0
        assert sale.personnel_name == admin.display_name
        assert product.stock_quantity == 8
        assert customer.current_balance_cents == -2400
        assert _events_total(db_session, customer) == -2400

    def test_paid_sale_leaves_balance_alone(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer, payment_status="PAID")

        assert sale.paid_cents == 2400
        assert sale.due_date is None
        assert customer.current_balance_cents == 0
        assert db_session.query(CustomerBalanceEvent).count() == 0

    def test_document_numbers_are_sequential(self, db_session, admin, product):
        first = _sell(admin, product, quantity=1)
        second = _sell(admin, product, quantity=1)
        assert (first.document_number, second.document_number) == ("S-000001", "S-000002")

    def test_line_snapshot_keeps_list_price(self, db_session, admin, product, customer):
        sale, _ = sales_service.create_sale(
            admin,
            items=[{"product_id": product.id, "quantity": 1, "unit_price_cents": 800}],
            customer_id=customer.id,
            payment_status="PAID",
        )
        line = sale.lines[0]
        assert line.product_name == "Olive Soap - Large"
        assert line.unit_price_cents == 800
        assert line.original_price_cents == 1000
        assert sale.subtotal_cents == 800

    def test_guest_sale_must_be_paid(self, db_session, admin, product):
        with pytest.raises(SaleError):
            _sell(admin, product, payment_status="UNPAID", due_date=DUE)
        assert product.stock_quantity == 10
        assert db_session.query(Sale).count() == 0

    def test_unpaid_sale_requires_due_date(self, db_session, admin, product, customer):
        with pytest.raises(SaleError):
            sales_service.create_sale(
                admin,
                items=[{"product_id": product.id, "quantity": 1}],
                customer_id=customer.id,
                payment_status="UNPAID",
            )

    def test_archived_product_is_not_sellable(self, db_session, admin, product):
        product.lifecycle_status = "ARCHIVED"
        db_session.commit()
        with pytest.raises(SaleError):
            _sell(admin, product)

    def test_empty_item_list_rejected(self, db_session, admin):
        with pytest.raises(SaleError):
            sales_service.create_sale(admin, items=[], payment_status="PAID")

    def test_stock_shortfall_is_a_warning_by_default(self, db_session, admin, product):
        sale, warnings = sales_service.create_sale(
            admin,
            items=[{"product_id": product.id, "quantity": 12}],
            payment_status="PAID",
        )
        assert warnings == [{"product_id": product.id, "requested_quantity": 12, "on_hand": 10}]
        assert product.stock_quantity == -2
        assert sale.id is not None

    def test_stock_shortfall_blocks_when_negative_stock_disabled(self, app, db_session, admin, product):
        app.config["ALLOW_NEGATIVE_STOCK"] = False
        with pytest.raises(SaleError):
            _sell(admin, product, quantity=12)
        assert product.stock_quantity == 10
        assert db_session.query(Sale).count() == 0

    def test_creation_is_logged(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer)
        entry = db_session.query(ActivityLog).filter_by(entity="SALE").one()
        assert entry.action == "CREATE"
        assert entry.details["sale_id"] == sale.id


class TestGiftSale:

    def test_gift_is_free_and_paid(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer, sale_type="GIFT", payment_status="UNPAID", due_date=DUE)

        assert sale.payment_status == "PAID"
        assert sale.subtotal_cents == 0
        assert sale.lines[0].unit_price_cents == 0
        assert sale.shipping_payer == "NONE"
        assert product.stock_quantity == 8
        assert customer.current_balance_cents == 0

    def test_gift_with_customer_paid_shipping_can_owe_shipping(self, db_session, admin, product, customer):
        sale = _sell(
            admin, product, customer,
            sale_type="GIFT", shipping_payer="CUSTOMER", shipping_cost_cents=700,
            payment_status="UNPAID", due_date=DUE,
        )
        assert sale.payment_status == "UNPAID"
        assert customer.current_balance_cents == -700

    def test_gift_revenue_excluded_from_dashboard(self, db_session, admin, product, customer):
        from shopledger.services.reporting_service import dashboard_summary

        _sell(admin, product, customer, sale_type="GIFT")
        _sell(admin, product, customer, payment_status="PAID")
        summary = dashboard_summary(admin)
        assert summary["revenue_cents"] == 2000


# =============================================================================
# FULL EDIT
# =============================================================================


class TestEditSale:

    def _edit(self, actor, sale, product, customer, quantity=2, **kwargs):
        kwargs.setdefault("payment_status", "UNPAID")
        kwargs.setdefault("due_date", DUE)
        return sales_service.edit_sale(
            actor,
            sale.id,
            items=[{"product_id": product.id, "quantity": quantity}],
            customer_id=customer.id if customer else None,
            **kwargs,
        )

    def test_edit_with_same_content_changes_nothing(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer)
        self._edit(admin, sale, product, customer)

        assert product.stock_quantity == 8
        assert customer.current_balance_cents == -2400
        assert _events_total(db_session, customer) == -2400
        assert sale.paid_cents == 0

    def test_edit_quantity_rebalances_stock_and_debt(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer)
        self._edit(admin, sale, product, customer, quantity=5)

        assert product.stock_quantity == 5
        assert customer.current_balance_cents == -6000
        assert len(sale.lines) == 1

    def test_edit_moves_debt_to_new_customer(self, db_session, admin, product, customer):
        from shopledger.models import Customer

        other = Customer(name="Beta Cafe")
        db_session.add(other)
        db_session.commit()

        sale = _sell(admin, product, customer)
        self._edit(admin, sale, product, other)

        assert customer.current_balance_cents == 0
        assert other.current_balance_cents == -2400
        assert sale.customer_name == "Beta Cafe"

    def test_edit_to_paid_sets_paid_amount(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer)
        self._edit(admin, sale, product, customer, payment_status="PAID")

        assert customer.current_balance_cents == 0
        assert sale.paid_cents == 2400

    def test_edit_keeps_archived_product_already_on_sale(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer)
        product.lifecycle_status = "ARCHIVED"
        db_session.commit()

        self._edit(admin, sale, product, customer, quantity=1)
        assert product.stock_quantity == 9

    def test_personnel_cannot_edit(self, db_session, admin, personnel, product, customer):
        sale = _sell(personnel, product, customer)
        with pytest.raises(PermissionDeniedError):
            self._edit(personnel, sale, product, customer, quantity=1)
        assert product.stock_quantity == 8

    def test_returned_sale_cannot_be_edited(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer)
        sale.status = "RETURNED"
        db_session.commit()
        with pytest.raises(SaleError):
            self._edit(admin, sale, product, customer, quantity=1)


# =============================================================================
# PAYMENT STATUS
# =============================================================================


class TestPaymentStatus:

    def test_unpaid_to_paid_credits_customer(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer)
        sales_service.change_payment_status(admin, sale.id, "PAID")

        assert sale.payment_status == "PAID"
        assert sale.paid_cents == 2400
        assert customer.current_balance_cents == 0

    def test_paid_to_unpaid_debits_customer(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer, payment_status="PAID")
        sales_service.change_payment_status(admin, sale.id, "UNPAID")

        assert sale.paid_cents == 0
        assert sale.due_date is not None
        assert customer.current_balance_cents == -2400

    def test_round_trip_restores_balance(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer)
        sales_service.change_payment_status(admin, sale.id, "PAID")
        sales_service.change_payment_status(admin, sale.id, "UNPAID")

        assert customer.current_balance_cents == -2400
        assert _events_total(db_session, customer) == -2400

    def test_same_status_is_a_no_op(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer)
        before = db_session.query(CustomerBalanceEvent).count()
        sales_service.change_payment_status(admin, sale.id, "UNPAID")
        assert db_session.query(CustomerBalanceEvent).count() == before

    def test_partial_only_relabels(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer)
        sales_service.change_payment_status(admin, sale.id, "PARTIAL")
        assert sale.payment_status == "PARTIAL"
        assert customer.current_balance_cents == -2400

    def test_unknown_status_rejected(self, db_session, admin, product, customer):
        sale = _sell(admin, product, customer)
        with pytest.raises(SaleError):
            sales_service.change_payment_status(admin, sale.id, "SETTLED")


# =============================================================================
# DELIVERY
# =============================================================================


class TestDelivery:

    def test_courier_delivery_keeps_carrier(self, db_session, personnel, product):
        sale = _sell(personnel, product)
        sales_service.update_delivery(
            personnel, sale.id,
            delivery_type="Courier", shipping_company="Express Cargo", tracking_number=" TR123 ",
        )
        assert sale.delivery_status == "DELIVERED"
        assert sale.shipping_company == "Express Cargo"
        assert sale.tracking_number == "TR123"
        assert sale.shipping_updated_by == personnel.display_name

    def test_courier_requires_company(self, db_session, admin, product):
        sale = _sell(admin, product)
        with pytest.raises(SaleError):
            sales_service.update_delivery(admin, sale.id, delivery_type="Courier")

    def test_in_person_drops_carrier_fields(self, db_session, admin, product):
        sale = _sell(admin, product)
        sales_service.update_delivery(
            admin, sale.id, delivery_type="In person", shipping_company="Express Cargo", tracking_number="X",
        )
        assert sale.shipping_company is None
        assert sale.tracking_number is None

    def test_only_admin_resets_delivery(self, db_session, admin, personnel, product):
        sale = _sell(personnel, product)
        sales_service.update_delivery(personnel, sale.id, delivery_type="In person")
        with pytest.raises(PermissionDeniedError):
            sales_service.update_delivery(personnel, sale.id, delivered=False)

        sales_service.update_delivery(admin, sale.id, delivered=False)
        assert sale.delivery_status == "PENDING"
        assert sale.delivered_at is None


# =============================================================================
# ONE GRAND TOTAL ACROSS EVERY PATH
# =============================================================================


@pytest.mark.parametrize(
    "sale_type, shipping_payer, expected_grand",
    [
        ("SALE", None, 1700),
        ("GIFT", "CUSTOMER", 700),
        ("GIFT", "COMPANY", 0),
    ],
)
def test_grand_total_is_consistent_across_flows(
    db_session, admin, product, customer, sale_type, shipping_payer, expected_grand
):
    from shopledger.services import collection_service
    from shopledger.services.customer_service import reconcile_balances

    shipping = 500 if sale_type == "SALE" else 700
    content = dict(
        items=[{"product_id": product.id, "quantity": 1}],
        customer_id=customer.id,
        shipping_cost_cents=shipping,
        sale_type=sale_type,
        shipping_payer=shipping_payer,
        payment_status="UNPAID",
        due_date=DUE,
    )

    sale, _ = sales_service.create_sale(admin, **content)
    assert sale.to_dict()["grand_total_cents"] == expected_grand
    assert customer.current_balance_cents == -expected_grand

    sales_service.change_payment_status(admin, sale.id, "PAID")
    assert sale.paid_cents == expected_grand
    assert customer.current_balance_cents == 0

    sales_service.change_payment_status(admin, sale.id, "UNPAID")
    assert sale.paid_cents == 0
    assert customer.current_balance_cents == -expected_grand

    sales_service.edit_sale(admin, sale.id, **content)
    assert customer.current_balance_cents == -expected_grand
    assert _events_total(db_session, customer) == -expected_grand

    if expected_grand:
        result = collection_service.collect_for_sale(admin, sale.id, expected_grand)
        assert result.exceeds_remaining is False
        assert sale.payment_status == "PAID"

    assert customer.current_balance_cents == 0
    assert reconcile_balances() == []
