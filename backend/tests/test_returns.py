"""
Returns: restocking by condition, refund defaults and one-time wallet credit.

Sale: product 10.00 x5 -> grand total 60.00.
"""

from datetime import timedelta

import pytest

from shopledger.models import CustomerBalanceEvent
from shopledger.services import return_service, sales_service
from shopledger.services.return_service import ReturnError
from shopledger.services.customer_service import reconcile_balances
from shopledger.time_utils import utcnow
from shopledger.validation import NotFoundError


def _sale(actor, product, customer=None, payment_status="UNPAID", quantity=5):
    sale, _ = sales_service.create_sale(
        actor,
        items=[{"product_id": product.id, "quantity": quantity}],
        customer_id=customer.id if customer else None,
        payment_status=payment_status,
        due_date="2026-12-01",
    )
    return sale


def _wallet_events(db_session, customer):
    return db_session.query(CustomerBalanceEvent).filter_by(
        customer_id=customer.id, reason="WALLET_REFUND",
    ).all()


class TestProcessReturn:

    def test_only_resellable_units_go_back_to_stock(self, db_session, admin, product, customer):
        sale = _sale(admin, product, customer, payment_status="PAID")
        assert product.stock_quantity == 5

        record = return_service.process_return(admin, sale.id, items=[
            {"product_id": product.id, "quantity": 3, "condition": "RESELLABLE"},
            {"product_id": product.id, "quantity": 2, "condition": "DEFECTIVE"},
        ])

        assert product.stock_quantity == 8
        assert sale.status == "RETURNED"
        assert record.document_number == "R-000001"
        assert len(record.lines) == 2

    def test_unpaid_sale_return_clears_debt_through_wallet(self, db_session, admin, product, customer):
        sale = _sale(admin, product, customer)
        assert customer.current_balance_cents == -6000

        record = return_service.process_return(admin, sale.id, items=[
            {"product_id": product.id, "quantity": 5},
        ])

        assert record.refund_status == "COMPLETED"
        assert record.refund_method == "WALLET"
        assert record.refund_description == "Credit sale return - debt cleared"
        assert record.refund_amount_cents == 6000
        assert record.wallet_credited_at is not None
        assert customer.current_balance_cents == 0
        assert reconcile_balances() == []

    def test_paid_sale_return_defaults_to_pending_cash(self, db_session, admin, product, customer):
        sale = _sale(admin, product, customer, payment_status="PAID")
        record = return_service.process_return(admin, sale.id, items=[
            {"product_id": product.id, "quantity": 1},
        ])

        assert record.refund_status == "PENDING"
        assert record.refund_method == "CASH"
        assert record.refund_amount_cents == 1200
        assert customer.current_balance_cents == 0

    def test_explicit_refund_amount_is_kept(self, db_session, admin, product, customer):
        sale = _sale(admin, product, customer, payment_status="PAID")
        record = return_service.process_return(
            admin, sale.id,
            items=[{"product_id": product.id, "quantity": 1}],
            refund_amount_cents=900,
            reason="Damaged box",
        )
        assert record.refund_amount_cents == 900
        assert record.reason == "Damaged box"

    def test_cannot_return_more_than_sold(self, db_session, admin, product, customer):
        sale = _sale(admin, product, customer)
        with pytest.raises(ReturnError) as exc:
            return_service.process_return(admin, sale.id, items=[
                {"product_id": product.id, "quantity": 4, "condition": "RESELLABLE"},
                {"product_id": product.id, "quantity": 2, "condition": "DEFECTIVE"},
            ])
        assert exc.value.details["items"][0]["sold"] == 5
        assert sale.status == "ACTIVE"
        assert product.stock_quantity == 5

    def test_return_window_closes(self, db_session, admin, product, customer):
        sale = _sale(admin, product, customer)
        sale.created_at = utcnow() - timedelta(days=18)
        db_session.commit()

        with pytest.raises(ReturnError):
            return_service.process_return(admin, sale.id, items=[{"product_id": product.id, "quantity": 1}])
        assert customer.current_balance_cents == -6000

    def test_sale_can_only_be_returned_once(self, db_session, admin, product, customer):
        sale = _sale(admin, product, customer, payment_status="PAID")
        return_service.process_return(admin, sale.id, items=[{"product_id": product.id, "quantity": 1}])
        with pytest.raises(ReturnError):
            return_service.process_return(admin, sale.id, items=[{"product_id": product.id, "quantity": 1}])

    def test_wallet_refund_needs_a_customer(self, db_session, admin, product):
        sale = _sale(admin, product, payment_status="PAID")
        with pytest.raises(ReturnError):
            return_service.process_return(
                admin, sale.id,
                items=[{"product_id": product.id, "quantity": 1}],
                refund_method="WALLET",
            )

    def test_unknown_condition_rejected(self, db_session, admin, product, customer):
        sale = _sale(admin, product, customer)
        with pytest.raises(ReturnError):
            return_service.process_return(admin, sale.id, items=[
                {"product_id": product.id, "quantity": 1, "condition": "USED"},
            ])

    def test_personnel_cannot_return_foreign_sale(self, db_session, admin, personnel, product, customer):
        sale = _sale(admin, product, customer)
        with pytest.raises(NotFoundError):
            return_service.process_return(personnel, sale.id, items=[{"product_id": product.id, "quantity": 1}])


class TestRefundPayment:

    def test_wallet_is_credited_once_across_toggles(self, db_session, admin, product, customer):
        sale = _sale(admin, product, customer, payment_status="PAID")
        return_service.process_return(admin, sale.id, items=[{"product_id": product.id, "quantity": 1}])

        return_service.update_return_payment(admin, sale.id, refund_status="COMPLETED", refund_method="WALLET")
        assert customer.current_balance_cents == 1200

        return_service.update_return_payment(admin, sale.id, refund_status="PENDING")
        return_service.update_return_payment(admin, sale.id, refund_status="COMPLETED")

        assert customer.current_balance_cents == 1200
        assert len(_wallet_events(db_session, customer)) == 1

    def test_cash_completion_does_not_touch_balance(self, db_session, admin, product, customer):
        sale = _sale(admin, product, customer, payment_status="PAID")
        return_service.process_return(admin, sale.id, items=[{"product_id": product.id, "quantity": 1}])

        record = return_service.update_return_payment(
            admin, sale.id, refund_status="COMPLETED", refund_description="Paid at till",
        )
        assert record.refund_date is not None
        assert record.refund_description == "Paid at till"
        assert customer.current_balance_cents == 0

    def test_sale_without_return(self, db_session, admin, product, customer):
        sale = _sale(admin, product, customer)
        with pytest.raises(ReturnError):
            return_service.update_return_payment(admin, sale.id, refund_status="COMPLETED")


@pytest.mark.parametrize("days_ago, allowed", [(2, True), (18, False)])
def test_return_window_accepts_timezone_aware_sale_dates(db_session, admin, product, customer, days_ago, allowed):
    from datetime import timezone

    sale = _sale(admin, product, customer, payment_status="PAID")
    sale.created_at = (utcnow() - timedelta(days=days_ago)).replace(tzinfo=timezone.utc)
    db_session.flush()

    if allowed:
        return_service.process_return(admin, sale.id, items=[{"product_id": product.id, "quantity": 1}])
        assert sale.status == "RETURNED"
    else:
        with pytest.raises(ReturnError):
            return_service.process_return(admin, sale.id, items=[{"product_id": product.id, "quantity": 1}])
