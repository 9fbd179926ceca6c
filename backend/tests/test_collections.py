"""
Collections against sales and general collections.

Sale: product 10.00 x10 -> subtotal 100.00 -> grand total 120.00.
"""

import pytest

from shopledger.models import Transaction
from shopledger.services import collection_service, sales_service
from shopledger.services.collection_service import CollectionError
from shopledger.services.customer_service import reconcile_balances
from shopledger.validation import NotFoundError, ValidationError


@pytest.fixture
def credit_sale(db_session, admin, product, customer):
    sale, _ = sales_service.create_sale(
        admin,
        items=[{"product_id": product.id, "quantity": 10}],
        customer_id=customer.id,
        payment_status="UNPAID",
        due_date="2026-12-01",
    )
    return sale


class TestCollectForSale:

    def test_partial_then_full_collection(self, db_session, admin, customer, credit_sale):
        assert customer.current_balance_cents == -12000

        first = collection_service.collect_for_sale(admin, credit_sale.id, 5000)
        assert credit_sale.payment_status == "PARTIAL"
        assert credit_sale.paid_cents == 5000
        assert customer.current_balance_cents == -7000
        assert first.exceeds_remaining is False

        collection_service.collect_for_sale(admin, credit_sale.id, 7000, method="CARD")
        assert credit_sale.payment_status == "PAID"
        assert credit_sale.paid_cents == 12000
        assert customer.current_balance_cents == 0
        assert reconcile_balances() == []

    def test_collection_within_tolerance_settles_sale(self, db_session, admin, customer, credit_sale):
        collection_service.collect_for_sale(admin, credit_sale.id, 11950)
        assert credit_sale.payment_status == "PAID"
        assert customer.current_balance_cents == -50

    def test_transaction_is_linked_and_described(self, db_session, admin, customer, credit_sale):
        result = collection_service.collect_for_sale(admin, credit_sale.id, 5000, description="first")
        tx = result.transaction

        assert tx.type == "COLLECTION"
        assert tx.amount_cents == 5000
        assert tx.sale_id == credit_sale.id
        assert tx.customer_id == customer.id
        assert tx.description == "Collection - S-000001 - first"

    def test_overpayment_is_recorded_and_flagged(self, db_session, admin, customer, credit_sale):
        result = collection_service.collect_for_sale(admin, credit_sale.id, 15000)
        assert result.exceeds_remaining is True
        assert credit_sale.payment_status == "PAID"
        assert customer.current_balance_cents == 3000

    def test_guest_sale_cannot_take_collection(self, db_session, admin, product):
        sale, _ = sales_service.create_sale(
            admin, items=[{"product_id": product.id, "quantity": 1}], payment_status="PAID",
        )
        with pytest.raises(CollectionError):
            collection_service.collect_for_sale(admin, sale.id, 100)
        assert db_session.query(Transaction).count() == 0

    def test_returned_sale_cannot_take_collection(self, db_session, admin, credit_sale):
        credit_sale.status = "RETURNED"
        db_session.commit()
        with pytest.raises(CollectionError):
            collection_service.collect_for_sale(admin, credit_sale.id, 100)

    @pytest.mark.parametrize("amount", [0, -100])
    def test_amount_must_be_positive(self, db_session, admin, credit_sale, amount):
        with pytest.raises(ValidationError):
            collection_service.collect_for_sale(admin, credit_sale.id, amount)

    def test_unknown_method_rejected(self, db_session, admin, credit_sale):
        with pytest.raises(ValidationError):
            collection_service.collect_for_sale(admin, credit_sale.id, 100, method="CHEQUE")

    def test_personnel_cannot_collect_on_foreign_sale(self, db_session, personnel, customer, credit_sale):
        with pytest.raises(NotFoundError):
            collection_service.collect_for_sale(personnel, credit_sale.id, 1000)
        assert customer.current_balance_cents == -12000


class TestGeneralCollection:

    def test_general_collection_credits_customer(self, db_session, admin, customer, credit_sale):
        result = collection_service.collect_general(admin, customer.id, 2000, method="IBAN")

        assert result.sale is None
        assert result.transaction.sale_id is None
        assert customer.current_balance_cents == -10000
        assert credit_sale.payment_status == "UNPAID"

    def test_unknown_customer(self, db_session, admin):
        with pytest.raises(NotFoundError):
            collection_service.collect_general(admin, 999, 100)


def test_transaction_list_is_scoped_to_creator(db_session, admin, personnel, personnel_b, product, customer):
    for actor in (personnel, personnel_b):
        sale, _ = sales_service.create_sale(
            actor,
            items=[{"product_id": product.id, "quantity": 1}],
            customer_id=customer.id,
            payment_status="UNPAID",
            due_date="2026-12-01",
        )
        collection_service.collect_for_sale(actor, sale.id, 500)

    mine = collection_service.list_transactions(personnel)
    assert len(mine) == 1
    assert mine[0].created_by_user_id == personnel.id
    assert len(collection_service.list_transactions(admin)) == 2


def test_balance_conservation_over_http(client, personnel_headers, product, customer):
    created = client.post(
        "/api/sales",
        json={
            "customer_id": customer.id,
            "items": [{"product_id": product.id, "quantity": 1}],
            "payment_status": "UNPAID",
            "due_date": "2026-12-01",
        },
        headers=personnel_headers,
    )
    sale_id = created.json["sale"]["id"]
    assert created.json["sale"]["grand_total_cents"] == 1200
    assert customer.current_balance_cents == -1200

    resp = client.post(f"/api/collections/sales/{sale_id}", json={"amount_cents": 500}, headers=personnel_headers)
    assert resp.status_code == 201
    assert resp.json["sale"]["payment_status"] == "PARTIAL"
    assert resp.json["sale"]["remaining_cents"] == 700
    assert customer.current_balance_cents == -700

    resp = client.post(f"/api/collections/sales/{sale_id}", json={"amount_cents": 700}, headers=personnel_headers)
    assert resp.json["sale"]["payment_status"] == "PAID"
    assert resp.json["exceeds_remaining"] is False
    assert customer.current_balance_cents == 0
