"""Grand total, tax rounding and settlement tolerance."""

import pytest

from shopledger.services import pricing


class TestGrandTotal:

    def test_regular_sale_adds_tax_then_shipping(self):
        assert pricing.grand_total_cents(10000, 500) == 12500

    def test_tax_rounds_half_up(self):
        # 0.05 * 1.2 = 0.06 exactly, 0.03 * 1.2 = 0.036 -> 0.04
        assert pricing.apply_tax(5) == 6
        assert pricing.apply_tax(3) == 4
        assert pricing.apply_tax(1) == 1

    @pytest.mark.parametrize("payer", ["COMPANY", "NONE", None])
    def test_gift_costs_nothing_unless_customer_pays_shipping(self, payer):
        assert pricing.grand_total_cents(10000, 700, "GIFT", payer) == 0

    def test_gift_with_customer_paying_shipping(self):
        assert pricing.grand_total_cents(10000, 700, "GIFT", "CUSTOMER") == 700

    def test_sale_grand_total_reads_sale_fields(self):
        class _Sale:
            subtotal_cents = 100000
            shipping_cost_cents = 0
            sale_type = "SALE"
            shipping_payer = None

        assert pricing.sale_grand_total(_Sale()) == 120000


class TestSettlement:

    def test_within_one_unit_counts_as_settled(self):
        assert pricing.is_settled(11950, 12000)
        assert pricing.is_settled(11900, 12000)

    def test_more_than_one_unit_open_is_not_settled(self):
        assert not pricing.is_settled(11899, 12000)


def test_refund_is_tax_inclusive_item_value():
    assert pricing.refund_cents([(1000, 3), (2500, 1)]) == 6600
