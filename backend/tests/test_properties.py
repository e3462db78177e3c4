"""
Property-based tests for money arithmetic and webhook signatures.
"""

from decimal import Decimal

from hypothesis import given, settings, strategies as st

from shared.security.webhook_signature import compute_webhook_signature, verify_webhook_signature
from shared.utils.money import order_total, round2, split_amount

amounts = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2)
tax_rates = st.decimals(min_value=Decimal("0"), max_value=Decimal("28"), places=2)
commission_rates = st.decimals(min_value=Decimal("0"), max_value=Decimal("0.2"), places=3)


class TestMoneyProperties:
    def test_half_up_rounding(self):
        assert round2(Decimal("2.625")) == Decimal("2.63")
        assert round2(Decimal("2.624")) == Decimal("2.62")
        assert round2(0.1 + 0.2) == Decimal("0.30")

    def test_known_order(self):
        assert order_total(Decimal("250.00"), Decimal("0.00"), Decimal("5")) == (
            Decimal("12.50"),
            Decimal("262.50"),
        )

    @given(subtotal=amounts, tax=tax_rates, discount_share=st.integers(min_value=0, max_value=100))
    @settings(max_examples=200)
    def test_total_matches_formula(self, subtotal, tax, discount_share):
        discount = round2(subtotal * discount_share / 100)
        tax_amount, total = order_total(subtotal, discount, tax)

        assert total == round2((subtotal - discount) * (1 + tax / 100))
        assert tax_amount == round2((subtotal - discount) * tax / 100)
        assert total >= subtotal - discount
        # Tax and total are rounded independently; they never drift by more than a paisa
        assert abs(total - (subtotal - discount + tax_amount)) <= Decimal("0.01")

    @given(amount=amounts, rate=commission_rates)
    def test_split_parts_add_up(self, amount, rate):
        commission, vendor_amount = split_amount(amount, rate)

        assert commission + vendor_amount == amount
        assert commission >= 0
        assert vendor_amount >= 0
        assert vendor_amount.as_tuple().exponent == -2


class TestWebhookSignatureProperties:
    @given(body=st.binary(max_size=512), timestamp=st.integers(min_value=0).map(str))
    def test_own_signature_verifies(self, body, timestamp):
        signature = compute_webhook_signature("secret", timestamp, body)
        assert verify_webhook_signature("secret", signature, body, timestamp)

    @given(body=st.binary(min_size=1, max_size=256))
    def test_other_secret_fails(self, body):
        signature = compute_webhook_signature("secret", "1", body)
        assert not verify_webhook_signature("other", signature, body, "1")

    def test_missing_secret_or_signature_never_verifies(self):
        signature = compute_webhook_signature("", "1", b"{}")
        assert not verify_webhook_signature("", signature, b"{}", "1")
        assert not verify_webhook_signature("secret", None, b"{}", "1")

    def test_body_tampering_fails(self):
        signature = compute_webhook_signature("secret", "1", b'{"amount": 100}')
        assert not verify_webhook_signature("secret", signature, b'{"amount": 1}', "1")
