"""
Unit tests for Promotions models.
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from promotions.models import (
    Promotion, PromotionAction, PromotionCode, PromotionRedemption,
    Quote, QuoteItem, ActionType, ApplyScope, normalize_code,
)


# ==============================================================================
# HELPERS
# ==============================================================================

class TestNormalizeCode:
    """Tests for normalize_code."""

    def test_trims_and_uppercases(self):
        assert normalize_code('  save20 ') == 'SAVE20'

    def test_none_is_empty(self):
        assert normalize_code(None) == ''


# ==============================================================================
# PROMOTION MODEL TESTS
# ==============================================================================

@pytest.mark.django_db
class TestPromotionModel:
    """Tests for Promotion model."""

    def test_promotion_defaults(self):
        """Test default values of a new promotion."""
        promotion = Promotion.objects.create(name='Defaults')
        assert promotion.priority == 100
        assert promotion.is_active is True
        assert promotion.apply_scope == ApplyScope.ORDER
        assert promotion.stop_further_processing is None
        assert str(promotion) == 'Defaults'

    def test_window_unbounded(self):
        """Missing bounds never restrict."""
        promotion = Promotion.objects.create(name='Always')
        assert promotion.is_within_window() is True
        assert promotion.is_valid is True

    def test_window_bounds_are_inclusive(self):
        """Evaluation time equal to a bound is inside the window."""
        now = timezone.now()
        promotion = Promotion.objects.create(name='Edge', starts_at=now, ends_at=now)
        assert promotion.is_within_window(now) is True
        assert promotion.is_within_window(now + timedelta(seconds=1)) is False
        assert promotion.is_within_window(now - timedelta(seconds=1)) is False

    def test_is_valid_inactive(self):
        """Inactive promotions are never valid."""
        promotion = Promotion.objects.create(name='Off', is_active=False)
        assert promotion.is_valid is False

    def test_ordering_by_priority_then_id(self):
        """Lower priority numbers come first."""
        late = Promotion.objects.create(name='Late', priority=50)
        early = Promotion.objects.create(name='Early', priority=1)
        tie = Promotion.objects.create(name='Tie', priority=50)
        assert list(Promotion.objects.all()) == [early, late, tie]

    def test_main_action_is_first_action(self):
        """The first action by id governs."""
        promotion = Promotion.objects.create(name='Two actions')
        first = PromotionAction.objects.create(promotion=promotion, action_type=ActionType.FIXED, value=Decimal('3'))
        PromotionAction.objects.create(promotion=promotion, action_type=ActionType.PERCENT, value=Decimal('50'))
        assert promotion.main_action == first

    def test_main_action_missing(self):
        promotion = Promotion.objects.create(name='No action')
        assert promotion.main_action is None


@pytest.mark.django_db
class TestPromotionQuerySet:
    """Tests for PromotionQuerySet filters."""

    def test_active(self):
        active = Promotion.objects.create(name='On')
        Promotion.objects.create(name='Off', is_active=False)
        assert list(Promotion.objects.active()) == [active]

    def test_valid_at(self):
        now = timezone.now()
        current = Promotion.objects.create(name='Current', starts_at=now - timedelta(days=1))
        Promotion.objects.create(name='Future', starts_at=now + timedelta(days=1))
        Promotion.objects.create(name='Past', ends_at=now - timedelta(days=1))
        assert list(Promotion.objects.valid_at(now)) == [current]

    def test_with_code_normalizes_and_requires_active_code(self, make_promotion):
        coded = make_promotion(name='Coded', codes=['SPRING'])
        disabled = make_promotion(name='Disabled code', codes=['WINTER'])
        PromotionCode.objects.filter(code='WINTER').update(is_active=False)

        assert list(Promotion.objects.with_code(' spring ')) == [coded]
        assert disabled not in Promotion.objects.with_code('WINTER')


# ==============================================================================
# PROMOTION CODE TESTS
# ==============================================================================

@pytest.mark.django_db
class TestPromotionCodeModel:
    """Tests for PromotionCode model."""

    def test_code_normalized_on_save(self, make_promotion):
        promotion = make_promotion(name='Promo')
        code = PromotionCode.objects.create(promotion=promotion, code='  welcome10 ')
        assert code.code == 'WELCOME10'
        assert str(code) == 'WELCOME10'


# ==============================================================================
# QUOTE TESTS
# ==============================================================================

@pytest.mark.django_db
class TestQuoteModel:
    """Tests for Quote and QuoteItem models."""

    def test_line_totals(self):
        quote = Quote.objects.create(quote_number='Q-1')
        item = QuoteItem(
            quote=quote,
            unit_price_ht_snapshot=Decimal('19.99'),
            tax_rate_snapshot=Decimal('21'),
            quantity=Decimal('3'),
        )
        item.compute_line_totals()
        assert item.line_total_ht == Decimal('59.97')
        assert item.line_tax_amount == Decimal('12.59')
        assert item.line_total_ttc == Decimal('72.56')

    def test_line_totals_without_snapshots(self):
        """Missing price and tax rate count as zero."""
        quote = Quote.objects.create(quote_number='Q-2')
        item = QuoteItem(quote=quote, quantity=Decimal('2'))
        item.compute_line_totals()
        assert item.line_total_ht == Decimal('0.00')
        assert item.line_total_ttc == Decimal('0.00')

    def test_calculate_totals(self, quote):
        assert quote.subtotal_ht == Decimal('100.00')
        assert quote.total_tax == Decimal('20.00')
        assert quote.total_ttc == Decimal('120.00')

    def test_items_ordered_by_sort_order(self, quote):
        assert [i.product_id for i in quote.items.all()] == ['7', '8']

    def test_total_ttc_after_discount(self, quote):
        quote.discount_total = Decimal('10.00')
        assert quote.total_ttc_after_discount == Decimal('110.00')

    def test_total_ttc_after_discount_never_negative(self, quote):
        quote.discount_total = Decimal('500.00')
        assert quote.total_ttc_after_discount == Decimal('0.00')

    def test_calculate_totals_with_discount(self, quote):
        """Discount reduces HT; tax follows the weighted rate."""
        quote.discount_total = Decimal('10.00')
        quote.calculate_totals_with_discount()
        quote.refresh_from_db()
        assert quote.subtotal_ht == Decimal('90.00')
        assert quote.total_tax == Decimal('18.00')
        assert quote.total_ttc == Decimal('108.00')

    def test_calculate_totals_with_discount_capped_at_subtotal(self, quote):
        quote.discount_total = Decimal('250.00')
        quote.calculate_totals_with_discount()
        assert quote.subtotal_ht == Decimal('0.00')
        assert quote.total_ttc == Decimal('0.00')


# ==============================================================================
# REDEMPTION TESTS
# ==============================================================================

@pytest.mark.django_db
class TestPromotionRedemption:
    """Tests for PromotionRedemption model."""

    def test_redemption_survives_quote_deletion(self, order_promotion, quote):
        redemption = PromotionRedemption.objects.create(
            promotion=order_promotion,
            quote=quote,
            amount_discounted=Decimal('10.00'),
        )
        quote.delete()
        redemption.refresh_from_db()
        assert redemption.quote is None
        assert redemption.used_at is not None
