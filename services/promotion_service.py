"""
Promotion Service for ERPlora Hub.

Previews and applies promotions on persisted quotes and on transient
carts (quotes that have not been saved yet).
"""

import logging
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from promotions import module
from promotions.services.cart_adapters import cart_from_payload, cart_from_quote, payload_totals
from promotions.services.promotion_engine import (
    EngineConfig,
    PromotionCatalog,
    PromotionEngine,
    PromotionResult,
    round_money,
)

logger = logging.getLogger(__name__)


def get_module_setting(key: str):
    """Module setting, overridable through ``settings.PROMOTIONS``."""
    overrides = getattr(settings, 'PROMOTIONS', None) or {}
    if key in overrides:
        return overrides[key]
    return module.SETTINGS[key]


# Singleton instance
_promotion_service: Optional['PromotionQuoteService'] = None


def get_promotion_service() -> 'PromotionQuoteService':
    """Get or create the singleton PromotionQuoteService instance."""
    global _promotion_service
    if _promotion_service is None:
        _promotion_service = PromotionQuoteService()
    return _promotion_service


class PromotionQuoteService:
    """
    Service for applying promotions to quotes.

    Handles:
    - Previewing discounts on a persisted quote
    - Persisting discounts and redemption history on a quote
    - Previewing discounts on a transient cart payload
    """

    def __init__(self, catalog: PromotionCatalog | None = None):
        self.catalog = catalog or PromotionCatalog()
        self._redemption_model = None

    @property
    def PromotionRedemption(self):
        """Lazy-load PromotionRedemption model."""
        if self._redemption_model is None:
            from promotions.models import PromotionRedemption
            self._redemption_model = PromotionRedemption
        return self._redemption_model

    def quote_engine(self) -> PromotionEngine:
        config = EngineConfig.for_quotes(
            stop_by_default=get_module_setting('quote_stop_by_default'),
        )
        return PromotionEngine(config, self.catalog)

    def payload_engine(self) -> PromotionEngine:
        config = EngineConfig.for_payloads(
            stop_by_default=get_module_setting('transient_stop_by_default'),
        )
        return PromotionEngine(config, self.catalog)

    # ==========================================================================
    # PERSISTED QUOTES
    # ==========================================================================

    def _evaluate_quote(self, quote, code: str | None, user_id) -> PromotionResult:
        return self.quote_engine().apply(cart_from_quote(quote), code=code, user_id=user_id)

    def preview(self, quote, code: str | None = None, user_id=None) -> dict:
        """
        Compute the discounts a quote would receive, without saving.

        Args:
            quote: Quote with its items prefetched
            code: Optional redemption code
            user_id: Optional user identifier

        Returns:
            Dict with discount_total and applied_promotions
        """
        logger.info("Previewing promotions for quote %s (code=%r)", quote.pk, code)
        result = self._evaluate_quote(quote, code, user_id)
        logger.info(
            "Quote %s preview: discount %s from %d promotion(s)",
            quote.pk, result.discount_total, len(result.applied),
        )
        return result.to_dict()

    def apply(self, quote, code: str | None = None, user_id=None):
        """
        Apply promotions to a quote and record redemptions.

        The quote's discount fields and the redemption rows are written in
        a single transaction.

        Returns:
            The refreshed quote
        """
        logger.info("Applying promotions to quote %s (code=%r)", quote.pk, code)
        now = timezone.now()

        with transaction.atomic():
            result = self._evaluate_quote(quote, code, user_id)
            quote.discount_total = result.discount_total
            quote.applied_promotions = result.to_dict()['applied_promotions']
            quote.save(update_fields=['discount_total', 'applied_promotions', 'updated_at'])

            for applied in result.applied:
                self.PromotionRedemption.objects.create(
                    promotion_id=applied.promotion_id,
                    promotion_code_id=applied.promotion_code_id,
                    user_id=str(user_id) if user_id is not None else None,
                    quote=quote,
                    used_at=now,
                    amount_discounted=applied.amount,
                )

        logger.info(
            "Quote %s: applied %d promotion(s), discount %s",
            quote.pk, len(result.applied), result.discount_total,
        )
        quote.refresh_from_db()
        return quote

    # ==========================================================================
    # TRANSIENT CARTS
    # ==========================================================================

    def preview_from_payload(self, payload: dict, code: str | None = None, user_id=None) -> dict:
        """
        Compute totals and discounts for a cart that is not persisted.

        Args:
            payload: Dict with an ``items`` list (product_id, quantity,
                unit_price_ht, tax_rate)
            code: Optional redemption code
            user_id: Optional user identifier

        Returns:
            Dict with subtotal, tax_total, grand_total, discount_total,
            grand_total_after, applied_promotions and lines_total_discounts
        """
        cart = cart_from_payload((payload or {}).get('items'))
        totals = payload_totals(cart)
        result = self.payload_engine().apply(cart, code=code, user_id=user_id)

        grand_total_after = max(Decimal('0'), round_money(cart.grand_total - result.discount_total))
        logger.info(
            "Transient cart preview: %d line(s), discount %s (code=%r)",
            len(cart), result.discount_total, code,
        )
        return {
            'subtotal': float(totals['subtotal']),
            'tax_total': float(totals['tax_total']),
            'grand_total': float(totals['grand_total']),
            'discount_total': float(result.discount_total),
            'grand_total_after': float(grand_total_after),
            'applied_promotions': [a.to_dict() for a in result.applied],
            'lines_total_discounts': [float(v) for v in result.line_discount_totals],
        }

    def apply_from_payload(self, payload: dict, code: str | None = None, user_id=None) -> dict:
        """Same as preview_from_payload: transient carts are never persisted."""
        return self.preview_from_payload(payload, code=code, user_id=user_id)
