"""
Promotion Engine for ERPlora Hub.

Evaluates the promotion catalog against a cart:
- Validity window and minimum subtotal/quantity gating
- Percent and fixed discounts, with optional cap
- Order scope and product scope (by product id or SKU)
- Proportional allocation of each discount across cart lines
- Stop/stacking rules driven by priority order
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Optional

from django.utils import timezone

from promotions.models import TWO_PLACES, ActionType, ApplyScope, normalize_code
from promotions.services.cart import Cart, CartLine

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


def round_money(value) -> Decimal:
    """Round a monetary amount to 2 decimals, half-up."""
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def compute_action_amount(action_type: str, value, base) -> Decimal:
    """
    Discount produced by an action on a monetary base.

    Non-positive values or bases produce nothing. Unsupported action
    types produce nothing either, but are logged.
    """
    value = Decimal(value or 0)
    base = Decimal(base or 0)
    if value <= 0 or base <= 0:
        return ZERO

    if action_type == ActionType.PERCENT:
        return round_money(base * value / 100)
    if action_type == ActionType.FIXED:
        return round_money(min(value, base))

    logger.warning("Unsupported promotion action type %s, no discount computed", action_type)
    return ZERO


def allocate_proportionally(amount: Decimal, weights: list[tuple[int, Decimal]]) -> list['LineAllocation']:
    """
    Split ``amount`` across lines proportionally to their weights.

    Each share is rounded independently; the running total never exceeds
    ``amount``, so the breakdown may sum to slightly less than it. When
    rounding overshoots, the shortfall lands on the last lines in order.
    Zero shares are omitted.
    """
    total = sum((weight for _, weight in weights), Decimal('0'))
    if amount <= 0 or total <= 0:
        return []

    allocations = []
    allocated = ZERO
    for index, weight in weights:
        share = min(round_money(amount * weight / total), amount - allocated)
        if share <= 0:
            continue
        allocations.append(LineAllocation(index=index, amount=share))
        allocated += share
    return allocations


# ==============================================================================
# RESULT TYPES
# ==============================================================================

@dataclass(frozen=True)
class LineAllocation:
    """Part of a promotion's discount assigned to one cart line."""
    index: int
    amount: Decimal

    def to_dict(self) -> dict:
        return {'index': self.index, 'amount': float(self.amount)}


@dataclass
class AppliedPromotion:
    """Represents a promotion applied to a cart."""
    promotion_id: int
    promotion_code_id: int | None
    name: str
    amount: Decimal
    lines_breakdown: list[LineAllocation] = field(default_factory=list)
    hint: dict | None = None  # action type/value, for display

    def to_dict(self) -> dict:
        return {
            'promotion_id': self.promotion_id,
            'promotion_code_id': self.promotion_code_id,
            'name': self.name,
            'amount': float(self.amount),
            'lines_breakdown': [a.to_dict() for a in self.lines_breakdown],
            'hint': self.hint,
        }


@dataclass
class PromotionResult:
    """Result of evaluating promotions against a cart."""
    applied: list[AppliedPromotion] = field(default_factory=list)
    discount_total: Decimal = ZERO
    line_discount_totals: list[Decimal] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'discount_total': float(self.discount_total),
            'applied_promotions': [a.to_dict() for a in self.applied],
        }


@dataclass(frozen=True)
class _Accumulator:
    applied: tuple = ()
    discount_total: Decimal = ZERO
    line_totals: tuple = ()

    def add(self, entry: AppliedPromotion) -> '_Accumulator':
        line_totals = list(self.line_totals)
        for allocation in entry.lines_breakdown:
            line_totals[allocation.index] += allocation.amount
        return _Accumulator(
            applied=self.applied + (entry,),
            discount_total=self.discount_total + entry.amount,
            line_totals=tuple(line_totals),
        )

    def result(self) -> PromotionResult:
        return PromotionResult(
            applied=list(self.applied),
            discount_total=round_money(self.discount_total),
            line_discount_totals=[round_money(v) for v in self.line_totals],
        )


# ==============================================================================
# ACTIONS & CONFIGURATION
# ==============================================================================

@dataclass(frozen=True)
class DiscountAction:
    """The governing action of a promotion."""
    action_type: str
    value: Decimal
    max_discount: Decimal | None = None

    @classmethod
    def from_model(cls, action) -> 'DiscountAction':
        return cls(
            action_type=action.action_type,
            value=Decimal(action.value or 0),
            max_discount=action.max_discount_amount,
        )

    def amount_for(self, base, apply_cap: bool = True) -> Decimal:
        amount = compute_action_amount(self.action_type, self.value, base)
        if apply_cap and self.max_discount:
            amount = min(amount, Decimal(self.max_discount))
        return amount

    @property
    def hint(self) -> dict:
        return {'type': str(self.action_type), 'value': float(self.value)}


class DiscountBase(str, Enum):
    """Which line amount a discount is computed on."""
    HT = 'ht'
    TTC = 'ttc'


class CodeStrategy(str, Enum):
    """How a presented redemption code narrows the catalog."""
    REQUIRE_VALID = 'require_valid'  # unknown code -> no discount at all
    FILTER = 'filter'                # keep promotions owning the code


@dataclass(frozen=True)
class EngineConfig:
    """Per-caller evaluation policy."""
    base: DiscountBase = DiscountBase.HT
    stop_by_default: bool = True
    code_strategy: CodeStrategy = CodeStrategy.REQUIRE_VALID
    match_by_sku: bool = True
    apply_cap: bool = True

    @classmethod
    def for_quotes(cls, stop_by_default: bool = True) -> 'EngineConfig':
        """Policy for persisted quotes: HT base, SKU matching, capped."""
        return cls(stop_by_default=stop_by_default)

    @classmethod
    def for_payloads(cls, stop_by_default: bool = False) -> 'EngineConfig':
        """Policy for transient carts: TTC base, id matching only, uncapped."""
        return cls(
            base=DiscountBase.TTC,
            stop_by_default=stop_by_default,
            code_strategy=CodeStrategy.FILTER,
            match_by_sku=False,
            apply_cap=False,
        )


# ==============================================================================
# CATALOG
# ==============================================================================

class PromotionCatalog:
    """
    Read access to the promotion catalog.

    Every listing is a single query with actions, products and codes
    prefetched, ordered by ascending priority.
    """

    def __init__(self):
        self._promotion_model = None
        self._code_model = None

    @property
    def Promotion(self):
        """Lazy-load Promotion model."""
        if self._promotion_model is None:
            from promotions.models import Promotion
            self._promotion_model = Promotion
        return self._promotion_model

    @property
    def PromotionCode(self):
        """Lazy-load PromotionCode model."""
        if self._code_model is None:
            from promotions.models import PromotionCode
            self._code_model = PromotionCode
        return self._code_model

    def list_active_promotions(self, code: str | None = None, at=None) -> list:
        queryset = self.Promotion.objects.active()
        if at is not None:
            queryset = queryset.valid_at(at)
        if code:
            queryset = queryset.with_code(code)
        return list(
            queryset.prefetch_related('actions', 'products', 'codes').order_by('priority', 'id')
        )

    def find_active_code(self, code: str):
        return self.PromotionCode.objects.filter(
            code=normalize_code(code),
            is_active=True,
        ).first()


# ==============================================================================
# ENGINE
# ==============================================================================

class PromotionEngine:
    """
    Applies the promotion catalog to a cart.

    Promotions are evaluated in ascending priority. Each one that yields
    a positive discount is recorded; evaluation stops after it unless the
    promotion (or, when unset, the engine config) allows stacking.
    """

    def __init__(self, config: Optional[EngineConfig] = None, catalog: Optional[PromotionCatalog] = None):
        self.config = config or EngineConfig()
        self.catalog = catalog or PromotionCatalog()

    def apply(self, cart: Cart, code: str | None = None, user_id=None, at=None) -> PromotionResult:
        """
        Evaluate promotions for a cart.

        Args:
            cart: Cart to evaluate
            code: Optional redemption code presented by the caller
            user_id: Optional user identifier (per-user limits are not enforced)
            at: Evaluation time, defaults to now

        Returns:
            PromotionResult with applied promotions and totals
        """
        at = at or timezone.now()
        accumulator = _Accumulator(line_totals=(ZERO,) * len(cart))
        code_id = None

        if code and self.config.code_strategy == CodeStrategy.REQUIRE_VALID:
            promotion_code = self.catalog.find_active_code(code)
            if promotion_code is None:
                logger.warning("Redemption code %r is unknown or inactive", code)
                return accumulator.result()
            code_id = promotion_code.id
            candidates = [
                p for p in self.catalog.list_active_promotions(at=at)
                if p.id == promotion_code.promotion_id
            ]
        elif code:
            candidates = self.catalog.list_active_promotions(code=code, at=at)
        else:
            candidates = self.catalog.list_active_promotions(at=at)

        for promotion in candidates:
            entry = self._evaluate(promotion, cart, at, code_id)
            if entry is None:
                continue
            accumulator = accumulator.add(entry)
            if self._stops_after(promotion):
                break

        return accumulator.result()

    def _evaluate(self, promotion, cart: Cart, at, code_id) -> AppliedPromotion | None:
        if not promotion.is_within_window(at):
            logger.debug("Promotion %s skipped: outside validity window", promotion.pk)
            return None

        # Conditions are evaluated on the whole cart, whatever the scope
        if promotion.min_subtotal and cart.subtotal < promotion.min_subtotal:
            logger.debug("Promotion %s skipped: subtotal below minimum", promotion.pk)
            return None
        if promotion.min_quantity and cart.quantity < promotion.min_quantity:
            logger.debug("Promotion %s skipped: quantity below minimum", promotion.pk)
            return None

        action_model = promotion.main_action
        if action_model is None:
            logger.debug("Promotion %s skipped: no action configured", promotion.pk)
            return None
        action = DiscountAction.from_model(action_model)

        scope = promotion.apply_scope or ApplyScope.ORDER
        if scope == ApplyScope.ORDER:
            weights = self._weights(cart, range(len(cart)))
            base = cart.subtotal if self.config.base == DiscountBase.HT else cart.grand_total
        elif scope == ApplyScope.PRODUCT:
            weights = self._weights(cart, self._eligible_indexes(promotion, cart))
            base = sum((weight for _, weight in weights), Decimal('0'))
            if base <= 0:
                logger.debug("Promotion %s skipped: no eligible lines", promotion.pk)
                return None
        else:
            logger.debug("Promotion %s skipped: scope %r not supported", promotion.pk, scope)
            return None

        amount = action.amount_for(base, apply_cap=self.config.apply_cap)
        if amount <= 0:
            return None

        return AppliedPromotion(
            promotion_id=promotion.pk,
            promotion_code_id=code_id,
            name=promotion.name,
            amount=round_money(amount),
            lines_breakdown=allocate_proportionally(amount, weights),
            hint=action.hint,
        )

    def _line_base(self, line: CartLine) -> Decimal:
        if self.config.base == DiscountBase.TTC:
            return line.amount_ttc
        return line.amount_ht

    def _weights(self, cart: Cart, indexes) -> list[tuple[int, Decimal]]:
        """(index, base) pairs for the given lines, positive bases only."""
        weights = []
        for index in indexes:
            line_base = self._line_base(cart.lines[index])
            if line_base > 0:
                weights.append((index, line_base))
        return weights

    def _eligible_indexes(self, promotion, cart: Cart) -> list[int]:
        products = list(promotion.products.all())
        eligible_ids = {str(p.product_id) for p in products}
        eligible_skus = set()
        if self.config.match_by_sku:
            eligible_skus = {normalize_code(p.sku) for p in products if p.sku}

        indexes = []
        for index, line in enumerate(cart.lines):
            if str(line.product_id) in eligible_ids:
                indexes.append(index)
            elif eligible_skus and normalize_code(line.sku) in eligible_skus:
                indexes.append(index)
        return indexes

    def _stops_after(self, promotion) -> bool:
        if promotion.stop_further_processing is None:
            return self.config.stop_by_default
        return promotion.stop_further_processing
