"""
Models for Promotions module.

Supports:
- Promotions with a governing action (percent or fixed amount)
- Redemption codes that unlock a specific promotion
- Product eligibility (by product id or SKU)
- Quotes and their line items, with applied promotion snapshots
- Redemption history
"""

from decimal import Decimal, ROUND_HALF_UP

from django.core.serializers.json import DjangoJSONEncoder
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone


TWO_PLACES = Decimal('0.01')


def normalize_code(value) -> str:
    """Trim and upper-case a redemption code or SKU for comparison."""
    if value is None:
        return ''
    return str(value).strip().upper()


class PromotionType(models.TextChoices):
    """Kinds of promotions."""
    ORDER = 'order', 'Order'
    CATEGORY = 'category', 'Category'
    PRODUCT = 'product', 'Product'
    BOGO = 'bogo', 'Buy X Get Y'


class ApplyScope(models.TextChoices):
    """What the discount is computed against."""
    ORDER = 'order', 'Entire Order'
    CATEGORY = 'category', 'Specific Categories'
    PRODUCT = 'product', 'Specific Products'


class ActionType(models.TextChoices):
    """Discount effects."""
    PERCENT = 'percent', 'Percentage'
    FIXED = 'fixed', 'Fixed Amount'
    BOGO_FREE = 'bogo_free', 'Buy X Get Y Free'
    BOGO_PERCENT = 'bogo_percent', 'Buy X Get Y Percent'


class PromotionQuerySet(models.QuerySet):

    def active(self):
        return self.filter(is_active=True)

    def valid_at(self, at):
        """Promotions whose validity window contains ``at`` (inclusive)."""
        return self.filter(
            models.Q(starts_at__isnull=True) | models.Q(starts_at__lte=at),
            models.Q(ends_at__isnull=True) | models.Q(ends_at__gte=at),
        )

    def with_code(self, code):
        """Promotions owning an active redemption code equal to ``code``."""
        return self.filter(
            codes__code=normalize_code(code),
            codes__is_active=True,
        ).distinct()


class Promotion(models.Model):
    """
    A configured promotion.

    Lower priority numbers are evaluated first. A promotion applies when
    its validity window contains the evaluation time and the cart meets
    the minimum subtotal/quantity conditions.
    """

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)

    type = models.CharField(
        max_length=20,
        choices=PromotionType.choices,
        default=PromotionType.ORDER
    )
    priority = models.IntegerField(default=100)
    is_exclusive = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    # Validity window
    starts_at = models.DateTimeField(null=True, blank=True)
    ends_at = models.DateTimeField(null=True, blank=True)

    # Global conditions, evaluated against the whole cart
    min_subtotal = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Minimum cart subtotal (tax excluded)"
    )
    min_quantity = models.PositiveIntegerField(null=True, blank=True)

    apply_scope = models.CharField(
        max_length=20,
        choices=ApplyScope.choices,
        default=ApplyScope.ORDER
    )
    stop_further_processing = models.BooleanField(
        null=True,
        blank=True,
        default=None,
        help_text="Stop evaluating other promotions once this one applies (empty = caller default)"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PromotionQuerySet.as_manager()

    class Meta:
        ordering = ['priority', 'id']
        indexes = [
            models.Index(fields=['is_active', 'priority']),
            models.Index(fields=['starts_at', 'ends_at']),
        ]

    def __str__(self):
        return self.name

    def is_within_window(self, at=None) -> bool:
        """Check the validity window; missing bounds are unconstrained."""
        at = at or timezone.now()
        if self.starts_at and at < self.starts_at:
            return False
        if self.ends_at and at > self.ends_at:
            return False
        return True

    @property
    def is_valid(self) -> bool:
        """Check if promotion is currently usable."""
        return self.is_active and self.is_within_window()

    @property
    def main_action(self):
        """The governing action (first by id), or None."""
        actions = list(self.actions.all())
        return actions[0] if actions else None


class PromotionAction(models.Model):
    """Effect of a promotion. Only the first action of a promotion is used."""

    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name='actions')
    action_type = models.CharField(
        max_length=20,
        choices=ActionType.choices,
        default=ActionType.PERCENT
    )
    value = models.DecimalField(
        max_digits=12,
        decimal_places=4,
        null=True,
        blank=True,
        help_text="Percentage (e.g. 10) or fixed amount"
    )
    max_discount_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Maximum discount amount"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['id']

    def __str__(self):
        return f"{self.action_type} {self.value}"


class PromotionCode(models.Model):
    """Redemption code restricting a promotion to requests presenting it."""

    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name='codes')
    code = models.CharField(max_length=191, unique=True)
    uses = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['id']
        indexes = [
            models.Index(fields=['promotion', 'is_active']),
        ]

    def __str__(self):
        return self.code

    def save(self, *args, **kwargs):
        if self.code:
            self.code = normalize_code(self.code)
        super().save(*args, **kwargs)


class PromotionProduct(models.Model):
    """Products a product-scoped promotion applies to."""

    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name='products')
    product_id = models.CharField(max_length=50)
    sku = models.CharField(max_length=100, blank=True)

    class Meta:
        unique_together = ['promotion', 'product_id']


class Quote(models.Model):
    """Sales quote with its totals and applied promotions."""

    quote_number = models.CharField(max_length=64, unique=True)

    subtotal_ht = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total_tax = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    total_ttc = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))

    discount_total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    applied_promotions = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return self.quote_number

    @property
    def total_ttc_after_discount(self) -> Decimal:
        """Total TTC after discount, never negative."""
        remaining = Decimal(self.total_ttc or 0) - Decimal(self.discount_total or 0)
        return max(Decimal('0.00'), remaining.quantize(TWO_PLACES, rounding=ROUND_HALF_UP))

    def calculate_totals(self) -> None:
        """Recompute HT/tax/TTC totals from the items."""
        items = list(self.items.all())
        self.subtotal_ht = sum((i.line_total_ht for i in items), Decimal('0.00'))
        self.total_tax = sum((i.line_tax_amount for i in items), Decimal('0.00'))
        self.total_ttc = sum((i.line_total_ttc for i in items), Decimal('0.00'))
        self.save(update_fields=['subtotal_ht', 'total_tax', 'total_ttc', 'updated_at'])

    def calculate_totals_with_discount(self) -> None:
        """
        Recompute totals taking discount_total into account.

        The discount reduces the HT base; tax is re-derived from the
        weighted tax rate of the items.
        """
        items = list(self.items.all())
        subtotal_ht = sum((i.line_total_ht for i in items), Decimal('0.00'))
        total_tax = sum((i.line_tax_amount for i in items), Decimal('0.00'))

        discount = max(Decimal('0.00'), min(Decimal(self.discount_total or 0), subtotal_ht))
        weighted_rate = total_tax / subtotal_ht if subtotal_ht > 0 else Decimal('0')

        new_subtotal = (subtotal_ht - discount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        new_tax = (new_subtotal * weighted_rate).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

        self.subtotal_ht = new_subtotal
        self.total_tax = new_tax
        self.total_ttc = new_subtotal + new_tax
        self.save(update_fields=['subtotal_ht', 'total_tax', 'total_ttc', 'updated_at'])


class QuoteItem(models.Model):
    """
    Quote line.

    Stores a snapshot of product details at the time the quote was built
    so pricing survives later catalog changes.
    """

    quote = models.ForeignKey(Quote, on_delete=models.CASCADE, related_name='items')
    product_id = models.CharField(max_length=50, null=True, blank=True)
    product_name_snapshot = models.CharField(max_length=255, blank=True)
    product_sku_snapshot = models.CharField(max_length=100, null=True, blank=True)
    unit_price_ht_snapshot = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal('0'))]
    )
    tax_rate_snapshot = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    quantity = models.DecimalField(max_digits=12, decimal_places=3, default=Decimal('0'))

    line_total_ht = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    line_tax_amount = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))
    line_total_ttc = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal('0.00'))

    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ['sort_order', 'id']

    def __str__(self):
        return f"{self.product_name_snapshot} x {self.quantity}"

    def compute_line_totals(self) -> None:
        """Derive HT, tax and TTC line totals from the snapshots."""
        price = Decimal(self.unit_price_ht_snapshot or 0)
        rate = Decimal(self.tax_rate_snapshot or 0)
        ht = (Decimal(self.quantity or 0) * price).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        tax = (ht * rate / 100).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
        self.line_total_ht = ht
        self.line_tax_amount = tax
        self.line_total_ttc = ht + tax


class PromotionRedemption(models.Model):
    """Track promotion usage history."""

    promotion = models.ForeignKey(Promotion, on_delete=models.CASCADE, related_name='redemptions')
    promotion_code = models.ForeignKey(
        PromotionCode,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='redemptions'
    )
    user_id = models.CharField(max_length=50, null=True, blank=True)
    quote = models.ForeignKey(
        Quote,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='redemptions'
    )
    used_at = models.DateTimeField(default=timezone.now)
    amount_discounted = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-used_at']
        indexes = [
            models.Index(fields=['promotion', 'used_at']),
        ]
