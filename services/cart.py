"""
Cart value types consumed by the promotion engine.

A cart is built fresh for every request, either from a persisted quote or
from a raw payload, and is never mutated afterwards.
"""

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class CartLine:
    """One purchasable line: quantity x unit price (tax excluded)."""
    sku: str
    product_id: int | str
    category_id: int | None
    quantity: Decimal | int
    unit_price: Decimal
    tax_rate: Decimal = Decimal('0')

    @property
    def amount_ht(self) -> Decimal:
        return Decimal(self.quantity) * Decimal(self.unit_price)

    @property
    def tax_amount(self) -> Decimal:
        return self.amount_ht * Decimal(self.tax_rate) / 100

    @property
    def amount_ttc(self) -> Decimal:
        return self.amount_ht + self.tax_amount


@dataclass(frozen=True)
class Cart:
    """
    Ordered set of cart lines.

    Line positions are stable identifiers used by the discount
    breakdowns. Aggregates are computed on every access.
    """
    lines: tuple[CartLine, ...] = field(default_factory=tuple)

    def __post_init__(self):
        # Accept any iterable of lines but store an immutable tuple
        object.__setattr__(self, 'lines', tuple(self.lines))

    def __len__(self):
        return len(self.lines)

    @property
    def subtotal(self) -> Decimal:
        """Sum of quantity x unit price over all lines (HT)."""
        return sum((line.amount_ht for line in self.lines), Decimal('0'))

    @property
    def quantity(self) -> Decimal:
        return sum((Decimal(line.quantity) for line in self.lines), Decimal('0'))

    @property
    def tax_total(self) -> Decimal:
        return sum((line.tax_amount for line in self.lines), Decimal('0'))

    @property
    def grand_total(self) -> Decimal:
        """Subtotal plus tax (TTC)."""
        return self.subtotal + self.tax_total
