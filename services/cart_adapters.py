"""
Builds engine carts from persisted quotes and from raw request payloads.

Adapters never raise on malformed data: missing or unparseable numbers
are treated as zero.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from promotions.services.cart import Cart, CartLine
from promotions.services.promotion_engine import round_money

UNKNOWN_SKU = 'UNKNOWN'


def _to_decimal(value) -> Decimal:
    if value is None or value == '':
        return Decimal('0')
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal('0')
    if not number.is_finite():
        return Decimal('0')
    return number


def _numeric_product_id(value) -> int:
    """Integer product id, or 0 when the stored id is not numeric."""
    number = _to_decimal(value)
    if number == 0:
        return 0
    return int(number)


def cart_from_quote(quote) -> Cart:
    """
    Build a cart from a quote and its items.

    Expects ``quote.items`` to be prefetched by the caller. Quantities are
    rounded half-up to whole units.
    """
    lines = []
    for item in quote.items.all():
        sku = item.product_sku_snapshot or item.product_id or UNKNOWN_SKU
        quantity = _to_decimal(item.quantity).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
        lines.append(CartLine(
            sku=str(sku),
            product_id=_numeric_product_id(item.product_id),
            category_id=None,
            quantity=int(quantity),
            unit_price=_to_decimal(item.unit_price_ht_snapshot),
            tax_rate=_to_decimal(item.tax_rate_snapshot),
        ))
    return Cart(lines)


def normalize_items(items) -> list[dict]:
    """Coerce raw payload items into product_id/quantity/unit_price_ht/tax_rate dicts."""
    normalized = []
    for item in items or []:
        if not isinstance(item, dict):
            item = {}
        product_id = item.get('product_id')
        normalized.append({
            'product_id': '' if product_id is None else str(product_id),
            'quantity': _to_decimal(item.get('quantity')),
            'unit_price_ht': _to_decimal(item.get('unit_price_ht')),
            'tax_rate': _to_decimal(item.get('tax_rate')),
        })
    return normalized


def cart_from_payload(items) -> Cart:
    """Build a cart from raw payload items (products matched by id only)."""
    return Cart(
        CartLine(
            sku='',
            product_id=item['product_id'],
            category_id=None,
            quantity=item['quantity'],
            unit_price=item['unit_price_ht'],
            tax_rate=item['tax_rate'],
        )
        for item in normalize_items(items)
    )


def payload_totals(cart: Cart) -> dict:
    """Rounded HT, tax and TTC totals of a transient cart."""
    return {
        'subtotal': round_money(cart.subtotal),
        'tax_total': round_money(cart.tax_total),
        'grand_total': round_money(cart.grand_total),
    }
