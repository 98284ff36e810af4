"""
Pytest configuration for Promotions module tests.
"""

import django
from django.conf import settings

# Standalone settings: the module is tested outside of a hub project
if not settings.configured:
    settings.configure(
        DEBUG=False,
        SECRET_KEY='promotions-tests',
        USE_TZ=True,
        TIME_ZONE='UTC',
        DATABASES={
            'default': {
                'ENGINE': 'django.db.backends.sqlite3',
                'NAME': ':memory:',
            }
        },
        INSTALLED_APPS=[
            'django.contrib.contenttypes',
            'django.contrib.auth',
            'django.contrib.sessions',
            'promotions',
        ],
        MIDDLEWARE=[
            'django.contrib.sessions.middleware.SessionMiddleware',
            'django.contrib.auth.middleware.AuthenticationMiddleware',
        ],
        ROOT_URLCONF=__name__,
        LOGIN_URL='/login/',
        DEFAULT_AUTO_FIELD='django.db.models.BigAutoField',
        PASSWORD_HASHERS=['django.contrib.auth.hashers.MD5PasswordHasher'],
    )

django.setup()

# Import pytest and fixtures
import pytest
from decimal import Decimal
from datetime import timedelta

from django.test import Client
from django.urls import include, path
from django.utils import timezone

urlpatterns = [
    path('modules/promotions/', include('promotions.urls')),
]


@pytest.fixture
def client():
    """Create test client."""
    return Client()


@pytest.fixture
def user(db, django_user_model):
    """Create a test user."""
    return django_user_model.objects.create_user(username='seller', password='secret')


@pytest.fixture
def auth_client(client, user):
    """Create authenticated test client."""
    client.force_login(user)
    return client


@pytest.fixture
def make_promotion(db):
    """
    Factory creating a promotion with one action.

    Extra keyword arguments are passed to Promotion; ``codes`` and
    ``products`` (list of (product_id, sku) tuples) create related rows.
    """
    from promotions.models import Promotion, PromotionAction, PromotionCode, PromotionProduct, ActionType

    def _make(name='Promo', action_type=ActionType.PERCENT, value=Decimal('10'),
              max_discount_amount=None, codes=(), products=(), **kwargs):
        promotion = Promotion.objects.create(name=name, **kwargs)
        if action_type is not None:
            PromotionAction.objects.create(
                promotion=promotion,
                action_type=action_type,
                value=value,
                max_discount_amount=max_discount_amount,
            )
        for code in codes:
            PromotionCode.objects.create(promotion=promotion, code=code)
        for product_id, sku in products:
            PromotionProduct.objects.create(promotion=promotion, product_id=product_id, sku=sku)
        return promotion

    return _make


@pytest.fixture
def order_promotion(make_promotion):
    """10% off the whole order."""
    from promotions.models import ApplyScope

    return make_promotion(
        name='10% Off',
        value=Decimal('10'),
        apply_scope=ApplyScope.ORDER,
        priority=10,
        starts_at=timezone.now() - timedelta(days=1),
        ends_at=timezone.now() + timedelta(days=30),
    )


@pytest.fixture
def product_promotion(make_promotion):
    """Fixed 5.00 off product 7 (SKU SKU-7)."""
    from promotions.models import ActionType, ApplyScope, PromotionType

    return make_promotion(
        name='5 Off Widgets',
        type=PromotionType.PRODUCT,
        action_type=ActionType.FIXED,
        value=Decimal('5'),
        apply_scope=ApplyScope.PRODUCT,
        products=[('7', 'SKU-7')],
        priority=20,
    )


@pytest.fixture
def coded_promotion(make_promotion):
    """20% off unlocked by code SAVE20."""
    return make_promotion(
        name='Save 20',
        value=Decimal('20'),
        codes=['SAVE20'],
        priority=5,
    )


@pytest.fixture
def make_quote(db):
    """
    Factory creating a quote with items.

    Items are dicts with product_id, sku, unit_price, quantity and
    optional tax_rate.
    """
    from promotions.models import Quote, QuoteItem

    counter = {'n': 0}

    def _make(items):
        counter['n'] += 1
        quote = Quote.objects.create(quote_number=f'Q-{counter["n"]:04d}')
        for position, item in enumerate(items):
            quote_item = QuoteItem(
                quote=quote,
                product_id=item.get('product_id'),
                product_name_snapshot=item.get('name', f'Item {position}'),
                product_sku_snapshot=item.get('sku'),
                unit_price_ht_snapshot=Decimal(str(item['unit_price'])),
                tax_rate_snapshot=Decimal(str(item.get('tax_rate', '0'))),
                quantity=Decimal(str(item['quantity'])),
                sort_order=position,
            )
            quote_item.compute_line_totals()
            quote_item.save()
        quote.calculate_totals()
        return quote

    return _make


@pytest.fixture
def quote(make_quote):
    """Quote with two items of 50.00 HT at 20% tax."""
    return make_quote([
        {'product_id': '7', 'sku': 'SKU-7', 'unit_price': '50.00', 'quantity': 1, 'tax_rate': '20'},
        {'product_id': '8', 'sku': 'SKU-8', 'unit_price': '50.00', 'quantity': 1, 'tax_rate': '20'},
    ])
