from django.apps import AppConfig


class PromotionsConfig(AppConfig):
    """Django app configuration for Promotions module."""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'promotions'
    verbose_name = 'Promotions'
