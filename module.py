"""
Promotions Module Configuration

This file defines the module metadata and default settings for the
Promotions module: priority-ordered promotions and redemption codes
applied to sales quotes.
"""
from django.utils.translation import gettext_lazy as _

# Module Identification
MODULE_ID = "promotions"
MODULE_NAME = _("Promotions")
MODULE_ICON = "megaphone-outline"
MODULE_VERSION = "1.0.0"
MODULE_CATEGORY = "sales"

# Module Dependencies
DEPENDENCIES = ['inventory', 'sales']

# Default Settings (override with settings.PROMOTIONS)
SETTINGS = {
    # Stop after the first applied promotion when it does not say otherwise
    "quote_stop_by_default": True,
    "transient_stop_by_default": False,
    "code_max_length": 191,
}

# Permissions
PERMISSIONS = [
    "promotions.view_promotion",
    "promotions.add_promotion",
    "promotions.change_promotion",
    "promotions.delete_promotion",
    "promotions.view_promotioncode",
    "promotions.add_promotioncode",
    "promotions.change_promotioncode",
    "promotions.delete_promotioncode",
    "promotions.view_promotionredemption",
]
