from django import forms
from django.core.validators import MaxLengthValidator
from django.utils.translation import gettext_lazy as _

from .services.promotion_service import get_module_setting


class PromotionCodeForm(forms.Form):
    """Optional redemption code sent with a preview/apply request."""

    code = forms.CharField(required=False)

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        max_length = get_module_setting('code_max_length')
        self.fields['code'].validators.append(MaxLengthValidator(max_length))

    def clean_code(self):
        return self.cleaned_data['code'] or None


class TransientItemForm(forms.Form):
    """One line of a transient cart payload."""

    product_id = forms.CharField(max_length=50)
    # Bounds mirror the QuoteItem snapshot columns
    quantity = forms.DecimalField(min_value=0, max_digits=12, decimal_places=3)
    unit_price_ht = forms.DecimalField(
        min_value=0,
        max_digits=14,
        decimal_places=2,
        error_messages={'min_value': _('Unit price cannot be negative.')},
    )
    tax_rate = forms.DecimalField(min_value=0, max_digits=5, decimal_places=2)
