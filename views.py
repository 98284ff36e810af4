"""
Promotions Module Views

JSON endpoints previewing and applying promotions on persisted quotes and
on transient carts, plus the active promotions listing.
"""
import json

from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.http import require_POST, require_GET

from .forms import PromotionCodeForm, TransientItemForm
from .models import Promotion, Quote
from .services.promotion_service import get_promotion_service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _user_id(request):
    return request.user.pk if request.user.is_authenticated else None


def _load_json(request):
    """Decoded JSON object body ({} when empty), or None when malformed."""
    if not request.body:
        return {}
    try:
        data = json.loads(request.body)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _invalid_json():
    return JsonResponse({'error': 'Invalid JSON'}, status=400)


def _invalid_request(errors):
    return JsonResponse({'error': 'Invalid request', 'errors': errors}, status=400)


def _clean_code(data):
    """Return (code, errors) for the optional redemption code."""
    form = PromotionCodeForm({'code': data.get('code')})
    if not form.is_valid():
        return None, form.errors.get_json_data()
    return form.cleaned_data['code'], None


def _clean_items(data):
    """Return (items, errors) for the transient cart lines."""
    raw_items = data.get('items')
    if not isinstance(raw_items, list):
        return None, {'items': [{'message': 'A list of items is required.', 'code': 'required'}]}

    items = []
    errors = {}
    for index, raw in enumerate(raw_items):
        form = TransientItemForm(raw if isinstance(raw, dict) else {})
        if form.is_valid():
            items.append(form.cleaned_data)
        else:
            errors[f'items.{index}'] = form.errors.get_json_data()
    if errors:
        return None, errors
    return items, None


def _quote_or_404(quote_id):
    return get_object_or_404(Quote.objects.prefetch_related('items'), id=quote_id)


# ============================================================================
# Persisted quotes
# ============================================================================

@login_required
@require_POST
def quote_preview(request, quote_id):
    """Discounts the quote would receive, without saving anything."""
    quote = _quote_or_404(quote_id)
    data = _load_json(request)
    if data is None:
        return _invalid_json()
    code, errors = _clean_code(data)
    if errors:
        return _invalid_request(errors)

    result = get_promotion_service().preview(quote, code=code, user_id=_user_id(request))
    return JsonResponse(result)


@login_required
@require_POST
def quote_apply(request, quote_id):
    """Persist discounts on the quote and record redemptions."""
    quote = _quote_or_404(quote_id)
    data = _load_json(request)
    if data is None:
        return _invalid_json()
    code, errors = _clean_code(data)
    if errors:
        return _invalid_request(errors)

    quote = get_promotion_service().apply(quote, code=code, user_id=_user_id(request))
    return JsonResponse({
        'quote_id': quote.pk,
        'discount_total': float(quote.discount_total),
        'applied_promotions': quote.applied_promotions or [],
        'subtotal_ht': float(quote.subtotal_ht),
        'total_tax': float(quote.total_tax),
        'total_ttc': float(quote.total_ttc),
        'total_ttc_after_discount': float(quote.total_ttc_after_discount),
    })


# ============================================================================
# Transient carts
# ============================================================================

def _transient(request, apply=False):
    data = _load_json(request)
    if data is None:
        return _invalid_json()
    code, errors = _clean_code(data)
    if errors:
        return _invalid_request(errors)
    items, errors = _clean_items(data)
    if errors:
        return _invalid_request(errors)

    service = get_promotion_service()
    handler = service.apply_from_payload if apply else service.preview_from_payload
    return JsonResponse(handler({'items': items}, code=code, user_id=_user_id(request)))


@login_required
@require_POST
def transient_preview(request):
    return _transient(request)


@login_required
@require_POST
def transient_apply(request):
    return _transient(request, apply=True)


# ============================================================================
# API
# ============================================================================

@login_required
@require_GET
def api_active_promotions(request):
    promotions = Promotion.objects.active().prefetch_related('actions')

    data = []
    for p in promotions:
        action = p.main_action
        data.append({
            'id': p.id,
            'name': p.name,
            'description': p.description,
            'type': p.type,
            'apply_scope': p.apply_scope,
            'priority': p.priority,
            'stop_further_processing': p.stop_further_processing,
            'action_type': action.action_type if action else None,
            'action_value': str(action.value) if action and action.value is not None else None,
            'is_valid': p.is_valid,
        })

    return JsonResponse({'promotions': data})
