from django.urls import path
from . import views

app_name = 'promotions'

urlpatterns = [
    # Persisted quotes
    path('quotes/<int:quote_id>/preview/', views.quote_preview, name='quote_preview'),
    path('quotes/<int:quote_id>/apply/', views.quote_apply, name='quote_apply'),

    # Transient carts (quote not saved yet)
    path('preview/', views.transient_preview, name='transient_preview'),
    path('apply/', views.transient_apply, name='transient_apply'),

    # API
    path('api/active-promotions/', views.api_active_promotions, name='api_active_promotions'),
]
