# payments/urls.py
"""
URL patterns for payments app.
"""

from django.urls import path
from payments import views

urlpatterns = [
    # Gateway webhook (CSRF-exempt, signature-verified)
    path('webhooks/razorpay/', views.razorpay_webhook_view, name='razorpay_webhook'),

    # Checkout API
    path('api/create-order/', views.create_order_view, name='create_order'),
    path('api/verify-payment/', views.verify_payment_view, name='verify_payment'),

    # Institution payment history
    path('', views.payment_list_view, name='payment_list'),
]
