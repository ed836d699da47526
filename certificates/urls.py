# certificates/urls.py
"""
URL patterns for certificates app.
"""

from django.urls import path
from certificates import views

urlpatterns = [
    path('', views.certificate_list_view, name='certificate_list'),
    path('issue/', views.issue_certificate_view, name='issue_certificate'),

    # Public verification (no login)
    path('verify/<str:certificate_id>/', views.verify_certificate_view, name='verify_certificate'),
]
