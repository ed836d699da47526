from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.http import JsonResponse
from django.urls import include, path


# Health check endpoint for load balancers and container orchestration
def health_check(request):
    return JsonResponse({'status': 'healthy', 'app': 'learnhub'})


urlpatterns = [
    path('health/', health_check, name='health_check'),
    path('admin/', admin.site.urls),

    # -------------------------
    # Checkout, webhooks, payment records
    # -------------------------
    path('payments/', include('payments.urls')),

    # -------------------------
    # Certificate issuance & public verification
    # -------------------------
    path('certificates/', include('certificates.urls')),
]

if settings.DEBUG and getattr(settings, 'MEDIA_URL', None):
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)

handler400 = 'learnhub_site.error_views.bad_request'
handler403 = 'learnhub_site.error_views.permission_denied'
handler404 = 'learnhub_site.error_views.page_not_found'
handler500 = 'learnhub_site.error_views.server_error'
