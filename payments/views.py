# payments/views.py
"""
Payment endpoints: gateway webhook, checkout order creation and
verification, and an institution-scoped payment list.
"""

import json
import logging

from django.conf import settings
from django.contrib.auth.decorators import login_required
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_GET, require_POST

from core.decorators import role_required
from core.models import Course
from core.responses import service_response
from payments.models import Payment
from payments.services.payment_service import PaymentService

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def razorpay_webhook_view(request):
    """
    Gateway webhook receiver.

    The signature covers the raw body, so request.body is handed to the
    service untouched. Any 2xx tells the gateway to stop retrying; errors
    are 4xx/5xx so that genuine failures are redelivered.
    """
    signature = request.headers.get(settings.RAZORPAY_SIGNATURE_HEADER)
    result = PaymentService.handle_webhook(request.body, signature)

    body = {'ok': result['ok'], 'reason': result['reason']}
    if result['ok']:
        body['action'] = result['data'].get('action', '')
    else:
        body['code'] = result['code']
    return service_response(result, body=body)


@login_required
@require_POST
def create_order_view(request):
    """
    Create a Razorpay order for a course.
    """
    try:
        data = json.loads(request.body or b'{}')
    except json.JSONDecodeError:
        return JsonResponse({'ok': False, 'code': 'INVALID_JSON', 'reason': 'Invalid JSON.'}, status=400)

    course_id = data.get('course_id') if isinstance(data, dict) else None
    if isinstance(course_id, bool) or not isinstance(course_id, (int, str)) or not str(course_id).isdigit():
        return JsonResponse({'ok': False, 'code': 'INVALID_REQUEST', 'reason': 'course_id is required.'}, status=400)

    course = Course.objects.filter(pk=int(course_id), is_published=True).select_related('institution').first()
    if course is None or not course.institution.is_active:
        return JsonResponse({'ok': False, 'code': 'COURSE_NOT_FOUND', 'reason': 'Course not found.'}, status=404)

    result = PaymentService.create_order(user=request.user, course=course)
    if result['ok']:
        data = result['data']
        return JsonResponse({
            'ok': True,
            'free': data['free'],
            'enrollment_id': data.get('enrollment_id'),
            'order_id': data.get('order_id'),
            'payment_id': data.get('payment_id'),
            'amount': data.get('amount'),
            'currency': data.get('currency'),
            'key': data.get('key_id'),
            'prefill': {
                'name': request.user.get_full_name(),
                'email': request.user.email,
            },
        })

    return service_response(result)


@login_required
@require_POST
def verify_payment_view(request):
    """
    Verify payment after Razorpay checkout callback.
    """
    try:
        data = json.loads(request.body)
    except json.JSONDecodeError:
        return JsonResponse({'ok': False, 'code': 'INVALID_JSON', 'reason': 'Invalid JSON.'}, status=400)

    if not isinstance(data, dict):
        return JsonResponse({'ok': False, 'code': 'INVALID_REQUEST', 'reason': 'Expected a JSON object.'}, status=400)

    result = PaymentService.verify_payment(
        user=request.user,
        gateway_order_id=str(data.get('razorpay_order_id') or ''),
        gateway_payment_id=str(data.get('razorpay_payment_id') or ''),
        signature=str(data.get('razorpay_signature') or ''),
        request=request,
    )
    return service_response(result)


@require_GET
@role_required('super_admin', 'institution_admin')
def payment_list_view(request):
    """
    Payments for the caller's institution, newest first.
    Super admins may pass ?institution=<id> to look at another institution.
    """
    caller = request.caller
    payments = Payment.objects.select_related('course')

    institution_id = request.GET.get('institution')
    if caller.is_super_admin:
        if institution_id:
            if not institution_id.isdigit():
                return JsonResponse({'ok': False, 'code': 'INVALID_REQUEST', 'reason': 'Invalid institution.'}, status=400)
            payments = payments.filter(institution_id=int(institution_id))
    else:
        payments = payments.filter(institution=caller.institution)

    status = request.GET.get('status')
    if status:
        if status not in dict(Payment.STATUS_CHOICES):
            return JsonResponse({'ok': False, 'code': 'INVALID_REQUEST', 'reason': 'Invalid status.'}, status=400)
        payments = payments.filter(status=status)

    results = [PaymentService.serialize_payment(p) for p in payments[:200]]

    return JsonResponse({'ok': True, 'count': len(results), 'payments': results})
