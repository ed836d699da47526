# core/responses.py
"""
Turn service results ({ok, reason, code, data}) into JSON responses.
"""

from django.http import JsonResponse

HTTP_STATUS_BY_CODE = {
    'AUTH_REQUIRED': 401,
    'FORBIDDEN': 403,
    'INVALID_REQUEST': 400,
    'INVALID_JSON': 400,
    'INVALID_PRICE': 400,
    'MALFORMED_EVENT': 400,
    'INVALID_SIGNATURE': 400,
    'NOT_FOUND': 404,
    'PAYMENT_NOT_FOUND': 404,
    'COURSE_NOT_FOUND': 404,
    'ENROLLMENT_NOT_FOUND': 404,
    'RELATED_NOT_FOUND': 404,
    'ALREADY_ENROLLED': 409,
    'ALREADY_ISSUED': 409,
    'ISSUANCE_IN_PROGRESS': 409,
    'INVALID_STATUS': 409,
    'TEMPLATE_NOT_CONFIGURED': 412,
    'WEBHOOK_SECRET_MISSING': 500,
    'GATEWAY_NOT_CONFIGURED': 500,
    'PROCESSING_ERROR': 500,
    'CERTIFICATE_ID_COLLISION': 500,
    'DOCUMENT_SERVICE_ERROR': 502,
    'GATEWAY_ERROR': 502,
}


def status_for(result):
    if result.get('ok'):
        return 200
    return HTTP_STATUS_BY_CODE.get(result.get('code'), 400)


def service_response(result, body=None):
    """
    JSON response for a service result.

    `body` replaces the default payload ({ok, reason, code?, **data}) when
    an endpoint needs a specific response shape.
    """
    if body is None:
        body = {'ok': result['ok'], 'reason': result.get('reason', '')}
        if not result['ok']:
            body['code'] = result.get('code', 'ERROR')
        body.update(result.get('data') or {})
    return JsonResponse(body, status=status_for(result))
