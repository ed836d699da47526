# certificates/views.py
"""
Certificate endpoints: issuance, listing, and public verification.
"""

import json
import logging
from decimal import Decimal, InvalidOperation

from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from certificates.models import Certificate
from certificates.services import ISSUER_ROLES, CertificateIssuer
from core.decorators import caller_required, role_required
from core.responses import service_response

logger = logging.getLogger(__name__)


def _bad_request(reason, code='INVALID_REQUEST'):
    return JsonResponse({'ok': False, 'code': code, 'reason': reason}, status=400)


@require_POST
@role_required(*ISSUER_ROLES)
def issue_certificate_view(request):
    """
    Issue a certificate.

    Body: {"enrollmentId": str, "grade"?: str, "finalScore"?: number}
    Success: {"certificateId", "documentUrl", "verificationUrl"}
    Conflict (409): {"code": "ALREADY_ISSUED", "certificateId": <existing>}
    """
    try:
        data = json.loads(request.body, parse_float=Decimal)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _bad_request('Invalid JSON.', code='INVALID_JSON')

    if not isinstance(data, dict):
        return _bad_request('Expected a JSON object.')

    enrollment_id = data.get('enrollmentId')
    if not isinstance(enrollment_id, str) or not enrollment_id.strip():
        return _bad_request('enrollmentId is required.')

    grade = data.get('grade')
    if grade is not None and not isinstance(grade, str):
        return _bad_request('grade must be a string.')

    final_score = data.get('finalScore')
    if final_score is not None:
        if isinstance(final_score, bool) or not isinstance(final_score, (int, Decimal)):
            return _bad_request('finalScore must be a number.')
        try:
            final_score = Decimal(final_score).quantize(Decimal('0.01'))
        except InvalidOperation:
            return _bad_request('finalScore is out of range.')
        if not final_score.is_finite() or abs(final_score) >= Decimal('10000'):
            return _bad_request('finalScore is out of range.')

    result = CertificateIssuer.issue(
        request.caller,
        enrollment_id.strip(),
        grade=grade,
        final_score=final_score,
        request=request,
    )

    if result['ok']:
        return service_response(result, body={
            'certificateId': result['data']['certificate_id'],
            'documentUrl': result['data']['document_url'],
            'verificationUrl': result['data']['verification_url'],
        })

    body = {'ok': False, 'code': result['code'], 'reason': result['reason']}
    if result['code'] == 'ALREADY_ISSUED':
        body['certificateId'] = result['data']['certificate_id']
    return service_response(result, body=body)


@require_GET
@caller_required
def certificate_list_view(request):
    """
    Students see their own certificates; instructors and admins see their
    institution's. Super admins may pass ?institution=<id>.
    """
    caller = request.caller
    certificates = Certificate.objects.exclude(status=Certificate.STATUS_GENERATED)

    if caller.is_super_admin:
        institution_id = request.GET.get('institution')
        if institution_id:
            if not institution_id.isdigit():
                return _bad_request('Invalid institution.')
            certificates = certificates.filter(institution_id=int(institution_id))
    elif caller.has_role(*ISSUER_ROLES):
        certificates = certificates.filter(institution=caller.institution)
    else:
        certificates = certificates.filter(user=caller.user)

    results = [CertificateIssuer.serialize_certificate(c) for c in certificates[:200]]
    return JsonResponse({'ok': True, 'count': len(results), 'certificates': results})


@require_GET
def verify_certificate_view(request, certificate_id):
    """Public, unauthenticated certificate lookup."""
    certificate = Certificate.objects.filter(pk=certificate_id.upper()).exclude(
        status=Certificate.STATUS_GENERATED
    ).first()
    if certificate is None:
        return JsonResponse({'ok': False, 'valid': False, 'code': 'NOT_FOUND',
                             'reason': 'Certificate not found.'}, status=404)

    body = {'ok': True, 'valid': certificate.is_valid}
    body.update(CertificateIssuer.serialize_certificate(certificate))
    body.pop('enrollmentId')
    if certificate.status == Certificate.STATUS_REVOKED:
        body['revokedReason'] = certificate.revoked_reason or None
    return JsonResponse(body)
