# certificates/services.py
"""
Certificate issuance.

CertificateIssuer.issue() checks its preconditions in order (each a
distinct failure code), then runs in three phases:

1. Reserve: with the Enrollment row locked, insert the Certificate with
   status `generated` (primary key = certificate id, so a collision fails
   the insert) and point Enrollment.certificate at it. From here on no
   other issuance for the enrollment can reach the document backend.
2. Render and publish through the configured document backend. Artifacts
   are named after the enrollment, so a retry overwrites rather than
   duplicates them.
3. Finalize: flip the reservation to `issued` and complete the enrollment
   in one transaction. A failure in phase 2 releases the reservation.

A reservation is a lease keyed on Certificate.updated_at. One older than
CERTIFICATE_RESERVATION_TIMEOUT belongs to an interrupted issuance and is
taken over with the same certificate id; a fresh one is reported as
ISSUANCE_IN_PROGRESS.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from certificates.backends import get_document_backend
from certificates.models import Certificate, generate_certificate_id
from core.models import AuditLog, Course, Institution, Membership
from enrollments.models import Enrollment

logger = logging.getLogger(__name__)

ISSUER_ROLES = (
    Membership.ROLE_SUPER_ADMIN,
    Membership.ROLE_INSTITUTION_ADMIN,
    Membership.ROLE_INSTRUCTOR,
)

# Fields refreshed when an interrupted reservation is taken over
SNAPSHOT_FIELDS = (
    'recipient_name', 'course_name', 'institution_name', 'issue_date',
    'template_ref', 'grade', 'final_score',
)


class CertificateIssuer:
    """
    Usage:
        result = CertificateIssuer.issue(caller, enrollment_id, grade='A', final_score=Decimal('92.5'))
        if result['ok']:
            result['data']['certificate_id']
    """

    @classmethod
    def issue(cls, caller, enrollment_id, grade: Optional[str] = None,
              final_score: Optional[Decimal] = None, request=None, backend=None) -> dict:
        """
        Issue a certificate for an enrollment.

        Args:
            caller: CallerContext of the acting user
            enrollment_id: Enrollment primary key
            grade: Optional grade printed on the certificate
            final_score: Optional Decimal score
            request: Optional HttpRequest, for the audit trail
            backend: Document backend; defaults to CERTIFICATE_DOCUMENT_BACKEND

        Returns:
            {ok, reason, data: {certificate_id, document_url, verification_url}}
            or {ok: False, code, reason, data} with code one of
            FORBIDDEN, ENROLLMENT_NOT_FOUND, ALREADY_ISSUED, RELATED_NOT_FOUND,
            TEMPLATE_NOT_CONFIGURED, ISSUANCE_IN_PROGRESS, DOCUMENT_SERVICE_ERROR,
            CERTIFICATE_ID_COLLISION
        """
        if not caller.has_role(*ISSUER_ROLES):
            return cls._fail("Only instructors and admins can issue certificates.", code="FORBIDDEN")

        # 1. Enrollment exists
        try:
            enrollment = Enrollment.objects.filter(pk=enrollment_id).first()
        except (ValueError, ValidationError):
            enrollment = None
        if enrollment is None:
            return cls._fail("Enrollment not found.", code="ENROLLMENT_NOT_FOUND")

        # 2. Caller may act for the enrollment's institution
        if not caller.can_act_for(enrollment.institution_id):
            logger.warning(
                f"User {caller.user.pk} ({caller.role}) denied certificate for enrollment "
                f"{enrollment.pk} in institution {enrollment.institution_id}"
            )
            return cls._fail("You cannot issue certificates for this institution.", code="FORBIDDEN")

        # 3. Not issued yet; a pending reservation is settled in _reserve
        if enrollment.certificate_id and not Certificate.objects.filter(
            pk=enrollment.certificate_id, status=Certificate.STATUS_GENERATED
        ).exists():
            return cls._already_issued(enrollment.certificate_id)

        # 4. Related records resolve
        user = User.objects.filter(pk=enrollment.user_id).first()
        course = Course.objects.filter(pk=enrollment.course_id).first()
        institution = Institution.objects.filter(pk=enrollment.institution_id).first()
        if user is None or course is None or institution is None:
            return cls._fail("Related user, course or institution not found.", code="RELATED_NOT_FOUND")

        # 5. Template configured
        if not institution.has_certificate_template:
            return cls._fail(
                "Certificate template not configured for this institution.",
                code="TEMPLATE_NOT_CONFIGURED",
            )

        folder = institution.certificate_folder.strip()
        certificate, failure = cls._reserve(enrollment, user, course, institution, {
            'recipient_name': user.get_full_name() or user.email or user.username,
            'course_name': course.title,
            'institution_name': institution.name,
            'issue_date': timezone.now(),
            'template_ref': institution.certificate_template.strip(),
            'grade': grade or '',
            'final_score': final_score,
        })
        if failure:
            return failure

        certificate_id = certificate.pk
        lease = certificate.updated_at
        issue_date = certificate.issue_date

        # Pipeline
        try:
            backend = backend or get_document_backend()
            document_id = backend.copy_template(certificate.template_ref, f"certificate-{enrollment.pk}", folder)
            backend.merge_fields(document_id, {
                'STUDENT_NAME': certificate.recipient_name,
                'COURSE_NAME': certificate.course_name,
                'INSTITUTION_NAME': certificate.institution_name,
                'ISSUE_DATE': f"{issue_date.day} {issue_date:%B %Y}",
                'CERTIFICATE_ID': certificate_id,
                'SCORE': str(final_score) if final_score is not None else '',
                'GRADE': grade or '',
            })
            pdf = backend.export_pdf(document_id)
            file_id = backend.upload_pdf(f"certificate-{enrollment.pk}.pdf", pdf, folder)
            backend.grant_public_read(file_id)
            document_url = backend.file_url(file_id)
        except Exception as e:
            logger.exception(f"Certificate rendering failed for enrollment {enrollment.pk} ({certificate_id}): {e}")
            cls._release(certificate_id, lease)
            return cls._fail("Document service error. Please retry later.", code="DOCUMENT_SERVICE_ERROR")

        # Record
        if not cls._finalize(certificate_id, lease, enrollment.pk, document_id, file_id, document_url):
            logger.warning(
                f"Reservation {certificate_id} for enrollment {enrollment.pk} was taken over before it was recorded"
            )
            return cls._in_progress()

        logger.info(f"[CERT_AUDIT] {certificate_id} issued for enrollment {enrollment.pk} by user {caller.user.pk}")
        AuditLog.log(
            'certificate.issue', 'certificate', certificate_id,
            user=caller.user, role=caller.role, institution=institution,
            details={
                'enrollment_id': str(enrollment.pk),
                'certificate_id': certificate_id,
                'grade': grade or None,
                'final_score': final_score,
            },
            request=request,
        )

        return cls._success("Certificate issued.", data={
            "certificate_id": certificate_id,
            "document_url": document_url,
            "verification_url": certificate.verification_url,
        })

    # =========================================================================
    # RESERVATION
    # =========================================================================

    @classmethod
    def _reserve(cls, enrollment, user, course, institution, snapshot):
        """
        Claim the enrollment before any external call.

        Returns:
            (certificate, None) or (None, failure result)
        """
        try:
            with transaction.atomic():
                locked = Enrollment.objects.select_for_update().get(pk=enrollment.pk)
                if locked.certificate_id:
                    return cls._take_over(locked.certificate_id, snapshot)

                certificate_id = generate_certificate_id(institution.slug)
                certificate = Certificate.objects.create(
                    id=certificate_id,
                    enrollment=locked,
                    user=user,
                    course=course,
                    institution=institution,
                    verification_url=f"{settings.APP_BASE_URL}/certificates/verify/{certificate_id}/",
                    status=Certificate.STATUS_GENERATED,
                    **snapshot,
                )
                Enrollment.objects.filter(pk=locked.pk, certificate__isnull=True).update(
                    certificate=certificate,
                    updated_at=certificate.updated_at,
                )
        except IntegrityError as e:
            claimed = Enrollment.objects.filter(pk=enrollment.pk).values_list('certificate_id', flat=True).first()
            if claimed:
                logger.info(f"Enrollment {enrollment.pk} was claimed by {claimed} concurrently")
                return None, cls._claimed_by(claimed)
            logger.error(f"Certificate reservation failed for enrollment {enrollment.pk}: {e!r}")
            return None, cls._fail("Certificate id collision, retry the request.", code="CERTIFICATE_ID_COLLISION")

        return certificate, None

    @classmethod
    def _take_over(cls, certificate_id, snapshot):
        """Resume an interrupted reservation, keeping its certificate id. Caller holds the enrollment lock."""
        reservation = Certificate.objects.select_for_update().get(pk=certificate_id)
        if reservation.status != Certificate.STATUS_GENERATED:
            return None, cls._already_issued(certificate_id)

        timeout = timedelta(seconds=settings.CERTIFICATE_RESERVATION_TIMEOUT)
        if reservation.updated_at > timezone.now() - timeout:
            return None, cls._in_progress()

        logger.warning(
            f"Resuming certificate {certificate_id} for enrollment {reservation.enrollment_id}; "
            f"reserved at {reservation.updated_at:%Y-%m-%d %H:%M:%S} and never recorded"
        )
        for field, value in snapshot.items():
            setattr(reservation, field, value)
        reservation.save(update_fields=[*SNAPSHOT_FIELDS, 'updated_at'])
        return reservation, None

    @classmethod
    def _finalize(cls, certificate_id, lease, enrollment_pk, document_id, file_id, document_url):
        """Mark the reservation issued and complete the enrollment. False if the lease was lost."""
        now = timezone.now()
        with transaction.atomic():
            issued = Certificate.objects.filter(
                pk=certificate_id, status=Certificate.STATUS_GENERATED, updated_at=lease,
            ).update(
                status=Certificate.STATUS_ISSUED,
                document_id=document_id,
                file_id=file_id,
                document_url=document_url,
                updated_at=now,
            )
            if not issued:
                return False

            claimed = Enrollment.objects.filter(pk=enrollment_pk, certificate_id=certificate_id)
            claimed.update(certificate_eligible=True, updated_at=now)
            # Only active enrollments complete; refunded, cancelled or expired keep their status
            claimed.filter(status=Enrollment.STATUS_ACTIVE).update(
                status=Enrollment.STATUS_COMPLETED,
                completed_at=now,
            )
        return True

    @classmethod
    def _release(cls, certificate_id, lease):
        """Drop a reservation whose rendering failed, unless another issuance took it over."""
        with transaction.atomic():
            reservation = Certificate.objects.select_for_update().filter(
                pk=certificate_id, status=Certificate.STATUS_GENERATED, updated_at=lease,
            ).first()
            if reservation is None:
                return
            Enrollment.objects.filter(pk=reservation.enrollment_id, certificate_id=certificate_id).update(
                certificate=None,
                updated_at=timezone.now(),
            )
            reservation.delete()
        logger.info(f"Released certificate reservation {certificate_id}")

    @classmethod
    def serialize_certificate(cls, certificate) -> dict:
        return {
            "certificateId": certificate.id,
            "enrollmentId": str(certificate.enrollment_id),
            "recipientName": certificate.recipient_name,
            "courseName": certificate.course_name,
            "institutionName": certificate.institution_name,
            "issueDate": certificate.issue_date.isoformat(),
            "expiryDate": certificate.expiry_date.isoformat() if certificate.expiry_date else None,
            "grade": certificate.grade or None,
            "finalScore": str(certificate.final_score) if certificate.final_score is not None else None,
            "status": certificate.status,
            "documentUrl": certificate.document_url,
            "verificationUrl": certificate.verification_url,
        }

    # =========================================================================
    # RESPONSE BUILDERS
    # =========================================================================

    @classmethod
    def _claimed_by(cls, certificate_id):
        if Certificate.objects.filter(pk=certificate_id, status=Certificate.STATUS_GENERATED).exists():
            return cls._in_progress()
        return cls._already_issued(certificate_id)

    @classmethod
    def _already_issued(cls, certificate_id):
        return cls._fail(
            "Certificate already issued for this enrollment.",
            code="ALREADY_ISSUED",
            data={"certificate_id": certificate_id},
        )

    @classmethod
    def _in_progress(cls):
        return cls._fail(
            "A certificate is already being issued for this enrollment.",
            code="ISSUANCE_IN_PROGRESS",
        )

    @classmethod
    def _success(cls, reason: str, data: Optional[dict] = None) -> dict:
        return {"ok": True, "reason": reason, "data": data or {}}

    @classmethod
    def _fail(cls, reason: str, code: str = "ERROR", data: Optional[dict] = None) -> dict:
        return {"ok": False, "reason": reason, "code": code, "data": data or {}}
