# enrollments/services.py
"""
Enrollment activation.

activate_for_payment() is the single entry point that turns a captured
Payment into an active Enrollment. It is safe to call any number of times,
from the webhook and from checkout verification, concurrently or not:

1. The Payment row is locked and, if it already points at an enrollment,
   that enrollment is returned.
2. Otherwise an Enrollment is inserted inside a savepoint. The one-to-one
   payment column and the partial unique constraint on active
   (user, course) turn a lost race into an IntegrityError. An enrollment
   created for this same payment by a concurrent path is adopted; an
   active enrollment paid by a different payment is a duplicate purchase
   and is never linked to this one.
3. The Payment is linked with a conditional update that only succeeds
   while its enrollment is still unset, so the link is written once.

Payment.enrollment and Enrollment.payment therefore always agree.
"""

import logging
from datetime import timedelta

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from core.models import Course
from enrollments.models import Enrollment
from payments.models import Payment

logger = logging.getLogger(__name__)


class EnrollmentActivator:
    """
    Usage:
        enrollment, created = EnrollmentActivator.activate_for_payment(payment)
        enrollment, created = EnrollmentActivator.enroll_free(user, course)
        EnrollmentActivator.mark_refunded(enrollment_id)
        expired_ids = EnrollmentActivator.expire_lapsed()
    """

    @classmethod
    def access_window(cls, course, start=None):
        start = start or timezone.now()
        if course.access_duration_days:
            return start, start + timedelta(days=course.access_duration_days)
        return start, None

    @classmethod
    def activate_for_payment(cls, payment):
        """
        Activate (or find) the enrollment for a captured payment.

        Returns:
            (enrollment, created). For a duplicate purchase the user's
            existing enrollment is returned and payment.enrollment stays
            unset; see is_duplicate_purchase().
        """
        with transaction.atomic():
            locked = Payment.objects.select_for_update().select_related('course').get(pk=payment.pk)

            if locked.enrollment_id:
                enrollment = Enrollment.objects.get(pk=locked.enrollment_id)
                payment.enrollment = enrollment
                return enrollment, False

            enrollment, created = cls._create_or_adopt(locked)

            if enrollment.payment_id != locked.pk:
                logger.warning(
                    f"[PAYMENT_AUDIT] duplicate purchase: payment {locked.gateway_order_id} captured "
                    f"for course {locked.course_id} while user {locked.user_id} holds active enrollment "
                    f"{enrollment.pk} (payment {enrollment.payment_id})"
                )
                return enrollment, False

            linked = Payment.objects.filter(pk=locked.pk, enrollment__isnull=True).update(
                enrollment=enrollment,
                updated_at=timezone.now(),
            )
            if not linked:
                # Linked by a concurrent path between our read and update
                locked.refresh_from_db(fields=['enrollment'])
                enrollment = locked.enrollment
                created = False

        payment.enrollment = enrollment
        if created:
            logger.info(f"Enrollment {enrollment.pk} activated for payment {payment.gateway_order_id}")
        else:
            logger.info(f"Payment {payment.gateway_order_id} already has enrollment {enrollment.pk}")
        return enrollment, created

    @classmethod
    def _create_or_adopt(cls, payment):
        start, end = cls.access_window(payment.course)
        try:
            with transaction.atomic():
                enrollment = Enrollment.objects.create(
                    user_id=payment.user_id,
                    course_id=payment.course_id,
                    institution_id=payment.institution_id,
                    payment=payment,
                    status=Enrollment.STATUS_ACTIVE,
                    access_start_date=start,
                    access_end_date=end,
                    enrolled_at=start,
                )
        except IntegrityError:
            existing = Enrollment.objects.filter(payment=payment).first()
            if existing is None:
                existing = Enrollment.objects.filter(
                    user_id=payment.user_id,
                    course_id=payment.course_id,
                    status=Enrollment.STATUS_ACTIVE,
                ).first()
                if existing is None:
                    raise
            return existing, False

        Course.objects.filter(pk=payment.course_id).update(enrollment_count=F('enrollment_count') + 1)
        return enrollment, True

    @classmethod
    def is_duplicate_purchase(cls, payment, enrollment):
        """True when activation returned another payment's enrollment."""
        return enrollment.payment_id != payment.pk

    @classmethod
    def enroll_free(cls, user, course):
        """Enroll in a free course without a payment. Returns (enrollment, created)."""
        start, end = cls.access_window(course)
        try:
            with transaction.atomic():
                enrollment = Enrollment.objects.create(
                    user=user,
                    course=course,
                    institution_id=course.institution_id,
                    status=Enrollment.STATUS_ACTIVE,
                    access_start_date=start,
                    access_end_date=end,
                    enrolled_at=start,
                )
                Course.objects.filter(pk=course.pk).update(enrollment_count=F('enrollment_count') + 1)
        except IntegrityError:
            existing = Enrollment.objects.filter(
                user=user, course=course, status=Enrollment.STATUS_ACTIVE
            ).first()
            if existing is None:
                raise
            return existing, False

        logger.info(f"Free enrollment {enrollment.pk} created for user {user.pk} in course {course.pk}")
        return enrollment, True

    @classmethod
    def mark_refunded(cls, enrollment_id):
        """
        Revoke access after a refund. Returns the enrollment, or None when it
        was already refunded or is in a status a refund does not apply to.
        """
        now = timezone.now()
        updated = Enrollment.objects.filter(
            pk=enrollment_id,
            status__in=Enrollment.REFUNDABLE_STATUSES,
        ).update(status=Enrollment.STATUS_REFUNDED, updated_at=now)

        enrollment = Enrollment.objects.filter(pk=enrollment_id).first()
        if updated:
            logger.info(f"Enrollment {enrollment_id} marked REFUNDED")
        elif enrollment is not None:
            logger.info(f"Enrollment {enrollment_id} left as {enrollment.status} on refund")
        return enrollment

    @classmethod
    def expire_lapsed(cls, now=None):
        """
        Expire active enrollments whose access window has ended.

        Returns:
            List of enrollment ids this call expired
        """
        now = now or timezone.now()
        lapsed = list(
            Enrollment.objects.filter(
                status=Enrollment.STATUS_ACTIVE,
                access_end_date__isnull=False,
                access_end_date__lte=now,
            ).values_list('pk', flat=True)
        )
        if not lapsed:
            return []

        with transaction.atomic():
            # Re-check status so an enrollment completed in the meantime stays completed
            updated = Enrollment.objects.filter(pk__in=lapsed, status=Enrollment.STATUS_ACTIVE).update(
                status=Enrollment.STATUS_EXPIRED,
                expired_at=now,
                updated_at=now,
            )
            expired = list(
                Enrollment.objects.filter(
                    pk__in=lapsed, status=Enrollment.STATUS_EXPIRED, expired_at=now,
                ).values_list('pk', flat=True)
            ) if updated else []

        skipped = len(lapsed) - len(expired)
        if skipped:
            logger.info(f"Expired {len(expired)} lapsed enrollment(s), {skipped} changed status first")
        else:
            logger.info(f"Expired {len(expired)} lapsed enrollment(s)")
        return expired
