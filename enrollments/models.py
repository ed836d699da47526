import uuid

from django.contrib.auth.models import User
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.models import Course, Institution


def default_progress():
    return {'completed_lessons': [], 'percent': 0, 'last_accessed_at': None}


class Enrollment(models.Model):
    """
    A user's access to a course.

    At most one enrollment per payment (payment is one-to-one) and at most
    one active enrollment per (user, course).
    """
    STATUS_PENDING_PAYMENT = 'pending_payment'
    STATUS_ACTIVE = 'active'
    STATUS_COMPLETED = 'completed'
    STATUS_EXPIRED = 'expired'
    STATUS_CANCELLED = 'cancelled'
    STATUS_REFUNDED = 'refunded'

    STATUS_CHOICES = (
        (STATUS_PENDING_PAYMENT, 'Pending Payment'),
        (STATUS_ACTIVE, 'Active'),
        (STATUS_COMPLETED, 'Completed'),
        (STATUS_EXPIRED, 'Expired'),
        (STATUS_CANCELLED, 'Cancelled'),
        (STATUS_REFUNDED, 'Refunded'),
    )

    # Statuses a refund can reach from
    REFUNDABLE_STATUSES = (STATUS_PENDING_PAYMENT, STATUS_ACTIVE, STATUS_EXPIRED, STATUS_COMPLETED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='enrollments')
    course = models.ForeignKey(Course, on_delete=models.PROTECT, related_name='enrollments')
    institution = models.ForeignKey(Institution, on_delete=models.PROTECT, related_name='enrollments')

    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING_PAYMENT,
        db_index=True
    )

    # Null for free enrollments
    payment = models.OneToOneField(
        'payments.Payment',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='activated_enrollment'
    )

    # Access window; null end = no expiry
    access_start_date = models.DateTimeField(default=timezone.now)
    access_end_date = models.DateTimeField(null=True, blank=True)

    progress = models.JSONField(default=default_progress, blank=True)

    # Set exactly once by the certificate issuer
    certificate = models.OneToOneField(
        'certificates.Certificate',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='+'
    )
    certificate_eligible = models.BooleanField(default=False)

    enrolled_at = models.DateTimeField(default=timezone.now)
    completed_at = models.DateTimeField(null=True, blank=True)
    expired_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-enrolled_at']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'course'],
                condition=Q(status='active'),
                name='unique_active_enrollment_per_course',
            ),
        ]
        indexes = [
            models.Index(fields=['user', 'course', 'status'], name='enrollments_user_id_6a1f3b_idx'),
            models.Index(fields=['status', 'access_end_date'], name='enrollments_status_2e9c4d_idx'),
            models.Index(fields=['institution', 'status'], name='enrollments_institu_7d5b8e_idx'),
        ]

    def __str__(self):
        return f"{self.user.username} - {self.course.title} ({self.status})"

    def is_active(self):
        """Check if enrollment currently grants access"""
        if self.status != self.STATUS_ACTIVE:
            return False
        return self.access_end_date is None or timezone.now() < self.access_end_date

    def days_remaining(self):
        """Days until access ends; None when access never expires"""
        if self.access_end_date is None:
            return None
        delta = self.access_end_date - timezone.now()
        return max(0, delta.days)
