import re
import secrets
import string

from django.contrib.auth.models import User
from django.db import models
from django.utils import timezone

from core.models import Course, Institution
from enrollments.models import Enrollment

CERTIFICATE_ID_PATTERN = re.compile(r'^[A-Z0-9-]+-\d{4}-[A-Z0-9]{5}$')
CERTIFICATE_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_certificate_id(institution_slug, year=None):
    """
    Human-readable certificate id: {SLUG}-{YEAR}-{5 random chars}, e.g. ACME-2024-7QK2M.
    """
    year = year or timezone.now().year
    prefix = re.sub(r'[^A-Z0-9-]', '', institution_slug.upper()) or 'CERT'
    suffix = ''.join(secrets.choice(CERTIFICATE_SUFFIX_ALPHABET) for _ in range(5))
    return f"{prefix}-{year}-{suffix}"


class Certificate(models.Model):
    """
    A course certificate, at most one per enrollment.

    Inserted as `generated` to reserve the enrollment before rendering, and
    switched to `issued` once the PDF has been published. Generated rows are
    not visible through the list or verification endpoints.
    """
    STATUS_GENERATED = 'generated'
    STATUS_ISSUED = 'issued'
    STATUS_REVOKED = 'revoked'

    STATUS_CHOICES = (
        (STATUS_GENERATED, 'Generated'),
        (STATUS_ISSUED, 'Issued'),
        (STATUS_REVOKED, 'Revoked'),
    )

    # Primary key is the public certificate id; a collision fails the insert
    id = models.CharField(primary_key=True, max_length=100, editable=False)

    enrollment = models.OneToOneField(
        Enrollment,
        on_delete=models.PROTECT,
        related_name='issued_certificate'
    )
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='certificates')
    course = models.ForeignKey(Course, on_delete=models.PROTECT, related_name='certificates')
    institution = models.ForeignKey(Institution, on_delete=models.PROTECT, related_name='certificates')

    # Snapshot at issue time
    recipient_name = models.CharField(max_length=255)
    course_name = models.CharField(max_length=255)
    institution_name = models.CharField(max_length=255)

    issue_date = models.DateTimeField(default=timezone.now)
    expiry_date = models.DateTimeField(null=True, blank=True)

    # External artifacts
    template_ref = models.CharField(max_length=255)
    document_id = models.CharField(max_length=255, help_text="Working copy of the template")
    file_id = models.CharField(max_length=255, help_text="Published PDF")
    document_url = models.CharField(max_length=500)
    verification_url = models.CharField(max_length=500)

    grade = models.CharField(max_length=32, blank=True)
    final_score = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_ISSUED)
    revoked_reason = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-issue_date']
        indexes = [
            models.Index(fields=['institution', 'issue_date'], name='certificate_institu_4b3e2a_idx'),
            models.Index(fields=['user', 'issue_date'], name='certificate_user_id_8f1d6c_idx'),
        ]

    def __str__(self):
        return f"{self.id} - {self.recipient_name} ({self.course_name})"

    @property
    def is_valid(self):
        if self.status != self.STATUS_ISSUED:
            return False
        return self.expiry_date is None or timezone.now() < self.expiry_date
