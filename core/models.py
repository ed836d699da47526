import logging

from django.contrib.auth.models import User
from django.core.serializers.json import DjangoJSONEncoder
from django.db import DatabaseError, models, transaction

logger = logging.getLogger(__name__)


# ==============================================================================
# MULTI-TENANCY & INSTITUTION MODELS
# ==============================================================================

class Institution(models.Model):
    """Tenant institution - courses, enrollments and payments all belong to one"""

    name = models.CharField(max_length=255, unique=True)
    slug = models.SlugField(max_length=64, unique=True)  # Also prefixes certificate ids

    # Certificate configuration. For the Google backend these are a Docs
    # document id and a Drive folder id; for the DOCX backend a storage path
    # to the .docx template and a storage folder name.
    certificate_template = models.CharField(max_length=255, blank=True)
    certificate_folder = models.CharField(max_length=255, blank=True)

    is_active = models.BooleanField(default=True)
    metadata = models.JSONField(default=dict, blank=True)  # Custom institution settings

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name

    @property
    def has_certificate_template(self):
        return bool(self.certificate_template.strip())


class Membership(models.Model):
    """User's membership and role in an institution"""
    ROLE_SUPER_ADMIN = 'super_admin'
    ROLE_INSTITUTION_ADMIN = 'institution_admin'
    ROLE_INSTRUCTOR = 'instructor'
    ROLE_STUDENT = 'student'

    ROLE_CHOICES = (
        (ROLE_SUPER_ADMIN, 'Super Admin'),
        (ROLE_INSTITUTION_ADMIN, 'Institution Admin'),
        (ROLE_INSTRUCTOR, 'Instructor'),
        (ROLE_STUDENT, 'Student'),
    )

    # Ordered from highest to lowest privilege
    ROLE_HIERARCHY = (ROLE_SUPER_ADMIN, ROLE_INSTITUTION_ADMIN, ROLE_INSTRUCTOR, ROLE_STUDENT)

    institution = models.ForeignKey(Institution, on_delete=models.CASCADE, related_name='memberships')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='memberships')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_STUDENT)
    is_active = models.BooleanField(default=True)

    joined_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['institution', 'user']
        ordering = ['-joined_at']
        indexes = [
            models.Index(fields=['institution', 'user'], name='core_member_institu_8d2e4b_idx'),
        ]

    def __str__(self):
        return f"{self.user.username} - {self.institution.name} ({self.role})"

    @classmethod
    def has_minimum_role(cls, role, required_role):
        """Check if `role` has at least the privilege level of `required_role`"""
        if role not in cls.ROLE_HIERARCHY or required_role not in cls.ROLE_HIERARCHY:
            return False
        return cls.ROLE_HIERARCHY.index(role) <= cls.ROLE_HIERARCHY.index(required_role)


# ==============================================================================
# COURSE CATALOG (reference data for payments and enrollments)
# ==============================================================================

class Course(models.Model):
    """A course offered by an institution. Prices are in minor currency units."""
    TYPE_CHOICES = (
        ('self_paced', 'Self Paced'),
        ('instructor_led', 'Instructor Led'),
        ('bootcamp', 'Bootcamp'),
    )

    institution = models.ForeignKey(Institution, on_delete=models.CASCADE, related_name='courses')
    title = models.CharField(max_length=255)
    course_type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='self_paced')
    instructor = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='taught_courses'
    )

    # Pricing
    is_free = models.BooleanField(default=False)
    price_amount = models.PositiveBigIntegerField(default=0, help_text="In paise (minor units)")
    currency = models.CharField(max_length=3, default='INR')

    # Access window for self-paced courses; null = no expiry
    access_duration_days = models.PositiveIntegerField(null=True, blank=True)

    is_published = models.BooleanField(default=True)
    enrollment_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['institution', 'is_published'], name='core_course_institu_3f1c2a_idx'),
        ]

    def __str__(self):
        return f"{self.title} ({self.institution.slug})"


# ==============================================================================
# AUDIT LOG
# ==============================================================================

class AuditLog(models.Model):
    """
    Append-only record of state-changing actions.
    Written fire-and-forget: a failed audit write never fails the caller.
    """
    SEVERITY_CHOICES = (
        ('info', 'Info'),
        ('warning', 'Warning'),
        ('critical', 'Critical'),
    )

    institution = models.ForeignKey(
        Institution,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )

    # Who
    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    user_email = models.EmailField(blank=True, help_text="Snapshot of user email")
    user_role = models.CharField(max_length=20, blank=True)

    # What
    action = models.CharField(max_length=64, db_index=True, help_text="e.g. certificate.issue")
    resource = models.CharField(max_length=64, help_text="e.g. certificate, payment")
    resource_id = models.CharField(max_length=100, db_index=True)
    details = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES, default='info')

    # Request info
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ['-created_at']
        verbose_name = 'Audit Log'
        verbose_name_plural = 'Audit Logs'
        indexes = [
            models.Index(fields=['institution', 'action', 'created_at'], name='core_auditl_institu_5a7b9c_idx'),
            models.Index(fields=['resource', 'resource_id'], name='core_auditl_resourc_1e6f0d_idx'),
        ]

    def __str__(self):
        return f"{self.user_email or 'System'} {self.action} {self.resource}:{self.resource_id}"

    @classmethod
    def log(cls, action, resource, resource_id, *, user=None, role='', institution=None,
            details=None, severity='info', request=None):
        """
        Convenience method to create an audit log entry.

        Never raises: the entry is written in its own savepoint and a
        database failure is logged and dropped, so an enclosing transaction
        and the caller's outcome are unaffected.

        Usage:
            AuditLog.log('certificate.issue', 'certificate', cert.pk,
                         user=request.user, institution=cert.institution,
                         details={'enrollment_id': str(enrollment.pk)})
        """
        ip_address = None
        user_agent = ''

        if request is not None:
            ip_address = request.META.get('HTTP_X_FORWARDED_FOR',
                                          request.META.get('REMOTE_ADDR'))
            if ip_address:
                ip_address = ip_address.split(',')[0].strip()
            user_agent = request.META.get('HTTP_USER_AGENT', '')

        logger.info(f"[AUDIT] {action} | {resource}={resource_id} | user={getattr(user, 'pk', None)}")

        try:
            with transaction.atomic():
                return cls.objects.create(
                    institution=institution,
                    user=user,
                    user_email=getattr(user, 'email', '') or '',
                    user_role=role or '',
                    action=action,
                    resource=resource,
                    resource_id=str(resource_id),
                    details=details or {},
                    severity=severity,
                    ip_address=ip_address,
                    user_agent=user_agent,
                )
        except DatabaseError:
            logger.exception(f"Audit log write failed for {action} {resource}={resource_id}")
            return None
