import uuid
import random
import string

from django.contrib.auth.models import User
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone

from core.models import Course, Institution


class InvalidTransition(ValueError):
    """Raised when a payment status change is not allowed from the current status."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Payment cannot move from '{current}' to '{target}'")


# ==============================================================================
# PAYMENTS
# ==============================================================================

class Payment(models.Model):
    """
    One checkout attempt for a course, keyed by the gateway order id.

    Status only moves forward along ALLOWED_TRANSITIONS. Every gateway
    event that reaches this record is appended to webhook_events verbatim,
    including duplicates and events that were not applied.
    """
    STATUS_CREATED = 'created'
    STATUS_AUTHORIZED = 'authorized'
    STATUS_CAPTURED = 'captured'
    STATUS_FAILED = 'failed'
    STATUS_REFUNDED = 'refunded'
    STATUS_PARTIALLY_REFUNDED = 'partially_refunded'

    STATUS_CHOICES = (
        (STATUS_CREATED, 'Created'),
        (STATUS_AUTHORIZED, 'Authorized'),
        (STATUS_CAPTURED, 'Captured'),
        (STATUS_FAILED, 'Failed'),
        (STATUS_REFUNDED, 'Refunded'),
        (STATUS_PARTIALLY_REFUNDED, 'Partially Refunded'),
    )

    # A failed attempt can still be followed by a captured retry on the same
    # gateway order, so failed -> captured is allowed. Nothing leaves refunded.
    ALLOWED_TRANSITIONS = {
        STATUS_CREATED: {STATUS_AUTHORIZED, STATUS_CAPTURED, STATUS_FAILED},
        STATUS_AUTHORIZED: {STATUS_CAPTURED, STATUS_FAILED},
        STATUS_FAILED: {STATUS_CAPTURED},
        STATUS_CAPTURED: {STATUS_REFUNDED, STATUS_PARTIALLY_REFUNDED},
        STATUS_PARTIALLY_REFUNDED: {STATUS_REFUNDED, STATUS_PARTIALLY_REFUNDED},
        STATUS_REFUNDED: set(),
    }

    # Identifiers
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    receipt_number = models.CharField(max_length=64, unique=True, help_text="Receipt sent to the gateway")

    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='payments')
    course = models.ForeignKey(Course, on_delete=models.PROTECT, related_name='payments')
    institution = models.ForeignKey(Institution, on_delete=models.PROTECT, related_name='payments')

    # Set once when the payment activates an enrollment; never cleared
    enrollment = models.ForeignKey(
        'enrollments.Enrollment',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='payments'
    )

    # Amount in minor currency units (paise)
    amount = models.PositiveBigIntegerField()
    currency = models.CharField(max_length=3, default='INR')

    # Payment gateway
    gateway_order_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Order ID from payment gateway"
    )
    gateway_payment_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text="Payment ID from gateway (after capture)"
    )
    gateway_signature = models.CharField(max_length=255, blank=True)
    payment_method = models.CharField(max_length=50, blank=True)
    bank_name = models.CharField(max_length=100, blank=True)
    failure_reason = models.TextField(blank=True)

    status = models.CharField(
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_CREATED,
        db_index=True
    )

    # Refund info
    refund_id = models.CharField(max_length=255, blank=True)
    refund_amount = models.PositiveBigIntegerField(null=True, blank=True)
    refund_reason = models.TextField(blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    # Append-only log of raw gateway events
    webhook_events = models.JSONField(default=list, blank=True, encoder=DjangoJSONEncoder)

    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'status'], name='payments_pa_user_id_4c2d1e_idx'),
            models.Index(fields=['institution', 'created_at'], name='payments_pa_institu_9b8a7f_idx'),
        ]

    def __str__(self):
        return f"Payment {self.gateway_order_id} - {self.amount} {self.currency} ({self.status})"

    def can_transition(self, target):
        return target in self.ALLOWED_TRANSITIONS.get(self.status, set())

    def transition_to(self, target):
        """Move to `target` or raise InvalidTransition. Does not save."""
        if not self.can_transition(target):
            raise InvalidTransition(self.status, target)
        self.status = target

    def append_event(self, event_type, payload):
        """Record a raw gateway event. Does not save."""
        self.webhook_events = list(self.webhook_events or []) + [{
            'event': event_type,
            'received_at': timezone.now().isoformat(),
            'payload': payload,
        }]

    def mark_authorized(self, gateway_payment_id=None):
        """Mark payment as authorized (awaiting capture)"""
        self.transition_to(self.STATUS_AUTHORIZED)
        if gateway_payment_id:
            self.gateway_payment_id = gateway_payment_id
        self.save(update_fields=['status', 'gateway_payment_id', 'webhook_events', 'updated_at'])

    def mark_captured(self, gateway_payment_id=None, signature='', method='', bank=''):
        """Mark payment as captured"""
        self.transition_to(self.STATUS_CAPTURED)
        if gateway_payment_id:
            self.gateway_payment_id = gateway_payment_id
        if signature:
            self.gateway_signature = signature
        if method:
            self.payment_method = method
        if bank:
            self.bank_name = bank
        if self.paid_at is None:
            self.paid_at = timezone.now()
        self.save(update_fields=[
            'status', 'gateway_payment_id', 'gateway_signature', 'payment_method',
            'bank_name', 'paid_at', 'webhook_events', 'updated_at',
        ])

    def mark_failed(self, reason=''):
        """Mark payment as failed"""
        self.transition_to(self.STATUS_FAILED)
        self.failure_reason = reason or ''
        self.save(update_fields=['status', 'failure_reason', 'webhook_events', 'updated_at'])

    def mark_refunded(self, refund_id, amount=None, reason=''):
        """Record a refund against this payment"""
        self.transition_to(self.STATUS_REFUNDED)
        self.refund_id = refund_id
        self.refund_amount = amount
        self.refund_reason = reason or ''
        self.refunded_at = timezone.now()
        self.save(update_fields=[
            'status', 'refund_id', 'refund_amount', 'refund_reason',
            'refunded_at', 'webhook_events', 'updated_at',
        ])

    def save_events(self):
        self.save(update_fields=['webhook_events', 'updated_at'])

    @classmethod
    def generate_receipt_number(cls):
        """Generate unique receipt number"""
        timestamp = timezone.now().strftime('%Y%m%d%H%M%S')
        random_str = ''.join(random.choices(string.ascii_uppercase + string.digits, k=6))
        return f"RCPT-{timestamp}-{random_str}"
