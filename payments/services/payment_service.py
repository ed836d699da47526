# payments/services/payment_service.py
"""
Payment service with Razorpay integration.

Features:
- Checkout order creation (free courses enroll immediately)
- Checkout signature verification
- Idempotent webhook handling (replay-safe, order-tolerant)
- Refund bookkeeping and enrollment revocation

Both the checkout verification path and the payment.captured webhook end
in EnrollmentActivator.activate_for_payment(), which guarantees a single
Enrollment per Payment however many times and in whatever order they run.
"""

import json
import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import transaction

from core.models import AuditLog, Membership
from enrollments.models import Enrollment
from enrollments.services import EnrollmentActivator
from payments.models import Payment
from payments.services.webhook_events import (
    MalformedEvent,
    PaymentAuthorized,
    PaymentCaptured,
    PaymentFailed,
    RefundCreated,
    UnrecognizedEvent,
    parse_event,
)
from payments.signatures import verify_checkout_signature, verify_webhook_signature

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Payment processing with Razorpay.

    Usage:
        result = PaymentService.create_order(user, course)
        result = PaymentService.verify_payment(user, order_id, payment_id, signature)
        result = PaymentService.handle_webhook(request.body, signature_header)
    """

    # =========================================================================
    # CHECKOUT
    # =========================================================================

    @classmethod
    def create_order(cls, user, course) -> dict:
        """
        Create a gateway order for a course purchase.

        Free courses skip the gateway and enroll directly.

        Returns:
            {ok: bool, reason: str, data: {order_id, amount, currency, key_id, ...}}
        """
        existing = Enrollment.objects.filter(
            user=user,
            course=course,
            status__in=(Enrollment.STATUS_ACTIVE, Enrollment.STATUS_PENDING_PAYMENT),
        ).first()
        if existing:
            return cls._fail(
                "You are already enrolled in this course.",
                code="ALREADY_ENROLLED",
                data={"enrollment_id": str(existing.pk)},
            )

        if course.course_type == 'instructor_led' and not Membership.objects.filter(
            user=user, institution=course.institution, is_active=True
        ).exists():
            return cls._fail(
                "Instructor-led courses require membership in the institution.",
                code="FORBIDDEN",
            )

        if course.is_free:
            enrollment, created = EnrollmentActivator.enroll_free(user, course)
            return cls._success(
                "Enrolled in free course.",
                data={"free": True, "enrollment_id": str(enrollment.pk), "created": created},
            )

        if course.price_amount <= 0:
            return cls._fail("Course has no valid price.", code="INVALID_PRICE")

        receipt = Payment.generate_receipt_number()
        razorpay_result = cls._create_razorpay_order(
            amount=course.price_amount,
            currency=course.currency,
            receipt=receipt,
            notes={
                'user_id': str(user.pk),
                'course_id': str(course.pk),
                'institution_id': str(course.institution_id),
            },
        )
        if not razorpay_result['ok']:
            return razorpay_result

        order = razorpay_result['data']
        payment = Payment.objects.create(
            receipt_number=receipt,
            user=user,
            course=course,
            institution=course.institution,
            amount=course.price_amount,
            currency=course.currency,
            gateway_order_id=order['id'],
        )

        cls._audit_log(user, "order_created", {
            "order_id": payment.gateway_order_id,
            "amount": payment.amount,
            "course_id": course.pk,
        })

        return cls._success(
            "Order created successfully.",
            data={
                "free": False,
                "payment_id": str(payment.pk),
                "order_id": payment.gateway_order_id,
                "amount": payment.amount,
                "currency": payment.currency,
                "key_id": settings.RAZORPAY_KEY_ID,
                "course_title": course.title,
                "user_email": user.email,
            }
        )

    @classmethod
    def verify_payment(cls, user, gateway_order_id: str, gateway_payment_id: str,
                       signature: str, request=None) -> dict:
        """
        Verify the signature returned by the checkout widget and activate
        the enrollment. Converges with the payment.captured webhook.
        """
        if not gateway_order_id or not gateway_payment_id or not signature:
            return cls._fail("Order id, payment id and signature are required.", code="INVALID_REQUEST")

        if not settings.RAZORPAY_KEY_SECRET:
            logger.error("Checkout verification attempted without RAZORPAY_KEY_SECRET")
            return cls._fail("Payment gateway not configured.", code="GATEWAY_NOT_CONFIGURED")

        if not verify_checkout_signature(gateway_order_id, gateway_payment_id, signature,
                                         settings.RAZORPAY_KEY_SECRET):
            logger.warning(f"Checkout signature mismatch for order {gateway_order_id}")
            return cls._fail("Payment verification failed.", code="INVALID_SIGNATURE")

        with transaction.atomic():
            payment = Payment.objects.select_for_update().filter(gateway_order_id=gateway_order_id).first()
            if payment is None:
                return cls._fail("Order not found.", code="PAYMENT_NOT_FOUND")

            if payment.user_id != user.pk:
                logger.warning(f"User {user.pk} tried to verify order {gateway_order_id} owned by {payment.user_id}")
                return cls._fail("This order belongs to another user.", code="FORBIDDEN")

            if payment.status == Payment.STATUS_CAPTURED and payment.enrollment_id:
                return cls._success("Payment already processed.", data={
                    "action": "ALREADY_PROCESSED",
                    "payment_id": str(payment.pk),
                    "enrollment_id": str(payment.enrollment_id),
                })

            if payment.status != Payment.STATUS_CAPTURED:
                if not payment.can_transition(Payment.STATUS_CAPTURED):
                    return cls._fail(
                        f"Payment is {payment.status} and cannot be captured.",
                        code="INVALID_STATUS",
                    )
                payment.mark_captured(gateway_payment_id=gateway_payment_id, signature=signature)

            enrollment, created = EnrollmentActivator.activate_for_payment(payment)
            duplicate = EnrollmentActivator.is_duplicate_purchase(payment, enrollment)

        cls._audit_log(user, "payment_verified", {
            "order_id": gateway_order_id,
            "payment_id": gateway_payment_id,
            "enrollment_id": str(enrollment.pk),
            "duplicate": duplicate,
        })
        AuditLog.log(
            'payment.verify', 'payment', payment.pk,
            user=user, institution=payment.institution,
            details={'order_id': gateway_order_id, 'enrollment_id': str(enrollment.pk), 'created': created,
                     'duplicate_purchase': duplicate},
            request=request,
            severity='warning' if duplicate else 'info',
        )

        if duplicate:
            return cls._success(
                "Payment received. You are already enrolled in this course.",
                data={
                    "action": "DUPLICATE_PURCHASE",
                    "payment_id": str(payment.pk),
                    "enrollment_id": str(enrollment.pk),
                }
            )

        return cls._success(
            "Payment successful! Enrollment activated.",
            data={
                "action": "PAYMENT_CAPTURED",
                "payment_id": str(payment.pk),
                "enrollment_id": str(enrollment.pk),
            }
        )

    @classmethod
    def get_payment_status(cls, payment) -> dict:
        return cls._success(
            "Payment status retrieved.",
            data=cls.serialize_payment(payment),
        )

    @classmethod
    def serialize_payment(cls, payment) -> dict:
        return {
            "payment_id": str(payment.pk),
            "order_id": payment.gateway_order_id,
            "status": payment.status,
            "amount": payment.amount,
            "currency": payment.currency,
            "course_id": payment.course_id,
            "enrollment_id": str(payment.enrollment_id) if payment.enrollment_id else None,
            "created_at": payment.created_at.isoformat(),
            "paid_at": payment.paid_at.isoformat() if payment.paid_at else None,
        }

    # =========================================================================
    # WEBHOOK HANDLING (IDEMPOTENT)
    # =========================================================================

    @classmethod
    def handle_webhook(cls, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Handle incoming webhook from Razorpay.

        Idempotent: every handler re-reads the Payment under a row lock and
        checks its stored state before applying anything, so redelivered or
        out-of-order events are recorded but never double-applied.

        Args:
            payload: Raw request body (bytes), exactly as received
            signature: Value of the signature header, or None

        Returns:
            {'ok': bool, 'reason': str, 'code': str, 'data': {'action': str, ...}}
        """
        # Step 1: Verify webhook signature over the raw bytes
        webhook_secret = settings.RAZORPAY_WEBHOOK_SECRET
        if not webhook_secret:
            logger.error("Webhook rejected: RAZORPAY_WEBHOOK_SECRET is not configured")
            return cls._fail("Webhook secret not configured", code="WEBHOOK_SECRET_MISSING")

        if not verify_webhook_signature(payload, signature, webhook_secret):
            logger.warning(f"Webhook signature verification failed (header present: {bool(signature)})")
            return cls._fail("Signature verification failed", code="INVALID_SIGNATURE")

        # Step 2: Parse payload
        try:
            data = json.loads(payload.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.error(f"Webhook JSON parse error: {e}")
            return cls._fail("Invalid JSON payload", code="INVALID_JSON")

        # Step 3: Classify the event
        try:
            event = parse_event(data)
        except MalformedEvent as e:
            logger.warning(f"Malformed webhook event: {e}")
            return cls._fail("Malformed event", code="MALFORMED_EVENT")

        logger.info(f"Webhook received: {event.event_type}")

        # Step 4: Dispatch
        try:
            return cls._process_webhook_event(event)
        except Exception as e:
            logger.exception(f"Webhook processing error for {event.event_type}: {e}")
            return cls._fail("Processing error", code="PROCESSING_ERROR")

    @classmethod
    def _process_webhook_event(cls, event) -> Dict[str, Any]:
        """Process specific webhook event types."""
        if isinstance(event, PaymentCaptured):
            return cls._handle_payment_captured(event)

        elif isinstance(event, PaymentAuthorized):
            return cls._handle_payment_authorized(event)

        elif isinstance(event, PaymentFailed):
            return cls._handle_payment_failed(event)

        elif isinstance(event, RefundCreated):
            return cls._handle_refund_created(event)

        elif isinstance(event, UnrecognizedEvent):
            logger.info(f"Unhandled webhook event type: {event.event_type}")
            return cls._success(f"Event type {event.event_type} ignored", data={"action": "IGNORED"})

        raise TypeError(f"Unexpected webhook event {event!r}")

    @classmethod
    def _handle_payment_captured(cls, event: PaymentCaptured) -> Dict[str, Any]:
        """Handle payment.captured webhook."""
        with transaction.atomic():
            payment = Payment.objects.select_for_update().filter(gateway_order_id=event.order_id).first()
            if payment is None:
                logger.warning(f"payment.captured for unknown gateway order {event.order_id}")
                return cls._success(
                    f"Order {event.order_id} not found",
                    data={"action": "PAYMENT_NOT_FOUND"},
                )

            payment.append_event(event.event_type, event.raw)

            # Idempotency: already captured and enrolled
            if payment.status == Payment.STATUS_CAPTURED and payment.enrollment_id:
                payment.save_events()
                logger.info(f"Payment {payment.gateway_order_id} already captured")
                return cls._success("Payment already processed", data={
                    "action": "ALREADY_PROCESSED",
                    "enrollment_id": str(payment.enrollment_id),
                })

            if payment.status != Payment.STATUS_CAPTURED:
                if not payment.can_transition(Payment.STATUS_CAPTURED):
                    payment.save_events()
                    logger.warning(
                        f"Ignoring payment.captured for {payment.gateway_order_id}: "
                        f"status is {payment.status}"
                    )
                    return cls._success("Event does not apply to current status", data={
                        "action": "IGNORED_STALE",
                        "status": payment.status,
                    })
                payment.mark_captured(
                    gateway_payment_id=event.payment_id,
                    method=event.method,
                    bank=event.bank,
                )
            else:
                payment.save_events()

            if event.amount is not None and event.amount != payment.amount:
                logger.warning(
                    f"[PAYMENT_AUDIT] amount mismatch on {payment.gateway_order_id}: "
                    f"captured={event.amount} expected={payment.amount}"
                )

            enrollment, created = EnrollmentActivator.activate_for_payment(payment)
            duplicate = EnrollmentActivator.is_duplicate_purchase(payment, enrollment)

        logger.info(f"Payment {payment.gateway_order_id} marked CAPTURED (ref: {event.payment_id})")
        cls._audit_log(payment.user, "payment_captured_webhook", {
            "order_id": payment.gateway_order_id,
            "payment_id": event.payment_id,
            "enrollment_id": str(enrollment.pk),
            "created": created,
            "duplicate": duplicate,
        })
        AuditLog.log(
            'payment.captured', 'payment', payment.pk,
            user=payment.user, institution=payment.institution,
            details={'order_id': payment.gateway_order_id, 'enrollment_id': str(enrollment.pk),
                     'duplicate_purchase': duplicate},
            severity='warning' if duplicate else 'info',
        )

        if duplicate:
            return cls._success(
                "Payment captured for a course the user is already enrolled in",
                data={
                    "action": "DUPLICATE_PURCHASE",
                    "payment_id": str(payment.pk),
                    "enrollment_id": str(enrollment.pk),
                }
            )

        return cls._success(
            "Payment captured",
            data={
                "action": "PAYMENT_CAPTURED",
                "payment_id": str(payment.pk),
                "enrollment_id": str(enrollment.pk),
            }
        )

    @classmethod
    def _handle_payment_authorized(cls, event: PaymentAuthorized) -> Dict[str, Any]:
        """Handle payment.authorized webhook (awaiting capture)."""
        with transaction.atomic():
            payment = Payment.objects.select_for_update().filter(gateway_order_id=event.order_id).first()
            if payment is None:
                logger.warning(f"payment.authorized for unknown gateway order {event.order_id}")
                return cls._success(f"Order {event.order_id} not found", data={"action": "PAYMENT_NOT_FOUND"})

            payment.append_event(event.event_type, event.raw)
            if not payment.can_transition(Payment.STATUS_AUTHORIZED):
                payment.save_events()
                return cls._success("Event does not apply to current status", data={
                    "action": "IGNORED_STALE",
                    "status": payment.status,
                })

            payment.mark_authorized(gateway_payment_id=event.payment_id)

        logger.info(f"Payment {payment.gateway_order_id} authorized, awaiting capture")
        return cls._success("Payment authorized", data={"action": "AUTHORIZED"})

    @classmethod
    def _handle_payment_failed(cls, event: PaymentFailed) -> Dict[str, Any]:
        """Handle payment.failed webhook."""
        reason = event.error_description or event.error_code or 'Payment failed'

        with transaction.atomic():
            payment = Payment.objects.select_for_update().filter(gateway_order_id=event.order_id).first()
            if payment is None:
                logger.warning(f"payment.failed for unknown gateway order {event.order_id}")
                return cls._success(f"Order {event.order_id} not found", data={"action": "PAYMENT_NOT_FOUND"})

            payment.append_event(event.event_type, event.raw)

            if payment.status == Payment.STATUS_FAILED:
                payment.save_events()
                return cls._success("Payment already marked failed", data={"action": "ALREADY_PROCESSED"})

            # Never downgrade a captured or refunded payment
            if not payment.can_transition(Payment.STATUS_FAILED):
                payment.save_events()
                logger.warning(
                    f"Ignoring payment.failed for {payment.gateway_order_id}: status is {payment.status}"
                )
                return cls._success("Event does not apply to current status", data={
                    "action": "IGNORED_STALE",
                    "status": payment.status,
                })

            payment.mark_failed(reason)

        logger.info(f"Payment {payment.gateway_order_id} marked FAILED: {reason}")
        cls._audit_log(payment.user, "payment_failed_webhook", {
            "order_id": payment.gateway_order_id,
            "reason": reason,
        })

        return cls._success(
            "Payment marked as failed",
            data={
                "action": "PAYMENT_FAILED",
                "payment_id": str(payment.pk),
                "reason": reason,
            }
        )

    @classmethod
    def _handle_refund_created(cls, event: RefundCreated) -> Dict[str, Any]:
        """Handle refund.created webhook."""
        with transaction.atomic():
            payment = Payment.objects.select_for_update().filter(gateway_payment_id=event.payment_id).first()
            if payment is None:
                logger.warning(f"Refund {event.refund_id} for unknown gateway payment {event.payment_id}")
                return cls._success(
                    f"Payment {event.payment_id} not found",
                    data={"action": "PAYMENT_NOT_FOUND"},
                )

            payment.append_event(event.event_type, event.raw)

            if payment.status == Payment.STATUS_REFUNDED:
                payment.save_events()
                return cls._success("Refund already processed", data={"action": "ALREADY_PROCESSED"})

            if not payment.can_transition(Payment.STATUS_REFUNDED):
                payment.save_events()
                logger.warning(
                    f"Ignoring refund {event.refund_id} for {payment.gateway_order_id}: "
                    f"status is {payment.status}"
                )
                return cls._success("Event does not apply to current status", data={
                    "action": "IGNORED_STALE",
                    "status": payment.status,
                })

            if event.amount > payment.amount:
                logger.warning(
                    f"[PAYMENT_AUDIT] refund {event.refund_id} amount {event.amount} "
                    f"exceeds payment amount {payment.amount}"
                )

            payment.mark_refunded(event.refund_id, amount=event.amount, reason=event.reason)

            enrollment = None
            if payment.enrollment_id:
                if payment.enrollment.payment_id == payment.pk:
                    enrollment = EnrollmentActivator.mark_refunded(payment.enrollment_id)
                else:
                    logger.warning(
                        f"[PAYMENT_AUDIT] refund {event.refund_id} on {payment.gateway_order_id}: "
                        f"enrollment {payment.enrollment_id} belongs to payment "
                        f"{payment.enrollment.payment_id}, access left unchanged"
                    )

        logger.info(f"Payment {payment.gateway_order_id} marked REFUNDED (refund: {event.refund_id})")
        cls._audit_log(payment.user, "refund_webhook", {
            "order_id": payment.gateway_order_id,
            "refund_id": event.refund_id,
            "amount": event.amount,
        })
        AuditLog.log(
            'payment.refunded', 'payment', payment.pk,
            user=payment.user, institution=payment.institution,
            details={
                'refund_id': event.refund_id,
                'amount': event.amount,
                'enrollment_id': str(enrollment.pk) if enrollment else None,
            },
            severity='warning',
        )

        return cls._success(
            "Refund recorded",
            data={
                "action": "REFUND_PROCESSED",
                "payment_id": str(payment.pk),
                "enrollment_id": str(enrollment.pk) if enrollment else None,
            }
        )

    # =========================================================================
    # RAZORPAY API
    # =========================================================================

    @classmethod
    def _get_razorpay_client(cls):
        """Get Razorpay client instance, or None when credentials are not usable."""
        key_id = settings.RAZORPAY_KEY_ID
        key_secret = settings.RAZORPAY_KEY_SECRET

        if not key_id or not key_secret:
            return None
        if not key_id.startswith(('rzp_test_', 'rzp_live_')):
            return None

        import razorpay
        return razorpay.Client(auth=(key_id, key_secret))

    @classmethod
    def _create_razorpay_order(cls, amount: int, currency: str, receipt: str, notes: dict) -> dict:
        """Create order on Razorpay. Amount is already in minor units."""
        client = cls._get_razorpay_client()

        if not client:
            # Fallback for development without Razorpay
            if settings.DEBUG:
                return cls._success("Mock order created.", data={
                    "id": f"order_mock_{receipt}",
                    "amount": amount,
                    "currency": currency,
                })
            return cls._fail("Payment gateway not configured.", code="GATEWAY_NOT_CONFIGURED")

        try:
            order = client.order.create(data={
                "amount": amount,
                "currency": currency,
                "receipt": receipt,
                "notes": notes,
            })
            return cls._success("Razorpay order created.", data=order)
        except Exception as e:
            logger.exception(f"Razorpay order creation failed for receipt {receipt}: {e}")
            return cls._fail("Payment gateway error. Please try again.", code="GATEWAY_ERROR")

    # =========================================================================
    # RESPONSE BUILDERS
    # =========================================================================

    @classmethod
    def _success(cls, reason: str, data: Optional[dict] = None) -> dict:
        return {"ok": True, "reason": reason, "data": data or {}}

    @classmethod
    def _fail(cls, reason: str, code: str = "ERROR", data: Optional[dict] = None) -> dict:
        return {"ok": False, "reason": reason, "code": code, "data": data or {}}

    # =========================================================================
    # AUDIT
    # =========================================================================

    @classmethod
    def _audit_log(cls, user, action: str, metadata: dict):
        """Log payment events."""
        logger.info(f"[PAYMENT_AUDIT] {action} | user={user.pk} | {metadata}")
