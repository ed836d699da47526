"""
Tests for checkout order creation, synchronous verification and the
payment list.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
from django.contrib.auth.models import User
from django.test import Client
from django.urls import reverse

from core.models import Course
from enrollments.models import Enrollment
from payments.models import Payment
from payments.services.payment_service import PaymentService
from payments.signatures import compute_signature


def post_json(client, name, payload):
    return client.post(reverse(name), data=json.dumps(payload), content_type='application/json')


@pytest.mark.django_db
class TestCreateOrder:
    """Tests for the create-order endpoint."""

    def test_mock_order_in_debug(self, student_client, course, settings):
        """Without gateway credentials, DEBUG creates a mock order and a Payment."""
        settings.DEBUG = True
        settings.RAZORPAY_KEY_ID = ''

        response = post_json(student_client, 'create_order', {'course_id': course.pk})

        assert response.status_code == 200
        data = response.json()
        assert data['order_id'].startswith('order_mock_')
        assert data['amount'] == 99900
        assert data['currency'] == 'INR'
        payment = Payment.objects.get(gateway_order_id=data['order_id'])
        assert payment.status == Payment.STATUS_CREATED
        assert payment.amount == 99900
        assert payment.institution == course.institution

    def test_gateway_order(self, student, course, settings):
        """With credentials the Razorpay client creates the order in minor units."""
        settings.RAZORPAY_KEY_ID = 'rzp_test_abc'
        settings.RAZORPAY_KEY_SECRET = 'secret'
        client = MagicMock()
        client.order.create.return_value = {'id': 'order_live_1', 'amount': 99900, 'currency': 'INR'}

        with patch.object(PaymentService, '_get_razorpay_client', return_value=client):
            result = PaymentService.create_order(student, course)

        assert result['ok']
        assert result['data']['order_id'] == 'order_live_1'
        sent = client.order.create.call_args.kwargs['data']
        assert sent['amount'] == 99900
        assert sent['currency'] == 'INR'
        assert Payment.objects.filter(gateway_order_id='order_live_1').exists()

    def test_gateway_error(self, student, course):
        """A gateway exception is reported as GATEWAY_ERROR and nothing is stored."""
        client = MagicMock()
        client.order.create.side_effect = RuntimeError('gateway down')

        with patch.object(PaymentService, '_get_razorpay_client', return_value=client):
            result = PaymentService.create_order(student, course)

        assert not result['ok']
        assert result['code'] == 'GATEWAY_ERROR'
        assert 'gateway down' not in result['reason']
        assert not Payment.objects.exists()

    def test_gateway_error_response_hides_details(self, student_client, course):
        """The 502 body carries a fixed message, not the exception text."""
        client = MagicMock()
        client.order.create.side_effect = RuntimeError('401 Unauthorized: key rzp_test_abc')

        with patch.object(PaymentService, '_get_razorpay_client', return_value=client):
            response = post_json(student_client, 'create_order', {'course_id': course.pk})

        assert response.status_code == 502
        assert response.json()['reason'] == 'Payment gateway error. Please try again.'
        assert 'rzp_test_abc' not in response.content.decode()

    def test_unconfigured_gateway_outside_debug(self, student_client, course, settings):
        """Missing credentials outside DEBUG is a server misconfiguration."""
        settings.DEBUG = False
        settings.RAZORPAY_KEY_ID = ''

        response = post_json(student_client, 'create_order', {'course_id': course.pk})

        assert response.status_code == 500
        assert response.json()['code'] == 'GATEWAY_NOT_CONFIGURED'

    def test_free_course_enrolls_directly(self, student_client, student, free_course):
        """Free courses skip the gateway."""
        response = post_json(student_client, 'create_order', {'course_id': free_course.pk})

        assert response.status_code == 200
        assert response.json()['free'] is True
        enrollment = Enrollment.objects.get(user=student, course=free_course)
        assert enrollment.status == Enrollment.STATUS_ACTIVE
        assert enrollment.payment is None
        assert enrollment.access_end_date is None
        assert not Payment.objects.exists()

    def test_already_enrolled(self, student_client, enrollment, course):
        """An active enrollment blocks a second purchase."""
        response = post_json(student_client, 'create_order', {'course_id': course.pk})

        assert response.status_code == 409
        assert response.json()['code'] == 'ALREADY_ENROLLED'

    def test_unknown_course(self, student_client):
        """Unknown course ids return 404."""
        response = post_json(student_client, 'create_order', {'course_id': 999999})
        assert response.status_code == 404

    def test_missing_course_id(self, student_client):
        """course_id is required."""
        response = post_json(student_client, 'create_order', {})
        assert response.status_code == 400

    def test_instructor_led_requires_membership(self, institution, instructor, settings):
        """Instructor-led courses are limited to institution members."""
        settings.DEBUG = True
        settings.RAZORPAY_KEY_ID = ''
        bootcamp = Course.objects.create(
            institution=institution, title="Live Cohort", course_type='instructor_led',
            instructor=instructor, price_amount=500000,
        )
        outsider = User.objects.create_user(username='outsider', password='x')

        result = PaymentService.create_order(outsider, bootcamp)

        assert result['code'] == 'FORBIDDEN'

    def test_requires_login(self, course):
        """Anonymous users are redirected to login."""
        response = post_json(Client(), 'create_order', {'course_id': course.pk})
        assert response.status_code == 302


@pytest.mark.django_db
class TestVerifyPayment:
    """Tests for the synchronous checkout verification path."""

    def _payload(self, order_id='order_abc', payment_id='pay_xyz', secret='key_secret_test'):
        return {
            'razorpay_order_id': order_id,
            'razorpay_payment_id': payment_id,
            'razorpay_signature': compute_signature(secret, f"{order_id}|{payment_id}".encode()),
        }

    def test_verify_activates_enrollment(self, student_client, payment, gateway_settings):
        """A valid checkout signature captures the payment and enrolls."""
        response = post_json(student_client, 'verify_payment', self._payload())

        assert response.status_code == 200
        payment.refresh_from_db()
        assert payment.status == Payment.STATUS_CAPTURED
        assert payment.gateway_payment_id == 'pay_xyz'
        enrollment = Enrollment.objects.get()
        assert response.json()['enrollment_id'] == str(enrollment.pk)
        assert payment.enrollment_id == enrollment.pk

    def test_verify_then_webhook_converge(self, student_client, payment, deliver, make_event):
        """The webhook arriving after verification finds the enrollment already linked."""
        post_json(student_client, 'verify_payment', self._payload())

        response = deliver(make_event('payment.captured'))

        assert response.json()['action'] == 'ALREADY_PROCESSED'
        assert Enrollment.objects.count() == 1

    def test_webhook_then_verify_converge(self, student_client, payment, deliver, make_event):
        """Verification arriving after the webhook returns the same enrollment."""
        deliver(make_event('payment.captured'))
        enrollment = Enrollment.objects.get()

        response = post_json(student_client, 'verify_payment', self._payload())

        assert response.status_code == 200
        assert response.json()['action'] == 'ALREADY_PROCESSED'
        assert response.json()['enrollment_id'] == str(enrollment.pk)
        assert Enrollment.objects.count() == 1

    def test_invalid_signature(self, student_client, payment, gateway_settings):
        """A forged signature is rejected and the payment is untouched."""
        response = post_json(student_client, 'verify_payment', self._payload(secret='wrong'))

        assert response.status_code == 400
        assert response.json()['code'] == 'INVALID_SIGNATURE'
        payment.refresh_from_db()
        assert payment.status == Payment.STATUS_CREATED

    def test_other_users_order(self, other_student_client, payment, gateway_settings):
        """A user cannot verify someone else's order."""
        response = post_json(other_student_client, 'verify_payment', self._payload())

        assert response.status_code == 403
        assert not Enrollment.objects.exists()

    def test_unknown_order(self, student_client, gateway_settings):
        """Verifying an unknown order returns 404."""
        response = post_json(student_client, 'verify_payment', self._payload(order_id='order_nope'))
        assert response.status_code == 404

    def test_missing_fields(self, student_client, gateway_settings):
        """All three checkout fields are required."""
        response = post_json(student_client, 'verify_payment', {'razorpay_order_id': 'order_abc'})
        assert response.status_code == 400
        assert response.json()['code'] == 'INVALID_REQUEST'


@pytest.mark.django_db
class TestPaymentList:
    """Tests for the institution payment list."""

    def test_institution_admin_sees_own_institution(self, institution_admin_client, payment,
                                                    other_institution, student):
        """Admins only see payments of their institution."""
        foreign_course = Course.objects.create(institution=other_institution, title="Elsewhere",
                                               price_amount=1000)
        Payment.objects.create(
            receipt_number='RCPT-OTHER', user=student, course=foreign_course,
            institution=other_institution, amount=1000, gateway_order_id='order_other',
        )

        response = institution_admin_client.get(reverse('payment_list'))

        assert response.status_code == 200
        orders = [p['order_id'] for p in response.json()['payments']]
        assert orders == ['order_abc']

    def test_student_forbidden(self, student_client, payment):
        """Students cannot list payments."""
        response = student_client.get(reverse('payment_list'))
        assert response.status_code == 403

    def test_anonymous_unauthorized(self, payment):
        """Anonymous callers get 401."""
        response = Client().get(reverse('payment_list'))
        assert response.status_code == 401
