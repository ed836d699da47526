"""
pytest configuration and shared fixtures.

Provides:
- Institutions, users with memberships, courses
- Authenticated clients per role
- Payments and enrollments
- Signed webhook delivery helpers
- A recording fake certificate document backend
- A helper that runs callables in parallel threads
"""

import hashlib
import hmac
import json
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from django.contrib.auth.models import User
from django.db import connection
from django.test import Client
from django.urls import reverse

from core.models import Course, Institution, Membership
from enrollments.models import Enrollment
from payments.models import Payment

WEBHOOK_SECRET = 'whsec_test_secret'
KEY_SECRET = 'key_secret_test'


# ============================================================================
# INSTITUTION & USER FIXTURES
# ============================================================================

@pytest.fixture
def institution():
    """Institution with a certificate template configured."""
    return Institution.objects.create(
        name="Acme Academy",
        slug="acme",
        certificate_template="templates/acme-certificate.docx",
        certificate_folder="acme",
    )


@pytest.fixture
def other_institution():
    """A second institution, for tenant isolation checks."""
    return Institution.objects.create(
        name="Globex Institute",
        slug="globex",
        certificate_template="templates/globex-certificate.docx",
        certificate_folder="globex",
    )


def _member(username, institution, role, **extra):
    user = User.objects.create_user(
        username=username,
        email=f"{username}@example.com",
        password="testpass123",
        **extra
    )
    Membership.objects.create(user=user, institution=institution, role=role)
    return user


@pytest.fixture
def student(institution):
    return _member("asha", institution, Membership.ROLE_STUDENT, first_name="Asha", last_name="Rao")


@pytest.fixture
def other_student(institution):
    return _member("ravi", institution, Membership.ROLE_STUDENT, first_name="Ravi", last_name="Kumar")


@pytest.fixture
def instructor(institution):
    return _member("prof_iyer", institution, Membership.ROLE_INSTRUCTOR)


@pytest.fixture
def institution_admin(institution):
    return _member("acme_admin", institution, Membership.ROLE_INSTITUTION_ADMIN)


@pytest.fixture
def other_instructor(other_institution):
    return _member("prof_globex", other_institution, Membership.ROLE_INSTRUCTOR)


@pytest.fixture
def super_admin(other_institution):
    """Superuser whose own membership is in another institution."""
    user = User.objects.create_superuser(
        username="root",
        email="root@example.com",
        password="rootpass123",
    )
    Membership.objects.create(user=user, institution=other_institution, role=Membership.ROLE_INSTITUTION_ADMIN)
    return user


# ============================================================================
# CLIENT FIXTURES
# ============================================================================

def _logged_in(user):
    client = Client()
    client.force_login(user)
    return client


@pytest.fixture
def student_client(student):
    return _logged_in(student)


@pytest.fixture
def other_student_client(other_student):
    return _logged_in(other_student)


@pytest.fixture
def instructor_client(instructor):
    return _logged_in(instructor)


@pytest.fixture
def institution_admin_client(institution_admin):
    return _logged_in(institution_admin)


@pytest.fixture
def other_instructor_client(other_instructor):
    return _logged_in(other_instructor)


# ============================================================================
# COURSE / PAYMENT / ENROLLMENT FIXTURES
# ============================================================================

@pytest.fixture
def course(institution, instructor):
    """Paid self-paced course: 999.00 INR, 180 days of access."""
    return Course.objects.create(
        institution=institution,
        title="Data Structures in Practice",
        instructor=instructor,
        price_amount=99900,
        currency="INR",
        access_duration_days=180,
    )


@pytest.fixture
def free_course(institution, instructor):
    return Course.objects.create(
        institution=institution,
        title="Intro to Git",
        instructor=instructor,
        is_free=True,
    )


@pytest.fixture
def payment(student, course):
    """Payment awaiting capture for gateway order 'order_abc'."""
    return Payment.objects.create(
        receipt_number="RCPT-TEST-000001",
        user=student,
        course=course,
        institution=course.institution,
        amount=99900,
        currency="INR",
        gateway_order_id="order_abc",
    )


@pytest.fixture
def enrollment(student, course):
    """Active enrollment for the student, ready for a certificate."""
    return Enrollment.objects.create(
        user=student,
        course=course,
        institution=course.institution,
        status=Enrollment.STATUS_ACTIVE,
    )


# ============================================================================
# WEBHOOK HELPERS
# ============================================================================

@pytest.fixture
def gateway_settings(settings):
    """Configure gateway secrets."""
    settings.RAZORPAY_WEBHOOK_SECRET = WEBHOOK_SECRET
    settings.RAZORPAY_KEY_SECRET = KEY_SECRET
    settings.RAZORPAY_SIGNATURE_HEADER = 'X-Razorpay-Signature'
    return settings


def sign(body, secret=WEBHOOK_SECRET):
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture
def make_event():
    """Build a gateway webhook envelope."""
    def _make(event, order_id="order_abc", payment_id="pay_xyz", amount=99900, **entity):
        if event.startswith('refund.'):
            payload = {'refund': {'entity': {
                'id': entity.pop('refund_id', 'rfnd_001'),
                'payment_id': payment_id,
                'amount': amount,
                'currency': 'INR',
                **entity,
            }}}
        else:
            payload = {'payment': {'entity': {
                'id': payment_id,
                'order_id': order_id,
                'amount': amount,
                'currency': 'INR',
                'method': 'upi',
                **entity,
            }}}
        return {'entity': 'event', 'event': event, 'payload': payload}
    return _make


@pytest.fixture
def deliver(gateway_settings):
    """
    POST a webhook the way the gateway does: raw bytes plus signature header.

    deliver(envelope) signs correctly; pass body= for raw bytes and
    signature= to override the header (None omits it).
    """
    client = Client()
    url = reverse('razorpay_webhook')
    unset = object()

    def _deliver(envelope=None, body=None, signature=unset):
        if body is None:
            body = json.dumps(envelope).encode('utf-8')
        headers = {}
        if signature is unset:
            headers['HTTP_X_RAZORPAY_SIGNATURE'] = sign(body)
        elif signature is not None:
            headers['HTTP_X_RAZORPAY_SIGNATURE'] = signature
        return client.post(url, data=body, content_type='application/json', **headers)

    return _deliver


# ============================================================================
# CERTIFICATE BACKEND
# ============================================================================

@pytest.fixture
def fake_backend(settings):
    """Route certificate rendering through the recording fake backend."""
    from certificates.tests.fakes import FakeDocumentBackend

    FakeDocumentBackend.reset()
    settings.CERTIFICATE_DOCUMENT_BACKEND = 'certificates.tests.fakes.FakeDocumentBackend'
    settings.APP_BASE_URL = 'https://learn.example.com'
    yield FakeDocumentBackend
    FakeDocumentBackend.reset()


# ============================================================================
# CONCURRENCY
# ============================================================================

@pytest.fixture
def run_concurrently():
    """
    Run each callable in its own thread, released together by a barrier.

    Returns results in argument order. Needs django_db(transaction=True) so
    the threads' own connections see committed fixtures.
    """
    def _run(*fns):
        barrier = threading.Barrier(len(fns))

        def worker(fn):
            try:
                barrier.wait(timeout=10)
                return fn()
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=len(fns)) as pool:
            futures = [pool.submit(worker, fn) for fn in fns]
            return [future.result() for future in futures]

    return _run
