"""
Tests for decorators (@caller_required, @role_required).

Verifies:
- Anonymous callers get 401 JSON
- Callers without the role get 403 JSON
- request.caller is attached for the view
"""

import json

import pytest
from django.contrib.auth.models import AnonymousUser
from django.http import HttpResponse
from django.test import RequestFactory

from core.decorators import caller_required, role_required
from core.responses import service_response, status_for


def make_request(user):
    request = RequestFactory().get('/')
    request.user = user
    return request


@role_required('institution_admin', 'super_admin')
def admin_view(request):
    return HttpResponse(request.caller.role)


@caller_required
def any_caller_view(request):
    return HttpResponse(request.caller.user.username)


@pytest.mark.django_db
class TestRoleRequired:
    """Tests for @role_required."""

    def test_anonymous_rejected(self):
        """Anonymous users get 401 JSON, not a redirect."""
        response = admin_view(make_request(AnonymousUser()))

        assert response.status_code == 401
        assert json.loads(response.content)['code'] == 'AUTH_REQUIRED'

    def test_wrong_role_forbidden(self, instructor):
        """Members without an allowed role get 403."""
        response = admin_view(make_request(instructor))

        assert response.status_code == 403
        assert json.loads(response.content)['code'] == 'FORBIDDEN'

    def test_allowed_role(self, institution_admin):
        """Allowed roles reach the view with request.caller set."""
        response = admin_view(make_request(institution_admin))

        assert response.status_code == 200
        assert response.content == b'institution_admin'

    def test_superuser_allowed(self, super_admin):
        """Superusers pass as super admins."""
        response = admin_view(make_request(super_admin))
        assert response.content == b'super_admin'


@pytest.mark.django_db
class TestCallerRequired:
    """Tests for @caller_required."""

    def test_any_authenticated_user(self, student):
        """Any authenticated user gets through."""
        response = any_caller_view(make_request(student))
        assert response.content == b'asha'

    def test_anonymous_rejected(self):
        """Anonymous users get 401."""
        assert any_caller_view(make_request(AnonymousUser())).status_code == 401


class TestServiceResponse:
    """Tests for mapping service results to HTTP responses."""

    @pytest.mark.parametrize('code,status', [
        ('FORBIDDEN', 403),
        ('ENROLLMENT_NOT_FOUND', 404),
        ('ALREADY_ISSUED', 409),
        ('TEMPLATE_NOT_CONFIGURED', 412),
        ('DOCUMENT_SERVICE_ERROR', 502),
        ('WEBHOOK_SECRET_MISSING', 500),
        ('SOMETHING_ELSE', 400),
    ])
    def test_status_for(self, code, status):
        """Failure codes map to fixed HTTP statuses."""
        assert status_for({'ok': False, 'code': code}) == status

    def test_default_body(self):
        """The default body merges data into the envelope."""
        response = service_response({'ok': False, 'reason': 'nope', 'code': 'FORBIDDEN',
                                     'data': {'extra': 1}})

        assert response.status_code == 403
        assert json.loads(response.content) == {'ok': False, 'reason': 'nope', 'code': 'FORBIDDEN',
                                                'extra': 1}
