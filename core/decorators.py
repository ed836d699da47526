"""
Decorators for institution-scoped JSON endpoints.
Enforces that callers are authenticated and hold the required role.
"""

from functools import wraps
from django.http import JsonResponse

from core.access import get_caller_context


def caller_required(view_func):
    """
    Decorator that resolves the caller's role and institution.
    Attaches request.caller for use in the view; 401 JSON when anonymous.
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        caller = get_caller_context(request.user)
        if caller is None:
            return JsonResponse({
                'ok': False,
                'code': 'AUTH_REQUIRED',
                'reason': 'Not authenticated.',
            }, status=401)

        request.caller = caller
        return view_func(request, *args, **kwargs)

    return wrapper


def role_required(*roles):
    """
    Decorator that enforces one of the given roles.

    Args:
        *roles: Allowed Membership roles (e.g. 'instructor', 'institution_admin')

    Usage:
        @role_required('super_admin', 'institution_admin')
        def payment_list(request):
            ...
    """
    def decorator(view_func):
        @caller_required
        @wraps(view_func)
        def wrapper(request, *args, **kwargs):
            if not request.caller.has_role(*roles):
                return JsonResponse({
                    'ok': False,
                    'code': 'FORBIDDEN',
                    'reason': 'You do not have permission to perform this action.',
                }, status=403)

            return view_func(request, *args, **kwargs)

        return wrapper
    return decorator
