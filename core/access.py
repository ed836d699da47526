# core/access.py
"""
Caller context resolution.

Every authorized endpoint works from a CallerContext: who is calling, with
which role, on behalf of which institution. Role and institution always come
from the Membership table, never from anything the client sends.
"""

from dataclasses import dataclass
from typing import Optional

from django.contrib.auth.models import User

from core.models import Institution, Membership


@dataclass(frozen=True)
class CallerContext:
    user: User
    role: str
    institution: Optional[Institution]

    @property
    def is_super_admin(self) -> bool:
        return self.role == Membership.ROLE_SUPER_ADMIN

    def has_role(self, *roles) -> bool:
        return self.role in roles

    def can_act_for(self, institution_id) -> bool:
        """Super admins act across institutions; everyone else only in their own."""
        if self.is_super_admin:
            return True
        return self.institution is not None and self.institution.pk == institution_id


def get_caller_context(user) -> Optional[CallerContext]:
    """
    Resolve the caller's role and institution.

    Returns None for anonymous users. Superusers are always super admins.
    A user with several memberships acts through the most privileged one.
    """
    if user is None or not user.is_authenticated:
        return None

    memberships = list(
        Membership.objects.filter(user=user, is_active=True, institution__is_active=True)
        .select_related('institution')
    )
    memberships.sort(key=lambda m: Membership.ROLE_HIERARCHY.index(m.role))
    membership = memberships[0] if memberships else None

    if user.is_superuser:
        return CallerContext(
            user=user,
            role=Membership.ROLE_SUPER_ADMIN,
            institution=membership.institution if membership else None,
        )

    if membership is None:
        return CallerContext(user=user, role=Membership.ROLE_STUDENT, institution=None)

    return CallerContext(user=user, role=membership.role, institution=membership.institution)
