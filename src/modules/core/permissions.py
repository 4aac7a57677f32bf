"""Actor roles and DRF permission classes.

Authentication mechanics live in SimpleJWT / Django sessions; the core
only needs to know which role the caller acts as.  Staff roles come from
Django groups named after the role; superusers act as ``admin`` and
anonymous callers act as ``customer``.
"""

from __future__ import annotations

from django.db import models
from rest_framework.permissions import BasePermission


class ActorRole(models.TextChoices):
    CUSTOMER = "customer", "Customer"
    CASHIER = "cashier", "Cashier"
    KITCHEN = "kitchen", "Kitchen"
    ADMIN = "admin", "Admin"


STAFF_ROLES: frozenset[str] = frozenset(
    {ActorRole.CASHIER, ActorRole.KITCHEN, ActorRole.ADMIN}
)

# Most privileged first: a user in several groups acts with the highest role.
_ROLE_PRECEDENCE = (ActorRole.ADMIN, ActorRole.CASHIER, ActorRole.KITCHEN)


def resolve_actor_role(user) -> ActorRole:
    """Return the role an (possibly anonymous) user acts as."""
    if user is None or not getattr(user, "is_authenticated", False):
        return ActorRole.CUSTOMER
    if getattr(user, "is_superuser", False):
        return ActorRole.ADMIN
    group_names = set(user.groups.values_list("name", flat=True))
    for role in _ROLE_PRECEDENCE:
        if role.value in group_names:
            return role
    return ActorRole.CUSTOMER


class IsStaffRole(BasePermission):
    """Allow cashier, kitchen and admin callers."""

    message = "Staff role required."

    def has_permission(self, request, view) -> bool:
        return resolve_actor_role(request.user) in STAFF_ROLES
