"""Tenant resolution and row scoping helpers.

Every request handled by the clinic views works against a
:class:`TenantContext`.  Regular users are bound to the tenant on their
profile; platform superusers choose a tenant from the header switcher (the
choice lives in the session under ``tenant_id``) or leave it unset to look
at every clinic at once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from django.db.models import QuerySet

from clinic.models import Tenant

logger = logging.getLogger(__name__)

SESSION_TENANT_KEY = 'tenant_id'


class TenantAccessError(Exception):
    """Raised when a user is not attached to any tenant."""


class TenantRequiredError(Exception):
    """Raised when an operation needs a concrete tenant but none is selected."""


@dataclass(frozen=True)
class TenantContext:
    tenant: Optional[Tenant]
    is_superuser: bool = False

    @property
    def tenant_id(self) -> Optional[int]:
        return self.tenant.pk if self.tenant else None

    @property
    def all_tenants(self) -> bool:
        """True when a superuser is looking at every tenant at once."""

        return self.is_superuser and self.tenant is None

    def scope(self, queryset: QuerySet, field: str = 'tenant') -> QuerySet:
        """Restrict ``queryset`` to the rows visible in this context."""

        if self.all_tenants:
            return queryset
        if self.tenant is None:
            return queryset.none()
        return queryset.filter(**{field: self.tenant})

    def require_tenant(self) -> Tenant:
        """Return the tenant new rows are written into."""

        if self.tenant is None:
            raise TenantRequiredError('Select a clinic before creating records.')
        return self.tenant


def resolve_tenant_context(request) -> TenantContext:
    """Build the tenant context for an authenticated request."""

    user = request.user
    if user.is_superuser:
        tenant = None
        tenant_id = request.session.get(SESSION_TENANT_KEY)
        if tenant_id:
            tenant = Tenant.objects.filter(pk=tenant_id).first()
            if tenant is None:
                # The selected tenant was deleted; fall back to all tenants.
                request.session.pop(SESSION_TENANT_KEY, None)
        return TenantContext(tenant=tenant, is_superuser=True)

    profile = getattr(user, 'profile', None)
    tenant = profile.tenant if profile else None
    if tenant is None:
        logger.warning('User %s has no tenant assigned', user.username)
        raise TenantAccessError('Your account is not linked to a clinic.')
    return TenantContext(tenant=tenant, is_superuser=False)


def select_session_tenant(request, tenant: Optional[Tenant]) -> None:
    """Store (or clear) the superuser's tenant choice on the session."""

    if tenant is None:
        request.session.pop(SESSION_TENANT_KEY, None)
    else:
        request.session[SESSION_TENANT_KEY] = tenant.pk
