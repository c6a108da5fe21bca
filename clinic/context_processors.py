"""Custom context processors for the clinic application.

Expose the interface language, the active clinic and the navigation
flags (admin pages, clinical editing, tenant switcher) to every template.
"""

from __future__ import annotations

from typing import Any, Dict

from django.conf import settings

from .models import Profile, Tenant
from .services.tenancy import TenantAccessError


def clinic_context(request) -> Dict[str, Any]:
    """Common variables for the base layout.

    Superusers additionally receive the list of clinics for the header
    switcher.  Resolution errors are left to the views, which log the user
    out; here they only hide the tenant specific navigation.
    """
    context: Dict[str, Any] = {
        'lang': request.session.get('lang', 'en') if hasattr(request, 'session') else 'en',
        'currency': settings.OPTICSHOP_CURRENCY,
        'active_tenant': None,
        'is_clinic_admin': False,
        'can_edit_clinical': False,
        'tenant_choices': [],
    }
    user = getattr(request, 'user', None)
    if not (user and user.is_authenticated):
        return context
    tenant_ctx = getattr(request, 'tenant_context', None)
    if tenant_ctx is not None:
        try:
            context['active_tenant'] = tenant_ctx.tenant
        except TenantAccessError:
            return context
    profile = getattr(user, 'profile', None)
    role = profile.role if profile else None
    context['is_clinic_admin'] = user.is_superuser or role == Profile.Role.ADMIN
    context['can_edit_clinical'] = context['is_clinic_admin'] or role == Profile.Role.PROFESSIONAL
    if user.is_superuser:
        context['tenant_choices'] = list(Tenant.objects.order_by('name'))
    return context
