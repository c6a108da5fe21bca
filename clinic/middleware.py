"""Request middleware for the clinic application."""

from __future__ import annotations

from django.utils.functional import SimpleLazyObject

from clinic.services.tenancy import resolve_tenant_context


class TenantMiddleware:
    """Attach a lazily resolved ``tenant_context`` to authenticated requests.

    The context is only computed when a view touches it, so anonymous pages
    such as login and registration never hit the tenant tables.  Resolution
    errors (a user without a clinic) surface at first access and are handled
    by the ``tenant_required`` view decorator.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        user = getattr(request, 'user', None)
        if user is not None and user.is_authenticated:
            request.tenant_context = SimpleLazyObject(lambda: resolve_tenant_context(request))
        else:
            request.tenant_context = None
        return self.get_response(request)
