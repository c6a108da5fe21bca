"""Notify clinic admins about products at or below their reorder level.

Usage::

    python manage.py notify_low_stock [--tenant ID]
"""

from __future__ import annotations

from typing import Optional

from django.contrib.auth.models import User
from django.core.management.base import BaseCommand, CommandError

from clinic.models import Profile, Tenant
from clinic.services.notifications import notify_low_stock
from clinic.services.reports import low_stock_products
from clinic.services.tenancy import TenantContext


class Command(BaseCommand):
    help = "Send low stock notifications to the admins of each clinic."

    def add_arguments(self, parser) -> None:
        parser.add_argument('--tenant', type=int, help='Only check the clinic with this id')

    def handle(self, *args, **options) -> None:
        tenant_id: Optional[int] = options.get('tenant')
        tenants = Tenant.objects.all()
        if tenant_id:
            tenants = tenants.filter(pk=tenant_id)
            if not tenants:
                raise CommandError(f'No clinic found with id {tenant_id}')

        total = 0
        for tenant in tenants:
            products = list(low_stock_products(TenantContext(tenant=tenant)))
            if not products:
                continue
            admins = User.objects.filter(
                is_active=True,
                profile__tenant=tenant,
                profile__role=Profile.Role.ADMIN,
            )
            created = notify_low_stock(tenant, products, admins)
            total += len(created)
            self.stdout.write(f'{tenant.name}: {len(products)} low stock product(s), {len(created)} notice(s).')
        self.stdout.write(self.style.SUCCESS(f'Sent {total} low stock notification(s).'))
