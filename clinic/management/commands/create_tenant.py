"""Bootstrap a clinic together with its first admin account.

Usage::

    python manage.py create_tenant "Vista Optical" --admin-email owner@vista.test --password s3cret

The clinic gets default settings (30 minute slots, no working hours) and
the admin user logs in with the given email address.
"""

from __future__ import annotations

from django.contrib.auth.models import User
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from clinic.models import ClinicSettings, Profile, Tenant


class Command(BaseCommand):
    help = "Create a clinic (tenant) and its admin user."

    def add_arguments(self, parser) -> None:
        parser.add_argument('name', help='Clinic name')
        parser.add_argument('--admin-email', required=True, help='Email (and username) of the admin user')
        parser.add_argument('--password', required=True, help='Password for the admin user')
        parser.add_argument('--full-name', default='', help='Display name of the admin user')

    def handle(self, *args, **options) -> None:
        name = options['name'].strip()
        email = options['admin_email'].strip().lower()
        if not name:
            raise CommandError('The clinic name cannot be empty.')
        if Tenant.objects.filter(name__iexact=name).exists():
            raise CommandError(f'A clinic named "{name}" already exists.')
        if User.objects.filter(username__iexact=email).exists():
            raise CommandError(f'A user with email {email} already exists.')

        with transaction.atomic():
            tenant = Tenant.objects.create(name=name)
            ClinicSettings.objects.create(tenant=tenant)
            user = User.objects.create_user(
                username=email,
                email=email,
                password=options['password'],
                first_name=options['full_name'],
            )
            Profile.objects.create(user=user, tenant=tenant, role=Profile.Role.ADMIN)
        self.stdout.write(self.style.SUCCESS(f'Created clinic {tenant.pk}: {tenant.name} (admin {email}).'))
