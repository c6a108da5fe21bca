"""Management commands."""

from datetime import timedelta
from io import StringIO

from django.contrib.auth.models import User
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from django.utils import timezone

from clinic.models import Appointment, Notification, Profile, Tenant

from .helpers import make_customer, make_stock, make_tenant, make_user


class CreateTenantCommandTests(TestCase):
    def test_creates_clinic_and_admin(self) -> None:
        out = StringIO()
        call_command('create_tenant', 'Vista Optical', admin_email='Owner@Vista.test', password='secret123', stdout=out)
        tenant = Tenant.objects.get(name='Vista Optical')
        user = User.objects.get(username='owner@vista.test')
        self.assertEqual((user.profile.tenant, user.profile.role), (tenant, Profile.Role.ADMIN))
        self.assertTrue(user.check_password('secret123'))
        self.assertIn('Created clinic', out.getvalue())

        with self.assertRaises(CommandError):
            call_command('create_tenant', 'vista optical', admin_email='x@vista.test', password='x', stdout=StringIO())
        with self.assertRaises(CommandError):
            call_command('create_tenant', 'Another', admin_email='owner@vista.test', password='x', stdout=StringIO())


class ReminderCommandTests(TestCase):
    def test_reminders_are_sent_once(self) -> None:
        tenant = make_tenant()
        doctor = make_user('doctor@clinic.test', tenant, role=Profile.Role.PROFESSIONAL)
        customer = make_customer(tenant)
        now = timezone.now()
        soon = Appointment.objects.create(
            tenant=tenant, customer=customer, provider=doctor, appointment_time=now + timedelta(minutes=30)
        )
        Appointment.objects.create(
            tenant=tenant, customer=customer, provider=doctor, appointment_time=now + timedelta(hours=5)
        )
        Appointment.objects.create(
            tenant=tenant, customer=customer, provider=doctor, appointment_time=now + timedelta(minutes=20),
            status=Appointment.Status.CANCELLED,
        )

        call_command('send_appointment_reminders', minutes=60, stdout=StringIO())
        call_command('send_appointment_reminders', minutes=60, stdout=StringIO())

        note = Notification.objects.get(recipient=doctor)
        self.assertEqual(note.event_type, Notification.EventType.APPOINTMENT_REMINDER)
        self.assertEqual(note.metadata['appointment_id'], soon.pk)
        soon.refresh_from_db()
        self.assertTrue(soon.reminder_sent)


class LowStockCommandTests(TestCase):
    def test_admins_are_notified(self) -> None:
        tenant = make_tenant()
        admin = make_user('admin@clinic.test', tenant, role=Profile.Role.ADMIN)
        make_user('staff@clinic.test', tenant, role=Profile.Role.STAFF)
        make_stock(tenant, 'Drops', quantity=1, reorder_level=5)
        quiet = make_tenant('Quiet')
        make_user('admin@quiet.test', quiet, role=Profile.Role.ADMIN)

        call_command('notify_low_stock', stdout=StringIO())

        note = Notification.objects.get()
        self.assertEqual(note.recipient, admin)
        self.assertIn('Drops', note.message)

    def test_unknown_tenant(self) -> None:
        with self.assertRaises(CommandError):
            call_command('notify_low_stock', tenant=999, stdout=StringIO())
