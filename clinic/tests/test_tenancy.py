"""Tenant scoping and superuser tenant selection."""

from datetime import date, datetime

from django.contrib.auth.models import User
from django.test import RequestFactory, TestCase
from django.urls import reverse
from django.utils import timezone

from clinic.models import Appointment, Customer, MedicalRecord, Profile
from clinic.services.tenancy import (
    SESSION_TENANT_KEY,
    TenantAccessError,
    TenantContext,
    TenantRequiredError,
    resolve_tenant_context,
)

from .helpers import make_customer, make_tenant, make_user


class TenantContextTests(TestCase):
    def setUp(self) -> None:
        self.north = make_tenant('North')
        self.south = make_tenant('South')
        self.north_customer = make_customer(self.north, 'Nina', 'North')
        self.south_customer = make_customer(self.south, 'Sam', 'South')

    def test_scope_filters_on_tenant(self) -> None:
        ctx = TenantContext(tenant=self.north)
        self.assertEqual(list(ctx.scope(Customer.objects.all())), [self.north_customer])

    def test_superuser_without_selection_sees_everything(self) -> None:
        ctx = TenantContext(tenant=None, is_superuser=True)
        self.assertTrue(ctx.all_tenants)
        self.assertEqual(ctx.scope(Customer.objects.all()).count(), 2)
        with self.assertRaises(TenantRequiredError):
            ctx.require_tenant()

    def test_regular_context_without_tenant_sees_nothing(self) -> None:
        ctx = TenantContext(tenant=None, is_superuser=False)
        self.assertEqual(ctx.scope(Customer.objects.all()).count(), 0)

    def test_resolve_uses_profile_then_session(self) -> None:
        factory = RequestFactory()
        request = factory.get('/')
        request.session = {}
        request.user = make_user('admin@north.test', self.north)
        self.assertEqual(resolve_tenant_context(request).tenant, self.north)

        request.user = User.objects.create_superuser('root@test', 'root@test', 'secret123')
        request.session = {SESSION_TENANT_KEY: self.south.pk}
        ctx = resolve_tenant_context(request)
        self.assertTrue(ctx.is_superuser)
        self.assertEqual(ctx.tenant, self.south)

    def test_resolve_without_tenant_raises(self) -> None:
        request = RequestFactory().get('/')
        request.session = {}
        request.user = make_user('orphan@test', None)
        with self.assertRaises(TenantAccessError):
            resolve_tenant_context(request)


class TenantIsolationViewTests(TestCase):
    def setUp(self) -> None:
        self.north = make_tenant('North')
        self.south = make_tenant('South')
        self.user = make_user('admin@north.test', self.north)
        self.own = make_customer(self.north, 'Nina', 'North')
        self.foreign = make_customer(self.south, 'Sam', 'South')
        self.client.force_login(self.user)

    def test_list_only_shows_own_customers(self) -> None:
        response = self.client.get(reverse('customer_list'))
        self.assertContains(response, 'North, Nina')
        self.assertNotContains(response, 'South, Sam')

    def test_foreign_rows_resolve_to_404(self) -> None:
        self.assertEqual(self.client.get(reverse('customer_detail', args=[self.foreign.pk])).status_code, 404)
        response = self.client.post(reverse('customer_delete', args=[self.foreign.pk]))
        self.assertEqual(response.status_code, 404)
        self.assertTrue(Customer.objects.filter(pk=self.foreign.pk).exists())

    def test_user_without_clinic_is_logged_out(self) -> None:
        orphan = make_user('orphan@test', None, role=Profile.Role.STAFF)
        self.client.force_login(orphan)
        response = self.client.get(reverse('home'))
        self.assertRedirects(response, reverse('login'), fetch_redirect_response=False)
        self.assertNotIn('_auth_user_id', self.client.session)


class SuperuserTenantSelectionTests(TestCase):
    def setUp(self) -> None:
        self.north = make_tenant('North')
        self.south = make_tenant('South')
        make_customer(self.north, 'Nina', 'North')
        make_customer(self.south, 'Sam', 'South')
        self.root = User.objects.create_superuser('root@test', 'root@test', 'secret123')
        self.client.force_login(self.root)

    def test_all_tenants_then_selected_tenant(self) -> None:
        response = self.client.get(reverse('customer_list'))
        self.assertContains(response, 'North, Nina')
        self.assertContains(response, 'South, Sam')

        self.client.post(reverse('select_tenant'), {'tenant_id': self.south.pk})
        self.assertEqual(self.client.session[SESSION_TENANT_KEY], self.south.pk)
        response = self.client.get(reverse('customer_list'))
        self.assertNotContains(response, 'North, Nina')
        self.assertContains(response, 'South, Sam')

        self.client.post(reverse('select_tenant'), {'tenant_id': ''})
        self.assertNotIn(SESSION_TENANT_KEY, self.client.session)

    def test_select_tenant_ignores_offsite_next(self) -> None:
        response = self.client.post(
            reverse('select_tenant'), {'tenant_id': self.north.pk, 'next': '//elsewhere.test/'}
        )
        self.assertRedirects(response, reverse('home'), fetch_redirect_response=False)
        response = self.client.post(
            reverse('select_tenant'), {'tenant_id': self.north.pk, 'next': reverse('product_list')}
        )
        self.assertRedirects(response, reverse('product_list'), fetch_redirect_response=False)

    def test_creating_without_selection_is_refused(self) -> None:
        response = self.client.post(reverse('customer_add'), {'first_name': 'New', 'last_name': 'Person'})
        self.assertRedirects(response, reverse('customer_list'), fetch_redirect_response=False)
        self.assertFalse(Customer.objects.filter(first_name='New').exists())

    def test_api_tenants(self) -> None:
        response = self.client.get(reverse('api_tenants'))
        self.assertEqual(response.status_code, 200)
        self.assertEqual([t['name'] for t in response.json()['tenants']], ['North', 'South'])

    def test_api_tenants_forbidden_for_clinic_users(self) -> None:
        self.client.force_login(make_user('admin@north.test', self.north))
        self.assertEqual(self.client.get(reverse('api_tenants')).status_code, 403)

    def test_select_tenant_requires_superuser(self) -> None:
        self.client.force_login(make_user('admin@north.test', self.north))
        self.client.post(reverse('select_tenant'), {'tenant_id': self.south.pk})
        self.assertNotIn(SESSION_TENANT_KEY, self.client.session)

    def test_all_clinics_edit_keeps_related_rows_in_owner_clinic(self) -> None:
        nina = Customer.objects.get(tenant=self.north)
        sam = Customer.objects.get(tenant=self.south)
        appointment = Appointment.objects.create(
            tenant=self.north, customer=nina, appointment_time=timezone.make_aware(datetime(2026, 3, 2, 10))
        )
        response = self.client.post(
            reverse('appointment_edit', args=[appointment.pk]),
            {
                'customer': sam.pk,
                'provider': '',
                'appointment_time': '2026-03-02T10:00',
                'duration_minutes': 30,
                'type': appointment.type,
                'status': appointment.status,
                'notes': '',
            },
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn('customer', response.context['form'].errors)
        appointment.refresh_from_db()
        self.assertEqual(appointment.customer, nina)

        record = MedicalRecord.objects.create(tenant=self.north, customer=nina, record_date=date(2026, 3, 2))
        response = self.client.post(
            reverse('medical_record_edit', args=[record.pk]),
            {'customer': sam.pk, 'record_date': '2026-03-02'},
        )
        self.assertEqual(response.status_code, 200)
        record.refresh_from_db()
        self.assertEqual(record.customer, nina)
