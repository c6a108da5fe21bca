"""Registration, login and role management."""

from django.contrib.auth.models import User
from django.test import TestCase
from django.urls import reverse

from clinic.models import ClinicSettings, Notification, Profile, Tenant

from .helpers import make_tenant, make_user


class RegistrationTests(TestCase):
    def registration_data(self, **overrides):
        data = {
            'clinic_name': 'Vista Optical',
            'email': 'Owner@Vista.test',
            'full_name': 'Olivia Owner',
            'phone': '555-0100',
            'password': 'secret123',
            'confirm_password': 'secret123',
        }
        data.update(overrides)
        return data

    def test_register_creates_clinic_and_admin(self) -> None:
        response = self.client.post(reverse('register'), self.registration_data())
        self.assertRedirects(response, reverse('login'), fetch_redirect_response=False)
        tenant = Tenant.objects.get(name='Vista Optical')
        user = User.objects.get(username='owner@vista.test')
        self.assertEqual(user.profile.tenant, tenant)
        self.assertEqual(user.profile.role, Profile.Role.ADMIN)
        self.assertTrue(ClinicSettings.objects.filter(tenant=tenant).exists())

        response = self.client.post(reverse('login'), {'email': 'owner@vista.test', 'password': 'secret123'})
        self.assertRedirects(response, reverse('home'), fetch_redirect_response=False)

    def test_duplicates_and_mismatch_are_rejected(self) -> None:
        make_tenant('Vista Optical')
        response = self.client.post(reverse('register'), self.registration_data(clinic_name='vista optical'))
        self.assertFormError(response.context['form'], 'clinic_name', 'A clinic with this name is already registered.')
        response = self.client.post(
            reverse('register'), self.registration_data(clinic_name='New Clinic', confirm_password='other')
        )
        self.assertFormError(response.context['form'], 'confirm_password', 'Passwords do not match.')
        self.assertEqual(Tenant.objects.count(), 1)

    def test_bad_login(self) -> None:
        make_user('owner@vista.test', make_tenant())
        response = self.client.post(reverse('login'), {'email': 'owner@vista.test', 'password': 'wrong'})
        self.assertEqual(response.status_code, 200)
        self.assertNotIn('_auth_user_id', self.client.session)

    def test_login_next_must_stay_on_site(self) -> None:
        make_user('owner@vista.test', make_tenant())
        credentials = {'email': 'owner@vista.test', 'password': 'secret123'}
        response = self.client.post(f"{reverse('login')}?next=https://elsewhere.test/login", credentials)
        self.assertRedirects(response, reverse('home'), fetch_redirect_response=False)

        self.client.logout()
        response = self.client.post(f"{reverse('login')}?next={reverse('customer_list')}", credentials)
        self.assertRedirects(response, reverse('customer_list'), fetch_redirect_response=False)


class RoleManagementTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant()
        self.admin = make_user('admin@clinic.test', self.tenant, role=Profile.Role.ADMIN)
        self.staff = make_user('staff@clinic.test', self.tenant, role=Profile.Role.STAFF)
        self.client.force_login(self.admin)

    def change_role(self, user, role):
        return self.client.post(reverse('user_change_role', args=[user.pk]), {'role': role})

    def test_admin_promotes_staff_and_user_is_notified(self) -> None:
        self.change_role(self.staff, Profile.Role.PROFESSIONAL)
        self.staff.profile.refresh_from_db()
        self.assertEqual(self.staff.profile.role, Profile.Role.PROFESSIONAL)
        note = Notification.objects.get(recipient=self.staff)
        self.assertEqual(note.event_type, Notification.EventType.ROLE_CHANGED)
        self.assertEqual(note.metadata['role'], Profile.Role.PROFESSIONAL)

    def test_rules(self) -> None:
        self.change_role(self.admin, Profile.Role.STAFF)
        self.admin.profile.refresh_from_db()
        self.assertEqual(self.admin.profile.role, Profile.Role.ADMIN)

        self.change_role(self.staff, 'owner')
        self.staff.profile.refresh_from_db()
        self.assertEqual(self.staff.profile.role, Profile.Role.STAFF)

        outsider = make_user('outsider@other.test', make_tenant('Other'), role=Profile.Role.STAFF)
        self.change_role(outsider, Profile.Role.ADMIN)
        outsider.profile.refresh_from_db()
        self.assertEqual(outsider.profile.role, Profile.Role.STAFF)

        self.client.force_login(self.staff)
        self.change_role(self.admin, Profile.Role.STAFF)
        self.admin.profile.refresh_from_db()
        self.assertEqual(self.admin.profile.role, Profile.Role.ADMIN)
        self.assertFalse(Notification.objects.exists())

    def test_superuser_can_change_any_clinic(self) -> None:
        outsider = make_user('outsider@other.test', make_tenant('Other'), role=Profile.Role.STAFF)
        self.client.force_login(User.objects.create_superuser('root@test', 'root@test', 'secret123'))
        self.change_role(outsider, Profile.Role.ADMIN)
        outsider.profile.refresh_from_db()
        self.assertEqual(outsider.profile.role, Profile.Role.ADMIN)

    def test_admin_adds_user_to_own_clinic(self) -> None:
        self.client.post(
            reverse('user_add'),
            {'email': 'New@Clinic.test', 'full_name': 'New Person', 'role': Profile.Role.STAFF, 'password': 'longpass1'},
        )
        user = User.objects.get(username='new@clinic.test')
        self.assertEqual(user.profile.tenant, self.tenant)

    def test_admin_pages_hidden_from_staff(self) -> None:
        self.client.force_login(self.staff)
        for name in ('user_list', 'activity_log', 'clinic_settings', 'tax_rate_add'):
            response = self.client.get(reverse(name))
            self.assertRedirects(response, reverse('home'), fetch_redirect_response=False)
