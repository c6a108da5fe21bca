"""Customer records, notes and workbook round trips."""

from datetime import timedelta
from io import BytesIO

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone
from openpyxl import Workbook, load_workbook

from clinic.models import ActivityLog, Customer, CustomerNote, Profile
from clinic.services.customer_workbook import (
    COLUMN_DEFINITIONS,
    CustomerWorkbookError,
    import_customers_workbook,
)

from .helpers import make_customer, make_tenant, make_user

XLSX = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def workbook_upload(rows, header=None) -> SimpleUploadedFile:
    wb = Workbook()
    ws = wb.active
    ws.append(header or [label for _, label in COLUMN_DEFINITIONS])
    for row in rows:
        ws.append(row)
    buffer = BytesIO()
    wb.save(buffer)
    return SimpleUploadedFile('customers.xlsx', buffer.getvalue(), content_type=XLSX)


def row(email='', first='', last='', dob=''):
    values = [email, first, last, dob] + [''] * (len(COLUMN_DEFINITIONS) - 4)
    return values


class CustomerDisplayNameTests(TestCase):
    def test_missing_name_parts(self) -> None:
        self.assertEqual(Customer(last_name='Ruiz').display_name, 'Ruiz')
        self.assertEqual(Customer(first_name=' Eva ').display_name, 'Eva')
        self.assertEqual(Customer(first_name='', last_name='  ').display_name, 'Unnamed Customer')


class CustomerViewTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant()
        self.user = make_user('desk@clinic.test', self.tenant, role=Profile.Role.STAFF)
        self.client.force_login(self.user)

    def test_create_edit_delete(self) -> None:
        response = self.client.post(reverse('customer_add'), {'first_name': 'Eva', 'last_name': 'Diaz', 'email': 'eva@example.com'})
        customer = Customer.objects.get()
        self.assertRedirects(response, reverse('customer_detail', args=[customer.pk]), fetch_redirect_response=False)
        self.assertEqual(customer.tenant, self.tenant)
        self.assertTrue(ActivityLog.objects.filter(action='Added customer', tenant=self.tenant).exists())

        self.client.post(reverse('customer_edit', args=[customer.pk]), {'first_name': 'Eva', 'last_name': 'Ruiz'})
        customer.refresh_from_db()
        self.assertEqual(customer.display_name, 'Ruiz, Eva')

        self.client.post(reverse('customer_delete', args=[customer.pk]))
        self.assertFalse(Customer.objects.exists())

    def test_name_required_and_birth_date_not_in_future(self) -> None:
        response = self.client.post(reverse('customer_add'), {'first_name': ' ', 'last_name': ''})
        self.assertEqual(response.status_code, 200)
        tomorrow = (timezone.localdate() + timedelta(days=1)).isoformat()
        response = self.client.post(reverse('customer_add'), {'last_name': 'Diaz', 'date_of_birth': tomorrow})
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Customer.objects.exists())

    def test_search(self) -> None:
        make_customer(self.tenant, 'Eva', 'Diaz', phone='555-0101')
        make_customer(self.tenant, 'Luis', 'Mora')
        response = self.client.get(reverse('customer_list'), {'q': '0101'})
        self.assertContains(response, 'Diaz, Eva')
        self.assertNotContains(response, 'Mora, Luis')

    def test_detail_shows_notes(self) -> None:
        customer = make_customer(self.tenant)
        self.client.post(reverse('customer_note_add', args=[customer.pk]), {'note': 'Prefers metal frames'})
        response = self.client.get(reverse('customer_detail', args=[customer.pk]))
        self.assertContains(response, 'Prefers metal frames')

    def test_only_author_or_admin_deletes_note(self) -> None:
        customer = make_customer(self.tenant)
        colleague = make_user('colleague@clinic.test', self.tenant, role=Profile.Role.STAFF)
        note = CustomerNote.objects.create(tenant=self.tenant, customer=customer, user=colleague, note='Called')
        self.client.post(reverse('customer_note_delete', args=[customer.pk, note.pk]))
        self.assertTrue(CustomerNote.objects.filter(pk=note.pk).exists())

        self.client.force_login(make_user('boss@clinic.test', self.tenant, role=Profile.Role.ADMIN))
        self.client.post(reverse('customer_note_delete', args=[customer.pk, note.pk]))
        self.assertFalse(CustomerNote.objects.filter(pk=note.pk).exists())


class CustomerWorkbookTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant()
        self.client.force_login(make_user('desk@clinic.test', self.tenant))

    def test_export_lists_tenant_customers(self) -> None:
        make_customer(self.tenant, 'Eva', 'Diaz', email='eva@example.com')
        make_customer(make_tenant('Other'), 'Hidden', 'Person')
        response = self.client.get(reverse('customer_export_workbook'))
        self.assertEqual(response['Content-Type'], XLSX)
        sheet = load_workbook(BytesIO(response.content)).active
        rows = list(sheet.iter_rows(values_only=True))
        self.assertEqual(rows[0][0], 'Email')
        self.assertEqual([r[0] for r in rows[1:]], ['eva@example.com'])

    def test_import_creates_and_updates_by_email(self) -> None:
        existing = make_customer(self.tenant, 'Eva', 'Diaz', email='eva@example.com')
        upload = workbook_upload([
            row('EVA@example.com', 'Eva', 'Ruiz', '1990-05-01'),
            row('', 'New', 'Person'),
            row('bad-email', 'Broken', 'Row'),
        ])
        result = import_customers_workbook(upload, tenant=self.tenant)
        self.assertEqual((result.created, result.updated), (1, 1))
        self.assertEqual(len(result.errors), 1)
        self.assertTrue(result.errors[0].startswith('Row 4'))
        existing.refresh_from_db()
        self.assertEqual(existing.last_name, 'Ruiz')
        self.assertEqual(existing.date_of_birth.isoformat(), '1990-05-01')

    def test_import_rejects_wrong_headers(self) -> None:
        with self.assertRaises(CustomerWorkbookError):
            import_customers_workbook(workbook_upload([row('', 'A', 'B')], header=['Name']), tenant=self.tenant)
        with self.assertRaises(CustomerWorkbookError):
            import_customers_workbook(workbook_upload([row('x@example.com')]), tenant=self.tenant)

    def test_import_view(self) -> None:
        response = self.client.post(
            reverse('customer_import_workbook'),
            {'workbook': workbook_upload([row('ana@example.com', 'Ana', 'Lopez')])},
        )
        self.assertRedirects(response, reverse('customer_list'), fetch_redirect_response=False)
        self.assertEqual(Customer.objects.get().tenant, self.tenant)

    def test_import_reports_impossible_birth_date(self) -> None:
        upload = workbook_upload([row('', 'Leap', 'Day', '2023-02-29')])
        result = import_customers_workbook(upload, tenant=self.tenant)
        self.assertEqual(result.created, 0)
        self.assertTrue(result.errors[0].startswith('Row 2'))
