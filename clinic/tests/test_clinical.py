"""Medical records and prescriptions."""

from datetime import date

from django.test import TestCase
from django.urls import reverse

from clinic.models import MedicalRecord, Prescription, Profile

from .helpers import make_customer, make_tenant, make_user


def prescription_payload(customer, **overrides):
    data = {
        'customer': customer.pk,
        'medical_record': '',
        'prescriber_name': '',
        'prescription_date': '2026-03-02',
        'expiry_date': '2027-03-02',
        'type': Prescription.Type.GLASSES,
        'notes': '',
        'od_sph': '-1.25',
        'od_cyl': '-0.50',
        'od_axis': '90',
        'od_add': '',
        'od_bc': '8.6',
        'os_sph': '-1.00',
    }
    data.update(overrides)
    return data


class PrescriptionTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant()
        self.doctor = make_user('doctor@clinic.test', self.tenant, role=Profile.Role.PROFESSIONAL, first_name='Dr. Vera')
        self.customer = make_customer(self.tenant)
        self.client.force_login(self.doctor)

    def test_params_follow_prescription_type(self) -> None:
        response = self.client.post(reverse('prescription_add'), prescription_payload(self.customer))
        prescription = Prescription.objects.get()
        self.assertRedirects(response, reverse('prescription_detail', args=[prescription.pk]), fetch_redirect_response=False)
        self.assertEqual(prescription.od_params, {'sph': -1.25, 'cyl': -0.5, 'axis': 90, 'add': None, 'prism': None})
        self.assertEqual(prescription.os_params['sph'], -1.0)
        self.assertNotIn('bc', prescription.od_params)
        self.assertEqual(prescription.prescriber, self.doctor)
        self.assertEqual(prescription.prescriber_name, 'Dr. Vera')

        payload = prescription_payload(self.customer, type=Prescription.Type.CONTACT_LENS, od_brand='Acme')
        self.client.post(reverse('prescription_edit', args=[prescription.pk]), payload)
        prescription.refresh_from_db()
        self.assertEqual(prescription.od_params['bc'], 8.6)
        self.assertEqual(prescription.od_params['brand'], 'Acme')
        self.assertNotIn('add', prescription.od_params)

        detail = self.client.get(reverse('prescription_detail', args=[prescription.pk]))
        self.assertContains(detail, 'Acme')

    def test_validation(self) -> None:
        response = self.client.post(reverse('prescription_add'), prescription_payload(self.customer, expiry_date='2026-01-01'))
        self.assertEqual(response.status_code, 200)
        response = self.client.post(reverse('prescription_add'), prescription_payload(self.customer, od_axis='200'))
        self.assertEqual(response.status_code, 200)
        other_record = MedicalRecord.objects.create(
            tenant=self.tenant, customer=make_customer(self.tenant, 'Other', 'Patient'), record_date=date(2026, 3, 1)
        )
        response = self.client.post(
            reverse('prescription_add'), prescription_payload(self.customer, medical_record=other_record.pk)
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Prescription.objects.exists())

    def test_staff_cannot_write(self) -> None:
        self.client.force_login(make_user('desk@clinic.test', self.tenant, role=Profile.Role.STAFF))
        response = self.client.post(reverse('prescription_add'), prescription_payload(self.customer))
        self.assertRedirects(response, reverse('home'), fetch_redirect_response=False)
        self.assertFalse(Prescription.objects.exists())
        self.assertEqual(self.client.get(reverse('prescription_list')).status_code, 200)


class MedicalRecordTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant()
        self.doctor = make_user('doctor@clinic.test', self.tenant, role=Profile.Role.PROFESSIONAL)
        self.customer = make_customer(self.tenant)
        self.client.force_login(self.doctor)

    def test_record_lifecycle(self) -> None:
        response = self.client.post(
            reverse('medical_record_add'),
            {
                'customer': self.customer.pk,
                'professional': self.doctor.pk,
                'record_date': '2026-03-02',
                'chief_complaint': 'Blurry vision',
                'diagnosis': 'Myopia',
            },
        )
        record = MedicalRecord.objects.get()
        self.assertRedirects(response, reverse('customer_detail', args=[self.customer.pk]), fetch_redirect_response=False)
        self.assertEqual(record.tenant, self.tenant)

        listing = self.client.get(reverse('medical_record_list'), {'customer': self.customer.pk})
        self.assertEqual(list(listing.context['page']), [record])

        self.client.post(reverse('medical_record_delete', args=[record.pk]))
        self.assertFalse(MedicalRecord.objects.exists())

    def test_foreign_customer_rejected(self) -> None:
        foreign = make_customer(make_tenant('Other'))
        response = self.client.post(
            reverse('medical_record_add'),
            {'customer': foreign.pk, 'record_date': '2026-03-02'},
        )
        self.assertEqual(response.status_code, 200)
        self.assertFalse(MedicalRecord.objects.exists())
