"""Working hours, slot grid and appointment endpoints."""

from datetime import date, datetime, time, timedelta

from django.contrib.messages import get_messages
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from clinic.models import Appointment, ClinicSettings, Notification, Profile
from clinic.services import scheduling
from clinic.services.tenancy import TenantContext

from .helpers import make_customer, make_tenant, make_user

MONDAY = date(2026, 3, 2)
SUNDAY = date(2026, 3, 8)


def at(day: date, hour: int, minute: int = 0) -> datetime:
    return timezone.make_aware(datetime.combine(day, time(hour, minute)))


@override_settings(OPTICSHOP_DEFAULT_DAY_START='06:00', OPTICSHOP_DEFAULT_DAY_END='19:00')
class CalendarBoundsTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant(
            working_hours={'monday': {'start': '09:00', 'end': '17:00'}, 'tuesday': {'start': '10:00'}, 'sunday': None},
        )
        self.settings = ClinicSettings.objects.get(tenant=self.tenant)

    def test_configured_day(self) -> None:
        lower, upper = scheduling.calendar_bounds(self.settings, MONDAY)
        self.assertEqual((lower, upper), (at(MONDAY, 9), at(MONDAY, 17)))

    def test_missing_end_opens_until_midnight(self) -> None:
        tuesday = MONDAY + timedelta(days=1)
        lower, upper = scheduling.calendar_bounds(self.settings, tuesday)
        self.assertEqual(lower, at(tuesday, 10))
        self.assertEqual(timezone.localtime(upper).time(), time(23, 59, 59, 999999))

    def test_closed_day_spans_whole_day(self) -> None:
        lower, upper = scheduling.calendar_bounds(self.settings, SUNDAY)
        self.assertEqual(lower, at(SUNDAY, 0))
        self.assertEqual(timezone.localtime(upper).time(), time(23, 59, 59, 999999))

    def test_unconfigured_clinic_uses_defaults(self) -> None:
        lower, upper = scheduling.calendar_bounds(None, MONDAY)
        self.assertEqual((lower, upper), (at(MONDAY, 6), at(MONDAY, 19)))


class WorkingHoursTests(TestCase):
    def setUp(self) -> None:
        tenant = make_tenant(working_hours={'monday': {'start': '09:00', 'end': '17:00'}, 'sunday': None})
        self.settings = ClinicSettings.objects.get(tenant=tenant)

    def test_inside_and_outside(self) -> None:
        self.assertTrue(scheduling.is_within_working_hours(self.settings, at(MONDAY, 9), 30))
        self.assertTrue(scheduling.is_within_working_hours(self.settings, at(MONDAY, 16, 30), 30))
        self.assertFalse(scheduling.is_within_working_hours(self.settings, at(MONDAY, 16, 45), 30))
        self.assertFalse(scheduling.is_within_working_hours(self.settings, at(MONDAY, 8, 30), 30))

    def test_closed_and_unlisted_days(self) -> None:
        self.assertFalse(scheduling.is_within_working_hours(self.settings, at(SUNDAY, 12), 30))
        self.assertFalse(scheduling.is_within_working_hours(self.settings, at(MONDAY + timedelta(days=2), 12), 30))

    def test_no_configuration_accepts_anything(self) -> None:
        self.assertTrue(scheduling.is_within_working_hours(None, at(SUNDAY, 3), 30))


class SlotAndOverlapTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant(
            default_slot_duration_minutes=30,
            working_hours={'monday': {'start': '09:00', 'end': '11:00'}},
        )
        self.settings = ClinicSettings.objects.get(tenant=self.tenant)
        self.customer = make_customer(self.tenant)
        self.ctx = TenantContext(tenant=self.tenant)

    def book(self, start: datetime, minutes: int = 30, **kwargs) -> Appointment:
        return Appointment.objects.create(
            tenant=self.tenant, customer=self.customer, appointment_time=start, duration_minutes=minutes, **kwargs
        )

    def test_slots_mark_busy_intervals(self) -> None:
        long_visit = self.book(at(MONDAY, 9, 15), minutes=45)
        self.book(at(MONDAY, 10, 30), status=Appointment.Status.CANCELLED)
        slots = scheduling.day_slots(self.settings, MONDAY, Appointment.objects.all())
        self.assertEqual([timezone.localtime(s.start).strftime('%H:%M') for s in slots], ['09:00', '09:30', '10:00', '10:30'])
        self.assertEqual([s.busy for s in slots], [True, True, False, False])
        self.assertEqual(slots[0].appointment_ids, [long_visit.pk])

    def test_overlaps_ignore_touching_and_cancelled(self) -> None:
        first = self.book(at(MONDAY, 9))
        self.book(at(MONDAY, 9, 15), status=Appointment.Status.CANCELLED)
        self.assertEqual(scheduling.find_overlaps(self.ctx, at(MONDAY, 9, 20), 30), [first])
        self.assertEqual(scheduling.find_overlaps(self.ctx, at(MONDAY, 9, 30), 30), [])
        self.assertEqual(scheduling.find_overlaps(self.ctx, at(MONDAY, 9), 30, exclude_id=first.pk), [])

    def test_overlaps_are_tenant_scoped(self) -> None:
        other = make_tenant('Other')
        Appointment.objects.create(
            tenant=other, customer=make_customer(other), appointment_time=at(MONDAY, 9), duration_minutes=30
        )
        self.assertEqual(scheduling.find_overlaps(self.ctx, at(MONDAY, 9), 30), [])

    def test_week_start_is_monday(self) -> None:
        self.assertEqual(scheduling.week_start(SUNDAY), MONDAY)
        self.assertEqual(scheduling.week_start(MONDAY), MONDAY)

    def test_normalise_working_hours(self) -> None:
        cleaned = scheduling.normalise_working_hours(
            {'Monday': {'start': '9:00', 'end': '17:00'}, 'sunday': {}, 'holiday': {'start': '10:00'}}
        )
        self.assertEqual(cleaned, {'monday': {'start': '09:00', 'end': '17:00'}, 'sunday': None})


class AppointmentViewTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant(working_hours={'monday': {'start': '09:00', 'end': '17:00'}})
        self.user = make_user('front@clinic.test', self.tenant, role=Profile.Role.STAFF)
        self.doctor = make_user('doctor@clinic.test', self.tenant, role=Profile.Role.PROFESSIONAL)
        self.customer = make_customer(self.tenant)
        self.client.force_login(self.user)

    def post_appointment(self, start: str, **extra):
        data = {
            'customer': self.customer.pk,
            'provider': self.doctor.pk,
            'appointment_time': start,
            'duration_minutes': 30,
            'type': Appointment.Type.EYE_EXAM,
            'status': Appointment.Status.SCHEDULED,
            'notes': '',
        }
        data.update(extra)
        return self.client.post(reverse('appointment_add'), data)

    def test_booking_notifies_provider_and_redirects_to_day(self) -> None:
        response = self.post_appointment('2026-03-02T10:00')
        self.assertRedirects(
            response, f"{reverse('appointment_calendar')}?date=2026-03-02", fetch_redirect_response=False
        )
        appointment = Appointment.objects.get()
        self.assertEqual(appointment.tenant, self.tenant)
        note = Notification.objects.get(recipient=self.doctor)
        self.assertEqual(note.event_type, Notification.EventType.APPOINTMENT_SCHEDULED)
        self.assertEqual(note.metadata['appointment_id'], appointment.pk)

    def test_overlap_and_outside_hours_warn_but_save(self) -> None:
        self.post_appointment('2026-03-02T10:00')
        response = self.post_appointment('2026-03-02T10:15')
        texts = [str(m) for m in get_messages(response.wsgi_request)]
        self.assertTrue(any(text.startswith('Overlaps with') for text in texts))
        response = self.post_appointment('2026-03-02T18:00')
        texts = [str(m) for m in get_messages(response.wsgi_request)]
        self.assertIn('The appointment is outside working hours.', texts)
        self.assertEqual(Appointment.objects.count(), 3)

    def test_rescheduling_resets_reminder(self) -> None:
        appointment = Appointment.objects.create(
            tenant=self.tenant, customer=self.customer, appointment_time=at(MONDAY, 10), reminder_sent=True
        )
        self.client.post(
            reverse('appointment_edit', args=[appointment.pk]),
            {
                'customer': self.customer.pk,
                'provider': '',
                'appointment_time': '2026-03-02T11:00',
                'duration_minutes': 30,
                'type': appointment.type,
                'status': appointment.status,
                'notes': '',
            },
        )
        appointment.refresh_from_db()
        self.assertEqual(appointment.appointment_time, at(MONDAY, 11))
        self.assertFalse(appointment.reminder_sent)

    def test_calendar_page_renders(self) -> None:
        response = self.client.get(reverse('appointment_calendar'), {'date': '2026-03-04'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['days'][0]['date'], MONDAY)
        self.assertEqual(len(response.context['days']), 7)

    def test_events_api(self) -> None:
        kept = Appointment.objects.create(tenant=self.tenant, customer=self.customer, appointment_time=at(MONDAY, 10))
        Appointment.objects.create(
            tenant=self.tenant, customer=self.customer, appointment_time=at(MONDAY, 11),
            status=Appointment.Status.CANCELLED,
        )
        url = reverse('api_appointments')
        events = self.client.get(url, {'start': '2026-03-02', 'end': '2026-03-09'}).json()['events']
        self.assertEqual([event['id'] for event in events], [kept.pk])
        self.assertEqual(events[0]['title'], f'Lopez, Ana ({kept.get_type_display()})')

        events = self.client.get(url, {'start': '2026-03-02', 'end': '2026-03-09', 'include_cancelled': '1'}).json()['events']
        self.assertEqual(len(events), 2)

        response = self.client.get(url, {'start': '2026-03-09', 'end': '2026-03-02'})
        self.assertEqual(response.status_code, 400)

    def test_slots_api(self) -> None:
        Appointment.objects.create(tenant=self.tenant, customer=self.customer, appointment_time=at(MONDAY, 9))
        payload = self.client.get(reverse('api_appointment_slots'), {'date': '2026-03-02'}).json()
        self.assertEqual(payload['date'], '2026-03-02')
        self.assertEqual(payload['slot_minutes'], 30)
        self.assertEqual(len(payload['slots']), 16)
        self.assertTrue(payload['slots'][0]['busy'])
        self.assertFalse(payload['slots'][1]['busy'])

        response = self.client.get(reverse('api_appointment_slots'), {'date': 'not-a-date'})
        self.assertEqual(response.status_code, 400)

    def test_impossible_dates(self) -> None:
        response = self.client.get(reverse('appointment_calendar'), {'date': '2024-02-30'})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.context['anchor'], timezone.localdate())

        response = self.client.get(reverse('api_appointment_slots'), {'date': '2024-02-30'})
        self.assertEqual(response.status_code, 400)

        url = reverse('api_appointments')
        self.assertEqual(self.client.get(url, {'start': '2024-02-30', 'end': '2024-03-05'}).status_code, 400)
        self.assertEqual(self.client.get(url, {'start': '2024-02-01', 'end': '2024-13-01T10:00'}).status_code, 400)
