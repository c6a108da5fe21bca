"""Calendar helpers: working hours, slot grid and overlap detection."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from django.conf import settings as django_settings
from django.utils import timezone

from clinic.models import Appointment, ClinicSettings

WEEKDAYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')

FALLBACK_SLOT_MINUTES = 30
MINIMUM_SLOT_MINUTES = 5

DAY_START = time(0, 0)
DAY_END = time(23, 59, 59, 999999)


@dataclass
class Slot:
    start: datetime
    end: datetime
    appointment_ids: List[int] = field(default_factory=list)

    @property
    def busy(self) -> bool:
        return bool(self.appointment_ids)

    def as_dict(self) -> Dict[str, Any]:
        return {
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'busy': self.busy,
            'appointments': list(self.appointment_ids),
        }


def parse_clock(value: Any) -> Optional[time]:
    """Parse ``"HH:MM"`` (or ``"HH:MM:SS"``) into a :class:`time`."""

    if isinstance(value, time):
        return value
    if not value:
        return None
    text = str(value).strip()
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    return None


def weekday_name(day: date) -> str:
    return WEEKDAYS[day.weekday()]


def _hours_for(clinic_settings: Optional[ClinicSettings], day: date):
    """Return ``(configured, hours)`` for the given day.

    ``configured`` is False when the clinic has no working hours at all.
    ``hours`` is the day's ``{"start", "end"}`` mapping or ``None``.
    """

    working_hours = getattr(clinic_settings, 'working_hours', None) or {}
    if not isinstance(working_hours, dict) or not working_hours:
        return False, None
    hours = working_hours.get(weekday_name(day))
    return True, hours if isinstance(hours, dict) else None


def _aware(day: date, clock: time) -> datetime:
    return timezone.make_aware(datetime.combine(day, clock), timezone.get_current_timezone())


def calendar_bounds(clinic_settings: Optional[ClinicSettings], day: date) -> Tuple[datetime, datetime]:
    """Return the first and last visible instants of ``day`` in the calendar.

    With working hours configured the day's ``start``/``end`` are used and a
    missing part opens the calendar to the start or end of the day.  Without
    any configuration the project defaults (06:00 to 19:00) apply.
    """

    configured, hours = _hours_for(clinic_settings, day)
    if not configured:
        start = parse_clock(django_settings.OPTICSHOP_DEFAULT_DAY_START) or time(6, 0)
        end = parse_clock(django_settings.OPTICSHOP_DEFAULT_DAY_END) or time(19, 0)
        return _aware(day, start), _aware(day, end)
    hours = hours or {}
    start = parse_clock(hours.get('start')) or DAY_START
    end = parse_clock(hours.get('end')) or DAY_END
    return _aware(day, start), _aware(day, end)


def default_duration(clinic_settings: Optional[ClinicSettings]) -> int:
    """Default appointment length in minutes."""

    minutes = getattr(clinic_settings, 'default_slot_duration_minutes', None)
    if not minutes:
        minutes = getattr(django_settings, 'OPTICSHOP_DEFAULT_SLOT_MINUTES', FALLBACK_SLOT_MINUTES)
    return max(int(minutes), MINIMUM_SLOT_MINUTES)


def appointment_end(appointment: Appointment) -> datetime:
    minutes = appointment.duration_minutes or FALLBACK_SLOT_MINUTES
    return appointment.appointment_time + timedelta(minutes=minutes)


def _intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    return start_a < end_b and start_b < end_a


def day_slots(
    clinic_settings: Optional[ClinicSettings],
    day: date,
    appointments: Iterable[Appointment],
) -> List[Slot]:
    """Build the slot grid for ``day`` and mark slots taken by appointments.

    Slots start at the calendar's lower bound and step by the default
    duration; a slot is only offered when it ends inside the bounds.
    Cancelled appointments never occupy a slot.
    """

    lower, upper = calendar_bounds(clinic_settings, day)
    step = timedelta(minutes=default_duration(clinic_settings))
    booked = [
        (appt.pk, appt.appointment_time, appointment_end(appt))
        for appt in appointments
        if appt.status != Appointment.Status.CANCELLED
    ]
    slots: List[Slot] = []
    cursor = lower
    while cursor + step <= upper:
        slot = Slot(start=cursor, end=cursor + step)
        for appt_id, appt_start, appt_end in booked:
            if _intervals_overlap(slot.start, slot.end, appt_start, appt_end):
                slot.appointment_ids.append(appt_id)
        slots.append(slot)
        cursor += step
    return slots


def find_overlaps(
    tenant_ctx,
    start: datetime,
    duration_minutes: int,
    exclude_id: Optional[int] = None,
) -> List[Appointment]:
    """Return active appointments intersecting ``[start, start + duration)``."""

    end = start + timedelta(minutes=duration_minutes or FALLBACK_SLOT_MINUTES)
    # Candidates start before our end and at most a day earlier than our start.
    candidates = (
        tenant_ctx.scope(Appointment.objects.all())
        .filter(appointment_time__lt=end, appointment_time__gt=start - timedelta(days=1))
        .exclude(status=Appointment.Status.CANCELLED)
        .select_related('customer')
    )
    if exclude_id:
        candidates = candidates.exclude(pk=exclude_id)
    return [
        appt for appt in candidates
        if _intervals_overlap(start, end, appt.appointment_time, appointment_end(appt))
    ]


def is_within_working_hours(
    clinic_settings: Optional[ClinicSettings],
    start: datetime,
    duration_minutes: int,
) -> bool:
    """Check an appointment against the clinic's opening hours.

    Clinics without configured working hours accept any time.  A weekday
    that is configured as closed rejects every appointment.
    """

    local_start = timezone.localtime(start) if timezone.is_aware(start) else start
    configured, hours = _hours_for(clinic_settings, local_start.date())
    if not configured:
        return True
    if hours is None:
        return False
    open_at = parse_clock(hours.get('start')) or DAY_START
    close_at = parse_clock(hours.get('end')) or DAY_END
    local_end = local_start + timedelta(minutes=duration_minutes or FALLBACK_SLOT_MINUTES)
    if local_end.date() != local_start.date():
        return False
    return open_at <= local_start.time() and local_end.time() <= close_at


def event_title(appointment: Appointment) -> str:
    return f"{appointment.customer.display_name} ({appointment.get_type_display()})"


def serialize_event(appointment: Appointment) -> Dict[str, Any]:
    """Serialise an appointment for the calendar JSON API."""

    provider = appointment.provider
    return {
        'id': appointment.pk,
        'title': event_title(appointment),
        'start': appointment.appointment_time.isoformat(),
        'end': appointment_end(appointment).isoformat(),
        'status': appointment.status,
        'type': appointment.type,
        'customer_id': appointment.customer_id,
        'provider_id': appointment.provider_id,
        'provider': (provider.get_full_name() or provider.username) if provider else '',
    }


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""

    return day - timedelta(days=day.weekday())


def normalise_working_hours(raw: Dict[str, Any]) -> Dict[str, Optional[Dict[str, str]]]:
    """Clean a submitted working-hours mapping.

    Unknown keys are dropped, day names are lower-cased and a day without a
    start and end is stored as closed (``None``).
    """

    cleaned: Dict[str, Optional[Dict[str, str]]] = {}
    for key, value in (raw or {}).items():
        day = str(key).strip().lower()
        if day not in WEEKDAYS:
            continue
        if not isinstance(value, dict):
            cleaned[day] = None
            continue
        start = parse_clock(value.get('start'))
        end = parse_clock(value.get('end'))
        if start is None and end is None:
            cleaned[day] = None
            continue
        entry: Dict[str, str] = {}
        if start is not None:
            entry['start'] = start.strftime('%H:%M')
        if end is not None:
            entry['end'] = end.strftime('%H:%M')
        cleaned[day] = entry
    return cleaned
