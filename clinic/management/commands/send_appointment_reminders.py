"""Notify providers about appointments that are about to start.

Usage::

    python manage.py send_appointment_reminders --minutes 60

Every scheduled or confirmed appointment starting within the next
``--minutes`` minutes (default ``OPTICSHOP_REMINDER_MINUTES``) whose
reminder has not been sent yet produces one notification for its
provider; the appointment is then flagged so the reminder is sent only
once.  ``--loop`` keeps the command running, checking every minute.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta

from django.conf import settings
from django.core.management.base import BaseCommand
from django.utils import timezone

from clinic.models import Appointment
from clinic.services.notifications import notify_appointment_reminder

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Send reminder notifications for upcoming appointments."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            '--minutes',
            type=int,
            default=settings.OPTICSHOP_REMINDER_MINUTES,
            help='Look-ahead window in minutes',
        )
        parser.add_argument(
            '--loop',
            action='store_true',
            help='Keep running, checking once per minute',
        )

    def send_reminders(self, minutes: int) -> int:
        now = timezone.now()
        due = Appointment.objects.filter(
            appointment_time__gte=now,
            appointment_time__lte=now + timedelta(minutes=minutes),
            status__in=[Appointment.Status.SCHEDULED, Appointment.Status.CONFIRMED],
            reminder_sent=False,
        ).select_related('customer', 'provider', 'tenant')
        sent = 0
        for appointment in due:
            if notify_appointment_reminder(appointment) is not None:
                sent += 1
            appointment.reminder_sent = True
            appointment.save(update_fields=['reminder_sent', 'updated_at'])
        logger.info('Sent %d appointment reminder(s)', sent)
        return sent

    def handle(self, *args, **options) -> None:
        minutes: int = max(options['minutes'], 1)
        if options['loop']:
            while True:
                self.stdout.write(f'Sent {self.send_reminders(minutes)} reminder(s).')
                time.sleep(60)
        sent = self.send_reminders(minutes)
        self.stdout.write(self.style.SUCCESS(f'Sent {sent} reminder(s).'))
