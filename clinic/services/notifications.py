"""Utility helpers for creating and dispatching user notifications."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from django.contrib.auth.models import User
from django.utils import timezone

from clinic.models import Appointment, Notification, Product, Profile, Tenant

logger = logging.getLogger(__name__)

ROLE_LABELS_ES = {
    Profile.Role.ADMIN: 'Administrador',
    Profile.Role.PROFESSIONAL: 'Profesional',
    Profile.Role.STAFF: 'Personal',
}


def _user_display(user: User | None) -> str:
    """Return a readable label for the given user."""

    if not user:
        return ''
    full_name = user.get_full_name()
    if full_name:
        return full_name
    if user.first_name:
        return user.first_name
    return user.username


def _build_messages(en: str, es: str | None = None) -> Dict[str, Dict[str, str]]:
    """Prepare a metadata payload containing bilingual messages."""

    return {'messages': {'en': en, 'es': es or en}}


def create_notification(
    recipient: User,
    *,
    title: str,
    message_en: str,
    message_es: str | None = None,
    event_type: str,
    tenant: Tenant | None = None,
    extra_metadata: Dict[str, Any] | None = None,
) -> Notification:
    """Create a notification with bilingual messaging support."""

    metadata: Dict[str, Any] = _build_messages(message_en, message_es)
    if extra_metadata:
        metadata.update(extra_metadata)
    return Notification.objects.create(
        recipient=recipient,
        tenant=tenant,
        title=title,
        message=message_en,
        event_type=event_type,
        metadata=metadata,
    )


def _format_datetime(dt) -> str:
    return timezone.localtime(dt).strftime('%Y-%m-%d %H:%M')


def _appointment_context(appointment: Appointment) -> Dict[str, Any]:
    return {
        'appointment_id': appointment.pk,
        'customer_id': appointment.customer_id,
        'start': appointment.appointment_time.isoformat(),
    }


def notify_appointment_scheduled(appointment: Appointment, actor: User | None = None) -> Optional[Notification]:
    """Tell the provider a visit was booked for them."""

    provider = appointment.provider
    if provider is None or provider == actor:
        return None
    start_label = _format_datetime(appointment.appointment_time)
    customer = appointment.customer.display_name
    actor_name = _user_display(actor)
    message_en = f'New appointment with {customer} on {start_label}.'
    message_es = f'Nueva cita con {customer} el {start_label}.'
    if actor_name:
        message_en = f'{actor_name} booked {customer} with you on {start_label}.'
        message_es = f'{actor_name} agendó a {customer} con usted el {start_label}.'
    return create_notification(
        provider,
        title='Appointment scheduled',
        message_en=message_en,
        message_es=message_es,
        event_type=Notification.EventType.APPOINTMENT_SCHEDULED,
        tenant=appointment.tenant,
        extra_metadata={**_appointment_context(appointment), 'actor': actor_name},
    )


def notify_appointment_updated(appointment: Appointment, actor: User | None = None) -> Optional[Notification]:
    provider = appointment.provider
    if provider is None or provider == actor:
        return None
    start_label = _format_datetime(appointment.appointment_time)
    customer = appointment.customer.display_name
    status = appointment.get_status_display()
    return create_notification(
        provider,
        title='Appointment updated',
        message_en=f'Appointment with {customer} on {start_label} was updated ({status}).',
        message_es=f'La cita con {customer} el {start_label} fue actualizada ({status}).',
        event_type=Notification.EventType.APPOINTMENT_UPDATED,
        tenant=appointment.tenant,
        extra_metadata={**_appointment_context(appointment), 'actor': _user_display(actor)},
    )


def notify_appointment_reminder(appointment: Appointment) -> Optional[Notification]:
    provider = appointment.provider
    if provider is None:
        return None
    start_label = _format_datetime(appointment.appointment_time)
    customer = appointment.customer.display_name
    return create_notification(
        provider,
        title='Upcoming appointment',
        message_en=f'Reminder: {customer} is booked at {start_label}.',
        message_es=f'Recordatorio: {customer} tiene cita a las {start_label}.',
        event_type=Notification.EventType.APPOINTMENT_REMINDER,
        tenant=appointment.tenant,
        extra_metadata=_appointment_context(appointment),
    )


def notify_role_changed(profile: Profile, actor: User | None = None) -> Notification:
    role_en = profile.get_role_display()
    role_es = ROLE_LABELS_ES.get(profile.role, role_en)
    actor_name = _user_display(actor)
    message_en = f'Your role is now {role_en}.'
    message_es = f'Su rol ahora es {role_es}.'
    if actor_name:
        message_en = f'{actor_name} changed your role to {role_en}.'
        message_es = f'{actor_name} cambió su rol a {role_es}.'
    return create_notification(
        profile.user,
        title='Role changed',
        message_en=message_en,
        message_es=message_es,
        event_type=Notification.EventType.ROLE_CHANGED,
        tenant=profile.tenant,
        extra_metadata={'role': profile.role, 'actor': actor_name},
    )


def notify_low_stock(tenant: Tenant, products: Sequence[Product], recipients: Iterable[User]) -> List[Notification]:
    """Send one summary notification per recipient listing low stock products."""

    if not products:
        return []
    names = ', '.join(product.name for product in products[:10])
    if len(products) > 10:
        names += f' (+{len(products) - 10})'
    created = []
    for recipient in recipients:
        created.append(
            create_notification(
                recipient,
                title='Low stock',
                message_en=f'{len(products)} product(s) at or below reorder level: {names}.',
                message_es=f'{len(products)} producto(s) en o bajo el nivel de reorden: {names}.',
                event_type=Notification.EventType.LOW_STOCK,
                tenant=tenant,
                extra_metadata={'product_ids': [product.pk for product in products]},
            )
        )
    logger.info('Low stock notice for tenant %s sent to %d user(s)', tenant.pk, len(created))
    return created


def notify_custom_message(
    recipients: Iterable[User],
    *,
    title: str,
    message_en: str,
    message_es: str | None = None,
    actor: User | None = None,
    tenant: Tenant | None = None,
) -> List[Notification]:
    """Send a custom notification to one or more recipients."""

    created: List[Notification] = []
    actor_name = _user_display(actor)
    for recipient in recipients:
        created.append(
            create_notification(
                recipient,
                title=title,
                message_en=message_en,
                message_es=message_es,
                event_type=Notification.EventType.CUSTOM_MESSAGE,
                tenant=tenant,
                extra_metadata={'actor': actor_name} if actor_name else None,
            )
        )
    return created


def localised_message(notification: Notification, lang: str) -> str:
    """Return the notification message for the requested language."""

    payload = notification.metadata or {}
    messages = payload.get('messages', {})
    return messages.get(lang) or messages.get('en') or notification.message


def serialize_notification(notification: Notification, lang: str) -> Dict[str, Any]:
    return {
        'id': notification.pk,
        'title': notification.title,
        'message': localised_message(notification, lang),
        'event_type': notification.event_type,
        'is_read': notification.is_read,
        'created_at': notification.created_at.isoformat(),
        'metadata': {k: v for k, v in (notification.metadata or {}).items() if k != 'messages'},
    }


def mark_notifications_read(user: User, ids: Optional[Iterable[int]] = None) -> int:
    """Mark the user's notifications read; all of them when ``ids`` is None."""

    queryset = Notification.objects.filter(recipient=user, is_read=False)
    if ids is not None:
        queryset = queryset.filter(pk__in=list(ids))
    return queryset.update(is_read=True)
