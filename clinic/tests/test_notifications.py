import json

from django.test import TestCase
from django.urls import reverse

from clinic.models import Notification
from clinic.services.notifications import create_notification

from .helpers import make_tenant, make_user


class NotificationApiTests(TestCase):
    def setUp(self) -> None:
        self.tenant = make_tenant()
        self.user = make_user('user@clinic.test', self.tenant)
        self.other = make_user('other@clinic.test', self.tenant)
        self.first = create_notification(
            self.user, title='One', message_en='Hello', message_es='Hola', event_type=Notification.EventType.CUSTOM_MESSAGE
        )
        self.second = create_notification(
            self.user, title='Two', message_en='Second', event_type=Notification.EventType.CUSTOM_MESSAGE
        )
        create_notification(self.other, title='Theirs', message_en='Nope', event_type=Notification.EventType.CUSTOM_MESSAGE)
        self.client.force_login(self.user)

    def mark(self, payload):
        body = payload if isinstance(payload, str) else json.dumps(payload)
        return self.client.post(reverse('notifications_mark_read'), data=body, content_type='application/json')

    def test_unread_uses_session_language(self) -> None:
        data = self.client.get(reverse('notifications_unread')).json()
        self.assertEqual(data['count'], 2)
        self.assertEqual({item['message'] for item in data['notifications']}, {'Hello', 'Second'})

        self.client.get(reverse('toggle_language', args=['es']))
        data = self.client.get(reverse('notifications_unread')).json()
        self.assertIn('Hola', {item['message'] for item in data['notifications']})

    def test_mark_selected_and_all(self) -> None:
        response = self.mark({'ids': [self.first.pk]})
        self.assertEqual(response.json(), {'ok': True, 'updated': 1})
        self.assertEqual(self.client.get(reverse('notifications_unread')).json()['count'], 1)

        response = self.mark({'all': True})
        self.assertEqual(response.json()['updated'], 1)
        self.assertEqual(Notification.objects.filter(recipient=self.other, is_read=False).count(), 1)

    def test_bad_payloads(self) -> None:
        self.assertEqual(self.mark('nope').status_code, 400)
        self.assertEqual(self.mark({}).status_code, 400)
        self.assertEqual(self.mark({'ids': ['x']}).status_code, 400)
        self.assertFalse(self.mark({'ids': []}).json()['updated'])
