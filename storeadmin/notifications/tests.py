"""
Test suite for Notifications module
Tests: Notification hub, e-mail and SMS services, notification endpoints
"""
from datetime import timedelta
from decimal import Decimal
from unittest import mock

import requests
from django.core import mail
from django.test import TestCase, SimpleTestCase, override_settings
from django.utils import timezone
from rest_framework import status

from storeadmin.core.models import AuditLog
from storeadmin.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from storeadmin.notifications.email_service import EmailService, EmailError
from storeadmin.notifications.notification_service import (
    NotificationService, NotificationError, DEFAULT_CHANNELS, generate_notification_id,
)
from storeadmin.notifications.sms_service import SMSService, SMSError

SMS_CONFIG = {
    'ENABLED': True,
    'PROVIDER': 'twilio',
    'FROM': '+15550000000',
    'ACCOUNT_SID': 'AC123',
    'AUTH_TOKEN': 'secret',
    'API_KEY': 'key',
    'API_SECRET': 'secret',
    'DEFAULT_COUNTRY_CODE': '1',
    'TIMEOUT': 5,
}


def sms_response(payload):
    response = mock.Mock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


class NotificationServiceTests(SimpleTestCase):
    """Test the in-process notification hub"""

    def setUp(self):
        self.email_service = mock.Mock()
        self.sms_service = mock.Mock()
        self.service = NotificationService(
            email_service=self.email_service,
            sms_service=self.sms_service,
            max_history_size=5,
        )

    def test_default_channels(self):
        """Test default channels exist and cannot be recreated"""
        self.assertEqual(set(self.service.get_channels()), set(DEFAULT_CHANNELS))
        self.assertFalse(self.service.create_channel('orders'))
        self.assertTrue(self.service.create_channel('marketing'))

    def test_notification_id_format(self):
        """Test ids are lowercase base 36"""
        notification_id = generate_notification_id()
        self.assertRegex(notification_id, r'^[0-9a-z]+$')
        self.assertGreater(len(notification_id), 5)

    def test_send_notification_stamps_payload(self):
        """Test id and timestamp are added and payload keys are kept"""
        notification = self.service.send_notification({'title': 'Hello', 'channel': 'system'})
        self.assertIn('id', notification)
        self.assertTrue(timezone.is_aware(notification['timestamp']))
        self.assertEqual(notification['title'], 'Hello')

    def test_history_newest_first_and_capped(self):
        """Test the oldest entries are evicted once the cap is reached"""
        for i in range(7):
            self.service.send_notification({'title': f'n{i}', 'channel': 'orders'})

        history = self.service.get_notification_history()
        self.assertEqual([n['title'] for n in history], ['n6', 'n5', 'n4', 'n3', 'n2'])
        channel_history = self.service.get_notification_history(channel='orders')
        self.assertEqual(len(channel_history), 5)
        self.assertEqual(channel_history[0]['title'], 'n6')

    def test_unknown_channel_only_in_global_history(self):
        """Test a notification for an unknown channel is kept globally only"""
        callback = mock.Mock()
        self.service.subscribe({'type': 'channel', 'target': 'nowhere', 'callback': callback})
        self.service.send_notification({'title': 'Lost', 'channel': 'nowhere'})

        callback.assert_not_called()
        self.assertEqual(self.service.get_notification_history()[0]['title'], 'Lost')
        self.assertEqual(self.service.get_channels()['system'], 0)

    def test_channel_and_user_subscribers(self):
        """Test channel subscribers are called before user subscribers"""
        calls = []
        self.service.subscribe({'type': 'channel', 'target': 'orders', 'callback': lambda n: calls.append('channel')})
        self.service.subscribe({'type': 'user', 'target': 7, 'callback': lambda n: calls.append('user7')})
        self.service.subscribe({'type': 'user', 'target': 8, 'callback': lambda n: calls.append('user8')})

        self.service.send_notification({'title': 'Order', 'channel': 'orders', 'users': [7]})
        self.assertEqual(calls, ['channel', 'user7'])

    def test_raising_subscriber_does_not_stop_delivery(self):
        """Test one failing callback does not block the others"""
        failing = mock.Mock(side_effect=RuntimeError('boom'))
        working = mock.Mock()
        self.service.subscribe({'type': 'channel', 'target': 'system', 'callback': failing})
        self.service.subscribe({'type': 'channel', 'target': 'system', 'callback': working})

        with self.assertLogs('storeadmin.notifications', level='ERROR'):
            self.service.send_notification({'title': 'x', 'channel': 'system'})
        working.assert_called_once()

    def test_global_listener(self):
        """Test listeners receive every notification"""
        listener = self.service.on_notification(mock.Mock())
        self.service.send_notification({'title': 'a'})
        self.service.send_notification({'title': 'b', 'channel': 'system'})
        self.assertEqual(listener.call_count, 2)

    def test_subscribe_requires_callable(self):
        """Test subscribe rejects a non-callable callback"""
        with self.assertRaisesMessage(NotificationError, 'Failed to create subscription: Callback must be a function'):
            self.service.subscribe({'type': 'channel', 'target': 'system', 'callback': 'nope'})

    def test_unsubscribe(self):
        """Test unsubscribe removes the callback and reports whether it existed"""
        callback = mock.Mock()
        subscription_id = self.service.subscribe({'type': 'channel', 'target': 'system', 'callback': callback})

        self.assertTrue(self.service.unsubscribe(subscription_id))
        self.assertFalse(self.service.unsubscribe(subscription_id))
        self.service.send_notification({'title': 'x', 'channel': 'system'})
        callback.assert_not_called()

    def test_history_user_filter_and_pagination(self):
        """Test user filter, offset and limit"""
        self.service.send_notification({'title': 'a', 'users': [1]})
        self.service.send_notification({'title': 'b', 'users': [2]})
        self.service.send_notification({'title': 'c', 'users': [1, 2]})

        self.assertEqual([n['title'] for n in self.service.get_notification_history(user_id=1)], ['c', 'a'])
        self.assertEqual([n['title'] for n in self.service.get_notification_history(limit=1, offset=1)], ['b'])

    def test_history_date_range_needs_both_bounds(self):
        """Test the date filter is ignored unless both bounds are set"""
        self.service.send_notification({'title': 'now'})
        future = timezone.now() + timedelta(days=1)

        self.assertEqual(len(self.service.get_notification_history(start_date=future)), 1)
        self.assertEqual(
            len(self.service.get_notification_history(start_date=future, end_date=future + timedelta(days=1))),
            0,
        )

    def test_email_side_effect(self):
        """Test e-mail is sent with a default HTML body"""
        self.service.send_notification({
            'title': 'Stock <low>',
            'message': 'Reorder soon',
            'email': {'to': ['ops@example.com']},
        })
        kwargs = self.email_service.send_email.call_args.kwargs
        self.assertEqual(kwargs['to'], ['ops@example.com'])
        self.assertEqual(kwargs['subject'], 'Stock <low>')
        self.assertIn('&lt;low&gt;', kwargs['html'])

    def test_email_template_side_effect(self):
        """Test templated e-mail receives the notification context"""
        self.service.send_notification({
            'title': 'Hi',
            'email': {'to': ['a@example.com'], 'template': 'notification', 'context': {'extra': 1}},
        })
        kwargs = self.email_service.send_with_template.call_args.kwargs
        self.assertEqual(kwargs['template'], 'notification')
        self.assertEqual(kwargs['context']['extra'], 1)
        self.assertEqual(kwargs['context']['notification']['title'], 'Hi')

    def test_side_effect_failures_are_swallowed(self):
        """Test e-mail and SMS failures do not fail the notification"""
        self.email_service.send_email.side_effect = EmailError('smtp down')
        self.sms_service.send_sms.side_effect = SMSError('no provider')

        with self.assertLogs('storeadmin.notifications', level='ERROR'):
            notification = self.service.send_notification({
                'title': 'x',
                'message': 'body',
                'email': {'to': ['a@example.com']},
                'sms': {'to': '5551234567'},
            })
        self.assertEqual(notification['title'], 'x')
        self.sms_service.send_sms.assert_called_once_with('5551234567', 'body')

    def test_system_notification_persistence(self):
        """Test warning and error system notifications are persistent"""
        self.assertFalse(self.service.create_system_notification('a', 'b')['persistent'])
        warning = self.service.create_system_notification('a', 'b', level='warning')
        self.assertTrue(warning['persistent'])
        self.assertEqual(warning['channel'], 'system')

    def test_typed_helpers(self):
        """Test the per-domain helpers set channel, type and reference"""
        user = self.service.create_user_notification(3, 'Hi', 'msg')
        self.assertEqual(user['users'], [3])
        self.assertEqual(user['channel'], 'users')

        order = self.service.create_order_notification(10, 'Order', 'msg')
        self.assertEqual((order['type'], order['orderId'], order['channel']), ('order', 10, 'orders'))

        stock = self.service.create_inventory_notification(5, 'Stock', 'msg')
        self.assertEqual((stock['type'], stock['productId'], stock['channel']), ('inventory', 5, 'inventory'))

        payment = self.service.create_payment_notification(2, 'Paid', 'msg')
        self.assertEqual((payment['type'], payment['paymentId'], payment['channel']), ('payment', 2, 'payments'))


@override_settings(EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend')
class EmailServiceTests(TestCase):
    """Test e-mail delivery through the Django mail backend"""

    def setUp(self):
        self.service = EmailService(enabled=True, from_email='shop@example.com')

    def test_disabled(self):
        """Test a disabled service sends nothing"""
        result = EmailService(enabled=False).send_email('a@example.com', 'Subject', 'Body')
        self.assertEqual(result, {'success': False, 'message': 'Email service is disabled'})
        self.assertEqual(len(mail.outbox), 0)

    def test_send_email(self):
        """Test plain and HTML parts are sent"""
        result = self.service.send_email('a@example.com', 'Subject', 'Body', html='<p>Body</p>', cc='b@example.com')
        self.assertTrue(result['success'])
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ['a@example.com'])
        self.assertEqual(message.cc, ['b@example.com'])
        self.assertEqual(message.from_email, 'shop@example.com')
        self.assertEqual(message.alternatives[0][1], 'text/html')
        self.assertEqual(message.extra_headers['Message-ID'], result['messageId'])

    def test_send_with_missing_template(self):
        """Test an unknown template raises EmailError"""
        with self.assertRaisesMessage(EmailError, 'Failed to load email template: missing'):
            self.service.send_with_template('a@example.com', 'Subject', 'missing')

    def test_welcome_email(self):
        """Test the welcome template is rendered"""
        user = TestDataFactory.create_user(username='jane')
        self.service.send_welcome_email(user)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn('Welcome', mail.outbox[0].subject)
        self.assertIn('jane', mail.outbox[0].body)

    def test_order_confirmation_email(self):
        """Test the order confirmation goes to the customer"""
        customer = TestDataFactory.create_customer(email='buyer@example.com')
        order = TestDataFactory.create_order(customer=customer, total=Decimal('42.50'))
        TestDataFactory.create_payment(order)

        self.service.send_order_confirmation_email(order)
        self.assertEqual(mail.outbox[0].to, ['buyer@example.com'])
        self.assertIn(order.order_number, mail.outbox[0].subject)
        self.assertIn('42.50', mail.outbox[0].body)

    def test_order_confirmation_without_customer(self):
        order = TestDataFactory.create_order()
        with self.assertRaises(EmailError):
            self.service.send_order_confirmation_email(order)


class SMSServiceTests(SimpleTestCase):
    """Test SMS delivery with the HTTP session mocked"""

    def setUp(self):
        self.session = mock.Mock()
        self.service = SMSService(config=dict(SMS_CONFIG), session=self.session)

    def test_format_phone_number(self):
        """Test 10-digit numbers get the default country code"""
        self.assertEqual(self.service.format_phone_number('(555) 123-4567'), '+15551234567')
        self.assertEqual(self.service.format_phone_number('+44 20 7946 0958'), '+442079460958')

    def test_disabled(self):
        service = SMSService(config={'ENABLED': False}, session=self.session)
        self.assertEqual(service.send_sms('5551234567', 'hi'), {'success': False, 'message': 'SMS service is disabled'})
        self.session.post.assert_not_called()

    def test_unsupported_provider(self):
        """Test an unknown provider leaves the service without a provider"""
        with self.assertLogs('storeadmin.notifications', level='WARNING'):
            service = SMSService(config={**SMS_CONFIG, 'PROVIDER': 'carrier-pigeon'}, session=self.session)
        self.assertIsNone(service.provider)
        with self.assertRaisesMessage(SMSError, 'Failed to send SMS: SMS provider not initialized'):
            service.send_sms('5551234567', 'hi')

    def test_twilio_send(self):
        """Test the Twilio request and result"""
        self.session.post.return_value = sms_response({'sid': 'SM1'})
        result = self.service.send_sms('5551234567', 'hello')

        self.assertEqual(result['messageId'], 'SM1')
        args, kwargs = self.session.post.call_args
        self.assertIn('/Accounts/AC123/Messages.json', args[0])
        self.assertEqual(kwargs['data']['To'], '+15551234567')
        self.assertEqual(kwargs['auth'], ('AC123', 'secret'))

    def test_twilio_http_error(self):
        """Test HTTP failures raise SMSError"""
        self.session.post.side_effect = requests.exceptions.ConnectionError('down')
        with self.assertRaises(SMSError):
            self.service.send_sms('5551234567', 'hello')

    def test_nexmo_send(self):
        """Test the Nexmo request strips the plus sign"""
        service = SMSService(config={**SMS_CONFIG, 'PROVIDER': 'nexmo'}, session=self.session)
        self.session.post.return_value = sms_response({'messages': [{'status': '0', 'message-id': 'N1'}]})

        result = service.send_sms('5551234567', 'hello')
        self.assertEqual(result['messageId'], 'N1')
        self.assertEqual(self.session.post.call_args.kwargs['data']['to'], '15551234567')

    def test_nexmo_rejected(self):
        """Test a non-zero Nexmo status raises SMSError"""
        service = SMSService(config={**SMS_CONFIG, 'PROVIDER': 'nexmo'}, session=self.session)
        self.session.post.return_value = sms_response({'messages': [{'status': '4', 'error-text': 'Bad credentials'}]})
        with self.assertRaisesMessage(SMSError, 'Bad credentials'):
            service.send_sms('5551234567', 'hello')

    def test_send_otp(self):
        self.session.post.return_value = sms_response({'sid': 'SM2'})
        self.service.send_otp('5551234567', '123456')
        self.assertIn('123456', self.session.post.call_args.kwargs['data']['Body'])

    def test_order_messages(self):
        """Test order confirmation and status update texts"""
        self.session.post.return_value = sms_response({'sid': 'SM3'})
        order = mock.Mock(order_number='ORD-1', total=Decimal('12.00'))

        self.service.send_order_confirmation(order, '5551234567')
        self.assertIn('Total: $12.00', self.session.post.call_args.kwargs['data']['Body'])

        self.service.send_order_status_update(order, '5551234567', 'shipped')
        body = self.session.post.call_args.kwargs['data']['Body']
        self.assertIn('shipped', body)
        self.assertIn('/track/ORD-1', body)


class NotificationAPITests(TestCase):
    """Test notification endpoints"""

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.admin = TestDataFactory.create_admin()
        self.user = TestDataFactory.create_user()
        self.service = NotificationService(email_service=mock.Mock(), sms_service=mock.Mock())
        patcher = mock.patch('storeadmin.notifications.views.get_notification_service', return_value=self.service)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_send_notification(self):
        """Test admin can send a notification"""
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/notifications/', {
            'title': 'Restock',
            'message': 'Widgets arrived',
            'channel': 'inventory',
            'users': [self.user.id],
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['title'], 'Restock')
        self.assertEqual(self.service.get_channels()['inventory'], 1)
        self.assertTrue(AuditLog.objects.filter(action='notification_send').exists())

    def test_send_notification_validation(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/notifications/', {'message': 'no title'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('title', response.data['errors'])

    def test_send_notification_forbidden_for_non_admin(self):
        self.client.authenticate_user(self.user)
        response = self.client.post('/api/v1/notifications/', {'title': 'x'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_system_notification(self):
        self.client.authenticate_user(self.admin)
        response = self.client.post('/api/v1/notifications/system/', {
            'title': 'Maintenance',
            'message': 'Tonight',
            'level': 'warning',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['data']['persistent'])

    def test_history_non_staff_sees_own(self):
        """Test non-staff users only see notifications addressed to them"""
        self.service.create_user_notification([self.user.id], 'Mine', 'msg')
        self.service.create_user_notification([self.admin.id], 'Theirs', 'msg')
        self.service.create_system_notification('Broadcast', 'msg')

        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/notifications/history/', {'user_id': self.admin.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        titles = [n['title'] for n in response.data['data']['notifications']]
        self.assertEqual(titles, ['Mine'])

    def test_history_admin_sees_all(self):
        self.service.create_user_notification([self.user.id], 'Mine', 'msg')
        self.service.create_system_notification('Broadcast', 'msg')

        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/notifications/history/')
        self.assertEqual(response.data['data']['count'], 2)

    def test_history_invalid_limit(self):
        self.client.authenticate_user(self.admin)
        response = self.client.get('/api/v1/notifications/history/', {'limit': 0})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_channel_list(self):
        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/notifications/channels/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual({c['name'] for c in response.data['data']}, set(DEFAULT_CHANNELS))
