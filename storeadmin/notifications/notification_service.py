"""
In-process notification hub.

Notifications are stamped, kept in bounded newest-first history buffers
(one global, one per channel) and delivered synchronously to callbacks
subscribed to a channel or to a user id. Optional e-mail and SMS side
effects go through EmailService and SMSService. Nothing is persisted.
"""
import logging
import secrets
import threading
import time
from collections import deque

from django.conf import settings
from django.utils import timezone
from django.utils.html import format_html

from storeadmin.core.exceptions import ServiceError

logger = logging.getLogger('storeadmin.notifications')

DEFAULT_CHANNELS = ('system', 'orders', 'inventory', 'users', 'payments')
BASE36_ALPHABET = '0123456789abcdefghijklmnopqrstuvwxyz'


class NotificationError(ServiceError):
    pass


def _base36(number):
    if number == 0:
        return '0'
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return ''.join(reversed(digits))


def generate_notification_id():
    """Millisecond timestamp in base 36 followed by 5 random base-36 characters"""
    random_part = ''.join(secrets.choice(BASE36_ALPHABET) for _ in range(5))
    return f"{_base36(int(time.time() * 1000))}{random_part}"


class NotificationService:

    def __init__(self, email_service=None, sms_service=None, max_history_size=None):
        self._email_service = email_service
        self._sms_service = sms_service
        self.max_history_size = max_history_size or getattr(settings, 'NOTIFICATION_HISTORY_SIZE', 1000)

        self._lock = threading.Lock()
        self.channels = {}
        self.subscribers = {}
        self.listeners = []
        self.history = deque(maxlen=self.max_history_size)

        for channel in DEFAULT_CHANNELS:
            self.create_channel(channel)

    @property
    def email_service(self):
        if self._email_service is None:
            from .email_service import EmailService
            self._email_service = EmailService()
        return self._email_service

    @property
    def sms_service(self):
        if self._sms_service is None:
            from .sms_service import SMSService
            self._sms_service = SMSService()
        return self._sms_service

    def create_channel(self, name):
        """Register a channel; returns False if it already exists"""
        with self._lock:
            if name in self.channels:
                return False
            self.channels[name] = deque(maxlen=self.max_history_size)
            return True

    def get_channels(self):
        with self._lock:
            return {name: len(buffer) for name, buffer in self.channels.items()}

    def on_notification(self, callback):
        """Register a listener that receives every notification"""
        with self._lock:
            self.listeners.append(callback)
        return callback

    def send_notification(self, payload):
        """
        Stamp and record a notification, then deliver it.

        Delivery order: channel subscribers, then subscribers of each id in
        payload['users'], then e-mail and SMS side effects, then global
        listeners. Returns the stamped notification.
        """
        try:
            notification = {
                'id': generate_notification_id(),
                'timestamp': timezone.now(),
                **payload,
            }
            channel = payload.get('channel')
            users = payload.get('users')

            with self._lock:
                self.history.appendleft(notification)

                channel_callbacks = []
                if channel and channel in self.channels:
                    self.channels[channel].appendleft(notification)
                    channel_callbacks = list(self.subscribers.get(f"channel:{channel}", []))

                user_callbacks = []
                if isinstance(users, list):
                    for user_id in users:
                        user_callbacks.append((user_id, list(self.subscribers.get(f"user:{user_id}", []))))

                listeners = list(self.listeners)

            for subscription_id, callback in channel_callbacks:
                self._invoke(callback, notification, f"channel subscriber for {channel}")

            for user_id, callbacks in user_callbacks:
                for subscription_id, callback in callbacks:
                    self._invoke(callback, notification, f"user subscriber for user {user_id}")

            if payload.get('email'):
                self._send_email_notification(notification)

            if payload.get('sms'):
                self._send_sms_notification(notification)

            for listener in listeners:
                self._invoke(listener, notification, 'notification listener')

            return notification
        except Exception as e:
            logger.error(f"Error sending notification: {str(e)}", exc_info=True)
            raise NotificationError(f"Failed to send notification: {str(e)}") from e

    def _invoke(self, callback, notification, description):
        try:
            callback(notification)
        except Exception as e:
            logger.error(f"Error notifying {description}: {str(e)}", exc_info=True)

    def _send_email_notification(self, notification):
        email = notification.get('email')
        if not isinstance(email, dict) or not email.get('to'):
            return False

        try:
            subject = email.get('subject') or notification.get('title', '')
            if email.get('template'):
                self.email_service.send_with_template(
                    to=email['to'],
                    subject=subject,
                    template=email['template'],
                    context={
                        **(email.get('context') or {}),
                        'notification': {
                            'title': notification.get('title'),
                            'message': notification.get('message'),
                            'type': notification.get('type'),
                            'timestamp': notification['timestamp'],
                        },
                    },
                )
            else:
                self.email_service.send_email(
                    to=email['to'],
                    subject=subject,
                    text=notification.get('message') or '',
                    html=email.get('html') or format_html(
                        '<h1>{}</h1><p>{}</p>',
                        notification.get('title', ''),
                        notification.get('message', ''),
                    ),
                )
            return True
        except Exception as e:
            logger.error(f"Error sending email notification: {str(e)}", exc_info=True)
            return False

    def _send_sms_notification(self, notification):
        sms = notification.get('sms')
        if not isinstance(sms, dict) or not sms.get('to'):
            return False

        try:
            message = sms.get('message') or notification.get('message') or notification.get('title', '')
            self.sms_service.send_sms(sms['to'], message)
            return True
        except Exception as e:
            logger.error(f"Error sending SMS notification: {str(e)}", exc_info=True)
            return False

    def subscribe(self, subscription):
        """
        Register a callback for {'type': 'channel'|'user', 'target', 'callback'}.
        Returns the subscription id.
        """
        try:
            callback = subscription.get('callback')
            if not callable(callback):
                raise ValueError('Callback must be a function')

            subscription_id = generate_notification_id()
            key = f"{subscription.get('type')}:{subscription.get('target')}"
            with self._lock:
                self.subscribers.setdefault(key, []).append((subscription_id, callback))
            return subscription_id
        except Exception as e:
            logger.error(f"Error creating subscription: {str(e)}")
            raise NotificationError(f"Failed to create subscription: {str(e)}") from e

    def unsubscribe(self, subscription_id):
        found = False
        with self._lock:
            for key, subscriptions in self.subscribers.items():
                remaining = [item for item in subscriptions if item[0] != subscription_id]
                if len(remaining) != len(subscriptions):
                    self.subscribers[key] = remaining
                    found = True
        return found

    def get_notification_history(self, channel=None, user_id=None, limit=50, offset=0,
                                 start_date=None, end_date=None):
        """
        Newest-first notifications from a channel buffer, or the global
        buffer when the channel is unknown or not given. The date range only
        applies when both bounds are set.
        """
        with self._lock:
            if channel and channel in self.channels:
                notifications = list(self.channels[channel])
            else:
                notifications = list(self.history)

        if user_id is not None:
            notifications = [
                n for n in notifications
                if isinstance(n.get('users'), list) and user_id in n['users']
            ]

        if start_date and end_date:
            notifications = [
                n for n in notifications
                if start_date <= n['timestamp'] <= end_date
            ]

        return notifications[offset:offset + limit]

    def create_system_notification(self, title, message, level='info'):
        return self.send_notification({
            'title': title,
            'message': message,
            'type': 'system',
            'level': level,
            'channel': 'system',
            'persistent': level in ('error', 'warning'),
        })

    def create_user_notification(self, user_ids, title, message, **options):
        return self.send_notification({
            'title': title,
            'message': message,
            'type': 'user',
            'users': user_ids if isinstance(user_ids, list) else [user_ids],
            'channel': 'users',
            **options,
        })

    def create_order_notification(self, order_id, title, message, **options):
        return self.send_notification({
            'title': title,
            'message': message,
            'type': 'order',
            'orderId': order_id,
            'channel': 'orders',
            **options,
        })

    def create_inventory_notification(self, product_id, title, message, **options):
        return self.send_notification({
            'title': title,
            'message': message,
            'type': 'inventory',
            'productId': product_id,
            'channel': 'inventory',
            **options,
        })

    def create_payment_notification(self, payment_id, title, message, **options):
        return self.send_notification({
            'title': title,
            'message': message,
            'type': 'payment',
            'paymentId': payment_id,
            'channel': 'payments',
            **options,
        })


_service = None
_service_lock = threading.Lock()


def get_notification_service():
    """Process-wide NotificationService"""
    global _service
    with _service_lock:
        if _service is None:
            _service = NotificationService()
        return _service
