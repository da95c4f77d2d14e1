"""
Outgoing SMS through the Twilio or Nexmo (Vonage) HTTP APIs.
"""
import logging
import re

import requests
from django.conf import settings

from storeadmin.core.exceptions import ServiceError

logger = logging.getLogger('storeadmin.notifications')

TWILIO_MESSAGES_URL = 'https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json'
NEXMO_SMS_URL = 'https://rest.nexmo.com/sms/json'


class SMSError(ServiceError):
    pass


class TwilioProvider:
    name = 'twilio'

    def __init__(self, config, session):
        self.config = config
        self.session = session

    def send(self, to, message, from_number=None):
        try:
            response = self.session.post(
                TWILIO_MESSAGES_URL.format(account_sid=self.config.get('ACCOUNT_SID', '')),
                data={
                    'To': to,
                    'From': from_number or self.config.get('FROM', ''),
                    'Body': message,
                },
                auth=(self.config.get('ACCOUNT_SID', ''), self.config.get('AUTH_TOKEN', '')),
                timeout=self.config.get('TIMEOUT', 10),
            )
            response.raise_for_status()
            details = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error sending SMS via Twilio: {str(e)}")
            raise SMSError(f"Failed to send SMS via Twilio: {str(e)}") from e

        logger.info(f"SMS sent via Twilio to {to}: {details.get('sid')}")
        return {'success': True, 'messageId': details.get('sid'), 'details': details}


class NexmoProvider:
    name = 'nexmo'

    def __init__(self, config, session):
        self.config = config
        self.session = session

    def send(self, to, message, from_number=None):
        try:
            response = self.session.post(
                NEXMO_SMS_URL,
                data={
                    'api_key': self.config.get('API_KEY', ''),
                    'api_secret': self.config.get('API_SECRET', ''),
                    'from': from_number or self.config.get('FROM', ''),
                    'to': to.lstrip('+'),
                    'text': message,
                },
                timeout=self.config.get('TIMEOUT', 10),
            )
            response.raise_for_status()
            details = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"Error sending SMS via Nexmo: {str(e)}")
            raise SMSError(f"Failed to send SMS via Nexmo: {str(e)}") from e

        messages = details.get('messages') or [{}]
        first = messages[0]
        if first.get('status') != '0':
            error_text = first.get('error-text', 'unknown error')
            logger.error(f"Error sending SMS via Nexmo: {error_text}")
            raise SMSError(f"Failed to send SMS via Nexmo: {error_text}")

        logger.info(f"SMS sent via Nexmo to {to}: {first.get('message-id')}")
        return {'success': True, 'messageId': first.get('message-id'), 'details': details}


PROVIDERS = {
    'twilio': TwilioProvider,
    'nexmo': NexmoProvider,
}


class SMSService:

    def __init__(self, config=None, session=None):
        self.config = config if config is not None else getattr(settings, 'SMS', {})
        self.session = session or requests.Session()
        self.provider = None

        if self.enabled:
            self._init_provider()

    @property
    def enabled(self):
        return bool(self.config.get('ENABLED'))

    def _init_provider(self):
        provider_name = self.config.get('PROVIDER')
        provider_class = PROVIDERS.get(provider_name)
        if provider_class is None:
            logger.warning(f"Unsupported SMS provider: {provider_name}")
            return
        self.provider = provider_class(self.config, self.session)
        logger.info(f"{provider_class.name} SMS provider initialized")

    def format_phone_number(self, phone_number):
        """E.164-style formatting: digits only, default country code for 10-digit numbers"""
        digits = re.sub(r'\D', '', str(phone_number))
        if len(digits) == 10:
            digits = f"{self.config.get('DEFAULT_COUNTRY_CODE', '1')}{digits}"
        return f"+{digits}"

    def send_sms(self, to, message, from_number=None):
        if not self.enabled:
            logger.warning("Attempted to send SMS while SMS service is disabled")
            return {'success': False, 'message': 'SMS service is disabled'}

        try:
            if self.provider is None:
                raise SMSError('SMS provider not initialized')
            return self.provider.send(self.format_phone_number(to), message, from_number)
        except SMSError as e:
            logger.error(f"Error sending SMS: {str(e)}")
            raise SMSError(f"Failed to send SMS: {str(e)}") from e

    def send_otp(self, to, otp):
        message = f"Your verification code is: {otp}. This code will expire in 10 minutes."
        return self.send_sms(to, message)

    def send_order_confirmation(self, order, phone_number, currency='$'):
        message = (
            f"Your order #{order.order_number} has been confirmed. "
            f"Total: {currency}{order.total}. Thank you for your purchase!"
        )
        return self.send_sms(phone_number, message)

    def send_order_status_update(self, order, phone_number, status):
        message = (
            f"Order #{order.order_number} status update: {status}. "
            f"Track your order at {settings.APP_URL}/track/{order.order_number}"
        )
        return self.send_sms(phone_number, message)
