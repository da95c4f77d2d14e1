"""
Outgoing e-mail through Django's mail backend.
HTML bodies for templated messages come from templates/emails/<name>.html.
"""
import logging
from email.utils import make_msgid

from django.conf import settings
from django.core.mail import EmailMultiAlternatives, get_connection
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string
from django.utils.html import strip_tags

from storeadmin.core.exceptions import ServiceError

logger = logging.getLogger('storeadmin.notifications')

DISABLED_RESULT = {'success': False, 'message': 'Email service is disabled'}


class EmailError(ServiceError):
    pass


def _as_list(value):
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


class EmailService:

    def __init__(self, enabled=None, from_email=None):
        self._enabled = enabled
        self._from_email = from_email

    @property
    def enabled(self):
        if self._enabled is not None:
            return self._enabled
        return getattr(settings, 'EMAIL_ENABLED', False)

    @property
    def from_email(self):
        return self._from_email or settings.DEFAULT_FROM_EMAIL

    def send_email(self, to, subject, text='', html=None, from_email=None, cc=None, bcc=None, attachments=None):
        """
        Send a message with an optional HTML alternative.

        `attachments` is a list of (filename, content, mimetype) tuples.
        Returns {'success': True, 'messageId': ...}.
        """
        if not self.enabled:
            logger.warning("Attempted to send email while email service is disabled")
            return dict(DISABLED_RESULT)

        try:
            message_id = make_msgid()
            message = EmailMultiAlternatives(
                subject=subject,
                body=text or '',
                from_email=from_email or self.from_email,
                to=_as_list(to),
                cc=_as_list(cc),
                bcc=_as_list(bcc),
                headers={'Message-ID': message_id},
            )
            if html:
                message.attach_alternative(html, 'text/html')
            for attachment in attachments or []:
                message.attach(*attachment)

            message.send()
            logger.info(f"Email sent to {to}: {subject}")
            return {'success': True, 'messageId': message_id}
        except Exception as e:
            logger.error(f"Error sending email: {str(e)}", exc_info=True)
            raise EmailError(f"Failed to send email: {str(e)}") from e

    def send_with_template(self, to, subject, template, context=None, **options):
        if not self.enabled:
            logger.warning("Attempted to send email while email service is disabled")
            return dict(DISABLED_RESULT)

        try:
            html = render_to_string(f"emails/{template}.html", context or {})
        except TemplateDoesNotExist as e:
            logger.error(f"Error loading email template {template}: {str(e)}")
            raise EmailError(f"Failed to load email template: {template}") from e

        return self.send_email(to, subject, text=strip_tags(html), html=html, **options)

    def send_welcome_email(self, user):
        return self.send_with_template(
            to=user.email,
            subject=f"Welcome to {settings.APP_NAME}",
            template='welcome',
            context={
                'name': user.get_full_name() or user.username,
                'app_name': settings.APP_NAME,
                'login_url': f"{settings.APP_URL}/login",
            },
        )

    def send_password_reset_email(self, user, reset_token):
        return self.send_with_template(
            to=user.email,
            subject='Reset Your Password',
            template='password-reset',
            context={
                'name': user.get_full_name() or user.username,
                'reset_url': f"{settings.APP_URL}/reset-password?token={reset_token}",
                'expires_in': '1 hour',
            },
        )

    def send_order_confirmation_email(self, order):
        customer = order.customer
        if not customer or not customer.email:
            raise EmailError(f"Failed to send order confirmation: order {order.order_number} has no customer email")

        payment = order.payments.first()
        return self.send_with_template(
            to=customer.email,
            subject=f"Order Confirmation #{order.order_number}",
            template='order-confirmation',
            context={
                'customer_name': customer.name,
                'order_number': order.order_number,
                'order_date': order.created_at,
                'status': order.get_status_display(),
                'total': order.total,
                'payment_method': payment.get_payment_method_display() if payment else None,
            },
        )

    def verify_connection(self):
        """Open and close a backend connection; False when disabled or unreachable"""
        if not self.enabled:
            return False
        try:
            connection = get_connection(fail_silently=False)
            connection.open()
            connection.close()
            return True
        except Exception as e:
            logger.error(f"Email service connection error: {str(e)}")
            return False
