import logging
from datetime import datetime, tzinfo
from html import escape

import httpx

from booking_backend.core import config

logger = logging.getLogger(__name__)


class NotifierError(Exception):
    pass


class ResendNotifier:
    def __init__(
        self,
        api_key: str = config.RESEND_API_KEY,
        from_address: str = config.FROM_EMAIL,
        api_url: str = config.RESEND_API_URL,
        timeout: float = config.EMAIL_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_key = api_key
        self.from_address = from_address
        self.api_url = api_url
        self.timeout = timeout
        self.transport = transport

    def send(self, to_address: str, subject: str, html_body: str) -> bool:
        if not self.api_key:
            logger.warning('Resend is not configured; skipping email send.')
            return False

        payload = {
            'from': self.from_address,
            'to': to_address,
            'subject': subject,
            'html': html_body,
        }
        headers = {
            'Authorization': f'Bearer {self.api_key}',
            'Content-Type': 'application/json',
        }

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(self.api_url, json=payload, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotifierError(f'Resend request failed: {exc}') from exc

        return True


def render_confirmation_email(
    customer_name: str,
    service_name: str,
    starts_at: datetime,
    ends_at: datetime,
    cancel_token: str,
    tz: tzinfo,
    base_url: str = config.BASE_URL,
) -> str:
    local_start = starts_at.astimezone(tz).strftime('%Y-%m-%d %H:%M')
    local_end = ends_at.astimezone(tz).strftime('%H:%M')
    cancel_url = f'{base_url}/api/cancel?token={cancel_token}'
    reschedule_url = f'{base_url}/reschedule?token={cancel_token}'

    return (
        '<div style="font-family:system-ui">'
        f'<h2>Thank you, {escape(customer_name)}!</h2>'
        f'<p>Your <b>{escape(service_name)}</b> booking is confirmed.</p>'
        f'<p>Time: {local_start} to {local_end}</p>'
        f'<p><a href="{escape(cancel_url)}">Cancel this booking</a></p>'
        f'<p><a href="{escape(reschedule_url)}">Reschedule this booking</a></p>'
        '<p style="color:#666">This email was sent automatically.</p>'
        '</div>'
    )


def notify_booking_confirmed(
    notifier: ResendNotifier,
    to_address: str,
    customer_name: str,
    service_name: str,
    starts_at: datetime,
    ends_at: datetime,
    cancel_token: str,
    tz: tzinfo = config.BOOKING_TZ,
) -> bool:
    """Send the confirmation email. Never raises; the booking already exists."""
    try:
        html_body = render_confirmation_email(
            customer_name=customer_name,
            service_name=service_name,
            starts_at=starts_at,
            ends_at=ends_at,
            cancel_token=cancel_token,
            tz=tz,
        )
        return notifier.send(to_address, f'Booking confirmed: {service_name}', html_body)
    except Exception:
        logger.exception('Email send failed for booking confirmation to %s', to_address)
        return False
