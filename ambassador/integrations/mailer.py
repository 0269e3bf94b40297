"""
Outbound notification mail over SMTP.

Delivery is best-effort: no retries, and callers decide whether a failure
matters. The settlement engine only logs it.
"""
from decimal import Decimal
from email.message import EmailMessage
from typing import Optional

import aiosmtplib
import structlog

from ambassador.config import Settings, get_settings

logger = structlog.get_logger(__name__)


class MailDeliveryError(Exception):
    """Raised when the SMTP relay rejects or cannot take a message."""

    pass


def ambassador_earnings_message(amount: Decimal, code: str) -> str:
    return f"You earned ${amount:.2f} from the link #{code}"


def admin_order_message(order_id: int, admin_revenue: Decimal) -> str:
    return f"Order #{order_id} with a total of {admin_revenue:.2f} has been completed"


class Mailer:
    """Thin wrapper around ``aiosmtplib.send``."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.settings.mail_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        return message

    async def send(self, to: str, subject: str, body: str) -> None:
        """
        Send a plain-text message.

        Raises:
            MailDeliveryError: If the relay is unreachable or refuses the message
        """
        message = self.build_message(to, subject, body)
        try:
            await aiosmtplib.send(
                message,
                hostname=self.settings.smtp_host,
                port=self.settings.smtp_port,
                timeout=self.settings.smtp_timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.warning("mail_delivery_failed", to=to, subject=subject, error=str(e))
            raise MailDeliveryError(f"Failed to send mail to {to}: {str(e)}") from e

        logger.info("mail_sent", to=to, subject=subject)

    async def send_ambassador_earnings(self, to: str, amount: Decimal, code: str) -> None:
        await self.send(to, "An order has been completed", ambassador_earnings_message(amount, code))

    async def send_admin_order_completed(self, order_id: int, admin_revenue: Decimal) -> None:
        await self.send(
            self.settings.admin_email,
            "An order has been completed",
            admin_order_message(order_id, admin_revenue),
        )
