"""External service integrations: Stripe, Redis rankings, SMTP mail."""
from .mailer import Mailer, MailDeliveryError
from .rankings import RankingStore
from .stripe_client import CheckoutSession, GatewayError, GatewayErrorType, StripeCheckoutClient

__all__ = [
    "CheckoutSession",
    "GatewayError",
    "GatewayErrorType",
    "MailDeliveryError",
    "Mailer",
    "RankingStore",
    "StripeCheckoutClient",
]
