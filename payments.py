"""Stripe Checkout integration.

``StripeGateway`` is the only place that talks to Stripe. Routes get it through
``get_payment_gateway`` so tests can swap in a fake.
"""
import json
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional, Union

import stripe

from config import settings
from errors import ConfigurationError, ExternalServiceError, WebhookVerificationError

logger = logging.getLogger(__name__)

FREE_SHIPPING_THRESHOLD = Decimal("100.00")
FLAT_SHIPPING_FEE = Decimal("10.00")
ALLOWED_SHIPPING_COUNTRIES = ["GB", "US", "CA", "FR", "DE", "ES", "IT"]
WEBHOOK_TOLERANCE = 300


@dataclass(frozen=True)
class PaymentSession:
    id: str
    url: str


def to_minor_units(amount: Any) -> int:
    """Pounds to pence, rounding half up."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def build_line_items(items: List[Any], currency: str = "gbp") -> List[Dict[str, Any]]:
    line_items: List[Dict[str, Any]] = []
    for item in items:
        images = list(getattr(item, "images", None) or [])
        line_items.append(
            {
                "price_data": {
                    "currency": currency,
                    "product_data": {
                        "name": item.name,
                        "images": images[:1],
                        "metadata": {"productId": item.id},
                    },
                    "unit_amount": to_minor_units(item.price),
                },
                "quantity": item.quantity,
            }
        )
    return line_items


def shipping_option(subtotal_minor: int, currency: str = "gbp") -> Dict[str, Any]:
    free = subtotal_minor > to_minor_units(FREE_SHIPPING_THRESHOLD)
    return {
        "shipping_rate_data": {
            "type": "fixed_amount",
            "fixed_amount": {
                "amount": 0 if free else to_minor_units(FLAT_SHIPPING_FEE),
                "currency": currency,
            },
            "display_name": "Free Shipping" if free else "Standard Shipping",
            "delivery_estimate": {
                "minimum": {"unit": "business_day", "value": 3},
                "maximum": {"unit": "business_day", "value": 5},
            },
        }
    }


class StripeGateway:
    def __init__(self, secret_key: str, webhook_secret: str, currency: str = "gbp"):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.currency = currency

    def create_session(
        self,
        order_id: str,
        line_items: List[Dict[str, Any]],
        customer_email: str,
        success_url: str,
        cancel_url: str,
        subtotal_minor: int,
    ) -> PaymentSession:
        if not self.secret_key:
            raise ConfigurationError("STRIPE_SECRET_KEY is not set")
        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                payment_method_types=["card"],
                line_items=line_items,
                mode="payment",
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=customer_email,
                metadata={"orderId": order_id},
                shipping_address_collection={"allowed_countries": ALLOWED_SHIPPING_COUNTRIES},
                shipping_options=[shipping_option(subtotal_minor, self.currency)],
            )
        except stripe.StripeError as e:
            logger.error("Error creating checkout session for order %s: %s", order_id, e)
            raise ExternalServiceError("Failed to create checkout session") from e
        return PaymentSession(id=session.id, url=session.url)

    def verify_event(self, payload: Union[bytes, str], signature: Optional[str]) -> Dict[str, Any]:
        """Check the Stripe-Signature header, then decode the event body."""
        if not self.webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not set")
        if not signature:
            raise WebhookVerificationError("Missing Stripe-Signature header")
        try:
            body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        except UnicodeDecodeError as e:
            raise WebhookVerificationError("Webhook Error: invalid payload") from e
        try:
            stripe.WebhookSignature.verify_header(body, signature, self.webhook_secret, tolerance=WEBHOOK_TOLERANCE)
        except stripe.SignatureVerificationError as e:
            raise WebhookVerificationError(f"Webhook Error: {e}") from e
        try:
            return json.loads(body)
        except ValueError as e:
            raise WebhookVerificationError("Webhook Error: invalid payload") from e


def get_payment_gateway() -> StripeGateway:
    return StripeGateway(
        secret_key=settings.stripe_secret_key,
        webhook_secret=settings.stripe_webhook_secret,
        currency=settings.currency,
    )
