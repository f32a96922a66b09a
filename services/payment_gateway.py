"""Payment gateway collaborator (Stripe Checkout + Refunds)."""
from decimal import Decimal

import stripe
from flask import current_app

from services.errors import GatewayError

GATEWAY_EXTENSION = "payment_gateway"


def to_minor_units(amount) -> int:
    # Stripe expects the smallest currency unit (paise for INR)
    return int((Decimal(str(amount)) * 100).to_integral_value())


class StripeGateway:
    def __init__(self, secret_key=None, success_url=None, cancel_url=None, currency="inr"):
        self.secret_key = secret_key
        self.success_url = success_url
        self.cancel_url = cancel_url
        self.currency = currency

    @classmethod
    def from_config(cls, config):
        return cls(
            secret_key=config.get("STRIPE_SECRET_KEY"),
            success_url=config.get("STRIPE_SUCCESS_URL"),
            cancel_url=config.get("STRIPE_CANCEL_URL"),
            currency=(config.get("PAYMENT_CURRENCY") or "inr").lower(),
        )

    def _configure(self):
        if not self.secret_key:
            raise GatewayError("Stripe secret key missing (STRIPE_SECRET_KEY)", code="GATEWAY_NOT_CONFIGURED")
        stripe.api_key = self.secret_key

    def create_order(self, amount, metadata: dict) -> dict:
        self._configure()
        if not self.success_url or not self.cancel_url:
            raise GatewayError("Stripe success/cancel URLs not configured", code="GATEWAY_NOT_CONFIGURED")

        try:
            session = stripe.checkout.Session.create(
                mode="payment",
                line_items=[{
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {"name": f"Court booking #{metadata.get('booking_id')}"},
                        "unit_amount": to_minor_units(amount),
                    },
                    "quantity": 1,
                }],
                success_url=self.success_url,
                cancel_url=self.cancel_url,
                metadata={k: str(v) for k, v in metadata.items()},
            )
        except stripe.StripeError as exc:
            current_app.logger.error("Stripe checkout session failed: %s", exc)
            raise GatewayError("Payment provider rejected the order", provider_message=str(exc)) from exc

        return {"id": session["id"], "url": session["url"]}

    def process_refund(self, payment_ref: str, amount, reason: str) -> str:
        self._configure()
        if not payment_ref:
            raise GatewayError("Payment has no provider reference to refund", code="MISSING_PAYMENT_REF")

        try:
            refund = stripe.Refund.create(
                payment_intent=payment_ref,
                amount=to_minor_units(amount),
                reason="requested_by_customer",
                metadata={"reason": (reason or "")[:500]},
            )
        except stripe.StripeError as exc:
            current_app.logger.error("Stripe refund for %s failed: %s", payment_ref, exc)
            raise GatewayError("Payment provider rejected the refund", provider_message=str(exc)) from exc

        return refund["id"]


def get_payment_gateway():
    gateway = current_app.extensions.get(GATEWAY_EXTENSION)
    if gateway is None:
        gateway = StripeGateway.from_config(current_app.config)
        current_app.extensions[GATEWAY_EXTENSION] = gateway
    return gateway
