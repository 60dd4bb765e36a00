import logging
from dataclasses import dataclass
from typing import Optional

import stripe

from stagingpro.config import Settings, get_settings

logger = logging.getLogger(__name__)


class CheckoutError(Exception):
    pass


@dataclass
class CheckoutSessionStatus:
    session_id: str
    paid: bool
    order_id: Optional[str] = None
    amount_total: Optional[int] = None


class CheckoutClient:
    """Creates hosted checkout sessions and looks them up after the redirect back."""

    def __init__(self, secret_key: Optional[str], base_url: str, currency: str = "usd"):
        self.secret_key = secret_key
        self.base_url = base_url.rstrip("/")
        self.currency = currency

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "CheckoutClient":
        settings = settings or get_settings()
        return cls(settings.stripe_secret_key, settings.public_base_url, settings.checkout_currency)

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    def success_url(self, order_id: str) -> str:
        # Stripe substitutes {CHECKOUT_SESSION_ID} itself
        return f"{self.base_url}/?session_id={{CHECKOUT_SESSION_ID}}&order_id={order_id}&payment=success"

    def cancel_url(self, order_id: str) -> str:
        return f"{self.base_url}/?order_id={order_id}&payment=cancelled"

    def create_session(self, plan_title: str, amount: int, order_id: str, user_email: Optional[str] = None) -> str:
        if not self.configured:
            raise CheckoutError("Payment provider is not configured (STRIPE_SECRET_KEY missing)")
        if not isinstance(amount, int) or amount <= 0:
            raise CheckoutError(f"Invalid amount: {amount!r}")
        if not order_id:
            raise CheckoutError("orderId is required")
        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=[{
                    "price_data": {
                        "currency": self.currency,
                        "product_data": {"name": plan_title or "Staging Service"},
                        "unit_amount": amount,
                    },
                    "quantity": 1,
                }],
                success_url=self.success_url(order_id),
                cancel_url=self.cancel_url(order_id),
                customer_email=user_email or None,
                client_reference_id=order_id,
                metadata={"order_id": order_id},
            )
        except stripe.StripeError as e:
            logger.exception("Stripe checkout session failed for order %s: %s", order_id, e)
            raise CheckoutError(getattr(e, "user_message", None) or str(e))
        logger.info("Created checkout session %s for order %s amount=%s", session.id, order_id, amount)
        return session.url

    def retrieve(self, session_id: str) -> CheckoutSessionStatus:
        if not self.configured:
            raise CheckoutError("Payment provider is not configured (STRIPE_SECRET_KEY missing)")
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self.secret_key)
        except stripe.StripeError as e:
            logger.exception("Stripe session lookup failed for %s: %s", session_id, e)
            raise CheckoutError(str(e))
        metadata = getattr(session, "metadata", None)
        return CheckoutSessionStatus(
            session_id=session_id,
            paid=getattr(session, "payment_status", None) == "paid",
            order_id=getattr(metadata, "order_id", None) or getattr(session, "client_reference_id", None),
            amount_total=getattr(session, "amount_total", None),
        )
