import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from stagingpro.config import Settings
from stagingpro.models.plan import Plan
from stagingpro.models.submission import OrderCreate, PaymentStatus, Submission, submission_to_public
from stagingpro.services import lifecycle
from stagingpro.services.dashboard import AccessDenied, ChatInfo, chat_summary, is_from_studio
from stagingpro.services.identity import User
from stagingpro.services.notifications import Notifier
from stagingpro.services.payments import CheckoutClient, CheckoutError
from stagingpro.services.repository import RecordNotFound, StudioData, new_order_id
from stagingpro.utils.clock import format_ms, now_ms

logger = logging.getLogger(__name__)


class PlanUnavailable(ValueError):
    pass


@dataclass
class PlacedOrder:
    submission: Submission
    checkout_url: Optional[str] = None

    @property
    def is_quote(self) -> bool:
        return self.submission.payment_status == PaymentStatus.QUOTE_PENDING.value

    def to_json(self) -> Dict[str, Any]:
        return {
            "order": submission_to_public(self.submission),
            "checkoutUrl": self.checkout_url,
            "quote": self.is_quote,
        }


def _run_now(fn, *args, **kwargs):
    return fn(*args, **kwargs)


def compose_instructions(instructions: str, analysis: Optional[str]) -> str:
    instructions = (instructions or "").strip()
    analysis = (analysis or "").strip()
    if not analysis:
        return instructions
    return f"[AI Vision: {analysis}]\n\n{instructions}"


class OrderingFlow:
    """Client side of an order: place it, pay for it, follow it."""

    def __init__(self, data: StudioData, checkout: CheckoutClient, notifier: Notifier, settings: Settings, defer: Callable = _run_now):
        self.data = data
        self.checkout = checkout
        self.notifier = notifier
        self.settings = settings
        self.defer = defer

    def _own_submission(self, user: User, order_id: str) -> Submission:
        sub = self.data.submissions.get(order_id)
        if sub is None:
            raise RecordNotFound(f"order {order_id} not found")
        if sub.owner_id != user.id:
            raise AccessDenied(f"order {order_id} belongs to another account")
        return sub

    def _visible_plan(self, plan_id: str) -> Plan:
        plan = self.data.plans.get(plan_id)
        if plan is None or plan.is_visible is False:
            raise PlanUnavailable(f"plan '{plan_id}' is not available")
        return plan

    def _confirm(self, sub: Submission, plan_title: str, price: str, quote: bool) -> None:
        if not sub.owner_email:
            logger.warning("Order %s has no owner email; confirmation skipped", sub.id)
            return
        delivery = lifecycle.estimated_delivery_date(sub.timestamp, self.settings.delivery_business_days)
        self.defer(
            self.notifier.order_confirmed,
            sub.owner_email,
            sub.id,
            plan_title,
            price,
            format_ms(sub.timestamp),
            "To be scheduled" if quote else delivery.isoformat(),
            sub.data_url,
            quote,
        )

    def place_order(self, user: User, order: OrderCreate) -> PlacedOrder:
        plan = self._visible_plan(order.plan)
        order_id = new_order_id()
        storage = self.data.storage

        source_url = storage.upload(f"{user.id}/{order_id}_source.jpg", order.image)
        references = []
        for n, ref in enumerate(order.reference_images):
            url = storage.upload(f"{user.id}/{order_id}_ref_{n}.jpg", ref.data_url)
            references.append({"dataUrl": url, "name": ref.name})

        sub = Submission(
            id=order_id,
            owner_id=user.id,
            owner_email=user.email,
            plan=plan.id,
            file_name=order.file_name,
            file_size=order.file_size,
            data_url=source_url,
            instructions=compose_instructions(order.instructions, order.analysis),
            reference_images=references,
            timestamp=now_ms(),
            **lifecycle.initial_state(plan.id),
        )
        sub = self.data.submissions.insert(sub)
        logger.info("Order %s placed by user=%s plan=%s", sub.id, user.id, plan.id)

        if lifecycle.is_quote_plan(plan.id):
            self._confirm(sub, plan.title, "Quote", quote=True)
            return PlacedOrder(submission=sub)

        url = self.checkout.create_session(plan.title, plan.amount, sub.id, user.email)
        return PlacedOrder(submission=sub, checkout_url=url)

    def pay_quote(self, user: User, order_id: str) -> str:
        sub = self._own_submission(user, order_id)
        if sub.payment_status != PaymentStatus.QUOTE_PENDING.value:
            raise lifecycle.TransitionError(f"order {order_id} is not awaiting quote payment")
        if not sub.quoted_amount:
            raise lifecycle.TransitionError(f"order {order_id} has no quote yet")
        plan = self.data.plans.get(sub.plan)
        title = plan.title if plan else "3D Modeling"
        return self.checkout.create_session(title, sub.quoted_amount, sub.id, user.email)

    def _amount_owed(self, sub: Submission, plan: Optional[Plan]) -> Optional[int]:
        if lifecycle.is_quote_plan(sub.plan):
            return sub.quoted_amount
        return plan.amount if plan else None

    def reconcile_payment(self, user: User, order_id: str, session_id: Optional[str]) -> Submission:
        """Handle the return from checkout. Safe to call any number of times.

        The session must be paid, belong to this order and cover exactly the
        amount owed: the plan amount, or the quoted amount for quote plans.
        """
        sub = self._own_submission(user, order_id)
        if not self.checkout.configured:
            raise CheckoutError("Payment provider is not configured (STRIPE_SECRET_KEY missing)")
        if not session_id:
            raise CheckoutError("session_id is required to confirm payment")

        status = self.checkout.retrieve(session_id)
        if status.order_id != order_id:
            raise CheckoutError(f"checkout session {session_id} belongs to order {status.order_id}")
        if not status.paid:
            raise CheckoutError(f"checkout session {session_id} is not paid")
        plan = self.data.plans.get(sub.plan)
        owed = self._amount_owed(sub, plan)
        if owed is None or status.amount_total != owed:
            logger.warning(
                "Order %s session %s paid %s but %s is owed", order_id, session_id, status.amount_total, owed
            )
            raise CheckoutError(f"checkout session {session_id} does not cover the amount owed")

        updates = lifecycle.mark_paid(sub, session_id)
        if updates is None:
            logger.info("Order %s already reconciled", order_id)
            return sub

        was_quote = sub.payment_status == PaymentStatus.QUOTE_PENDING.value
        row = self.data.submissions.update(sub.id, updates)
        title = plan.title if plan else "Staging Service"
        if was_quote:
            price = lifecycle.format_amount(row.quoted_amount)
        else:
            price = plan.price if plan else lifecycle.format_amount(None)
        self._confirm(row, title, price, quote=False)
        return row

    def list_orders(self, user: User) -> List[Dict[str, Any]]:
        subs = [s for s in self.data.submissions.fetch_by_user(user.id) if lifecycle.is_listed(s)]
        messages = self.data.messages.fetch_for_submissions([s.id for s in subs])
        chat = chat_summary(messages, self.data.receipts.watermarks(user.id), is_from_studio)
        business_days = self.settings.delivery_business_days
        return [
            submission_to_public(
                s,
                estimated_delivery=lifecycle.estimated_delivery_date(s.timestamp, business_days).isoformat(),
                chat=chat.get(s.id, ChatInfo()).to_json(),
            )
            for s in subs
        ]
