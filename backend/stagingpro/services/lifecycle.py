"""Submission lifecycle: the fulfillment status and payment status of an order.

The two axes are stored as separate columns but they are not independent:

    payment        allowed status
    -------------  ---------------------------------------------
    unpaid         pending
    quote_pending  quote_request
    paid           pending, processing, reviewing, completed

Every transition below returns the column updates to write and runs the merged
result through `check_state`, so an update that breaks the table above never
reaches the store. `completed` is terminal: no function here moves an order out
of it.

Fulfillment graph once paid:

    pending -> processing -> reviewing -> completed
                    ^             |
                    +-- reject ---+

Assigning an editor moves to processing, clearing the assignment goes back to
pending. A dual-deliverable plan reaches reviewing only when both the removal
and the staged result exist; any other plan reaches it with its single result.
"""

import logging
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from stagingpro.models.plan import DUAL_DELIVERABLE_PLANS, QUOTE_PLANS
from stagingpro.models.submission import PaymentStatus, Submission, SubmissionStatus
from stagingpro.utils.clock import ms_to_datetime

logger = logging.getLogger(__name__)

ALLOWED_STATUS = {
    PaymentStatus.UNPAID: {SubmissionStatus.PENDING},
    PaymentStatus.QUOTE_PENDING: {SubmissionStatus.QUOTE_REQUEST},
    PaymentStatus.PAID: {
        SubmissionStatus.PENDING,
        SubmissionStatus.PROCESSING,
        SubmissionStatus.REVIEWING,
        SubmissionStatus.COMPLETED,
    },
}

DELIVERY_NOTICE_STATUSES = {SubmissionStatus.REVIEWING, SubmissionStatus.COMPLETED}


class TransitionError(ValueError):
    """The requested change is not allowed from the order's current state."""


class QuoteRejected(TransitionError):
    pass


class DeliverySlot(str, Enum):
    REMOVE = "remove"
    ADD = "add"
    SINGLE = "single"


def check_state(status: Union[str, SubmissionStatus], payment: Union[str, PaymentStatus]) -> Tuple[SubmissionStatus, PaymentStatus]:
    try:
        status = SubmissionStatus(status)
        payment = PaymentStatus(payment)
    except ValueError as e:
        raise TransitionError(str(e))
    if status not in ALLOWED_STATUS[payment]:
        raise TransitionError(f"status '{status.value}' is not valid while payment is '{payment.value}'")
    return status, payment


def is_dual_deliverable(plan_id: str) -> bool:
    return plan_id in DUAL_DELIVERABLE_PLANS


def is_quote_plan(plan_id: str) -> bool:
    return plan_id in QUOTE_PLANS


def is_listed(sub: Any) -> bool:
    """Unpaid orders never appear in staff or client lists."""
    payment = sub.get("paymentStatus") if isinstance(sub, dict) else sub.payment_status
    return payment != PaymentStatus.UNPAID.value


def initial_state(plan_id: str) -> Dict[str, str]:
    if is_quote_plan(plan_id):
        status, payment = SubmissionStatus.QUOTE_REQUEST, PaymentStatus.QUOTE_PENDING
    else:
        status, payment = SubmissionStatus.PENDING, PaymentStatus.UNPAID
    check_state(status, payment)
    return {"status": status.value, "payment_status": payment.value}


def _validated(sub: Submission, updates: Dict[str, Any]) -> Dict[str, Any]:
    check_state(updates.get("status", sub.status), updates.get("payment_status", sub.payment_status))
    return updates


def _require_in_production(sub: Submission, action: str) -> None:
    if sub.status == SubmissionStatus.COMPLETED.value:
        raise TransitionError(f"cannot {action}: order {sub.id} is completed")
    if sub.payment_status != PaymentStatus.PAID.value:
        raise TransitionError(f"cannot {action}: order {sub.id} is not paid ({sub.payment_status})")


def assign(sub: Submission, editor_id: Optional[str]) -> Dict[str, Any]:
    _require_in_production(sub, "change assignment")
    if editor_id:
        return _validated(sub, {"assigned_editor_id": editor_id, "status": SubmissionStatus.PROCESSING.value})
    return _validated(sub, {"assigned_editor_id": None, "status": SubmissionStatus.PENDING.value})


def slots_for(plan_id: str) -> Tuple[DeliverySlot, ...]:
    if is_dual_deliverable(plan_id):
        return (DeliverySlot.REMOVE, DeliverySlot.ADD)
    return (DeliverySlot.SINGLE,)


def result_path(sub: Submission, slot: DeliverySlot) -> str:
    return f"results/{sub.id}_{slot.value}.jpg"


def deliver(sub: Submission, slot: Union[str, DeliverySlot], url: str) -> Dict[str, Any]:
    _require_in_production(sub, "deliver results")
    try:
        slot = DeliverySlot(slot)
    except ValueError:
        raise TransitionError(f"unknown delivery slot '{slot}'")
    if slot not in slots_for(sub.plan):
        raise TransitionError(f"plan '{sub.plan}' has no '{slot.value}' deliverable")
    if not url:
        raise TransitionError("delivery requires a result URL")

    updates: Dict[str, Any] = {}
    if slot == DeliverySlot.REMOVE:
        updates["result_remove_url"] = url
    else:
        updates["result_add_url"] = url

    if is_dual_deliverable(sub.plan):
        remove_url = updates.get("result_remove_url", sub.result_remove_url)
        add_url = updates.get("result_add_url", sub.result_add_url)
        status = SubmissionStatus.REVIEWING if (remove_url and add_url) else SubmissionStatus.PROCESSING
    else:
        status = SubmissionStatus.REVIEWING
    updates["status"] = status.value
    return _validated(sub, updates)


def approve(sub: Submission) -> Dict[str, Any]:
    _require_in_production(sub, "approve")
    if sub.status != SubmissionStatus.REVIEWING.value:
        raise TransitionError(f"only orders in review can be approved (order {sub.id} is {sub.status})")
    return _validated(sub, {"status": SubmissionStatus.COMPLETED.value})


def reject(sub: Submission, notes: Optional[str] = None) -> Dict[str, Any]:
    _require_in_production(sub, "reject")
    if sub.status != SubmissionStatus.REVIEWING.value:
        raise TransitionError(f"only orders in review can be sent back (order {sub.id} is {sub.status})")
    notes = (notes or "").strip() or None
    return _validated(sub, {"status": SubmissionStatus.PROCESSING.value, "revision_notes": notes})


def mark_paid(sub: Submission, session_id: Optional[str]) -> Optional[Dict[str, Any]]:
    """Updates for a completed checkout, or None when the order is already paid.

    Re-running with the same session is the normal case (a refreshed return
    URL) and is silently a no-op.
    """
    if sub.payment_status == PaymentStatus.PAID.value:
        if session_id and sub.stripe_session_id and session_id != sub.stripe_session_id:
            logger.warning("Order %s already paid by session %s; ignoring session %s", sub.id, sub.stripe_session_id, session_id)
        return None
    if sub.payment_status == PaymentStatus.QUOTE_PENDING.value and not sub.quoted_amount:
        raise TransitionError(f"order {sub.id} has no quote to pay yet")
    return _validated(sub, {
        "payment_status": PaymentStatus.PAID.value,
        "status": SubmissionStatus.PENDING.value,
        "stripe_session_id": session_id,
    })


def parse_quote_amount(raw: Any) -> int:
    if isinstance(raw, bool):
        raise QuoteRejected("quote amount must be a positive integer")
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw.isdigit():
            raise QuoteRejected(f"quote amount must be a positive integer, got {raw!r}")
        raw = int(raw)
    if isinstance(raw, float):
        if not raw.is_integer():
            raise QuoteRejected(f"quote amount must be whole minor units, got {raw!r}")
        raw = int(raw)
    if not isinstance(raw, int) or raw <= 0:
        raise QuoteRejected(f"quote amount must be a positive integer, got {raw!r}")
    return raw


def set_quote(sub: Submission, raw_amount: Any) -> Dict[str, Any]:
    amount = parse_quote_amount(raw_amount)
    if sub.payment_status != PaymentStatus.QUOTE_PENDING.value:
        raise QuoteRejected(f"order {sub.id} is not awaiting a quote ({sub.payment_status})")
    return _validated(sub, {"quoted_amount": amount})


def final_result_url(sub: Any) -> Optional[str]:
    if isinstance(sub, dict):
        return sub.get("result_add_url") or sub.get("resultAddUrl")
    return sub.result_add_url


def delivery_notification_due(updates: Dict[str, Any], merged: Submission) -> bool:
    """True when a write moves the order to review/completion with a result to show."""
    status = updates.get("status")
    if status is None or SubmissionStatus(status) not in DELIVERY_NOTICE_STATUSES:
        return False
    return bool(final_result_url(merged))


def estimated_delivery_date(timestamp_ms: int, business_days: int = 3) -> date:
    day = ms_to_datetime(timestamp_ms).date()
    added = 0
    while added < business_days:
        day += timedelta(days=1)
        if day.weekday() < 5:
            added += 1
    return day


def format_amount(amount: Optional[int], symbol: str = "$") -> str:
    if amount is None:
        return "-"
    return f"{symbol} {amount / 100:.2f}"
