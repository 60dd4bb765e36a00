import logging
from dataclasses import dataclass, field
from html import escape
from typing import List, Optional

import resend

from stagingpro.config import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass
class EmailResult:
    success: bool
    recipients: List[str] = field(default_factory=list)
    message_id: Optional[str] = None
    error: Optional[str] = None


def _layout(heading: str, intro: str, rows: List[tuple], thumbnail: str, cta_label: str, cta_url: str) -> str:
    rows_html = "".join(
        f"<tr><td style='padding:6px 0;color:#94a3b8;font-size:12px'>{escape(k)}</td>"
        f"<td style='padding:6px 0;text-align:right;font-weight:700'>{escape(str(v))}</td></tr>"
        for k, v in rows
    )
    thumb_html = f"<img src='{escape(thumbnail)}' alt='' style='width:100%;border-radius:12px;margin:16px 0' />" if thumbnail else ""
    return f"""
<!doctype html>
<html>
<body style="font-family:Inter,system-ui,-apple-system,'Segoe UI',Roboto,Arial;background:#f8fafc;padding:24px">
  <div style="max-width:560px;margin:0 auto;background:white;border-radius:16px;padding:32px">
    <p style="font-size:10px;letter-spacing:.3em;text-transform:uppercase;color:#94a3b8">StagingPro Studio</p>
    <h1 style="font-size:22px;margin:8px 0 16px">{escape(heading)}</h1>
    <p style="color:#475569;font-size:14px">{escape(intro)}</p>
    {thumb_html}
    <table style="width:100%;border-collapse:collapse">{rows_html}</table>
    <a href="{escape(cta_url)}" style="display:block;margin-top:24px;padding:14px;background:#0f172a;color:white;text-align:center;border-radius:10px;text-decoration:none;font-size:12px;letter-spacing:.2em;text-transform:uppercase">{escape(cta_label)}</a>
  </div>
</body>
</html>
"""


def order_confirmed_html(order_id: str, plan_name: str, price: str, date: str, delivery: str, thumbnail: str, action_url: str) -> str:
    return _layout(
        "Order confirmed",
        "Thank you. Your order has been received by the studio and is now in the production queue.",
        [("Order ID", order_id), ("Plan", plan_name), ("Price", price), ("Ordered", date), ("Estimated delivery", delivery)],
        thumbnail,
        "View order",
        action_url,
    )


def quote_ready_html(order_id: str, plan_name: str, amount: str, thumbnail: str, action_url: str) -> str:
    return _layout(
        "Your quote is ready",
        "The studio has reviewed your request. Complete payment to start production.",
        [("Order ID", order_id), ("Plan", plan_name), ("Quoted amount", amount)],
        thumbnail,
        "Review and pay",
        action_url,
    )


def delivery_ready_html(order_id: str, plan_name: str, date: str, thumbnail: str, result_url: str) -> str:
    return _layout(
        "Your results are ready",
        "The studio has delivered your images. Open your dashboard to review and download them.",
        [("Order ID", order_id), ("Plan", plan_name), ("Ordered", date)],
        thumbnail,
        "View results",
        result_url,
    )


class EmailClient:
    """Transactional email through Resend.

    Sending is best effort: failures are logged and reported in the result,
    never raised, so an email problem can not undo the write that caused it.
    """

    def __init__(self, api_key: Optional[str] = None, from_email: str = "StagingPro Studio <studio@stagingpro.studio>"):
        self.api_key = api_key
        self.from_email = from_email
        if api_key:
            resend.api_key = api_key

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "EmailClient":
        settings = settings or get_settings()
        return cls(api_key=settings.resend_api_key, from_email=settings.mail_from)

    def send(self, to: str, subject: str, html: str) -> EmailResult:
        recipients = [to] if to else []
        if not recipients:
            logger.warning("Email '%s' has no recipient; skipped", subject)
            return EmailResult(success=False, error="no recipient")
        if not self.api_key:
            logger.warning("Resend not configured, would send '%s' to %s", subject, recipients)
            return EmailResult(success=True, recipients=recipients, message_id=None)
        try:
            response = resend.Emails.send({
                "from": self.from_email,
                "to": recipients,
                "subject": subject,
                "html": html,
            })
            message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
            logger.info("Email sent subject=%s to=%s id=%s", subject, recipients, message_id)
            return EmailResult(success=True, recipients=recipients, message_id=message_id)
        except Exception as e:
            logger.exception("Failed to send email '%s' to %s: %s", subject, recipients, e)
            return EmailResult(success=False, recipients=recipients, error=str(e))


class Notifier:
    """The three transactional events, each sent to the right audience."""

    def __init__(self, client: EmailClient, studio_email: str, base_url: str):
        self.client = client
        self.studio_email = studio_email
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Notifier":
        settings = settings or get_settings()
        return cls(EmailClient.from_settings(settings), settings.studio_contact_email, settings.public_base_url)

    def order_confirmed(self, client_email: str, order_id: str, plan_name: str, price: str, date: str, delivery: str, thumbnail: str, quote: bool = False) -> List[EmailResult]:
        html = order_confirmed_html(order_id, plan_name, price, date, delivery, thumbnail, self.base_url)
        if quote:
            client_subject, studio_subject = f"Quote Request Received: {order_id}", f"New Quote Request: {order_id}"
        else:
            client_subject, studio_subject = f"Order Confirmation: {order_id}", f"New Paid Order: {order_id}"
        return [
            self.client.send(client_email, client_subject, html),
            self.client.send(self.studio_email, studio_subject, html),
        ]

    def quote_ready(self, client_email: str, order_id: str, plan_name: str, amount: str, thumbnail: str) -> EmailResult:
        html = quote_ready_html(order_id, plan_name, amount, thumbnail, self.base_url)
        return self.client.send(client_email, f"Quote Ready: {order_id}", html)

    def delivery_ready(self, client_email: str, order_id: str, plan_name: str, date: str, thumbnail: str) -> EmailResult:
        html = delivery_ready_html(order_id, plan_name, date, thumbnail, self.base_url)
        return self.client.send(client_email, f"Results Ready: {order_id}", html)
