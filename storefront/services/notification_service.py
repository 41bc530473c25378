"""
Order confirmation email.

Sent through Resend once the payment provider reports a successful charge.
Delivery problems are reported back to the caller as ``(False, reason)``
so the webhook can log them without failing the acknowledgement.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from html import escape
from typing import Any, Dict, List, Optional, Tuple

import resend

from storefront.models import Order
from storefront.observability import increment_counter, record_event


@dataclass(frozen=True)
class OrderLine:
    name: str
    size: str
    color: str
    quantity: int
    price_cents: int

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity


def format_cents(cents: int) -> str:
    return f"${cents / 100:.2f}"


def order_reference(order_id: str) -> str:
    return order_id[:8].upper()


def shipping_lines(order: Order) -> List[str]:
    locality = ", ".join(
        part for part in (order.shipping_city, order.shipping_state, order.shipping_postal_code) if part
    )
    return [
        line
        for line in (
            order.shipping_name,
            order.shipping_line1,
            order.shipping_line2,
            locality,
            order.shipping_country,
        )
        if line
    ]


class OrderNotifier:
    """Builds and sends the confirmation email; a no-op until an API key and sender are set."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        store_name: str = "PrintShop",
        frontend_url: str = "",
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.sender = (sender or "").strip()
        self.store_name = store_name
        self.frontend_url = (frontend_url or "").rstrip("/")
        self.logger = logging.getLogger(__name__)

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.sender)

    def build_message(self, order: Order, lines: List[OrderLine]) -> Dict[str, Any]:
        reference = order_reference(order.id)
        total = format_cents(order.subtotal_cents)
        first_name = (order.shipping_name or "").split(" ")[0] or "there"

        item_rows = "".join(
            "<tr>"
            f"<td>{escape(self._describe(line))}</td>"
            f"<td style=\"text-align:center\">&times;{line.quantity}</td>"
            f"<td style=\"text-align:right\">{format_cents(line.line_total_cents)}</td>"
            "</tr>"
            for line in lines
        )
        address_html = "<br>".join(escape(line) for line in shipping_lines(order))
        html_body = (
            "<div style=\"font-family:sans-serif;max-width:560px;margin:0 auto\">"
            f"<h1>{escape(self.store_name)}</h1>"
            "<h2>Order confirmed!</h2>"
            f"<p>Thanks, {escape(first_name)}. We've received your order and will start printing right away.</p>"
            f"<p>Order reference <strong>#{reference}</strong></p>"
            "<table style=\"width:100%\"><thead><tr><th>Item</th><th>Qty</th><th>Price</th></tr></thead>"
            f"<tbody>{item_rows}</tbody></table>"
            f"<p style=\"text-align:right\"><strong>Total: {total}</strong></p>"
            f"<p>Shipping to<br>{address_html}</p>"
            "<p>Questions? Reply to this email or visit your "
            f"<a href=\"{escape(self.frontend_url)}/account\">account page</a>.</p>"
            "</div>"
        )
        text_lines = ["Thanks for your order!", "", f"Order #{reference}"]
        text_lines.extend(
            f"{self._describe(line)} x{line.quantity} {format_cents(line.line_total_cents)}" for line in lines
        )
        text_lines.extend(
            [
                f"Total: {total}",
                "",
                "We'll send you a shipping update when your order is on its way.",
            ]
        )
        return {
            "from": self.sender,
            "to": [order.shipping_email],
            "subject": f"Order confirmed - {self.store_name} #{reference}",
            "html": html_body,
            "text": "\n".join(text_lines),
        }

    @staticmethod
    def _describe(line: OrderLine) -> str:
        description = line.name
        if line.size:
            description += f" - {line.size}"
        if line.color:
            description += f" / {line.color}"
        return description

    def send_order_confirmation(self, order: Order, lines: List[OrderLine]) -> Tuple[bool, Optional[str]]:
        if not self.configured:
            self.logger.debug("Email delivery is not configured; skipping confirmation for %s", order.id)
            return False, "Email delivery is not configured"
        if not order.shipping_email:
            return False, "Order has no shipping email"

        payload = self.build_message(order, lines)
        previous_api_key = getattr(resend, "api_key", None)
        resend.api_key = self.api_key
        try:
            response = resend.Emails.send(payload)
        except Exception as exc:
            return False, str(exc)
        finally:
            resend.api_key = previous_api_key

        message_id = response.get("id") if isinstance(response, dict) else getattr(response, "id", None)
        if not message_id:
            return False, str(response)

        increment_counter("order_emails_sent_total")
        record_event("order_confirmation_sent", {"order_id": order.id, "message_id": message_id})
        self.logger.info("Confirmation email sent for order %s", order.id)
        return True, None
