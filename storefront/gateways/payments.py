from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import stripe

from storefront.errors import GatewayError, WebhookSignatureError


class PaymentGateway:
    """Card-processing provider: payment intents and signed webhook events, through the Stripe SDK."""

    service_name = "payments"

    def __init__(self, secret_key: str) -> None:
        self.secret_key = (secret_key or "").strip()
        self.logger = logging.getLogger(__name__)

    @property
    def configured(self) -> bool:
        return bool(self.secret_key)

    @staticmethod
    def _as_dict(intent) -> Dict[str, Any]:
        return {"id": intent.id, "client_secret": intent.client_secret, "amount": intent.amount}

    def _call(self, operation: str, func, *args: Any, **params: Any) -> Dict[str, Any]:
        if not self.configured:
            raise GatewayError(f"{self.service_name} is not configured", service=self.service_name)
        try:
            intent = func(*args, api_key=self.secret_key, **params)
        except stripe.StripeError as exc:
            self.logger.error(
                "%s %s failed: %s",
                self.service_name,
                operation,
                exc.user_message or str(exc),
                extra={"upstream_status": exc.http_status},
            )
            raise GatewayError(str(exc), service=self.service_name, status=exc.http_status) from exc
        return self._as_dict(intent)

    def create_payment_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: Optional[Dict[str, str]] = None,
        receipt_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": {key: value for key, value in (metadata or {}).items() if value is not None},
        }
        if receipt_email:
            params["receipt_email"] = receipt_email
        return self._call("create_payment_intent", stripe.PaymentIntent.create, **params)

    def update_payment_intent(self, intent_id: str, amount_cents: int) -> Dict[str, Any]:
        return self._call("update_payment_intent", stripe.PaymentIntent.modify, intent_id, amount=amount_cents)

    @staticmethod
    def construct_event(
        payload: bytes,
        signature_header: Optional[str],
        secret: str,
        tolerance: int = 300,
    ) -> Dict[str, Any]:
        """Verify the ``Stripe-Signature`` header over the raw body and return the parsed event."""
        if not signature_header:
            raise WebhookSignatureError("Missing signature header")
        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise WebhookSignatureError("Webhook payload is not valid JSON")
        try:
            stripe.WebhookSignature.verify_header(body, signature_header, secret, tolerance)
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError(str(exc.user_message or exc))
        return PaymentGateway.parse_event(payload)

    @staticmethod
    def parse_event(payload: bytes) -> Dict[str, Any]:
        try:
            event = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise WebhookSignatureError("Webhook payload is not valid JSON")
        if not isinstance(event, dict):
            raise WebhookSignatureError("Webhook payload is not an event object")
        return event
