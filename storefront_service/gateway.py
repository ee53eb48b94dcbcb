from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import string
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from .models import OrderStatus, Payment, PaymentStatus
from .service import MissingFields, OrderService, PaymentService

logger = logging.getLogger(__name__)

_TOKEN_ALPHABET = string.digits + string.ascii_lowercase

# only these order states are moved to "confirmed" by a completed payment
_CONFIRMABLE = {OrderStatus.PENDING.value, OrderStatus.PAID.value}


@dataclass
class Invoice:
    token: str
    payment_url: str
    transaction_id: str


class PaymentGateway(Protocol):
    def create_invoice(self, payment: Payment) -> Invoice: ...


class InvalidSignature(Exception):
    """Raised when a gateway callback fails signature verification."""


class MockPaydunyaGateway:
    """Stand-in for PayDunya: hands out fake tokens and invoice URLs, no network."""

    def __init__(self, checkout_url: str = "https://paydunya.com/pay"):
        self._checkout_url = checkout_url.rstrip("/")

    def create_invoice(self, payment: Payment) -> Invoice:
        millis = int(time.time() * 1000)
        suffix = "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(9))
        token = f"token_{millis}_{suffix}"
        return Invoice(
            token=token,
            payment_url=f"{self._checkout_url}/{token}",
            transaction_id=f"txn_{millis}",
        )


def sign_payload(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: Optional[str], body: bytes, signature: Optional[str]) -> None:
    if not secret:
        return
    if not signature or not hmac.compare_digest(sign_payload(secret, body), signature):
        raise InvalidSignature("Invalid callback signature")


class PaydunyaFlow:
    """Drives a payment through the mock gateway and reconciles the order."""

    def __init__(
        self,
        orders: OrderService,
        payments: PaymentService,
        gateway: PaymentGateway,
    ):
        self._orders = orders
        self._payments = payments
        self._gateway = gateway

    def initialize(
        self,
        order_id: Optional[str],
        payment_id: Optional[str],
        total: Optional[float],
        payment_method: Optional[str],
    ) -> Invoice:
        if not order_id or not payment_id or not total or not payment_method:
            raise MissingFields("Missing required fields")
        payment = self._payments.get_payment(payment_id)
        invoice = self._gateway.create_invoice(payment)
        self._payments.start_processing(payment.id, invoice.token, invoice.payment_url)
        logger.info(
            "Initialized %s payment %s for order %s (token=%s)",
            payment_method,
            payment.id,
            order_id,
            invoice.token,
        )
        return invoice

    def callback(self, status: Optional[str], token: Optional[str], order_id: Optional[str]) -> str:
        if not order_id:
            raise MissingFields("Order ID missing")
        order = self._orders.get_order(order_id)
        payment = self._payments.get_by_order_id(order_id)

        if status == PaymentStatus.COMPLETED.value:
            if payment.status != PaymentStatus.COMPLETED.value:
                self._payments.complete(payment.id)
            if order.status in _CONFIRMABLE:
                self._orders.confirm(order_id)
            elif order.status != OrderStatus.CONFIRMED.value:
                logger.warning(
                    "Order %s left as %s after completed payment", order_id, order.status
                )
            logger.info("Payment completed for order %s (token=%s)", order_id, token)
            return "Payment processed successfully"

        if status == PaymentStatus.FAILED.value:
            self._payments.fail(payment.id, "Payment failed at PayDunya")
            logger.warning("Payment failed for order %s", order_id)
            return "Payment failure recorded"

        if status == PaymentStatus.CANCELLED.value:
            self._payments.cancel(payment.id, "Payment cancelled by user")
            logger.warning("Payment cancelled for order %s", order_id)
            return "Payment cancellation recorded"

        logger.info("Ignoring callback status %r for order %s", status, order_id)
        return "Callback processed"

    def status_for_order(self, order_id: str) -> Payment:
        return self._payments.get_by_order_id(order_id)

    def status_for_token(self, token: str) -> Payment:
        return self._payments.find_by_token(token)
