from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from .models import (
    ORDER_TRANSITIONS,
    PAYMENT_TRANSITIONS,
    Order,
    OrderStatus,
    Payment,
    PaymentStatus,
    can_transition,
    utc_now,
)
from .repository import Guard, OrderRepository, PaymentRepository

logger = logging.getLogger(__name__)


class NotFound(Exception):
    """Raised when an id is not present in the store."""


class MissingFields(Exception):
    """Raised when a required field is absent or empty."""


class InvalidFields(Exception):
    """Raised when merged fields no longer form a valid record."""


class InvalidTransition(Exception):
    """Raised when a status change is not allowed from the current status."""


ORDER_REQUIRED = ("order_number", "customer_name", "items", "total", "order_type")
PAYMENT_REQUIRED = ("order_id", "amount", "payment_method")

ORDER_ACTIONS: dict[str, OrderStatus] = {
    "confirm": OrderStatus.CONFIRMED,
    "mark_paid": OrderStatus.PAID,
    "start_preparing": OrderStatus.PREPARING,
    "mark_ready": OrderStatus.READY,
    "dispatch": OrderStatus.OUT_FOR_DELIVERY,
    "mark_delivered": OrderStatus.DELIVERED,
    "cancel": OrderStatus.CANCELLED,
}


def _require(fields: dict, required: tuple[str, ...]) -> None:
    missing = [name for name in required if not fields.get(name)]
    if missing:
        raise MissingFields(f"Missing required fields: {', '.join(missing)}")


def _status_guard(table: dict, changes: dict, kind: str) -> Optional[Guard]:
    target = changes.get("status")
    if target is None:
        return None

    def guard(current: dict) -> None:
        if not can_transition(table, current["status"], target):
            raise InvalidTransition(
                f"Cannot move {kind} from '{current['status']}' to '{target}'"
            )

    return guard


class OrderService:
    def __init__(self, repository: OrderRepository):
        self._repo = repository

    def create_order(self, fields: dict) -> Order:
        _require(fields, ORDER_REQUIRED)
        values = {key: value for key, value in fields.items() if value is not None}
        try:
            record = self._repo.create_order(values)
        except ValidationError as exc:
            raise InvalidFields(str(exc)) from exc
        logger.info(
            "Created order id=%s number=%s type=%s total=%.2f",
            record.id,
            record.order_number,
            record.order_type,
            record.total,
        )
        return record

    def get_order(self, order_id: str) -> Order:
        record = self._repo.get_order(order_id)
        if record is None:
            raise NotFound("Order not found")
        return record

    def update_order(self, order_id: str, changes: dict) -> Order:
        guard = _status_guard(ORDER_TRANSITIONS, changes, "order")
        try:
            record = self._repo.update_order(order_id, changes, guard)
        except ValidationError as exc:
            raise InvalidFields(str(exc)) from exc
        if record is None:
            raise NotFound("Order not found")
        if "status" in changes:
            logger.info("Order %s is now %s", order_id, record.status)
        return record

    def apply_action(self, order_id: str, action: str) -> Order:
        target = ORDER_ACTIONS.get(action)
        if target is None:
            raise NotFound(f"Unknown order action '{action}'")
        return self.update_order(order_id, {"status": target.value})

    def confirm(self, order_id: str) -> Order:
        return self.apply_action(order_id, "confirm")

    def list_orders(self) -> list[Order]:
        return self._repo.list_orders()


class PaymentService:
    def __init__(self, repository: PaymentRepository):
        self._repo = repository

    def create_payment(self, fields: dict) -> Payment:
        _require(fields, PAYMENT_REQUIRED)
        values = {key: value for key, value in fields.items() if value is not None}
        try:
            record = self._repo.create_payment(values)
        except ValidationError as exc:
            raise InvalidFields(str(exc)) from exc
        logger.info(
            "Created payment id=%s order=%s method=%s amount=%.2f",
            record.id,
            record.order_id,
            record.payment_method,
            record.amount,
        )
        return record

    def get_payment(self, payment_id: str) -> Payment:
        record = self._repo.get_payment(payment_id)
        if record is None:
            raise NotFound("Payment not found")
        return record

    def get_by_order_id(self, order_id: str) -> Payment:
        record = self._repo.get_by_order_id(order_id)
        if record is None:
            raise NotFound("Payment not found for this order")
        return record

    def find_by_token(self, token: str) -> Payment:
        record = self._repo.find_by_token(token)
        if record is None:
            raise NotFound("Payment not found")
        return record

    def update_payment(self, payment_id: str, changes: dict) -> Payment:
        guard = _status_guard(PAYMENT_TRANSITIONS, changes, "payment")
        try:
            record = self._repo.update_payment(payment_id, changes, guard)
        except ValidationError as exc:
            raise InvalidFields(str(exc)) from exc
        if record is None:
            raise NotFound("Payment not found")
        if "status" in changes:
            logger.info("Payment %s is now %s", payment_id, record.status)
        return record

    def start_processing(self, payment_id: str, token: str, invoice_url: str) -> Payment:
        return self.update_payment(
            payment_id,
            {
                "status": PaymentStatus.PROCESSING.value,
                "paydunya_token": token,
                "paydunya_invoice_url": invoice_url,
            },
        )

    def complete(self, payment_id: str) -> Payment:
        return self.update_payment(
            payment_id,
            {"status": PaymentStatus.COMPLETED.value, "paid_at": utc_now()},
        )

    def fail(self, payment_id: str, message: str) -> Payment:
        return self.update_payment(
            payment_id,
            {"status": PaymentStatus.FAILED.value, "error_message": message},
        )

    def cancel(self, payment_id: str, message: str) -> Payment:
        return self.update_payment(
            payment_id,
            {"status": PaymentStatus.CANCELLED.value, "error_message": message},
        )

    def list_payments(self) -> list[Payment]:
        return self._repo.list_payments()
