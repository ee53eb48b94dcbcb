from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from .models import Order, OrderStatus, Payment, PaymentStatus, parse_timestamp, utc_now
from .store import JsonFileStore

logger = logging.getLogger(__name__)

Guard = Callable[[dict], None]


def _new_id(prefix: str, taken) -> str:
    millis = int(time.time() * 1000)
    while f"{prefix}-{millis}" in taken:
        millis += 1
    return f"{prefix}-{millis}"


def _newest_first(records: list) -> list:
    def key(record):
        try:
            created = parse_timestamp(record.created_at)
        except (TypeError, ValueError):
            created = datetime.min.replace(tzinfo=timezone.utc)
        return created, record.id

    return sorted(records, key=key, reverse=True)


class OrderRepository:
    """In-memory order map, flushed to its JSON file on every write."""

    def __init__(self, store: JsonFileStore[Order]):
        self._store = store
        self._orders: dict[str, Order] = {order.id: order for order in store.load()}
        logger.info("Loaded %d orders", len(self._orders))

    @property
    def lock(self):
        return self._store.lock

    def create_order(self, fields: dict) -> Order:
        with self.lock:
            record = Order.model_validate(
                {
                    **fields,
                    "id": _new_id("order", self._orders),
                    "status": OrderStatus.PENDING,
                    "created_at": utc_now(),
                }
            )
            self._orders[record.id] = record
            self._flush()
        return record.model_copy(deep=True)

    def update_order(
        self, order_id: str, changes: dict, guard: Optional[Guard] = None
    ) -> Order | None:
        with self.lock:
            current = self._orders.get(order_id)
            if current is None:
                return None
            merged = current.model_dump()
            if guard is not None:
                guard(merged)
            merged.update(changes)
            record = Order.model_validate(merged)
            self._orders[order_id] = record
            self._flush()
        return record.model_copy(deep=True)

    def get_order(self, order_id: str) -> Order | None:
        record = self._orders.get(order_id)
        return record.model_copy(deep=True) if record is not None else None

    def list_orders(self) -> list[Order]:
        with self.lock:
            records = [record.model_copy(deep=True) for record in self._orders.values()]
        return _newest_first(records)

    def _flush(self) -> None:
        self._store.save(self._orders.values())


class PaymentRepository:
    """Payments keyed by id, plus an ``order_id -> payment id`` index.

    The index is rebuilt on load and only ever touched together with the
    primary map; it is never written to disk.
    """

    def __init__(self, store: JsonFileStore[Payment]):
        self._store = store
        self._payments: dict[str, Payment] = {}
        self._by_order: dict[str, str] = {}
        for payment in store.load():
            self._payments[payment.id] = payment
            self._by_order[payment.order_id] = payment.id
        logger.info("Loaded %d payments", len(self._payments))

    @property
    def lock(self):
        return self._store.lock

    def create_payment(self, fields: dict) -> Payment:
        with self.lock:
            record = Payment.model_validate(
                {
                    **fields,
                    "id": _new_id("payment", self._payments),
                    "status": PaymentStatus.PENDING,
                    "created_at": utc_now(),
                }
            )
            self._payments[record.id] = record
            self._by_order[record.order_id] = record.id
            self._flush()
        return record.model_copy(deep=True)

    def update_payment(
        self, payment_id: str, changes: dict, guard: Optional[Guard] = None
    ) -> Payment | None:
        with self.lock:
            current = self._payments.get(payment_id)
            if current is None:
                return None
            merged = current.model_dump()
            if guard is not None:
                guard(merged)
            merged.update(changes)
            record = Payment.model_validate(merged)
            if record.order_id != current.order_id and (
                self._by_order.get(current.order_id) == payment_id
            ):
                del self._by_order[current.order_id]
            self._payments[payment_id] = record
            self._by_order[record.order_id] = payment_id
            self._flush()
        return record.model_copy(deep=True)

    def get_payment(self, payment_id: str) -> Payment | None:
        record = self._payments.get(payment_id)
        return record.model_copy(deep=True) if record is not None else None

    def get_by_order_id(self, order_id: str) -> Payment | None:
        with self.lock:
            payment_id = self._by_order.get(order_id)
            if payment_id is None:
                return None
            return self._payments[payment_id].model_copy(deep=True)

    def find_by_token(self, token: str) -> Payment | None:
        with self.lock:
            for record in self._payments.values():
                if record.paydunya_token == token:
                    return record.model_copy(deep=True)
        return None

    def list_payments(self) -> list[Payment]:
        with self.lock:
            records = [record.model_copy(deep=True) for record in self._payments.values()]
        return _newest_first(records)

    def _flush(self) -> None:
        self._store.save(self._payments.values())
