from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class OrderType(str, Enum):
    LIVRAISON = "livraison"
    EMPORTER = "emporter"


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    READY = "ready"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    WAVE = "wave"
    ORANGE_MONEY = "orange-money"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AdminRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset(
        {OrderStatus.CONFIRMED, OrderStatus.PAID, OrderStatus.CANCELLED}
    ),
    OrderStatus.PAID: frozenset(
        {OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.CANCELLED}
    ),
    OrderStatus.CONFIRMED: frozenset(
        {OrderStatus.PAID, OrderStatus.PREPARING, OrderStatus.CANCELLED}
    ),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    # take-away orders go straight from ready to delivered
    OrderStatus.READY: frozenset(
        {OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    ),
    OrderStatus.OUT_FOR_DELIVERY: frozenset(
        {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
    ),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {
            PaymentStatus.PROCESSING,
            PaymentStatus.COMPLETED,
            PaymentStatus.FAILED,
            PaymentStatus.CANCELLED,
        }
    ),
    PaymentStatus.PROCESSING: frozenset(
        {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED}
    ),
    PaymentStatus.COMPLETED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
}


def can_transition(table: dict, current: str, target: str) -> bool:
    """Same-status writes are always allowed; anything else must be in ``table``."""
    if current == target:
        return True
    for state, targets in table.items():
        if state.value == current:
            return target in {allowed.value for allowed in targets}
    return False


def utc_now() -> str:
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def parse_timestamp(value: str) -> datetime:
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class OrderItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    product_name: str
    quantity: int = Field(..., gt=0)
    price: float = Field(..., ge=0)
    selected_drink: Optional[str] = None


class Order(BaseModel):
    """A submitted storefront order.

    Items are value copies taken at checkout time and ``total`` is whatever
    the client computed. Extra keys sent by the storefront are carried along.
    """

    model_config = ConfigDict(extra="allow", use_enum_values=True)

    id: str
    order_number: str
    customer_name: str
    customer_phone: str = ""
    delivery_address: str = ""
    delivery_zone: str = ""
    landmark: str = ""
    items: list[OrderItem]
    total: float
    order_type: OrderType
    status: OrderStatus = OrderStatus.PENDING
    created_at: str
    payment_id: Optional[str] = None


class Payment(BaseModel):
    model_config = ConfigDict(extra="allow", use_enum_values=True)

    id: str
    order_id: str
    amount: float
    payment_method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    paydunya_token: Optional[str] = None
    paydunya_invoice_url: Optional[str] = None
    customer_name: str = ""
    customer_phone: str = ""
    paid_at: Optional[str] = None
    error_message: Optional[str] = None
    created_at: str


class AdminUser(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    id: str
    email: str
    password: str
    name: str
    role: AdminRole = AdminRole.ADMIN
    is_active: bool = True
    last_login: Optional[str] = None
    created_at: str

    def public(self) -> dict:
        return self.model_dump(exclude={"password"})
