from __future__ import annotations

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .models import OrderItem, OrderStatus, OrderType, PaymentMethod, PaymentStatus

IMMUTABLE_FIELDS = ("id", "created_at")


class HealthResponse(BaseModel):
    status: Literal["ok"]


class PingResponse(BaseModel):
    message: str


class CreateOrderRequest(BaseModel):
    order_number: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1)
    customer_phone: str = ""
    delivery_address: Optional[str] = None
    delivery_zone: Optional[str] = None
    landmark: Optional[str] = None
    items: List[OrderItem] = Field(..., min_length=1)
    total: float = Field(..., gt=0)
    order_type: OrderType


class _PartialUpdate(BaseModel):
    model_config = ConfigDict(extra="allow")

    @model_validator(mode="before")
    @classmethod
    def _reject_immutable(cls, data: Any) -> Any:
        if isinstance(data, dict):
            locked = [name for name in IMMUTABLE_FIELDS if name in data]
            if locked:
                raise ValueError(f"Fields cannot be changed: {', '.join(locked)}")
        return data

    def changes(self) -> dict:
        return self.model_dump(mode="json", exclude_unset=True)


class OrderUpdate(_PartialUpdate):
    order_number: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_zone: Optional[str] = None
    landmark: Optional[str] = None
    items: Optional[List[OrderItem]] = None
    total: Optional[float] = None
    order_type: Optional[OrderType] = None
    status: Optional[OrderStatus] = None
    payment_id: Optional[str] = None


class CreatePaymentRequest(BaseModel):
    order_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    payment_method: PaymentMethod
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None


class PaymentUpdate(_PartialUpdate):
    order_id: Optional[str] = None
    amount: Optional[float] = None
    payment_method: Optional[PaymentMethod] = None
    status: Optional[PaymentStatus] = None
    paydunya_token: Optional[str] = None
    paydunya_invoice_url: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    paid_at: Optional[str] = None
    error_message: Optional[str] = None


class InitializePaymentRequest(BaseModel):
    order_id: Optional[str] = None
    payment_id: Optional[str] = None
    total: Optional[float] = None
    payment_method: Optional[PaymentMethod] = None
    order_number: Optional[str] = None
    items: Optional[List[OrderItem]] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    order_type: Optional[OrderType] = None


class InitializePaymentResponse(BaseModel):
    success: bool = True
    payment_url: str
    token: str
    transaction_id: str


class CallbackData(BaseModel):
    model_config = ConfigDict(extra="allow")

    order_id: Optional[str] = None


class CallbackRequest(BaseModel):
    status: Optional[str] = None
    token: Optional[str] = None
    custom_data: Optional[CallbackData] = None
    order_id: Optional[str] = None

    def resolved_order_id(self) -> Optional[str]:
        if self.custom_data and self.custom_data.order_id:
            return self.custom_data.order_id
        return self.order_id


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class PaymentStatusData(BaseModel):
    payment_id: str
    order_id: str
    status: str
    payment_method: str
    amount: float
    created_at: str
    paid_at: Optional[str] = None
    error_message: Optional[str] = None


class PaymentStatusResponse(BaseModel):
    success: bool = True
    data: PaymentStatusData


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SessionRequest(BaseModel):
    user_id: Optional[str] = None
    logged_in_at: Optional[str] = None
