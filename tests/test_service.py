from __future__ import annotations

import pytest

from storefront_service.models import Order, Payment
from storefront_service.repository import OrderRepository, PaymentRepository
from storefront_service.service import (
    InvalidFields,
    InvalidTransition,
    MissingFields,
    NotFound,
    OrderService,
    PaymentService,
)
from storefront_service.store import JsonFileStore


@pytest.fixture()
def orders(tmp_path):
    return OrderService(OrderRepository(JsonFileStore(tmp_path / "orders.json", Order)))


@pytest.fixture()
def payments(tmp_path):
    return PaymentService(PaymentRepository(JsonFileStore(tmp_path / "payments.json", Payment)))


def _order_fields(**overrides):
    fields = {
        "order_number": "CM1",
        "customer_name": "Awa",
        "customer_phone": "770000000",
        "items": [{"product_name": "Menu", "quantity": 1, "price": 4500}],
        "total": 4500,
        "order_type": "emporter",
    }
    fields.update(overrides)
    return fields


def test_create_order_defaults(orders):
    record = orders.create_order(_order_fields())
    assert record.id.startswith("order-")
    assert record.status == "pending"
    assert record.delivery_address == ""
    assert record.payment_id is None
    assert record.created_at.endswith("Z")


def test_create_delivery_order_keeps_address(orders):
    record = orders.create_order(
        _order_fields(
            order_type="livraison",
            delivery_address="Rue 10, Medina",
            delivery_zone="Dakar Plateau",
            landmark="Près de la pharmacie",
        )
    )
    assert record.order_type == "livraison"
    assert record.delivery_zone == "Dakar Plateau"


@pytest.mark.parametrize("field", ["order_number", "customer_name", "items", "total", "order_type"])
def test_create_order_requires_fields(orders, field):
    with pytest.raises(MissingFields):
        orders.create_order(_order_fields(**{field: None}))


def test_create_order_ignores_client_status_and_id(orders):
    record = orders.create_order(_order_fields(id="order-forged", status="delivered"))
    assert record.id != "order-forged"
    assert record.status == "pending"


def test_create_order_rejects_unknown_order_type(orders):
    with pytest.raises(InvalidFields):
        orders.create_order(_order_fields(order_type="drone"))


def test_get_unknown_order(orders):
    with pytest.raises(NotFound):
        orders.get_order("order-404")


def test_update_status_then_get(orders):
    record = orders.create_order(_order_fields())
    orders.update_order(record.id, {"status": "confirmed"})
    assert orders.get_order(record.id).status == "confirmed"


def test_update_merges_disjoint_fields(orders):
    record = orders.create_order(_order_fields())
    orders.update_order(record.id, {"customer_phone": "781112233"})
    orders.update_order(record.id, {"payment_id": "payment-1"})

    fetched = orders.get_order(record.id)
    assert fetched.customer_phone == "781112233"
    assert fetched.payment_id == "payment-1"
    assert fetched.customer_name == "Awa"


def test_update_keeps_extra_storefront_fields(orders):
    record = orders.create_order(_order_fields())
    updated = orders.update_order(record.id, {"estimated_delivery_time": "30 min"})
    assert updated.model_dump()["estimated_delivery_time"] == "30 min"


def test_update_unknown_order(orders):
    with pytest.raises(NotFound):
        orders.update_order("order-404", {"status": "confirmed"})
    assert orders.list_orders() == []


def test_illegal_transition_leaves_order_untouched(orders):
    record = orders.create_order(_order_fields())
    with pytest.raises(InvalidTransition):
        orders.update_order(record.id, {"status": "delivered", "customer_name": "Moussa"})

    fetched = orders.get_order(record.id)
    assert fetched.status == "pending"
    assert fetched.customer_name == "Awa"


def test_same_status_write_is_allowed(orders):
    record = orders.create_order(_order_fields())
    orders.update_order(record.id, {"status": "pending"})
    assert orders.get_order(record.id).status == "pending"


def test_named_actions_walk_the_delivery_flow(orders):
    record = orders.create_order(_order_fields(order_type="livraison"))
    for action, expected in [
        ("confirm", "confirmed"),
        ("start_preparing", "preparing"),
        ("mark_ready", "ready"),
        ("dispatch", "out_for_delivery"),
        ("mark_delivered", "delivered"),
    ]:
        assert orders.apply_action(record.id, action).status == expected

    with pytest.raises(InvalidTransition):
        orders.apply_action(record.id, "cancel")


def test_takeaway_order_can_be_delivered_from_ready(orders):
    record = orders.create_order(_order_fields())
    for action in ("mark_paid", "start_preparing", "mark_ready", "mark_delivered"):
        orders.apply_action(record.id, action)
    assert orders.get_order(record.id).status == "delivered"


def test_unknown_action(orders):
    record = orders.create_order(_order_fields())
    with pytest.raises(NotFound):
        orders.apply_action(record.id, "teleport")


def test_create_payment_and_lookup_by_order(payments):
    record = payments.create_payment(
        {"order_id": "order-1", "amount": 4500, "payment_method": "wave"}
    )
    assert record.status == "pending"
    assert record.customer_name == ""

    by_order = payments.get_by_order_id("order-1")
    assert by_order.order_id == "order-1"
    assert by_order.id == record.id


@pytest.mark.parametrize("field", ["order_id", "amount", "payment_method"])
def test_create_payment_requires_fields(payments, field):
    fields = {"order_id": "order-1", "amount": 4500, "payment_method": "wave"}
    fields[field] = None
    with pytest.raises(MissingFields):
        payments.create_payment(fields)


def test_payment_for_unknown_order(payments):
    with pytest.raises(NotFound):
        payments.get_by_order_id("order-404")


def test_payment_terminal_status_is_final(payments):
    record = payments.create_payment(
        {"order_id": "order-1", "amount": 4500, "payment_method": "orange-money"}
    )
    payments.complete(record.id)
    with pytest.raises(InvalidTransition):
        payments.update_payment(record.id, {"status": "pending"})
    assert payments.get_payment(record.id).status == "completed"
    assert payments.get_payment(record.id).paid_at is not None


def test_payment_rejects_unknown_status(payments):
    record = payments.create_payment(
        {"order_id": "order-1", "amount": 4500, "payment_method": "wave"}
    )
    with pytest.raises(InvalidTransition):
        payments.update_payment(record.id, {"status": "refunded"})
