"""
Order API Routes

Public:
- Quote a cart (server-side prices, nothing stored)
- Place an order

Staff (bearer token scoped to one restaurant):
- POS board listing
- Receipt view
- Status transitions
"""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import selectinload
from sqlmodel import Session, select

from . import models
from .db import get_session, storage_guard
from .errors import NotFound
from .lifecycle import Notifier, advance_order_status
from .notifications import MessageType, notify_order_status
from .order_service import place_order
from .pricing import quote_order, to_money
from .security import StaffContext, get_current_staff

router = APIRouter()


def _money(amount: Decimal | None) -> float:
    return float(to_money(Decimal(amount or 0)))


def order_to_dict(order: models.Order, include_items: bool = True) -> dict:
    """Render an order from its frozen snapshots; the live catalog is never consulted."""
    result = {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status.value,
        "order_type": order.order_type.value,
        "source": order.source,
        "customer_name": order.customer_name,
        "customer_phone": order.customer_phone,
        "delivery_address": order.delivery_address,
        "delivery_pin_code": order.delivery_pin_code,
        "delivery_zone": order.delivery_zone_name,
        "subtotal": _money(order.subtotal),
        "discount": _money(order.discount_applied),
        "coupon_code": order.coupon_code,
        "applied_discount": order.discount_name,
        "taxes": [
            {"name": tax["name"], "rate": float(Decimal(tax["rate"])), "amount": _money(Decimal(tax["amount"]))}
            for tax in order.tax_breakdown or []
        ],
        "tax_amount": _money(order.tax_amount),
        "delivery_fee": _money(order.delivery_fee),
        "total": _money(order.total),
        "estimated_ready_at": order.estimated_ready_at.isoformat() if order.estimated_ready_at else None,
        "customer_notified": order.customer_notified,
        "created_at": order.created_at.isoformat(),
    }
    if include_items:
        result["items"] = [
            {
                "id": item.id,
                "menu_item_id": item.menu_item_id,
                "name": item.item_name,
                "quantity": item.quantity,
                "unit_price": _money(item.unit_price),
                "line_total": _money(item.unit_price * item.quantity),
                "variations": [
                    {"name": v.variation_name, "price_adjustment": _money(v.price_adjustment)}
                    for v in item.variations
                ],
                "addons": [
                    {"name": a.addon_name, "price": _money(a.price), "quantity": a.quantity}
                    for a in item.addons
                ],
            }
            for item in order.items
        ]
    return result


def _with_items(statement):
    return statement.options(
        selectinload(models.Order.items).selectinload(models.OrderItem.variations),
        selectinload(models.Order.items).selectinload(models.OrderItem.addons),
    )


def background_notifier(background_tasks: BackgroundTasks) -> Notifier:
    """Queue the customer message to run after the response is sent"""
    def schedule(order_id: str, new_status: models.OrderStatus) -> None:
        message_type = (
            MessageType.order_accepted
            if new_status == models.OrderStatus.accepted
            else MessageType.order_ready
        )
        background_tasks.add_task(notify_order_status, order_id, message_type)
    return schedule


# ============ PUBLIC ============

@router.post("/public/restaurants/{restaurant_id}/quote")
def quote_public_order(
    restaurant_id: int,
    order_data: models.OrderCreate,
    session: Session = Depends(get_session),
) -> dict:
    """Price a cart exactly as placing it would, without storing anything."""
    with storage_guard(session, "quoting the order"):
        return quote_order(session, restaurant_id, order_data).summary()


@router.post("/public/restaurants/{restaurant_id}/orders")
def create_public_order(
    restaurant_id: int,
    order_data: models.OrderCreate,
    session: Session = Depends(get_session),
) -> dict:
    placed = place_order(session, restaurant_id, order_data)
    return {"success": True, **placed.summary()}


# ============ STAFF ============

@router.get("/orders")
def list_orders(
    current_staff: Annotated[StaffContext, Depends(get_current_staff)],
    session: Session = Depends(get_session),
    status: models.OrderStatus | None = None,
    limit: int = Query(100, ge=1, le=500),
) -> list[dict]:
    """Orders for the POS board, newest first"""
    statement = (
        select(models.Order)
        .where(models.Order.restaurant_id == current_staff.restaurant_id)
        .order_by(models.Order.created_at.desc())
        .limit(limit)
    )
    if status:
        statement = statement.where(models.Order.status == status)
    with storage_guard(session, "listing orders"):
        orders = session.exec(_with_items(statement)).all()
        return [order_to_dict(order) for order in orders]


@router.get("/orders/{order_id}")
def get_order(
    order_id: str,
    current_staff: Annotated[StaffContext, Depends(get_current_staff)],
    session: Session = Depends(get_session),
) -> dict:
    with storage_guard(session, "loading the order"):
        order = session.exec(
            _with_items(
                select(models.Order)
                .where(models.Order.id == order_id)
                .where(models.Order.restaurant_id == current_staff.restaurant_id)
            )
        ).first()
        if not order:
            raise NotFound("Order not found")
        return order_to_dict(order)


@router.put("/orders/{order_id}/status")
def update_order_status(
    order_id: str,
    status_update: models.OrderStatusUpdate,
    current_staff: Annotated[StaffContext, Depends(get_current_staff)],
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
) -> dict:
    transition = advance_order_status(
        session,
        current_staff.restaurant_id,
        order_id,
        status_update.status,
        estimated_minutes=status_update.estimated_minutes,
        notifier=background_notifier(background_tasks),
    )
    return transition.as_dict()
