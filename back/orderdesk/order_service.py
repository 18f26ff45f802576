"""
Order Service

Places orders: prices the cart from fresh catalog reads, then writes the
order header, its items and the items' variation/add-on snapshots in one
transaction. Either all rows commit or none do.
"""

import logging
from dataclasses import dataclass

from sqlmodel import Session

from . import models
from .catalog import load_catalog_snapshot
from .db import storage_guard
from .delivery import normalize_pin_code
from .errors import CatalogMismatch, NotFound
from .pricing import PricedOrder, price_line, quote_order
from .realtime import publish_order_update

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlacedOrder:
    order_id: str
    order_number: str
    priced: PricedOrder

    def summary(self) -> dict:
        return {"order_id": self.order_id, "order_number": self.order_number, **self.priced.summary()}


def ensure_catalog_unchanged(
    session: Session,
    restaurant_id: int,
    order_data: models.OrderCreate,
    priced: PricedOrder,
) -> None:
    """Re-read the catalog right before writing; the priced lines must still hold."""
    try:
        fresh = load_catalog_snapshot(session, restaurant_id, order_data.items)
    except NotFound as e:
        raise CatalogMismatch(f"{e.message}. Please refresh the menu and try again") from e

    repriced = tuple(price_line(line, fresh) for line in order_data.items)
    if repriced != priced.lines:
        raise CatalogMismatch("Menu prices changed while the order was being placed. Please try again")


def build_order(
    restaurant_id: int,
    priced: PricedOrder,
    order_data: models.OrderCreate,
) -> models.Order:
    is_delivery = priced.order_type == models.OrderType.delivery
    settled = priced.settle()
    pin_code = normalize_pin_code(order_data.delivery_pin_code) if is_delivery else ""
    return models.Order(
        restaurant_id=restaurant_id,
        status=models.OrderStatus.new,
        order_type=priced.order_type,
        source=order_data.source,
        subtotal=settled.subtotal,
        discount_applied=settled.discount,
        coupon_code=priced.discount.code if priced.discount else None,
        discount_name=priced.discount.name if priced.discount else None,
        tax_amount=settled.tax_amount,
        tax_breakdown=[line.as_dict() for line in settled.tax_lines],
        delivery_fee=settled.delivery_fee,
        total=settled.total,
        customer_name=order_data.customer_name,
        customer_phone=order_data.customer_phone,
        delivery_address=order_data.delivery_address if is_delivery else None,
        delivery_pin_code=pin_code or None,
        delivery_zone_name=priced.delivery.zone.name if priced.delivery.zone else None,
    )


def persist_order(
    session: Session,
    restaurant_id: int,
    priced: PricedOrder,
    order_data: models.OrderCreate,
) -> models.Order:
    """
    Write header, items and option snapshots, committing once at the end.

    Each stage is flushed so the next one gets its foreign keys; a failure at
    any stage rolls back everything already flushed, header included.
    """
    order = build_order(restaurant_id, priced, order_data)

    with storage_guard(session, "creating the order"):
        try:
            session.add(order)
            session.flush()

            order_items = []
            for line in priced.lines:
                order_item = models.OrderItem(
                    order_id=order.id,
                    menu_item_id=line.menu_item_id,
                    item_name=line.item_name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                )
                session.add(order_item)
                order_items.append(order_item)
            session.flush()

            for order_item, line in zip(order_items, priced.lines):
                if line.variation is not None:
                    session.add(models.OrderItemVariation(
                        order_item_id=order_item.id,
                        variation_id=line.variation.variation_id,
                        variation_name=line.variation.name,
                        price_adjustment=line.variation.price_adjustment,
                    ))
                for addon in line.addons:
                    session.add(models.OrderItemAddon(
                        order_item_id=order_item.id,
                        addon_id=addon.addon_id,
                        addon_name=addon.name,
                        price=addon.price,
                        quantity=addon.quantity,
                    ))

            session.commit()
        except Exception:
            # Covers errors storage_guard doesn't translate; never leave a header behind
            session.rollback()
            raise

    return order


def place_order(
    session: Session,
    restaurant_id: int,
    order_data: models.OrderCreate,
) -> PlacedOrder:
    with storage_guard(session, "pricing the order"):
        priced = quote_order(session, restaurant_id, order_data)
        ensure_catalog_unchanged(session, restaurant_id, order_data, priced)

    order = persist_order(session, restaurant_id, priced, order_data)
    placed = PlacedOrder(order_id=order.id, order_number=order.order_number, priced=priced)
    logger.info(
        f"Order {placed.order_number} created for restaurant {restaurant_id}: "
        f"{len(priced.lines)} line(s), total {priced.summary()['total']}"
    )

    publish_order_update(restaurant_id, {
        "type": "order_created",
        "order_id": placed.order_id,
        "order_number": placed.order_number,
        "order_type": priced.order_type.value,
        "status": models.OrderStatus.new.value,
        "created_at": order.created_at.isoformat(),
    })
    return placed
