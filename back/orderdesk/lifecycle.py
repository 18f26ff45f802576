"""
Order Lifecycle

Orders move strictly new -> accepted -> ready -> completed; table bookings
move pending -> confirmed | cancelled. Every move is a conditional update
guarded on the expected prior status, so when two staff devices act on the
same row only one update lands and the other gets AlreadyTransitioned.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import update
from sqlmodel import Session, select

from . import models
from .db import storage_guard
from .errors import AlreadyTransitioned, InvalidTransition, NotFound, ValidationFailed
from .realtime import publish_order_update

logger = logging.getLogger(__name__)

OrderStatus = models.OrderStatus
BookingStatus = models.BookingStatus

ORDER_FLOW = (OrderStatus.new, OrderStatus.accepted, OrderStatus.ready, OrderStatus.completed)
PREVIOUS_STATUS = {target: prior for prior, target in zip(ORDER_FLOW, ORDER_FLOW[1:])}
STATUS_TIMESTAMPS = {
    OrderStatus.accepted: "accepted_at",
    OrderStatus.ready: "ready_at",
    OrderStatus.completed: "completed_at",
}
# Choices offered on the POS board when accepting an order
ESTIMATED_MINUTES_CHOICES = (15, 20, 30, 45, 60)
NOTIFY_ON = (OrderStatus.accepted, OrderStatus.ready)

BOOKING_TRANSITIONS = {
    BookingStatus.pending: (BookingStatus.confirmed, BookingStatus.cancelled),
}

Notifier = Callable[[str, OrderStatus], None]


@dataclass(frozen=True)
class TransitionResult:
    order_id: str
    status: OrderStatus
    estimated_ready_at: datetime | None = None

    def as_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "order_number": models.order_number_for(self.order_id),
            "status": self.status.value,
            "estimated_ready_at": self.estimated_ready_at.isoformat() if self.estimated_ready_at else None,
        }


def check_order_transition(current: OrderStatus, target: OrderStatus) -> None:
    if target == OrderStatus.new:
        raise InvalidTransition("Orders cannot be moved back to new")
    if current == target:
        raise AlreadyTransitioned(f"Order is already {current.value}")
    if PREVIOUS_STATUS[target] != current:
        raise InvalidTransition(f"Cannot move order from {current.value} to {target.value}")


def _current_status(session: Session, restaurant_id: int, order_id: str) -> OrderStatus:
    status = session.exec(
        select(models.Order.status)
        .where(models.Order.id == order_id)
        .where(models.Order.restaurant_id == restaurant_id)
    ).first()
    if status is None:
        raise NotFound("Order not found")
    return OrderStatus(status)


def _transition_values(
    target: OrderStatus,
    estimated_minutes: int | None,
    now: datetime,
) -> dict:
    values = {"status": target, STATUS_TIMESTAMPS[target]: now}
    if target == OrderStatus.accepted:
        if estimated_minutes not in ESTIMATED_MINUTES_CHOICES:
            choices = ", ".join(str(m) for m in ESTIMATED_MINUTES_CHOICES)
            raise ValidationFailed(f"Estimated preparation time must be one of: {choices} minutes")
        values["estimated_ready_at"] = now + timedelta(minutes=estimated_minutes)
    return values


def advance_order_status(
    session: Session,
    restaurant_id: int,
    order_id: str,
    target: OrderStatus,
    estimated_minutes: int | None = None,
    notifier: Notifier | None = None,
) -> TransitionResult:
    with storage_guard(session, "updating the order status"):
        current = _current_status(session, restaurant_id, order_id)
        check_order_transition(current, target)
        values = _transition_values(target, estimated_minutes, datetime.now(timezone.utc))

        result = session.exec(
            update(models.Order)
            .where(models.Order.id == order_id)
            .where(models.Order.restaurant_id == restaurant_id)
            .where(models.Order.status == PREVIOUS_STATUS[target])
            .values(**values)
        )
        if result.rowcount != 1:
            session.rollback()
            logger.warning(f"Order {order_id}: lost race moving to {target.value}")
            raise AlreadyTransitioned(f"Order was already moved past {PREVIOUS_STATUS[target].value}")
        session.commit()

    transition = TransitionResult(
        order_id=order_id,
        status=target,
        estimated_ready_at=values.get("estimated_ready_at"),
    )
    logger.info(f"Order {models.order_number_for(order_id)} moved to {target.value}")

    publish_order_update(restaurant_id, {"type": "status_update", **transition.as_dict()})

    if notifier is not None and target in NOTIFY_ON:
        try:
            notifier(order_id, target)
        except Exception:
            logger.warning(f"Notification for order {order_id} ({target.value}) failed", exc_info=True)

    return transition


def mark_customer_notified(session: Session, order_id: str) -> None:
    with storage_guard(session, "marking the customer notified"):
        session.exec(
            update(models.Order)
            .where(models.Order.id == order_id)
            .values(customer_notified=True)
        )
        session.commit()


def advance_booking_status(
    session: Session,
    restaurant_id: int,
    booking_id: int,
    target: BookingStatus,
) -> models.TableBooking:
    with storage_guard(session, "updating the booking status"):
        booking = session.exec(
            select(models.TableBooking)
            .where(models.TableBooking.id == booking_id)
            .where(models.TableBooking.restaurant_id == restaurant_id)
        ).first()
        if booking is None:
            raise NotFound("Booking not found")

        current = BookingStatus(booking.status)
        if current == target:
            raise AlreadyTransitioned(f"Booking is already {current.value}")
        if target not in BOOKING_TRANSITIONS.get(current, ()):
            raise InvalidTransition(f"Cannot move booking from {current.value} to {target.value}")

        result = session.exec(
            update(models.TableBooking)
            .where(models.TableBooking.id == booking_id)
            .where(models.TableBooking.status == current)
            .values(status=target)
        )
        if result.rowcount != 1:
            session.rollback()
            raise AlreadyTransitioned(f"Booking was already moved from {current.value}")
        session.commit()
        session.refresh(booking)

    logger.info(f"Booking {booking_id} moved to {target.value}")
    publish_order_update(restaurant_id, {
        "type": "booking_status",
        "booking_id": booking_id,
        "status": target.value,
    })
    return booking
