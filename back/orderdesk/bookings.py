"""Public table reservations. Status changes live in lifecycle.advance_booking_status."""

import logging

from sqlmodel import Session, select

from . import models
from .db import storage_guard
from .errors import NotFound, ValidationFailed
from .pricing import load_restaurant
from .realtime import publish_order_update

logger = logging.getLogger(__name__)


def create_booking(
    session: Session,
    restaurant_id: int,
    booking_data: models.BookingCreate,
) -> tuple[models.TableBooking, models.DiningTable]:
    with storage_guard(session, "creating the booking"):
        load_restaurant(session, restaurant_id)

        table = session.exec(
            select(models.DiningTable)
            .where(models.DiningTable.id == booking_data.table_id)
            .where(models.DiningTable.restaurant_id == restaurant_id)
            .where(models.DiningTable.is_active == True)
        ).first()
        if not table:
            raise NotFound("Table not found or inactive")

        if booking_data.party_size and booking_data.party_size > table.capacity:
            raise ValidationFailed(f"{table.name_or_number} seats at most {table.capacity}")

        clash = session.exec(
            select(models.TableBooking)
            .where(models.TableBooking.table_id == table.id)
            .where(models.TableBooking.booking_date == booking_data.booking_date)
            .where(models.TableBooking.booking_time == booking_data.booking_time)
            .where(models.TableBooking.status != models.BookingStatus.cancelled)
        ).first()
        if clash:
            raise ValidationFailed("This table is already booked for the selected time")

        booking = models.TableBooking(
            restaurant_id=restaurant_id,
            table_id=table.id,
            customer_name=booking_data.customer_name,
            customer_phone=booking_data.customer_phone,
            booking_date=booking_data.booking_date,
            booking_time=booking_data.booking_time,
            party_size=booking_data.party_size,
            status=models.BookingStatus.pending,
        )
        session.add(booking)
        session.commit()
        session.refresh(booking)

    logger.info(f"Booking {booking.id} created for restaurant {restaurant_id}, table {table.id}")
    publish_order_update(restaurant_id, {
        "type": "booking_created",
        "booking_id": booking.id,
        "table_name": table.name_or_number,
        "booking_date": booking.booking_date.isoformat(),
        "booking_time": booking.booking_time,
    })
    return booking, table
