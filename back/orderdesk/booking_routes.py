"""Table booking routes: public reservation requests and staff confirm/cancel."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlmodel import Session

from . import models
from .bookings import create_booking
from .db import get_session
from .lifecycle import advance_booking_status
from .security import StaffContext, get_current_staff

router = APIRouter()


def booking_to_dict(booking: models.TableBooking) -> dict:
    return {
        "id": booking.id,
        "table_id": booking.table_id,
        "customer_name": booking.customer_name,
        "customer_phone": booking.customer_phone,
        "booking_date": booking.booking_date.isoformat(),
        "booking_time": booking.booking_time,
        "party_size": booking.party_size,
        "status": booking.status.value,
    }


@router.post("/public/restaurants/{restaurant_id}/bookings")
def create_public_booking(
    restaurant_id: int,
    booking_data: models.BookingCreate,
    session: Session = Depends(get_session),
) -> dict:
    booking, table = create_booking(session, restaurant_id, booking_data)
    return {"success": True, "booking": {**booking_to_dict(booking), "table_name": table.name_or_number}}


@router.put("/bookings/{booking_id}/status")
def update_booking_status(
    booking_id: int,
    status_update: models.BookingStatusUpdate,
    current_staff: Annotated[StaffContext, Depends(get_current_staff)],
    session: Session = Depends(get_session),
) -> dict:
    booking = advance_booking_status(session, current_staff.restaurant_id, booking_id, status_update.status)
    return {"status": "updated", "booking": booking_to_dict(booking)}
