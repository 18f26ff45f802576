"""
Customer notifications for order status changes.
Sends WhatsApp text messages through the Meta Cloud API.
"""

import logging
import re
from datetime import datetime
from enum import Enum

import httpx
from sqlmodel import Session, select

from . import models
from .db import engine, storage_guard
from .errors import OrderingError
from .lifecycle import mark_customer_notified
from .settings import settings

logger = logging.getLogger(__name__)

_PHONE_NOISE = re.compile(r"[\s\-()]")


class MessageType(str, Enum):
    order_accepted = "order_accepted"
    order_ready = "order_ready"


def normalize_phone(phone: str) -> str:
    """Strip spaces, dashes and parentheses; the API wants digits without '+'."""
    return _PHONE_NOISE.sub("", phone).lstrip("+")


def _format_ready_time(estimated_ready_at: datetime | None) -> str:
    if estimated_ready_at is None:
        return "soon"
    return estimated_ready_at.strftime("%I:%M %p").lstrip("0")


def build_message(
    message_type: MessageType,
    order_number: str,
    restaurant_name: str,
    customer_name: str | None,
    estimated_ready_at: datetime | None = None,
) -> str:
    greeting = f"Hi {customer_name or 'there'}!"
    if message_type == MessageType.order_accepted:
        return (
            f"{greeting}\n\nYour order #{order_number} at {restaurant_name} has been accepted!\n\n"
            f"Estimated ready time: {_format_ready_time(estimated_ready_at)}\n\n"
            "Thank you for ordering!"
        )
    return (
        f"{greeting}\n\nGreat news! Your order #{order_number} at {restaurant_name} "
        "is ready for pickup!\n\nSee you soon!"
    )


async def send_whatsapp_message(phone: str, body: str) -> str:
    """
    Send a text message.

    Returns the message id reported by the API, or "" when an accepted
    response has no readable body. Raises httpx.HTTPError on
    transport failures or a non-2xx response.
    """
    url = f"{settings.whatsapp_api_url}/{settings.whatsapp_phone_number_id}/messages"
    async with httpx.AsyncClient(timeout=settings.notification_timeout_seconds) as client:
        response = await client.post(
            url,
            headers={"Authorization": f"Bearer {settings.whatsapp_access_token}"},
            json={
                "messaging_product": "whatsapp",
                "to": normalize_phone(phone),
                "type": "text",
                "text": {"body": body},
            },
        )
        response.raise_for_status()
        try:
            messages = response.json().get("messages") or [{}]
        except ValueError:
            # Accepted, but the body carried no readable message id
            logger.warning(f"WhatsApp API returned {response.status_code} with a non-JSON body")
            return ""
        return messages[0].get("id", "")


def _load_order(session: Session, order_id: str):
    with storage_guard(session, "loading the order to notify"):
        return session.exec(
            select(models.Order, models.Restaurant, models.RestaurantSettings)
            .join(models.Restaurant, models.Order.restaurant_id == models.Restaurant.id)
            .join(
                models.RestaurantSettings,
                models.RestaurantSettings.restaurant_id == models.Restaurant.id,
                isouter=True,
            )
            .where(models.Order.id == order_id)
        ).first()


async def notify_order_status(order_id: str, message_type: MessageType) -> bool:
    """
    Tell the customer about a status change and mark the order notified.

    Runs after the response has been sent, so it opens its own session.
    Database and API failures are logged and reported as False;
    the status change that triggered it has already been committed.
    """
    if not settings.whatsapp_configured:
        logger.info("WhatsApp credentials not configured, skipping notification")
        return False

    with Session(engine) as session:
        try:
            row = _load_order(session, order_id)
        except OrderingError as e:
            logger.warning(f"Could not load order {order_id} for notification: {e.message}")
            return False
        if row is None:
            logger.warning(f"Order {order_id} not found for notification")
            return False
        order, restaurant, restaurant_settings = row

        if not order.customer_phone:
            logger.info(f"No customer phone for order {order.order_number}")
            return False
        if restaurant_settings is None or not restaurant_settings.whatsapp_enabled:
            logger.info(f"WhatsApp not enabled for restaurant {restaurant.id}")
            return False

        order_number = order.order_number
        body = build_message(
            message_type,
            order_number,
            restaurant.name,
            order.customer_name,
            order.estimated_ready_at,
        )
        try:
            message_id = await send_whatsapp_message(order.customer_phone, body)
        except httpx.HTTPError as e:
            logger.warning(f"WhatsApp {message_type.value} for order {order_number} failed: {e}")
            return False

        try:
            mark_customer_notified(session, order_id)
        except OrderingError as e:
            logger.warning(f"WhatsApp {message_type.value} sent for order {order_number} ({message_id}) "
                           f"but it could not be marked notified: {e.message}")
            return False
        logger.info(f"WhatsApp {message_type.value} sent for order {order_number} ({message_id})")
        return True
