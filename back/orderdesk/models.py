from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from sqlalchemy import JSON, Numeric
from sqlmodel import Field, Relationship, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, Enum):
    new = "new"
    accepted = "accepted"
    ready = "ready"
    completed = "completed"


class OrderType(str, Enum):
    dine_in = "dine-in"
    pickup = "pickup"
    delivery = "delivery"


class BookingStatus(str, Enum):
    pending = "pending"
    confirmed = "confirmed"
    cancelled = "cancelled"


class DiscountType(str, Enum):
    menu = "menu"  # Menu-wide, applied implicitly
    item = "item"
    coupon = "coupon"


class DiscountValueType(str, Enum):
    percentage = "percentage"
    flat = "flat"


class Restaurant(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    slug: str = Field(unique=True, index=True)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=_utcnow)


class RestaurantMixin(SQLModel):
    restaurant_id: int = Field(foreign_key="restaurant.id", index=True)


class RestaurantSettings(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    restaurant_id: int = Field(foreign_key="restaurant.id", unique=True, index=True)
    pickup_enabled: bool = Field(default=True)
    delivery_enabled: bool = Field(default=False)
    delivery_charge: Decimal = Field(default=Decimal("0"), sa_type=Numeric(10, 2))  # Fee when no pin-code zone applies
    minimum_order_value: Decimal = Field(default=Decimal("0"), sa_type=Numeric(10, 2))  # Delivery orders only
    preparation_time_minutes: int = Field(default=20)
    tax_included_in_price: bool = Field(default=True)
    whatsapp_enabled: bool = Field(default=False)
    # JSON list of DeliveryZone dicts, written by the dashboard's zone editor
    delivery_zones: list[dict] = Field(default_factory=list, sa_type=JSON)
    updated_at: datetime = Field(default_factory=_utcnow)


class RestaurantTax(RestaurantMixin, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str
    rate: Decimal = Field(sa_type=Numeric(6, 3))  # Percent, e.g. 8.875
    is_active: bool = Field(default=True)
    sort_order: int = Field(default=0)


# ============ CATALOG ============

class Menu(RestaurantMixin, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str
    is_active: bool = Field(default=True)
    tax_rate: Decimal | None = Field(default=None, sa_type=Numeric(6, 3))  # Category tax, percent

    items: list["MenuItem"] = Relationship(back_populates="menu")


class MenuItem(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    menu_id: int = Field(foreign_key="menu.id", index=True)
    name: str
    price: Decimal = Field(sa_type=Numeric(10, 2))
    is_available: bool = Field(default=True)

    menu: Menu = Relationship(back_populates="items")
    variations: list["MenuItemVariation"] = Relationship(back_populates="menu_item")
    addons: list["MenuItemAddon"] = Relationship(back_populates="menu_item")


class MenuItemVariation(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    menu_item_id: int = Field(foreign_key="menuitem.id", index=True)
    name: str
    price_adjustment: Decimal = Field(default=Decimal("0"), sa_type=Numeric(10, 2))  # May be negative
    is_available: bool = Field(default=True)
    sort_order: int = Field(default=0)

    menu_item: MenuItem = Relationship(back_populates="variations")


class MenuItemAddon(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    menu_item_id: int = Field(foreign_key="menuitem.id", index=True)
    name: str
    price: Decimal = Field(sa_type=Numeric(10, 2))
    is_available: bool = Field(default=True)
    sort_order: int = Field(default=0)

    menu_item: MenuItem = Relationship(back_populates="addons")


class Discount(RestaurantMixin, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str | None = None
    type: DiscountType = Field(index=True)
    value_type: DiscountValueType
    value: Decimal = Field(sa_type=Numeric(10, 2))
    menu_id: int | None = Field(default=None, foreign_key="menu.id")
    menu_item_id: int | None = Field(default=None, foreign_key="menuitem.id")
    coupon_code: str | None = Field(default=None, index=True)  # Stored uppercase
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=_utcnow)


class DeliveryZone(SQLModel):
    """One entry of RestaurantSettings.delivery_zones"""
    name: str
    fee: Decimal = Decimal("0")
    min_order: Decimal = Decimal("0")
    polygon: list[list[float]] = Field(default_factory=list)  # [lng, lat] pairs, authoring only
    pin_codes: list[str] = Field(default_factory=list)


# ============ ORDERS ============

class Order(RestaurantMixin, table=True):
    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    status: OrderStatus = Field(default=OrderStatus.new, index=True)
    order_type: OrderType = Field(default=OrderType.pickup)
    source: str = Field(default="widget")  # widget, web, pos

    # Money in settled cents, frozen at creation: total == subtotal - discount + tax + delivery fee
    subtotal: Decimal = Field(sa_type=Numeric(12, 2))
    discount_applied: Decimal = Field(default=Decimal("0"), sa_type=Numeric(12, 2))
    coupon_code: str | None = None
    discount_name: str | None = None
    tax_amount: Decimal = Field(default=Decimal("0"), sa_type=Numeric(12, 2))
    tax_breakdown: list[dict] = Field(default_factory=list, sa_type=JSON)  # [{name, rate, amount}]
    delivery_fee: Decimal = Field(default=Decimal("0"), sa_type=Numeric(12, 2))
    total: Decimal = Field(sa_type=Numeric(12, 2))

    customer_name: str | None = None
    customer_phone: str | None = None
    delivery_address: str | None = None
    delivery_pin_code: str | None = None
    delivery_zone_name: str | None = None

    estimated_ready_at: datetime | None = None
    customer_notified: bool = Field(default=False)
    created_at: datetime = Field(default_factory=_utcnow)
    accepted_at: datetime | None = None
    ready_at: datetime | None = None
    completed_at: datetime | None = None

    items: list["OrderItem"] = Relationship(back_populates="order")

    @property
    def order_number(self) -> str:
        return order_number_for(self.id)


def order_number_for(order_id: str) -> str:
    """Short customer-facing reference: first 8 hex digits of the UUID, uppercased"""
    return order_id.replace("-", "")[:8].upper()


class OrderItem(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    order_id: str = Field(foreign_key="order.id", index=True)
    menu_item_id: int = Field(foreign_key="menuitem.id")
    item_name: str  # Snapshot of item name at order time
    quantity: int
    unit_price: Decimal = Field(sa_type=Numeric(12, 4))  # Base + variation + add-ons, at order time
    created_at: datetime = Field(default_factory=_utcnow)

    order: Order = Relationship(back_populates="items")
    variations: list["OrderItemVariation"] = Relationship(back_populates="order_item")
    addons: list["OrderItemAddon"] = Relationship(back_populates="order_item")


class OrderItemVariation(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    order_item_id: int = Field(foreign_key="orderitem.id", index=True)
    variation_id: int
    variation_name: str
    price_adjustment: Decimal = Field(sa_type=Numeric(10, 2))

    order_item: OrderItem = Relationship(back_populates="variations")


class OrderItemAddon(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    order_item_id: int = Field(foreign_key="orderitem.id", index=True)
    addon_id: int
    addon_name: str
    price: Decimal = Field(sa_type=Numeric(10, 2))
    quantity: int

    order_item: OrderItem = Relationship(back_populates="addons")


# ============ TABLE BOOKINGS ============

class DiningTable(RestaurantMixin, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name_or_number: str
    capacity: int = Field(default=4)
    is_active: bool = Field(default=True)


class TableBooking(RestaurantMixin, table=True):
    id: int | None = Field(default=None, primary_key=True)
    table_id: int = Field(foreign_key="diningtable.id", index=True)
    customer_name: str
    customer_phone: str
    booking_date: date
    booking_time: str  # "19:30"
    party_size: int | None = None
    status: BookingStatus = Field(default=BookingStatus.pending, index=True)
    created_at: datetime = Field(default_factory=_utcnow)


# Request/Response Models
class CartAddon(SQLModel):
    addon_id: int
    quantity: int = Field(default=1, ge=1)


class CartLine(SQLModel):
    menu_item_id: int
    quantity: int = Field(ge=1)
    variation_id: int | None = None
    addons: list[CartAddon] = Field(default_factory=list)
    # Accepted for widget compatibility, never used for pricing
    price: float | None = None


class OrderCreate(SQLModel):
    order_type: OrderType = OrderType.pickup
    items: list[CartLine]
    coupon_code: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None
    delivery_address: str | None = None
    delivery_pin_code: str | None = None
    source: str = "widget"


class OrderStatusUpdate(SQLModel):
    status: OrderStatus
    estimated_minutes: int | None = None


class BookingCreate(SQLModel):
    table_id: int
    customer_name: str
    customer_phone: str
    booking_date: date
    booking_time: str
    party_size: int | None = Field(default=None, ge=1)


class BookingStatusUpdate(SQLModel):
    status: BookingStatus
