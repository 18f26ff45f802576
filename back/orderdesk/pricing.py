"""
Pricing Aggregator

Turns a cart into a fully itemized PricedOrder:

    subtotal       = sum(unit_price * quantity)
    after_discount = max(0, subtotal - discount)
    total          = after_discount + taxes + delivery_fee

``price_cart`` is pure and deterministic. ``quote_order`` does the reads
(restaurant, settings, catalog, discount rule, taxes) for one request and
hands them to ``price_cart``.

Amounts stay unrounded until ``PricedOrder.settle`` turns them into the cents
that are shown and stored.
"""

import logging
from dataclasses import dataclass
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

from sqlmodel import Session, select

from .catalog import CatalogSnapshot, load_catalog_snapshot
from .delivery import DeliveryQuote, match_delivery_zone, parse_zones
from .discounts import AppliedDiscount, apply_discount, find_discount
from .errors import BelowMinimumOrder, NotFound, OrderTypeUnavailable, ValidationFailed
from .models import (
    CartLine,
    Discount,
    OrderCreate,
    OrderType,
    Restaurant,
    RestaurantSettings,
    RestaurantTax,
)
from .taxes import MenuSubtotal, TaxLine, TaxResult, calculate_taxes

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_money(amount: Decimal) -> Decimal:
    """Display rounding, applied once on the way out"""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def split_cents(amounts: list[Decimal], total: Decimal) -> list[Decimal]:
    """
    Round non-negative amounts to cents so they add up to ``total`` exactly.

    Every amount is rounded down, then the cents still missing go one each to
    the amounts with the largest remainders (earlier amount wins a tie).
    """
    floors = [amount.quantize(CENT, rounding=ROUND_DOWN) for amount in amounts]
    missing = int((total - sum(floors, ZERO)) / CENT)
    by_remainder = sorted(range(len(amounts)), key=lambda i: (floors[i] - amounts[i], i))
    for i in by_remainder[:missing]:
        floors[i] += CENT
    return floors


@dataclass(frozen=True)
class SettledAmounts:
    """The cents an order is shown and stored with: total == subtotal - discount + tax + fee"""
    subtotal: Decimal
    discount: Decimal
    tax_lines: tuple[TaxLine, ...]
    tax_amount: Decimal
    delivery_fee: Decimal
    total: Decimal


@dataclass(frozen=True)
class VariationSnapshot:
    variation_id: int
    name: str
    price_adjustment: Decimal


@dataclass(frozen=True)
class AddonSnapshot:
    addon_id: int
    name: str
    price: Decimal
    quantity: int


@dataclass(frozen=True)
class PricedLine:
    """A cart line with prices copied out of the catalog; becomes an OrderItem"""
    menu_item_id: int
    item_name: str
    menu_id: int
    quantity: int
    unit_price: Decimal
    variation: VariationSnapshot | None
    addons: tuple[AddonSnapshot, ...]

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class PricedOrder:
    order_type: OrderType
    lines: tuple[PricedLine, ...]
    subtotal: Decimal
    discount: AppliedDiscount | None
    after_discount: Decimal
    taxes: TaxResult
    delivery: DeliveryQuote
    total: Decimal

    @property
    def discount_amount(self) -> Decimal:
        return self.discount.amount if self.discount else ZERO

    def settle(self) -> SettledAmounts:
        """Round each part once; the total is rebuilt from the rounded parts."""
        subtotal = to_money(self.subtotal)
        discount = to_money(self.discount_amount)
        tax_amount = to_money(self.taxes.total)
        line_amounts = split_cents([line.amount for line in self.taxes.lines], tax_amount)
        delivery_fee = to_money(self.delivery.fee)
        return SettledAmounts(
            subtotal=subtotal,
            discount=discount,
            tax_lines=tuple(
                TaxLine(name=line.name, rate=line.rate, amount=amount)
                for line, amount in zip(self.taxes.lines, line_amounts)
            ),
            tax_amount=tax_amount,
            delivery_fee=delivery_fee,
            total=subtotal - discount + tax_amount + delivery_fee,
        )

    def summary(self) -> dict:
        settled = self.settle()
        return {
            "order_type": self.order_type.value,
            "subtotal": float(settled.subtotal),
            "discount": float(settled.discount),
            "applied_discount": self.discount.name if self.discount else None,
            "taxes": [
                {"name": line.name, "rate": float(line.rate), "amount": float(line.amount)}
                for line in settled.tax_lines
            ],
            "tax_amount": float(settled.tax_amount),
            "delivery_fee": float(settled.delivery_fee),
            "delivery_zone": self.delivery.zone.name if self.delivery.zone else None,
            "total": float(settled.total),
        }


def price_line(line: CartLine, snapshot: CatalogSnapshot) -> PricedLine:
    item = snapshot.items[line.menu_item_id]
    unit_price = item.price

    variation = None
    if line.variation_id is not None:
        found = snapshot.variations[line.variation_id]
        variation = VariationSnapshot(
            variation_id=found.id,
            name=found.name,
            price_adjustment=found.price_adjustment,
        )
        unit_price += found.price_adjustment

    addons = []
    for requested in line.addons:
        found = snapshot.addons[requested.addon_id]
        addons.append(AddonSnapshot(
            addon_id=found.id,
            name=found.name,
            price=found.price,
            quantity=requested.quantity,
        ))
        unit_price += found.price * requested.quantity

    return PricedLine(
        menu_item_id=item.id,
        item_name=item.name,
        menu_id=item.menu_id,
        quantity=line.quantity,
        # A negative variation can't make an item pay the customer
        unit_price=max(unit_price, ZERO),
        variation=variation,
        addons=tuple(addons),
    )


def menu_subtotals(lines: list[PricedLine], snapshot: CatalogSnapshot) -> list[MenuSubtotal]:
    totals: dict[int, Decimal] = {}
    for line in lines:
        totals[line.menu_id] = totals.get(line.menu_id, ZERO) + line.line_total

    menus = {item.menu_id: item for item in snapshot.items.values()}
    return [
        MenuSubtotal(
            menu_id=menu_id,
            menu_name=menus[menu_id].menu_name,
            tax_rate=menus[menu_id].menu_tax_rate,
            subtotal=subtotal,
        )
        for menu_id, subtotal in totals.items()
    ]


def check_minimum_order(
    order_type: OrderType,
    subtotal: Decimal,
    restaurant_settings: RestaurantSettings,
    delivery: DeliveryQuote,
) -> None:
    if order_type != OrderType.delivery:
        return
    minimum = Decimal(restaurant_settings.minimum_order_value or 0)
    if delivery.zone is not None:
        minimum = max(minimum, Decimal(delivery.zone.min_order or 0))
    if subtotal < minimum:
        raise BelowMinimumOrder(
            f"Minimum order for delivery is {to_money(minimum)}, cart subtotal is {to_money(subtotal)}"
        )


def price_cart(
    lines: list[CartLine],
    snapshot: CatalogSnapshot,
    discount_rule: Discount | None,
    restaurant_taxes: list[RestaurantTax],
    restaurant_settings: RestaurantSettings,
    order_type: OrderType,
    pin_code: str | None = None,
) -> PricedOrder:
    priced_lines = [price_line(line, snapshot) for line in lines]
    subtotal = sum((line.line_total for line in priced_lines), ZERO)

    discount = apply_discount(discount_rule, subtotal)
    discount_amount = discount.amount if discount else ZERO
    after_discount = max(ZERO, subtotal - discount_amount)

    taxes = calculate_taxes(
        after_discount=after_discount,
        subtotal=subtotal,
        menu_subtotals=menu_subtotals(priced_lines, snapshot),
        restaurant_taxes=restaurant_taxes,
        tax_included_in_price=restaurant_settings.tax_included_in_price,
    )

    delivery = match_delivery_zone(
        order_type,
        pin_code,
        parse_zones(restaurant_settings.delivery_zones),
        Decimal(restaurant_settings.delivery_charge or 0),
    )
    check_minimum_order(order_type, subtotal, restaurant_settings, delivery)

    return PricedOrder(
        order_type=order_type,
        lines=tuple(priced_lines),
        subtotal=subtotal,
        discount=discount,
        after_discount=after_discount,
        taxes=taxes,
        delivery=delivery,
        total=after_discount + taxes.total + delivery.fee,
    )


def load_restaurant(session: Session, restaurant_id: int) -> tuple[Restaurant, RestaurantSettings]:
    restaurant = session.exec(
        select(Restaurant)
        .where(Restaurant.id == restaurant_id)
        .where(Restaurant.is_active == True)
    ).first()
    if not restaurant:
        raise NotFound("Restaurant not found or inactive")

    restaurant_settings = session.exec(
        select(RestaurantSettings).where(RestaurantSettings.restaurant_id == restaurant_id)
    ).first()
    if restaurant_settings is None:
        # Unsaved defaults; the dashboard creates the row on first save
        restaurant_settings = RestaurantSettings(restaurant_id=restaurant_id)
    return restaurant, restaurant_settings


def check_order_type(order_type: OrderType, restaurant_settings: RestaurantSettings) -> None:
    if order_type == OrderType.pickup and not restaurant_settings.pickup_enabled:
        raise OrderTypeUnavailable("This restaurant is not accepting pickup orders")
    if order_type == OrderType.delivery and not restaurant_settings.delivery_enabled:
        raise OrderTypeUnavailable("This restaurant is not accepting delivery orders")


def load_restaurant_taxes(session: Session, restaurant_id: int) -> list[RestaurantTax]:
    return list(session.exec(
        select(RestaurantTax)
        .where(RestaurantTax.restaurant_id == restaurant_id)
        .where(RestaurantTax.is_active == True)
        .order_by(RestaurantTax.sort_order, RestaurantTax.id)
    ).all())


def quote_order(session: Session, restaurant_id: int, order_data: OrderCreate) -> PricedOrder:
    """Read everything pricing needs, fresh, and price the cart. Writes nothing."""
    if not order_data.items:
        raise ValidationFailed("Order must have at least one item")

    _, restaurant_settings = load_restaurant(session, restaurant_id)
    check_order_type(order_data.order_type, restaurant_settings)

    snapshot = load_catalog_snapshot(session, restaurant_id, order_data.items)
    discount_rule = find_discount(session, restaurant_id, order_data.coupon_code)

    return price_cart(
        lines=order_data.items,
        snapshot=snapshot,
        discount_rule=discount_rule,
        restaurant_taxes=load_restaurant_taxes(session, restaurant_id),
        restaurant_settings=restaurant_settings,
        order_type=order_data.order_type,
        pin_code=order_data.delivery_pin_code,
    )
