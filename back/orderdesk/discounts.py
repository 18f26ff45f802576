"""
Discount Resolver

One discount per order: an explicit coupon if the customer supplied a code,
otherwise the restaurant's active menu-wide discount. Nothing is remembered
between calls; pricing asks again every time it runs.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func
from sqlmodel import Session, select

from .errors import InvalidCoupon
from .models import Discount, DiscountType, DiscountValueType

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class AppliedDiscount:
    discount_id: int | None
    name: str
    code: str | None
    value_type: DiscountValueType
    value: Decimal
    amount: Decimal


def normalize_coupon_code(code: str | None) -> str | None:
    if code is None:
        return None
    code = code.strip().upper()
    return code or None


def compute_discount_amount(
    value_type: DiscountValueType,
    value: Decimal,
    subtotal: Decimal,
) -> Decimal:
    """Discount never exceeds the subtotal, so totals can't go negative."""
    if subtotal <= ZERO or value <= ZERO:
        return ZERO
    if value_type == DiscountValueType.percentage:
        amount = subtotal * value / HUNDRED
    else:
        amount = value
    return min(amount, subtotal)


def find_discount(
    session: Session,
    restaurant_id: int,
    coupon_code: str | None,
) -> Discount | None:
    """
    Look up the discount rule for an order.

    A supplied coupon code must match an active coupon (case-insensitive),
    otherwise InvalidCoupon is raised. Without a code the first active
    menu-wide discount applies.
    """
    code = normalize_coupon_code(coupon_code)
    if code is not None:
        coupon = session.exec(
            select(Discount)
            .where(Discount.restaurant_id == restaurant_id)
            .where(Discount.type == DiscountType.coupon)
            .where(Discount.is_active == True)
            .where(func.upper(Discount.coupon_code) == code)
            .order_by(Discount.id)
        ).first()
        if coupon is None:
            raise InvalidCoupon(code)
        return coupon

    return session.exec(
        select(Discount)
        .where(Discount.restaurant_id == restaurant_id)
        .where(Discount.type == DiscountType.menu)
        .where(Discount.is_active == True)
        .order_by(Discount.id)
    ).first()


def apply_discount(discount: Discount | None, subtotal: Decimal) -> AppliedDiscount | None:
    if discount is None:
        return None
    value = Decimal(discount.value)
    if discount.type == DiscountType.coupon:
        name = discount.name or discount.coupon_code or "Coupon"
        code = normalize_coupon_code(discount.coupon_code)
    else:
        name = discount.name or "Menu discount"
        code = None
    return AppliedDiscount(
        discount_id=discount.id,
        name=name,
        code=code,
        value_type=discount.value_type,
        value=value,
        amount=compute_discount_amount(discount.value_type, value, subtotal),
    )


def resolve_discount(
    session: Session,
    restaurant_id: int,
    coupon_code: str | None,
    subtotal: Decimal,
) -> AppliedDiscount | None:
    return apply_discount(find_discount(session, restaurant_id, coupon_code), subtotal)
