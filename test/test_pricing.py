import dataclasses
from decimal import Decimal

import pytest

from orderdesk import models
from orderdesk.catalog import AddonPrice, CatalogSnapshot, ItemPrice, VariationPrice
from orderdesk.errors import BelowMinimumOrder, DeliveryIneligible
from orderdesk.models import CartAddon, CartLine, DiscountType, DiscountValueType, OrderType
from orderdesk.pricing import price_cart, price_line, split_cents, to_money


def snapshot() -> CatalogSnapshot:
    return CatalogSnapshot(
        items={
            1: ItemPrice(1, "Margherita", Decimal("10.00"), 1, "Mains", None),
            2: ItemPrice(2, "Burger", Decimal("8.00"), 1, "Mains", None),
            3: ItemPrice(3, "Lemonade", Decimal("4.00"), 2, "Drinks", Decimal("5")),
            4: ItemPrice(4, "Pasta", Decimal("25.00"), 1, "Mains", None),
            5: ItemPrice(5, "Salad", Decimal("3.00"), 1, "Mains", None),
        },
        variations={
            10: VariationPrice(10, 2, "Large", Decimal("2.00")),
            11: VariationPrice(11, 5, "Mini", Decimal("-5.00")),
        },
        addons={
            20: AddonPrice(20, 2, "Cheese", Decimal("1.50")),
            21: AddonPrice(21, 2, "Bacon", Decimal("1.50")),
        },
    )


def restaurant_settings(**overrides) -> models.RestaurantSettings:
    values = {
        "restaurant_id": 1,
        "pickup_enabled": True,
        "delivery_enabled": True,
        "delivery_charge": Decimal("3.00"),
        "tax_included_in_price": True,
    }
    values.update(overrides)
    return models.RestaurantSettings(**values)


def coupon(value: str, value_type=DiscountValueType.percentage) -> models.Discount:
    return models.Discount(
        id=1,
        restaurant_id=1,
        type=DiscountType.coupon,
        value_type=value_type,
        value=Decimal(value),
        coupon_code="SAVE10",
        is_active=True,
    )


def price(lines, discount_rule=None, taxes=None, settings=None, order_type=OrderType.pickup, pin_code=None):
    return price_cart(
        lines=lines,
        snapshot=snapshot(),
        discount_rule=discount_rule,
        restaurant_taxes=taxes or [],
        restaurant_settings=settings or restaurant_settings(),
        order_type=order_type,
        pin_code=pin_code,
    )


def test_simple_pickup_order_totals_the_line_prices():
    priced = price([CartLine(menu_item_id=1, quantity=2)])

    assert priced.subtotal == Decimal("20.00")
    assert priced.discount is None
    assert priced.taxes.lines == ()
    assert priced.delivery.fee == 0
    assert to_money(priced.total) == Decimal("20.00")


def test_no_coupon_no_delivery_total_equals_line_sum():
    lines = [
        CartLine(menu_item_id=1, quantity=3),
        CartLine(menu_item_id=4, quantity=1),
        CartLine(menu_item_id=2, quantity=2, variation_id=10),
    ]
    priced = price(lines)

    assert priced.total == sum(line.unit_price * line.quantity for line in priced.lines)
    assert priced.total == Decimal("75.00")


def test_variation_and_addons_build_the_unit_price():
    line = CartLine(
        menu_item_id=2,
        quantity=1,
        variation_id=10,
        addons=[CartAddon(addon_id=20), CartAddon(addon_id=21)],
    )
    priced = price_line(line, snapshot())

    assert priced.unit_price == Decimal("13.00")
    assert priced.variation.name == "Large"
    assert [a.name for a in priced.addons] == ["Cheese", "Bacon"]


def test_addon_quantity_multiplies_its_price():
    line = CartLine(menu_item_id=2, quantity=2, addons=[CartAddon(addon_id=20, quantity=3)])
    priced = price_line(line, snapshot())

    assert priced.unit_price == Decimal("12.50")
    assert priced.line_total == Decimal("25.00")


def test_client_price_is_ignored():
    priced = price([CartLine(menu_item_id=1, quantity=1, price=0.01)])

    assert priced.total == Decimal("10.00")


def test_negative_variation_never_makes_unit_price_negative():
    priced = price_line(CartLine(menu_item_id=5, quantity=1, variation_id=11), snapshot())

    assert priced.unit_price == Decimal("0")


def test_percentage_coupon():
    lines = [CartLine(menu_item_id=4, quantity=2)]
    priced = price(lines, discount_rule=coupon("10"))

    assert priced.subtotal == Decimal("50.00")
    assert to_money(priced.discount_amount) == Decimal("5.00")
    assert to_money(priced.total) == Decimal("45.00")
    assert priced.discount.code == "SAVE10"


@pytest.mark.parametrize("percent", ["100", "150"])
def test_percentage_at_or_above_100_clamps_to_zero_total(percent):
    priced = price([CartLine(menu_item_id=1, quantity=2)], discount_rule=coupon(percent))

    assert priced.discount_amount == priced.subtotal
    assert priced.total == 0


def test_flat_discount_never_exceeds_subtotal():
    priced = price(
        [CartLine(menu_item_id=1, quantity=1)],
        discount_rule=coupon("25", DiscountValueType.flat),
    )

    assert priced.discount_amount == Decimal("10.00")
    assert priced.total == 0


def test_delivery_zone_fee_is_added():
    settings = restaurant_settings(delivery_zones=[
        {"name": "Uptown", "fee": 6, "pin_codes": ["10030"]},
        {"name": "Downtown", "fee": 4.5, "pin_codes": ["10001", "10002"]},
    ])
    priced = price(
        [CartLine(menu_item_id=1, quantity=3)],
        settings=settings,
        order_type=OrderType.delivery,
        pin_code="10001",
    )

    assert priced.subtotal == Decimal("30.00")
    assert priced.delivery.zone.name == "Downtown"
    assert to_money(priced.total) == Decimal("34.50")


def test_unmatched_pin_code_rejects_delivery():
    settings = restaurant_settings(delivery_zones=[{"name": "Downtown", "fee": 4.5, "pin_codes": ["10001"]}])

    with pytest.raises(DeliveryIneligible):
        price([CartLine(menu_item_id=1, quantity=3)], settings=settings,
              order_type=OrderType.delivery, pin_code="99999")


def test_delivery_without_zones_uses_default_charge():
    priced = price([CartLine(menu_item_id=1, quantity=1)], order_type=OrderType.delivery)

    assert priced.delivery.fee == Decimal("3.00")
    assert priced.total == Decimal("13.00")


def test_minimum_order_applies_to_delivery_only():
    settings = restaurant_settings(minimum_order_value=Decimal("15.00"))
    lines = [CartLine(menu_item_id=1, quantity=1)]

    with pytest.raises(BelowMinimumOrder):
        price(lines, settings=settings, order_type=OrderType.delivery)
    assert price(lines, settings=settings, order_type=OrderType.pickup).total == Decimal("10.00")


def test_zone_minimum_order_is_enforced():
    settings = restaurant_settings(delivery_zones=[
        {"name": "Suburbs", "fee": 8, "min_order": 40, "pin_codes": ["20001"]},
    ])

    with pytest.raises(BelowMinimumOrder):
        price([CartLine(menu_item_id=1, quantity=3)], settings=settings,
              order_type=OrderType.delivery, pin_code="20001")


def test_taxes_are_added_after_discount():
    vat = models.RestaurantTax(id=1, restaurant_id=1, name="VAT", rate=Decimal("10"), sort_order=0)
    settings = restaurant_settings(tax_included_in_price=False)
    priced = price(
        [CartLine(menu_item_id=4, quantity=2)],
        discount_rule=coupon("10"),
        taxes=[vat],
        settings=settings,
    )

    # 50 - 5 = 45, 10% VAT = 4.50
    assert priced.taxes.total == Decimal("4.5")
    assert to_money(priced.total) == Decimal("49.50")


def test_total_reconciles_with_its_parts():
    vat = models.RestaurantTax(id=1, restaurant_id=1, name="VAT", rate=Decimal("8.875"), sort_order=0)
    settings = restaurant_settings(tax_included_in_price=False)
    priced = price(
        [CartLine(menu_item_id=3, quantity=3), CartLine(menu_item_id=2, quantity=1, variation_id=10)],
        discount_rule=coupon("15"),
        taxes=[vat],
        settings=settings,
        order_type=OrderType.delivery,
    )

    assert priced.total == (
        priced.subtotal - priced.discount_amount + priced.taxes.total + priced.delivery.fee
    )
    assert priced.total >= 0


def test_pricing_is_deterministic():
    lines = [CartLine(menu_item_id=3, quantity=2), CartLine(menu_item_id=1, quantity=1)]

    assert price(lines, discount_rule=coupon("10")) == price(lines, discount_rule=coupon("10"))


def test_summary_rounds_for_display():
    priced = price([CartLine(menu_item_id=3, quantity=1)])
    summary = priced.summary()

    # Drinks carry a 5% category tax even though restaurant tax is included
    assert summary["taxes"] == [{"name": "Drinks", "rate": 5.0, "amount": 0.2}]
    assert summary["total"] == 4.2
    assert summary["order_type"] == "pickup"


def test_split_cents_hands_leftover_cents_to_largest_remainders():
    amounts = [Decimal("0.125"), Decimal("0.125")]
    assert split_cents(amounts, Decimal("0.25")) == [Decimal("0.13"), Decimal("0.12")]

    amounts = [Decimal("1.004"), Decimal("2.007"), Decimal("0.009")]
    assert split_cents(amounts, Decimal("3.02")) == [Decimal("1.00"), Decimal("2.01"), Decimal("0.01")]


def test_tax_lines_add_up_to_the_tax_charged():
    city = models.RestaurantTax(id=1, restaurant_id=1, name="City", rate=Decimal("1.25"), sort_order=0)
    state = models.RestaurantTax(id=2, restaurant_id=1, name="State", rate=Decimal("1.25"), sort_order=1)
    priced = price(
        [CartLine(menu_item_id=1, quantity=1)],
        taxes=[city, state],
        settings=restaurant_settings(tax_included_in_price=False),
    )
    summary = priced.summary()

    assert [tax["amount"] for tax in summary["taxes"]] == [0.13, 0.12]
    assert summary["tax_amount"] == 0.25
    assert sum(tax["amount"] for tax in summary["taxes"]) == pytest.approx(summary["tax_amount"])
    assert summary["total"] == pytest.approx(
        summary["subtotal"] - summary["discount"] + summary["tax_amount"] + summary["delivery_fee"]
    )


def test_settled_total_is_built_from_rounded_parts():
    vat = models.RestaurantTax(id=1, restaurant_id=1, name="Sales tax", rate=Decimal("8.875"), sort_order=0)
    snap = snapshot()
    cheap = dataclasses.replace(snap.items[5], price=Decimal("1.01"))
    priced = price_cart(
        lines=[CartLine(menu_item_id=5, quantity=1)],
        snapshot=dataclasses.replace(snap, items={**snap.items, 5: cheap}),
        discount_rule=coupon("12.5"),
        restaurant_taxes=[vat],
        restaurant_settings=restaurant_settings(tax_included_in_price=False),
        order_type=OrderType.pickup,
    )
    settled = priced.settle()

    assert (settled.subtotal, settled.discount, settled.tax_amount) == (
        Decimal("1.01"), Decimal("0.13"), Decimal("0.08"),
    )
    assert settled.total == Decimal("0.96")
    assert settled.total == settled.subtotal - settled.discount + settled.tax_amount + settled.delivery_fee
