"""
Catalog Snapshot Reader

Resolves the menu items, variations and add-ons referenced by a cart into
their current, authoritative prices. This is the only place order pricing
reads prices from; anything the client sends is ignored.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from sqlmodel import Session, select

from .errors import NotFound
from .models import CartLine, Menu, MenuItem, MenuItemAddon, MenuItemVariation


@dataclass(frozen=True)
class ItemPrice:
    id: int
    name: str
    price: Decimal
    menu_id: int
    menu_name: str
    menu_tax_rate: Decimal | None


@dataclass(frozen=True)
class VariationPrice:
    id: int
    menu_item_id: int
    name: str
    price_adjustment: Decimal


@dataclass(frozen=True)
class AddonPrice:
    id: int
    menu_item_id: int
    name: str
    price: Decimal


@dataclass(frozen=True)
class CatalogSnapshot:
    items: dict[int, ItemPrice] = field(default_factory=dict)
    variations: dict[int, VariationPrice] = field(default_factory=dict)
    addons: dict[int, AddonPrice] = field(default_factory=dict)


def _requested_ids(lines: list[CartLine]) -> tuple[set[int], set[int], set[int]]:
    item_ids: set[int] = set()
    variation_ids: set[int] = set()
    addon_ids: set[int] = set()
    for line in lines:
        item_ids.add(line.menu_item_id)
        if line.variation_id is not None:
            variation_ids.add(line.variation_id)
        addon_ids.update(addon.addon_id for addon in line.addons)
    return item_ids, variation_ids, addon_ids


def load_catalog_snapshot(
    session: Session,
    restaurant_id: int,
    lines: list[CartLine],
) -> CatalogSnapshot:
    """
    Read current prices for everything the cart references.

    Raises NotFound if a menu item is missing, unavailable, on an inactive menu
    or owned by another restaurant, or if a variation/add-on is missing,
    unavailable or attached to a different item than the cart line says.
    """
    item_ids, variation_ids, addon_ids = _requested_ids(lines)

    rows = session.exec(
        select(MenuItem, Menu)
        .join(Menu, MenuItem.menu_id == Menu.id)
        .where(MenuItem.id.in_(item_ids))
        .where(Menu.restaurant_id == restaurant_id)
        .where(MenuItem.is_available == True)
        .where(Menu.is_active == True)
    ).all()
    items = {
        menu_item.id: ItemPrice(
            id=menu_item.id,
            name=menu_item.name,
            price=Decimal(menu_item.price),
            menu_id=menu.id,
            menu_name=menu.name,
            menu_tax_rate=Decimal(menu.tax_rate) if menu.tax_rate is not None else None,
        )
        for menu_item, menu in rows
    }
    missing_items = sorted(item_ids - items.keys())
    if missing_items:
        raise NotFound(f"Menu item {missing_items[0]} not found or unavailable")

    variations: dict[int, VariationPrice] = {}
    if variation_ids:
        for variation in session.exec(
            select(MenuItemVariation)
            .where(MenuItemVariation.id.in_(variation_ids))
            .where(MenuItemVariation.is_available == True)
        ).all():
            variations[variation.id] = VariationPrice(
                id=variation.id,
                menu_item_id=variation.menu_item_id,
                name=variation.name,
                price_adjustment=Decimal(variation.price_adjustment),
            )

    addons: dict[int, AddonPrice] = {}
    if addon_ids:
        for addon in session.exec(
            select(MenuItemAddon)
            .where(MenuItemAddon.id.in_(addon_ids))
            .where(MenuItemAddon.is_available == True)
        ).all():
            addons[addon.id] = AddonPrice(
                id=addon.id,
                menu_item_id=addon.menu_item_id,
                name=addon.name,
                price=Decimal(addon.price),
            )

    # Options must belong to the item on the same cart line
    for line in lines:
        if line.variation_id is not None:
            variation = variations.get(line.variation_id)
            if variation is None or variation.menu_item_id != line.menu_item_id:
                raise NotFound(
                    f"Variation {line.variation_id} not found or unavailable "
                    f"for menu item {line.menu_item_id}"
                )
        for requested in line.addons:
            addon = addons.get(requested.addon_id)
            if addon is None or addon.menu_item_id != line.menu_item_id:
                raise NotFound(
                    f"Add-on {requested.addon_id} not found or unavailable "
                    f"for menu item {line.menu_item_id}"
                )

    return CatalogSnapshot(items=items, variations=variations, addons=addons)
