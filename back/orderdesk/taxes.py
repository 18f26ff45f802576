"""
Tax Calculator

Category (per-menu) taxes always apply; restaurant-level taxes only when the
restaurant's prices do not already include tax. Amounts stay unrounded here,
rounding happens when a total is displayed.
"""

from dataclasses import dataclass
from decimal import Decimal

from .models import RestaurantTax

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class MenuSubtotal:
    menu_id: int
    menu_name: str
    tax_rate: Decimal | None
    subtotal: Decimal


@dataclass(frozen=True)
class TaxLine:
    name: str
    rate: Decimal
    amount: Decimal

    def as_dict(self) -> dict:
        # Strings keep full precision inside the JSON column
        return {"name": self.name, "rate": str(self.rate), "amount": str(self.amount)}


@dataclass(frozen=True)
class TaxResult:
    lines: tuple[TaxLine, ...]
    total: Decimal


def allocate_discounted_share(
    menu_subtotal: Decimal,
    subtotal: Decimal,
    after_discount: Decimal,
) -> Decimal:
    """Spread the order discount over a menu by its share of the raw subtotal"""
    if subtotal <= ZERO:
        return ZERO
    return menu_subtotal * after_discount / subtotal


def calculate_taxes(
    after_discount: Decimal,
    subtotal: Decimal,
    menu_subtotals: list[MenuSubtotal],
    restaurant_taxes: list[RestaurantTax],
    tax_included_in_price: bool,
) -> TaxResult:
    lines: list[TaxLine] = []

    for menu in sorted(menu_subtotals, key=lambda m: (m.menu_name, m.menu_id)):
        if not menu.tax_rate or menu.tax_rate <= ZERO:
            continue
        share = allocate_discounted_share(menu.subtotal, subtotal, after_discount)
        lines.append(TaxLine(name=menu.menu_name, rate=menu.tax_rate, amount=menu.tax_rate / HUNDRED * share))

    if not tax_included_in_price:
        active = [tax for tax in restaurant_taxes if tax.is_active]
        for tax in sorted(active, key=lambda t: (t.sort_order, t.id or 0)):
            rate = Decimal(tax.rate)
            if rate <= ZERO:
                continue
            lines.append(TaxLine(name=tax.name, rate=rate, amount=rate / HUNDRED * after_discount))

    return TaxResult(lines=tuple(lines), total=sum((line.amount for line in lines), ZERO))
