"""
Delivery Zone Matcher

Zones are drawn on a map in the dashboard; the editor turns each polygon into
pin codes when the zone is saved. At order time eligibility is decided by pin
code membership only.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from pydantic import ValidationError

from .errors import DeliveryIneligible
from .models import DeliveryZone, OrderType

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class DeliveryQuote:
    fee: Decimal
    zone: DeliveryZone | None = None


def normalize_pin_code(pin_code: str | None) -> str:
    if not pin_code:
        return ""
    return "".join(pin_code.split()).upper()


class UnpricedZone(DeliveryZone):
    """A saved zone that failed validation; it still restricts by pin code but never delivers"""


def _salvage_pin_codes(raw) -> list[str]:
    if not isinstance(raw, dict) or not isinstance(raw.get("pin_codes"), list):
        return []
    return [str(p) for p in raw["pin_codes"] if isinstance(p, (str, int)) and normalize_pin_code(str(p))]


def parse_zones(raw_zones: list[dict] | None) -> list[DeliveryZone]:
    """
    Parse the settings JSON.

    A malformed entry without pin codes is skipped. One that lists pin codes
    is kept as an UnpricedZone, so its restriction survives the bad fee or
    minimum and orders to those pin codes are refused rather than charged the
    default fee.
    """
    zones = []
    for index, raw in enumerate(raw_zones or []):
        try:
            zones.append(DeliveryZone.model_validate(raw))
        except ValidationError as e:
            pin_codes = _salvage_pin_codes(raw)
            if not pin_codes:
                logger.warning(f"Ignoring malformed delivery zone #{index}: {e}")
                continue
            name = raw.get("name") if isinstance(raw.get("name"), str) else f"Zone {index + 1}"
            logger.error(f"Delivery zone #{index} ({name}) is malformed, refusing its pin codes: {e}")
            zones.append(UnpricedZone(name=name, pin_codes=pin_codes))
    return zones


def match_delivery_zone(
    order_type: OrderType,
    pin_code: str | None,
    zones: list[DeliveryZone],
    default_charge: Decimal,
) -> DeliveryQuote:
    if order_type != OrderType.delivery:
        return DeliveryQuote(fee=ZERO)

    restricted = [zone for zone in zones if any(normalize_pin_code(p) for p in zone.pin_codes)]
    if not restricted:
        return DeliveryQuote(fee=Decimal(default_charge or 0))

    wanted = normalize_pin_code(pin_code)
    if not wanted:
        raise DeliveryIneligible("A delivery pin code is required for this restaurant")

    # First matching zone in definition order wins
    for zone in restricted:
        if wanted in {normalize_pin_code(p) for p in zone.pin_codes}:
            if isinstance(zone, UnpricedZone):
                raise DeliveryIneligible(f"Delivery to pin code {wanted} is unavailable right now")
            return DeliveryQuote(fee=Decimal(zone.fee), zone=zone)

    raise DeliveryIneligible(f"We don't deliver to pin code {wanted}")
