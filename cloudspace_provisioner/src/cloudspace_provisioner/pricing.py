import logging
import logging.config
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from cloudspace_provisioner.constants import DEFAULT_MINIMUM_BID_PRICE
from cloudspace_provisioner.logging_config import LOGGER_NAME, LOGGING_CONFIG
from cloudspace_provisioner.spot_client import SpotAPIError

logging.config.dictConfig(LOGGING_CONFIG)
logger = logging.getLogger(LOGGER_NAME)

CURRENCY_SYMBOLS = "$€£¥"


class InvalidPrice(ValueError):
    """Raised when a bid price cannot be turned into a positive decimal"""


def _parse_decimal(value: str) -> Optional[Decimal]:
    try:
        parsed = Decimal(value)
    except InvalidOperation:
        return None
    if not parsed.is_finite():
        return None
    return parsed


def _scan_number(value: str) -> str:
    """Keep only the digits and the first decimal point of value"""
    kept = []
    decimal_found = False
    for c in value:
        if c.isdigit():
            kept.append(c)
        elif c == "." and not decimal_found:
            kept.append(c)
            decimal_found = True
    return "".join(kept)


def normalize_bid_price(raw) -> str:
    """
    Canonicalize a bid price to a string with exactly three decimals, e.g. "$ 0.08 " -> "0.080"

    Raises InvalidPrice when no positive number can be extracted.
    """
    if raw is None:
        raise InvalidPrice("empty price")
    trimmed = str(raw).strip()
    if trimmed and trimmed[0] in CURRENCY_SYMBOLS:
        trimmed = trimmed[1:].strip()
    if not trimmed:
        raise InvalidPrice(f"no valid price found in: {raw!r}")

    price = _parse_decimal(trimmed)
    if price is None:
        cleaned = _scan_number(trimmed)
        if not any(c.isdigit() for c in cleaned):
            raise InvalidPrice(f"invalid price format: {raw!r} (no valid numbers found)")
        price = _parse_decimal(cleaned)
        if price is None:
            raise InvalidPrice(f"invalid price format: {raw!r}")
        first_digit = next(i for i, c in enumerate(trimmed) if c.isdigit() or c == ".")
        if "-" in trimmed[:first_digit]:
            price = -price

    if price <= 0:
        raise InvalidPrice(f"price must be greater than 0, got {raw!r}")

    canonical = f"{price:.3f}"
    if Decimal(canonical) <= 0:
        raise InvalidPrice(f"price {raw!r} rounds to zero at three decimals")
    return canonical


def try_normalize_bid_price(raw) -> Tuple[str, bool]:
    try:
        return normalize_bid_price(raw), True
    except InvalidPrice:
        return "", False


def minimum_bid_or_default(client, server_class: str) -> str:
    """
    Best-effort lookup of the minimum bid for a server class.
    Falls back to DEFAULT_MINIMUM_BID_PRICE if the control plane cannot tell us.
    """
    try:
        raw = client.get_minimum_bid_price(server_class)
        minimum = normalize_bid_price(raw)
    except (SpotAPIError, InvalidPrice) as e:
        logger.warning(
            f"Could not determine minimum bid for {server_class} ({e}) - "
            f"using {DEFAULT_MINIMUM_BID_PRICE}"
        )
        return DEFAULT_MINIMUM_BID_PRICE
    logger.debug(f"Minimum bid for {server_class}: {minimum}")
    return minimum
