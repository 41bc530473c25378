from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_FILENAME_STRIP = re.compile(r"[^a-zA-Z0-9._-]")
_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def to_slug(text: str) -> str:
    """Derive a URL slug: ``"Men's Cool T-Shirt!"`` -> ``"mens-cool-t-shirt"``."""
    cleaned = _SLUG_STRIP.sub("", (text or "").lower()).strip()
    return _WHITESPACE.sub("-", cleaned)


def color_abbrev(color_name: str) -> str:
    return _NON_ALNUM.sub("", (color_name or "").upper())[:4]


def sku_prefix_for_product(product_id: str) -> str:
    return product_id.replace("-", "")[-8:].upper()


def build_sku(prefix: str, color_name: str, size: str) -> str:
    return f"{prefix}-{color_abbrev(color_name)}-{size}"


def sanitize_filename(filename: str) -> str:
    return _FILENAME_STRIP.sub("_", filename)


def epoch_millis() -> int:
    return int(time.time() * 1000)


def round_half_up(value: float, places: int = 1) -> float:
    """Round like a human would; ``round(4.25, 1)`` in Python gives 4.2."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def parse_positive_int(value: Any) -> Optional[int]:
    """Return ``value`` as an int >= 1, or None when it is not one."""
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    return number if number >= 1 else None


def parse_non_negative_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    return number if number >= 0 else None


def serialize_dt(value: Optional[datetime]) -> Optional[str]:
    if not value:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def enum_value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value
