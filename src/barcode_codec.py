"""
Barcode codec for unit labels.

A raw scan carries the product id in a fixed character window and the unit
sequence number in its last two characters:

    "LBL-00000100107"   ->  raw[6:13] = "0001001" -> product 1001
                            raw[-2:]  = "07"      -> unit 7
"""

import re
from typing import NamedTuple, Optional

from logger import get_logger

logger = get_logger(__name__)

PRODUCT_START = 6
PRODUCT_END = 12  # inclusive
UNIT_DIGITS = 2

_INT_RE = re.compile(r'[+-]?\d+', re.ASCII)


class Barcode(NamedTuple):
    product: int
    unit: int


def _to_int(text: str) -> Optional[int]:
    if _INT_RE.fullmatch(text):
        return int(text)
    return None


def decode(raw: str,
           product_start: int = PRODUCT_START,
           product_end: int = PRODUCT_END,
           unit_digits: int = UNIT_DIGITS) -> Optional[Barcode]:
    """
    Decode a raw scan into a Barcode.

    The unit number never fails the decode: a non-numeric tail reads as unit 0.
    The product window must read as a whole integer (an optional sign, then
    digits), otherwise the whole scan is rejected.

    Args:
        raw: Text captured from the scanner field
        product_start: First character of the product window
        product_end: Last character of the product window (inclusive)
        unit_digits: Length of the unit number tail

    Returns:
        Barcode, or None if the product window is not an integer
    """
    text = (raw or '').strip()

    product = _to_int(text[product_start:product_end + 1])
    if product is None:
        logger.debug(f"Rejected scan '{text}': no product id in window {product_start}..{product_end}")
        return None

    unit = _to_int(text[-unit_digits:]) if len(text) >= unit_digits else None
    return Barcode(product=product, unit=unit if unit is not None else 0)


def encode(barcode: Barcode) -> str:
    """Display form of a barcode, e.g. "1001 #7". Not the raw scan."""
    return f"{barcode.product} #{barcode.unit}"
