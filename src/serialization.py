"""
Serialization gateway between the catalog and the ledger store.

The store has no set or array column type, so every bucket travels as the
JSON text of its sorted unit list:

    {"1001": {"distributor": 7, "date": "2024-01-01", "order": 500,
              "description": "Widget, BrandX, 12ct", "total": 3, "price": 1.25,
              "received": "[1,2,3]", "used": "[1,2]"}}

decode(encode(c)) == c for every catalog built from valid input.
"""

import json
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence

import classification
from catalog import Catalog, Row
from config import TWO_BUCKETS
from logger import get_logger
from order_line_parser import OrderLine

logger = get_logger(__name__)

WireRow = Dict[str, Any]
WireValue = Dict[str, WireRow]


class DecodeIssue(NamedTuple):
    """A piece of persisted state that could not be decoded."""
    product: str
    field: str
    message: str

    def __str__(self) -> str:
        return f"product {self.product}, field '{self.field}': {self.message}"


def encode_units(units: Iterable[int]) -> str:
    return json.dumps(sorted(units), separators=(',', ':'))


def encode_row(row: Row) -> WireRow:
    wire: WireRow = {
        'distributor': row.line.distributor,
        'date': row.line.date,
        'order': row.line.order,
        'description': row.line.description,
        'total': row.line.total,
        'price': row.line.price,
    }
    for name, units in row.buckets.items():
        wire[name] = encode_units(units)
    return wire


def encode(cat: Mapping[int, Row]) -> WireValue:
    """Encode a catalog keyed by stringified product id."""
    return {str(product): encode_row(row) for product, row in cat.items()}


def decode_units(text: Any) -> Optional[frozenset]:
    """
    Parse bucket text back into a set of units.

    Returns:
        frozenset of units, or None if text is not a JSON list of
        non-negative integers
    """
    if isinstance(text, bytes):
        text = text.decode('utf-8', errors='replace')
    if not isinstance(text, str):
        return None
    try:
        values = json.loads(text)
    except ValueError:
        return None
    if not isinstance(values, list):
        return None
    if not all(isinstance(v, int) and not isinstance(v, bool) and v >= 0 for v in values):
        return None
    return frozenset(values)


def _decode_line(product: str, wire_row: Mapping[str, Any], issues: List[DecodeIssue]) -> Optional[OrderLine]:
    try:
        return OrderLine(
            distributor=int(wire_row['distributor']),
            date=str(wire_row['date']),
            order=int(wire_row['order']),
            description=str(wire_row['description']),
            total=int(wire_row['total']),
            price=float(wire_row['price']),
        )
    except KeyError as e:
        issues.append(DecodeIssue(product, str(e.args[0]), "missing order-line field, row dropped"))
    except (TypeError, ValueError) as e:
        issues.append(DecodeIssue(product, 'order line', f"unreadable order-line field ({e}), row dropped"))
    return None


def decode(wire: Mapping[str, Mapping[str, Any]],
           buckets: Sequence[str] = TWO_BUCKETS,
           diagnostics: Optional[List[DecodeIssue]] = None) -> Catalog:
    """
    Decode a wire value back into a catalog.

    A bucket whose text is not a list of non-negative integers decodes to an
    empty set; the row itself survives. Every such loss is logged as a
    warning and, if given, appended to diagnostics since it means the
    persisted data is corrupt.

    Args:
        wire: Mapping of stringified product id -> wire row
        buckets: Bucket names to read from each row
        diagnostics: Optional list collecting DecodeIssue entries

    Returns:
        Decoded catalog
    """
    issues: List[DecodeIssue] = []
    cat: Catalog = {}

    for key, wire_row in wire.items():
        try:
            product = int(key)
        except (TypeError, ValueError):
            issues.append(DecodeIssue(str(key), 'product', "product id is not an integer, row dropped"))
            continue

        line = _decode_line(str(key), wire_row, issues)
        if line is None:
            continue

        contents = {}
        for name in buckets:
            units = decode_units(wire_row.get(name))
            if units is None:
                issues.append(DecodeIssue(str(key), name, f"unreadable unit set {wire_row.get(name)!r}, treated as empty"))
                units = frozenset()
            contents[name] = units

        cat[product] = Row(line=line, buckets=classification.make_state(contents))

    for issue in issues:
        logger.warning(f"Corrupt persisted ledger data: {issue}")
    if diagnostics is not None:
        diagnostics.extend(issues)
    return cat


def decode_rows(rows: Iterable[Mapping[str, Any]],
                buckets: Sequence[str] = TWO_BUCKETS,
                diagnostics: Optional[List[DecodeIssue]] = None) -> Catalog:
    """
    Decode rows returned by the store's read side.

    Each row carries its own `product` field next to the wire row fields.
    """
    wire: Dict[str, Mapping[str, Any]] = {}
    for row in rows:
        wire[str(row.get('product'))] = row
    return decode(wire, buckets, diagnostics)
