"""
Catalog: the per-product ledger of an order.

The catalog maps ProductId -> Row. It changes through exactly three inputs:
a CSV import (the only way rows come into existence), scans against existing
rows, and persisted rows loaded back from the ledger store. All operations
return a new catalog and leave their argument untouched.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

import pandas as pd

import classification
from barcode_codec import Barcode
from classification import ClassificationState
from config import IMPORT_PREFER_EXISTING, IMPORT_REPLACE
from exceptions import ConfigurationError
from logger import get_logger
from order_line_parser import OrderLine

logger = get_logger(__name__)


@dataclass(frozen=True)
class Row:
    """An order line together with its classification buckets."""
    line: OrderLine
    buckets: ClassificationState

    @property
    def total(self) -> int:
        return self.line.total

    @property
    def order(self) -> int:
        return self.line.order

    def size(self, bucket: str) -> int:
        return classification.size(bucket, self.buckets)

    @property
    def annotated(self) -> bool:
        """True once any unit has been classified into any bucket."""
        return any(self.buckets.values())


Catalog = Dict[int, Row]


def new_row(line: OrderLine, buckets: Iterable[str]) -> Row:
    return Row(line=line, buckets=classification.empty_state(buckets))


def is_closed(row: Row) -> bool:
    """
    Whether the order line is fully accounted for.

    Derived on every call from the current buckets; never store the result.
    """
    return classification.is_closed(row.buckets, row.total)


def bulk_insert(rows: Sequence[Tuple[int, OrderLine]],
                cat: Mapping[int, Row],
                buckets: Sequence[str],
                mode: str = IMPORT_PREFER_EXISTING) -> Catalog:
    """
    Add freshly parsed order lines to the catalog.

    Args:
        rows: (ProductId, OrderLine) pairs from the parser
        cat: Current catalog
        buckets: Configured bucket names for new rows
        mode: "prefer_existing" keeps rows already in the catalog when a
              product is imported again (its scans survive a re-import);
              "replace" discards every prior row

    Returns:
        New catalog
    """
    if mode not in (IMPORT_PREFER_EXISTING, IMPORT_REPLACE):
        raise ConfigurationError(f"Unknown import mode: {mode}")

    imported: Catalog = {}
    for product, line in rows:
        # First occurrence inside a batch wins, same rule as across batches
        if product not in imported:
            imported[product] = new_row(line, buckets)

    if mode == IMPORT_REPLACE:
        logger.info(f"Replaced catalog with {len(imported)} imported rows")
        return imported

    merged: Catalog = dict(imported)
    merged.update(cat)
    kept = len(set(imported) & set(cat))
    logger.info(f"Imported {len(imported)} rows, {kept} already known and kept")
    return merged


def _update_row(cat: Mapping[int, Row], product: int, state: ClassificationState) -> Catalog:
    if state is cat[product].buckets:
        return cat
    updated = dict(cat)
    updated[product] = replace(cat[product], buckets=state)
    return updated


def apply_scan(bucket: str, barcode: Barcode, cat: Mapping[int, Row]) -> Catalog:
    """
    Classify the scanned unit into bucket.

    Returns cat itself when nothing changes (unknown product, unit already in
    the bucket), so callers can detect a change by identity.
    """
    row = cat.get(barcode.product)
    if row is None:
        logger.debug(f"Scan for unknown product {barcode.product} ignored")
        return cat
    return _update_row(cat, barcode.product, classification.insert(bucket, barcode.unit, row.buckets))


def apply_unscan(bucket: str, barcode: Barcode, cat: Mapping[int, Row],
                 receiving: Optional[str] = None) -> Catalog:
    """Take the unit back out of bucket, subject to the receiving bucket's floor."""
    row = cat.get(barcode.product)
    if row is None:
        logger.debug(f"Unscan for unknown product {barcode.product} ignored")
        return cat

    state = classification.remove(bucket, barcode.unit, row.buckets, receiving)
    if state is row.buckets and barcode.unit in row.buckets[bucket]:
        logger.info(
            f"Refused to remove unit {barcode.unit} of product {barcode.product} from '{bucket}': "
            f"would fall below {classification.receiving_floor(row.buckets, receiving)} classified units"
        )
    return _update_row(cat, barcode.product, state)


def merge_loaded(loaded: Mapping[int, Row], cat: Mapping[int, Row]) -> Catalog:
    """
    Fold rows loaded from the ledger store into the catalog.

    The in-memory catalog takes precedence: loaded rows never create products
    and never change order-line fields. A row that has not been scanned yet
    takes its buckets from the loaded row; a row with any local scan keeps its
    own buckets, so a stale snapshot cannot overwrite fresher scans.
    """
    merged: Catalog = dict(cat)
    adopted = 0
    for product, loaded_row in loaded.items():
        row = merged.get(product)
        if row is None or row.annotated:
            continue
        state = {name: loaded_row.buckets.get(name, frozenset()) for name in row.buckets}
        merged[product] = replace(row, buckets=classification.make_state(state))
        adopted += 1

    ignored = len(set(loaded) - set(cat))
    logger.info(f"Merged persisted rows: {adopted} adopted, {ignored} unknown products ignored")
    return merged


def summarize(cat: Mapping[int, Row]) -> Dict[str, Any]:
    """Counts of rows, closed rows, and classified units per bucket."""
    closed = sum(1 for row in cat.values() if is_closed(row))
    units: Dict[str, int] = {}
    for row in cat.values():
        for name, members in row.buckets.items():
            units[name] = units.get(name, 0) + len(members)

    return {
        'rows': len(cat),
        'closed': closed,
        'open': len(cat) - closed,
        'expected_units': sum(row.total for row in cat.values()),
        'units': units,
    }


def to_dataframe(cat: Mapping[int, Row]) -> pd.DataFrame:
    """
    Render the catalog as a DataFrame, one row per product.

    Columns: product, order-line fields, one count column per bucket, and the
    derived `closed` flag. Sorted by product id.
    """
    records = []
    for product in sorted(cat):
        row = cat[product]
        record = {
            'product': product,
            'distributor': row.line.distributor,
            'date': row.line.date,
            'order': row.line.order,
            'description': row.line.description,
            'total': row.line.total,
            'price': row.line.price,
        }
        for name, members in row.buckets.items():
            record[name] = len(members)
        record['closed'] = is_closed(row)
        records.append(record)

    return pd.DataFrame.from_records(
        records,
        columns=None if records else ['product', 'distributor', 'date', 'order',
                                      'description', 'total', 'price', 'closed'],
    )
