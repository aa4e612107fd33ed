"""
Order-line parsing for distributor CSV exports.

Each record has exactly 16 positional fields; there is no header row. The
field positions are fixed by the distributor's export format:

    0 customer          4 PO number           8 brand          12 case count
    1 distributor       5 product id          9 pack size      13 each count
    2 department        6 customer product   10 case price     14 extended price
    3 date              7 description        11 each price     15 order number

A record with any other arity is rejected on its own; malformed numbers
inside an accepted record read as zero.
"""

import csv
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from exceptions import ImportFileError
from logger import get_logger

logger = get_logger(__name__)

FIELD_COUNT = 16

# Column positions in the distributor export
COL_DISTRIBUTOR = 1
COL_DATE = 3
COL_PRODUCT = 5
COL_DESCRIPTION = 7
COL_BRAND = 8
COL_PACK_SIZE = 9
COL_CASE_COUNT = 12
COL_EXTENDED_PRICE = 14
COL_ORDER = 15

_INT_RE = re.compile(r'[+-]?\d+', re.ASCII)


@dataclass(frozen=True)
class OrderLine:
    """Static, CSV-derived fields of a ledger row."""
    distributor: int
    date: str
    order: int
    description: str
    total: int
    price: float


@dataclass
class ParseOutcome:
    """Result of parsing a batch of CSV files."""
    rows: List[Tuple[int, OrderLine]] = field(default_factory=list)
    rejected: int = 0
    files: int = 0

    @property
    def order(self) -> Optional[int]:
        """Order id of the first parsed line; one import batch is one order."""
        return self.rows[0][1].order if self.rows else None


def lenient_int(text: str) -> int:
    """Parse an integer, returning 0 for anything that is not one."""
    text = (text or '').strip()
    return int(text) if _INT_RE.fullmatch(text) else 0


def lenient_float(text: str) -> float:
    """Parse a finite float, returning 0.0 for anything that is not one."""
    try:
        value = float((text or '').strip())
    except ValueError:
        return 0.0
    return value if math.isfinite(value) else 0.0


def parse(fields: Sequence[str]) -> Optional[Tuple[int, OrderLine]]:
    """
    Parse one CSV record into (product id, order line).

    Args:
        fields: The record's positional fields

    Returns:
        (ProductId, OrderLine), or None if the record does not have exactly
        16 fields
    """
    if len(fields) != FIELD_COUNT:
        return None

    description = f"{fields[COL_DESCRIPTION]}, {fields[COL_BRAND]}, {fields[COL_PACK_SIZE]}"

    line = OrderLine(
        distributor=lenient_int(fields[COL_DISTRIBUTOR]),
        date=fields[COL_DATE],
        order=lenient_int(fields[COL_ORDER]),
        description=description,
        total=lenient_int(fields[COL_CASE_COUNT]),
        price=lenient_float(fields[COL_EXTENDED_PRICE]),
    )
    return lenient_int(fields[COL_PRODUCT]), line


def read_records(file_path) -> List[List[str]]:
    """
    Read every record of one CSV file, keeping each record's own arity.

    Blank lines are not records and are skipped.

    Raises:
        ImportFileError: If the file cannot be opened or decoded
    """
    path = Path(file_path)
    try:
        with path.open('r', encoding='utf-8-sig', newline='') as handle:
            records = [record for record in csv.reader(handle) if record]
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        logger.error(f"Failed to read CSV file {path}: {e}")
        raise ImportFileError(f"Could not read the CSV file: {e}", file_path=str(path))

    logger.debug(f"Read {len(records)} records from {path.name}")
    return records


def parse_records(records: Iterable[Sequence[str]], outcome: Optional[ParseOutcome] = None) -> ParseOutcome:
    """Parse records into an outcome, counting the rejected ones."""
    outcome = outcome if outcome is not None else ParseOutcome()
    for record in records:
        parsed = parse(record)
        if parsed is None:
            outcome.rejected += 1
        else:
            outcome.rows.append(parsed)
    return outcome


def parse_files(file_paths: Iterable) -> ParseOutcome:
    """
    Read all files, flatten their records in file order, and parse them.

    All files are read before any record is parsed, so a file that cannot be
    read fails the whole batch and no partial result is returned.

    Raises:
        ImportFileError: If any file cannot be read
    """
    paths = list(file_paths)
    records: List[List[str]] = []
    for path in paths:
        records.extend(read_records(path))

    outcome = parse_records(records, ParseOutcome(files=len(paths)))

    if outcome.rejected:
        logger.warning(f"Rejected {outcome.rejected} malformed records (expected {FIELD_COUNT} fields)")
    logger.info(f"Parsed {len(outcome.rows)} order lines from {len(paths)} files")
    return outcome
