"""
SQLite ledger store: the persistence boundary of the reconciliation core.

One table row per (product, order). Bucket sets arrive already flattened to
JSON text by the serialization gateway and are stored as TEXT columns, one per
configured bucket.

Write side: commit(wire) takes the encoded catalog keyed by product id.
Read side:  load_order(order) returns that order's rows in the same shape,
            each with its `product` field added.
"""

import re
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Sequence

from config import TWO_BUCKETS
from exceptions import ConfigurationError, EmptyCommitError, LedgerStoreError
from logger import get_logger

logger = get_logger(__name__)

_IDENTIFIER_RE = re.compile(r'[a-z_][a-z0-9_]*')

# Wire field -> column
_LINE_COLUMNS = (
    ('distributor', 'distributor', 'INTEGER'),
    ('date', 'date', 'TEXT'),
    ('order', 'order_id', 'INTEGER NOT NULL'),
    ('description', 'description', 'TEXT'),
    ('total', 'total', 'INTEGER'),
    ('price', 'price', 'REAL'),
)


class LedgerStore:
    """SQLite-backed store for committed ledger rows."""

    def __init__(self, db_path, buckets: Sequence[str] = TWO_BUCKETS):
        for name in buckets:
            if not _IDENTIFIER_RE.fullmatch(name):
                raise ConfigurationError(f"Bucket name '{name}' cannot be used as a column name")

        self._path = str(db_path)
        self._buckets = tuple(buckets)
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()
        logger.info(f"LedgerStore opened: {self._path}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self._path, timeout=5)
        except sqlite3.Error as e:
            raise LedgerStoreError(f"Cannot open ledger database {self._path}: {e}")
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise LedgerStoreError(f"Ledger database error: {e}")
        finally:
            conn.close()

    def _init_schema(self) -> None:
        columns = [f"{column} {kind}" for _, column, kind in _LINE_COLUMNS]
        columns += [f"{name} TEXT" for name in self._buckets]
        schema = f"""
            CREATE TABLE IF NOT EXISTS ledger_rows (
                product     INTEGER NOT NULL,
                {', '.join(columns)},
                committed_at REAL NOT NULL,
                PRIMARY KEY (product, order_id)
            );
            CREATE INDEX IF NOT EXISTS idx_ledger_order ON ledger_rows (order_id);
        """
        with self._connect() as conn:
            conn.executescript(schema)
            existing = {row['name'] for row in conn.execute("PRAGMA table_info(ledger_rows)")}
            for name in self._buckets:
                if name not in existing:
                    # Rows committed before the bucket was configured hold no units in it
                    conn.execute(f"ALTER TABLE ledger_rows ADD COLUMN {name} TEXT DEFAULT '[]'")
                    logger.warning(f"Added bucket column '{name}' to existing ledger table")

    @property
    def db_path(self) -> str:
        return self._path

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def commit(self, wire: Mapping[str, Mapping[str, Any]]) -> int:
        """
        Store every row of an encoded catalog, replacing earlier commits of
        the same (product, order).

        Returns:
            Number of rows written

        Raises:
            EmptyCommitError: If wire holds no rows
            LedgerStoreError: If a row is malformed or the database fails
        """
        if not wire:
            raise EmptyCommitError("Empty commit order given, refusing to do anything")

        now = time.time()
        records = []
        for key, row in wire.items():
            try:
                record = [int(key)]
                record += [row[field] for field, _, _ in _LINE_COLUMNS]
                record += [row.get(name) for name in self._buckets]
            except (KeyError, TypeError, ValueError) as e:
                raise LedgerStoreError(f"Malformed ledger row for product {key!r}: {e}")
            record.append(now)
            records.append(tuple(record))

        columns = ['product'] + [column for _, column, _ in _LINE_COLUMNS] + list(self._buckets)
        columns.append('committed_at')
        sql = (
            f"INSERT OR REPLACE INTO ledger_rows ({', '.join(columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )
        with self._connect() as conn:
            conn.executemany(sql, records)

        logger.info(f"Committed {len(records)} ledger rows")
        return len(records)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def load_order(self, order: int) -> List[Dict[str, Any]]:
        """Rows previously committed for an order, in wire shape plus `product`."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM ledger_rows WHERE order_id = ? ORDER BY product", (order,)
            ).fetchall()

        result = []
        for row in rows:
            record: Dict[str, Any] = {'product': row['product']}
            for field, column, _ in _LINE_COLUMNS:
                record[field] = row[column]
            for name in self._buckets:
                record[name] = row[name]
            result.append(record)

        logger.debug(f"Loaded {len(result)} ledger rows for order {order}")
        return result

    def orders(self) -> List[int]:
        """Distinct order ids present in the store."""
        with self._connect() as conn:
            rows = conn.execute("SELECT DISTINCT order_id FROM ledger_rows ORDER BY order_id").fetchall()
        return [r['order_id'] for r in rows]
