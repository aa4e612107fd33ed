"""
Ledger configuration loaded from config.ini.

Example config.ini:
    [Ledger]
    Buckets = received, used
    ImportMode = prefer_existing
    DefaultMode = received

    [Barcode]
    ProductStart = 6
    ProductEnd = 12
    UnitDigits = 2

    [Database]
    Path = ledger.db

Every key is optional; a missing file yields the defaults below.
"""

import configparser
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from exceptions import ConfigurationError
from logger import get_logger

logger = get_logger(__name__)

TWO_BUCKETS = ('received', 'used')
FIVE_BUCKETS = ('received', 'lower', 'inter', 'high', 'academia')

IMPORT_PREFER_EXISTING = 'prefer_existing'
IMPORT_REPLACE = 'replace'
IMPORT_MODES = (IMPORT_PREFER_EXISTING, IMPORT_REPLACE)


@dataclass(frozen=True)
class LedgerSettings:
    """
    Deployment constants of the reconciliation core.

    Attributes:
        buckets: Tracked bucket names; the first one is the receiving bucket
        import_mode: How a CSV import treats rows that already exist
        default_mode: Bucket scans target before any mode change
        product_start: First character of the product id in a raw scan
        product_end: Last character (inclusive) of the product id
        unit_digits: Number of trailing characters holding the unit number
        db_path: SQLite file backing the ledger store
    """
    buckets: Tuple[str, ...] = TWO_BUCKETS
    import_mode: str = IMPORT_PREFER_EXISTING
    default_mode: str = 'received'
    product_start: int = 6
    product_end: int = 12
    unit_digits: int = 2
    db_path: str = 'ledger.db'

    def __post_init__(self):
        if not self.buckets:
            raise ConfigurationError("At least one bucket must be configured")
        if len(set(self.buckets)) != len(self.buckets):
            raise ConfigurationError(f"Duplicate bucket names: {', '.join(self.buckets)}")
        if self.import_mode not in IMPORT_MODES:
            raise ConfigurationError(
                f"Unknown ImportMode '{self.import_mode}', expected one of: {', '.join(IMPORT_MODES)}"
            )
        if self.default_mode not in self.buckets:
            raise ConfigurationError(f"DefaultMode '{self.default_mode}' is not a configured bucket")
        if self.product_start < 0 or self.product_end < self.product_start:
            raise ConfigurationError(
                f"Invalid product window: {self.product_start}..{self.product_end}"
            )
        if self.unit_digits < 1:
            raise ConfigurationError("UnitDigits must be at least 1")

    @property
    def receiving_bucket(self) -> str:
        return self.buckets[0]


def _parse_buckets(raw: str) -> Tuple[str, ...]:
    return tuple(name.strip().lower() for name in raw.split(',') if name.strip())


def load_settings(config_path: Optional[str] = None) -> LedgerSettings:
    """
    Load LedgerSettings from config.ini.

    Args:
        config_path: Explicit path; defaults to $INVENTORY_LEDGER_CONFIG or
                     ./config.ini

    Returns:
        Validated settings (defaults for anything not configured)

    Raises:
        ConfigurationError: If a value is present but unusable
    """
    path = Path(config_path or os.environ.get('INVENTORY_LEDGER_CONFIG', 'config.ini'))
    config = configparser.ConfigParser()

    if path.exists():
        try:
            config.read(path, encoding='utf-8')
            logger.info(f"Configuration loaded from {path}")
        except configparser.Error as e:
            raise ConfigurationError(f"Cannot parse {path}: {e}")
    else:
        logger.debug(f"Config file not found: {path}, using defaults")

    defaults = LedgerSettings()
    buckets = _parse_buckets(config.get('Ledger', 'Buckets', fallback='')) or defaults.buckets

    try:
        return LedgerSettings(
            buckets=buckets,
            import_mode=config.get('Ledger', 'ImportMode', fallback=defaults.import_mode).strip().lower(),
            default_mode=config.get('Ledger', 'DefaultMode', fallback=buckets[0]).strip().lower(),
            product_start=config.getint('Barcode', 'ProductStart', fallback=defaults.product_start),
            product_end=config.getint('Barcode', 'ProductEnd', fallback=defaults.product_end),
            unit_digits=config.getint('Barcode', 'UnitDigits', fallback=defaults.unit_digits),
            db_path=config.get('Database', 'Path', fallback=defaults.db_path),
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid number in {path}: {e}")
