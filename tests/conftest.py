"""
Pytest configuration file for Inventory Ledger tests.

Puts 'src' on sys.path and points logging at a throwaway directory before any
application module is imported.
"""

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Get the repository root directory (parent of tests directory)
repo_root = Path(__file__).parent.parent

src_dir = repo_root / 'src'
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

# Logging is configured on first import of logger; keep test logs out of $HOME
_log_root = Path(tempfile.mkdtemp(prefix='ledger_test_logs_'))
_config_file = _log_root / 'config.ini'
_config_file.write_text(
    "[Logging]\n"
    f"LogDirectory = {_log_root / 'logs'}\n"
    "LogLevel = DEBUG\n",
    encoding='utf-8',
)
os.environ['INVENTORY_LEDGER_CONFIG'] = str(_config_file)


SAMPLE_RECORD = [
    "C1", "D1", "Dept", "2024-01-01", "PO1", "1001", "CP1", "Widget", "BrandX",
    "12ct", "10.0", "1.0", "3", "36", "1.25", "500",
]


def make_record(product="1001", case_count="3", order="500", description="Widget", price="1.25"):
    """A valid 16-field distributor record with selected fields replaced."""
    record = list(SAMPLE_RECORD)
    record[5] = product
    record[7] = description
    record[12] = case_count
    record[14] = price
    record[15] = order
    return record


def make_scan(product: int, unit: int) -> str:
    """Raw scan text whose product window and unit tail decode to (product, unit)."""
    return f"LBL-00{product:07d}{unit:02d}"


@pytest.fixture
def settings():
    from config import LedgerSettings
    return LedgerSettings()


@pytest.fixture
def five_tier_settings():
    from config import FIVE_BUCKETS, LedgerSettings
    return LedgerSettings(buckets=FIVE_BUCKETS)


@pytest.fixture
def csv_file(tmp_path):
    """Factory writing records to a CSV file and returning its path."""
    import csv

    def _write(records, name='order.csv'):
        path = tmp_path / name
        with path.open('w', encoding='utf-8', newline='') as handle:
            csv.writer(handle).writerows(records)
        return path

    return _write
