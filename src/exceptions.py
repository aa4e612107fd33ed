"""
Custom exceptions for the Inventory Ledger application.

Only collaborator failures raise. Bad input arriving at the reconciliation
core (malformed CSV records, unreadable barcodes, scans for unknown products)
degrades to "this input had no effect" and never reaches these classes.

Exception hierarchy:
    InventoryLedgerError (base)
    ├── ConfigurationError (invalid config.ini values)
    ├── ImportFileError (CSV file could not be read)
    ├── UnknownBucketError (bucket name not in the configured set)
    └── LedgerStoreError (persistence adapter failures)
        └── EmptyCommitError (commit of an empty catalog)
"""

from typing import Optional, Sequence


class InventoryLedgerError(Exception):
    """
    Base exception for all Inventory Ledger errors.

    Catch this to handle any application error with a single clause:
        try:
            store.commit(wire)
        except InventoryLedgerError as e:
            logger.error(f"Application error: {e}")

    Note: This does NOT inherit from built-in errors like ValueError, IOError
    to maintain clear separation between application and system errors.
    """
    pass


class ConfigurationError(InventoryLedgerError):
    """
    Raised when config.ini holds a value the ledger cannot work with.

    Example usage:
        if mode not in IMPORT_MODES:
            raise ConfigurationError(f"Unknown ImportMode: {mode}")
    """
    pass


class ImportFileError(InventoryLedgerError):
    """
    Raised when a CSV order file cannot be opened or decoded.

    Attributes:
        file_path (str): The file that failed to load
    """

    def __init__(self, message: str, file_path: Optional[str] = None):
        super().__init__(message)
        self.file_path = file_path


class UnknownBucketError(InventoryLedgerError):
    """
    Raised when a classification bucket is not part of the configured set.

    Attributes:
        bucket (str): The rejected bucket name
        known (tuple): Bucket names that are configured
    """

    def __init__(self, bucket: str, known: Sequence[str] = ()):
        self.bucket = bucket
        self.known = tuple(known)
        super().__init__(f"Unknown bucket '{bucket}' (known: {', '.join(self.known) or 'none'})")


class LedgerStoreError(InventoryLedgerError):
    """
    Raised when the persistence adapter fails to read or write ledger rows.

    Common causes:
    - Database file on a disconnected share
    - Locked database (another process holds a write transaction)
    - Corrupt or foreign schema
    """
    pass


class EmptyCommitError(LedgerStoreError):
    """Raised when a commit carries no rows; the store refuses to do anything."""
    pass
