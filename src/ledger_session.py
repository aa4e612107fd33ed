"""
Ledger session: wires the reconciliation controller to its collaborators.

    parse_requested   -> order_line_parser.parse_files -> CsvParsed
    load_requested    -> LedgerStore.load_order        -> PersistedLoadArrived
    persist_requested -> AsyncCommitWriter -> LedgerStore.commit
    print_requested   -> print callback (if any)

Collaborator failures are logged here and never reach the controller as
exceptions: a file that cannot be read completes the import with no rows, a
store that cannot be read completes the load with no rows.
"""

from pathlib import Path
from typing import Callable, Iterable, List, Optional

from async_commit_writer import AsyncCommitWriter
from catalog import to_dataframe
from config import LedgerSettings
from exceptions import ImportFileError, LedgerStoreError
from ledger_controller import ReconciliationController
from ledger_db import LedgerStore
from logger import get_logger
from order_line_parser import parse_files
from reconciler import (
    ENTER_KEY,
    CommitRequested,
    CsvParsed,
    ImportRequested,
    KeyPressed,
    ModeChanged,
    PersistedLoadArrived,
    PrintRequested,
    ScanFieldEdited,
    ScanSubmitted,
    UnscanRequested,
)

logger = get_logger(__name__)


class LedgerSession:
    """
    One reconciliation session for a workstation.

    Attributes:
        settings (LedgerSettings): Deployment constants
        controller (ReconciliationController): Owner of the ledger model
        store (LedgerStore): Persistence boundary
        writer (AsyncCommitWriter): Fire-and-forget commit queue
        commit_failures (list): Errors reported by failed commits, oldest first
    """

    def __init__(self,
                 settings: LedgerSettings,
                 store: Optional[LedgerStore] = None,
                 on_print: Optional[Callable[[], None]] = None,
                 sync_commits: bool = False):
        self.settings = settings
        self.store = store or LedgerStore(settings.db_path, settings.buckets)
        self.controller = ReconciliationController(settings)
        self.commit_failures: List[Exception] = []
        self.writer = AsyncCommitWriter(
            self.store.commit,
            sync_mode=sync_commits,
            on_committed=self._committed,
            on_failed=self._commit_failed,
        )
        self._on_print = on_print

        self.controller.parse_requested.connect(self._parse)
        self.controller.load_requested.connect(self._load)
        self.controller.persist_requested.connect(self.writer.schedule)
        self.controller.print_requested.connect(self._print)
        self.controller.diagnostic.connect(self._report_diagnostic)

    @property
    def catalog(self):
        return self.controller.catalog

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def _parse(self, files) -> None:
        try:
            outcome = parse_files(files)
        except ImportFileError as e:
            logger.error(f"Import failed, no order lines imported: {e}")
            self.controller.dispatch(CsvParsed(rows=()))
            return
        self.controller.dispatch(CsvParsed(rows=tuple(outcome.rows), rejected=outcome.rejected))

    def _load(self, order) -> None:
        rows = []
        try:
            rows = self.store.load_order(order)
        except LedgerStoreError as e:
            logger.error(f"Could not load persisted rows for order {order}: {e}")
        finally:
            # The controller waits for this answer before accepting another import
            self.controller.dispatch(PersistedLoadArrived(order=order, rows=tuple(rows)))

    def _print(self) -> None:
        if self._on_print is None:
            logger.info("Print requested but no printer is attached")
            return
        self._on_print()

    def _report_diagnostic(self, message: str) -> None:
        logger.warning(f"Ledger diagnostic: {message}")

    def _committed(self, count: int) -> None:
        logger.info(f"Ledger commit stored {count} rows")

    def _commit_failed(self, error: Exception) -> None:
        # Runs on the writer thread; the controller is not touched from here
        self.commit_failures.append(error)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def import_files(self, files: Iterable) -> None:
        self.controller.dispatch(ImportRequested(tuple(files)))

    def scan(self, raw: str) -> None:
        self.controller.dispatch(ScanSubmitted(raw))

    def type_scan(self, text: str) -> None:
        """Scanner keystrokes: the field text followed by Enter."""
        self.controller.dispatch(ScanFieldEdited(text))
        self.controller.dispatch(KeyPressed(ENTER_KEY))

    def unscan(self, product: int, unit: int, bucket: Optional[str] = None) -> None:
        self.controller.dispatch(UnscanRequested(product, unit, bucket))

    def set_mode(self, mode: str) -> None:
        self.controller.dispatch(ModeChanged(mode))

    def commit(self) -> None:
        self.controller.dispatch(CommitRequested())

    def print_labels(self) -> None:
        self.controller.dispatch(PrintRequested())

    def export(self, file_path) -> Path:
        """
        Write the current ledger to a CSV file, one row per product.

        Returns:
            Path of the written file
        """
        path = Path(file_path)
        frame = to_dataframe(self.catalog)
        frame.to_csv(path, index=False, encoding="utf-8-sig")
        logger.info(f"Exported {len(frame)} ledger rows to {path}")
        return path

    def close(self) -> None:
        """Wait for outstanding commits and stop the writer thread."""
        self.writer.shutdown()
        logger.info("Ledger session closed")
