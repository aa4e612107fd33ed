"""
Write-behind queue for ledger commits.

A commit is fire-and-forget for the reconciliation core: the encoded catalog
is handed over and scanning continues at once. Only the newest snapshot is
worth writing, so snapshots scheduled while a commit is running replace each
other in a single pending slot.

The writer reports back through two optional callbacks, `on_committed(count)`
and `on_failed(error)`. In background mode they run on the writer thread.
"""

import copy
import threading
from typing import Any, Callable, Dict, Optional

from exceptions import InventoryLedgerError
from logger import get_logger

logger = get_logger(__name__)

WireValue = Dict[str, Any]


class AsyncCommitWriter:
    """
    Commits encoded catalogs to the ledger store off the controller's thread.

    schedule() never blocks and never raises. A commit failure is recorded in
    `last_error`, logged and handed to `on_failed`; a later successful commit
    clears it.

    sync_mode=True commits on the calling thread; used by tests and by hosts
    without a long-running process.

    Attributes:
        last_error (Exception | None): Most recent failure, None after a success
        committed_rows (int): Row count reported by the most recent success
        superseded (int): Snapshots replaced before they were written
    """

    def __init__(
        self,
        commit_fn: Callable[[WireValue], Optional[int]],
        sync_mode: bool = False,
        on_committed: Optional[Callable[[int], None]] = None,
        on_failed: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self._commit_fn = commit_fn
        self._sync_mode = sync_mode
        self._on_committed = on_committed
        self._on_failed = on_failed

        self.last_error: Optional[Exception] = None
        self.committed_rows = 0
        self.superseded = 0

        self._condition = threading.Condition()
        self._pending: Optional[WireValue] = None
        self._busy = False
        self._closed = False
        self._thread: Optional[threading.Thread] = None

        if not sync_mode:
            self._thread = threading.Thread(
                target=self._drain, daemon=True, name="ledger-commit-writer"
            )
            self._thread.start()

    @property
    def idle(self) -> bool:
        with self._condition:
            return self._pending is None and not self._busy

    def schedule(self, wire: WireValue) -> None:
        """Hand over an encoded catalog for commit."""
        if self._closed:
            logger.warning("Commit scheduled after shutdown, dropped")
            return

        if self._sync_mode:
            self._commit(wire)
            return

        # The controller may keep using its catalog; commit a private copy
        snapshot = copy.deepcopy(wire)
        with self._condition:
            if self._pending is not None:
                self.superseded += 1
                logger.debug(f"Pending commit of {len(self._pending)} rows superseded")
            self._pending = snapshot
            self._condition.notify()

    def flush(self) -> None:
        """Block until every scheduled snapshot has been written or has failed."""
        with self._condition:
            while self._pending is not None or self._busy:
                self._condition.wait()

    def shutdown(self) -> None:
        """Write what is pending, then stop. Calling it again does nothing."""
        if self._closed:
            return
        self.flush()
        with self._condition:
            self._closed = True
            self._condition.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=10)

    def _commit(self, wire: WireValue) -> None:
        try:
            count = self._commit_fn(wire)
        except InventoryLedgerError as e:
            self._failed(e)
            return

        self.last_error = None
        self.committed_rows = count if count is not None else len(wire)
        logger.debug(f"Commit finished: {self.committed_rows} rows")
        if self._on_committed is not None:
            self._on_committed(self.committed_rows)

    def _failed(self, error: Exception) -> None:
        self.last_error = error
        logger.error(f"Commit failed: {error}")
        if self._on_failed is not None:
            self._on_failed(error)

    def _take(self) -> Optional[WireValue]:
        """Claim the pending snapshot; None once shut down with nothing left."""
        with self._condition:
            while self._pending is None and not self._closed:
                self._condition.wait()
            if self._pending is None:
                return None
            wire, self._pending = self._pending, None
            self._busy = True
            return wire

    def _drain(self) -> None:
        while True:
            wire = self._take()
            if wire is None:
                break
            try:
                self._commit(wire)
            except Exception as e:
                # Failures outside the ledger's own errors must not kill the thread
                logger.exception("Unexpected commit failure")
                self._failed(e)
            finally:
                with self._condition:
                    self._busy = False
                    self._condition.notify_all()
