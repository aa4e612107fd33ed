"""
Qt host for the reconciliation reducer.

The controller owns the only Model, admits events one at a time, and
announces the reducer's commands as Qt signals so UI and I/O collaborators
stay decoupled from the ledger logic.
"""

from collections import deque
from typing import Deque, List

from PySide6.QtCore import QObject, Signal

from config import LedgerSettings
from logger import get_logger, set_mode_context, set_order_context
import reconciler
from reconciler import Event, LoadPersisted, Model, ParseFiles, Persist, Print

logger = get_logger(__name__)


class ReconciliationController(QObject):
    """
    Single owner of the ledger model.

    Events dispatched while another event is being processed (for example from
    a slot connected to one of the signals below) are queued and processed in
    arrival order once the current event has completed.

    Attributes:
        catalog_changed (Signal): Emitted with the new catalog after any event
                                  that changed it
        parse_requested (Signal): Files to parse; answer with CsvParsed
        load_requested (Signal): Order id whose persisted rows are needed;
                                 answer with PersistedLoadArrived
        persist_requested (Signal): Encoded catalog to commit, fire-and-forget
        print_requested (Signal): Print/export trigger, no payload
        diagnostic (Signal): Text of each corrupt persisted value found
    """
    catalog_changed = Signal(object)
    parse_requested = Signal(object)
    load_requested = Signal(object)
    persist_requested = Signal(object)
    print_requested = Signal()
    diagnostic = Signal(str)

    def __init__(self, settings: LedgerSettings, parent: QObject = None):
        super().__init__(parent)
        self._model: Model = reconciler.initial_model(settings)
        self._queue: Deque[Event] = deque()
        self._dispatching = False
        logger.info(f"ReconciliationController initialized with buckets: {', '.join(settings.buckets)}")
        set_mode_context(self._model.mode)

    @property
    def model(self) -> Model:
        return self._model

    @property
    def catalog(self):
        return self._model.catalog

    def dispatch(self, event: Event) -> None:
        """Admit an event; it is processed after every event admitted before it."""
        self._queue.append(event)
        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._queue:
                self._process(self._queue.popleft())
        finally:
            self._dispatching = False

    def _process(self, event: Event) -> None:
        before = self._model
        self._model, commands = reconciler.update(before, event)
        self._sync_logging_context(before)

        for issue in self._model.diagnostics[len(before.diagnostics):]:
            self.diagnostic.emit(str(issue))

        if self._model.catalog is not before.catalog:
            self.catalog_changed.emit(self._model.catalog)

        self._emit_commands(commands)

    def _sync_logging_context(self, before: Model) -> None:
        # Log records carry the order being reconciled and the active scan mode
        if self._model.pending_order is not None and self._model.pending_order != before.pending_order:
            set_order_context(self._model.pending_order)
        if self._model.mode != before.mode:
            set_mode_context(self._model.mode)

    def _emit_commands(self, commands: List) -> None:
        for command in commands:
            if isinstance(command, ParseFiles):
                self.parse_requested.emit(list(command.files))
            elif isinstance(command, LoadPersisted):
                self.load_requested.emit(command.order)
            elif isinstance(command, Persist):
                self.persist_requested.emit(command.wire)
            elif isinstance(command, Print):
                self.print_requested.emit()
            else:
                logger.error(f"Unhandled command: {command!r}")
