"""
Reconciliation reducer.

update(model, event) computes the next model and the requests the host must
carry out for it. Nothing here performs I/O: parsing files, loading persisted
rows, committing and printing are returned as commands, and their results
come back later as events.

    ImportRequested --ParseFiles--> CsvParsed --LoadPersisted--> PersistedLoadArrived
         IDLE          AWAITING_CSV_PARSE      AWAITING_PERSISTED_LOAD          IDLE

Scans, mode changes, commits and print requests are accepted in every phase
and never change it.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import barcode_codec
import catalog
import serialization
from barcode_codec import Barcode
from catalog import Catalog
from config import LedgerSettings
from logger import get_logger
from order_line_parser import OrderLine
from serialization import DecodeIssue, WireValue

logger = get_logger(__name__)

ENTER_KEY = 13


class Phase(Enum):
    IDLE = 'idle'
    AWAITING_CSV_PARSE = 'awaiting_csv_parse'
    AWAITING_PERSISTED_LOAD = 'awaiting_persisted_load'


# ============================================================================
# Events
# ============================================================================

@dataclass(frozen=True)
class ImportRequested:
    files: Tuple[Any, ...]


@dataclass(frozen=True)
class CsvParsed:
    rows: Tuple[Tuple[int, OrderLine], ...]
    rejected: int = 0


@dataclass(frozen=True)
class PersistedLoadArrived:
    order: int
    rows: Tuple[Mapping[str, Any], ...]


@dataclass(frozen=True)
class ScanFieldEdited:
    text: str


@dataclass(frozen=True)
class KeyPressed:
    code: int


@dataclass(frozen=True)
class ScanSubmitted:
    raw: str


@dataclass(frozen=True)
class UnscanRequested:
    product: int
    unit: int
    bucket: Optional[str] = None


@dataclass(frozen=True)
class ModeChanged:
    mode: str


@dataclass(frozen=True)
class CommitRequested:
    pass


@dataclass(frozen=True)
class PrintRequested:
    pass


# ============================================================================
# Commands
# ============================================================================

@dataclass(frozen=True)
class ParseFiles:
    files: Tuple[Any, ...]


@dataclass(frozen=True)
class LoadPersisted:
    order: int


@dataclass(frozen=True)
class Persist:
    wire: WireValue


@dataclass(frozen=True)
class Print:
    pass


Command = Any
Event = Any


@dataclass(frozen=True)
class Model:
    """
    Everything the reconciliation core knows at one point in time.

    Attributes:
        settings: Deployment constants (buckets, import mode, scan window)
        catalog: The ledger, ProductId -> Row
        phase: Where the import/load cycle currently is
        mode: Bucket that scans are classified into
        scan_field: Current text of the scanner input
        pending_order: Order id of the outstanding persisted-load request
        diagnostics: Corrupt persisted data found so far
    """
    settings: LedgerSettings
    catalog: Catalog = field(default_factory=dict)
    phase: Phase = Phase.IDLE
    mode: str = ''
    scan_field: str = ''
    pending_order: Optional[int] = None
    diagnostics: Tuple[DecodeIssue, ...] = ()


def initial_model(settings: LedgerSettings) -> Model:
    return Model(settings=settings, mode=settings.default_mode)


Result = Tuple[Model, List[Command]]


def _on_import_requested(model: Model, event: ImportRequested) -> Result:
    if model.phase is not Phase.IDLE:
        logger.warning(f"Import requested while {model.phase.value}, ignored")
        return model, []
    if not event.files:
        logger.info("Import requested without files, nothing to do")
        return model, []

    logger.info(f"Importing {len(event.files)} files")
    return replace(model, phase=Phase.AWAITING_CSV_PARSE), [ParseFiles(tuple(event.files))]


def _on_csv_parsed(model: Model, event: CsvParsed) -> Result:
    if model.phase is not Phase.AWAITING_CSV_PARSE:
        logger.warning(f"Unexpected CSV parse result while {model.phase.value}, ignored")
        return model, []

    if not event.rows:
        logger.warning(f"No valid order lines parsed ({event.rejected} records rejected)")
        return replace(model, phase=Phase.IDLE), []

    settings = model.settings
    cat = catalog.bulk_insert(event.rows, model.catalog, settings.buckets, settings.import_mode)

    # One import batch belongs to one order
    order = event.rows[0][1].order
    logger.info(f"Imported {len(event.rows)} order lines for order {order}, requesting persisted rows")

    updated = replace(model, catalog=cat, phase=Phase.AWAITING_PERSISTED_LOAD, pending_order=order)
    return updated, [LoadPersisted(order)]


def _on_persisted_load(model: Model, event: PersistedLoadArrived) -> Result:
    if model.phase is not Phase.AWAITING_PERSISTED_LOAD or event.order != model.pending_order:
        logger.warning(
            f"Persisted rows for order {event.order} arrived while {model.phase.value} "
            f"(expecting {model.pending_order}), ignored"
        )
        return model, []

    issues: List[DecodeIssue] = []
    loaded = serialization.decode_rows(event.rows, model.settings.buckets, issues)
    cat = catalog.merge_loaded(loaded, model.catalog)

    updated = replace(
        model,
        catalog=cat,
        phase=Phase.IDLE,
        pending_order=None,
        diagnostics=model.diagnostics + tuple(issues),
    )
    return updated, []


def _on_scan_field_edited(model: Model, event: ScanFieldEdited) -> Result:
    return replace(model, scan_field=event.text), []


def _on_key_pressed(model: Model, event: KeyPressed) -> Result:
    if event.code != ENTER_KEY:
        return model, []
    return _on_scan_submitted(model, ScanSubmitted(model.scan_field))


def _on_scan_submitted(model: Model, event: ScanSubmitted) -> Result:
    settings = model.settings
    scanned = barcode_codec.decode(
        event.raw,
        product_start=settings.product_start,
        product_end=settings.product_end,
        unit_digits=settings.unit_digits,
    )

    # The field clears whether or not the scan could be read
    cleared = replace(model, scan_field='')
    if scanned is None:
        return cleared, []

    logger.debug(f"Scan {barcode_codec.encode(scanned)} -> {model.mode}")
    return replace(cleared, catalog=catalog.apply_scan(model.mode, scanned, model.catalog)), []


def _on_unscan(model: Model, event: UnscanRequested) -> Result:
    bucket = event.bucket or model.mode
    if bucket not in model.settings.buckets:
        logger.warning(f"Unscan into unknown bucket '{bucket}' ignored")
        return model, []
    cat = catalog.apply_unscan(
        bucket, Barcode(event.product, event.unit), model.catalog, model.settings.receiving_bucket
    )
    return replace(model, catalog=cat), []


def _on_mode_changed(model: Model, event: ModeChanged) -> Result:
    if event.mode not in model.settings.buckets:
        logger.warning(f"Unknown scan mode '{event.mode}' ignored")
        return model, []
    return replace(model, mode=event.mode), []


def _on_commit(model: Model, event: CommitRequested) -> Result:
    logger.info(f"Committing {len(model.catalog)} rows")
    return model, [Persist(serialization.encode(model.catalog))]


def _on_print(model: Model, event: PrintRequested) -> Result:
    return model, [Print()]


_HANDLERS: Dict[type, Callable[[Model, Any], Result]] = {
    ImportRequested: _on_import_requested,
    CsvParsed: _on_csv_parsed,
    PersistedLoadArrived: _on_persisted_load,
    ScanFieldEdited: _on_scan_field_edited,
    KeyPressed: _on_key_pressed,
    ScanSubmitted: _on_scan_submitted,
    UnscanRequested: _on_unscan,
    ModeChanged: _on_mode_changed,
    CommitRequested: _on_commit,
    PrintRequested: _on_print,
}


def update(model: Model, event: Event) -> Result:
    """
    Apply one event.

    Args:
        model: Current model
        event: One of the event classes above

    Returns:
        (next model, commands for the host to carry out)

    Raises:
        TypeError: If event is not a reconciliation event
    """
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Not a reconciliation event: {event!r}")
    return handler(model, event)


def closed_products(model: Model) -> Sequence[int]:
    """Products whose order line is fully accounted for, sorted."""
    return sorted(p for p, row in model.catalog.items() if catalog.is_closed(row))
