"""Tests for reconciler.py: phase transitions, commands, scanning flow."""

import pytest

from catalog import is_closed
from config import LedgerSettings
from conftest import SAMPLE_RECORD, make_record, make_scan
from order_line_parser import parse
from reconciler import (
    ENTER_KEY,
    CommitRequested,
    CsvParsed,
    ImportRequested,
    KeyPressed,
    LoadPersisted,
    ModeChanged,
    ParseFiles,
    Persist,
    PersistedLoadArrived,
    Phase,
    Print,
    PrintRequested,
    ScanFieldEdited,
    ScanSubmitted,
    UnscanRequested,
    closed_products,
    initial_model,
    update,
)
from serialization import encode


@pytest.fixture
def model(settings):
    return initial_model(settings)


def run(model, *events):
    """Apply events in order, collecting every command."""
    commands = []
    for event in events:
        model, issued = update(model, event)
        commands.extend(issued)
    return model, commands


def imported(model, *records):
    """Model after a full import cycle with no persisted rows."""
    rows = tuple(parse(r) for r in records)
    model, _ = run(
        model,
        ImportRequested(("order.csv",)),
        CsvParsed(rows),
        PersistedLoadArrived(order=rows[0][1].order, rows=()),
    )
    return model


def test_initial_model(model):
    assert model.phase is Phase.IDLE
    assert model.catalog == {}
    assert model.mode == 'received'
    assert model.scan_field == ''


class TestImportCycle:
    def test_import_requests_parse(self, model):
        model, commands = update(model, ImportRequested(("a.csv", "b.csv")))
        assert model.phase is Phase.AWAITING_CSV_PARSE
        assert commands == [ParseFiles(("a.csv", "b.csv"))]

    def test_import_without_files(self, model):
        after, commands = update(model, ImportRequested(()))
        assert after is model
        assert commands == []

    def test_csv_parsed_inserts_and_requests_load(self, model):
        model, _ = update(model, ImportRequested(("a.csv",)))
        rows = (parse(make_record(product="1001", order="500")),
                parse(make_record(product="1002", order="501")))

        model, commands = update(model, CsvParsed(rows))

        assert set(model.catalog) == {1001, 1002}
        assert model.phase is Phase.AWAITING_PERSISTED_LOAD
        assert model.pending_order == 500
        assert commands == [LoadPersisted(500)]

    def test_zero_rows_returns_to_idle(self, model):
        model, _ = update(model, ImportRequested(("a.csv",)))
        model, commands = update(model, CsvParsed((), rejected=4))
        assert model.phase is Phase.IDLE
        assert commands == []
        assert model.catalog == {}

    def test_load_arrival_merges_and_idles(self, model):
        model, _ = run(model, ImportRequested(("a.csv",)), CsvParsed((parse(SAMPLE_RECORD),)))
        persisted = dict(encode(model.catalog)["1001"], product=1001, received="[1,2]")

        model, commands = update(model, PersistedLoadArrived(order=500, rows=(persisted,)))

        assert model.phase is Phase.IDLE
        assert model.pending_order is None
        assert model.catalog[1001].buckets['received'] == {1, 2}
        assert commands == []

    def test_corrupt_load_recorded_as_diagnostic(self, model):
        model, _ = run(model, ImportRequested(("a.csv",)), CsvParsed((parse(SAMPLE_RECORD),)))
        persisted = dict(encode(model.catalog)["1001"], product=1001, used="garbage")

        model, _ = update(model, PersistedLoadArrived(order=500, rows=(persisted,)))

        assert len(model.diagnostics) == 1
        assert model.diagnostics[0].field == 'used'
        assert model.catalog[1001].buckets['used'] == frozenset()

    def test_import_while_busy_is_ignored(self, model):
        busy, _ = update(model, ImportRequested(("a.csv",)))
        after, commands = update(busy, ImportRequested(("b.csv",)))
        assert after is busy
        assert commands == []

    def test_unrequested_parse_result_is_ignored(self, model):
        after, commands = update(model, CsvParsed((parse(SAMPLE_RECORD),)))
        assert after is model
        assert commands == []

    def test_load_for_other_order_is_ignored(self, model):
        model, _ = run(model, ImportRequested(("a.csv",)), CsvParsed((parse(SAMPLE_RECORD),)))
        after, _ = update(model, PersistedLoadArrived(order=999, rows=()))
        assert after is model
        assert after.phase is Phase.AWAITING_PERSISTED_LOAD


class TestScanning:
    def test_scan_submitted(self, model):
        model = imported(model, SAMPLE_RECORD)
        model, commands = update(model, ScanSubmitted(make_scan(1001, 1)))
        assert model.catalog[1001].buckets['received'] == {1}
        assert commands == []

    def test_enter_submits_and_clears_field(self, model):
        model = imported(model, SAMPLE_RECORD)
        model, _ = run(model, ScanFieldEdited(make_scan(1001, 2)), KeyPressed(ENTER_KEY))
        assert model.catalog[1001].buckets['received'] == {2}
        assert model.scan_field == ''

    def test_other_keys_do_not_submit(self, model):
        model = imported(model, SAMPLE_RECORD)
        model, _ = run(model, ScanFieldEdited(make_scan(1001, 2)), KeyPressed(9))
        assert model.catalog[1001].buckets['received'] == frozenset()
        assert model.scan_field == make_scan(1001, 2)

    def test_unreadable_scan_clears_field_only(self, model):
        model = imported(model, SAMPLE_RECORD)
        before = model.catalog
        model, _ = run(model, ScanFieldEdited("garbage"), KeyPressed(ENTER_KEY))
        assert model.scan_field == ''
        assert model.catalog == before

    def test_scan_unknown_product(self, model):
        model = imported(model, SAMPLE_RECORD)
        after, _ = update(model, ScanSubmitted(make_scan(4444, 1)))
        assert after.catalog == model.catalog

    def test_scan_accepted_in_any_phase(self, model):
        model, _ = run(model, ImportRequested(("a.csv",)), CsvParsed((parse(SAMPLE_RECORD),)))
        model, _ = update(model, ScanSubmitted(make_scan(1001, 1)))
        assert model.phase is Phase.AWAITING_PERSISTED_LOAD
        assert model.catalog[1001].buckets['received'] == {1}

    def test_mode_change_targets_bucket(self, model):
        model = imported(model, SAMPLE_RECORD)
        model, _ = run(model, ModeChanged('used'), ScanSubmitted(make_scan(1001, 1)))
        assert model.mode == 'used'
        assert model.catalog[1001].buckets['used'] == {1}

    def test_unknown_mode_ignored(self, model):
        after, _ = update(model, ModeChanged('lost'))
        assert after.mode == 'received'

    def test_unscan(self, model):
        model = imported(model, SAMPLE_RECORD)
        model, _ = run(model,
                       ScanSubmitted(make_scan(1001, 1)),
                       ScanSubmitted(make_scan(1001, 2)),
                       UnscanRequested(1001, 2))
        assert model.catalog[1001].buckets['received'] == {1}

    def test_unscan_unknown_bucket(self, model):
        model = imported(model, SAMPLE_RECORD)
        after, _ = update(model, UnscanRequested(1001, 1, bucket='lost'))
        assert after is model


def test_commit_issues_encoded_catalog(model):
    model = imported(model, SAMPLE_RECORD)
    _, commands = update(model, CommitRequested())
    assert commands == [Persist(encode(model.catalog))]


def test_print_request(model):
    after, commands = update(model, PrintRequested())
    assert after is model
    assert commands == [Print()]


def test_unknown_event(model):
    with pytest.raises(TypeError):
        update(model, "scan")


def test_end_to_end_scenario(model):
    model = imported(model, SAMPLE_RECORD)
    row = model.catalog[1001]
    assert row.total == 3
    assert row.line.description == "Widget, BrandX, 12ct"
    assert row.line.price == 1.25
    assert row.buckets == {'received': frozenset(), 'used': frozenset()}

    model, _ = update(model, ScanSubmitted(make_scan(1001, 1)))
    assert model.catalog[1001].buckets['received'] == {1}
    assert not is_closed(model.catalog[1001])

    model, _ = run(model,
                   ScanSubmitted(make_scan(1001, 2)),
                   ScanSubmitted(make_scan(1001, 3)),
                   ModeChanged('used'),
                   ScanSubmitted(make_scan(1001, 1)),
                   ScanSubmitted(make_scan(1001, 2)),
                   ScanSubmitted(make_scan(1001, 3)))

    assert is_closed(model.catalog[1001])
    assert closed_products(model) == [1001]


def test_five_tier_deployment(five_tier_settings):
    model = imported(initial_model(five_tier_settings), make_record(case_count="1"))
    events = []
    for tier in five_tier_settings.buckets:
        events += [ModeChanged(tier), ScanSubmitted(make_scan(1001, 1))]

    model, _ = run(model, *events)

    assert is_closed(model.catalog[1001])


def test_replace_import_mode():
    model = initial_model(LedgerSettings(import_mode='replace'))
    model = imported(model, make_record(product="1001"))
    model, _ = update(model, ScanSubmitted(make_scan(1001, 1)))

    model = imported(model, make_record(product="1002"))

    assert set(model.catalog) == {1002}
