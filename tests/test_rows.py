from pam_creds.config import DetectionSettings
from pam_creds.fields import RawRecord, tokenize_lines
from pam_creds.report import ExtractionReport
from pam_creds.rows import (
    SKIP_EMPTY_SECRET,
    SKIP_INVALID_IDENTITY,
    SKIP_UNCLASSIFIED,
    ExtractedRow,
    RowClassifier,
    SkippedRow,
    extract_rows,
)
from pam_creds.schema import detect_schema

UNIFIED_HEADER = [
    "Username,Password,SSH_Public_Key,,",
    ",,,Web,DB",
    ",,,PRIVATE_10.0.0.9,PRIVATE_10.0.0.1",
]


def _unified(*rows):
    records = tokenize_lines([*UNIFIED_HEADER, *rows])
    report = ExtractionReport()
    schema = detect_schema(records, DetectionSettings(), report)
    return records, schema, report


def test_marker_row_is_classified_and_identity_extracted():
    records, schema, report = _unified("User carol,Secret3,keyC,TRUE,")
    outcome = RowClassifier(schema, DetectionSettings()).classify(records[3], report)

    assert outcome == ExtractedRow(4, "carol", "Secret3", "keyC", ("10.0.0.9",))


def test_rows_without_marker_are_unclassified():
    records, schema, report = _unified("Totals,,,2,1")
    outcome = RowClassifier(schema, DetectionSettings()).classify(records[3], report)

    assert isinstance(outcome, SkippedRow)
    assert outcome.reason == SKIP_UNCLASSIFIED


def test_identity_with_disallowed_characters_is_rejected():
    records, schema, report = _unified("User bad name!,pw,,TRUE,TRUE")
    outcome = RowClassifier(schema, DetectionSettings()).classify(records[3], report)

    assert isinstance(outcome, SkippedRow)
    assert outcome.reason == SKIP_INVALID_IDENTITY


def test_empty_secret_is_skipped():
    records, schema, report = _unified("User dan,  ,keyD,TRUE,")
    outcome = RowClassifier(schema, DetectionSettings()).classify(records[3], report)

    assert isinstance(outcome, SkippedRow)
    assert outcome.reason == SKIP_EMPTY_SECRET


def test_assignments_follow_column_order_not_row_text():
    records, schema, report = _unified("User carol,pw,,yes,TRUE")
    outcome = RowClassifier(schema, DetectionSettings()).classify(records[3], report)

    # 10.0.0.9 is declared before 10.0.0.1, so it stays first even though it sorts last.
    assert outcome.resources == ("10.0.0.9", "10.0.0.1")


def test_truthy_vocabulary_is_case_insensitive():
    records, schema, report = _unified("User carol,pw,,True,1", "User dave,pw,,YES, no ")
    classifier = RowClassifier(schema, DetectionSettings())

    assert classifier.classify(records[3], report).resources == ("10.0.0.9", "10.0.0.1")
    assert classifier.classify(records[4], report).resources == ("10.0.0.9",)
    assert classifier.is_truthy(" true ")
    assert not classifier.is_truthy("y")


def test_unrecognized_flag_is_absent_and_reported():
    records, schema, report = _unified("User carol,pw,,x,FALSE")
    outcome = RowClassifier(schema, DetectionSettings()).classify(records[3], report)

    assert outcome.resources == ()
    flagged = report.issues_of("unrecognized_flag")
    assert len(flagged) == 1
    assert flagged[0].line == 4
    assert flagged[0].severity == "info"


def test_missing_trailing_cells_read_as_empty():
    records, schema, report = _unified("User carol,pw")
    outcome = RowClassifier(schema, DetectionSettings()).classify(records[3], report)

    assert outcome.ssh_key == ""
    assert outcome.resources == ()


def test_legacy_rows_need_no_marker():
    records = tokenize_lines(["Username,Password,SSH_Public_Key", "alice,Secret1,keyA", "", "bob,Secret2,"])
    report = ExtractionReport()
    schema = detect_schema(records, DetectionSettings(), report)
    rows = extract_rows(records, schema, DetectionSettings(), report)

    assert [r.username for r in rows] == ["alice", "bob"]
    assert rows[1].ssh_key == ""
    assert report.total_rows == 2
    assert report.valid_rows == 2


def test_extract_rows_counts_every_skip_reason():
    records, schema, report = _unified(
        "User carol,pw,,TRUE,",
        "Notes,,,,",
        "User bad!,pw,,,",
        "User dan,,,TRUE,",
        ",,,,",
    )
    rows = extract_rows(records, schema, DetectionSettings(), report)

    assert [r.username for r in rows] == ["carol"]
    assert report.total_rows == 4
    assert report.valid_rows == 1
    assert report.skipped_counts() == {"empty_secret": 1, "invalid_identity": 1, "unclassified": 1}


def test_classifier_holds_no_counters():
    records, schema, _ = _unified("User carol,pw,,TRUE,")
    classifier = RowClassifier(schema, DetectionSettings())
    first, second = ExtractionReport(), ExtractionReport()
    classifier.classify(records[3], first)
    classifier.classify(RawRecord(9, ("User dave", "pw", "", "x", "")), second)

    assert first.issues == []
    assert len(second.issues) == 1
