from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Tuple, Union

from .config import HEADER_SHAPE_UNIFIED, DetectionSettings
from .fields import RawRecord
from .report import SEVERITY_INFO, ExtractionReport
from .schema import SchemaMap, marker_pattern

LOGGER = logging.getLogger(__name__)

SKIP_UNCLASSIFIED = "unclassified"
SKIP_INVALID_IDENTITY = "invalid_identity"
SKIP_EMPTY_SECRET = "empty_secret"


@dataclass(frozen=True)
class ExtractedRow:
    line_no: int
    username: str
    password: str
    ssh_key: str
    resources: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SkippedRow:
    line_no: int
    reason: str
    detail: str


RowOutcome = Union[ExtractedRow, SkippedRow]


class RowClassifier:
    """
    Decide which rows describe credential owners and pull their secrets out.

    Built once per document from the detected schema; holds no counters so the
    same instance can be reused freely. Counting happens on the report passed
    to ``extract_rows``.
    """

    def __init__(self, schema: SchemaMap, settings: DetectionSettings):
        self.schema = schema
        self.settings = settings
        self._identity_re = re.compile(settings.identity_pattern)
        self._marker_re = marker_pattern(settings.identity_marker)
        self._truthy = frozenset(v.lower() for v in settings.truthy_values)
        self._falsy = frozenset(v.lower() for v in settings.falsy_values)

    @property
    def requires_marker(self) -> bool:
        return self.schema.shape == HEADER_SHAPE_UNIFIED

    def identity_token(self, record: RawRecord) -> str | None:
        """Return the raw identity for owner rows, ``None`` for rows that are not owner data."""

        cell = record.cell(self.schema.username.index)
        if not self.requires_marker:
            return cell
        match = self._marker_re.match(cell)
        if not match:
            return None
        return match.group(1).strip()

    def classify(self, record: RawRecord, report: ExtractionReport) -> RowOutcome:
        identity = self.identity_token(record)
        if identity is None:
            cell = record.cell(self.schema.username.index)
            return SkippedRow(record.line_no, SKIP_UNCLASSIFIED, f"Line {record.line_no}: not an owner row ({cell!r})")

        if not self._identity_re.match(identity):
            return SkippedRow(
                record.line_no,
                SKIP_INVALID_IDENTITY,
                f"Line {record.line_no}: invalid username format {identity!r}",
            )

        password = record.cell(self.schema.password.index)
        if not password:
            return SkippedRow(
                record.line_no,
                SKIP_EMPTY_SECRET,
                f"Line {record.line_no}: empty password for user {identity!r}",
            )

        ssh_key = record.cell(self.schema.ssh_key.index)
        resources = self.map_assignments(record, report)
        return ExtractedRow(record.line_no, identity, password, ssh_key, resources)

    def is_truthy(self, value: str) -> bool:
        return value.strip().lower() in self._truthy

    def map_assignments(self, record: RawRecord, report: ExtractionReport) -> Tuple[str, ...]:
        """Resources flagged present on this row, in column-declaration order."""

        assigned: List[str] = []
        for column in self.schema.resources:
            value = record.cell(column.index)
            if self.is_truthy(value):
                assigned.append(column.resource)
            elif value and value.lower() not in self._falsy:
                report.add_issue(
                    "unrecognized_flag",
                    f"Line {record.line_no}: unrecognized flag {value!r} for {column.resource}, treated as absent",
                    severity=SEVERITY_INFO,
                    line=record.line_no,
                )
        return tuple(assigned)


def data_records(records: Iterable[RawRecord], schema: SchemaMap) -> Iterator[RawRecord]:
    """Non-blank records past the header block."""

    for index, record in enumerate(records):
        if index < schema.header_rows:
            continue
        if record.is_blank:
            continue
        yield record


def extract_rows(
    records: Iterable[RawRecord],
    schema: SchemaMap,
    settings: DetectionSettings,
    report: ExtractionReport,
) -> List[ExtractedRow]:
    """Classify every data row, counting skips on ``report`` and returning the valid rows in order."""

    classifier = RowClassifier(schema, settings)
    valid: List[ExtractedRow] = []
    for record in data_records(records, schema):
        report.total_rows += 1
        outcome = classifier.classify(record, report)
        if isinstance(outcome, SkippedRow):
            report.record_skip(outcome.reason, outcome.detail, line=outcome.line_no)
            continue
        LOGGER.debug("Processing user: %s", outcome.username)
        report.valid_rows += 1
        valid.append(outcome)

    LOGGER.info("Rows processed: %d, valid user rows: %d", report.total_rows, report.valid_rows)
    return valid
