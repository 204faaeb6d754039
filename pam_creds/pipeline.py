from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from .aggregate import Aggregate, aggregate_rows
from .config import AppConfig
from .document import ValidationSummary, build_document, ensure_valid, render_document, resolve_generated_at
from .fields import RawRecord, split_lines, tokenize_lines
from .report import ExtractionReport, InputError, NoValidRowsError
from .rows import extract_rows
from .schema import SchemaMap, detect_schema
from .sources import read_records

LOGGER = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    document: Dict[str, Any]
    text: str
    schema: SchemaMap
    aggregate: Aggregate
    report: ExtractionReport
    validation: ValidationSummary


def extract_from_records(
    records: Sequence[RawRecord],
    config: Optional[AppConfig] = None,
    *,
    source_name: str = "<memory>",
    generated_at: Optional[str] = None,
    header_shape: Optional[str] = None,
) -> ExtractionResult:
    """
    Run detection, extraction, aggregation and validation over raw records.

    Raises ``NoValidRowsError`` when nothing survives extraction and
    ``DocumentValidationError`` when the rendered document fails validation.
    Everything recoverable ends up on ``result.report``.
    """

    config = config or AppConfig()
    report = ExtractionReport()
    if not records:
        raise InputError(f"{source_name} contains no rows")

    shape = header_shape or config.input.header_shape
    schema = detect_schema(records, config.detection, report, shape=shape)
    rows = extract_rows(records, schema, config.detection, report)
    if not rows:
        raise NoValidRowsError(
            f"No valid user rows in {source_name} ({report.total_rows} row(s) seen, "
            f"skipped: {report.skipped_counts() or 'none'})"
        )

    aggregate = aggregate_rows(rows, report, declared_resources=schema.resource_ids)
    document = build_document(
        aggregate,
        schema,
        report,
        config.detection,
        source_name=source_name,
        generated_at=resolve_generated_at(generated_at),
    )
    text = render_document(document)
    validation = ensure_valid(document, text)

    LOGGER.info(
        "Users: %d, IPs: %d, total IP assignments: %d",
        validation.users,
        validation.resources,
        validation.total_assignments,
    )
    return ExtractionResult(document, text, schema, aggregate, report, validation)


def extract_from_text(text: str, config: Optional[AppConfig] = None, **kwargs: Any) -> ExtractionResult:
    config = config or AppConfig()
    records = tokenize_lines(split_lines(text), config.input.delimiter, config.input.quote_char)
    return extract_from_records(records, config, **kwargs)


def extract_credentials(
    path: Path,
    config: Optional[AppConfig] = None,
    *,
    generated_at: Optional[str] = None,
    header_shape: Optional[str] = None,
) -> ExtractionResult:
    """Read an export (CSV or workbook) and produce the validated credential document."""

    config = config or AppConfig()
    records = read_records(path, config.input)
    return extract_from_records(
        records,
        config,
        source_name=path.name,
        generated_at=generated_at,
        header_shape=header_shape,
    )
