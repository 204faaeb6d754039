from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, List

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from .config import InputSettings
from .fields import RawRecord, split_lines, tokenize_lines
from .report import InputError

LOGGER = logging.getLogger(__name__)

EXCEL_SUFFIXES = {".xlsx", ".xlsm"}


def read_text_lines(path: Path, encoding: str = "utf-8-sig") -> List[str]:
    if not path.exists():
        raise InputError(f"CSV file not found: {path}")
    try:
        text = path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as exc:
        raise InputError(f"Cannot read CSV file {path}: {exc}") from exc
    return split_lines(text)


def _cell_text(value: Any) -> str:
    """Render a workbook cell the way a CSV export of the same sheet would."""

    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def read_workbook_records(path: Path, sheet: str | int | None = None) -> List[RawRecord]:
    """Read one worksheet into records; row numbers match the sheet's own numbering."""

    if not path.exists():
        raise InputError(f"Workbook not found: {path}")
    try:
        workbook = load_workbook(path, read_only=True, data_only=True)
    except (OSError, InvalidFileException, KeyError, ValueError) as exc:
        raise InputError(f"Cannot open workbook {path}: {exc}") from exc

    try:
        if sheet is None:
            worksheet = workbook.worksheets[0]
        elif isinstance(sheet, int):
            try:
                worksheet = workbook.worksheets[sheet]
            except IndexError as exc:
                raise InputError(f"Workbook {path} has no sheet at index {sheet}") from exc
        else:
            if sheet not in workbook.sheetnames:
                raise InputError(f"Workbook {path} has no sheet named {sheet!r}")
            worksheet = workbook[sheet]

        records = [
            RawRecord(line_no=row_no, fields=tuple(_cell_text(v) for v in row))
            for row_no, row in enumerate(worksheet.iter_rows(values_only=True), start=1)
        ]
        LOGGER.info("Read %d row(s) from sheet %r of %s", len(records), worksheet.title, path.name)
    finally:
        workbook.close()
    return records


def read_records(path: Path, settings: InputSettings) -> List[RawRecord]:
    """Load an export as raw records, picking the reader from the file suffix."""

    if path.suffix.lower() in EXCEL_SUFFIXES:
        records = read_workbook_records(path, settings.sheet)
    else:
        if path.suffix.lower() != ".csv":
            LOGGER.warning("File %s doesn't have a .csv extension; reading it as delimited text", path.name)
        lines = read_text_lines(path, settings.encoding)
        records = tokenize_lines(lines, settings.delimiter, settings.quote_char)
        LOGGER.info("Read %d line(s) from %s", len(records), path.name)

    if not any(not record.is_blank for record in records):
        raise InputError(f"Input {path} contains no data")
    return records
