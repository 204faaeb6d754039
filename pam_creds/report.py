from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional

LOGGER = logging.getLogger(__name__)

SEVERITY_INFO = "info"
SEVERITY_WARNING = "warning"


class ExtractionError(ValueError):
    """Raised when a document cannot be turned into an authoritative credential set."""


class InputError(ExtractionError):
    """Raised when the input export is missing, unreadable or empty."""


class NoValidRowsError(ExtractionError):
    """Raised when no row survives classification and extraction."""


class DocumentValidationError(ExtractionError):
    """Raised when a rendered document fails structural or semantic checks."""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "document failed validation")


@dataclass(frozen=True)
class Issue:
    kind: str
    message: str
    severity: str = SEVERITY_WARNING
    line: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind,
            "severity": self.severity,
            "message": self.message,
            "line": self.line,
        }


@dataclass
class ExtractionReport:
    """
    Counters and diagnostics for a single extraction run.

    One instance is created per call and handed to every stage, so nothing
    about a run survives in module state.
    """

    total_rows: int = 0
    valid_rows: int = 0
    skipped: Counter = field(default_factory=Counter)
    issues: List[Issue] = field(default_factory=list)

    def add_issue(
        self,
        kind: str,
        message: str,
        *,
        severity: str = SEVERITY_WARNING,
        line: Optional[int] = None,
    ) -> Issue:
        issue = Issue(kind=kind, message=message, severity=severity, line=line)
        self.issues.append(issue)
        if severity == SEVERITY_WARNING:
            LOGGER.warning(message)
        else:
            LOGGER.debug(message)
        return issue

    def record_skip(self, reason: str, message: str, line: Optional[int] = None) -> None:
        self.skipped[reason] += 1
        self.add_issue(reason, message, line=line)

    def issues_of(self, kind: str) -> List[Issue]:
        return [i for i in self.issues if i.kind == kind]

    @property
    def warning_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == SEVERITY_WARNING)

    def skipped_counts(self) -> Dict[str, int]:
        return {reason: self.skipped[reason] for reason in sorted(self.skipped)}
