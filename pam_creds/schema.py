from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Sequence, Tuple

from .config import (
    HEADER_SHAPE_AUTO,
    HEADER_SHAPE_LEGACY,
    HEADER_SHAPE_UNIFIED,
    DetectionSettings,
)
from .fields import RawRecord
from .report import SEVERITY_INFO, ExtractionReport

LOGGER = logging.getLogger(__name__)

ROLE_USERNAME = "username"
ROLE_PASSWORD = "password"
ROLE_SSH_KEY = "ssh_key"
ROLES: Tuple[str, ...] = (ROLE_USERNAME, ROLE_PASSWORD, ROLE_SSH_KEY)

UNIFIED_HEADER_ROWS = 3
LEGACY_HEADER_ROWS = 1
DOTTED_QUAD = r"[0-9]{1,3}(?:\.[0-9]{1,3}){3}"


@dataclass(frozen=True)
class HeaderRule:
    role: str
    pattern: Pattern[str]

    def matches(self, value: str) -> bool:
        return bool(self.pattern.search(value))


def _rule(role: str, pattern: str) -> HeaderRule:
    return HeaderRule(role, re.compile(pattern, re.IGNORECASE))


# Exact names first so a loose pattern never steals a column that has a
# precise header elsewhere in the row.
HEADER_RULES: Tuple[HeaderRule, ...] = (
    _rule(ROLE_USERNAME, r"^user[_ ]?name$"),
    _rule(ROLE_PASSWORD, r"^password$"),
    _rule(ROLE_SSH_KEY, r"^ssh[_ ]public[_ ]key$"),
    _rule(ROLE_USERNAME, r"user.?name"),
    _rule(ROLE_PASSWORD, r"password"),
    _rule(ROLE_SSH_KEY, r"ssh.*key"),
)


@dataclass(frozen=True)
class RoleResolution:
    """Where a role lives: either found in the header or a fallback index."""

    role: str
    index: int
    detected: bool
    header: Optional[str] = None


@dataclass(frozen=True)
class ResourceColumn:
    resource: str
    index: int


@dataclass(frozen=True)
class SchemaMap:
    shape: str
    header_rows: int
    username: RoleResolution
    password: RoleResolution
    ssh_key: RoleResolution
    resources: Tuple[ResourceColumn, ...] = ()

    @property
    def resource_ids(self) -> List[str]:
        return [col.resource for col in self.resources]

    @property
    def roles(self) -> Tuple[RoleResolution, ...]:
        return (self.username, self.password, self.ssh_key)


def resource_pattern(prefix: str) -> Pattern[str]:
    return re.compile(rf"^{re.escape(prefix)}({DOTTED_QUAD})$", re.IGNORECASE)


def marker_pattern(marker: str) -> Pattern[str]:
    """``User carol`` -> group(1) == ``carol``; the marker must be followed by whitespace."""

    return re.compile(rf"^{re.escape(marker.strip())}\s+(.*)$")


def resolve_roles(
    header: RawRecord,
    settings: DetectionSettings,
    rules: Sequence[HeaderRule] = HEADER_RULES,
) -> Dict[str, RoleResolution]:
    """Apply the ordered header rules once and resolve every role."""

    found: Dict[str, RoleResolution] = {}
    claimed: set[int] = set()
    cells = [header.cell(i) for i in range(len(header.fields))]

    for rule in rules:
        if rule.role in found:
            continue
        for index, value in enumerate(cells):
            if index in claimed or not value:
                continue
            if rule.matches(value):
                found[rule.role] = RoleResolution(rule.role, index, True, value)
                claimed.add(index)
                LOGGER.info("Found %s column at position %d (%r)", rule.role, index, value)
                break

    for role in ROLES:
        if role not in found:
            found[role] = RoleResolution(role, settings.default_columns[role], False)
    return found


def find_resource_columns(
    row: RawRecord,
    settings: DetectionSettings,
    report: ExtractionReport,
) -> Tuple[ResourceColumn, ...]:
    pattern = resource_pattern(settings.resource_prefix)
    columns: List[ResourceColumn] = []
    seen: Dict[str, int] = {}
    for index in range(len(row.fields)):
        match = pattern.match(row.cell(index))
        if not match:
            continue
        resource = match.group(1)
        if resource in seen:
            report.add_issue(
                "duplicate_resource_column",
                f"Resource {resource} appears again at column {index}; keeping column {seen[resource]}",
                line=row.line_no,
            )
            continue
        seen[resource] = index
        columns.append(ResourceColumn(resource, index))
        LOGGER.debug("Found resource column at position %d: %s", index, resource)
    return tuple(columns)


def detect_header_shape(
    records: Sequence[RawRecord],
    identity_index: int,
    settings: DetectionSettings,
) -> str:
    """
    Guess the header layout of an export.

    Unified exports carry resource identifiers on row 3 and prefix identity
    cells with the marker; anything else is read as a single-row legacy header.
    """

    if len(records) < UNIFIED_HEADER_ROWS:
        return HEADER_SHAPE_LEGACY

    pattern = resource_pattern(settings.resource_prefix)
    third = records[UNIFIED_HEADER_ROWS - 1]
    if any(pattern.match(third.cell(i)) for i in range(len(third.fields))):
        return HEADER_SHAPE_UNIFIED

    marker = marker_pattern(settings.identity_marker)
    for record in records[UNIFIED_HEADER_ROWS:]:
        if marker.match(record.cell(identity_index)):
            return HEADER_SHAPE_UNIFIED
    return HEADER_SHAPE_LEGACY


def detect_schema(
    records: Sequence[RawRecord],
    settings: DetectionSettings,
    report: ExtractionReport,
    shape: str = HEADER_SHAPE_AUTO,
) -> SchemaMap:
    """Detect column roles and resource columns from the document header block."""

    if not records:
        raise ValueError("cannot detect a schema without a header row")

    roles = resolve_roles(records[0], settings)

    if shape == HEADER_SHAPE_AUTO:
        shape = detect_header_shape(records, roles[ROLE_USERNAME].index, settings)
        LOGGER.info("Header shape detected as %s", shape)

    if shape == HEADER_SHAPE_UNIFIED:
        header_rows = UNIFIED_HEADER_ROWS
    else:
        header_rows = LEGACY_HEADER_ROWS

    resources: Tuple[ResourceColumn, ...] = ()
    if len(records) >= header_rows:
        resources = find_resource_columns(records[header_rows - 1], settings, report)

    for role in ROLES:
        resolution = roles[role]
        if not resolution.detected:
            report.add_issue(
                "role_defaulted",
                f"{role} column not detected, using default position {resolution.index}",
                line=records[0].line_no,
            )

    if resources:
        LOGGER.info("Found %d resource column(s) with %s prefix", len(resources), settings.resource_prefix)
    else:
        report.add_issue(
            "no_resource_columns",
            f"No resource columns with {settings.resource_prefix} prefix found",
            severity=SEVERITY_INFO,
        )

    return SchemaMap(
        shape=shape,
        header_rows=header_rows,
        username=roles[ROLE_USERNAME],
        password=roles[ROLE_PASSWORD],
        ssh_key=roles[ROLE_SSH_KEY],
        resources=resources,
    )
