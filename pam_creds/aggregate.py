from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Tuple

from .report import SEVERITY_INFO, ExtractionReport
from .rows import ExtractedRow

LOGGER = logging.getLogger(__name__)


def _uniq(seq: Iterable[str]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for val in seq:
        if val in seen:
            continue
        seen.add(val)
        ordered.append(val)
    return ordered


@dataclass
class Owner:
    username: str
    password: str
    ssh_key: str = ""
    resources: List[str] = field(default_factory=list)

    def extend(self, resources: Iterable[str]) -> None:
        self.resources = _uniq([*self.resources, *resources])


@dataclass
class Aggregate:
    owners: List[Owner]
    resource_index: Dict[str, List[str]]
    unassigned_resources: List[str] = field(default_factory=list)

    def owner(self, username: str) -> Owner | None:
        for owner in self.owners:
            if owner.username == username:
                return owner
        return None


def build_resource_index(owners: Sequence[Owner]) -> Dict[str, List[str]]:
    """Reverse the owner assignments; keys and values both keep first-seen order."""

    index: Dict[str, List[str]] = {}
    for owner in owners:
        for resource in owner.resources:
            members = index.setdefault(resource, [])
            if owner.username not in members:
                members.append(owner.username)
    return index


def aggregate_rows(
    rows: Iterable[ExtractedRow],
    report: ExtractionReport,
    declared_resources: Sequence[str] = (),
) -> Aggregate:
    """
    Merge extracted rows into owners and the reverse resource index.

    The first row naming an identity fixes its password and SSH key; later rows
    for the same identity only add resources. Owners keep first-seen order.
    """

    by_name: Dict[str, Owner] = {}
    first_line: Dict[str, int] = {}

    for row in rows:
        existing = by_name.get(row.username)
        if existing is None:
            by_name[row.username] = Owner(row.username, row.password, row.ssh_key, _uniq(row.resources))
            first_line[row.username] = row.line_no
            continue

        if (row.password, row.ssh_key) != (existing.password, existing.ssh_key):
            report.add_issue(
                "conflicting_duplicate",
                f"Line {row.line_no}: user {row.username!r} repeats with different credentials; "
                f"keeping values from line {first_line[row.username]}",
                line=row.line_no,
            )
        else:
            report.add_issue(
                "duplicate_identity",
                f"Line {row.line_no}: user {row.username!r} repeated, merging resources",
                severity=SEVERITY_INFO,
                line=row.line_no,
            )
        existing.extend(row.resources)

    owners = list(by_name.values())
    resource_index = build_resource_index(owners)

    for owner in owners:
        if not owner.resources:
            report.add_issue(
                "owner_without_resources",
                f"User {owner.username!r} has no assigned resources",
                line=first_line[owner.username],
            )

    unassigned = [r for r in _uniq(declared_resources) if r not in resource_index]
    for resource in unassigned:
        report.add_issue("resource_without_owners", f"Resource {resource} has no assigned users")

    LOGGER.info("Unique users: %d, unique resources: %d", len(owners), len(resource_index))
    return Aggregate(owners=owners, resource_index=resource_index, unassigned_resources=unassigned)


def assignment_pairs(owners: Sequence[Owner]) -> List[Tuple[str, str]]:
    return [(owner.username, resource) for owner in owners for resource in owner.resources]
