"""
Render, validate and read back the normalized credential document.

The document keeps the layout provisioning scripts already query:

- ``metadata``: detection results and row statistics
- ``users``: owners in first-seen order with their assigned resources
- ``resource_index``: resource -> usernames, derived from ``users``
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .aggregate import Aggregate
from .config import HEADER_SHAPE_UNIFIED, DetectionSettings
from .report import DocumentValidationError, ExtractionReport, InputError
from .schema import SchemaMap

LOGGER = logging.getLogger(__name__)

FORMAT_VERSION = "3.0"
EXTRACTION_METHOD = "Unified CSV Template V3"
DESCRIPTION = "Clean user credentials from unified CSV template with IP boolean columns"
SOURCE_DATE_EPOCH_ENV = "SOURCE_DATE_EPOCH"

REQUIRED_TOP_LEVEL = ("metadata", "users", "resource_index")
REQUIRED_USER_KEYS = ("username", "password", "ssh_public_key", "assigned_ips")


def resolve_generated_at(value: Optional[str] = None) -> str:
    """
    Pick the generation timestamp.

    An explicit value wins, then ``$SOURCE_DATE_EPOCH`` for reproducible builds,
    then the current UTC time.
    """

    if value:
        return value
    epoch = os.environ.get(SOURCE_DATE_EPOCH_ENV)
    if epoch:
        try:
            moment = datetime.fromtimestamp(int(epoch), tz=timezone.utc)
        except (ValueError, OverflowError, OSError):
            LOGGER.warning("Ignoring invalid %s=%r", SOURCE_DATE_EPOCH_ENV, epoch)
        else:
            return moment.isoformat().replace("+00:00", "Z")
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_document(
    aggregate: Aggregate,
    schema: SchemaMap,
    report: ExtractionReport,
    settings: DetectionSettings,
    *,
    source_name: str,
    generated_at: str,
) -> Dict[str, Any]:
    """Assemble the JSON-shaped document. Column positions are reported 1-based."""

    column_detection = {
        "username_column": schema.username.index + 1,
        "password_column": schema.password.index + 1,
        "ssh_key_column": schema.ssh_key.index + 1,
        "ip_columns": len(schema.resources),
        "username_detected": schema.username.detected,
        "password_detected": schema.password.detected,
        "ssh_key_detected": schema.ssh_key.detected,
        "ip_columns_detected": bool(schema.resources),
        "resource_columns": [{"ip": col.resource, "column": col.index + 1} for col in schema.resources],
    }
    row_detection = {
        "pattern": settings.identity_marker if schema.shape == HEADER_SHAPE_UNIFIED else None,
        "total_rows": report.total_rows,
        "valid_rows": report.valid_rows,
        "skipped_rows": report.skipped_counts(),
    }

    users = [
        {
            "username": owner.username,
            "password": owner.password,
            "ssh_public_key": owner.ssh_key,
            "assigned_ips": list(owner.resources),
            "metadata": {"ip_count": len(owner.resources)},
        }
        for owner in aggregate.owners
    ]

    return {
        "metadata": {
            "generated_at": generated_at,
            "extraction_method": EXTRACTION_METHOD,
            "source_files": [source_name],
            "format_version": FORMAT_VERSION,
            "header_shape": schema.shape,
            "column_detection": column_detection,
            "row_detection": row_detection,
            "unassigned_resources": list(aggregate.unassigned_resources),
            "issues": [issue.to_dict() for issue in report.issues],
            "description": DESCRIPTION,
        },
        "users": users,
        "resource_index": {resource: list(names) for resource, names in aggregate.resource_index.items()},
    }


def render_document(document: Mapping[str, Any]) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False) + "\n"


@dataclass
class ValidationSummary:
    users: int = 0
    resources: int = 0
    total_assignments: int = 0
    users_without_resources: int = 0
    resources_without_users: int = 0
    problems: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def _check_structure(document: Any, problems: List[str]) -> None:
    if not isinstance(document, Mapping):
        problems.append("document root must be an object")
        return
    for key in REQUIRED_TOP_LEVEL:
        if key not in document:
            problems.append(f"missing top-level key: {key}")
    if "users" in document and not isinstance(document["users"], list):
        problems.append("`users` must be a list")
    if "resource_index" in document and not isinstance(document["resource_index"], Mapping):
        problems.append("`resource_index` must be an object")


def _check_symmetry(users: Sequence[Mapping[str, Any]], index: Mapping[str, Sequence[str]], problems: List[str]) -> None:
    forward = {(u["username"], ip) for u in users for ip in u.get("assigned_ips", [])}
    reverse = {(name, ip) for ip, names in index.items() for name in names}
    for username, ip in sorted(forward - reverse):
        problems.append(f"user {username!r} is assigned {ip} but resource_index does not list them")
    for username, ip in sorted(reverse - forward):
        problems.append(f"resource_index lists {username!r} under {ip} but the user is not assigned it")


def _is_string_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(item, str) for item in value)


def validate_document(document: Mapping[str, Any], text: Optional[str] = None) -> ValidationSummary:
    """
    Check a document before it is declared authoritative.

    Hard problems (structure, round-trip mismatch, empty passwords, asymmetric
    index) land in ``problems``; empty user/resource sets are only counted.
    """

    summary = ValidationSummary()
    problems = summary.problems

    rendered = text if text is not None else render_document(document)
    try:
        reparsed = json.loads(rendered)
    except json.JSONDecodeError as exc:
        problems.append(f"document is not valid JSON: {exc}")
        return summary
    if reparsed != document:
        problems.append("document does not re-parse into the same structure")

    _check_structure(reparsed, problems)
    if problems:
        return summary

    users = reparsed["users"]
    index = reparsed["resource_index"]

    seen: set[str] = set()
    for position, user in enumerate(users):
        if not isinstance(user, Mapping):
            problems.append(f"users[{position}] must be an object")
            continue
        missing = [key for key in REQUIRED_USER_KEYS if key not in user]
        if missing:
            problems.append(f"users[{position}] missing keys: {', '.join(missing)}")
            continue
        name = user["username"]
        if not isinstance(name, str) or not isinstance(user["password"], str):
            problems.append(f"users[{position}] username and password must be strings")
            continue
        if name in seen:
            problems.append(f"user {name!r} appears more than once")
        seen.add(name)
        if not user["password"]:
            problems.append(f"user {name!r} has an empty password")
        ips = user["assigned_ips"]
        if not _is_string_list(ips):
            problems.append(f"user {name!r} assigned_ips must be a list of strings")
            continue
        if len(set(ips)) != len(ips):
            problems.append(f"user {name!r} has duplicate assigned resources")
        if not ips:
            summary.users_without_resources += 1
        summary.total_assignments += len(ips)

    for ip, names in index.items():
        if not _is_string_list(names):
            problems.append(f"resource {ip} must map to a list of usernames")
        elif not names:
            summary.resources_without_users += 1
        elif len(set(names)) != len(names):
            problems.append(f"resource {ip} lists a user more than once")

    if not problems:
        _check_symmetry(users, index, problems)

    summary.users = len(users)
    summary.resources = len(index)
    return summary


def ensure_valid(document: Mapping[str, Any], text: Optional[str] = None) -> ValidationSummary:
    summary = validate_document(document, text)
    if not summary.ok:
        raise DocumentValidationError(summary.problems)
    if summary.users_without_resources:
        LOGGER.warning("%d users have no assigned IPs", summary.users_without_resources)
    if summary.resources_without_users:
        LOGGER.warning("%d IPs have no assigned users", summary.resources_without_users)
    return summary


def write_document(text: str, path: Path) -> Path:
    """Write atomically so a failed run never leaves a half-written document behind."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    tmp_path.write_text(text, encoding="utf-8")
    os.replace(tmp_path, path)
    LOGGER.info("Wrote credential document: %s", path)
    return path


def load_document(path: Path) -> Dict[str, Any]:
    """Read a previously written document and refuse it if it fails validation."""

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise InputError(f"Cannot read credential document {path}: {exc}") from exc
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DocumentValidationError([f"{path} is not valid JSON: {exc}"]) from exc
    ensure_valid(document)
    return document


def list_resources(document: Mapping[str, Any]) -> List[str]:
    return list(document["resource_index"])


def owners_for_resource(document: Mapping[str, Any], resource: str) -> List[str]:
    return list(document["resource_index"].get(resource, []))


def find_owner(document: Mapping[str, Any], username: str) -> Optional[Dict[str, Any]]:
    for user in document["users"]:
        if user["username"] == username:
            return user
    return None
