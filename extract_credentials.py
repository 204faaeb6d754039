#!/usr/bin/env python3
"""Credential export extractor.

Turns the user/IP spreadsheet export into ``user_credentials_clean.json`` for
the provisioning scripts.

Highlights
----------
- Inputs: CSV exports (quoted fields, embedded commas) or the workbook itself
  (``.xlsx``/``.xlsm``, read with openpyxl).
- Header shapes: a single legacy header row, or the unified three-row block
  whose third row carries ``PRIVATE_<ip>`` resource columns. ``auto`` picks one.
- Columns are found by header name; missing ones fall back to fixed positions
  and are flagged in the output metadata instead of failing the run.
- Output is validated (round-trip, non-empty passwords, user/IP index
  symmetry) before it replaces the previous document.

Usage
-----
``python extract_credentials.py extract raw_user_list_v2.csv``
``python extract_credentials.py inspect user_credentials_clean.json``
``python extract_credentials.py lookup user_credentials_clean.json --resource 10.0.0.5``
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from pam_creds.config import HEADER_SHAPES, ConfigError, load_config
from pam_creds.document import find_owner, load_document, owners_for_resource, validate_document, write_document
from pam_creds.frames import summarize_resources, write_pairs_csv
from pam_creds.pipeline import extract_credentials
from pam_creds.report import ExtractionError

LOGGER = logging.getLogger(__name__)


def configure_logging(verbosity: int) -> None:
    level = logging.DEBUG if verbosity > 0 else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def cmd_extract(args: argparse.Namespace) -> int:
    config = load_config(args.config)
    output_path: Path = args.output or config.output.path
    pairs_path: Optional[Path] = args.pairs_csv or config.output.pairs_csv

    result = extract_credentials(
        args.input,
        config,
        generated_at=args.generated_at,
        header_shape=args.header_shape,
    )
    # Pairs first, so a failed CSV write leaves the previous document in place.
    if pairs_path:
        write_pairs_csv(result.document, pairs_path)
    write_document(result.text, output_path)

    schema = result.schema
    LOGGER.info("Column detection results:")
    for role in schema.roles:
        state = "detected" if role.detected else "default"
        LOGGER.info("  %s: column %d (%s)", role.role, role.index + 1, state)
    LOGGER.info("  IP columns: %d found", len(schema.resources))
    LOGGER.info(
        "Rows: %d total, %d valid, skipped %s",
        result.report.total_rows,
        result.report.valid_rows,
        result.report.skipped_counts() or "none",
    )
    if result.document["resource_index"]:
        LOGGER.info("Summary:\n%s", summarize_resources(result.document))
    if result.report.warning_count:
        LOGGER.warning("Completed with %d warning(s); see metadata.issues", result.report.warning_count)
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    document = load_document(args.document)
    summary = validate_document(document)
    metadata = document.get("metadata", {})
    detection = metadata.get("column_detection", {})
    rows = metadata.get("row_detection", {})

    LOGGER.info("Generated at: %s", metadata.get("generated_at"))
    LOGGER.info("Header shape: %s", metadata.get("header_shape"))
    for role in ("username", "password", "ssh_key"):
        LOGGER.info(
            "  %s: column %s (%s)",
            role,
            detection.get(f"{role}_column"),
            "detected" if detection.get(f"{role}_detected") else "default",
        )
    LOGGER.info("Rows: %s total, %s valid", rows.get("total_rows"), rows.get("valid_rows"))
    LOGGER.info(
        "Users: %d, IPs: %d, total IP assignments: %d",
        summary.users,
        summary.resources,
        summary.total_assignments,
    )
    LOGGER.info(
        "Users without IPs: %d, IPs without users: %d",
        summary.users_without_resources,
        summary.resources_without_users,
    )
    return 0


def cmd_lookup(args: argparse.Namespace) -> int:
    document = load_document(args.document)
    if args.resource:
        names = owners_for_resource(document, args.resource)
        if not names:
            LOGGER.warning("No users assigned to %s", args.resource)
            return 1
        print("\n".join(names))
        return 0

    owner = find_owner(document, args.user)
    if owner is None:
        LOGGER.warning("User %s not found", args.user)
        return 1
    print("\n".join(owner["assigned_ips"]))
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Extract clean user credentials from a spreadsheet export",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase logging verbosity (repeatable).",
    )
    subparsers = parser.add_subparsers(dest="command")

    extract = subparsers.add_parser("extract", help="Build the credential JSON from a CSV/XLSX export.")
    extract.add_argument("input", type=Path, help="Path to the exported CSV or workbook.")
    extract.add_argument(
        "--config",
        type=Path,
        help="Path to YAML config (default: $PAM_CREDS_CONFIG or config.yaml when present)",
    )
    extract.add_argument("--output", type=Path, help="Where to write the JSON document.")
    extract.add_argument("--pairs-csv", type=Path, help="Optional CSV of user/IP assignment pairs.")
    extract.add_argument(
        "--header-shape",
        choices=HEADER_SHAPES,
        help="Override header shape detection.",
    )
    extract.add_argument(
        "--generated-at",
        help="Fixed generation timestamp for reproducible output.",
    )
    extract.set_defaults(func=cmd_extract)

    inspect = subparsers.add_parser("inspect", help="Validate an existing document and show its metadata.")
    inspect.add_argument("document", type=Path)
    inspect.set_defaults(func=cmd_inspect)

    lookup = subparsers.add_parser("lookup", help="Query users per IP or IPs per user.")
    lookup.add_argument("document", type=Path)
    target = lookup.add_mutually_exclusive_group(required=True)
    target.add_argument("--resource", help="IP address to list users for.")
    target.add_argument("--user", help="Username to list IPs for.")
    lookup.set_defaults(func=cmd_lookup)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    if not getattr(args, "func", None):
        parser.print_help()
        return 2

    configure_logging(args.verbose)
    try:
        return args.func(args)
    except (ConfigError, ExtractionError, OSError) as exc:
        LOGGER.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
