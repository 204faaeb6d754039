"""Polars views over a credential document for reporting and CSV export."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import polars as pl

LOGGER = logging.getLogger(__name__)


def assignments_frame(document: Mapping[str, Any]) -> pl.DataFrame:
    """
    Long-form owner/resource pairs, one row per assignment.

    Row order follows ``users`` order, then each user's assignment order, so
    the frame is as deterministic as the document itself.
    """

    usernames: list[str] = []
    resources: list[str] = []
    positions: list[int] = []
    for user in document["users"]:
        for position, ip in enumerate(user["assigned_ips"], start=1):
            usernames.append(user["username"])
            resources.append(ip)
            positions.append(position)
    return pl.DataFrame(
        {"username": usernames, "ip": resources, "position": positions},
        schema={"username": pl.Utf8, "ip": pl.Utf8, "position": pl.Int64},
    )


def summarize_resources(document: Mapping[str, Any]) -> pl.DataFrame:
    """User counts per resource, in resource_index order."""

    index = document["resource_index"]
    return pl.DataFrame(
        {"ip": list(index), "users": [len(names) for names in index.values()]},
        schema={"ip": pl.Utf8, "users": pl.Int64},
    )


def summarize_users(document: Mapping[str, Any]) -> pl.DataFrame:
    users = document["users"]
    return pl.DataFrame(
        {
            "username": [u["username"] for u in users],
            "ip_count": [len(u["assigned_ips"]) for u in users],
            "has_ssh_key": [bool(u["ssh_public_key"]) for u in users],
        },
        schema={"username": pl.Utf8, "ip_count": pl.Int64, "has_ssh_key": pl.Boolean},
    )


def write_pairs_csv(document: Mapping[str, Any], path: Path) -> Path:
    frame = assignments_frame(document)
    path.parent.mkdir(parents=True, exist_ok=True)
    frame.write_csv(path, include_header=True)
    LOGGER.info("Wrote %d assignment pair(s) to %s", frame.height, path)
    return path
