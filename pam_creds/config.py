"""
YAML configuration for the credential extractor.

Every key is optional; a missing section falls back to the defaults below,
which describe the unified export template (``PRIVATE_<ip>`` resource
columns, ``User <name>`` identity cells).

Sample ``config.yaml``
----------------------
```yaml
input:
  header_shape: auto        # auto | legacy | unified
  delimiter: ","
  quote_char: '"'
  encoding: utf-8-sig
  sheet: null               # workbook sheet name/index for .xlsx inputs

detection:
  resource_prefix: PRIVATE_
  identity_marker: "User "
  identity_pattern: "^[A-Za-z0-9_-]+$"
  truthy_values: ["true", "1", "yes"]
  default_columns:
    username: 0
    password: 1
    ssh_key: 2

output:
  path: ./user_credentials_clean.json
  pairs_csv: null
```
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

import yaml

CONFIG_ENV_KEY = "PAM_CREDS_CONFIG"
DEFAULT_CONFIG_PATH = Path("config.yaml")
DEFAULT_OUTPUT_PATH = Path("./user_credentials_clean.json")

HEADER_SHAPE_AUTO = "auto"
HEADER_SHAPE_LEGACY = "legacy"
HEADER_SHAPE_UNIFIED = "unified"
HEADER_SHAPES = (HEADER_SHAPE_AUTO, HEADER_SHAPE_LEGACY, HEADER_SHAPE_UNIFIED)

DEFAULT_RESOURCE_PREFIX = "PRIVATE_"
DEFAULT_IDENTITY_MARKER = "User "
DEFAULT_IDENTITY_PATTERN = r"^[A-Za-z0-9_-]+$"
DEFAULT_TRUTHY_VALUES: FrozenSet[str] = frozenset({"true", "1", "yes"})
DEFAULT_FALSY_VALUES: FrozenSet[str] = frozenset({"false", "0", "no"})
_BOOL_SPELLINGS = {True: ("true", "yes"), False: ("false", "no")}
DEFAULT_COLUMNS: Mapping[str, int] = {"username": 0, "password": 1, "ssh_key": 2}


class ConfigError(ValueError):
    """Raised when the YAML configuration is invalid."""


@dataclass
class InputSettings:
    header_shape: str = HEADER_SHAPE_AUTO
    delimiter: str = ","
    quote_char: str = '"'
    encoding: str = "utf-8-sig"
    sheet: str | int | None = None


@dataclass
class DetectionSettings:
    resource_prefix: str = DEFAULT_RESOURCE_PREFIX
    identity_marker: str = DEFAULT_IDENTITY_MARKER
    identity_pattern: str = DEFAULT_IDENTITY_PATTERN
    truthy_values: FrozenSet[str] = DEFAULT_TRUTHY_VALUES
    falsy_values: FrozenSet[str] = DEFAULT_FALSY_VALUES
    default_columns: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_COLUMNS))


@dataclass
class OutputSettings:
    path: Path = DEFAULT_OUTPUT_PATH
    pairs_csv: Optional[Path] = None


@dataclass
class AppConfig:
    path: Optional[Path] = None
    input: InputSettings = field(default_factory=InputSettings)
    detection: DetectionSettings = field(default_factory=DetectionSettings)
    output: OutputSettings = field(default_factory=OutputSettings)


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"`{name}` must be a mapping")
    return value


def _single_char(value: Any, name: str) -> str:
    text = str(value)
    if len(text) != 1:
        raise ConfigError(f"`input.{name}` must be a single character, got {text!r}")
    return text


def _token_set(values: Optional[Iterable[Any]], fallback: FrozenSet[str], name: str) -> FrozenSet[str]:
    if values is None:
        return fallback
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        raise ConfigError(f"`detection.{name}` must be a list")
    tokens: set = set()
    for value in values:
        # YAML 1.1 loads bare true/yes and false/no as booleans, losing the spelling.
        if isinstance(value, bool):
            tokens.update(_BOOL_SPELLINGS[value])
            continue
        text = str(value).strip().lower()
        if text:
            tokens.add(text)
    if not tokens:
        raise ConfigError(f"`detection.{name}` must not be empty")
    return frozenset(tokens)


def _resolve_path(base: Path, value: str) -> Path:
    return (base / value).expanduser().resolve()


def parse_config(raw: Mapping[str, Any], base_dir: Path = Path("."), path: Optional[Path] = None) -> AppConfig:
    """Build an ``AppConfig`` from an already-parsed YAML mapping."""

    if not isinstance(raw, Mapping):
        raise ConfigError("configuration root must be a mapping")

    input_cfg = _section(raw, "input")
    header_shape = str(input_cfg.get("header_shape", HEADER_SHAPE_AUTO)).lower()
    if header_shape not in HEADER_SHAPES:
        raise ConfigError(f"`input.header_shape` must be one of {', '.join(HEADER_SHAPES)}")
    input_settings = InputSettings(
        header_shape=header_shape,
        delimiter=_single_char(input_cfg.get("delimiter", ","), "delimiter"),
        quote_char=_single_char(input_cfg.get("quote_char", '"'), "quote_char"),
        encoding=str(input_cfg.get("encoding", "utf-8-sig")),
        sheet=input_cfg.get("sheet"),
    )

    detection_cfg = _section(raw, "detection")
    identity_pattern = str(detection_cfg.get("identity_pattern", DEFAULT_IDENTITY_PATTERN))
    try:
        re.compile(identity_pattern)
    except re.error as exc:
        raise ConfigError(f"`detection.identity_pattern` is not a valid regex: {exc}") from exc

    columns_cfg = detection_cfg.get("default_columns") or {}
    if not isinstance(columns_cfg, Mapping):
        raise ConfigError("`detection.default_columns` must be a mapping")
    default_columns = dict(DEFAULT_COLUMNS)
    for role, index in columns_cfg.items():
        if role not in DEFAULT_COLUMNS:
            raise ConfigError(f"Unknown column role in default_columns: {role}")
        try:
            default_columns[role] = int(index)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"default column for {role} must be an integer") from exc
        if default_columns[role] < 0:
            raise ConfigError(f"default column for {role} must not be negative")

    detection = DetectionSettings(
        resource_prefix=str(detection_cfg.get("resource_prefix", DEFAULT_RESOURCE_PREFIX)),
        identity_marker=str(detection_cfg.get("identity_marker", DEFAULT_IDENTITY_MARKER)),
        identity_pattern=identity_pattern,
        truthy_values=_token_set(detection_cfg.get("truthy_values"), DEFAULT_TRUTHY_VALUES, "truthy_values"),
        falsy_values=_token_set(detection_cfg.get("falsy_values"), DEFAULT_FALSY_VALUES, "falsy_values"),
        default_columns=default_columns,
    )
    if not detection.resource_prefix:
        raise ConfigError("`detection.resource_prefix` must not be empty")

    output_cfg = _section(raw, "output")
    pairs_csv = output_cfg.get("pairs_csv")
    output = OutputSettings(
        path=_resolve_path(base_dir, str(output_cfg.get("path", DEFAULT_OUTPUT_PATH))),
        pairs_csv=_resolve_path(base_dir, str(pairs_csv)) if pairs_csv else None,
    )

    return AppConfig(path=path, input=input_settings, detection=detection, output=output)


def load_config(path: Optional[Path] = None) -> AppConfig:
    """
    Load the YAML configuration.

    ``path`` wins over ``$PAM_CREDS_CONFIG``; an explicitly named file that does
    not exist is an error, while an absent default ``config.yaml`` just means
    built-in defaults.
    """

    explicit = path is not None or bool(os.environ.get(CONFIG_ENV_KEY))
    if path is None:
        path = Path(os.environ.get(CONFIG_ENV_KEY, DEFAULT_CONFIG_PATH))

    if not path.exists():
        if explicit:
            raise ConfigError(f"Configuration file not found: {path}")
        return AppConfig()

    try:
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    return parse_config(raw, base_dir=path.parent, path=path)
