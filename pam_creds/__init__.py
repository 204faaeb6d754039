"""
Credential extraction for account provisioning: turns a spreadsheet export of
users, passwords, SSH keys and per-IP access flags into a normalized JSON
document with a reverse IP index.
"""

from .config import (  # noqa: F401
    AppConfig,
    ConfigError,
    DetectionSettings,
    InputSettings,
    OutputSettings,
    load_config,
)
from .document import (  # noqa: F401
    ValidationSummary,
    find_owner,
    list_resources,
    load_document,
    owners_for_resource,
    render_document,
    validate_document,
    write_document,
)
from .fields import RawRecord, split_fields  # noqa: F401
from .pipeline import (  # noqa: F401
    ExtractionResult,
    extract_credentials,
    extract_from_records,
    extract_from_text,
)
from .report import (  # noqa: F401
    DocumentValidationError,
    ExtractionError,
    ExtractionReport,
    InputError,
    NoValidRowsError,
)
from .schema import SchemaMap, detect_schema  # noqa: F401

__all__ = [
    "AppConfig",
    "ConfigError",
    "DetectionSettings",
    "InputSettings",
    "OutputSettings",
    "load_config",
    "ValidationSummary",
    "find_owner",
    "list_resources",
    "load_document",
    "owners_for_resource",
    "render_document",
    "validate_document",
    "write_document",
    "RawRecord",
    "split_fields",
    "ExtractionResult",
    "extract_credentials",
    "extract_from_records",
    "extract_from_text",
    "DocumentValidationError",
    "ExtractionError",
    "ExtractionReport",
    "InputError",
    "NoValidRowsError",
    "SchemaMap",
    "detect_schema",
]
