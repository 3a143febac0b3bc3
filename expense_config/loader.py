"""
Configuration Loader (``expense_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the frozen dataclasses of
``expense_config.schema``.  Runtime callers go through
``expense_config.get_active_config()`` rather than calling this directly.

Invariants enforced
-------------------
* Parse and validation errors raise ``ValueError`` with every problem
  listed; there are no silent fallbacks for malformed values.
* ``compute_checksum`` is a deterministic SHA-256 over the canonical JSON
  form of the raw settings.

Failure modes
-------------
* Missing file -> ``FileNotFoundError`` propagates.
* Malformed YAML -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from expense_config.schema import (
    DatabaseSettings,
    ExpenseSettings,
    LoggingSettings,
    ReceiptSettings,
    SubmissionSettings,
    WorkflowSettings,
)

_LOG_LEVELS = frozenset(logging.getLevelNamesMapping())


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file as a dict (empty when the file is empty)."""
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"'{key}' must be a mapping")
    return value


def parse_submission(data: dict[str, Any]) -> SubmissionSettings:
    return SubmissionSettings(
        categories=tuple(str(c) for c in data.get("categories", ())),
        currencies=tuple(str(c).upper() for c in data.get("currencies", ())),
        max_description_length=int(data.get("max_description_length", 2000)),
    )


def parse_receipts(data: dict[str, Any]) -> ReceiptSettings:
    defaults = ReceiptSettings()
    return ReceiptSettings(
        bucket=str(data.get("bucket", defaults.bucket)),
        allowed_content_types=tuple(
            data.get("allowed_content_types", defaults.allowed_content_types)
        ),
        max_bytes=int(data.get("max_bytes", defaults.max_bytes)),
        storage_root=str(data.get("storage_root", defaults.storage_root)),
        public_base_url=str(data.get("public_base_url", defaults.public_base_url)),
        orphan_max_age_hours=int(
            data.get("orphan_max_age_hours", defaults.orphan_max_age_hours)
        ),
    )


def parse_settings(data: dict[str, Any]) -> ExpenseSettings:
    """Parse raw settings into ``ExpenseSettings`` (unvalidated)."""
    workflow = _section(data, "workflow")
    database = _section(data, "database")
    logging_section = _section(data, "logging")
    db_defaults = DatabaseSettings()

    return ExpenseSettings(
        config_id=str(data.get("config_id", "expense-settings")),
        version=int(data.get("version", 1)),
        submission=parse_submission(_section(data, "submission")),
        receipts=parse_receipts(_section(data, "receipts")),
        workflow=WorkflowSettings(
            max_chain_depth=int(workflow.get("max_chain_depth", 32)),
        ),
        database=DatabaseSettings(
            url=str(database.get("url", db_defaults.url)),
            echo=bool(database.get("echo", db_defaults.echo)),
            pool_size=int(database.get("pool_size", db_defaults.pool_size)),
            max_overflow=int(database.get("max_overflow", db_defaults.max_overflow)),
        ),
        logging=LoggingSettings(
            level=str(logging_section.get("level", "INFO")).upper(),
        ),
        checksum=compute_checksum(data),
    )


def validate_settings(settings: ExpenseSettings) -> list[str]:
    """Every problem found in ``settings``; empty when valid."""
    errors: list[str] = []
    submission = settings.submission

    if not submission.categories:
        errors.append("submission.categories must not be empty")
    if len(set(submission.categories)) != len(submission.categories):
        errors.append("submission.categories contains duplicates")
    if not submission.currencies:
        errors.append("submission.currencies must not be empty")
    for code in submission.currencies:
        if len(code) != 3 or not code.isalpha():
            errors.append(f"submission.currencies: '{code}' is not an ISO 4217 code")
    if submission.max_description_length < 1:
        errors.append("submission.max_description_length must be positive")

    if settings.receipts.max_bytes < 1:
        errors.append("receipts.max_bytes must be positive")
    if not settings.receipts.allowed_content_types:
        errors.append("receipts.allowed_content_types must not be empty")
    if settings.receipts.orphan_max_age_hours < 0:
        errors.append("receipts.orphan_max_age_hours must not be negative")

    if settings.workflow.max_chain_depth < 1:
        errors.append("workflow.max_chain_depth must be at least 1")

    if settings.logging.level not in _LOG_LEVELS:
        errors.append(f"logging.level: unknown level '{settings.logging.level}'")

    return errors


def load_settings(path: Path) -> ExpenseSettings:
    """Load, parse and validate a settings file."""
    try:
        settings = parse_settings(load_yaml_file(path))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{path}: {exc}") from exc

    errors = validate_settings(settings)
    if errors:
        raise ValueError(
            f"Configuration validation failed for {path}:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )
    return settings
