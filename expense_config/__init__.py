"""
expense_config -- single public entrypoint for runtime settings.

Responsibility:
    ``get_active_config()`` is the only way to obtain settings at runtime.
    YAML loading is internal to this package.

Architecture position:
    Configuration sits above ``expense_kernel`` and below
    ``expense_services``.  The kernel MUST NEVER import from
    ``expense_config``; ``expense_config.bridges`` translates settings into
    kernel inputs.

Failure modes:
    - ``FileNotFoundError`` -- the requested settings file does not exist.
    - ``ValueError`` -- parsing or validation failed.

Every successful call emits an ``expense_config_loaded`` log record with
the config id, version and checksum.
"""

from __future__ import annotations

from pathlib import Path

from expense_config.loader import load_settings
from expense_config.schema import (
    DatabaseSettings,
    ExpenseSettings,
    LoggingSettings,
    ReceiptSettings,
    SubmissionSettings,
    WorkflowSettings,
)
from expense_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> ExpenseSettings:
    """Load and validate settings from ``config_path`` or the packaged defaults.

    Callers are expected to hold the returned settings; nothing is cached.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    settings = load_settings(path)

    _logger.info(
        "expense_config_loaded",
        extra={
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "source": str(path),
            "category_count": len(settings.submission.categories),
            "currency_count": len(settings.submission.currencies),
        },
    )
    return settings


__all__ = [
    "get_active_config",
    "DEFAULT_CONFIG_PATH",
    "ExpenseSettings",
    "SubmissionSettings",
    "ReceiptSettings",
    "WorkflowSettings",
    "DatabaseSettings",
    "LoggingSettings",
]
