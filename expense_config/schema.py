"""
Configuration schema (``expense_config.schema``).

Frozen dataclasses describing the settings of one deployment.  Parsing and
validation live in ``expense_config.loader``; these classes only hold data.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class SubmissionSettings:
    categories: tuple[str, ...]
    currencies: tuple[str, ...]
    max_description_length: int = 2000


@dataclass(frozen=True)
class ReceiptSettings:
    bucket: str = "receipts"
    allowed_content_types: tuple[str, ...] = (
        "image/jpeg",
        "image/png",
        "image/gif",
        "application/pdf",
    )
    max_bytes: int = 5 * 1024 * 1024
    storage_root: str = "var/receipts"
    public_base_url: str = "file://receipts"
    orphan_max_age_hours: int = 24


@dataclass(frozen=True)
class WorkflowSettings:
    max_chain_depth: int = 32


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///:memory:"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class ExpenseSettings:
    """Everything ``get_active_config()`` returns."""

    config_id: str
    version: int
    submission: SubmissionSettings
    receipts: ReceiptSettings = field(default_factory=ReceiptSettings)
    workflow: WorkflowSettings = field(default_factory=WorkflowSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""
