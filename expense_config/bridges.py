"""
Config -> Kernel Bridges.

Convert ``ExpenseSettings`` into kernel inputs.  These live in
expense_config because the kernel must NEVER import expense_config.

Usage:
    from expense_config.bridges import (
        build_submission_rules,
        build_workflow_limits,
        configure_logging_from_settings,
        init_engine_from_settings,
    )

    settings = get_active_config()
    configure_logging_from_settings(settings)
    init_engine_from_settings(settings)
    rules = build_submission_rules(settings)
    limits = build_workflow_limits(settings)
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.engine import Engine

from expense_config.schema import ExpenseSettings
from expense_kernel.db.engine import init_engine_from_url
from expense_kernel.domain.approval import WorkflowLimits
from expense_kernel.domain.expense import SubmissionRules
from expense_kernel.logging_config import configure_logging


def build_submission_rules(settings: ExpenseSettings) -> SubmissionRules:
    return SubmissionRules(
        categories=settings.submission.categories,
        currencies=settings.submission.currencies,
        max_description_length=settings.submission.max_description_length,
    )


def build_workflow_limits(settings: ExpenseSettings) -> WorkflowLimits:
    return WorkflowLimits(max_chain_depth=settings.workflow.max_chain_depth)


def log_level(settings: ExpenseSettings) -> int:
    """Numeric level for ``configure_logging``."""
    return logging.getLevelNamesMapping()[settings.logging.level]


def configure_logging_from_settings(
    settings: ExpenseSettings,
    stream: Any = None,
    handler: logging.Handler | None = None,
) -> None:
    """``configure_logging`` at the configured level (no-op once configured)."""
    configure_logging(level=log_level(settings), stream=stream, handler=handler)


def init_engine_from_settings(settings: ExpenseSettings) -> Engine:
    """Initialize the kernel engine from the ``database`` section."""
    database = settings.database
    return init_engine_from_url(
        database.url,
        echo=database.echo,
        pool_size=database.pool_size,
        max_overflow=database.max_overflow,
    )
