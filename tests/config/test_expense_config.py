"""
Tests for the configuration layer.

- get_active_config() loads the packaged defaults and logs the load
- load_settings() rejects malformed or invalid files with every problem listed
- bridges translate settings into kernel inputs, the engine and logging
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from textwrap import dedent

import pytest
import yaml
from sqlalchemy import text

from expense_config import DEFAULT_CONFIG_PATH, get_active_config
from expense_config.bridges import (
    build_submission_rules,
    build_workflow_limits,
    configure_logging_from_settings,
    init_engine_from_settings,
    log_level,
)
from expense_config.loader import compute_checksum, load_settings
from expense_kernel.db.engine import create_tables, get_engine, get_session, reset_engine
from expense_kernel.exceptions import ValidationError
from expense_kernel.logging_config import configure_logging, get_logger, reset_logging
from expense_services.expense_manager import ExpenseManager


def write_yaml(tmp_path, body: str):
    path = tmp_path / "settings.yaml"
    path.write_text(dedent(body))
    return path


MINIMAL = """
    config_id: test-settings
    version: 3
    submission:
      categories: [Travel, Meals]
      currencies: [usd, eur]
"""


class TestActiveConfig:
    def test_packaged_defaults(self):
        settings = get_active_config()

        assert settings.config_id == "expense-defaults"
        assert "Travel" in settings.submission.categories
        assert "USD" in settings.submission.currencies
        assert settings.receipts.max_bytes == 5 * 1024 * 1024
        assert settings.workflow.max_chain_depth == 32
        assert len(settings.checksum) == 64

    def test_load_is_logged(self, captured_logs):
        settings = get_active_config()
        records = [r for r in captured_logs() if r["message"] == "expense_config_loaded"]

        assert records
        assert records[0]["config_id"] == settings.config_id
        assert records[0]["checksum"] == settings.checksum
        assert records[0]["source"] == str(DEFAULT_CONFIG_PATH)

    def test_explicit_path(self, tmp_path):
        settings = get_active_config(write_yaml(tmp_path, MINIMAL))

        assert settings.config_id == "test-settings"
        assert settings.version == 3
        assert settings.submission.currencies == ("USD", "EUR")
        assert settings.receipts.bucket == "receipts"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestValidation:
    def test_empty_file_lists_every_problem(self, tmp_path):
        with pytest.raises(ValueError) as exc_info:
            load_settings(write_yaml(tmp_path, ""))
        message = str(exc_info.value)
        assert "submission.categories must not be empty" in message
        assert "submission.currencies must not be empty" in message

    def test_bad_currency_and_level(self, tmp_path):
        path = write_yaml(tmp_path, MINIMAL + """
    logging:
      level: chatty
""")
        path.write_text(path.read_text().replace("[usd, eur]", "[usd, euros]"))

        with pytest.raises(ValueError) as exc_info:
            load_settings(path)
        message = str(exc_info.value)
        assert "'EUROS' is not an ISO 4217 code" in message
        assert "unknown level 'CHATTY'" in message

    def test_non_mapping_section(self, tmp_path):
        with pytest.raises(ValueError, match="'workflow' must be a mapping"):
            load_settings(write_yaml(tmp_path, MINIMAL + "    workflow: 5\n"))

    def test_non_mapping_document(self, tmp_path):
        with pytest.raises(ValueError, match="top level must be a mapping"):
            load_settings(write_yaml(tmp_path, "- a\n- b\n"))

    def test_malformed_yaml(self, tmp_path):
        with pytest.raises(yaml.YAMLError):
            load_settings(write_yaml(tmp_path, "submission: [unclosed\n"))

    def test_duplicate_categories(self, tmp_path):
        path = write_yaml(tmp_path, MINIMAL.replace("[Travel, Meals]", "[Travel, Travel]"))
        with pytest.raises(ValueError, match="duplicates"):
            load_settings(path)


class TestChecksum:
    def test_key_order_does_not_matter(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_values_matter(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})


class TestBridges:
    def test_submission_rules(self, tmp_path):
        settings = load_settings(write_yaml(tmp_path, MINIMAL))
        rules = build_submission_rules(settings)

        assert rules.categories == ("Travel", "Meals")
        assert rules.currencies == ("USD", "EUR")
        assert rules.max_description_length == 2000

    def test_workflow_limits(self):
        limits = build_workflow_limits(get_active_config())
        assert limits.max_chain_depth == 32

    def test_log_level(self):
        assert log_level(get_active_config()) == logging.INFO

    def test_manager_from_settings_uses_categories(
        self, tmp_path, session, deterministic_clock, employee,
    ):
        settings = load_settings(write_yaml(tmp_path, MINIMAL))
        manager = ExpenseManager.from_settings(session, settings, clock=deterministic_clock)

        expense = manager.submit(
            employee_id=employee.id,
            company_id=employee.company_id,
            amount="12.50",
            currency="EUR",
            category="Meals",
            expense_date="2026-01-31",
        )
        assert expense.amount == Decimal("12.50")

        with pytest.raises(ValidationError) as exc_info:
            manager.submit(
                employee_id=employee.id,
                company_id=employee.company_id,
                amount="12.50",
                currency="GBP",
                category="Software",
                expense_date="2026-01-31",
            )
        assert set(exc_info.value.field_errors) == {"currency", "category"}


class TestRuntimeBridges:
    @pytest.fixture
    def restore_logging(self):
        yield
        reset_logging()
        configure_logging(level=logging.DEBUG)

    @pytest.fixture
    def restore_engine(self):
        yield
        reset_engine()

    def test_engine_from_database_section(self, tmp_path, restore_engine):
        db_path = tmp_path / "expenses.db"
        settings = load_settings(write_yaml(tmp_path, MINIMAL + f"""
    database:
      url: "sqlite:///{db_path}"
      echo: false
"""))

        engine = init_engine_from_settings(settings)
        create_tables()
        session = get_session()
        try:
            assert session.execute(text("SELECT COUNT(*) FROM expenses")).scalar() == 0
        finally:
            session.close()

        assert engine.dialect.name == "sqlite"
        assert engine is get_engine()
        assert db_path.exists()

    def test_logging_level_from_settings(self, tmp_path, restore_logging):
        settings = load_settings(write_yaml(tmp_path, MINIMAL + """
    logging:
      level: warning
"""))
        reset_logging()
        stream = StringIO()
        configure_logging_from_settings(settings, stream=stream)

        get_logger("config.test").info("dropped")
        get_logger("config.test").warning("kept")

        lines = [json.loads(line) for line in stream.getvalue().splitlines()]
        assert [r["message"] for r in lines] == ["kept"]
        assert logging.getLogger("expense_kernel").level == logging.WARNING
