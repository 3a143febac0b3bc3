"""Tests for expense submission validation (expense_engines/validation.py)."""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_engines.validation import (
    AMOUNT_LIMIT,
    collect_field_errors,
    validate_submission,
)
from expense_kernel.domain.expense import ExpenseSubmission, SubmissionRules
from expense_kernel.exceptions import ValidationError

TODAY = date(2026, 2, 1)
RULES = SubmissionRules()


def submission(**overrides) -> ExpenseSubmission:
    values = dict(
        employee_id=uuid4(),
        company_id=uuid4(),
        amount="42.50",
        currency="usd",
        category="Meals",
        expense_date="2026-01-31",
        description="  Team lunch  ",
    )
    values.update(overrides)
    return ExpenseSubmission(**values)


class TestValidSubmission:
    def test_normalizes_values(self):
        validated = validate_submission(submission(), RULES, TODAY)
        assert validated.amount == Decimal("42.50")
        assert validated.currency == "USD"
        assert validated.expense_date == date(2026, 1, 31)
        assert validated.description == "Team lunch"

    def test_today_is_allowed(self):
        validated = validate_submission(submission(expense_date=TODAY), RULES, TODAY)
        assert validated.expense_date == TODAY

    def test_blank_description_becomes_none(self):
        assert validate_submission(submission(description="   "), RULES, TODAY).description is None


class TestFieldErrors:
    @pytest.mark.parametrize(
        "amount, message",
        [
            ("abc", "Please enter a valid amount."),
            ("NaN", "Please enter a valid amount."),
            ("0", "Please enter a valid amount greater than zero."),
            ("-5", "Please enter a valid amount greater than zero."),
        ],
    )
    def test_amount(self, amount, message):
        errors, validated = collect_field_errors(submission(amount=amount), RULES, TODAY)
        assert errors["amount"] == message
        assert validated is None

    def test_future_date(self):
        errors, _ = collect_field_errors(submission(expense_date="2026-02-02"), RULES, TODAY)
        assert errors["expense_date"] == "Expense date cannot be in the future."

    def test_missing_date(self):
        errors, _ = collect_field_errors(submission(expense_date=""), RULES, TODAY)
        assert errors["expense_date"] == "Please select an expense date."

    def test_malformed_date(self):
        errors, _ = collect_field_errors(submission(expense_date="31/01/2026"), RULES, TODAY)
        assert errors["expense_date"] == "Expense date must be an ISO date (YYYY-MM-DD)."

    def test_missing_category(self):
        errors, _ = collect_field_errors(submission(category=""), RULES, TODAY)
        assert errors["category"] == "Please select an expense category."

    def test_unknown_category(self):
        errors, _ = collect_field_errors(submission(category="Yachts"), RULES, TODAY)
        assert errors["category"] == "Unknown category: Yachts."

    def test_unsupported_currency(self):
        errors, _ = collect_field_errors(submission(currency="XYZ"), RULES, TODAY)
        assert errors["currency"] == "Unsupported currency: XYZ."

    def test_description_too_long(self):
        rules = SubmissionRules(max_description_length=5)
        errors, _ = collect_field_errors(submission(description="far too long"), rules, TODAY)
        assert "description" in errors

    def test_every_bad_field_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_submission(
                submission(amount="0", category="", expense_date="2027-01-01"),
                RULES,
                TODAY,
            )
        assert set(exc_info.value.field_errors) == {"amount", "category", "expense_date"}


class TestAmountBounds:
    def test_nine_decimal_places_allowed(self):
        validated = validate_submission(submission(amount="0.000000001"), RULES, TODAY)
        assert validated.amount == Decimal("0.000000001")

    def test_trailing_zeros_do_not_count(self):
        validated = validate_submission(submission(amount="12.500000000000"), RULES, TODAY)
        assert validated.amount == Decimal("12.5")

    def test_too_many_decimal_places(self):
        errors, validated = collect_field_errors(submission(amount="0.0000000001"), RULES, TODAY)
        assert errors["amount"] == "Amount cannot have more than 9 decimal places."
        assert validated is None

    def test_too_large(self):
        errors, _ = collect_field_errors(submission(amount="1" + "0" * 40), RULES, TODAY)
        assert errors["amount"] == "Amount is too large."

    def test_limit_is_exclusive(self):
        errors, _ = collect_field_errors(submission(amount=AMOUNT_LIMIT), RULES, TODAY)
        assert "amount" in errors
        assert validate_submission(submission(amount=AMOUNT_LIMIT - 1), RULES, TODAY)


class TestDateTypes:
    def test_datetime_becomes_date(self):
        validated = validate_submission(
            submission(expense_date=datetime(2026, 1, 15, 9, tzinfo=timezone.utc)),
            RULES,
            TODAY,
        )
        assert validated.expense_date == date(2026, 1, 15)
        assert type(validated.expense_date) is date

    def test_future_datetime(self):
        errors, _ = collect_field_errors(
            submission(expense_date=datetime(2026, 3, 1, tzinfo=timezone.utc)), RULES, TODAY,
        )
        assert errors["expense_date"] == "Expense date cannot be in the future."
