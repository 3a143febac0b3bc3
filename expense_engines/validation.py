"""
Submission validation (``expense_engines.validation``).

Checks every field of an expense submission together and reports all
violations at once, keyed by field name, so the caller can show each one
next to its input.  ``today`` is passed in; this module never reads the
clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from expense_kernel.domain.expense import ExpenseSubmission, SubmissionRules
from expense_kernel.exceptions import ValidationError

# Bounds of the Numeric(38, 9) amount column.
AMOUNT_SCALE = 9
AMOUNT_LIMIT = Decimal(10) ** (38 - AMOUNT_SCALE)


@dataclass(frozen=True)
class ValidatedSubmission:
    """Normalized submission values, safe to persist."""

    amount: Decimal
    currency: str
    category: str
    expense_date: date
    description: str | None


def _parse_amount(raw: Decimal | str | int) -> Decimal | None:
    if isinstance(raw, Decimal):
        return raw
    try:
        return Decimal(str(raw).strip())
    except InvalidOperation:
        return None


def _parse_date(raw: date | str) -> date | None:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw).strip())
    except ValueError:
        return None


def collect_field_errors(
    submission: ExpenseSubmission,
    rules: SubmissionRules,
    today: date,
) -> tuple[dict[str, str], ValidatedSubmission | None]:
    """All field violations, plus the normalized values when there are none."""
    errors: dict[str, str] = {}

    amount = _parse_amount(submission.amount)
    if amount is None or not amount.is_finite():
        errors["amount"] = "Please enter a valid amount."
    elif amount <= 0:
        errors["amount"] = "Please enter a valid amount greater than zero."
    elif amount.normalize().as_tuple().exponent < -AMOUNT_SCALE:
        errors["amount"] = f"Amount cannot have more than {AMOUNT_SCALE} decimal places."
    elif amount >= AMOUNT_LIMIT:
        errors["amount"] = "Amount is too large."

    expense_date = None
    if submission.expense_date in (None, ""):
        errors["expense_date"] = "Please select an expense date."
    else:
        expense_date = _parse_date(submission.expense_date)
        if expense_date is None:
            errors["expense_date"] = "Expense date must be an ISO date (YYYY-MM-DD)."
        elif expense_date > today:
            errors["expense_date"] = "Expense date cannot be in the future."

    category = (submission.category or "").strip()
    if not category:
        errors["category"] = "Please select an expense category."
    elif category not in rules.categories:
        errors["category"] = f"Unknown category: {category}."

    currency = (submission.currency or "").strip().upper()
    if currency not in rules.currencies:
        errors["currency"] = f"Unsupported currency: {submission.currency or '(empty)'}."

    description = submission.description.strip() if submission.description else None
    if description and len(description) > rules.max_description_length:
        errors["description"] = (
            f"Description must be at most {rules.max_description_length} characters."
        )

    if errors:
        return errors, None

    return errors, ValidatedSubmission(
        amount=amount,
        currency=currency,
        category=category,
        expense_date=expense_date,
        description=description or None,
    )


def validate_submission(
    submission: ExpenseSubmission,
    rules: SubmissionRules,
    today: date,
) -> ValidatedSubmission:
    """Normalized submission, or ``ValidationError`` listing every bad field."""
    errors, validated = collect_field_errors(submission, rules, today)
    if errors:
        raise ValidationError(errors)
    return validated
