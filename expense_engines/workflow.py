"""
Approval Workflow Engine (``expense_engines.workflow``).

Responsibility
--------------
Pure functions for the multi-tier approval workflow:

* derive the expense status from its approval set,
* decide which approval rows a new expense needs (rule matching plus
  reporting-chain approver resolution),
* check whether an approval can be actioned now,
* work out which sibling rows become moot after a decision.

Architecture position
---------------------
**Engines layer** -- pure functional core.  ZERO I/O, ZERO database,
ZERO clock reads.  Profile lookups are injected as a callable so the caller
decides where profiles come from.

Invariants enforced
-------------------
* Any rejected approval rejects the expense, regardless of position.
* An expense is approved only when it has at least one approval and every
  tier is satisfied.  A unanimous tier needs every non-skipped row approved;
  a first-response-wins tier needs one approval (or has nothing left open).
* An approval is actionable only when every tier with a strictly smaller
  sequence_order is satisfied.
* The reporting-chain walk never loops: a visited set and a step limit
  bound it, and both failures surface as ``NoApproverFoundError``.

Failure modes
-------------
* ``NoApproverFoundError`` when a rule (or the fallback) needs a
  chain-resolved approver and none is eligible.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from decimal import Decimal
from itertools import groupby
from uuid import UUID

from expense_engines.tracer import traced_engine
from expense_kernel.domain.approval import (
    Approval,
    ApprovalRule,
    ApprovalStatus,
    DecisionCheck,
    PlannedApproval,
    RuleType,
    TierMode,
    WorkflowLimits,
)
from expense_kernel.domain.expense import ExpenseStatus
from expense_kernel.domain.org import Capability, Profile, capabilities_for
from expense_kernel.exceptions import NoApproverFoundError

ProfileLookup = Callable[[UUID], Profile | None]

DEFAULT_SEQUENCE_ORDER = 1


# ---------------------------------------------------------------------------
# Tiers and derived status
# ---------------------------------------------------------------------------


def group_tiers(approvals: Iterable[Approval]) -> list[tuple[int, list[Approval]]]:
    """Group approvals by sequence_order, lowest order first."""
    ordered = sorted(approvals, key=lambda a: a.sequence_order)
    return [
        (order, list(rows))
        for order, rows in groupby(ordered, key=lambda a: a.sequence_order)
    ]


def tier_mode(tier: Sequence[Approval]) -> TierMode:
    """First-response-wins only when every row came from an ``any_one`` rule."""
    if tier and all(a.rule_type == RuleType.ANY_ONE for a in tier):
        return TierMode.FIRST_RESPONSE
    return TierMode.UNANIMOUS


def tier_satisfied(tier: Sequence[Approval]) -> bool:
    """Whether a tier no longer blocks later tiers.

    Skipped rows are never required.  A tier whose rows were all skipped is
    satisfied.
    """
    open_rows = [a for a in tier if a.status != ApprovalStatus.SKIPPED]
    if not open_rows:
        return True
    if tier_mode(tier) == TierMode.FIRST_RESPONSE:
        return any(a.status == ApprovalStatus.APPROVED for a in open_rows)
    return all(a.status == ApprovalStatus.APPROVED for a in open_rows)


def derive_expense_status(approvals: Sequence[Approval]) -> ExpenseStatus:
    """Expense status as a pure function of its approval set."""
    if any(a.status == ApprovalStatus.REJECTED for a in approvals):
        return ExpenseStatus.REJECTED
    if not approvals:
        return ExpenseStatus.PENDING
    if all(tier_satisfied(tier) for _, tier in group_tiers(approvals)):
        return ExpenseStatus.APPROVED
    return ExpenseStatus.PENDING


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------


def check_decision(approval: Approval, siblings: Sequence[Approval]) -> DecisionCheck:
    """Check whether ``approval`` may be actioned given all rows of its expense.

    ``siblings`` may include ``approval`` itself.
    """
    if approval.status != ApprovalStatus.PENDING:
        return DecisionCheck(
            allowed=False,
            reason=f"approval is already {approval.status.value}",
        )

    for order, tier in group_tiers(
        a for a in siblings if a.sequence_order < approval.sequence_order
    ):
        if not tier_satisfied(tier):
            return DecisionCheck(
                allowed=False,
                reason=f"sequence order {order} is not approved yet",
                blocking_order=order,
            )

    return DecisionCheck(allowed=True)


def moot_siblings(decided: Approval, siblings: Sequence[Approval]) -> tuple[UUID, ...]:
    """Pending rows closed by ``decided`` (already carrying its new status).

    A rejection closes every other pending row.  A response inside a
    first-response-wins tier closes the rest of that tier.
    """
    others = [
        a for a in siblings
        if a.id != decided.id and a.status == ApprovalStatus.PENDING
    ]
    if decided.status == ApprovalStatus.REJECTED:
        return tuple(a.id for a in others)

    tier = [a for a in siblings if a.sequence_order == decided.sequence_order]
    if tier_mode(tier) == TierMode.FIRST_RESPONSE:
        return tuple(
            a.id for a in others if a.sequence_order == decided.sequence_order
        )
    return ()


def select_actionable(actor_id: UUID, approvals: Sequence[Approval]) -> Approval | None:
    """The actor's lowest-order pending approval on this expense, if any."""
    mine = sorted(
        (a for a in approvals if a.approver_id == actor_id and a.is_pending),
        key=lambda a: a.sequence_order,
    )
    return mine[0] if mine else None


# ---------------------------------------------------------------------------
# Materialization
# ---------------------------------------------------------------------------


def is_eligible_approver(candidate: Profile, submitter: Profile) -> bool:
    """An approver must be an active approve-capable user of the same company,
    and never the submitter."""
    return (
        candidate.id != submitter.id
        and candidate.is_active
        and candidate.company_id == submitter.company_id
        and Capability.APPROVE_EXPENSE in capabilities_for(candidate.roles)
    )


def resolve_manager(
    submitter: Profile,
    lookup_profile: ProfileLookup,
    limits: WorkflowLimits = WorkflowLimits(),
) -> UUID:
    """Walk up the reporting chain to the first eligible approver."""
    visited: set[UUID] = {submitter.id}
    current_id = submitter.manager_id
    steps = 0

    if current_id is None:
        raise NoApproverFoundError(str(submitter.id), "employee has no manager")

    while current_id is not None:
        if current_id in visited:
            raise NoApproverFoundError(
                str(submitter.id), "reporting chain contains a cycle",
            )
        steps += 1
        if steps > limits.max_chain_depth:
            raise NoApproverFoundError(
                str(submitter.id),
                f"reporting chain exceeds {limits.max_chain_depth} levels",
            )
        visited.add(current_id)

        candidate = lookup_profile(current_id)
        if candidate is None:
            break
        if is_eligible_approver(candidate, submitter):
            return candidate.id
        current_id = candidate.manager_id

    raise NoApproverFoundError(
        str(submitter.id), "reporting chain has no eligible approver",
    )


def rule_applies(rule: ApprovalRule, amount: Decimal) -> bool:
    """Threshold rules match only when the amount strictly exceeds them."""
    if rule.rule_type == RuleType.OVERRIDE:
        return False
    if rule.rule_type == RuleType.THRESHOLD:
        return rule.threshold is not None and amount > rule.threshold
    return True


@traced_engine("workflow", "1.0", fingerprint_fields=("amount",))
def plan_approvals(
    rules: Sequence[ApprovalRule],
    amount: Decimal,
    submitter: Profile,
    lookup_profile: ProfileLookup,
    limits: WorkflowLimits = WorkflowLimits(),
) -> tuple[PlannedApproval, ...]:
    """Approval rows a new expense needs, ordered by sequence_order.

    One row per matching rule.  A pinned ``required_approver_id`` is used
    when that user is eligible; otherwise the approver comes from the
    reporting chain.  With no matching rule, a single default row goes to
    the chain-resolved manager.

    Raises:
        NoApproverFoundError: a needed chain approver cannot be resolved.
    """
    matching = [
        r for r in sorted(rules, key=lambda r: (r.sequence_order, str(r.id)))
        if rule_applies(r, amount)
    ]

    if not matching:
        approver_id = resolve_manager(submitter, lookup_profile, limits)
        return (
            PlannedApproval(
                approver_id=approver_id,
                sequence_order=DEFAULT_SEQUENCE_ORDER,
                rule_type=RuleType.SEQUENTIAL,
            ),
        )

    chain_approver: UUID | None = None
    planned: list[PlannedApproval] = []
    seen: set[tuple[UUID, int]] = set()

    for rule in matching:
        approver_id: UUID | None = None
        if rule.required_approver_id is not None:
            pinned = lookup_profile(rule.required_approver_id)
            if pinned is not None and is_eligible_approver(pinned, submitter):
                approver_id = pinned.id
        if approver_id is None:
            if chain_approver is None:
                chain_approver = resolve_manager(submitter, lookup_profile, limits)
            approver_id = chain_approver

        key = (approver_id, rule.sequence_order)
        if key in seen:
            continue
        seen.add(key)
        planned.append(
            PlannedApproval(
                approver_id=approver_id,
                sequence_order=rule.sequence_order,
                rule_type=rule.rule_type,
                rule_id=rule.id,
            )
        )

    return tuple(planned)
