"""
Expense Kernel

Multi-tenant expense approval core with:
- Derived expense status from per-approver decisions
- Rule-driven approval materialization (sequential, threshold, parallel tiers)
- Compare-and-swap decision application
- Typed, machine-readable errors
"""

__version__ = "0.1.0"
