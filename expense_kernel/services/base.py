"""
BaseService -- abstract base for kernel services.

Responsibility:
    Common constructor for every write-side kernel service.  Services
    receive a SQLAlchemy ``Session`` and a ``Clock`` and use
    ``session.flush()`` -- never ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or rollback themselves.  ``ExpenseManager`` and
    ``UserAdministration`` own commit/rollback.
"""

from abc import ABC

from sqlalchemy.orm import Session

from expense_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide list/report queries -- those belong in
          ``expense_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
