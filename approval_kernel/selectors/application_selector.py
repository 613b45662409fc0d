"""
Module: approval_kernel.selectors.application_selector
Responsibility: Read-only access to loan applications, their approval
    assignments and their approval history.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only: no mutations performed on any queried data.
    - Every application leaves through LoanApplicationRecord, so a row
      missing a required field raises InvalidApplicationRecordError here
      rather than deeper in the workflow.
    - Listings never raise on a malformed row: routed listings and
      counts skip it, list_unroutable returns it flagged.
    - Assignments and history are ordered by their per-application
      sequence number.

Failure modes:
    - ApplicationNotFoundError from get() when the ID does not exist.
    - InvalidApplicationRecordError from get() on a malformed row.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import func, not_, or_, select, true

from approval_kernel.domain.status import ApplicationStatus
from approval_kernel.domain.workflow import (
    ApprovalAction,
    ApprovalAssignmentRecord,
    ApprovalHistoryRecord,
    AssignmentStatus,
    LoanApplicationRecord,
)
from approval_kernel.exceptions import ApplicationNotFoundError
from approval_kernel.models.application import LoanApplicationModel
from approval_kernel.models.workflow import (
    ApprovalAssignmentModel,
    ApprovalHistoryModel,
)
from approval_kernel.selectors.base import BaseSelector


class ApplicationSelector(BaseSelector[LoanApplicationModel]):
    """Queries over loan applications and their workflow trail."""

    def get(self, application_id: UUID, *, strict: bool = True) -> LoanApplicationRecord:
        model = self.session.get(LoanApplicationModel, application_id)
        if model is None:
            raise ApplicationNotFoundError(str(application_id))
        return model.to_dto(strict=strict)

    def exists(self, application_id: UUID) -> bool:
        return self.session.get(LoanApplicationModel, application_id) is not None

    def list_by_statuses(
        self, statuses: Iterable[ApplicationStatus | str],
    ) -> list[LoanApplicationRecord]:
        """Well-formed applications whose status is in ``statuses``, newest first.

        Malformed rows are left to ``list_unroutable``.
        """
        values = sorted({getattr(s, "value", s) for s in statuses})
        if not values:
            return []
        rows = self.session.execute(
            select(LoanApplicationModel)
            .where(
                LoanApplicationModel.approval_status.in_(values),
                not_(LoanApplicationModel.malformed()),
            )
            .order_by(
                LoanApplicationModel.created_at.desc().nulls_last(),
                LoanApplicationModel.id,
            )
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def ids_by_statuses(self, statuses: Iterable[ApplicationStatus | str]) -> list[UUID]:
        """IDs only, oldest first; rows are not validated."""
        values = sorted({getattr(s, "value", s) for s in statuses})
        if not values:
            return []
        return list(self.session.execute(
            select(LoanApplicationModel.id)
            .where(LoanApplicationModel.approval_status.in_(values))
            .order_by(
                LoanApplicationModel.created_at.asc().nulls_first(),
                LoanApplicationModel.id,
            )
        ).scalars().all())

    def list_unroutable(
        self, routed_statuses: Iterable[ApplicationStatus | str],
    ) -> list[LoanApplicationRecord]:
        """Applications no routed listing returns, newest first.

        That is rows whose status is missing or outside ``routed_statuses``,
        plus malformed rows in any status.  Malformed rows come back as
        records flagged with ``problems`` instead of raising.
        """
        values = sorted({getattr(s, "value", s) for s in routed_statuses})
        condition = true()
        if values:
            condition = or_(
                LoanApplicationModel.approval_status.is_(None),
                LoanApplicationModel.approval_status.not_in(values),
                LoanApplicationModel.malformed(),
            )
        rows = self.session.execute(
            select(LoanApplicationModel)
            .where(condition)
            .order_by(
                LoanApplicationModel.created_at.desc().nulls_last(),
                LoanApplicationModel.id,
            )
        ).scalars().all()
        return [row.to_dto(strict=False) for row in rows]

    def count_by_status(self) -> dict[str, int]:
        """Stored status string -> number of well-formed applications."""
        rows = self.session.execute(
            select(LoanApplicationModel.approval_status, func.count())
            .where(not_(LoanApplicationModel.malformed()))
            .group_by(LoanApplicationModel.approval_status)
        ).all()
        return {status: count for status, count in rows}

    def count_malformed(self) -> int:
        """Number of rows ``to_dto`` would refuse."""
        return self.session.execute(
            select(func.count())
            .select_from(LoanApplicationModel)
            .where(LoanApplicationModel.malformed())
        ).scalar_one()

    def pending_assignment(self, application_id: UUID) -> ApprovalAssignmentRecord | None:
        model = self.session.execute(
            select(ApprovalAssignmentModel).where(
                ApprovalAssignmentModel.application_id == application_id,
                ApprovalAssignmentModel.status == AssignmentStatus.PENDING.value,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def assignments(self, application_id: UUID) -> list[ApprovalAssignmentRecord]:
        rows = self.session.execute(
            select(ApprovalAssignmentModel)
            .where(ApprovalAssignmentModel.application_id == application_id)
            .order_by(ApprovalAssignmentModel.sequence)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def history(self, application_id: UUID) -> list[ApprovalHistoryRecord]:
        rows = self.session.execute(
            select(ApprovalHistoryModel)
            .where(ApprovalHistoryModel.application_id == application_id)
            .order_by(ApprovalHistoryModel.sequence)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def was_referred_to_committee(self, application_id: UUID) -> bool:
        """True when an approver explicitly referred the application."""
        found = self.session.execute(
            select(ApprovalHistoryModel.id).where(
                ApprovalHistoryModel.application_id == application_id,
                ApprovalHistoryModel.action == ApprovalAction.REFER_TO_COMMITTEE.value,
            ).limit(1)
        ).first()
        return found is not None
