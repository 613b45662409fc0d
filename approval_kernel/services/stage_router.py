"""
StageRouter -- work-queue (page) listings over loan applications.

Responsibility:
    Answers "which applications belong on this page" against the store,
    and exposes the static routing tables of
    ``approval_engines.stage_routing`` to callers holding a session.

Architecture position:
    Kernel > Services -- read-only.  Reads through ``ApplicationSelector``.

Invariants enforced:
    - Listings are newest first.
    - The ``unmapped`` page lists every application whose stored status
      is missing or outside all page sets, including strings outside the
      status vocabulary, so no application silently disappears from every
      queue.
    - A malformed row never breaks a listing.  It is left off the routed
      pages and listed on ``unmapped`` flagged with its problems;
      ``page_counts`` counts it there too.
    - ``stage_status`` reports on malformed rows rather than raising.

Failure modes:
    - UnknownPageError: page name not in the routing table.
    - ApplicationNotFoundError from ``stage_status``.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from approval_engines import stage_routing
from approval_engines.stage_routing import StageInfo
from approval_kernel.domain.status import ApplicationStatus
from approval_kernel.domain.workflow import LoanApplicationRecord
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.selectors.application_selector import ApplicationSelector

logger = get_logger("services.stage_router")

_NO_STATUS = "<none>"


class StageRouter:
    """Maps application state onto work queues."""

    def __init__(self, session: Session):
        self._applications = ApplicationSelector(session)

    def list_applications_for_page(self, page_name: str) -> list[LoanApplicationRecord]:
        """Applications listed on ``page_name``, newest first.

        Raises:
            UnknownPageError: if the page does not exist.
        """
        if page_name == stage_routing.UNMAPPED_PAGE:
            mapped = set().union(
                *(page.statuses for page in stage_routing.PAGE_STATUS_MAPPING.values())
            )
            records = self._applications.list_unroutable(mapped)
            if records:
                logger.warning(
                    "unmapped_applications_found",
                    extra={
                        "count": len(records),
                        "statuses": sorted({r.raw_status or _NO_STATUS for r in records}),
                        "malformed": sum(1 for r in records if r.problems),
                    },
                )
            for record in records:
                if record.problems:
                    with LogContext.bind(application_id=record.application_id):
                        logger.warning(
                            "malformed_application_listed",
                            extra={"problems": list(record.problems)},
                        )
            return records

        statuses = stage_routing.statuses_for_page(page_name)
        records = self._applications.list_by_statuses(statuses)
        logger.debug(
            "page_applications_listed",
            extra={"page": page_name, "count": len(records)},
        )
        return records

    def stage_status(self, application_id: UUID) -> StageInfo:
        """Lifecycle stage of one application."""
        record = self._applications.get(application_id, strict=False)
        return stage_routing.stage_info(record.raw_status)

    def page_counts(self) -> dict[str, int]:
        """Number of applications per page, the unmapped page included."""
        by_status = self._applications.count_by_status()
        counts = {name: 0 for name in stage_routing.page_names()}
        counts[stage_routing.UNMAPPED_PAGE] += self._applications.count_malformed()
        for raw_status, count in by_status.items():
            for page in stage_routing.pages_for_status(raw_status):
                counts[page] += count
        return counts

    # Static table lookups, for callers that only hold a router.

    @staticmethod
    def page_for_status(status: ApplicationStatus | str) -> str:
        return stage_routing.page_for_status(status)

    @staticmethod
    def pages_for_status(status: ApplicationStatus | str) -> tuple[str, ...]:
        return stage_routing.pages_for_status(status)

    @staticmethod
    def progress_percent(status: ApplicationStatus | str, committee_required: bool = True) -> int:
        return stage_routing.progress_percent(status, committee_required)

    @staticmethod
    def describe_stage(stage: str, status: ApplicationStatus | str) -> str:
        return stage_routing.describe_stage(stage, status)

    @staticmethod
    def stage_info(status: ApplicationStatus | str) -> StageInfo:
        return stage_routing.stage_info(status)

    @staticmethod
    def find_unmapped_statuses() -> tuple[ApplicationStatus, ...]:
        return stage_routing.find_unmapped_statuses()
