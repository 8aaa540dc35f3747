from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.core.stages import WORKFLOW_VERSION, Stage
from app.models.loan_application import LoanApplication
from app.models.loan_workflow_stage import LoanWorkflowStage


logger = logging.getLogger(__name__)


def new_workflow(application_id: UUID) -> LoanWorkflowStage:
    return LoanWorkflowStage(
        loan_application_id=application_id,
        current_stage=Stage.FIELD_OFFICER.value,
        workflow_version=WORKFLOW_VERSION,
    )


async def _select_workflow(
    db: AsyncSession,
    application_id: UUID,
    *,
    lock: bool,
) -> LoanWorkflowStage | None:
    stmt = select(LoanWorkflowStage).where(LoanWorkflowStage.loan_application_id == application_id)
    if lock:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def ensure_workflow(
    db: AsyncSession,
    application_id: UUID,
    *,
    lock: bool = False,
) -> tuple[LoanWorkflowStage, bool]:
    """Return the workflow row for an application, creating the default row if absent.

    The second element is ``True`` when this call inserted the row; the caller
    is responsible for committing it. Concurrent bootstraps race on the unique
    ``loan_application_id``: the loser rolls back its savepoint and re-reads
    the winner's row.
    """
    existing = await _select_workflow(db, application_id, lock=lock)
    if existing is not None:
        return existing, False

    workflow = new_workflow(application_id)
    try:
        async with db.begin_nested():
            db.add(workflow)
            await db.flush()
    except IntegrityError:
        logger.info(
            "Workflow bootstrap lost insert race; re-reading",
            extra={"loan_id": application_id},
        )
        existing = await _select_workflow(db, application_id, lock=lock)
        if existing is None:
            raise
        return existing, False

    logger.info("Workflow row bootstrapped", extra={"loan_id": application_id})
    return workflow, True


async def get_application(db: AsyncSession, application_id: UUID) -> LoanApplication | None:
    stmt = select(LoanApplication).where(LoanApplication.id == application_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_workflow_view(
    db: AsyncSession,
    application_id: UUID,
) -> tuple[LoanApplication, LoanWorkflowStage]:
    application = await get_application(db, application_id)
    if application is None:
        raise NotFoundError(
            "Loan application not found",
            code="loan_not_found",
            details={"loan_id": str(application_id)},
        )
    workflow, created = await ensure_workflow(db, application.id)
    if created:
        await db.commit()
    return application, workflow
