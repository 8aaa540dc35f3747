from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import (
    ConflictError,
    ForbiddenError,
    InvalidStageError,
    NotFoundError,
    StageOutOfOrderError,
    WorkflowPersistenceError,
    WorkflowValidationError,
)
from app.core.permissions import PermissionCode, role_has_permission
from app.core.settings import settings
from app.core.stages import (
    ApplicationStatus,
    Stage,
    is_final_stage,
    is_terminal_status,
    next_stage,
    pending_status_for,
    rejected_status_for,
)
from app.models.loan_application import LoanApplication
from app.models.loan_workflow_stage import LoanWorkflowStage, StageDecision
from app.models.profile import Profile
from app.schemas.workflow import WorkflowAction, WorkflowTransitionRequest, WorkflowTransitionResponse
from app.services import notifications, profiles, workflow_log
from app.services.workflow_bootstrap import ensure_workflow, get_application


logger = logging.getLogger(__name__)


@dataclass
class _PendingLog:
    action: str
    status: str | None
    old_value: dict
    new_value: dict


def _format_amount(amount: Decimal) -> str:
    return f"{Decimal(amount):,.2f}"


def _workflow_snapshot(workflow: LoanWorkflowStage, stage: Stage) -> dict:
    return workflow_log.model_snapshot(
        workflow,
        include={"current_stage", LoanWorkflowStage.approved_column(stage)},
    )


def _decision_message(action: WorkflowAction, approver: Profile, stage: Stage, upcoming: Stage | None) -> str:
    name = approver.display_name
    if action == WorkflowAction.APPROVE and upcoming is not None:
        return (
            f"Your loan application has been approved by {name} ({stage.label}) "
            f"and moved to {upcoming.label} stage."
        )
    if action == WorkflowAction.APPROVE:
        return f"Your loan application has been APPROVED by {name} ({stage.label}). Congratulations!"
    if is_final_stage(stage):
        return f"Your loan application has been rejected by {name} ({stage.label}). This is the final decision."
    return f"Your loan application has been rejected by {name} ({stage.label})."


async def _load_application(db: AsyncSession, loan_id: UUID) -> LoanApplication:
    application = await get_application(db, loan_id)
    if application is None:
        raise NotFoundError(
            "Loan application not found",
            code="loan_not_found",
            details={"loan_id": str(loan_id)},
        )
    return application


async def _load_approver(db: AsyncSession, approver_id: UUID) -> tuple[Profile, Stage | None]:
    approver = await profiles.get_profile(db, approver_id)
    if approver is None:
        raise ForbiddenError(
            "Approver profile not found",
            code="approver_unknown",
            details={"approver_id": str(approver_id)},
        )
    return approver, profiles.workflow_stage_for(approver)


async def _load_workflow(db: AsyncSession, application: LoanApplication) -> tuple[LoanWorkflowStage, Stage]:
    workflow, _ = await ensure_workflow(db, application.id, lock=True)
    current = workflow.stage
    if current is None:
        logger.error(
            "Workflow row has unrecognised current_stage=%r",
            workflow.current_stage,
            extra={"loan_id": application.id},
        )
        raise InvalidStageError(
            "Workflow is in an unknown stage",
            details={"current_stage": workflow.current_stage},
        )
    return workflow, current


async def _persist(db: AsyncSession, loan_id: UUID) -> None:
    try:
        await db.flush()
        await db.commit()
    except StaleDataError as exc:
        await db.rollback()
        logger.info("Concurrent workflow update lost compare-and-set", extra={"loan_id": loan_id})
        raise ConflictError(
            "Loan application was updated by another request",
            code="concurrent_update",
            details={"loan_id": str(loan_id)},
        ) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Workflow write failed", extra={"loan_id": loan_id})
        raise WorkflowPersistenceError(
            "Failed to persist workflow decision",
            details={"loan_id": str(loan_id)},
        ) from exc


def _apply_downsize(
    db: AsyncSession,
    application: LoanApplication,
    approver: Profile,
    new_amount: Decimal,
    notes: str | None,
) -> tuple[WorkflowTransitionResponse, _PendingLog]:
    old_amount = application.loan_amount
    currency = settings.currency_code
    reason = notes or (
        f"Loan amount adjusted from {_format_amount(old_amount)} to {_format_amount(new_amount)} {currency}"
    )
    application.loan_amount = new_amount
    application.downsizing_reason = reason
    application.last_updated = datetime.now(timezone.utc)
    db.add(application)

    role_label = approver.role.replace("_", " ").title() if approver.role else "Staff"
    notifications.queue_notification(
        db,
        user_id=application.created_by,
        entity_id=application.id,
        message=(
            f"Your loan application amount has been adjusted from {_format_amount(old_amount)} "
            f"to {_format_amount(new_amount)} {currency} by {approver.display_name} ({role_label})."
        ),
    )
    response = WorkflowTransitionResponse(
        loan_id=application.id,
        status=application.status,
        next_stage=None,
        is_final=False,
        message="Loan amount adjusted successfully",
        loan_amount=new_amount,
    )
    pending = _PendingLog(
        action=f"downsize by {approver.role}",
        status=application.status,
        old_value={"loan_amount": old_amount},
        new_value={"loan_amount": new_amount, "downsizing_reason": reason},
    )
    return response, pending


def _apply_decision(
    db: AsyncSession,
    application: LoanApplication,
    workflow: LoanWorkflowStage,
    approver: Profile,
    stage: Stage,
    action: WorkflowAction,
    notes: str | None,
) -> tuple[WorkflowTransitionResponse, _PendingLog]:
    before = _workflow_snapshot(workflow, stage)
    approved = action == WorkflowAction.APPROVE
    now = datetime.now(timezone.utc)
    workflow.record_decision(
        stage,
        StageDecision(
            approved=approved,
            notes=notes,
            approver_name=approver.display_name,
            decided_by=approver.id,
            decided_at=now,
        ),
    )

    upcoming: Stage | None = None
    if approved:
        upcoming = next_stage(stage)
        if upcoming is not None:
            workflow.current_stage = upcoming.value
            application.status = pending_status_for(upcoming).value
        else:
            application.status = ApplicationStatus.APPROVED.value
            application.approval_notes = notes
    else:
        application.status = rejected_status_for(stage).value
        application.rejection_reason = notes
    application.last_updated = now
    db.add(workflow)
    db.add(application)

    notifications.queue_notification(
        db,
        user_id=application.created_by,
        entity_id=application.id,
        message=_decision_message(action, approver, stage, upcoming),
    )
    is_final = upcoming is None
    if approved and is_final and application.current_approver:
        notifications.queue_notification(
            db,
            user_id=application.current_approver,
            entity_id=application.id,
            message=(
                f"Loan application for {application.client_name} has received final approval "
                f"and is ready for disbursement."
            ),
        )

    response = WorkflowTransitionResponse(
        loan_id=application.id,
        status=application.status,
        next_stage=upcoming,
        is_final=is_final,
        message="Application approved successfully" if approved else "Application rejected",
    )
    pending = _PendingLog(
        action=f"{action.value} by {stage.value}",
        status=application.status,
        old_value=before,
        new_value=_workflow_snapshot(workflow, stage),
    )
    return response, pending


async def apply_transition(
    db: AsyncSession,
    request: WorkflowTransitionRequest,
    *,
    actor_id: UUID,
) -> WorkflowTransitionResponse:
    """Validate and apply one approve/reject/downsize request.

    All checks run before any write. The workflow row, the application and the
    notifications are committed together; the workflow log entry is appended
    afterwards and may fail without failing the request.
    """
    action = request.action
    if action == WorkflowAction.DOWNSIZE and (
        request.downsized_amount is None or request.downsized_amount <= 0
    ):
        raise WorkflowValidationError(
            "downsized_amount must be a positive amount when action is downsize",
            code="downsized_amount_required",
            details={"field": "downsized_amount"},
        )

    if actor_id != request.approver_id:
        raise ForbiddenError(
            "approver_id does not match the authenticated user",
            code="approver_mismatch",
            details={"approver_id": str(request.approver_id)},
        )

    application = await _load_application(db, request.loan_id)
    approver, approver_stage = await _load_approver(db, request.approver_id)
    if approver_stage is None:
        raise ForbiddenError(
            "Approver does not hold a workflow role",
            code="approver_not_in_workflow",
            details={"role": approver.role},
        )

    workflow, current = await _load_workflow(db, application)

    if action == WorkflowAction.DOWNSIZE:
        if not role_has_permission(approver.role, PermissionCode.LOAN_WORKFLOW_DOWNSIZE):
            raise ForbiddenError(
                "Role is not allowed to downsize loan applications",
                code="downsize_not_allowed",
                details={"role": approver.role},
            )
        if is_terminal_status(application.status):
            raise ConflictError(
                "Loan application has already been finalized",
                code="application_finalized",
                details={"status": application.status},
            )
        response, pending = _apply_downsize(
            db, application, approver, request.downsized_amount, request.notes
        )
    else:
        acting = request.stage or approver_stage
        if acting != approver_stage:
            raise ForbiddenError(
                "Approver role does not match the stage being decided",
                code="role_stage_mismatch",
                details={"role": approver.role, "stage": acting.value},
            )
        if is_terminal_status(application.status):
            raise ConflictError(
                "Loan application has already been finalized",
                code="application_finalized",
                details={"status": application.status},
            )
        if workflow.decision_for(acting).is_decided:
            field = LoanWorkflowStage.approved_column(acting)
            raise ConflictError(
                f"Stage {acting.value} has already been decided",
                code="stage_already_decided",
                details={"field": field, "stage": acting.value},
            )
        if acting != current:
            raise StageOutOfOrderError(
                f"Stage {acting.value} is not the current stage",
                details={"stage": acting.value, "current_stage": current.value},
            )
        response, pending = _apply_decision(
            db, application, workflow, approver, acting, action, request.notes
        )

    await _persist(db, application.id)
    logger.info(
        "Workflow %s applied status=%s",
        pending.action,
        response.status,
        extra={"loan_id": application.id},
    )

    await workflow_log.append_log_entry(
        db,
        loan_application_id=application.id,
        action=pending.action,
        performed_by=approver.id,
        status=pending.status,
        old_value=pending.old_value,
        new_value=pending.new_value,
    )
    return response
