from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.errors import NotFoundError
from app.core.permissions import PermissionCode
from app.models.profile import Profile
from app.schemas.loan import LoanApplicationCreate, LoanApplicationDTO
from app.schemas.workflow import (
    LoanWorkflowDTO,
    WorkflowLogEntryDTO,
    WorkflowLogListResponse,
    WorkflowViewResponse,
)
from app.services import loan_applications, workflow_bootstrap, workflow_log


router = APIRouter(prefix="/loans", tags=["loan-applications"])


async def _application_or_404(db: AsyncSession, loan_id: UUID):
    application = await workflow_bootstrap.get_application(db, loan_id)
    if application is None:
        raise NotFoundError(
            "Loan application not found",
            code="loan_not_found",
            details={"loan_id": str(loan_id)},
        )
    return application


@router.post(
    "",
    response_model=LoanApplicationDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a loan application",
)
async def submit_loan_application(
    payload: LoanApplicationCreate,
    current_user: Profile = Depends(deps.require_permission(PermissionCode.LOAN_SUBMIT)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> LoanApplicationDTO:
    application = await loan_applications.submit_application(db, payload, current_user)
    return LoanApplicationDTO.model_validate(application)


@router.get(
    "/{loan_id}",
    response_model=LoanApplicationDTO,
    summary="Get a loan application",
)
async def get_loan_application(
    loan_id: UUID,
    current_user: Profile = Depends(deps.require_permission(PermissionCode.LOAN_VIEW)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> LoanApplicationDTO:
    application = await _application_or_404(db, loan_id)
    return LoanApplicationDTO.model_validate(application)


@router.get(
    "/{loan_id}/workflow",
    response_model=WorkflowViewResponse,
    summary="Get a loan application with its approval workflow",
)
async def get_loan_workflow(
    loan_id: UUID,
    current_user: Profile = Depends(deps.require_permission(PermissionCode.LOAN_VIEW)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> WorkflowViewResponse:
    application, workflow = await workflow_bootstrap.get_workflow_view(db, loan_id)
    return WorkflowViewResponse(
        application=LoanApplicationDTO.model_validate(application),
        workflow=LoanWorkflowDTO.from_model(workflow),
    )


@router.get(
    "/{loan_id}/workflow/log",
    response_model=WorkflowLogListResponse,
    summary="List workflow log entries for a loan application",
)
async def list_loan_workflow_log(
    loan_id: UUID,
    limit: int = Query(default=100, ge=1, le=500),
    current_user: Profile = Depends(deps.require_permission(PermissionCode.LOAN_WORKFLOW_LOG_VIEW)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> WorkflowLogListResponse:
    await _application_or_404(db, loan_id)
    entries, total = await workflow_log.list_log_entries(db, loan_id, limit=limit)
    return WorkflowLogListResponse(
        items=[WorkflowLogEntryDTO.model_validate(entry) for entry in entries],
        total=total,
    )
