from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.core.stages import REPORT_STAGES, Stage
from app.models.profile import Profile
from app.schemas.workflow import (
    GenerateWeeklyReportRequest,
    GenerateWeeklyReportResponse,
    WeeklyReportDTO,
    WorkflowTransitionRequest,
    WorkflowTransitionResponse,
)
from app.services import loan_workflow, weekly_reports


router = APIRouter(prefix="/workflow", tags=["loan-workflow"])


@router.post(
    "/transitions",
    response_model=WorkflowTransitionResponse,
    summary="Approve, reject or downsize a loan application",
)
async def apply_workflow_transition(
    payload: WorkflowTransitionRequest,
    current_user: Profile = Depends(deps.require_permission(PermissionCode.LOAN_WORKFLOW_DECIDE)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> WorkflowTransitionResponse:
    return await loan_workflow.apply_transition(db, payload, actor_id=current_user.id)


@router.post(
    "/reports",
    response_model=GenerateWeeklyReportResponse,
    summary="Generate weekly approval reports for every reviewing role",
)
async def generate_weekly_reports(
    payload: GenerateWeeklyReportRequest,
    current_user: Profile = Depends(deps.require_permission(PermissionCode.REPORT_WEEKLY_GENERATE)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> GenerateWeeklyReportResponse:
    reports = await weekly_reports.generate_weekly_reports(db, payload.week_start)
    return GenerateWeeklyReportResponse(reports=[WeeklyReportDTO(**report) for report in reports])


@router.get(
    "/reports",
    response_model=list[WeeklyReportDTO],
    summary="List recent weekly reports for a role",
)
async def list_weekly_reports(
    role: Stage = Query(...),
    current_user: Profile = Depends(deps.require_permission(PermissionCode.REPORT_WEEKLY_VIEW)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> list[WeeklyReportDTO]:
    if role not in REPORT_STAGES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "code": "unsupported_report_role",
                "message": "Weekly reports are only produced for reviewing roles",
                "details": {"role": role.value},
            },
        )
    reports = await weekly_reports.list_weekly_reports(db, role)
    return [WeeklyReportDTO.model_validate(report) for report in reports]
