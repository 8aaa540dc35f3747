from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.stages import STAGE_ORDER, Stage
from app.schemas.loan import LoanApplicationDTO


class WorkflowAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    DOWNSIZE = "downsize"


class WorkflowTransitionRequest(BaseModel):
    action: WorkflowAction
    loan_id: UUID
    approver_id: UUID
    notes: str | None = Field(default=None, max_length=4000)
    # Positivity is enforced by the engine (downsized_amount_required).
    downsized_amount: Decimal | None = Field(default=None, max_digits=18, decimal_places=2)
    # Optional: the stage the caller believes it is deciding. Defaults to the
    # approver's role, and is checked against the workflow's current stage.
    stage: Stage | None = None

    @field_validator("notes")
    @classmethod
    def strip_notes(cls, v: str | None) -> str | None:
        if v is None:
            return None
        cleaned = v.strip()
        return cleaned or None

    @field_validator("downsized_amount", mode="before")
    @classmethod
    def parse_amount(cls, v):
        if isinstance(v, str):
            cleaned = v.replace(",", "").strip()
            return cleaned or None
        return v


class WorkflowTransitionResponse(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    success: bool = True
    loan_id: UUID
    status: str
    next_stage: Stage | None = None
    is_final: bool
    message: str
    loan_amount: Decimal | None = None


class StageDecisionDTO(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    stage: Stage
    label: str
    approved: bool | None = None
    notes: str | None = None
    approver_name: str | None = None
    decided_at: datetime | None = None


class LoanWorkflowDTO(BaseModel):
    id: UUID
    loan_application_id: UUID
    current_stage: str
    stages: list[StageDecisionDTO]
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, workflow) -> "LoanWorkflowDTO":
        stages = []
        for stage in STAGE_ORDER:
            decision = workflow.decision_for(stage)
            stages.append(
                StageDecisionDTO(
                    stage=stage,
                    label=stage.label,
                    approved=decision.approved,
                    notes=decision.notes,
                    approver_name=decision.approver_name,
                    decided_at=decision.decided_at,
                )
            )
        return cls(
            id=workflow.id,
            loan_application_id=workflow.loan_application_id,
            current_stage=workflow.current_stage,
            stages=stages,
            created_at=workflow.created_at,
            updated_at=workflow.updated_at,
        )


class WorkflowViewResponse(BaseModel):
    application: LoanApplicationDTO
    workflow: LoanWorkflowDTO


class WorkflowLogEntryDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    loan_application_id: UUID
    action: str
    performed_by: UUID
    status: str | None = None
    performed_at: datetime | None = None


class WorkflowLogListResponse(BaseModel):
    items: list[WorkflowLogEntryDTO]
    total: int


class WeeklyReportDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    week_start: date
    role: str
    total_applications: int
    approved_applications: int
    rejected_applications: int
    pending_applications: int
    total_loan_amount: Decimal
    approved_loan_amount: Decimal
    approval_rate: int
    generated_at: datetime | None = None


class GenerateWeeklyReportRequest(BaseModel):
    action: Literal["generate_weekly_report"] = "generate_weekly_report"
    week_start: date | None = None


class GenerateWeeklyReportResponse(BaseModel):
    success: bool = True
    reports: list[WeeklyReportDTO]
