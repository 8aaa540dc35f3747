from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import NamedTuple

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from app.core.stages import STAGE_ORDER, WORKFLOW_VERSION, Stage, parse_stage
from app.db.base import Base


@dataclass(frozen=True)
class StageDecision:
    """One stage's slice of the workflow row."""

    approved: bool | None = None
    notes: str | None = None
    approver_name: str | None = None
    decided_by: uuid.UUID | None = None
    decided_at: datetime | None = None

    @property
    def is_decided(self) -> bool:
        return self.approved is not None


class _StageColumns(NamedTuple):
    approved: str
    notes: str
    name: str
    decided_by: str
    decided_at: str


STAGE_COLUMNS: dict[Stage, _StageColumns] = {
    Stage.FIELD_OFFICER: _StageColumns(
        "field_officer_approved",
        "field_officer_notes",
        "field_officer_name",
        "field_officer_decided_by",
        "field_officer_decided_at",
    ),
    Stage.MANAGER: _StageColumns(
        "manager_approved",
        "manager_notes",
        "manager_name",
        "manager_decided_by",
        "manager_decided_at",
    ),
    Stage.DIRECTOR: _StageColumns(
        "director_approved",
        "director_notes",
        "director_name",
        "director_decided_by",
        "director_decided_at",
    ),
    Stage.CHAIRPERSON: _StageColumns(
        "chairperson_approved",
        "chairperson_notes",
        "chairperson_name",
        "chairperson_decided_by",
        "chairperson_decided_at",
    ),
    Stage.CEO: _StageColumns(
        "ceo_approved",
        "ceo_notes",
        "ceo_name",
        "ceo_decided_by",
        "ceo_decided_at",
    ),
}

_STAGE_VALUES = ", ".join(f"'{stage.value}'" for stage in STAGE_ORDER)


class LoanWorkflowStage(Base):
    """Approval progress for one loan application.

    Stored as one row with a column group per stage. Code outside this class
    reads and writes a stage through ``decision_for`` / ``record_decision``.
    """

    __tablename__ = "loan_application_workflows"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(f"current_stage IN ({_STAGE_VALUES})", name="current_stage"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    current_stage = Column(String(30), nullable=False, default=Stage.FIELD_OFFICER.value)
    workflow_version = Column(Integer, nullable=False, default=WORKFLOW_VERSION)

    field_officer_approved = Column(Boolean, nullable=True)
    field_officer_notes = Column(Text, nullable=True)
    field_officer_name = Column(String(255), nullable=True)
    field_officer_decided_by = Column(UUID(as_uuid=True), nullable=True)
    field_officer_decided_at = Column(DateTime(timezone=True), nullable=True)

    manager_approved = Column(Boolean, nullable=True)
    manager_notes = Column(Text, nullable=True)
    manager_name = Column(String(255), nullable=True)
    manager_decided_by = Column(UUID(as_uuid=True), nullable=True)
    manager_decided_at = Column(DateTime(timezone=True), nullable=True)

    director_approved = Column(Boolean, nullable=True)
    director_notes = Column(Text, nullable=True)
    director_name = Column(String(255), nullable=True)
    director_decided_by = Column(UUID(as_uuid=True), nullable=True)
    director_decided_at = Column(DateTime(timezone=True), nullable=True)

    chairperson_approved = Column(Boolean, nullable=True)
    chairperson_notes = Column(Text, nullable=True)
    chairperson_name = Column(String(255), nullable=True)
    chairperson_decided_by = Column(UUID(as_uuid=True), nullable=True)
    chairperson_decided_at = Column(DateTime(timezone=True), nullable=True)

    ceo_approved = Column(Boolean, nullable=True)
    ceo_notes = Column(Text, nullable=True)
    ceo_name = Column(String(255), nullable=True)
    ceo_decided_by = Column(UUID(as_uuid=True), nullable=True)
    ceo_decided_at = Column(DateTime(timezone=True), nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def stage(self) -> Stage | None:
        """``current_stage`` as a ``Stage``; ``None`` if the stored value is unknown."""
        return parse_stage(self.current_stage)

    def decision_for(self, stage: Stage) -> StageDecision:
        columns = STAGE_COLUMNS[stage]
        return StageDecision(
            approved=getattr(self, columns.approved),
            notes=getattr(self, columns.notes),
            approver_name=getattr(self, columns.name),
            decided_by=getattr(self, columns.decided_by),
            decided_at=getattr(self, columns.decided_at),
        )

    def record_decision(self, stage: Stage, decision: StageDecision) -> None:
        columns = STAGE_COLUMNS[stage]
        setattr(self, columns.approved, decision.approved)
        setattr(self, columns.notes, decision.notes)
        setattr(self, columns.name, decision.approver_name)
        setattr(self, columns.decided_by, decision.decided_by)
        setattr(self, columns.decided_at, decision.decided_at)

    def decisions(self) -> dict[Stage, StageDecision]:
        return {stage: self.decision_for(stage) for stage in STAGE_ORDER}

    @staticmethod
    def approved_column(stage: Stage) -> str:
        return STAGE_COLUMNS[stage].approved
