import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class WorkflowLogEntry(Base):
    __tablename__ = "loan_workflow_log"
    __table_args__ = (
        Index("ix_loan_workflow_log_application_performed", "loan_application_id", "performed_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="CASCADE"),
        nullable=False,
    )
    action = Column(String(255), nullable=False)
    performed_by = Column(UUID(as_uuid=True), nullable=False)
    status = Column(String(30), nullable=True)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    performed_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
