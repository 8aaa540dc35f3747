import uuid

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class WeeklyReport(Base):
    """Derived per-role weekly summary; rebuildable from workflows and applications."""

    __tablename__ = "weekly_reports"
    __table_args__ = (
        UniqueConstraint("week_start", "role", name="uq_weekly_reports_week_role"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    week_start = Column(Date, nullable=False)
    role = Column(String(30), nullable=False, index=True)
    total_applications = Column(Integer, nullable=False, default=0)
    approved_applications = Column(Integer, nullable=False, default=0)
    rejected_applications = Column(Integer, nullable=False, default=0)
    pending_applications = Column(Integer, nullable=False, default=0)
    total_loan_amount = Column(Numeric(18, 2), nullable=False, default=0)
    approved_loan_amount = Column(Numeric(18, 2), nullable=False, default=0)
    approval_rate = Column(Integer, nullable=False, default=0)
    generated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
