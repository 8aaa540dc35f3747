import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from app.core.stages import ApplicationStatus
from app.db.base import Base
from app.models.types import EncryptedString


_STATUS_VALUES = ", ".join(f"'{status.value}'" for status in ApplicationStatus)


class LoanApplication(Base):
    __tablename__ = "loan_applications"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("loan_amount > 0", name="loan_amount_positive"),
        CheckConstraint("monthly_income >= 0", name="monthly_income_nonneg"),
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="status"),
        CheckConstraint(
            "risk_assessment IS NULL OR risk_assessment IN ('low', 'medium', 'high')",
            name="risk_assessment",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    client_name = Column(String(255), nullable=False)
    loan_amount = Column(Numeric(18, 2), nullable=False)
    loan_type = Column(String(50), nullable=False)
    purpose_of_loan = Column(Text, nullable=False)
    monthly_income = Column(Numeric(18, 2), nullable=False)
    employment_status = Column(String(50), nullable=False)
    phone_number = Column(String(50), nullable=False)
    address = Column(String(255), nullable=False)
    id_number = Column(EncryptedString(), nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    current_approver = Column(
        UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True
    )
    status = Column(
        String(30),
        nullable=False,
        default=ApplicationStatus.PENDING_FIELD_OFFICER.value,
        index=True,
    )
    risk_assessment = Column(String(10), nullable=True)
    approval_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    downsizing_reason = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    last_updated = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __mapper_args__ = {"version_id_col": version}
