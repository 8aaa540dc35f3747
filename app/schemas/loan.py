from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EmploymentStatus(str, Enum):
    EMPLOYED = "employed"
    SELF_EMPLOYED = "self-employed"
    UNEMPLOYED = "unemployed"
    RETIRED = "retired"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class LoanApplicationCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    client_name: str = Field(min_length=1, max_length=255)
    loan_amount: Decimal = Field(gt=0, max_digits=18, decimal_places=2)
    loan_type: str = Field(min_length=1, max_length=50)
    purpose_of_loan: str = Field(min_length=1)
    monthly_income: Decimal = Field(ge=0, max_digits=18, decimal_places=2)
    employment_status: EmploymentStatus
    phone_number: str = Field(min_length=1, max_length=50)
    address: str = Field(min_length=1, max_length=255)
    id_number: str = Field(min_length=1, max_length=64)
    notes: str | None = None
    current_approver: UUID | None = None

    @field_validator("client_name", "loan_type", "purpose_of_loan", "phone_number", "address", "id_number")
    @classmethod
    def non_empty(cls, v: str) -> str:
        value = (v or "").strip()
        if not value:
            raise ValueError("Value cannot be empty")
        return value

    @field_validator("employment_status", mode="before")
    @classmethod
    def normalize_employment(cls, v):
        if isinstance(v, str):
            return v.strip().lower().replace("_", "-").replace(" ", "-")
        return v


class LoanApplicationDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    client_name: str
    loan_amount: Decimal
    loan_type: str
    purpose_of_loan: str
    monthly_income: Decimal
    employment_status: str
    phone_number: str
    address: str
    status: str
    risk_assessment: str | None = None
    approval_notes: str | None = None
    rejection_reason: str | None = None
    downsizing_reason: str | None = None
    created_by: UUID
    current_approver: UUID | None = None
    created_at: datetime | None = None
    last_updated: datetime | None = None
