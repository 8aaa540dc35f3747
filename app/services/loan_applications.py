from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import WorkflowPersistenceError
from app.core.stages import ApplicationStatus
from app.models.loan_application import LoanApplication
from app.models.profile import Profile
from app.schemas.loan import EmploymentStatus, LoanApplicationCreate, RiskLevel
from app.services import notifications, workflow_log
from app.services.workflow_bootstrap import new_workflow


logger = logging.getLogger(__name__)

# Repayment horizon used for the debt-to-income estimate at intake.
DTI_TERM_MONTHS = 24
LOW_DTI_THRESHOLD = Decimal("0.3")
HIGH_DTI_THRESHOLD = Decimal("0.5")

_EMPLOYMENT_RISK = {
    EmploymentStatus.EMPLOYED.value: RiskLevel.LOW,
    EmploymentStatus.SELF_EMPLOYED.value: RiskLevel.MEDIUM,
}


def debt_to_income(loan_amount: Decimal, monthly_income: Decimal) -> Decimal | None:
    if not monthly_income or monthly_income <= 0:
        return None
    return Decimal(loan_amount) / DTI_TERM_MONTHS / Decimal(monthly_income)


def assess_risk(
    loan_amount: Decimal,
    monthly_income: Decimal,
    employment_status: str | None,
) -> RiskLevel:
    employment_risk = _EMPLOYMENT_RISK.get((employment_status or "").lower(), RiskLevel.HIGH)
    dti = debt_to_income(loan_amount, monthly_income)
    if dti is None:
        return RiskLevel.HIGH
    if dti < LOW_DTI_THRESHOLD and employment_risk == RiskLevel.LOW:
        return RiskLevel.LOW
    if dti > HIGH_DTI_THRESHOLD or employment_risk == RiskLevel.HIGH:
        return RiskLevel.HIGH
    return RiskLevel.MEDIUM


async def submit_application(
    db: AsyncSession,
    payload: LoanApplicationCreate,
    creator: Profile,
) -> LoanApplication:
    risk = assess_risk(payload.loan_amount, payload.monthly_income, payload.employment_status)
    now = datetime.now(timezone.utc)
    application = LoanApplication(
        client_name=payload.client_name,
        loan_amount=payload.loan_amount,
        loan_type=payload.loan_type,
        purpose_of_loan=payload.purpose_of_loan,
        monthly_income=payload.monthly_income,
        employment_status=payload.employment_status,
        phone_number=payload.phone_number,
        address=payload.address,
        id_number=payload.id_number,
        notes=payload.notes,
        created_by=creator.id,
        current_approver=payload.current_approver,
        status=ApplicationStatus.PENDING_FIELD_OFFICER.value,
        risk_assessment=risk.value,
        created_at=now,
        last_updated=now,
    )
    db.add(application)
    try:
        await db.flush()
        db.add(new_workflow(application.id))
        if application.current_approver:
            notifications.queue_notification(
                db,
                user_id=application.current_approver,
                entity_id=application.id,
                message=(
                    f"New loan application from {application.client_name} "
                    f"({risk.value} risk) is awaiting review."
                ),
            )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("Loan application submission failed")
        raise WorkflowPersistenceError("Failed to submit loan application") from exc

    logger.info(
        "Loan application submitted risk=%s",
        risk.value,
        extra={"loan_id": application.id},
    )
    await workflow_log.append_log_entry(
        db,
        loan_application_id=application.id,
        action=f"submitted by {creator.role}",
        performed_by=creator.id,
        status=application.status,
        new_value={"loan_amount": application.loan_amount, "risk_assessment": risk.value},
    )
    return application
