from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.stages import REPORT_STAGES, Stage, has_reached
from app.models.loan_application import LoanApplication
from app.models.loan_workflow_stage import LoanWorkflowStage
from app.models.weekly_report import WeeklyReport


logger = logging.getLogger(__name__)

REPORT_HISTORY_LIMIT = 10
_ZERO = Decimal("0")


@dataclass
class WeeklySummary:
    week_start: date
    role: str
    total_applications: int = 0
    approved_applications: int = 0
    rejected_applications: int = 0
    pending_applications: int = 0
    total_loan_amount: Decimal = _ZERO
    approved_loan_amount: Decimal = _ZERO
    approval_rate: int = 0


def week_start_for(value: date | datetime | None = None) -> date:
    """Monday of the UTC week containing ``value`` (today when omitted)."""
    if value is None:
        value = datetime.now(timezone.utc)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        value = value.date()
    return value - timedelta(days=value.weekday())


def week_window(week_start: date) -> tuple[datetime, datetime]:
    start = datetime.combine(week_start, time.min, tzinfo=timezone.utc)
    return start, start + timedelta(days=7)


def approval_rate(approved: int, total: int) -> int:
    if total <= 0:
        return 0
    rate = Decimal(approved) * 100 / Decimal(total)
    return int(rate.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def summarize_week(
    rows: Iterable[tuple[LoanApplication, LoanWorkflowStage]],
    role: Stage,
    week_start: date,
) -> WeeklySummary:
    summary = WeeklySummary(week_start=week_start, role=role.value)
    for application, workflow in rows:
        current = workflow.stage
        if current is None or not has_reached(current, role):
            continue
        amount = Decimal(application.loan_amount or 0)
        summary.total_applications += 1
        summary.total_loan_amount += amount
        decision = workflow.decision_for(role)
        if decision.approved is True:
            summary.approved_applications += 1
            summary.approved_loan_amount += amount
        elif decision.approved is False:
            summary.rejected_applications += 1
        else:
            summary.pending_applications += 1
    summary.approval_rate = approval_rate(summary.approved_applications, summary.total_applications)
    return summary


async def _load_week(
    db: AsyncSession,
    week_start: date,
) -> list[tuple[LoanApplication, LoanWorkflowStage]]:
    start, end = week_window(week_start)
    stmt = (
        select(LoanApplication, LoanWorkflowStage)
        .join(LoanWorkflowStage, LoanWorkflowStage.loan_application_id == LoanApplication.id)
        .where(LoanApplication.created_at >= start, LoanApplication.created_at < end)
    )
    result = await db.execute(stmt)
    return [(row[0], row[1]) for row in result.all()]


async def generate_weekly_reports(
    db: AsyncSession,
    week_start: date | None = None,
) -> list[dict]:
    """Recompute and upsert one report per reviewing role for a week.

    Safe to re-run: rows are keyed by ``(week_start, role)`` and overwritten.
    """
    monday = week_start_for(week_start)
    rows = await _load_week(db, monday)
    generated_at = datetime.now(timezone.utc)

    reports: list[dict] = []
    for role in REPORT_STAGES:
        values = asdict(summarize_week(rows, role, monday))
        values["generated_at"] = generated_at
        insert_stmt = insert(WeeklyReport).values(**values)
        stmt = insert_stmt.on_conflict_do_update(
            index_elements=[WeeklyReport.week_start, WeeklyReport.role],
            set_={
                "total_applications": insert_stmt.excluded.total_applications,
                "approved_applications": insert_stmt.excluded.approved_applications,
                "rejected_applications": insert_stmt.excluded.rejected_applications,
                "pending_applications": insert_stmt.excluded.pending_applications,
                "total_loan_amount": insert_stmt.excluded.total_loan_amount,
                "approved_loan_amount": insert_stmt.excluded.approved_loan_amount,
                "approval_rate": insert_stmt.excluded.approval_rate,
                "generated_at": insert_stmt.excluded.generated_at,
            },
        )
        await db.execute(stmt)
        reports.append(values)

    await db.commit()
    logger.info(
        "Weekly reports generated week_start=%s applications=%d",
        monday.isoformat(),
        len(rows),
    )
    return reports


async def list_weekly_reports(
    db: AsyncSession,
    role: Stage,
    *,
    limit: int = REPORT_HISTORY_LIMIT,
) -> list[WeeklyReport]:
    stmt = (
        select(WeeklyReport)
        .where(WeeklyReport.role == role.value)
        .order_by(WeeklyReport.week_start.desc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
