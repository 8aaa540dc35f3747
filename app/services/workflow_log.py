from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_audit_logger
from app.models.workflow_log import WorkflowLogEntry


logger = logging.getLogger(__name__)
audit_logger = get_audit_logger()


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: lambda v: str(v),
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
        },
    )


def model_snapshot(model: Any, *, include: Iterable[str] | None = None) -> dict[str, Any]:
    if model is None:
        return {}
    wanted = set(include) if include is not None else None
    data: dict[str, Any] = {}
    for column in model.__table__.columns:
        name = column.name
        if wanted is not None and name not in wanted:
            continue
        data[name] = getattr(model, name)
    return serialize_for_audit(data)


async def append_log_entry(
    db: AsyncSession,
    *,
    loan_application_id: UUID,
    action: str,
    performed_by: UUID,
    status: str | None,
    old_value: Any | None = None,
    new_value: Any | None = None,
) -> bool:
    """Append one workflow log row in its own commit.

    Runs after the decision has been committed, so a failure here is logged
    and swallowed; the caller's response does not depend on it.
    """
    entry = WorkflowLogEntry(
        loan_application_id=loan_application_id,
        action=action,
        performed_by=performed_by,
        status=status,
        old_value=serialize_for_audit(old_value) if old_value is not None else None,
        new_value=serialize_for_audit(new_value) if new_value is not None else None,
    )
    db.add(entry)
    try:
        await db.commit()  # commit-ok: best-effort log after the decision commit
    except SQLAlchemyError:
        await db.rollback()
        logger.warning(
            "Workflow log append failed action=%s",
            action,
            exc_info=True,
            extra={"loan_id": loan_application_id},
        )
        return False
    audit_logger.info(
        "%s status=%s performed_by=%s",
        action,
        status,
        performed_by,
        extra={"loan_id": loan_application_id},
    )
    return True


async def list_log_entries(
    db: AsyncSession,
    loan_application_id: UUID,
    *,
    limit: int = 100,
) -> tuple[list[WorkflowLogEntry], int]:
    count_stmt = (
        select(func.count())
        .select_from(WorkflowLogEntry)
        .where(WorkflowLogEntry.loan_application_id == loan_application_id)
    )
    total = int((await db.execute(count_stmt)).scalar_one() or 0)
    stmt = (
        select(WorkflowLogEntry)
        .where(WorkflowLogEntry.loan_application_id == loan_application_id)
        .order_by(WorkflowLogEntry.performed_at.desc())
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all()), total
