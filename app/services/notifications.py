from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import Notification


RELATED_LOAN_APPLICATION = "loan_application"


def queue_notification(
    db: AsyncSession,
    *,
    user_id: UUID,
    message: str,
    entity_id,
    related_to: str = RELATED_LOAN_APPLICATION,
) -> Notification:
    """Stage a notification on the session; the caller owns the commit."""
    notification = Notification(
        user_id=user_id,
        message=message,
        related_to=related_to,
        entity_id=str(entity_id),
        is_read=False,
    )
    db.add(notification)
    return notification


async def list_notifications(
    db: AsyncSession,
    user_id: UUID,
    *,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Notification], int]:
    count_stmt = select(func.count()).select_from(Notification).where(Notification.user_id == user_id)
    total = int((await db.execute(count_stmt)).scalar_one() or 0)
    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all()), total
