from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.permissions import StaffRole, parse_role
from app.core.stages import Stage
from app.models.profile import Profile


async def get_profile(db: AsyncSession, profile_id: UUID) -> Profile | None:
    stmt = select(Profile).where(Profile.id == profile_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


def workflow_stage_for(profile: Profile | None) -> Stage | None:
    """The approval stage a staff member decides; ``None`` for admins and unknown roles."""
    if profile is None:
        return None
    role = parse_role(profile.role)
    if role is None or role == StaffRole.ADMIN:
        return None
    return role.stage
