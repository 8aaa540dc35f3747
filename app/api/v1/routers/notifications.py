from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.models.profile import Profile
from app.schemas.notifications import NotificationDTO, NotificationListResponse
from app.services import notifications


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse, summary="List the caller's notifications")
async def list_my_notifications(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    current_user: Profile = Depends(deps.require_authenticated_user),
    db: AsyncSession = Depends(deps.get_db_session),
) -> NotificationListResponse:
    items, total = await notifications.list_notifications(db, current_user.id, limit=limit, offset=offset)
    return NotificationListResponse(
        items=[NotificationDTO.model_validate(item) for item in items],
        total=total,
    )
