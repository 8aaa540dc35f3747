from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import set_actor_id
from app.core.permissions import PermissionCode, role_has_permission
from app.core.security import decode_access_token
from app.db.session import get_db
from app.models.profile import Profile
from app.services import profiles


bearer_scheme = HTTPBearer(auto_error=False)


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db_session),
) -> Profile:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = decode_access_token(credentials.credentials)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc
    try:
        profile_id = UUID(str(payload["sub"]))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    profile = await profiles.get_profile(db, profile_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    set_actor_id(str(profile.id))
    return profile


async def require_authenticated_user(current_user: Profile = Depends(get_current_user)) -> Profile:
    """Simple guard to require an authenticated user (no permission checks)."""
    return current_user


def require_permission(permission_code: PermissionCode | str):
    async def dependency(current_user: Profile = Depends(require_authenticated_user)) -> Profile:
        if not role_has_permission(current_user.role, permission_code):
            target = permission_code.value if isinstance(permission_code, PermissionCode) else str(permission_code)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "code": "permission_denied",
                    "message": f"Missing permission: {target}",
                    "details": {"permission": target, "role": current_user.role},
                },
            )
        return current_user

    return dependency
