from __future__ import annotations

from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from app.core.settings import settings


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify an identity-provider access token and return its claims.

    Raises ``ValueError`` with a client-safe message when the token is
    expired, malformed, signed with the wrong key or missing a subject.
    """
    options = {"verify_aud": bool(settings.jwt_audience)}
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            options=options,
        )
    except ExpiredSignatureError as exc:
        raise ValueError("Token expired") from exc
    except JWTError as exc:
        raise ValueError("Invalid token") from exc
    if not payload.get("sub"):
        raise ValueError("Invalid token")
    return payload
