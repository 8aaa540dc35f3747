import base64
import hashlib
from functools import lru_cache
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import LargeBinary
from sqlalchemy.types import TypeDecorator

from app.core.settings import settings


@lru_cache(maxsize=8)
def _fernet_for(secret: str) -> Fernet:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


class EncryptedString(TypeDecorator):
    """Fernet-encrypted text column; used for client national ID numbers."""

    impl = LargeBinary
    cache_ok = True

    def __init__(self, *, secret: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self._secret = secret

    @property
    def _fernet(self) -> Fernet:
        return _fernet_for(self._secret or settings.secret_key)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return bytes(self._fernet.encrypt(str(value).encode("utf-8")))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            return self._fernet.decrypt(value).decode("utf-8")
        except InvalidToken as exc:  # pragma: no cover - indicates corrupted data or a rotated key
            raise ValueError("Unable to decrypt value") from exc


__all__ = ["EncryptedString"]
