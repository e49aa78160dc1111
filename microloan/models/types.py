from typing import Optional, Sequence

from cryptography.fernet import InvalidToken
from sqlalchemy import LargeBinary
from sqlalchemy.types import TypeDecorator

from microloan.core.fernet_crypto import decrypt_text, encrypt_text


class EncryptedString(TypeDecorator):
    """Text stored as a Fernet token; readable under the current or any retired key."""

    impl = LargeBinary
    cache_ok = True

    def __init__(self, *, secret: Optional[str] = None, previous: Optional[Sequence[str]] = None, **kwargs):
        super().__init__(**kwargs)
        self._keys = {"secret": secret, "previous": tuple(previous) if previous is not None else None}

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return encrypt_text(str(value), **self._keys)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            return decrypt_text(bytes(value), **self._keys)
        except InvalidToken as exc:
            raise ValueError("Stored identity field cannot be decrypted with the configured keys") from exc


__all__ = ["EncryptedString"]
