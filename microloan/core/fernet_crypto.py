"""Fernet encryption for client identity fields.

Keys are derived from ``SECRET_KEY`` with PBKDF2. Values written under a
retired secret stay readable while that secret is listed in
``PREVIOUS_SECRET_KEYS``; new writes always use the current one.
"""

from __future__ import annotations

import base64
from functools import lru_cache
from typing import Sequence

from cryptography.fernet import Fernet, MultiFernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from microloan.core.settings import settings

_DEV_SALT_PREFIX = "microloan-fernet-dev-salt-v1"
_MIN_ITERATIONS = 100_000


def _salt_for(secret: str) -> bytes:
    configured = (settings.fernet_kdf_salt or "").strip()
    if configured:
        return configured.encode("utf-8")
    # Development fallback only; deployments set FERNET_KDF_SALT.
    return f"{_DEV_SALT_PREFIX}:{secret[:16]}".encode("utf-8")


@lru_cache(maxsize=16)
def _fernet_for(secret: str) -> Fernet:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_salt_for(secret),
        iterations=max(_MIN_ITERATIONS, settings.fernet_kdf_iterations),
    )
    return Fernet(base64.urlsafe_b64encode(kdf.derive(secret.encode("utf-8"))))


def get_fernet(*, secret: str | None = None, previous: Sequence[str] | None = None) -> MultiFernet:
    current = secret or settings.secret_key
    retired = settings.previous_secret_keys if previous is None else previous
    keys = [current, *(key for key in retired if key and key != current)]
    return MultiFernet([_fernet_for(key) for key in keys])


def encrypt_text(value: str, *, secret: str | None = None, previous: Sequence[str] | None = None) -> bytes:
    return get_fernet(secret=secret, previous=previous).encrypt(value.encode("utf-8"))


def decrypt_text(token: bytes, *, secret: str | None = None, previous: Sequence[str] | None = None) -> str:
    return get_fernet(secret=secret, previous=previous).decrypt(token).decode("utf-8")
