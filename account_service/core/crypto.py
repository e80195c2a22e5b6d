from __future__ import annotations

import base64
import hashlib
import hmac

from argon2 import PasswordHasher

_ph = PasswordHasher()


def cognito_secret_hash(username: str, client_id: str, client_secret: str) -> str:
    """SECRET_HASH for app clients that have a secret: base64(HMAC-SHA256(secret, username + client_id))."""
    msg = (username + client_id).encode("utf-8")
    digest = hmac.new(client_secret.encode("utf-8"), msg, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def hash_password(password: str) -> str:
    return _ph.hash(password)

