from __future__ import annotations

import base64
import binascii
import secrets
from typing import Optional

from rcindex.errors import AuthError
from rcindex.settings.env import IndexSettings


REALM = "Rclone Index"
CHALLENGE = f'Basic realm="{REALM}"'


def _decode_basic(header: str) -> tuple[str, str]:
    try:
        decoded = base64.b64decode(header[len("Basic ") :].strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise AuthError("Invalid credentials") from e
    username, sep, password = decoded.partition(":")
    if not sep:
        raise AuthError("Invalid credentials")
    return username, password


def check_basic_auth(settings: IndexSettings, authorization: Optional[str]) -> None:
    """
    No-op unless both USERNAME and PASSWORD are configured; otherwise raise AuthError
    for a missing, malformed or mismatched `Authorization: Basic` header.
    """
    if not settings.auth_enabled:
        return
    if not authorization or not authorization.startswith("Basic "):
        raise AuthError("Authentication required", missing=True)
    username, password = _decode_basic(authorization)
    user_ok = secrets.compare_digest(username.encode("utf-8"), (settings.username or "").encode("utf-8"))
    pass_ok = secrets.compare_digest(password.encode("utf-8"), (settings.password or "").encode("utf-8"))
    if not (user_ok and pass_ok):
        raise AuthError("Invalid credentials")
