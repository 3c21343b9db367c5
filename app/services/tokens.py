"""
Socket authentication tokens.

A user's token is a time-invariant digest of their id keyed with the
process secret. It is embedded in pages and presented with the user id on
the socket channel to authenticate the connection.
"""

import hashlib
import hmac
from typing import Optional

from app.core.config import settings
from app.models.user import User


def derive_token(user: User, secret: Optional[str] = None) -> str:
    """Return (and cache on the user) the hex token for ``user``"""
    if user.sock_key is None:
        salt = (secret if secret is not None else settings.SESSION_SECRET).encode("utf-8")
        user.sock_key = hmac.new(salt, str(user.id).encode("utf-8"), hashlib.sha256).hexdigest()
    return user.sock_key


def validate_token(user: Optional[User], presented: Optional[str]) -> bool:
    if user is None or not isinstance(presented, str):
        return False
    return hmac.compare_digest(presented.encode("utf-8"), derive_token(user).encode("utf-8"))
