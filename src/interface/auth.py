from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from fastapi import Header, HTTPException, status
from firebase_admin import auth
from firebase_admin.exceptions import FirebaseError

from infrastructure.firebase_app import init_firebase_app

logger = logging.getLogger(__name__)


def verify_firebase_token(token: str) -> dict[str, Any]:
    init_firebase_app()
    return auth.verify_id_token(token)


class UserResolver:
    """FastAPI dependency that maps a request to a ledger user id.

    With `require_token` set, the bearer token must be a valid Firebase ID
    token and its `uid` is used. Otherwise every request is `default_user`.
    """

    def __init__(
        self,
        require_token: bool,
        default_user: str = "local",
        verify_token: Callable[[str], dict[str, Any]] = verify_firebase_token,
    ):
        self._require_token = require_token
        self._default_user = default_user
        self._verify_token = verify_token

    def __call__(self, authorization: Optional[str] = Header(default=None)) -> str:
        if not self._require_token:
            return self._default_user

        scheme, _, token = (authorization or "").partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing bearer token",
                headers={"WWW-Authenticate": "Bearer"},
            )
        try:
            claims = self._verify_token(token.strip())
        except (ValueError, FirebaseError) as exc:
            logger.info("UserResolver rejected token: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token",
                headers={"WWW-Authenticate": "Bearer"},
            ) from exc

        uid = claims.get("uid") or claims.get("sub")
        if not uid:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token has no user id")
        return str(uid)
