"""Bearer-token authentication against Supabase Auth."""

from typing import Optional

from fastapi import HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..log import get_logger

logger = get_logger(__name__)


class JWTBearer(HTTPBearer):
    """Resolve the caller from ``Authorization: Bearer <token>``.

    The token is handed to the Supabase client stored on ``app.state`` and the
    dependency yields ``{"id", "email"}`` for the authenticated user.
    """

    def __init__(self, auto_error: bool = True):
        super().__init__(auto_error=auto_error)

    async def __call__(self, request: Request) -> Optional[dict]:
        credentials: Optional[HTTPAuthorizationCredentials] = await super().__call__(request)
        if credentials is None:
            return None
        if credentials.scheme.lower() != "bearer":
            raise HTTPException(status_code=401, detail="Invalid authentication scheme")

        client = request.app.state.supabase
        try:
            response = client.auth.get_user(credentials.credentials)
        except Exception as e:
            logger.info("token_rejected", error=str(e))
            raise HTTPException(status_code=401, detail="Invalid or expired token")

        user = getattr(response, "user", None)
        if user is None:
            raise HTTPException(status_code=401, detail="Invalid or expired token")
        return {"id": str(user.id), "email": getattr(user, "email", None)}
