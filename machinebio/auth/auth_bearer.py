from typing import Optional

from fastapi import HTTPException, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from machinebio.auth.auth_handler import decode_jwt


class JWTBearer(HTTPBearer):
    """Validates the bearer token and returns its payload (or None when optional)."""

    def __init__(self, auto_error: bool = True):
        super().__init__(auto_error=auto_error)

    async def __call__(self, request: Request) -> Optional[dict]:
        try:
            credentials: Optional[HTTPAuthorizationCredentials] = await super().__call__(request)
        except HTTPException:
            if self.auto_error:
                raise HTTPException(status_code=401, detail="Missing or invalid authorization header")
            return None

        if credentials is None:
            return None

        if credentials.scheme != "Bearer":
            if self.auto_error:
                raise HTTPException(status_code=401, detail="Invalid authentication scheme.")
            return None

        payload = decode_jwt(credentials.credentials)
        if payload is None:
            if self.auto_error:
                raise HTTPException(status_code=401, detail="Invalid or expired token")
            return None

        return payload
