from typing import Optional

import structlog
from fastapi import Depends, Header, HTTPException
from jose import jwt, JWTError

from stripe_gateway.config import Settings
from stripe_gateway.dependencies import get_settings

logger = structlog.get_logger(__name__)


def require_service_auth(
    x_api_key: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
):
    """Service-to-service auth: X-API-Key, or a bearer JWT signed with JWT_SECRET."""
    if not settings.service_api_key and not settings.jwt_secret:
        logger.error("service_auth_not_configured")
        raise HTTPException(status_code=500, detail="Server configuration error")

    if x_api_key:
        if settings.service_api_key and x_api_key == settings.service_api_key:
            return True
        raise HTTPException(status_code=403, detail="Invalid API key")

    if authorization:
        try:
            scheme, token = authorization.split()
            if scheme.lower() != "bearer" or not settings.jwt_secret:
                raise ValueError(scheme)
            jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
        except (ValueError, JWTError):
            raise HTTPException(status_code=403, detail="Invalid API key")
        return True

    raise HTTPException(status_code=401, detail="Missing API key")
