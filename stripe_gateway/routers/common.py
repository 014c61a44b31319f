import structlog
from fastapi import HTTPException

from stripe_gateway.stripe_service import is_not_found

logger = structlog.get_logger(__name__)


def stripe_http_error(err: Exception, action: str, not_found: str = None) -> HTTPException:
    """Translate a processor error into the HTTP error returned to the caller."""
    if not_found and is_not_found(err):
        return HTTPException(status_code=404, detail=not_found)
    logger.error("stripe_call_failed", action=action, error=str(err))
    message = getattr(err, "user_message", None) or str(err) or "Internal server error"
    return HTTPException(status_code=500, detail=message)


def list_response(key: str, result) -> dict:
    return {key: list(result.data), "hasMore": result.has_more}
