from dataclasses import dataclass
from uuid import UUID, uuid4

from fastapi import Header, HTTPException, Request, status

CORRELATION_HEADER = "X-Correlation-ID"
USER_HEADER = "X-User-Id"


@dataclass(frozen=True)
class RequestContext:
    correlation_id: str
    ip_address: str | None
    user_agent: str | None


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    if request.client is not None:
        return request.client.host
    return None


def get_request_context(request: Request) -> RequestContext:
    correlation_id = (request.headers.get(CORRELATION_HEADER) or "").strip()
    return RequestContext(
        correlation_id=correlation_id or str(uuid4()),
        ip_address=_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )


def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias=USER_HEADER),
) -> UUID:
    """
    Id of the authenticated user.

    Authentication happens at the gateway, which forwards the resolved
    user id in `X-User-Id`.
    """
    if not x_user_id:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Not authenticated")
    try:
        return UUID(x_user_id)
    except ValueError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid user id")
