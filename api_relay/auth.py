"""
Resolve who is calling. One step turns either a Bearer header or a server-issued
X-User-Id into an AuthContext; routes never branch on which one was used.
"""
import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from api_relay.token_store import TokenStore

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"


@dataclass(frozen=True)
class AuthContext:
    access_token: str
    user_id: str | None = None


security = HTTPBearer(auto_error=False)


def _unauthorized(details: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": "unauthorized", "details": details, "reauthenticate": True},
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_token_store(request: Request) -> TokenStore:
    return request.app.state.tokens


def resolve_auth_context(
    tokens: Annotated[TokenStore, Depends(get_token_store)],
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    user_id: Annotated[str | None, Header(alias=USER_ID_HEADER)] = None,
) -> AuthContext:
    """
    Bearer token wins when present. Otherwise the user id must name a live token record.
    User ids are minted by this server at code exchange and are never taken from clients.
    """
    if credentials is not None:
        if credentials.scheme.lower() != "bearer" or not credentials.credentials:
            raise _unauthorized("Bearer scheme required")
        if tokens.is_revoked(credentials.credentials):
            raise _unauthorized("Token has been signed out")
        return AuthContext(access_token=credentials.credentials)

    if user_id:
        record = tokens.get_valid(user_id)
        if record is None:
            logger.debug("No live token for presented user id")
            raise _unauthorized("Token expired or invalid")
        return AuthContext(access_token=record.access_token, user_id=user_id)

    raise _unauthorized("Missing authorization")


RequireAuth = Depends(resolve_auth_context)
