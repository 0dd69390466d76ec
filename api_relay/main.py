"""
API relay backend.
Holds the confidential Google client secret, runs the PKCE login on behalf of the
web/mobile front end, and proxies read-only Google API calls with the user's token.
Port 3001 by default.
"""
import logging
from contextlib import asynccontextmanager
import datetime
import re

import httpx
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field

from api_relay import config
from api_relay.audit import (
    EVENT_CODE_EXCHANGED,
    EVENT_LOGIN_STARTED,
    EVENT_LOGOUT,
    EVENT_RATE_LIMITED,
    EVENT_TOKEN_REFRESHED,
    OUTCOME_FAIL,
    get_client_ip,
    log_audit,
)
from api_relay.auth import USER_ID_HEADER, AuthContext, RequireAuth
from api_relay.errors import RelayError
from api_relay.flow_store import AuthSessionStore
from api_relay.google_api import GoogleApiClient
from api_relay.media import normalize_drive_files
from api_relay.oauth import OAuthCoordinator
from api_relay.picker import ProviderSessionSurface, SelectionPoller
from api_relay.rate_limit import SlidingWindowLimiter
from api_relay.token_store import TokenStore

logger = logging.getLogger(__name__)

DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}")


class TokenRequest(BaseModel):
    code: str | None = None
    state: str | None = None
    user_id: str | None = Field(None, validation_alias=AliasChoices("userId", "user_id"))


class RefreshRequest(BaseModel):
    refresh_token: str | None = None
    user_id: str | None = Field(None, validation_alias=AliasChoices("userId", "user_id"))


class PickerAwaitRequest(BaseModel):
    session_id: str | None = Field(None, validation_alias=AliasChoices("sessionId", "session_id"))


def _bad_request(details: str) -> HTTPException:
    return HTTPException(status_code=400, detail={"error": "invalid_request", "details": details, "reauthenticate": False})


def oauth_rate_limit(request: Request) -> None:
    """Dependency: per-IP limit on /oauth/* routes."""
    ip = get_client_ip(request) or "unknown"
    allowed, retry_after = request.app.state.oauth_limiter.check_and_consume(ip)
    if not allowed:
        log_audit(EVENT_RATE_LIMITED, ip=ip, outcome=OUTCOME_FAIL)
        raise HTTPException(
            status_code=429,
            detail={"error": "rate_limited", "details": "Too many requests, please try again later.", "reauthenticate": False},
            headers={"Retry-After": str(retry_after)},
        )


def create_app(*, transport: httpx.AsyncBaseTransport | None = None) -> FastAPI:
    """
    Build the relay app. transport replaces the outbound HTTP transport (tests pass an
    httpx.MockTransport standing in for Google).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Validate client config and wire stores, HTTP client and coordinators; close on shutdown."""
        client_config = config.load_client_config()
        http = httpx.AsyncClient(timeout=config.HTTP_TIMEOUT, transport=transport)
        app.state.sessions = AuthSessionStore(ttl=config.SESSION_TTL_SECONDS)
        app.state.tokens = TokenStore()
        app.state.oauth = OAuthCoordinator(client_config, app.state.sessions, app.state.tokens, http)
        app.state.google = GoogleApiClient(http)
        app.state.picker = SelectionPoller(app.state.google)
        app.state.oauth_limiter = SlidingWindowLimiter(config.RATE_LIMIT_OAUTH_PER_MINUTE)
        logger.info(
            "Relay ready: client_id=%s confidential=%s redirect_uri=%s",
            client_config.client_id,
            client_config.is_confidential,
            client_config.redirect_uri,
        )
        try:
            yield
        finally:
            await http.aclose()
            app.state.sessions.clear()

    app = FastAPI(title="API Relay", version="1.0.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", USER_ID_HEADER],
    )

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        # Flat {error, details} bodies instead of FastAPI's {"detail": ...}
        if isinstance(exc.detail, dict):
            content = exc.detail
        else:
            content = {"error": "http_error", "details": str(exc.detail), "reauthenticate": exc.status_code == 401}
        return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        fields = ", ".join(".".join(str(p) for p in e.get("loc", ())[1:]) or "body" for e in exc.errors())
        return JSONResponse(
            status_code=400,
            content={"error": "invalid_request", "details": f"Invalid or missing parameter(s): {fields}", "reauthenticate": False},
        )

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "api_relay"}

    # --- OAuth ---

    @app.get("/oauth/url", dependencies=[Depends(oauth_rate_limit)])
    def oauth_url(request: Request):
        """Start a login: returns the Google consent URL and the session id the front end must keep."""
        auth_request = request.app.state.oauth.build_authorization_url(user_agent=request.headers.get("user-agent"))
        log_audit(EVENT_LOGIN_STARTED, ip=get_client_ip(request))
        return {**auth_request.to_dict(), "message": "Use this URL to redirect the user to Google sign-in"}

    @app.post("/oauth/token", dependencies=[Depends(oauth_rate_limit)])
    async def oauth_token(body: TokenRequest, request: Request):
        """Exchange the authorization code (server side, with the client secret)."""
        if not body.code or not body.state:
            raise _bad_request("Missing code or state parameter")
        tokens: TokenStore = request.app.state.tokens
        # Reuse an id only if this server issued it; never adopt client-invented ids
        user_id = body.user_id if body.user_id and tokens.get(body.user_id) is not None else None
        ip = get_client_ip(request)
        try:
            record = await request.app.state.oauth.exchange_code(body.code, body.state, user_id=user_id)
        except RelayError as e:
            log_audit(EVENT_CODE_EXCHANGED, ip=ip, outcome=OUTCOME_FAIL, reason=e.error)
            raise
        log_audit(EVENT_CODE_EXCHANGED, user_id=record.user_id, ip=ip)
        return record.to_dict(tokens.now())

    @app.post("/oauth/refresh", dependencies=[Depends(oauth_rate_limit)])
    async def oauth_refresh(body: RefreshRequest, request: Request):
        if not body.refresh_token:
            raise _bad_request("Refresh token is required")
        ip = get_client_ip(request)
        try:
            record = await request.app.state.oauth.refresh(body.refresh_token, user_id=body.user_id)
        except RelayError as e:
            log_audit(EVENT_TOKEN_REFRESHED, user_id=body.user_id, ip=ip, outcome=OUTCOME_FAIL, reason=e.error)
            raise
        log_audit(EVENT_TOKEN_REFRESHED, user_id=record.user_id, ip=ip)
        now = request.app.state.tokens.now()
        return {"access_token": record.access_token, "expires_in": record.expires_in_seconds(now), "user_id": record.user_id}

    @app.post("/oauth/logout", dependencies=[Depends(oauth_rate_limit)])
    def oauth_logout(request: Request, auth: AuthContext = RequireAuth):
        """Invalidate local tokens now; later calls with them fail without a round trip."""
        request.app.state.oauth.logout(user_id=auth.user_id, access_token=auth.access_token)
        log_audit(EVENT_LOGOUT, user_id=auth.user_id, ip=get_client_ip(request))
        return {"status": "signed_out"}

    # --- Google API proxies ---

    @app.get("/user/profile")
    async def user_profile(request: Request, auth: AuthContext = RequireAuth):
        return await request.app.state.google.get_profile(auth.access_token)

    @app.get("/files")
    async def files(
        request: Request,
        auth: AuthContext = RequireAuth,
        page_size: int = Query(20, alias="pageSize", ge=1, le=100),
    ):
        return await request.app.state.google.list_files(auth.access_token, page_size=page_size)

    @app.get("/calendar/events")
    async def calendar_events(request: Request, date: str | None = None, auth: AuthContext = RequireAuth):
        if not date:
            raise _bad_request("Date parameter is required")
        try:
            if not DATE_RE.fullmatch(date):
                raise ValueError(date)
            datetime.date.fromisoformat(date)
        except ValueError:
            raise _bad_request("Date must be YYYY-MM-DD")
        return await request.app.state.google.list_calendar_events(auth.access_token, date)

    @app.get("/photos")
    async def photos(
        request: Request,
        auth: AuthContext = RequireAuth,
        page_size: int = Query(20, alias="pageSize", ge=1, le=100),
    ):
        """Images from Drive, normalized to the same shape as picker selections."""
        raw_files = await request.app.state.google.list_drive_photos(auth.access_token, page_size=page_size)
        items = [i.to_dict() for i in normalize_drive_files(raw_files)]
        return {"photos": items, "totalCount": len(items)}

    # --- Photos Picker ---

    @app.post("/picker/session")
    async def picker_session(request: Request, auth: AuthContext = RequireAuth):
        session = await request.app.state.picker.open_selection_flow(auth.access_token)
        return session.to_dict()

    @app.get("/picker/url")
    async def picker_url(request: Request, auth: AuthContext = RequireAuth):
        """Same as POST /picker/session, shaped for a mobile WebView."""
        session = await request.app.state.picker.open_selection_flow(auth.access_token)
        return {
            "pickerUrl": session.picker_uri,
            "sessionId": session.session_id,
            "message": "Open this URL to pick photos",
        }

    @app.get("/picker/media")
    async def picker_media(
        request: Request,
        session_id: str | None = Query(None, alias="sessionId"),
        auth: AuthContext = RequireAuth,
    ):
        if not session_id:
            raise _bad_request("Session ID is required")
        items = await request.app.state.picker.fetch_selected(auth.access_token, session_id)
        return {"photos": [i.to_dict() for i in items], "totalCount": len(items), "sessionId": session_id}

    @app.post("/picker/await")
    async def picker_await(body: PickerAwaitRequest, request: Request, auth: AuthContext = RequireAuth):
        """Block until Google reports the selection done (or the hard timeout), then return it."""
        if not body.session_id:
            raise _bad_request("Session ID is required")
        poller: SelectionPoller = request.app.state.picker
        surface = ProviderSessionSurface(poller.api, auth.access_token, body.session_id)
        items = await poller.await_selection(auth.access_token, body.session_id, surface)
        return {"photos": [i.to_dict() for i in items], "totalCount": len(items), "sessionId": body.session_id}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api_relay.main:app",
        host="127.0.0.1",
        port=config.PORT,
        log_level=config.LOG_LEVEL,
        reload=True,
    )
