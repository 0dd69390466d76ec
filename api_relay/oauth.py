"""
Authorization-code + PKCE handshake against the provider.
Builds the login URL, redeems the returned code exactly once per session, refreshes
access tokens, and keeps the resulting tokens in the TokenStore.
"""
import enum
import logging
from dataclasses import dataclass

import httpx

from api_relay.config import ClientConfig
from api_relay.errors import RefreshError, SessionError, TokenExchangeError, UpstreamApiError
from api_relay.flow_store import AuthSessionStore
from api_relay.pkce import build_authorize_url, generate_pkce
from api_relay.token_store import TokenStore, UserTokenRecord

logger = logging.getLogger(__name__)

# Google returns expires_in on every grant; fall back to its usual lifetime if absent
DEFAULT_EXPIRES_IN = 3600


class LoginState(str, enum.Enum):
    INITIATED = "initiated"
    REDIRECTED = "redirected"
    CALLBACK_RECEIVED = "callback_received"
    EXCHANGED = "exchanged"
    FAILED = "failed"


@dataclass(frozen=True)
class AuthorizationRequest:
    url: str
    session_id: str
    expires_in: int

    def to_dict(self) -> dict:
        return {"authUrl": self.url, "sessionId": self.session_id, "expiresIn": self.expires_in}


def _log_state(session_id: str, state: LoginState) -> None:
    logger.debug("login session=%s... state=%s", session_id[:8], state.value)


def _parse_token_response(response: httpx.Response) -> tuple[dict, str | None, str | None]:
    """Returns (body, error, error_description). error is None on a usable grant."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    error = body.get("error")
    description = body.get("error_description")
    if response.status_code != 200 and not error:
        error = f"http_{response.status_code}"
        description = description or (response.text[:200] if response.text else None)
    if not error and not body.get("access_token"):
        error = "invalid_response"
        description = "Token endpoint response has no access_token"
    return body, error, description


class OAuthCoordinator:
    def __init__(
        self,
        config: ClientConfig,
        sessions: AuthSessionStore,
        tokens: TokenStore,
        http: httpx.AsyncClient,
    ):
        self.config = config
        self.sessions = sessions
        self.tokens = tokens
        self.http = http

    def build_authorization_url(self, *, user_agent: str | None = None) -> AuthorizationRequest:
        """
        Generate PKCE verifier + challenge, open a pending session, and return the
        provider URL. The session id doubles as the anti-CSRF state parameter.
        """
        code_verifier, code_challenge = generate_pkce()
        session_id = self.sessions.create(code_verifier, user_agent=user_agent)
        _log_state(session_id, LoginState.INITIATED)

        url = build_authorize_url(
            authorize_endpoint=self.config.authorize_endpoint,
            client_id=self.config.client_id,
            redirect_uri=self.config.redirect_uri,
            scopes=self.config.scopes,
            state=session_id,
            code_challenge=code_challenge,
        )
        _log_state(session_id, LoginState.REDIRECTED)
        return AuthorizationRequest(url=url, session_id=session_id, expires_in=int(self.sessions.ttl))

    async def _post_token(self, data: dict) -> httpx.Response:
        data["client_id"] = self.config.client_id
        if self.config.client_secret:
            data["client_secret"] = self.config.client_secret
        return await self.http.post(
            self.config.token_endpoint,
            data=data,
            headers={"Accept": "application/json"},
        )

    async def exchange_code(self, code: str, state: str, user_id: str | None = None) -> UserTokenRecord:
        """
        Redeem an authorization code. The session named by state is consumed first, so a
        replayed or foreign state fails with SessionError before any network call.
        """
        code_verifier = self.sessions.consume(state)
        if code_verifier is None:
            logger.info("Code exchange rejected: unknown, used or expired session")
            raise SessionError()
        _log_state(state, LoginState.CALLBACK_RECEIVED)

        try:
            response = await self._post_token(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.config.redirect_uri,
                    "code_verifier": code_verifier,
                }
            )
        except httpx.HTTPError as e:
            _log_state(state, LoginState.FAILED)
            logger.warning("Token endpoint unreachable: %s", e)
            raise TokenExchangeError("network_error", str(e)) from e

        body, error, description = _parse_token_response(response)
        if error:
            _log_state(state, LoginState.FAILED)
            logger.warning("Token exchange failed: status=%s error=%s", response.status_code, error)
            raise TokenExchangeError(error, description)

        record = UserTokenRecord(
            user_id=user_id or self.tokens.new_user_id(),
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            expires_at=self.tokens.now() + int(body.get("expires_in") or DEFAULT_EXPIRES_IN),
            scope=body.get("scope", ""),
        )
        self.tokens.put(record)
        _log_state(state, LoginState.EXCHANGED)
        return record

    async def refresh(self, refresh_token: str, user_id: str | None = None) -> UserTokenRecord:
        """
        Exchange a refresh token for a new access token. Updates the stored record when
        user_id is known. Raises RefreshError when the provider rejects the grant, and
        UpstreamApiError when the token endpoint is unreachable or failing (retryable).
        """
        try:
            response = await self._post_token({"grant_type": "refresh_token", "refresh_token": refresh_token})
        except httpx.HTTPError as e:
            logger.warning("Token endpoint unreachable during refresh: %s", e)
            raise UpstreamApiError(502, f"Could not reach token endpoint: {e}") from e

        body, error, description = _parse_token_response(response)
        if response.status_code >= 500 and not body.get("error"):
            logger.warning("Token endpoint failed during refresh: status=%s", response.status_code)
            raise UpstreamApiError(502, f"Token endpoint returned {response.status_code}")
        if error:
            logger.warning("Refresh failed: status=%s error=%s", response.status_code, error)
            raise RefreshError(error, description)

        expires_in = int(body.get("expires_in") or DEFAULT_EXPIRES_IN)
        if user_id:
            record = self.tokens.update_access_token(
                user_id,
                access_token=body["access_token"],
                expires_in=expires_in,
                refresh_token=body.get("refresh_token"),
            )
            if record is not None:
                return record
            logger.debug("Refresh for unknown user id; returning tokens without storing")
        return UserTokenRecord(
            user_id=None,
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token") or refresh_token,
            expires_at=self.tokens.now() + expires_in,
            scope=body.get("scope", ""),
        )

    def logout(self, *, user_id: str | None = None, access_token: str | None = None) -> bool:
        """Drop local tokens immediately. Returns True if anything was invalidated."""
        removed = False
        if user_id and self.tokens.remove(user_id) is not None:
            removed = True
        if access_token:
            self.tokens.revoke_access_token(access_token)
            removed = True
        return removed
