"""
Audit logging. Security-relevant events only; never tokens, codes, verifiers or secrets.
Written to the "api_relay.audit" logger so deployments can route it separately.
"""
import logging

from fastapi import Request

logger = logging.getLogger("api_relay.audit")

EVENT_LOGIN_STARTED = "login_started"
EVENT_CODE_EXCHANGED = "code_exchanged"
EVENT_TOKEN_REFRESHED = "token_refreshed"
EVENT_LOGOUT = "logout"
EVENT_RATE_LIMITED = "rate_limited"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


def get_client_ip(request: Request | None) -> str | None:
    """Client IP if available (request.client.host). Forwarding headers are not trusted."""
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def log_audit(
    event_type: str,
    *,
    user_id: str | None = None,
    ip: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
    reason: str | None = None,
) -> None:
    """Emit one audit record."""
    # user ids are bearer-like; only a prefix is logged
    uid = f"{user_id[:6]}..." if user_id else None
    level = logging.INFO if outcome == OUTCOME_SUCCESS else logging.WARNING
    logger.log(
        level,
        "event=%s outcome=%s user=%s ip=%s reason=%s",
        event_type,
        outcome,
        uid,
        ip,
        reason,
    )
