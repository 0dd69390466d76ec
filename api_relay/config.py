"""
API relay configuration. Values come from the environment; no secrets in this file.
Client secret stays on the server and is never returned to the front end.
"""
import os
from dataclasses import dataclass

from api_relay.errors import ConfigurationError

# Google OAuth client (web client; secret makes it a confidential client)
GOOGLE_CLIENT_ID = os.environ.get("GOOGLE_CLIENT_ID", "").strip()
GOOGLE_CLIENT_SECRET = os.environ.get("GOOGLE_CLIENT_SECRET", "").strip() or None

# Where Google redirects after consent; must be registered for the client
REDIRECT_URI = os.environ.get("OAUTH_REDIRECT_URI", "http://localhost:3000").strip()

DEFAULT_SCOPES = (
    "https://www.googleapis.com/auth/userinfo.profile "
    "https://www.googleapis.com/auth/userinfo.email "
    "https://www.googleapis.com/auth/drive.readonly "
    "https://www.googleapis.com/auth/calendar.readonly "
    "https://www.googleapis.com/auth/photoslibrary.readonly "
    "https://www.googleapis.com/auth/photospicker.mediaitems.readonly"
)
SCOPES = os.environ.get("OAUTH_SCOPES", DEFAULT_SCOPES).split()

# Provider endpoints. Overridable so tests and staging can point elsewhere.
AUTHORIZE_ENDPOINT = os.environ.get("GOOGLE_AUTHORIZE_ENDPOINT", "https://accounts.google.com/o/oauth2/v2/auth")
TOKEN_ENDPOINT = os.environ.get("GOOGLE_TOKEN_ENDPOINT", "https://oauth2.googleapis.com/token")
PEOPLE_API_URL = os.environ.get("GOOGLE_PEOPLE_API_URL", "https://people.googleapis.com/v1").rstrip("/")
DRIVE_API_URL = os.environ.get("GOOGLE_DRIVE_API_URL", "https://www.googleapis.com/drive/v3").rstrip("/")
CALENDAR_API_URL = os.environ.get("GOOGLE_CALENDAR_API_URL", "https://www.googleapis.com/calendar/v3").rstrip("/")
PICKER_API_URL = os.environ.get("GOOGLE_PICKER_API_URL", "https://photospicker.googleapis.com/v1").rstrip("/")

# Pending login lifetime (seconds); abandoned flows are swept after this
SESSION_TTL_SECONDS = int(os.environ.get("OAUTH_SESSION_TTL_SECONDS", "600"))

# Outbound HTTP timeout (seconds)
HTTP_TIMEOUT = float(os.environ.get("RELAY_HTTP_TIMEOUT", "10"))

# Photo Picker polling
PICKER_MAX_RETRIES = int(os.environ.get("PICKER_MAX_RETRIES", "3"))
PICKER_RETRY_STEP_SECONDS = float(os.environ.get("PICKER_RETRY_STEP_SECONDS", "2"))
PICKER_CLOSE_POLL_SECONDS = float(os.environ.get("PICKER_CLOSE_POLL_SECONDS", "1"))
PICKER_HARD_TIMEOUT_SECONDS = float(os.environ.get("PICKER_HARD_TIMEOUT_SECONDS", "30"))
PICKER_SETTLE_SECONDS = float(os.environ.get("PICKER_SETTLE_SECONDS", "3"))

# Front-end origins allowed by CORS (web dev server, Expo web, Expo dev)
ALLOWED_ORIGINS = [
    o.strip()
    for o in os.environ.get(
        "ALLOWED_ORIGINS",
        "http://localhost:3000,http://localhost:8081,exp://localhost:19000",
    ).split(",")
    if o.strip()
]

# Rate limiting on /oauth/* per client IP, per minute
RATE_LIMIT_OAUTH_PER_MINUTE = int(os.environ.get("RELAY_RATE_LIMIT_OAUTH_PER_MINUTE", "30"))

PORT = int(os.environ.get("PORT", "3001"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info").lower()


@dataclass(frozen=True)
class ClientConfig:
    client_id: str
    redirect_uri: str
    scopes: tuple[str, ...]
    authorize_endpoint: str
    token_endpoint: str
    client_secret: str | None = None

    @property
    def is_confidential(self) -> bool:
        return self.client_secret is not None


def load_client_config() -> ClientConfig:
    """
    Build the OAuth client config from module settings.
    Raises ConfigurationError when client id or redirect URI is missing.
    """
    missing = [name for name, value in (("GOOGLE_CLIENT_ID", GOOGLE_CLIENT_ID), ("OAUTH_REDIRECT_URI", REDIRECT_URI)) if not value]
    if missing:
        raise ConfigurationError(f"Missing required setting(s): {', '.join(missing)}")
    if not SCOPES:
        raise ConfigurationError("OAUTH_SCOPES must name at least one scope")
    return ClientConfig(
        client_id=GOOGLE_CLIENT_ID,
        redirect_uri=REDIRECT_URI,
        scopes=tuple(SCOPES),
        authorize_endpoint=AUTHORIZE_ENDPOINT,
        token_endpoint=TOKEN_ENDPOINT,
        client_secret=GOOGLE_CLIENT_SECRET,
    )
