"""
Relay error kinds. Each carries the HTTP status it maps to and whether the caller
must sign in again (reauthenticate) or may simply retry the action.
"""


class RelayError(Exception):
    status_code = 500
    error = "server_error"
    reauthenticate = False

    def __init__(self, details: str = ""):
        super().__init__(details or self.error)
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.error, "details": self.details, "reauthenticate": self.reauthenticate}


class ConfigurationError(RelayError):
    """Client id, secret or redirect URI absent. Fatal; never retried."""

    error = "configuration_error"


class SessionError(RelayError):
    """State unknown, already used, or expired. Login must restart."""

    status_code = 400
    error = "invalid_session"
    reauthenticate = True

    def __init__(self, details: str = "Invalid or expired session"):
        super().__init__(details)


class ProviderGrantError(RelayError):
    """Token endpoint rejected a grant; keeps the provider's error and description verbatim."""

    status_code = 400
    reauthenticate = True

    def __init__(self, provider_error: str, description: str | None = None):
        self.provider_error = provider_error
        self.description = description
        details = f"{provider_error}: {description}" if description else provider_error
        super().__init__(details)


class TokenExchangeError(ProviderGrantError):
    error = "token_exchange_failed"


class RefreshError(ProviderGrantError):
    status_code = 401
    error = "token_refresh_failed"


class UpstreamApiError(RelayError):
    """Authenticated Google API call returned non-2xx (or could not be made)."""

    error = "upstream_error"

    def __init__(self, status: int, details: str = "", provider_status: str | None = None):
        self.upstream_status = status
        self.provider_status = provider_status
        super().__init__(details or f"Upstream returned {status}")

    @property
    def status_code(self) -> int:
        # 401 from Google means our token is no good; everything else is a gateway failure
        return 401 if self.upstream_status == 401 else 502

    @property
    def reauthenticate(self) -> bool:
        return self.upstream_status == 401


class PickerNotReadyError(UpstreamApiError):
    """Picker reported FAILED_PRECONDITION: the user has not finished picking."""


class SelectionTimeoutError(RelayError):
    status_code = 504
    error = "selection_timeout"

    def __init__(self, details: str = "No photos were selected before the picker timed out"):
        super().__init__(details)


class SelectionCancelledError(RelayError):
    status_code = 409
    error = "selection_cancelled"

    def __init__(self, details: str = "Photo selection was cancelled"):
        super().__init__(details)
