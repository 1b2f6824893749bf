"""contactkit.auth - OAuth credentials for the Google People API backend."""

from contactkit.auth.google_auth import (
    DEFAULT_ACCOUNT,
    SCOPES,
    AuthenticationError,
    GoogleAuth,
)

__all__ = ["DEFAULT_ACCOUNT", "SCOPES", "AuthenticationError", "GoogleAuth"]
