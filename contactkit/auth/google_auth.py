"""
OAuth2 authentication for the Google People API backend.

Provides OAuth 2.0 authentication with support for:
- Named accounts, each with its own token file
- Automatic token refresh
- Secure credential storage in the configuration directory
- Mapping of token state onto contacts authorization status
"""

import json
import logging
import re
from pathlib import Path

import requests
from google.auth.exceptions import RefreshError
from google.auth.transport.requests import AuthorizedSession, Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from contactkit.core.models import AuthStatus
from contactkit.utils.paths import resolve_config_dir

# OAuth2 scopes required for Google Contacts access
SCOPES = [
    "https://www.googleapis.com/auth/contacts",
    "https://www.googleapis.com/auth/userinfo.email",
    "openid",  # Required by Google when requesting userinfo.email
]

# Account used when none is configured
DEFAULT_ACCOUNT = "default"

# Default auth timeout for network requests (in seconds)
DEFAULT_AUTH_TIMEOUT = 10

USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

_ACCOUNT_RE = re.compile(r"^[A-Za-z0-9_-]+$")

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when authentication fails or credentials are invalid."""

    pass


class GoogleAuth:
    """
    OAuth2 authentication manager for named Google accounts.

    Attributes:
        config_dir: Directory for storing credentials and tokens
        credentials_path: Path to OAuth client credentials file

    Usage:
        auth = GoogleAuth()

        # Authenticate (opens a browser the first time)
        creds = auth.authenticate("default")

        # Get credentials if already authenticated
        creds = auth.get_credentials("default")
    """

    def __init__(
        self,
        config_dir: Path | None = None,
        auth_timeout: int = DEFAULT_AUTH_TIMEOUT,
    ):
        """
        Initialize the authentication manager.

        Args:
            config_dir: Directory for storing credentials and tokens.
                       Defaults to ~/.contactkit/ or $CONTACTKIT_CONFIG_DIR
            auth_timeout: Timeout in seconds for network requests (default: 10)
        """
        self.config_dir = resolve_config_dir(config_dir)
        self.credentials_path = self.config_dir / "credentials.json"
        self.auth_timeout = auth_timeout

    def _get_token_path(self, account_id: str) -> Path:
        self._validate_account_id(account_id)
        return self.config_dir / f"token_{account_id}.json"

    def _validate_account_id(self, account_id: str) -> None:
        """
        Validate account identifier.

        Raises:
            ValueError: If account_id contains anything but letters, digits,
                '-' and '_'
        """
        if not account_id or not _ACCOUNT_RE.match(account_id):
            raise ValueError(
                f"Invalid account_id '{account_id}'. "
                "Use letters, digits, '-' and '_' only."
            )

    def _ensure_config_dir(self) -> None:
        """Create the configuration directory with 700 permissions if needed."""
        if not self.config_dir.exists():
            self.config_dir.mkdir(parents=True, mode=0o700)
            logger.debug(f"Created config directory: {self.config_dir}")

    def _load_credentials(self, account_id: str) -> Credentials | None:
        token_path = self._get_token_path(account_id)

        if not token_path.exists():
            logger.debug(f"No token file found for {account_id}")
            return None

        try:
            creds: Credentials = Credentials.from_authorized_user_file(
                str(token_path), SCOPES
            )
            logger.debug(f"Loaded credentials for {account_id}")
            return creds
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning(f"Invalid token file for {account_id}: {e}")
            return None

    def _save_credentials(
        self, account_id: str, creds: Credentials, email: str | None = None
    ) -> None:
        """
        Save credentials to the account's token file.

        Args:
            account_id: Account identifier
            creds: Credentials object to save
            email: Optional email address to store with credentials
        """
        self._ensure_config_dir()
        token_path = self._get_token_path(account_id)

        token_data = json.loads(creds.to_json())
        if email:
            token_data["email"] = email

        token_path.write_text(json.dumps(token_data))
        token_path.chmod(0o600)
        logger.debug(f"Saved credentials for {account_id}")

    def _refresh_credentials(self, creds: Credentials) -> bool:
        """Attempt to refresh expired credentials. Returns True on success."""
        if not creds.refresh_token:
            logger.debug("No refresh token available")
            return False

        try:
            creds.refresh(Request())
            logger.debug("Successfully refreshed credentials")
            return True
        except RefreshError as e:
            logger.warning(f"Failed to refresh credentials: {e}")
            return False

    def _fetch_user_email(self, creds: Credentials) -> str | None:
        """
        Fetch the authenticated user's email address from Google.

        Returns:
            Email address if available, None otherwise
        """
        try:
            session = AuthorizedSession(creds)
            response = session.get(USERINFO_URL, timeout=self.auth_timeout)
            if response.status_code == 401:
                logger.debug(
                    "Token missing email scope. Re-authentication required "
                    "to display email addresses."
                )
                return None
            response.raise_for_status()
            email: str | None = response.json().get("email")
            return email
        except (requests.RequestException, ValueError) as e:
            logger.debug(f"Failed to fetch user email: {e}")
            return None

    def get_credentials(self, account_id: str) -> Credentials | None:
        """
        Get valid credentials for an account if available.

        Attempts to load and refresh credentials without user interaction.

        Returns:
            Valid Credentials object, or None if not available

        Raises:
            ValueError: If account_id is invalid
        """
        creds = self._load_credentials(account_id)

        if creds is None:
            return None

        if creds.valid:
            return creds

        if creds.expired and creds.refresh_token and self._refresh_credentials(creds):
            self._save_credentials(account_id, creds)
            return creds

        return None

    def authorization_status(self, account_id: str) -> AuthStatus:
        """
        Map the account's token state onto an AuthStatus.

        No token file means access was never requested; a token that cannot
        be loaded or refreshed means access was revoked or expired for good.
        """
        if not self._get_token_path(account_id).exists():
            return AuthStatus.NOT_DETERMINED
        if self.get_credentials(account_id) is None:
            return AuthStatus.DENIED
        return AuthStatus.AUTHORIZED

    def authenticate(self, account_id: str, force_reauth: bool = False) -> Credentials:
        """
        Authenticate a Google account.

        If valid credentials exist and force_reauth is False, returns existing
        credentials. Otherwise, runs the installed-app OAuth flow.

        Raises:
            ValueError: If account_id is invalid
            AuthenticationError: If authentication fails
            FileNotFoundError: If credentials.json is not found
        """
        self._validate_account_id(account_id)

        if not force_reauth:
            creds = self.get_credentials(account_id)
            if creds is not None:
                logger.info(f"Using existing credentials for {account_id}")
                return creds

        if not self.credentials_path.exists():
            raise FileNotFoundError(
                f"OAuth credentials file not found: {self.credentials_path}\n"
                "Please download your OAuth client credentials from "
                "Google Cloud Console and save them to this location."
            )

        logger.info(f"Starting OAuth flow for {account_id}")

        try:
            flow = InstalledAppFlow.from_client_secrets_file(
                str(self.credentials_path), SCOPES
            )
            new_creds: Credentials = flow.run_local_server(port=0)

            email = self._fetch_user_email(new_creds)

            self._save_credentials(account_id, new_creds, email=email)
            logger.info(f"Successfully authenticated {account_id}")

            return new_creds

        except Exception as e:
            logger.error(f"Authentication failed for {account_id}: {e}")
            raise AuthenticationError(
                f"Failed to authenticate {account_id}: {e}"
            ) from e

    def is_authenticated(self, account_id: str) -> bool:
        return self.get_credentials(account_id) is not None

    def clear_credentials(self, account_id: str) -> bool:
        """
        Remove stored credentials for an account.

        Returns:
            True if credentials were removed, False if they didn't exist
        """
        token_path = self._get_token_path(account_id)

        if token_path.exists():
            token_path.unlink()
            logger.info(f"Cleared credentials for {account_id}")
            return True

        return False

    def get_auth_status(self, account_id: str) -> dict[str, object]:
        """
        Get authentication status for an account.

        Returns:
            Dictionary with keys: account, authenticated, token_path,
            token_exists, email, credentials_path, credentials_exist,
            config_dir
        """
        token_path = self._get_token_path(account_id)
        creds = self.get_credentials(account_id)

        return {
            "account": account_id,
            "authenticated": creds is not None,
            "token_path": str(token_path),
            "token_exists": token_path.exists(),
            "email": self.get_account_email(account_id) if creds else None,
            "credentials_path": str(self.credentials_path),
            "credentials_exist": self.credentials_path.exists(),
            "config_dir": str(self.config_dir),
        }

    def get_account_email(self, account_id: str) -> str | None:
        """
        Get the email address associated with an authenticated account.

        Reads the email stored in the token file, fetching and storing it
        when missing.
        """
        token_path = self._get_token_path(account_id)

        if not token_path.exists():
            return None

        try:
            token_data: dict[str, str] = json.loads(token_path.read_text())
            email: str | None = token_data.get("email")

            if not email:
                creds = self.get_credentials(account_id)
                if creds:
                    email = self._fetch_user_email(creds)
                    if email:
                        token_data["email"] = email
                        token_path.write_text(json.dumps(token_data))
                        logger.debug(f"Updated stored email for {account_id}")

            return email
        except (json.JSONDecodeError, OSError):
            return None
