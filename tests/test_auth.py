"""
Unit tests for the authentication module.

Tests the GoogleAuth class for OAuth2 authentication, credential management,
named accounts and the mapping onto contacts authorization status.
"""

import json
from unittest.mock import MagicMock, patch

import pytest
import requests

from contactkit.auth.google_auth import (
    DEFAULT_ACCOUNT,
    SCOPES,
    USERINFO_URL,
    AuthenticationError,
    GoogleAuth,
)
from contactkit.core.models import AuthStatus
from contactkit.utils.paths import CONFIG_DIR_ENV_VAR


@pytest.fixture
def auth(tmp_path):
    """Create a GoogleAuth instance with temp config dir."""
    return GoogleAuth(config_dir=tmp_path)


def write_token(auth, account=DEFAULT_ACCOUNT, data=None):
    path = auth.config_dir / f"token_{account}.json"
    path.write_text(json.dumps(data or {"token": "test"}))
    return path


def valid_creds():
    creds = MagicMock()
    creds.valid = True
    return creds


class TestGoogleAuthInitialization:
    """Tests for GoogleAuth initialization."""

    def test_custom_config_dir_via_argument(self, tmp_path):
        auth = GoogleAuth(config_dir=tmp_path / "custom_config")
        assert auth.config_dir == (tmp_path / "custom_config").resolve()

    def test_config_dir_from_environment_variable(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_DIR_ENV_VAR, str(tmp_path / "env_config"))
        assert GoogleAuth().config_dir == (tmp_path / "env_config").resolve()

    def test_credentials_path_is_set(self, auth):
        assert auth.credentials_path == auth.config_dir / "credentials.json"

    def test_scopes_include_contacts(self):
        assert "https://www.googleapis.com/auth/contacts" in SCOPES


class TestAccountValidation:
    """Tests for account ID validation."""

    @pytest.mark.parametrize("account", ["default", "work", "home-2", "a_b"])
    def test_valid_accounts(self, auth, account):
        auth._validate_account_id(account)
        assert auth._get_token_path(account).name == f"token_{account}.json"

    @pytest.mark.parametrize("account", ["", "../etc", "has space", "a/b"])
    def test_invalid_accounts(self, auth, account):
        with pytest.raises(ValueError, match="Invalid account_id"):
            auth._validate_account_id(account)


class TestGetCredentials:
    """Tests for get_credentials method."""

    def test_no_token_file(self, auth):
        assert auth.get_credentials(DEFAULT_ACCOUNT) is None

    @patch("contactkit.auth.google_auth.Credentials")
    def test_valid_credentials(self, mock_creds_class, auth):
        write_token(auth)
        creds = valid_creds()
        mock_creds_class.from_authorized_user_file.return_value = creds

        assert auth.get_credentials(DEFAULT_ACCOUNT) is creds

    @patch("contactkit.auth.google_auth.Credentials")
    def test_invalid_token_file(self, mock_creds_class, auth):
        write_token(auth)
        mock_creds_class.from_authorized_user_file.side_effect = ValueError("bad")

        assert auth.get_credentials(DEFAULT_ACCOUNT) is None

    @patch("contactkit.auth.google_auth.Request")
    @patch("contactkit.auth.google_auth.Credentials")
    def test_expired_credentials_refresh(self, mock_creds_class, mock_request, auth):
        token_path = write_token(auth)
        creds = MagicMock()
        creds.valid = False
        creds.expired = True
        creds.refresh_token = "refresh_token"
        creds.to_json.return_value = '{"refreshed": true}'
        mock_creds_class.from_authorized_user_file.return_value = creds

        assert auth.get_credentials(DEFAULT_ACCOUNT) is creds
        creds.refresh.assert_called_once()
        assert json.loads(token_path.read_text()) == {"refreshed": True}

    @patch("contactkit.auth.google_auth.Request")
    @patch("contactkit.auth.google_auth.Credentials")
    def test_refresh_failure_returns_none(self, mock_creds_class, mock_request, auth):
        from google.auth.exceptions import RefreshError

        write_token(auth)
        creds = MagicMock()
        creds.valid = False
        creds.expired = True
        creds.refresh_token = "refresh_token"
        creds.refresh.side_effect = RefreshError("Failed")
        mock_creds_class.from_authorized_user_file.return_value = creds

        assert auth.get_credentials(DEFAULT_ACCOUNT) is None


class TestAuthorizationStatus:
    def test_not_determined_without_token(self, auth):
        assert auth.authorization_status(DEFAULT_ACCOUNT) == AuthStatus.NOT_DETERMINED

    @patch("contactkit.auth.google_auth.Credentials")
    def test_denied_when_token_unusable(self, mock_creds_class, auth):
        write_token(auth)
        creds = MagicMock()
        creds.valid = False
        creds.expired = False
        mock_creds_class.from_authorized_user_file.return_value = creds

        assert auth.authorization_status(DEFAULT_ACCOUNT) == AuthStatus.DENIED

    @patch("contactkit.auth.google_auth.Credentials")
    def test_authorized_with_valid_token(self, mock_creds_class, auth):
        write_token(auth)
        mock_creds_class.from_authorized_user_file.return_value = valid_creds()

        assert auth.authorization_status(DEFAULT_ACCOUNT) == AuthStatus.AUTHORIZED
        assert auth.is_authenticated(DEFAULT_ACCOUNT) is True


class TestAuthenticate:
    """Tests for authenticate method."""

    @patch("contactkit.auth.google_auth.Credentials")
    def test_returns_existing_credentials(self, mock_creds_class, auth):
        write_token(auth)
        creds = valid_creds()
        mock_creds_class.from_authorized_user_file.return_value = creds

        assert auth.authenticate(DEFAULT_ACCOUNT) is creds

    def test_missing_credentials_file(self, auth):
        with pytest.raises(FileNotFoundError, match="credentials file not found"):
            auth.authenticate(DEFAULT_ACCOUNT)

    def test_invalid_account(self, auth):
        with pytest.raises(ValueError):
            auth.authenticate("bad account")

    @patch.object(GoogleAuth, "_fetch_user_email", return_value="me@example.com")
    @patch("contactkit.auth.google_auth.InstalledAppFlow")
    def test_runs_oauth_flow(self, mock_flow_class, mock_email, auth):
        auth.credentials_path.write_text("{}")
        new_creds = MagicMock()
        new_creds.to_json.return_value = '{"token": "new"}'
        mock_flow_class.from_client_secrets_file.return_value.run_local_server.return_value = (
            new_creds
        )

        result = auth.authenticate("work", force_reauth=True)

        assert result is new_creds
        mock_flow_class.from_client_secrets_file.assert_called_once_with(
            str(auth.credentials_path), SCOPES
        )
        saved = json.loads((auth.config_dir / "token_work.json").read_text())
        assert saved == {"token": "new", "email": "me@example.com"}

    @patch("contactkit.auth.google_auth.InstalledAppFlow")
    def test_flow_failure_raises_authentication_error(self, mock_flow_class, auth):
        auth.credentials_path.write_text("{}")
        mock_flow_class.from_client_secrets_file.side_effect = RuntimeError("no browser")

        with pytest.raises(AuthenticationError, match="no browser"):
            auth.authenticate(DEFAULT_ACCOUNT, force_reauth=True)


class TestFetchUserEmail:
    @patch("contactkit.auth.google_auth.AuthorizedSession")
    def test_returns_email(self, mock_session_class, auth):
        response = MagicMock(status_code=200)
        response.json.return_value = {"email": "me@example.com"}
        mock_session_class.return_value.get.return_value = response

        assert auth._fetch_user_email(MagicMock()) == "me@example.com"
        mock_session_class.return_value.get.assert_called_once_with(
            USERINFO_URL, timeout=auth.auth_timeout
        )

    @patch("contactkit.auth.google_auth.AuthorizedSession")
    def test_unauthorized_returns_none(self, mock_session_class, auth):
        mock_session_class.return_value.get.return_value = MagicMock(status_code=401)
        assert auth._fetch_user_email(MagicMock()) is None

    @patch("contactkit.auth.google_auth.AuthorizedSession")
    def test_request_error_returns_none(self, mock_session_class, auth):
        mock_session_class.return_value.get.side_effect = requests.ConnectionError("down")
        assert auth._fetch_user_email(MagicMock()) is None


class TestCredentialManagement:
    def test_clear_credentials(self, auth):
        token_path = write_token(auth)
        assert auth.clear_credentials(DEFAULT_ACCOUNT) is True
        assert not token_path.exists()
        assert auth.clear_credentials(DEFAULT_ACCOUNT) is False

    def test_account_email_from_token(self, auth):
        write_token(auth, data={"token": "t", "email": "stored@example.com"})
        assert auth.get_account_email(DEFAULT_ACCOUNT) == "stored@example.com"

    def test_account_email_without_token(self, auth):
        assert auth.get_account_email(DEFAULT_ACCOUNT) is None

    def test_auth_status_unauthenticated(self, auth):
        status = auth.get_auth_status(DEFAULT_ACCOUNT)

        assert status["account"] == DEFAULT_ACCOUNT
        assert status["authenticated"] is False
        assert status["token_exists"] is False
        assert status["email"] is None
        assert status["credentials_exist"] is False
        assert status["config_dir"] == str(auth.config_dir)

    @patch("contactkit.auth.google_auth.Credentials")
    def test_auth_status_authenticated(self, mock_creds_class, auth):
        write_token(auth, data={"token": "t", "email": "me@example.com"})
        mock_creds_class.from_authorized_user_file.return_value = valid_creds()

        status = auth.get_auth_status(DEFAULT_ACCOUNT)

        assert status["authenticated"] is True
        assert status["email"] == "me@example.com"
