# tests/unit/domains/integrations/xero/test_credentials.py
"""
Tests for CredentialStore configuration handling.
"""
import pytest

from compliance_api.core.settings import Settings
from compliance_api.domains.integrations.xero.credentials import CredentialStore
from compliance_api.domains.integrations.xero.models import Credentials
from compliance_api.shared.exceptions import ConfigurationError


class TestCredentialStore:
    """Test suite for CredentialStore."""

    def test_get_credentials_unconfigured_raises(self) -> None:
        """Test that reading unset credentials is a configuration error."""
        # Arrange
        store = CredentialStore()

        # Act & Assert
        with pytest.raises(ConfigurationError) as exc_info:
            store.get_credentials()

        assert exc_info.value.error_code == "configuration_error"
        assert store.is_configured() is False

    def test_set_and_get_credentials(self, test_credentials: Credentials) -> None:
        """Test that stored credentials are returned unchanged."""
        # Arrange
        store = CredentialStore()

        # Act
        store.set_credentials(test_credentials)

        # Assert
        assert store.get_credentials() == test_credentials
        assert store.is_configured() is True

    def test_set_credentials_strips_whitespace(self) -> None:
        """Test that pasted values are trimmed and a blank redirect is dropped."""
        # Arrange
        store = CredentialStore()

        # Act
        store.set_credentials(
            Credentials(client_id="  abc  ", client_secret=" secret ", redirect_uri="  ")
        )

        # Assert
        credentials = store.get_credentials()
        assert credentials.client_id == "abc"
        assert credentials.client_secret == "secret"
        assert credentials.redirect_uri is None

    @pytest.mark.parametrize(
        "client_id,client_secret,expected",
        [
            ("", "secret", "client ID is required"),
            ("   ", "secret", "client ID is required"),
            ("client", "", "client secret is required"),
        ],
    )
    def test_set_credentials_rejects_empty_values(
        self, client_id: str, client_secret: str, expected: str
    ) -> None:
        """Test that empty client id or secret is rejected."""
        # Arrange
        store = CredentialStore()

        # Act & Assert
        with pytest.raises(ConfigurationError) as exc_info:
            store.set_credentials(
                Credentials(client_id=client_id, client_secret=client_secret)
            )

        assert expected in str(exc_info.value.detail)
        assert store.is_configured() is False

    def test_rejected_update_keeps_previous_credentials(
        self, credential_store: CredentialStore, test_credentials: Credentials
    ) -> None:
        """Test that a failed update leaves the existing credentials in place."""
        # Act
        with pytest.raises(ConfigurationError):
            credential_store.set_credentials(
                Credentials(client_id="", client_secret="x")
            )

        # Assert
        assert credential_store.get_credentials() == test_credentials

    def test_preview_masks_client_id_and_hides_secret(
        self, credential_store: CredentialStore
    ) -> None:
        """Test the masked preview shown to non-admin users."""
        # Act
        preview = credential_store.preview()

        # Assert
        assert preview.configured is True
        assert preview.client_id_preview == "test-cli..."
        assert preview.has_client_secret is True
        assert "test-client-secret" not in preview.model_dump_json()

    def test_preview_unconfigured(self) -> None:
        """Test the preview when nothing is configured."""
        preview = CredentialStore().preview()

        assert preview.configured is False
        assert preview.client_id_preview is None
        assert preview.has_client_secret is False

    def test_from_settings_seeds_credentials(self, mock_settings: Settings) -> None:
        """Test seeding from environment configuration."""
        # Act
        store = CredentialStore.from_settings(mock_settings)

        # Assert
        assert store.get_credentials().client_id == "test-client-id-abcdef"

    def test_from_settings_without_secret_is_unconfigured(
        self, mock_settings: Settings
    ) -> None:
        """Test that partial environment configuration is ignored."""
        # Arrange
        partial = mock_settings.model_copy(update={"XERO_CLIENT_SECRET": None})

        # Act
        store = CredentialStore.from_settings(partial)

        # Assert
        assert store.is_configured() is False
