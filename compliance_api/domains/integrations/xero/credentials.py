# compliance_api/domains/integrations/xero/credentials.py
import logging
from typing import Optional

from compliance_api.core.settings import Settings
from compliance_api.shared.exceptions import ConfigurationError

from .models import Credentials, CredentialsPreview

logger = logging.getLogger(__name__)

CLIENT_ID_PREVIEW_LENGTH = 8


class CredentialStore:
    """Holds the Xero app credentials. No network or token side effects."""

    def __init__(self, credentials: Optional[Credentials] = None):
        self._credentials: Optional[Credentials] = None
        if credentials is not None:
            self.set_credentials(credentials)

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialStore":
        """Seed the store from environment configuration, if present."""
        if not settings.XERO_CLIENT_ID or not settings.XERO_CLIENT_SECRET:
            return cls()

        return cls(
            Credentials(
                client_id=settings.XERO_CLIENT_ID,
                client_secret=settings.XERO_CLIENT_SECRET,
                redirect_uri=settings.XERO_REDIRECT_URI,
            )
        )

    def get_credentials(self) -> Credentials:
        """
        Return the configured credentials.

        Raises:
            ConfigurationError: If no credentials have been configured
        """
        if self._credentials is None:
            raise ConfigurationError()
        return self._credentials

    def set_credentials(self, credentials: Credentials) -> None:
        """
        Replace the configured credentials.

        Raises:
            ConfigurationError: If client ID or client secret is empty
        """
        client_id = credentials.client_id.strip()
        client_secret = credentials.client_secret.strip()
        if not client_id:
            raise ConfigurationError("Xero client ID is required")
        if not client_secret:
            raise ConfigurationError("Xero client secret is required")

        redirect_uri = (credentials.redirect_uri or "").strip() or None
        self._credentials = Credentials(
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
        )
        logger.info(
            f"Xero credentials updated for client {client_id[:CLIENT_ID_PREVIEW_LENGTH]}..."
        )

    def is_configured(self) -> bool:
        return self._credentials is not None

    def preview(self) -> CredentialsPreview:
        """Masked view of the credentials for non-admin callers."""
        if self._credentials is None:
            return CredentialsPreview(configured=False)

        return CredentialsPreview(
            configured=True,
            client_id_preview=(
                f"{self._credentials.client_id[:CLIENT_ID_PREVIEW_LENGTH]}..."
            ),
            has_client_secret=bool(self._credentials.client_secret),
            redirect_uri=self._credentials.redirect_uri,
        )
