# ============================================================================
# aem_assets - Configuration
# ============================================================================
"""
Configuration module using Pydantic Settings.

Defines the connection, credential and path settings for the asset API client
and the token issuer:
- Asset server host
- Service-account credentials (IMS org, client id/secret, private key)
- Default repository paths
- Request timeout and upload limits

Settings are read from the environment and an optional ``.env`` file using the
same key names as the demo application's ``.env`` (AEM_HOST, IMS_ORG,
API_KEY, ...). There is no module-level instance: build one with
``load_settings()`` and pass it to ``TokenService`` / ``AssetClient``.

Usage:
    from aem_assets.config import load_settings
    settings = load_settings()
    credentials = settings.service_account_credentials()
"""

from typing import Any, Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import DEFAULT_IMS_ENDPOINT, ServiceAccountCredentials


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # SERVER
    # =========================================================================
    aem_host: str = Field(default="", description="Author/publish host, e.g. https://author-p1-e1.adobeaemcloud.com")

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================
    ims_org: str = Field(default="", description="IMS organization id (…@AdobeOrg)")
    api_key: str = Field(default="", description="Client id, also sent as x-api-key")
    client_secret: str = Field(default="", repr=False)
    technical_account_id: str = Field(default="")
    private_key: str = Field(default="", repr=False, description="PEM text; literal \\n escapes are accepted")
    ims_endpoint: str = Field(default=DEFAULT_IMS_ENDPOINT)
    metascopes: str = Field(default="ent_aem_cloud_api", description="Comma-separated metascopes")
    access_token: str = Field(default="", repr=False, description="Bearer token for API calls")
    token_relay_url: str = Field(
        default="http://localhost:8000/ims/exchange/jwt",
        description="Local relay that forwards JWT exchanges to IMS",
    )

    # =========================================================================
    # PATHS
    # =========================================================================
    browse_path: str = Field(default="/content/dam")
    upload_path: str = Field(default="/content/dam/uploads")
    download_path: str = Field(default="/var/downloads")

    # =========================================================================
    # API OPTIONS
    # =========================================================================
    api_timeout: float = Field(default=30.0, description="Timeout (s) for API and token requests")
    max_upload_size: int = Field(default=100 * 1024 * 1024, description="Max upload size in bytes")
    verify_ssl: bool = Field(default=True)

    # -------- Helpers --------
    def service_account_credentials(self) -> ServiceAccountCredentials:
        return ServiceAccountCredentials(
            client_id=self.api_key,
            client_secret=self.client_secret,
            technical_account_id=self.technical_account_id,
            ims_org=self.ims_org,
            private_key_pem=self.private_key,
            scopes=self.metascopes,
            auth_endpoint_host=self.ims_endpoint,
        )

    def api_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "x-api-key": self.api_key,
            "x-gw-ims-org-id": self.ims_org,
        }

    def validate_for_api(self) -> List[str]:
        """Return the problems that prevent API calls (empty list when usable)."""
        errors: List[str] = []
        if not self.aem_host:
            errors.append("AEM Host URL is required")
        if not self.access_token:
            errors.append("Access Token is required")
        if not self.api_key:
            errors.append("API Key is required")
        return errors


def load_settings(**overrides: Any) -> Settings:
    """
    Build a fresh Settings value.

    Keyword overrides win over the environment; pass ``_env_file=None`` to
    ignore any ``.env`` file.
    """
    return Settings(**overrides)
