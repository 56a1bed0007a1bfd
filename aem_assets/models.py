"""
Data models for credentials, tokens and normalized asset records.

Credentials and tokens are pydantic models so they validate and serialize the
same way as the rest of the configuration. The asset listing is a plain
dataclass because it behaves as a sequence of assets.

Usage:
    from aem_assets.models import ServiceAccountCredentials
    credentials = ServiceAccountCredentials(
        client_id="...",
        client_secret="...",
        technical_account_id="...@techacct.adobe.com",
        ims_org="...@AdobeOrg",
        private_key_pem=pem_text,
        scopes="ent_aem_cloud_api",
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

DAM_ROOT = "/content/dam"
DEFAULT_IMS_ENDPOINT = "ims-na1.adobelogin.com"


def split_scopes(raw: Any) -> Tuple[str, ...]:
    """Split a comma-separated scope string (or list) into trimmed, non-empty scopes."""
    if raw is None:
        return ()
    if isinstance(raw, str):
        parts = raw.split(",")
    else:
        parts = [str(entry) for entry in raw]
    return tuple(part.strip() for part in parts if part and part.strip())


class ServiceAccountCredentials(BaseModel):
    """
    Long-lived service-account credentials used to issue access tokens.

    Immutable. Scopes may be given as a comma-separated string; they are split
    and trimmed on construction. Emptiness is checked when the assertion is
    built, not here.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str = ""
    client_secret: str = Field(default="", repr=False)
    technical_account_id: str = ""
    ims_org: str = ""
    private_key_pem: str = Field(default="", repr=False)
    scopes: Tuple[str, ...] = ()
    auth_endpoint_host: str = DEFAULT_IMS_ENDPOINT

    @field_validator("scopes", mode="before")
    @classmethod
    def _split_scopes(cls, value: Any) -> Tuple[str, ...]:
        return split_scopes(value)

    @field_validator("auth_endpoint_host", mode="before")
    @classmethod
    def _strip_scheme(cls, value: Any) -> str:
        host = str(value or DEFAULT_IMS_ENDPOINT).strip()
        for prefix in ("https://", "http://"):
            if host.startswith(prefix):
                host = host[len(prefix):]
        return host.rstrip("/") or DEFAULT_IMS_ENDPOINT


class SignedAssertion(BaseModel):
    """A compact RS256 JWT (header.payload.signature) plus its decoded parts."""

    model_config = ConfigDict(frozen=True)

    token: str
    header: Dict[str, Any]
    claims: Dict[str, Any]

    @property
    def segments(self) -> Tuple[str, str, str]:
        header, payload, signature = self.token.split(".")
        return header, payload, signature

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(int(self.claims["exp"]), tz=timezone.utc)

    def __str__(self) -> str:
        return self.token


class AccessToken(BaseModel):
    """
    Bearer token returned by the token exchange.

    Expiry is advisory: a 401 from the asset API wins over ``expires_at``.
    ``expires_in_seconds`` is kept exactly as the relay reported it.
    """

    value: str = Field(repr=False)
    token_type: str = "bearer"
    expires_in_seconds: int = 0
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    assertion: Optional[str] = Field(default=None, repr=False)

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.expires_in_seconds)

    def authorization_header(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.value}"}


class CanonicalAsset(BaseModel):
    """One asset, whatever listing shape it was read from."""

    id: str
    name: str
    path: str = ""
    mime_type: str = ""
    size_bytes: int = 0
    width: Optional[int] = None
    height: Optional[int] = None
    title: str = ""
    description: Optional[str] = None
    thumbnail_ref: Optional[str] = None
    delivery_url: Optional[str] = None
    content_url: Optional[str] = None
    created: Optional[str] = None
    modified: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    raw_source: Any = Field(default=None, repr=False)


@dataclass
class AssetListing:
    """
    Normalized listing response.

    Behaves as a sequence of ``CanonicalAsset``; ``raw`` keeps the original
    payload for diagnostics.
    """

    assets: List[CanonicalAsset] = field(default_factory=list)
    total: int = 0
    properties: Dict[str, Any] = field(default_factory=dict)
    raw: Any = None
    shape: str = "unknown"

    def __len__(self) -> int:
        return len(self.assets)

    def __iter__(self) -> Iterator[CanonicalAsset]:
        return iter(self.assets)

    def __getitem__(self, index: int) -> CanonicalAsset:
        return self.assets[index]


class CanonicalMetadataSchema(BaseModel):
    """Metadata properties, flat and grouped by namespace prefix."""

    all_properties: Dict[str, Any] = Field(default_factory=dict)
    by_namespace: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    raw: Any = Field(default=None, repr=False)

    def namespace(self, name: str) -> Dict[str, Any]:
        return self.by_namespace.get(name, {})


class UploadResult(BaseModel):
    path: str
    status_code: int
    response: Any = None


class DownloadResult(BaseModel):
    filename: str
    path: str
    size: int


class ConnectionTestResult(BaseModel):
    success: bool
    message: str
