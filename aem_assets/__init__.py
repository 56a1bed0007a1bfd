"""Client for the AEM Assets HTTP API with service-account token issuance."""

from .asset_client import AssetClient
from .auth import TokenService, build_assertion, expiry_of, import_private_key, is_expired
from .config import Settings, load_settings
from .models import (
    AccessToken,
    AssetListing,
    CanonicalAsset,
    CanonicalMetadataSchema,
    ServiceAccountCredentials,
    SignedAssertion,
)
from .normalization import normalize_asset_list, normalize_entity, normalize_metadata_schema

__version__ = "1.0.0"

__all__ = [
    "AccessToken",
    "AssetClient",
    "AssetListing",
    "CanonicalAsset",
    "CanonicalMetadataSchema",
    "ServiceAccountCredentials",
    "Settings",
    "SignedAssertion",
    "TokenService",
    "build_assertion",
    "expiry_of",
    "import_private_key",
    "is_expired",
    "load_settings",
    "normalize_asset_list",
    "normalize_entity",
    "normalize_metadata_schema",
]
