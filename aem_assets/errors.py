# ============================================================================
# aem_assets/errors.py
# ============================================================================
# Error taxonomy shared by token issuance, transport, the asset API client
# and the response normalizers.
#
# Token issuance errors carry the stage that failed ("assertion" for local
# key/JWT problems, "exchange" for rejections by the token relay) so callers
# can tell a cryptographic problem apart from a remote rejection.
# ============================================================================

from __future__ import annotations

from typing import Optional, Sequence


class AemAssetsError(Exception):
    """Base class for every error raised by aem_assets."""


class ValidationError(AemAssetsError, ValueError):
    """Bad or missing input (e.g. no scopes, unknown rendition, oversized upload)."""


# =============================================================================
# TOKEN ISSUANCE
# =============================================================================

class TokenIssuanceError(AemAssetsError):
    """Raised when an access token cannot be issued."""

    stage: str = "issuance"


class AssertionBuildError(TokenIssuanceError):
    """Raised while building or signing the JWT assertion."""

    stage = "assertion"


class CredentialValidationError(AssertionBuildError, ValidationError):
    """Service-account credentials are incomplete (e.g. no scopes, empty client id)."""


class KeyImportError(AssertionBuildError):
    """
    The private key was rejected by both the PKCS#8 and the converted
    PKCS#1 import attempts.

    Attributes:
        reasons: One entry per failed import stage, in the order attempted.
    """

    def __init__(self, message: str, reasons: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.reasons = list(reasons or [])


class KeyFormatError(KeyImportError):
    """The PEM body is not valid base64."""


class ExchangeError(TokenIssuanceError):
    """
    The token relay answered with a non-success status or an error payload.

    Attributes:
        status_code: HTTP status returned by the relay
        body: Raw response body
    """

    stage = "exchange"

    def __init__(self, message: str, status_code: int, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TokenDecodeError(AemAssetsError, ValueError):
    """A token string is not a decodable JWT (three base64url segments, JSON claims)."""


# =============================================================================
# TRANSPORT
# =============================================================================

class TransportError(AemAssetsError):
    """Raised when a request never produced an HTTP response."""


class NetworkError(TransportError):
    """Connection, DNS or protocol failure."""


class RequestTimeoutError(TransportError, TimeoutError):
    """The caller-supplied timeout elapsed before the response arrived."""


class RequestCancelledError(TransportError):
    """The caller aborted the request before it completed."""


# =============================================================================
# ASSET API
# =============================================================================

class ApiError(AemAssetsError):
    """
    Non-success response from the asset HTTP API.

    A 401 is authoritative over any locally computed token expiry.
    """

    def __init__(self, message: str, status_code: int, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


class ShapeError(AemAssetsError, TypeError):
    """A normalizer was given something that is not a JSON object."""
