"""
JWT assertion construction and unverified decoding.

The assertion is a compact RS256 JWT signed with the service account's private
key. Its payload carries the standard claims plus one ``true`` entry per
metascope:

    {
        "exp": <now + 24h>,
        "iss": "<IMS org>",
        "sub": "<technical account id>",
        "aud": "https://<ims endpoint>/c/<client id>",
        "https://<ims endpoint>/s/<scope>": true,
        ...
    }

Signature verification is done by IMS, never here. ``decode_claims`` reads any
JWT-shaped string without verifying it, which is enough for advisory expiry
checks.

Note:
    ``exp`` is computed from the local clock. A skewed local clock shifts the
    assertion lifetime accordingly.
"""

from __future__ import annotations

import binascii
import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

import jwt
from jwt.utils import base64url_decode

from ..errors import AssertionBuildError, CredentialValidationError, TokenDecodeError
from ..models import AccessToken, ServiceAccountCredentials, SignedAssertion
from .keys import import_private_key

logger = logging.getLogger("aem_assets.auth")

ASSERTION_LIFETIME_SECONDS = 24 * 60 * 60
JWT_HEADER = {"alg": "RS256", "typ": "JWT"}

TokenLike = Union[str, AccessToken, SignedAssertion]


def scope_claim(endpoint: str, scope: str) -> str:
    return f"https://{endpoint}/s/{scope}"


def build_claims(credentials: ServiceAccountCredentials, now: Optional[float] = None) -> Dict[str, Any]:
    """Build the assertion payload; raises CredentialValidationError for missing input."""
    missing = [
        name
        for name, value in (
            ("client_id", credentials.client_id),
            ("technical_account_id", credentials.technical_account_id),
            ("ims_org", credentials.ims_org),
            ("private_key_pem", credentials.private_key_pem),
        )
        if not value
    ]
    if missing:
        raise CredentialValidationError(f"Missing service account credentials: {', '.join(missing)}")
    if not credentials.scopes:
        raise CredentialValidationError("At least one metascope is required")

    issued = int(time.time() if now is None else now)
    endpoint = credentials.auth_endpoint_host
    claims: Dict[str, Any] = {
        "exp": issued + ASSERTION_LIFETIME_SECONDS,
        "iss": credentials.ims_org,
        "sub": credentials.technical_account_id,
        "aud": f"https://{endpoint}/c/{credentials.client_id}",
    }
    for scope in credentials.scopes:
        claims[scope_claim(endpoint, scope)] = True
    return claims


def build_assertion(credentials: ServiceAccountCredentials, now: Optional[float] = None) -> SignedAssertion:
    """
    Build and sign the JWT assertion for a service account.

    Args:
        credentials: Service-account credentials (scopes already split)
        now: Issue time as Unix seconds (defaults to the local clock)

    Returns:
        SignedAssertion: compact token plus the header and claims it encodes

    Raises:
        CredentialValidationError: required credential fields or scopes are missing
        KeyFormatError: the private key PEM is not valid base64
        KeyImportError: the private key is not a recognizable RSA key
        AssertionBuildError: signing failed
    """
    claims = build_claims(credentials, now=now)
    private_key = import_private_key(credentials.private_key_pem)

    try:
        token = jwt.encode(claims, private_key, algorithm="RS256", headers={"typ": "JWT"})
    except (jwt.PyJWTError, ValueError, TypeError) as exc:
        raise AssertionBuildError(f"Failed to sign JWT assertion: {exc}") from exc

    logger.debug(
        f"Built JWT assertion for {credentials.technical_account_id} "
        f"({len(credentials.scopes)} scope(s), exp={claims['exp']})"
    )
    return SignedAssertion(token=token, header=dict(JWT_HEADER), claims=claims)


def _token_string(token: TokenLike) -> str:
    if isinstance(token, AccessToken):
        return token.value
    if isinstance(token, SignedAssertion):
        return token.token
    return token


def decode_claims(token: TokenLike) -> Dict[str, Any]:
    """
    Decode the payload segment of a JWT without verifying the signature.

    Only the middle segment is read; the header and signature segments may be
    anything as long as there are exactly three segments.

    Raises:
        TokenDecodeError: not three dot-separated segments, or the payload is
            not a base64url-encoded JSON object
    """
    raw = _token_string(token)
    segments = raw.split(".") if isinstance(raw, str) else []
    if len(segments) != 3:
        raise TokenDecodeError("Invalid JWT format: expected three dot-separated segments")
    try:
        claims = json.loads(base64url_decode(segments[1].encode("ascii")))
    except (ValueError, binascii.Error) as exc:
        raise TokenDecodeError(f"Failed to decode JWT payload: {exc}") from exc
    if not isinstance(claims, dict):
        raise TokenDecodeError("Failed to decode JWT payload: claims must be a JSON object")
    return claims


def expiry_of(token: TokenLike) -> Optional[datetime]:
    """
    Return the ``exp`` claim as an aware UTC datetime.

    Returns None when the token cannot be decoded or has no numeric ``exp``.
    """
    try:
        claims = decode_claims(token)
    except TokenDecodeError:
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(exp, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def is_expired(token: TokenLike, now: Optional[datetime] = None) -> bool:
    """
    True when ``exp`` is at or before ``now``.

    Malformed tokens and tokens without ``exp`` count as expired. A naive
    ``now`` is taken to be UTC.
    """
    expires_at = expiry_of(token)
    if expires_at is None:
        return True
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current >= expires_at
