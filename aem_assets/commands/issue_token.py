"""
Access token command.

Issues an IMS access token for the configured service account, or inspects an
existing JWT without verifying it.

Usage:
    python -m aem_assets.commands.issue_token
    python -m aem_assets.commands.issue_token --env-file ./local.env --json
    python -m aem_assets.commands.issue_token --decode <jwt>
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from ..auth.assertion import decode_claims, expiry_of, is_expired
from ..auth.token_service import TokenService, token_summary
from ..config import Settings, load_settings
from ..errors import AemAssetsError, TokenIssuanceError

logger = logging.getLogger(__name__)


def _decode(token: str, as_json: bool) -> int:
    claims = decode_claims(token)
    expires_at = expiry_of(token)
    report = {
        "claims": claims,
        "expires_at": expires_at.isoformat() if expires_at else None,
        "expired": is_expired(token),
    }
    if as_json:
        print(json.dumps(report, indent=2, default=str))
    else:
        for key, value in claims.items():
            print(f"{key}: {value}")
        print(f"expires_at: {report['expires_at']}")
        print(f"expired: {report['expired']}")
    return 0


async def _issue(settings: Settings, as_json: bool, timeout: Optional[float]) -> int:
    async with TokenService(settings) as service:
        token = await service.issue_access_token(settings.service_account_credentials(), timeout=timeout)

    if as_json:
        print(json.dumps({"access_token": token.value, **token_summary(token)}, indent=2))
    else:
        summary = token_summary(token)
        print(token.value)
        print(f"token_type: {summary['token_type']}", file=sys.stderr)
        print(f"expires_in: {summary['expires_in']}", file=sys.stderr)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Issue or inspect IMS access tokens for the AEM Assets API.")
    parser.add_argument("--env-file", default=".env", help="Settings file (default: .env)")
    parser.add_argument("--decode", metavar="JWT", help="Decode an existing token instead of issuing one")
    parser.add_argument("--timeout", type=float, default=None, help="Request timeout in seconds")
    parser.add_argument("--json", action="store_true", help="Print JSON output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        if args.decode:
            return _decode(args.decode, args.json)
        settings = load_settings(_env_file=args.env_file)
        return asyncio.run(_issue(settings, args.json, args.timeout))
    except TokenIssuanceError as exc:
        logger.error(f"Token issuance failed at {exc.stage} stage: {exc}")
        return 1
    except AemAssetsError as exc:
        logger.error(str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
