"""
Asset browsing command.

Lists folders, reads metadata and downloads renditions through the Assets
HTTP API using the configured host and access token. Output is JSON.

Usage:
    python -m aem_assets.commands.browse_assets list /content/dam/wknd --limit 50
    python -m aem_assets.commands.browse_assets metadata /content/dam/wknd/hero.jpg
    python -m aem_assets.commands.browse_assets schema /content/dam/wknd/hero.jpg
    python -m aem_assets.commands.browse_assets download /content/dam/wknd/hero.jpg --rendition web
    python -m aem_assets.commands.browse_assets test
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional

from ..asset_client import RENDITIONS, AssetClient
from ..config import Settings, load_settings
from ..errors import AemAssetsError

logger = logging.getLogger(__name__)


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, default=str))


async def _run(settings: Settings, args: argparse.Namespace) -> int:
    async with AssetClient(settings) as client:
        if args.command == "list":
            listing = await client.list_assets(args.path, limit=args.limit, offset=args.offset, timeout=args.timeout)
            _print_json(
                {
                    "shape": listing.shape,
                    "total": listing.total,
                    "assets": [asset.model_dump(exclude={"raw_source", "metadata"}) for asset in listing],
                }
            )
        elif args.command == "metadata":
            _print_json(await client.get_metadata(args.path, timeout=args.timeout))
        elif args.command == "schema":
            schema = await client.get_metadata_schema(args.path, timeout=args.timeout)
            _print_json(schema.by_namespace)
        elif args.command == "download":
            result = await client.download_to_directory(
                args.path, rendition=args.rendition, directory=args.directory, timeout=args.timeout
            )
            _print_json(result.model_dump())
        elif args.command == "test":
            result = await client.test_connection(timeout=args.timeout)
            _print_json(result.model_dump())
            return 0 if result.success else 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Browse assets through the AEM Assets HTTP API.")
    parser.add_argument("--env-file", default=".env", help="Settings file (default: .env)")
    parser.add_argument("--timeout", type=float, default=None, help="Request timeout in seconds")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List a folder")
    list_parser.add_argument("path", nargs="?", default=None, help="Folder path (default: BROWSE_PATH)")
    list_parser.add_argument("--limit", type=int, default=20)
    list_parser.add_argument("--offset", type=int, default=0)

    metadata_parser = subparsers.add_parser("metadata", help="Show asset metadata")
    metadata_parser.add_argument("path")

    schema_parser = subparsers.add_parser("schema", help="Show all metadata grouped by namespace")
    schema_parser.add_argument("path")

    download_parser = subparsers.add_parser("download", help="Download a rendition")
    download_parser.add_argument("path")
    download_parser.add_argument("--rendition", choices=sorted(RENDITIONS), default="original")
    download_parser.add_argument("--directory", default=None, help="Target directory (default: DOWNLOAD_PATH)")

    subparsers.add_parser("test", help="Check host and credentials")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        settings = load_settings(_env_file=args.env_file)
        problems = settings.validate_for_api()
        if problems:
            for problem in problems:
                logger.error(problem)
            return 1
        if args.command == "list" and not args.path:
            args.path = settings.browse_path
        return asyncio.run(_run(settings, args))
    except AemAssetsError as exc:
        logger.error(str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
