import asyncio
import os
from contextlib import asynccontextmanager
from typing import Callable, Optional

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from aem_assets.config import Settings, load_settings
from aem_assets.models import ServiceAccountCredentials
from aem_assets.transport import HttpTransport

# Keep the developer's environment (AEM_HOST, ACCESS_TOKEN, ...) out of tests.
for _field in Settings.model_fields:
    os.environ.pop(_field.upper(), None)
    os.environ.pop(_field, None)

AEM_HOST = "https://author-p1-e1.adobeaemcloud.com"
RELAY_URL = "http://relay.test/ims/exchange/jwt"


@pytest.fixture(scope="session")
def rsa_key():
    """One 2048-bit RSA key for the whole session (generation is slow)."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def pkcs8_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture(scope="session")
def pkcs1_pem(rsa_key) -> str:
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")


@pytest.fixture
def credentials(pkcs8_pem) -> ServiceAccountCredentials:
    return ServiceAccountCredentials(
        client_id="client-123",
        client_secret="secret-456",
        technical_account_id="TECH@techacct.adobe.com",
        ims_org="ORG@AdobeOrg",
        private_key_pem=pkcs8_pem,
        scopes="ent_aem_cloud_api",
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    return load_settings(
        _env_file=None,
        aem_host=AEM_HOST,
        access_token="access-token-abc",
        api_key="client-123",
        ims_org="ORG@AdobeOrg",
        token_relay_url=RELAY_URL,
        download_path=str(tmp_path / "downloads"),
    )


@pytest.fixture
def make_transport() -> Callable[..., HttpTransport]:
    """Build an HttpTransport whose requests are answered by ``handler``."""

    def _make(handler, base_url: Optional[str] = None, timeout: float = 5.0) -> HttpTransport:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=base_url or "")
        return HttpTransport(client=client, timeout=timeout)

    return _make


@pytest.fixture
def slow_server():
    """
    Local HTTP server that sends the response headers at once and then the
    body one byte every ``interval`` seconds.

    Usage:
        async with slow_server() as url: ...
    """

    @asynccontextmanager
    async def _serve(body_size: int = 30, interval: float = 0.2):
        handlers = []

        async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            handlers.append(asyncio.current_task())
            try:
                await reader.readuntil(b"\r\n\r\n")
                writer.write(
                    b"HTTP/1.1 200 OK\r\n"
                    b"Content-Type: application/octet-stream\r\n"
                    + f"Content-Length: {body_size}\r\n".encode("ascii")
                    + b"Connection: close\r\n\r\n"
                )
                await writer.drain()
                for _ in range(body_size):
                    await asyncio.sleep(interval)
                    writer.write(b"x")
                    await writer.drain()
            except (ConnectionError, asyncio.IncompleteReadError):
                pass
            finally:
                writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            yield f"http://127.0.0.1:{port}"
        finally:
            for task in handlers:
                task.cancel()
            await asyncio.gather(*handlers, return_exceptions=True)
            server.close()
            await server.wait_closed()

    return _serve
