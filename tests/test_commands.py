"""
Tests for the aem-token and aem-assets command entry points.
"""

import json
from unittest.mock import AsyncMock, patch

import jwt

from aem_assets.commands import browse_assets, issue_token
from aem_assets.errors import ExchangeError
from aem_assets.models import AccessToken, ConnectionTestResult

HMAC_SECRET = "unit-test-secret-that-is-long-enough-for-hs256-signing"


class TestIssueTokenCommand:
    """Test aem-token."""

    def test_decode_json(self, capsys):
        token = jwt.encode({"exp": 1_700_000_000, "sub": "tech"}, HMAC_SECRET, algorithm="HS256")

        assert issue_token.main(["--decode", token, "--json"]) == 0

        report = json.loads(capsys.readouterr().out)
        assert report["claims"]["sub"] == "tech"
        assert report["expired"] is True
        assert report["expires_at"].startswith("2023-11-14")

    def test_decode_malformed(self):
        assert issue_token.main(["--decode", "not-a-jwt"]) == 1

    def test_issue_prints_token(self, tmp_path, capsys):
        fake = AsyncMock(return_value=AccessToken(value="issued-token", expires_in_seconds=60))
        with patch.object(issue_token.TokenService, "issue_access_token", fake):
            code = issue_token.main(["--env-file", str(tmp_path / "missing.env")])

        assert code == 0
        assert capsys.readouterr().out.strip() == "issued-token"
        fake.assert_awaited_once()

    def test_issue_failure_returns_error_code(self, tmp_path, caplog):
        fake = AsyncMock(side_effect=ExchangeError("Token exchange failed: 400", status_code=400, body="bad"))
        with patch.object(issue_token.TokenService, "issue_access_token", fake):
            code = issue_token.main(["--env-file", str(tmp_path / "missing.env")])

        assert code == 1
        assert "exchange stage" in caplog.text


class TestBrowseAssetsCommand:
    """Test aem-assets."""

    def test_missing_configuration(self, tmp_path, caplog):
        code = browse_assets.main(["--env-file", str(tmp_path / "missing.env"), "test"])

        assert code == 1
        assert "AEM Host URL is required" in caplog.text

    def test_connection_check(self, tmp_path, capsys):
        env_file = tmp_path / ".env"
        env_file.write_text("AEM_HOST=https://author.example.com\nACCESS_TOKEN=tok\nAPI_KEY=key\n")

        fake = AsyncMock(return_value=ConnectionTestResult(success=True, message="Connection successful"))
        with patch.object(browse_assets.AssetClient, "test_connection", fake):
            code = browse_assets.main(["--env-file", str(env_file), "test"])

        assert code == 0
        assert json.loads(capsys.readouterr().out) == {"success": True, "message": "Connection successful"}

    def test_download_arguments(self):
        parser = browse_assets.build_parser()
        args = parser.parse_args(["download", "/content/dam/a.jpg", "--rendition", "web"])
        assert args.rendition == "web"
        assert args.command == "download"
