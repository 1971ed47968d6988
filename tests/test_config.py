from pathlib import Path

from gdrive_mcp.config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("MCP_GDRIVE_CREDENTIALS", raising=False)
        monkeypatch.delenv("MCP_GDRIVE_OAUTH_KEYS_PATH", raising=False)
        settings = Settings(_env_file=None)
        assert settings.credentials == Path.home() / ".gdrive-mcp-server" / ".gdrive-server-credentials.json"
        assert settings.oauth_keys_path is None

    def test_reads_prefixed_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MCP_GDRIVE_CREDENTIALS", str(tmp_path / "creds.json"))
        monkeypatch.setenv("MCP_GDRIVE_OAUTH_KEYS_PATH", str(tmp_path / "gcp-oauth.keys.json"))
        monkeypatch.setenv("MCP_GDRIVE_PORT", "9100")
        settings = Settings(_env_file=None)
        assert settings.credentials == tmp_path / "creds.json"
        assert settings.oauth_keys_path == tmp_path / "gcp-oauth.keys.json"
        assert settings.port == 9100
