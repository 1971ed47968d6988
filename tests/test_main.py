import pytest
from unittest.mock import MagicMock
from click.testing import CliRunner
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.routing import Mount

from gdrive_mcp import main
from gdrive_mcp.config import Settings
from gdrive_mcp.exceptions import AuthenticationError, RateLimitError
from gdrive_mcp.mcp_server import DriveRouter
from gdrive_mcp.services.drive import DriveGateway


@pytest.fixture
def settings(tmp_path, mocker):
    s = Settings(credentials=tmp_path / "creds.json", oauth_keys_path=tmp_path / "keys.json")
    mocker.patch("gdrive_mcp.main.get_settings", return_value=s)
    return s


def _status_client(router) -> TestClient:
    api = main.create_api()
    api.state.drive_router = router
    return TestClient(api)


class TestStatus:
    def test_not_authenticated(self, credential_store):
        resp = _status_client(DriveRouter(DriveGateway(), credential_store)).get("/api/status")
        data = resp.json()
        assert data["authenticated"] is False
        assert data["credentials_path"] == str(credential_store.path)
        assert "gdrive-mcp auth" in data["message"]

    def test_authenticated(self, drive_router):
        resp = _status_client(drive_router).get("/api/status")
        assert resp.json()["authenticated"] is True


class TestCreateApi:
    def test_error_handlers_registered(self, drive_router, mock_gateway):
        mock_gateway.search.side_effect = RateLimitError("slow down")
        resp = _status_client(drive_router).get("/api/drive/search?query=x")
        assert resp.status_code == 429
        assert resp.json() == {"error_code": "rate_limit", "message": "slow down"}

    def test_instances_do_not_share_state(self, drive_router):
        first, second = main.create_api(), main.create_api()
        first.state.drive_router = drive_router
        assert first is not second
        assert not hasattr(second.state, "drive_router")


def _mounted_api(app) -> FastAPI:
    return next(route.app for route in app.routes if isinstance(route, Mount) and isinstance(route.app, FastAPI))


class TestCreateApp:
    def test_serves_rest_api(self, drive_router):
        app = main.create_app(drive_router)
        with TestClient(app) as client:
            resp = client.get("/api/status")
        # TestClient's peer is "testclient", which is not localhost
        assert resp.status_code == 403
        assert resp.json()["error_code"] == "forbidden"

    def test_stores_router_on_its_own_api(self, drive_router, credential_store):
        other = DriveRouter(DriveGateway(), credential_store)
        first = main.create_app(drive_router)
        second = main.create_app(other)
        assert _mounted_api(first).state.drive_router is drive_router
        assert _mounted_api(second).state.drive_router is other


class TestAuthCommand:
    def test_success(self, settings, mocker):
        run_flow = mocker.patch("gdrive_mcp.main.run_auth_flow")
        result = CliRunner().invoke(main.cli, ["auth"])
        assert result.exit_code == 0
        assert "Credentials saved" in result.output
        keys_path, store = run_flow.call_args.args
        assert keys_path == settings.oauth_keys_path
        assert store.path == settings.credentials

    def test_failure_exits_1(self, settings, mocker):
        mocker.patch("gdrive_mcp.main.run_auth_flow", side_effect=AuthenticationError("OAuth keys file not found."))
        result = CliRunner().invoke(main.cli, ["auth"])
        assert result.exit_code == 1
        assert "OAuth keys file not found." in result.output


class TestServeCommand:
    def test_stdio_is_default(self, settings, mocker):
        router = MagicMock()
        mocker.patch("gdrive_mcp.main.create_router", return_value=router)
        build = mocker.patch("gdrive_mcp.main.build_server")
        anyio_run = mocker.patch("gdrive_mcp.main.anyio.run")
        result = CliRunner().invoke(main.cli, [])
        assert result.exit_code == 0
        build.assert_called_once_with(router)
        anyio_run.assert_called_once_with(main.run_stdio, build.return_value)

    def test_http(self, settings, mocker):
        mocker.patch("gdrive_mcp.main.create_router")
        create_app = mocker.patch("gdrive_mcp.main.create_app")
        uvicorn_run = mocker.patch("gdrive_mcp.main.uvicorn.run")
        result = CliRunner().invoke(main.cli, ["serve", "--transport", "http"])
        assert result.exit_code == 0
        uvicorn_run.assert_called_once_with(
            create_app.return_value, host=settings.host, port=settings.port, log_level=settings.log_level.lower()
        )
