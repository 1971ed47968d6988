import pytest
from unittest.mock import MagicMock

from googleapiclient.errors import HttpError

from gdrive_mcp.auth import CredentialStore
from gdrive_mcp.mcp_server import DriveRouter
from gdrive_mcp.models.drive import DriveFile
from gdrive_mcp.services.drive import DriveGateway


# --- Canned API responses ---

DRIVE_API_FILE = {
    "id": "file123",
    "name": "report.txt",
    "mimeType": "text/plain",
    "size": "1024",
    "modifiedTime": "2025-01-02T00:00:00Z",
}

DRIVE_API_LIST = {
    "files": [DRIVE_API_FILE],
}

DRIVE_API_PAGE = {
    "nextPageToken": "page2",
    "files": [
        {"id": "file123", "name": "report.txt", "mimeType": "text/plain"},
        {"id": "doc456", "name": "Plan", "mimeType": "application/vnd.google-apps.document"},
    ],
}

TOKEN_DATA = {
    "token": "ya29.access",
    "refresh_token": "1//refresh",
    "token_uri": "https://oauth2.googleapis.com/token",
    "client_id": "client.apps.googleusercontent.com",
    "client_secret": "secret",
    "scopes": ["https://www.googleapis.com/auth/drive.readonly"],
}

SAMPLE_FILE = DriveFile(
    id="file123", name="report.txt", mime_type="text/plain",
    size="1024", modified_time="2025-01-02T00:00:00Z",
)


def make_http_error(status: int, message: str = "error") -> HttpError:
    resp = MagicMock()
    resp.status = status
    resp.reason = message
    content = f'{{"error": {{"code": {status}, "message": "{message}"}}}}'.encode()
    return HttpError(resp=resp, content=content)


@pytest.fixture
def mock_drive_service():
    """Stand-in for the object returned by googleapiclient.discovery.build."""
    return MagicMock()


@pytest.fixture
def gateway(mock_drive_service):
    return DriveGateway(mock_drive_service)


@pytest.fixture
def mock_gateway():
    gw = MagicMock(spec=DriveGateway)
    gw.connected = True
    return gw


@pytest.fixture
def credential_store(tmp_path):
    return CredentialStore(tmp_path / "creds" / "credentials.json")


@pytest.fixture
def drive_router(mock_gateway, credential_store):
    return DriveRouter(mock_gateway, credential_store)
