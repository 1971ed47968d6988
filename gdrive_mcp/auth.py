import json
import logging
import os
from pathlib import Path

# Allow Google to return broader scopes than requested (e.g. from prior grants)
os.environ["OAUTHLIB_RELAX_TOKEN_SCOPE"] = "1"

import google_auth_httplib2
import httplib2
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.http import HttpRequest
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

from gdrive_mcp.exceptions import AuthenticationError, CredentialError

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/drive.readonly"]


class CredentialStore:
    """Reads/writes the Drive OAuth token file."""

    def __init__(self, path: Path):
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> dict:
        try:
            token_data = json.loads(self.path.read_text())
        except (OSError, ValueError) as e:
            raise CredentialError(f"Could not read {self.path}: {e}") from e
        if not isinstance(token_data, dict) or not token_data.get("refresh_token"):
            raise CredentialError("Invalid credentials format in file.")
        return token_data

    def load(self) -> Credentials:
        token_data = self.read()
        try:
            return Credentials.from_authorized_user_info(token_data, SCOPES)
        except ValueError as e:
            raise CredentialError(f"Invalid credentials format in file: {e}") from e

    def save(self, creds: Credentials) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(creds.to_json())


def load_credentials(store: CredentialStore) -> Credentials | None:
    """Load credentials at startup. A missing or broken file is logged, never fatal."""
    if not store.exists():
        logger.warning("Credentials file not found at %s. Authentication may be required.", store.path)
        logger.warning("Run 'gdrive-mcp auth' or use the authenticate tool if needed.")
        return None
    try:
        creds = store.load()
    except CredentialError as e:
        logger.error("Error loading credentials from %s: %s", store.path, e)
        logger.error("File might be corrupted or invalid. Please run authentication again.")
        return None
    logger.info("Credentials loaded successfully.")
    return creds


def build_drive_service(creds: Credentials):
    """Build a Drive v3 client where every request gets its own HTTP connection.

    httplib2.Http is not thread-safe and Drive calls run in worker threads.
    """

    def build_request(http, *args, **kwargs):
        new_http = google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http())
        return HttpRequest(new_http, *args, **kwargs)

    authorized_http = google_auth_httplib2.AuthorizedHttp(creds, http=httplib2.Http())
    return build("drive", "v3", http=authorized_http, requestBuilder=build_request, cache_discovery=False)


def run_auth_flow(oauth_keys_path: Path | None, store: CredentialStore) -> Credentials:
    """Run the installed-app OAuth consent flow and persist the resulting tokens."""
    if oauth_keys_path is None:
        raise AuthenticationError(
            "MCP_GDRIVE_OAUTH_KEYS_PATH is not set. Point it at your OAuth client ID JSON file "
            "(desktop app type recommended)."
        )
    if not oauth_keys_path.exists():
        raise AuthenticationError(f"OAuth keys file not found at {oauth_keys_path}.")

    logger.info("Using OAuth keys from %s", oauth_keys_path)
    logger.info("Will save credentials to %s", store.path)
    flow = InstalledAppFlow.from_client_secrets_file(str(oauth_keys_path), scopes=SCOPES)
    # stdout may be the MCP stdio channel, so the flow must not print to it
    try:
        creds = flow.run_local_server(port=0, authorization_prompt_message="")
    except OAuth2Error as e:
        raise AuthenticationError(f"Google sign-in failed: {e}") from e
    store.save(creds)
    logger.info("Credentials saved to %s", store.path)
    return creds
