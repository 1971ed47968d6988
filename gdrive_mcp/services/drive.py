import base64
import logging

import httplib2
from google.auth.exceptions import RefreshError, TransportError
from googleapiclient.errors import HttpError

from gdrive_mcp.exceptions import AuthenticationError, IntegrationError, RateLimitError
from gdrive_mcp.models.drive import DriveFile, FileContent, FilePage
from gdrive_mcp.services.formats import (
    DEFAULT_MIME_TYPE,
    export_mime_type,
    is_text_mime_type,
    is_workspace_type,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 10
SEARCH_FIELDS = "files(id, name, mimeType, modifiedTime, size)"
LIST_FIELDS = "nextPageToken, files(id, name, mimeType)"


def escape_query(query: str) -> str:
    """Escape a value for use inside a single-quoted Drive query string."""
    return query.replace("\\", "\\\\").replace("'", "\\'")


def build_search_filter(query: str) -> str:
    escaped = escape_query(query)
    return f"(name contains '{escaped}' or fullText contains '{escaped}') and trashed = false"


def _handle_api_error(e: HttpError):
    if e.resp.status == 429:
        raise RateLimitError("Drive API rate limit exceeded. Try again shortly.") from e
    if e.resp.status in (401, 403):
        raise AuthenticationError(f"Drive denied access: {e}") from e
    raise IntegrationError(f"Drive API error: {e}") from e


def _execute(request):
    try:
        return request.execute()
    except HttpError as e:
        _handle_api_error(e)
    except RefreshError as e:
        raise AuthenticationError(
            f"Drive credentials expired or revoked: {e}. Run 'gdrive-mcp auth' to re-authenticate."
        ) from e
    except TransportError as e:
        raise IntegrationError(f"Could not reach Google to authorize the request: {e}") from e
    except (httplib2.HttpLib2Error, OSError) as e:
        raise IntegrationError(f"Drive request failed: {e}") from e


def _parse_file(f: dict) -> DriveFile:
    return DriveFile(
        id=f["id"],
        name=f.get("name", ""),
        mime_type=f.get("mimeType", ""),
        size=f.get("size"),
        modified_time=f.get("modifiedTime"),
    )


def _to_content(data: bytes | str, mime_type: str) -> FileContent:
    if isinstance(data, str):
        data = data.encode("utf-8")
    if is_text_mime_type(mime_type):
        return FileContent(mime_type=mime_type, content=data.decode("utf-8", errors="replace"))
    return FileContent(
        mime_type=mime_type,
        content=base64.b64encode(data).decode("ascii"),
        encoding="base64",
    )


class DriveGateway:
    """Searches and reads Drive files through an injected Drive v3 client.

    ``service`` is the object returned by ``googleapiclient.discovery.build``.
    It is only read, never reconfigured, so one gateway can serve concurrent
    requests. A gateway built without a service fails every call with
    AuthenticationError.
    """

    def __init__(self, service=None):
        self._service = service

    @property
    def connected(self) -> bool:
        return self._service is not None

    def _files(self):
        if self._service is None:
            raise AuthenticationError(
                "Drive credentials not loaded. Run 'gdrive-mcp auth' or call the authenticate tool."
            )
        return self._service.files()

    def list_files(self, cursor: str | None = None) -> FilePage:
        """One page of files, continuing from ``cursor`` when given."""
        params = {"pageSize": PAGE_SIZE, "fields": LIST_FIELDS}
        if cursor:
            params["pageToken"] = cursor
        results = _execute(self._files().list(**params))
        return FilePage(
            files=[_parse_file(f) for f in results.get("files", [])],
            next_page_token=results.get("nextPageToken"),
        )

    def search(self, query: str) -> list[DriveFile]:
        """Files whose name or body contains ``query``, excluding trash, in API order."""
        results = _execute(
            self._files().list(q=build_search_filter(query), pageSize=PAGE_SIZE, fields=SEARCH_FIELDS)
        )
        files = [_parse_file(f) for f in results.get("files", [])]
        logger.debug("Drive search %r matched %d files", query, len(files))
        return files

    def read_content(self, file_id: str) -> FileContent:
        """Read a file as text or base64.

        Workspace-native files are exported (Docs as markdown, Sheets as CSV,
        Slides as plain text, Drawings as PNG) and tagged with the export type.
        Everything else is downloaded as-is.
        """
        files = self._files()
        meta = _execute(files.get(fileId=file_id, fields="mimeType"))
        mime_type = meta.get("mimeType") or DEFAULT_MIME_TYPE

        if is_workspace_type(mime_type):
            target = export_mime_type(mime_type)
            logger.debug("Exporting %s (%s) as %s", file_id, mime_type, target)
            data = _execute(files.export(fileId=file_id, mimeType=target))
            return _to_content(data, target)

        data = _execute(files.get_media(fileId=file_id))
        return _to_content(data, mime_type)
