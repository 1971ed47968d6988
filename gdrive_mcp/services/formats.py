"""MIME type tables for turning Drive files into text an LLM can read.

Workspace-native files (Docs, Sheets, Slides, Drawings) have no stored bytes,
so they are exported. Export targets favour markdown, CSV and plain text over
Google's binary office formats.
"""

from enum import Enum

WORKSPACE_PREFIX = "application/vnd.google-apps"
DEFAULT_EXPORT_MIME_TYPE = "text/plain"
DEFAULT_MIME_TYPE = "application/octet-stream"


class WorkspaceType(str, Enum):
    DOCUMENT = "application/vnd.google-apps.document"
    SPREADSHEET = "application/vnd.google-apps.spreadsheet"
    PRESENTATION = "application/vnd.google-apps.presentation"
    DRAWING = "application/vnd.google-apps.drawing"


EXPORT_MIME_TYPES: dict[WorkspaceType, str] = {
    WorkspaceType.DOCUMENT: "text/markdown",
    WorkspaceType.SPREADSHEET: "text/csv",
    WorkspaceType.PRESENTATION: "text/plain",
    WorkspaceType.DRAWING: "image/png",
}


def is_workspace_type(mime_type: str) -> bool:
    return mime_type.startswith(WORKSPACE_PREFIX)


def export_mime_type(mime_type: str) -> str:
    """Export target for a Workspace-native type. Unlisted types export as plain text."""
    try:
        return EXPORT_MIME_TYPES[WorkspaceType(mime_type)]
    except ValueError:
        return DEFAULT_EXPORT_MIME_TYPE


def is_text_mime_type(mime_type: str) -> bool:
    return mime_type.startswith("text/") or mime_type == "application/json"
