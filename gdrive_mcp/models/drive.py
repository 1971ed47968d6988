from typing import Literal

from pydantic import BaseModel, ConfigDict


class DriveFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    mime_type: str
    size: str | None = None
    modified_time: str | None = None


class FilePage(BaseModel):
    files: list[DriveFile]
    next_page_token: str | None = None


class FileContent(BaseModel):
    """Normalized read result. `encoding` is derived from `mime_type`."""

    mime_type: str
    content: str
    encoding: Literal["text", "base64"] = "text"

    @property
    def is_binary(self) -> bool:
        return self.encoding == "base64"


class ListFilesResponse(BaseModel):
    files: list[DriveFile]
    result_count: int
    next_page_token: str | None = None
