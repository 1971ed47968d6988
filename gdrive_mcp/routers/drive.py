from fastapi import APIRouter, Depends

from gdrive_mcp.dependencies import get_gateway
from gdrive_mcp.models.drive import FileContent, ListFilesResponse
from gdrive_mcp.services.drive import DriveGateway

router = APIRouter(prefix="/api/drive", tags=["drive"])


@router.get("/files")
def list_files(cursor: str | None = None, gateway: DriveGateway = Depends(get_gateway)) -> ListFilesResponse:
    page = gateway.list_files(cursor)
    return ListFilesResponse(files=page.files, result_count=len(page.files), next_page_token=page.next_page_token)


@router.get("/search")
def search_files(query: str, gateway: DriveGateway = Depends(get_gateway)) -> ListFilesResponse:
    files = gateway.search(query)
    return ListFilesResponse(files=files, result_count=len(files))


@router.get("/files/{file_id}/content")
def get_file_content(file_id: str, gateway: DriveGateway = Depends(get_gateway)) -> FileContent:
    return gateway.read_content(file_id)
