"""FastAPI dependencies shared by the REST routes."""

from fastapi import Depends, Request

from gdrive_mcp.mcp_server import DriveRouter
from gdrive_mcp.services.drive import DriveGateway


def get_drive_router(request: Request) -> DriveRouter:
    """The router created at startup; main.create_app stores it on app state."""
    return request.app.state.drive_router


def get_gateway(drive_router: DriveRouter = Depends(get_drive_router)) -> DriveGateway:
    # Read per request: the authenticate tool may have swapped in a new gateway
    return drive_router.gateway
