import contextlib
import logging
import sys

import anyio
import click
import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Mount

from gdrive_mcp.auth import CredentialStore, run_auth_flow
from gdrive_mcp.config import get_settings
from gdrive_mcp.dependencies import get_drive_router
from gdrive_mcp.exceptions import AuthenticationError, IntegrationError, RateLimitError
from gdrive_mcp.mcp_server import SERVER_VERSION, DriveRouter, build_server, create_router, run_stdio
from gdrive_mcp.models.common import ErrorResponse, StatusResponse
from gdrive_mcp.routers.drive import router as drive_router

logger = logging.getLogger(__name__)


# --- Localhost-only middleware ---

class LocalhostOnlyMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        client_host = request.client.host if request.client else None
        if client_host not in ("127.0.0.1", "::1", "localhost"):
            return JSONResponse(
                status_code=403,
                content=ErrorResponse(error_code="forbidden", message="Localhost access only").model_dump(),
            )
        return await call_next(request)


# --- Exception handlers ---

async def auth_error_handler(request: Request, exc: AuthenticationError):
    return JSONResponse(status_code=401, content=ErrorResponse(error_code="auth_error", message=str(exc)).model_dump())


async def integration_error_handler(request: Request, exc: IntegrationError):
    return JSONResponse(status_code=500, content=ErrorResponse(error_code="integration_error", message=str(exc)).model_dump())


async def rate_limit_error_handler(request: Request, exc: RateLimitError):
    return JSONResponse(status_code=429, content=ErrorResponse(error_code="rate_limit", message=str(exc)).model_dump())


# --- FastAPI app ---

def api_status(router: DriveRouter = Depends(get_drive_router)) -> StatusResponse:
    connected = router.gateway.connected
    return StatusResponse(
        authenticated=connected,
        credentials_path=str(router.store.path),
        message="Credentials loaded" if connected else "Not authenticated. Run 'gdrive-mcp auth' to connect.",
    )


def create_api() -> FastAPI:
    """A fresh REST app. The caller stores its DriveRouter on ``app.state.drive_router``."""
    api = FastAPI(title="gdrive-mcp", version=SERVER_VERSION)
    api.include_router(drive_router)
    api.add_api_route("/api/status", api_status, methods=["GET"])
    api.add_exception_handler(AuthenticationError, auth_error_handler)
    api.add_exception_handler(IntegrationError, integration_error_handler)
    api.add_exception_handler(RateLimitError, rate_limit_error_handler)
    return api


# --- Starlette root app ---

def create_app(router: DriveRouter) -> Starlette:
    """Serve MCP over streamable HTTP at /mcp and the REST API at /."""
    api = create_api()
    api.state.drive_router = router
    session_manager = StreamableHTTPSessionManager(app=build_server(router), stateless=True)

    async def handle_mcp(scope, receive, send):
        await session_manager.handle_request(scope, receive, send)

    @contextlib.asynccontextmanager
    async def lifespan(app):
        async with session_manager.run():
            yield

    return Starlette(
        middleware=[Middleware(LocalhostOnlyMiddleware)],
        routes=[
            Mount("/mcp", app=handle_mcp),
            Mount("/", app=api),
        ],
        lifespan=lifespan,
    )


# --- CLI ---

def _configure_logging(level: str) -> None:
    # stderr only: stdout carries the stdio transport
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@click.group(invoke_without_command=True)
@click.pass_context
def cli(ctx):
    """Google Drive MCP server. Runs `serve` when no command is given."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(serve)


@cli.command()
@click.option("--transport", type=click.Choice(["stdio", "http"]), default="stdio", show_default=True)
def serve(transport):
    """Load credentials and serve Drive search/read over MCP."""
    settings = get_settings()
    _configure_logging(settings.log_level)
    router = create_router(settings)
    if transport == "http":
        logger.info("Serving on http://%s:%d", settings.host, settings.port)
        uvicorn.run(
            create_app(router),
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
        )
    else:
        anyio.run(run_stdio, build_server(router))


@cli.command()
def auth():
    """Sign in with Google and save Drive credentials."""
    settings = get_settings()
    _configure_logging(settings.log_level)
    try:
        run_auth_flow(settings.oauth_keys_path, CredentialStore(settings.credentials))
    except AuthenticationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo("Credentials saved. You can now run the server.", err=True)


def run():
    cli()


if __name__ == "__main__":
    run()
