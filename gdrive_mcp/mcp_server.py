import logging
from pathlib import Path

import anyio
import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server
from mcp.shared.exceptions import McpError
from oauthlib.oauth2.rfc6749.errors import OAuth2Error
from pydantic import BaseModel

from gdrive_mcp.auth import CredentialStore, build_drive_service, load_credentials, run_auth_flow
from gdrive_mcp.config import Settings
from gdrive_mcp.exceptions import GatewayError
from gdrive_mcp.services.drive import DriveGateway

logger = logging.getLogger(__name__)

SERVER_NAME = "gdrive"
SERVER_VERSION = "0.1.0"
URI_PREFIX = "gdrive:///"

SEARCH_TOOL = types.Tool(
    name="search",
    description="Search for files in your Google Drive account by name or content. "
    "Returns up to 10 matches with their file IDs.",
    inputSchema={
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Search query"},
        },
        "required": ["query"],
    },
)

READ_FILE_TOOL = types.Tool(
    name="read_file",
    description="Read a file from Google Drive by its file ID. Docs come back as markdown, "
    "Sheets as CSV, Slides as plain text; binary files are base64-encoded. "
    "Use search first to find the file ID.",
    inputSchema={
        "type": "object",
        "properties": {
            "file_id": {"type": "string", "description": "The ID of the file to read"},
        },
        "required": ["file_id"],
    },
)

AUTHENTICATE_TOOL = types.Tool(
    name="authenticate",
    description="Run the Google sign-in flow in a browser and save Google Drive credentials.",
    inputSchema={"type": "object", "properties": {}, "required": []},
)


class ToolFailure(BaseModel):
    """An expected failure reported to the model inside the tool result."""

    message: str

    def to_result(self) -> types.CallToolResult:
        return _text_result(self.message, is_error=True)


def _text_result(text: str, is_error: bool = False) -> types.CallToolResult:
    return types.CallToolResult(content=[types.TextContent(type="text", text=text)], isError=is_error)


def _protocol_error(code: int, message: str) -> McpError:
    return McpError(types.ErrorData(code=code, message=message))


def file_uri(file_id: str) -> str:
    return f"{URI_PREFIX}{file_id}"


def file_id_from_uri(uri: str) -> str:
    if not uri.startswith(URI_PREFIX):
        raise _protocol_error(types.INVALID_PARAMS, f"Unsupported resource URI: {uri}")
    return uri.removeprefix(URI_PREFIX)


def format_search_results(files) -> str:
    lines = "\n".join(f"{f.name} ({f.mime_type or 'unknown type'}) - ID: {f.id}" for f in files)
    return f"Found {len(files)} files:\n{lines}"


class DriveRouter:
    """Maps MCP requests onto DriveGateway calls.

    Malformed calls, unknown tools and remote failures outside read_file raise
    McpError, which the transport turns into a JSON-RPC error. read_file and
    authenticate failures come back as ToolFailure results instead, so the
    model sees them and can react.
    """

    def __init__(self, gateway: DriveGateway, store: CredentialStore, oauth_keys_path: Path | None = None):
        self.gateway = gateway
        self.store = store
        self.oauth_keys_path = oauth_keys_path

    @property
    def offers_authentication(self) -> bool:
        return self.oauth_keys_path is not None

    async def _remote(self, fn, *args):
        """Run a blocking gateway call off the event loop; failures become protocol errors."""
        try:
            return await anyio.to_thread.run_sync(fn, *args)
        except GatewayError as e:
            logger.error("Drive request failed: %s", e)
            raise _protocol_error(types.INTERNAL_ERROR, str(e)) from e

    # --- Resources ---

    async def list_resources(self, cursor: str | None = None) -> types.ListResourcesResult:
        page = await self._remote(self.gateway.list_files, cursor)
        return types.ListResourcesResult(
            resources=[
                types.Resource(uri=file_uri(f.id), name=f.name, mimeType=f.mime_type or None)
                for f in page.files
            ],
            nextCursor=page.next_page_token,
        )

    async def read_resource(self, uri: str) -> types.ReadResourceResult:
        content = await self._remote(self.gateway.read_content, file_id_from_uri(uri))
        if content.is_binary:
            item = types.BlobResourceContents(uri=uri, mimeType=content.mime_type, blob=content.content)
        else:
            item = types.TextResourceContents(uri=uri, mimeType=content.mime_type, text=content.content)
        return types.ReadResourceResult(contents=[item])

    # --- Tools ---

    async def list_tools(self) -> types.ListToolsResult:
        tools = [SEARCH_TOOL, READ_FILE_TOOL]
        if self.offers_authentication:
            tools.append(AUTHENTICATE_TOOL)
        return types.ListToolsResult(tools=tools)

    async def call_tool(self, name: str, arguments: dict | None) -> types.CallToolResult:
        arguments = arguments or {}
        if name == SEARCH_TOOL.name:
            return await self._search(arguments)
        if name == READ_FILE_TOOL.name:
            return await self._read_file(arguments)
        if name == AUTHENTICATE_TOOL.name and self.offers_authentication:
            return await self._authenticate()
        raise _protocol_error(types.INVALID_PARAMS, f"Unknown tool: {name}")

    async def _search(self, arguments: dict) -> types.CallToolResult:
        query = arguments.get("query")
        if not isinstance(query, str):
            raise _protocol_error(types.INVALID_PARAMS, "Search query must be a string.")
        files = await self._remote(self.gateway.search, query)
        return _text_result(format_search_results(files))

    async def _read_file(self, arguments: dict) -> types.CallToolResult:
        file_id = arguments.get("file_id")
        if not file_id or not isinstance(file_id, str):
            raise _protocol_error(types.INVALID_PARAMS, "File ID is required")
        try:
            content = await anyio.to_thread.run_sync(self.gateway.read_content, file_id)
        except GatewayError as e:
            logger.error("Error in read_file for %s: %s", file_id, e)
            return ToolFailure(message=f"Error reading file: {e}").to_result()
        except Exception as e:
            # read_file never fails at the protocol level, whatever the cause
            logger.exception("Unexpected error in read_file for %s", file_id)
            return ToolFailure(message=f"Error reading file: {e}").to_result()
        return _text_result(content.content)

    async def _authenticate(self) -> types.CallToolResult:
        try:
            creds = await anyio.to_thread.run_sync(run_auth_flow, self.oauth_keys_path, self.store)
        except (GatewayError, OAuth2Error, OSError, ValueError) as e:
            logger.error("Authentication failed: %s", e)
            return ToolFailure(message=f"Authentication failed: {e}").to_result()
        self.gateway = DriveGateway(build_drive_service(creds))
        return _text_result("Credentials generated and saved successfully.")

    # --- Wiring ---

    def register(self, server: Server) -> Server:
        """Install this router's handlers on a low-level MCP server."""

        async def handle_list_resources(req: types.ListResourcesRequest) -> types.ServerResult:
            cursor = req.params.cursor if req.params else None
            return types.ServerResult(await self.list_resources(cursor))

        async def handle_read_resource(req: types.ReadResourceRequest) -> types.ServerResult:
            return types.ServerResult(await self.read_resource(str(req.params.uri)))

        async def handle_list_tools(req: types.ListToolsRequest) -> types.ServerResult:
            return types.ServerResult(await self.list_tools())

        async def handle_call_tool(req: types.CallToolRequest) -> types.ServerResult:
            return types.ServerResult(await self.call_tool(req.params.name, req.params.arguments))

        # Registered directly rather than through the decorators, which neither
        # forward the list cursor nor let McpError escape from call_tool.
        server.request_handlers[types.ListResourcesRequest] = handle_list_resources
        server.request_handlers[types.ReadResourceRequest] = handle_read_resource
        server.request_handlers[types.ListToolsRequest] = handle_list_tools
        server.request_handlers[types.CallToolRequest] = handle_call_tool
        return server


def create_router(settings: Settings) -> DriveRouter:
    """Load credentials once and build a router around the resulting Drive client."""
    store = CredentialStore(settings.credentials)
    creds = load_credentials(store)
    gateway = DriveGateway(build_drive_service(creds) if creds else None)
    return DriveRouter(gateway, store, settings.oauth_keys_path)


def build_server(router: DriveRouter) -> Server:
    return router.register(Server(SERVER_NAME, version=SERVER_VERSION))


async def run_stdio(server: Server) -> None:
    async with stdio_server() as (read_stream, write_stream):
        logger.info("gdrive MCP server listening on stdio")
        await server.run(read_stream, write_stream, server.create_initialization_options())
