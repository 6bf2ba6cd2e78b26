"""
Static file and directory browsing routes for dirserve
"""

import logging
from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response, StreamingResponse
from starlette.concurrency import run_in_threadpool

from .fs import (
    FileSystemError, PathTraversalError, list_directory, open_file_stream,
    resolve_request
)
from .listing import render_listing
from .models import FileInfo, ResolvedRequest, SECURITY_HEADERS, NO_CACHE
from .utils import create_response_headers, get_client_ip

logger = logging.getLogger(__name__)

# Browse router, registered after every other route
browse_router = APIRouter(tags=["browse"])

ERROR_MESSAGES = {
    403: "Forbidden",
    404: "Not found",
    500: "Failed to read directory",
}


def error_response(status_code: int) -> Response:
    """Plain-text error that reveals nothing about the filesystem"""
    headers = {"Cache-Control": NO_CACHE}
    headers.update(SECURITY_HEADERS)
    return PlainTextResponse(
        ERROR_MESSAGES.get(status_code, "Internal server error"),
        status_code=status_code,
        headers=headers,
    )


async def serve_directory(request: Request, resolved: ResolvedRequest) -> Response:
    """Render the listing of a directory"""
    entries = await list_directory(resolved.absolute_path, resolved.requested_path)
    body = render_listing(resolved.requested_path, entries)

    request.app.state.metrics.record_directory_listed()
    logger.debug(f"Listed directory: {resolved.absolute_path}")
    return Response(
        content=body,
        headers=create_response_headers("text/html; charset=utf-8"),
    )


def serve_file(request: Request, resolved: ResolvedRequest, info: FileInfo) -> Response:
    """Stream a regular file"""
    request.app.state.metrics.record_file_served(info.size)
    logger.debug(f"Serving file: {resolved.absolute_path} ({info.size} bytes)")
    return StreamingResponse(
        open_file_stream(resolved.absolute_path, info.size),
        headers=create_response_headers(info.mime_type, content_length=info.size),
    )


@browse_router.api_route("/{full_path:path}", methods=["GET", "HEAD"])
async def browse(request: Request, full_path: str):
    """Serve a file or a directory listing below the configured root"""

    config = request.app.state.config
    cache = request.app.state.cache
    client_ip = get_client_ip(request)
    request_path = "/" + full_path

    try:
        # Symlink resolution blocks, keep it off the event loop
        resolved = await run_in_threadpool(resolve_request, config.root, request_path)
    except PathTraversalError as e:
        logger.warning(f"SECURITY rejected path={request_path!r} ip={client_ip}: {e}")
        request.app.state.metrics.increment_traversal_rejections()
        return error_response(404)
    except FileSystemError as e:
        logger.warning(f"{e.status_code}: path={request_path!r} ip={client_ip}: {e}")
        return error_response(e.status_code)

    try:
        info, from_cache = await cache.resolve(resolved.absolute_path)
        logger.debug(f"Metadata for {resolved.absolute_path}: cached={from_cache}")
        if info.is_dir:
            return await serve_directory(request, resolved)
        return serve_file(request, resolved, info)

    except FileSystemError as e:
        logger.warning(f"{e.status_code}: path={request_path!r} ip={client_ip}: {e}")
        return error_response(e.status_code)


def setup_browse_routes(app):
    """Setup browse routes"""
    app.include_router(browse_router)
    logger.info("Browse routes setup complete")
