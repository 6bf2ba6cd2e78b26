"""
JSON echo API for dirserve
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Request, HTTPException
from fastapi.responses import JSONResponse

from .models import ApiResponse, ResponseCode
from .utils import get_client_ip

logger = logging.getLogger(__name__)

ECHO_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


class BodyTooLarge(Exception):
    """Request body exceeds the configured limit"""
    pass


def _bad_request(msg: str) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail=ApiResponse(
            code=ResponseCode.BAD_REQUEST.value,
            msg=msg,
            data=None,
        ).to_dict(),
    )


async def read_limited_body(request: Request, limit: int) -> bytes:
    """Read the request body, failing as soon as it exceeds ``limit`` bytes"""

    content_length = request.headers.get("content-length")
    if content_length:
        try:
            if int(content_length) > limit:
                raise BodyTooLarge(f"Declared body of {content_length} bytes exceeds {limit}")
        except ValueError:
            raise BodyTooLarge(f"Invalid Content-Length: {content_length}")

    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise BodyTooLarge(f"Body exceeds {limit} bytes")
    return bytes(body)


async def echo(request: Request):
    """Decode a JSON object and send it back"""

    client_ip = get_client_ip(request)

    if request.method != "POST":
        raise HTTPException(
            status_code=405,
            detail=ApiResponse(
                code=ResponseCode.METHOD_NOT_ALLOWED.value,
                msg="Only POST allowed",
                data=None,
            ).to_dict(),
            headers={"Allow": "POST"},
        )

    limit = request.app.state.config.api.maxBodySize
    try:
        body = await read_limited_body(request, limit)
    except BodyTooLarge as e:
        logger.warning(f"Rejected body from {client_ip}: {e}")
        raise _bad_request("Request body too large")

    if not body.strip():
        logger.warning(f"Empty JSON body from {client_ip}")
        raise _bad_request("Invalid or empty JSON data")

    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, ValueError) as e:
        logger.warning(f"Invalid JSON from {client_ip}: {e}")
        raise _bad_request("Invalid or empty JSON data")

    if not isinstance(payload, dict) or not payload:
        logger.warning(f"Empty or non-object JSON from {client_ip}")
        raise _bad_request("Invalid or empty JSON data")

    logger.info(f"Handled POST request from {client_ip} - Data: {payload}")
    return JSONResponse(content={"status": "success", "received": payload})


def setup_api_routes(app):
    """Mount the echo endpoint at every configured path"""
    api_router = APIRouter(tags=["api"])
    for path in app.state.config.api.paths:
        api_router.add_api_route(path, echo, methods=ECHO_METHODS)

    app.include_router(api_router)
    logger.info(f"API routes setup complete: {app.state.config.api.paths}")
