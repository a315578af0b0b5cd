"""Shared-secret authentication for the /api routes."""

import hmac
import json
import logging
from typing import Any

from fastapi import Request

from .errors import BadRequest, PayloadTooLarge, Unauthorized

logger = logging.getLogger(__name__)

API_KEY_FIELD = "api_key"


async def read_json_body(request: Request) -> Any:
    """Parse the request body as JSON. An empty body parses as ``{}``."""
    settings = request.app.state.settings
    raw = await request.body()
    if len(raw) > settings.max_body_bytes:
        raise PayloadTooLarge("Request body too large")
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except ValueError:
        raise BadRequest("Invalid JSON body")


def _key_matches(provided: Any, expected: str) -> bool:
    if not expected or not isinstance(provided, str):
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


async def authenticated_body(request: Request) -> Any:
    """FastAPI dependency: check ``api_key`` and return the body without it.

    The key is removed from the parsed body in place, so handlers never see it
    and it cannot end up in a stored document.
    """
    settings = request.app.state.settings
    body = await read_json_body(request)

    provided = body.get(API_KEY_FIELD) if isinstance(body, dict) else None
    if not provided and settings.allow_query_api_key:
        provided = request.query_params.get(API_KEY_FIELD)

    if not provided:
        logger.warning("Missing api_key on %s %s", request.method, request.url.path)
        where = "request body or query string" if settings.allow_query_api_key else "request body"
        raise Unauthorized(f"Missing api_key in {where}")

    if not _key_matches(provided, settings.api_key):
        logger.warning("Invalid api_key on %s %s", request.method, request.url.path)
        raise Unauthorized("Invalid api_key")

    if isinstance(body, dict):
        body.pop(API_KEY_FIELD, None)
    return body
