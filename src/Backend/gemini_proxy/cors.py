from typing import Dict, Optional, Set

from fastapi import Response

from Backend.gemini_proxy.config import DEFAULT_ALLOWED_HEADERS, PREFLIGHT_MAX_AGE


def is_origin_allowed(origin: str, allowed_origins: Set[str], allow_missing: bool = True) -> bool:
    if not origin:
        return allow_missing
    return origin in allowed_origins


def cors_headers(origin: str, allowed_headers: Optional[str] = None) -> Dict[str, str]:
    return {
        "Access-Control-Allow-Origin": origin or "*",
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": allowed_headers or DEFAULT_ALLOWED_HEADERS,
        "Vary": "Origin",
    }


def preflight_response(origin: str, requested_headers: Optional[str], status_code: int = 204) -> Response:
    """Body-less preflight answer; rejections (403) carry the same headers."""
    headers = cors_headers(origin, requested_headers)
    headers["Access-Control-Max-Age"] = PREFLIGHT_MAX_AGE
    return Response(status_code=status_code, headers=headers)


def cors_response(origin: str, status_code: int, body: Optional[str] = None) -> Response:
    """Short plain-text response carrying the CORS headers for `origin`."""
    return Response(
        content=body,
        status_code=status_code,
        headers=cors_headers(origin),
        media_type="text/plain" if body is not None else None,
    )
