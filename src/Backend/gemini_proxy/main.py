import json
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from Backend.gemini_proxy.auth import CallerVerifier, extract_bearer_token
from Backend.gemini_proxy.client import GeminiClient, UpstreamUnavailable
from Backend.gemini_proxy.config import Settings
from Backend.gemini_proxy.cors import cors_headers, cors_response, is_origin_allowed, preflight_response
from Backend.gemini_proxy.deps import get_gemini_client, get_http_client, get_settings, get_verifier
from Backend.gemini_proxy.models import ProxyRequest

logging.basicConfig(
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    settings.check_secrets()
    logger.info(
        f"Starting Gemini proxy: model={settings.gemini_model}, auth_mode={settings.auth_mode}, "
        f"origins={len(settings.allowed_origins_set)}, max_retries={settings.max_retries}"
    )
    yield
    if get_http_client.cache_info().currsize:
        await get_http_client().aclose()
    logger.info("Gemini proxy stopped")


app = FastAPI(title="Wanderly Gemini Proxy", version="1.0.0", lifespan=lifespan)


# ============================================================
# Health
# ============================================================

@app.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    return {"status": "ok", "auth_mode": settings.auth_mode}


# ============================================================
# Gemini proxy (single route, method-dispatched)
# ============================================================

@app.api_route("/", methods=["POST", "OPTIONS"])
async def proxy(
    request: Request,
    settings: Settings = Depends(get_settings),
    verifier: CallerVerifier = Depends(get_verifier),
    gemini: GeminiClient = Depends(get_gemini_client),
) -> Response:
    origin = request.headers.get("Origin", "")
    method = request.method.upper()
    origin_allowed = is_origin_allowed(origin, settings.allowed_origins_set, settings.allow_missing_origin)

    if method == "OPTIONS":
        if not origin_allowed:
            logger.warning(f"Rejected preflight from origin {origin!r}")
            return preflight_response(origin, None, status_code=403)
        return preflight_response(origin, request.headers.get("Access-Control-Request-Headers"))

    if not origin_allowed:
        logger.warning(f"Rejected request from origin {origin!r}")
        return cors_response(origin, 403, "Origin not allowed")

    token = extract_bearer_token(request.headers.get("Authorization"))
    if verifier.requires_token and token is None:
        return cors_response(origin, 401, "Missing bearer token")

    caller = await verifier.verify(token)
    if caller is None:
        return cors_response(origin, 401, "Invalid authentication token")
    logger.debug(f"Caller verified: uid={caller.uid}")

    try:
        body = json.loads(await request.body())
    except ValueError as e:
        logger.error(f"Invalid request body: {e}")
        return cors_response(origin, 400, "Invalid JSON body")

    proxy_request = ProxyRequest.from_body(body)
    if proxy_request is None:
        return cors_response(origin, 400, "Missing prompt")

    try:
        upstream = await gemini.generate(proxy_request.prompt)
    except UpstreamUnavailable as e:
        return cors_response(origin, 502, e.message)

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers={**cors_headers(origin), "Content-Type": "application/json"},
    )


@app.exception_handler(StarletteHTTPException)
async def method_not_allowed_handler(request: Request, exc: StarletteHTTPException):
    # the proxy route answers 405 itself for every method it does not serve
    if exc.status_code == 405 and request.url.path == "/":
        return cors_response(request.headers.get("Origin", ""), 405, "Method not allowed")
    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {type(exc).__name__}",
        exc_info=True,
    )
    return JSONResponse(status_code=500, content={"error": "internal_error"})


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
