from functools import lru_cache

import httpx
from fastapi import Depends

from Backend.gemini_proxy.auth import CallerVerifier, FirebaseVerifier, NoopVerifier
from Backend.gemini_proxy.client import GeminiClient
from Backend.gemini_proxy.config import Settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


@lru_cache(maxsize=1)
def get_http_client() -> httpx.AsyncClient:
    # shared connection pool, closed in the app lifespan
    return httpx.AsyncClient(timeout=get_settings().upstream_timeout_sec)


def get_verifier(
    settings: Settings = Depends(get_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> CallerVerifier:
    if not settings.requires_auth:
        return NoopVerifier()
    return FirebaseVerifier(http, settings.firebase_web_api_key, settings.firebase_lookup_url)


def get_gemini_client(
    settings: Settings = Depends(get_settings),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> GeminiClient:
    return GeminiClient(
        http,
        url=settings.completion_url,
        api_key=settings.gemini_api_key,
        max_retries=settings.max_retries,
        backoff_base=settings.backoff_base_sec,
        deadline=settings.upstream_deadline_sec,
    )
