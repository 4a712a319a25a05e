import os
from typing import List, Set

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

RETRYABLE_STATUS: Set[int] = {429, 503}
DEFAULT_ALLOWED_HEADERS = "Content-Type, Authorization"
PREFLIGHT_MAX_AGE = "86400"

DEFAULT_ALLOWED_ORIGINS = ",".join([
    "https://wanderly.web.app",
    "https://wanderly.firebaseapp.com",
    "https://wanderly-1f739.web.app",
    "https://wanderly-1f739.firebaseapp.com",
    "http://localhost:5173",
])

AUTH_MODES = {"firebase", "none"}


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


class Settings(BaseModel):
    gemini_api_key: str = Field(default_factory=lambda: os.getenv("GEMINI_API_KEY", ""))
    firebase_web_api_key: str = Field(default_factory=lambda: os.getenv("FIREBASE_WEB_API_KEY", ""))
    auth_mode: str = Field(default_factory=lambda: os.getenv("AUTH_MODE", "firebase").strip().lower())

    allowed_origins: str = Field(default_factory=lambda: os.getenv("ALLOWED_ORIGINS", DEFAULT_ALLOWED_ORIGINS))
    allow_missing_origin: bool = Field(default_factory=lambda: _env_bool("ALLOW_MISSING_ORIGIN", "true"))

    gemini_model: str = Field(default_factory=lambda: os.getenv("GEMINI_MODEL", "gemini-2.5-flash"))
    gemini_api_base: str = Field(
        default_factory=lambda: os.getenv(
            "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
        ).rstrip("/")
    )
    firebase_lookup_url: str = Field(
        default_factory=lambda: os.getenv(
            "FIREBASE_LOOKUP_URL", "https://identitytoolkit.googleapis.com/v1/accounts:lookup"
        )
    )

    # retry loop: attempts 0..max_retries, delay(attempt) = backoff_base_sec * 2 ** attempt
    max_retries: int = Field(default_factory=lambda: int(os.getenv("MAX_RETRIES", "2")), ge=0)
    backoff_base_sec: float = Field(default_factory=lambda: float(os.getenv("BACKOFF_BASE_SEC", "0.5")), ge=0)
    upstream_timeout_sec: float = Field(default_factory=lambda: float(os.getenv("UPSTREAM_TIMEOUT_SEC", "30")))
    upstream_deadline_sec: float = Field(default_factory=lambda: float(os.getenv("UPSTREAM_DEADLINE_SEC", "20")))

    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    @property
    def allowed_origins_set(self) -> Set[str]:
        return {origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()}

    @property
    def completion_url(self) -> str:
        return f"{self.gemini_api_base}/models/{self.gemini_model}:generateContent"

    @property
    def requires_auth(self) -> bool:
        return self.auth_mode != "none"

    def missing_secrets(self) -> List[str]:
        missing = []
        if not self.gemini_api_key:
            missing.append("GEMINI_API_KEY")
        if self.requires_auth and not self.firebase_web_api_key:
            missing.append("FIREBASE_WEB_API_KEY")
        return missing

    def check_secrets(self) -> None:
        """Raise RuntimeError for an unknown AUTH_MODE or an unset secret."""
        if self.auth_mode not in AUTH_MODES:
            raise RuntimeError(f"Unsupported AUTH_MODE: {self.auth_mode} (expected one of {sorted(AUTH_MODES)})")
        missing = self.missing_secrets()
        if missing:
            raise RuntimeError(f"Missing required env var: {', '.join(missing)}")
