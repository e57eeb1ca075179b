from dataclasses import dataclass
from functools import lru_cache
import os

from dotenv import load_dotenv

COMPOSITE_BATCH_LIMIT = 25


def _to_bool(value: str | None, *, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: str | None, *, default: int, minimum: int, maximum: int | None = None) -> int:
    if value is None:
        return default
    parsed = max(minimum, int(value))
    if maximum is not None:
        parsed = min(maximum, parsed)
    return parsed


def _to_float(value: str | None, *, default: float, minimum: float) -> float:
    if value is None:
        return default
    return max(minimum, float(value))


@dataclass(frozen=True)
class Settings:
    instance_url: str
    client_id: str
    redirect_uri: str
    api_version: str
    timeout_seconds: float
    max_retries: int
    retry_base_seconds: float
    access_token: str | None
    documents_dir: str
    batch_size: int
    create_distributions: bool
    strict_distributions: bool
    log_dir: str
    log_level: str

    @property
    def auth_url(self) -> str:
        return f"{self.instance_url}/services/oauth2/authorize"

    @property
    def token_url(self) -> str:
        return f"{self.instance_url}/services/oauth2/token"


@lru_cache
def get_settings() -> Settings:
    load_dotenv()

    return Settings(
        instance_url=os.getenv("SF_INSTANCE_URL", "").rstrip("/"),
        client_id=os.getenv("SF_CLIENT_ID", ""),
        redirect_uri=os.getenv("SF_REDIRECT_URI", "http://localhost:8080/oauth/callback"),
        api_version=os.getenv("SF_API_VERSION", "v57.0"),
        timeout_seconds=_to_float(os.getenv("SF_TIMEOUT_SECONDS"), default=60.0, minimum=1.0),
        max_retries=_to_int(os.getenv("SF_MAX_RETRIES"), default=2, minimum=0),
        retry_base_seconds=_to_float(
            os.getenv("SF_RETRY_BASE_SECONDS"), default=0.5, minimum=0.0
        ),
        access_token=os.getenv("SF_ACCESS_TOKEN") or None,
        documents_dir=os.getenv("UPLOADER_DOCUMENTS_DIR", "./documents"),
        batch_size=_to_int(
            os.getenv("UPLOADER_BATCH_SIZE"),
            default=COMPOSITE_BATCH_LIMIT,
            minimum=1,
            maximum=COMPOSITE_BATCH_LIMIT,
        ),
        create_distributions=_to_bool(
            os.getenv("UPLOADER_CREATE_DISTRIBUTIONS"), default=False
        ),
        strict_distributions=_to_bool(
            os.getenv("UPLOADER_STRICT_DISTRIBUTIONS"), default=False
        ),
        log_dir=os.getenv("UPLOADER_LOG_DIR", "./logs"),
        log_level=os.getenv("UPLOADER_LOG_LEVEL", "INFO").upper(),
    )
