# src/tiktok_relay/config.py

import logging
from pathlib import Path
from typing import Any, List, Optional, Union

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# .env lives in the service directory, two levels up from src/tiktok_relay/
PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = PACKAGE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

if ENV_FILE_PATH.exists():
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=True)
    logger.info(f"[CONFIG] Loaded .env file from: {ENV_FILE_PATH}")
else:
    logger.info(f"[CONFIG] No .env file at {ENV_FILE_PATH}. Relying on environment variables.")


class Settings(BaseSettings):
    # === TikTok app credentials ===
    TIKTOK_CLIENT_KEY: str
    TIKTOK_CLIENT_SECRET: str
    TIKTOK_REDIRECT_URI: AnyHttpUrl
    # Comma-separated in the environment, a list once validated
    TIKTOK_SCOPES: Union[str, List[str]] = ["video.upload", "video.publish"]

    # === TikTok endpoints ===
    TIKTOK_AUTH_URL: str = "https://www.tiktok.com/v2/auth/authorize/"
    TIKTOK_TOKEN_URL: str = "https://open.tiktokapis.com/v2/oauth/token/"
    TIKTOK_UPLOAD_URL: str = "https://open.tiktokapis.com/v2/video/upload/"
    TIKTOK_PUBLISH_URL: str = "https://open.tiktokapis.com/v2/video/publish/"
    # None disables the httpx timeout; large uploads run to completion
    PROVIDER_TIMEOUT_SECONDS: Optional[float] = None

    # === OAuth state ===
    OAUTH_STATE_TTL_SECONDS: int = 600

    # === Server ===
    UPLOAD_DIR: Path = Path("uploads")
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    @property
    def REDIRECT_URI(self) -> str:
        return str(self.TIKTOK_REDIRECT_URI)

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    @field_validator("TIKTOK_SCOPES", mode="before")
    @classmethod
    def parse_comma_separated_scopes(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            return [scope.strip() for scope in v.split(",") if scope.strip()]
        if isinstance(v, (list, tuple)):
            return [str(scope).strip() for scope in v if str(scope).strip()]
        raise TypeError("TIKTOK_SCOPES: Expected a comma-separated string or a list.")

    @model_validator(mode="after")
    def check_final_scopes_type(self) -> "Settings":
        if not isinstance(self.TIKTOK_SCOPES, list):
            raise ValueError(f"TIKTOK_SCOPES ended up as {type(self.TIKTOK_SCOPES)}, expected list.")
        if not self.TIKTOK_SCOPES:
            raise ValueError("TIKTOK_SCOPES must name at least one scope.")
        return self


def get_settings() -> Settings:
    try:
        return Settings()
    except Exception:
        logger.exception("[CONFIG] Error instantiating Settings")
        raise
