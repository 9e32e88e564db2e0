# src/tiktok_relay/session_data.py

import secrets
import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

STATE_PREFIX = "state_"


def new_anti_forgery_token() -> str:
    return STATE_PREFIX + secrets.token_urlsafe(24)


class AuthorizationSession(BaseModel):
    """
    Token material and OAuth state for the authorized TikTok account.
    One instance lives for the whole process; nothing here is persisted.
    """
    anti_forgery_token: Optional[str] = Field(default_factory=new_anti_forgery_token)
    anti_forgery_issued_at: Optional[float] = Field(default_factory=time.time)
    # Redirect URI sent with the pending state; the exchange must repeat it
    anti_forgery_redirect_uri: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_payload: Optional[Dict[str, Any]] = None  # Last raw token response
    authorized_at: Optional[float] = None

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    def rotate_anti_forgery_token(self, redirect_uri: Optional[str] = None) -> str:
        self.anti_forgery_token = new_anti_forgery_token()
        self.anti_forgery_issued_at = time.time()
        self.anti_forgery_redirect_uri = redirect_uri
        return self.anti_forgery_token

    def consume_anti_forgery_token(self) -> None:
        self.anti_forgery_token = None
        self.anti_forgery_issued_at = None
        self.anti_forgery_redirect_uri = None

    def anti_forgery_token_expired(self, ttl_seconds: int) -> bool:
        if self.anti_forgery_issued_at is None:
            return True
        return time.time() - self.anti_forgery_issued_at > ttl_seconds
