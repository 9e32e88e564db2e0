# src/tiktok_relay/schemas.py

from typing import Any, Dict, Optional

from pydantic import BaseModel


# --- Results returned by the session manager ---
class TokenResult(BaseModel):
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    raw: Dict[str, Any]


class UploadResult(BaseModel):
    upload_id: Optional[str] = None
    raw: Dict[str, Any]


class PublishResult(BaseModel):
    video_id: Optional[str] = None
    raw: Dict[str, Any]
