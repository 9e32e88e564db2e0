# src/tiktok_relay/session_manager.py

import asyncio
import logging
import secrets
import time
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from .config import Settings
from .errors import (
    InvalidStateError,
    MissingInputError,
    NoRefreshTokenError,
    ProviderDeniedError,
    UnauthorizedError,
    UpstreamExchangeError,
    UpstreamPublishError,
    UpstreamRefreshError,
    UpstreamUploadError,
)
from .provider import ProviderCallError, ProviderClient
from .schemas import PublishResult, TokenResult, UploadResult
from .session_data import AuthorizationSession
from .uploads import discard

logger = logging.getLogger(__name__)


def _find_id(payload: Dict[str, Any], *keys: str) -> Optional[str]:
    """Look for the first of ``keys`` under ``payload["data"]``, then at the top level."""
    data = payload.get("data")
    sources = [data] if isinstance(data, dict) else []
    sources.append(payload)
    for source in sources:
        for key in keys:
            value = source.get(key)
            if value:
                return str(value)
    return None


class AuthorizationSessionManager:
    """
    Owns the OAuth state and token pair of one AuthorizationSession and
    relays upload/publish calls to TikTok with the stored access token.

    The exchange and refresh paths hold ``_token_lock`` across the provider
    call so the token pair is never observed half-updated.
    """

    def __init__(
        self,
        settings: Settings,
        provider: ProviderClient,
        session: Optional[AuthorizationSession] = None,
    ):
        self.settings = settings
        self.provider = provider
        self.session = session if session is not None else AuthorizationSession()
        self._token_lock = asyncio.Lock()

    # --- OAuth flow ---

    def begin_authorization(
        self,
        client_key: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        scopes: Optional[List[str]] = None,
    ) -> str:
        """Rotate the anti-forgery token and build the TikTok authorization URL."""
        redirect_uri = redirect_uri or self.settings.REDIRECT_URI
        state = self.session.rotate_anti_forgery_token(redirect_uri)
        params = {
            "client_key": client_key or self.settings.TIKTOK_CLIENT_KEY,
            "scope": ",".join(scopes or self.settings.TIKTOK_SCOPES),
            "response_type": "code",
            "redirect_uri": redirect_uri,
            "state": state,
        }
        separator = "&" if "?" in self.settings.TIKTOK_AUTH_URL else "?"
        auth_url = f"{self.settings.TIKTOK_AUTH_URL}{separator}{urlencode(params)}"
        logger.info(f"[AUTH] Built authorization URL. Scopes: {params['scope']}, Redirect URI: {params['redirect_uri']}")
        return auth_url

    def _check_state(self, code: Optional[str], state: Optional[str]) -> str:
        """Validate and consume the pending state; return the redirect URI it was issued with."""
        expected = self.session.anti_forgery_token
        if not code or not state or expected is None:
            logger.warning(f"[AUTH] Callback rejected. Code present: {bool(code)}, state present: {bool(state)}")
            raise InvalidStateError()
        if not secrets.compare_digest(state.encode(), expected.encode()):
            logger.warning("[AUTH] Callback rejected: state mismatch. Possible CSRF or stale link.")
            raise InvalidStateError()
        redirect_uri = self.session.anti_forgery_redirect_uri or self.settings.REDIRECT_URI
        expired = self.session.anti_forgery_token_expired(self.settings.OAUTH_STATE_TTL_SECONDS)
        # Matching state is single use
        self.session.consume_anti_forgery_token()
        if expired:
            logger.warning("[AUTH] Callback rejected: state expired.")
            raise InvalidStateError("OAuth state expired. Start again from /auth.")
        return redirect_uri

    async def complete_authorization(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> TokenResult:
        if error:
            logger.warning(f"[AUTH] Provider returned an error: {error} - {error_description}")
            raise ProviderDeniedError(error, error_description)

        redirect_uri = self._check_state(code, state)

        async with self._token_lock:
            try:
                payload = await self.provider.exchange_code(code, redirect_uri=redirect_uri)
            except ProviderCallError as e:
                logger.warning(f"[AUTH] Token exchange failed: {e.detail}")
                raise UpstreamExchangeError("Token exchange failed", detail=e.detail) from e
            result = self._store_tokens(payload)

        logger.info(f"[AUTH] Token exchange succeeded. Refresh token received: {result.refresh_token is not None}")
        return result

    async def refresh(self) -> TokenResult:
        async with self._token_lock:
            refresh_token = self.session.refresh_token
            if not refresh_token:
                raise NoRefreshTokenError()
            try:
                payload = await self.provider.refresh_access_token(refresh_token)
            except ProviderCallError as e:
                logger.warning(f"[AUTH] Token refresh failed, keeping current tokens: {e.detail}")
                raise UpstreamRefreshError("Token refresh failed", detail=e.detail) from e
            result = self._store_tokens(payload)

        logger.info("[AUTH] Access token refreshed.")
        return result

    def _store_tokens(self, payload: Dict[str, Any]) -> TokenResult:
        # A field missing from the response keeps its prior value (None before the first exchange)
        access_token = payload.get("access_token") or self.session.access_token
        refresh_token = payload.get("refresh_token") or self.session.refresh_token

        self.session.access_token = access_token
        self.session.refresh_token = refresh_token
        self.session.token_payload = payload
        self.session.authorized_at = time.time()
        return TokenResult(access_token=access_token, refresh_token=refresh_token, raw=payload)

    # --- Relayed content calls ---

    def _require_access_token(self) -> str:
        access_token = self.session.access_token
        if not access_token:
            raise UnauthorizedError()
        return access_token

    async def relay_upload(
        self,
        file_path: Optional[Path],
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> UploadResult:
        """
        Send a spooled file to TikTok's upload endpoint. The file at
        ``file_path`` is removed before this returns or raises.
        """
        try:
            access_token = self._require_access_token()
            if file_path is None:
                raise MissingInputError("No file uploaded")
            try:
                payload = await self.provider.upload_video(
                    access_token,
                    file_path,
                    filename or file_path.name,
                    content_type or "application/octet-stream",
                )
            except ProviderCallError as e:
                logger.warning(f"[UPLOAD] Upload failed: {e.detail}")
                raise UpstreamUploadError("Upload to TikTok failed", detail=e.detail) from e
        finally:
            discard(file_path)

        upload_id = _find_id(payload, "upload_id")
        logger.info(f"[UPLOAD] Upload accepted. upload_id: {upload_id}")
        return UploadResult(upload_id=upload_id, raw=payload)

    async def relay_publish(self, upload_id: Optional[str], caption: str = "") -> PublishResult:
        access_token = self._require_access_token()
        if not upload_id:
            raise MissingInputError("upload_id is required")
        try:
            payload = await self.provider.publish_video(access_token, upload_id, caption or "")
        except ProviderCallError as e:
            logger.warning(f"[PUBLISH] Publish failed: {e.detail}")
            raise UpstreamPublishError("Publish to TikTok failed", detail=e.detail) from e

        video_id = _find_id(payload, "video_id", "publish_id")
        logger.info(f"[PUBLISH] Publish accepted. video_id: {video_id}")
        return PublishResult(video_id=video_id, raw=payload)
