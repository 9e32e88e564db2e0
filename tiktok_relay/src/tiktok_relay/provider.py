# src/tiktok_relay/provider.py

import logging
import os
import secrets
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional, Protocol, Tuple

import httpx
from starlette.concurrency import run_in_threadpool

from .config import Settings

logger = logging.getLogger(__name__)

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}
UPLOAD_CHUNK_SIZE = 1024 * 1024


class ProviderCallError(Exception):
    """A call to TikTok failed: transport error, non-2xx reply or an error body.

    ``detail`` is the parsed JSON body when there is one, else the response
    text, else the status line for an empty body, else the transport error
    message.
    """

    def __init__(self, detail: Any, status_code: Optional[int] = None):
        self.detail = detail
        self.status_code = status_code
        super().__init__(str(detail))


class ProviderClient(Protocol):
    async def exchange_code(self, code: str, redirect_uri: str) -> Dict[str, Any]: ...

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]: ...

    async def upload_video(
        self, access_token: str, file_path: Path, filename: str, content_type: str
    ) -> Dict[str, Any]: ...

    async def publish_video(self, access_token: str, upload_id: str, caption: str) -> Dict[str, Any]: ...


def _response_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        pass
    if response.text.strip():
        return response.text
    # Empty body: the status line is all the provider told us
    return f"HTTP {response.status_code} {response.reason_phrase}".strip()


def _payload_error(payload: Dict[str, Any]) -> Any:
    """
    Token endpoint errors come back as ``{"error": "invalid_grant", ...}``.
    Content endpoints always carry an error object, ``{"code": "ok"}`` on success.
    """
    error = payload.get("error")
    if not error:
        return None
    if isinstance(error, dict):
        return None if error.get("code") in (None, "", "ok") else error
    return error


def _multipart_frame(boundary: str, field: str, filename: str, content_type: str) -> Tuple[bytes, bytes]:
    """Opening part headers and closing delimiter of a single-file multipart body."""
    safe_name = filename.replace("\r", "").replace("\n", "").replace('"', "%22")
    head = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="{field}"; filename="{safe_name}"\r\n'
        f"Content-Type: {content_type}\r\n\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head, tail


async def _stream_file(file_path: Path, head: bytes, tail: bytes) -> AsyncIterator[bytes]:
    """Multipart body whose file reads run in the threadpool, off the event loop."""
    yield head
    fh = await run_in_threadpool(open, file_path, "rb")
    try:
        while True:
            chunk = await run_in_threadpool(fh.read, UPLOAD_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
    finally:
        fh.close()
    yield tail


class TikTokClient:
    """ProviderClient backed by the TikTok Open API over httpx."""

    def __init__(
        self,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.settings = settings
        self._transport = transport
        self._timeout = httpx.Timeout(timeout)

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    async def _send(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        async with self._client() as client:
            try:
                response = await client.request(method, url, **kwargs)
            except httpx.RequestError as e:
                logger.warning(f"[PROVIDER] Request error calling {url}: {e!r}")
                raise ProviderCallError(str(e) or e.__class__.__name__) from e

        if response.is_error:
            logger.warning(f"[PROVIDER] HTTP {response.status_code} from {url}")
            raise ProviderCallError(_response_detail(response), status_code=response.status_code)

        payload = _response_detail(response)
        if not isinstance(payload, dict):
            raise ProviderCallError(payload, status_code=response.status_code)

        if _payload_error(payload) is not None:
            logger.warning(f"[PROVIDER] Error payload from {url}: {_payload_error(payload)}")
            raise ProviderCallError(payload, status_code=response.status_code)
        return payload

    # --- OAuth token endpoint (form-url-encoded, never JSON) ---

    async def exchange_code(self, code: str, redirect_uri: str) -> Dict[str, Any]:
        form = {
            "client_key": self.settings.TIKTOK_CLIENT_KEY,
            "client_secret": self.settings.TIKTOK_CLIENT_SECRET,
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": redirect_uri,
        }
        return await self._send("POST", self.settings.TIKTOK_TOKEN_URL, data=form, headers=FORM_HEADERS)

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        form = {
            "client_key": self.settings.TIKTOK_CLIENT_KEY,
            "client_secret": self.settings.TIKTOK_CLIENT_SECRET,
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
        }
        return await self._send("POST", self.settings.TIKTOK_TOKEN_URL, data=form, headers=FORM_HEADERS)

    # --- Content endpoints ---

    async def upload_video(
        self, access_token: str, file_path: Path, filename: str, content_type: str
    ) -> Dict[str, Any]:
        boundary = secrets.token_hex(16)
        head, tail = _multipart_frame(boundary, "video", filename, content_type)
        file_size = os.path.getsize(file_path)
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": f"multipart/form-data; boundary={boundary}",
            "Content-Length": str(len(head) + file_size + len(tail)),
        }
        return await self._send(
            "POST",
            self.settings.TIKTOK_UPLOAD_URL,
            content=_stream_file(file_path, head, tail),
            headers=headers,
        )

    async def publish_video(self, access_token: str, upload_id: str, caption: str) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {access_token}"}
        body = {"upload_id": upload_id, "caption": caption}
        return await self._send("POST", self.settings.TIKTOK_PUBLISH_URL, json=body, headers=headers)
