# src/tiktok_relay/main.py

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile, status
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from starlette.concurrency import run_in_threadpool

from .config import PACKAGE_DIR, get_settings
from .errors import ProviderDeniedError, RelayError, UnauthorizedError, UpstreamExchangeError
from .logging_config import setup_logging
from .provider import TikTokClient
from .session_manager import AuthorizationSessionManager
from .uploads import spool_upload

settings = get_settings()
setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("[STARTUP] --- TikTok Relay (FastAPI) Starting Up ---")
    logger.info(f"[STARTUP] Client key is set: {'Yes' if settings.TIKTOK_CLIENT_KEY else 'NO'}")
    logger.info(f"[STARTUP] Redirect URI: {settings.REDIRECT_URI}")
    logger.info(f"[STARTUP] Scopes: {settings.TIKTOK_SCOPES}")
    logger.info(f"[STARTUP] Upload directory: {settings.UPLOAD_DIR}")
    yield


# --- FastAPI App Setup ---
app = FastAPI(
    title="TikTok Relay API",
    description="Brokers the TikTok OAuth flow and relays uploads and publish requests for the authorized account.",
    version="0.1.0",
    lifespan=lifespan,
)

# Process-wide session; lives until the process exits
app.state.session_manager = AuthorizationSessionManager(
    settings,
    TikTokClient(settings, timeout=settings.PROVIDER_TIMEOUT_SECONDS),
)

# --- Static Files and Templates ---
app.mount("/public", StaticFiles(directory=PACKAGE_DIR / "static"), name="public")
templates = Jinja2Templates(directory=PACKAGE_DIR / "templates")


def get_session_manager(request: Request) -> AuthorizationSessionManager:
    return request.app.state.session_manager


def _pretty(payload: Any) -> str:
    if isinstance(payload, str):
        return payload
    return json.dumps(payload, indent=2)


def _error_json(e: RelayError) -> JSONResponse:
    return JSONResponse({"ok": False, "error": e.to_payload()}, status_code=e.status_code)


def _unexpected_json(route: str, e: Exception) -> JSONResponse:
    logger.exception(f"[{route}] Unexpected error")
    return JSONResponse(
        {"ok": False, "error": str(e)},
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def _auth_page(request: Request, title: str, status_code: int, message: str = "", payload: str = "") -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "auth_result.html",
        {"title": title, "message": message, "payload": payload},
        status_code=status_code,
    )


# --- Pages ---
@app.get("/", response_class=HTMLResponse)
async def read_root(request: Request, manager: AuthorizationSessionManager = Depends(get_session_manager)):
    return templates.TemplateResponse(
        request,
        "index.html",
        {"authenticated": manager.session.is_authenticated},
    )


# --- Authentication Routes ---
@app.get("/auth")
async def auth(manager: AuthorizationSessionManager = Depends(get_session_manager)):
    auth_url = manager.begin_authorization()
    return RedirectResponse(url=auth_url, status_code=status.HTTP_302_FOUND)


@app.get("/auth/callback", response_class=HTMLResponse)
async def auth_callback(
        request: Request,
        code: Optional[str] = None,
        state: Optional[str] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
        manager: AuthorizationSessionManager = Depends(get_session_manager),
):
    try:
        result = await manager.complete_authorization(code, state, error, error_description)
    except ProviderDeniedError as e:
        return _auth_page(request, "OAuth Error", e.status_code, message=e.message)
    except UpstreamExchangeError as e:
        return _auth_page(request, "Token exchange failed", e.status_code, payload=_pretty(e.to_payload()))
    except RelayError as e:
        return _auth_page(request, "Login failed", e.status_code, message=e.message)

    return _auth_page(
        request,
        "Login successful",
        status.HTTP_200_OK,
        message="Access token received. You can now upload and publish.",
        payload=_pretty(result.raw),
    )


@app.get("/auth/refresh")
async def auth_refresh(manager: AuthorizationSessionManager = Depends(get_session_manager)):
    try:
        result = await manager.refresh()
    except RelayError as e:
        return _error_json(e)
    except Exception as e:
        return _unexpected_json("AUTH", e)
    return {"ok": True, "tokens": result.raw}


# --- Relay Endpoints ---
@app.post("/upload")
async def upload(
        video: Optional[UploadFile] = File(None),
        manager: AuthorizationSessionManager = Depends(get_session_manager),
):
    file_path = None
    filename = content_type = None
    try:
        # Nothing is written to disk for a caller without a token
        if not manager.session.is_authenticated:
            raise UnauthorizedError()
        # Browsers submit an empty part when no file was picked
        if video is not None and video.filename:
            filename, content_type = video.filename, video.content_type
            file_path = await run_in_threadpool(spool_upload, video, settings.UPLOAD_DIR)
        result = await manager.relay_upload(file_path, filename=filename, content_type=content_type)
    except RelayError as e:
        return _error_json(e)
    except Exception as e:
        return _unexpected_json("UPLOAD", e)

    return {
        "ok": True,
        "message": "Video uploaded to TikTok.",
        "upload_id": result.upload_id,
        "provider_response": result.raw,
    }


async def _read_form_or_json(request: Request) -> dict:
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            data = await request.json()
        except ValueError:
            data = {}
    else:
        data = dict(await request.form())
    return data if isinstance(data, dict) else {}


@app.post("/publish")
async def publish(request: Request, manager: AuthorizationSessionManager = Depends(get_session_manager)):
    data = await _read_form_or_json(request)
    upload_id = data.get("upload_id")
    caption = data.get("caption") or ""
    try:
        result = await manager.relay_publish(
            str(upload_id) if upload_id not in (None, "") else None,
            caption=str(caption),
        )
    except RelayError as e:
        return _error_json(e)
    except Exception as e:
        return _unexpected_json("PUBLISH", e)

    return {
        "ok": True,
        "message": "Publish request accepted by TikTok.",
        "video_id": result.video_id,
        "provider_response": result.raw,
    }


# --- Webhook and Health ---
@app.api_route(
    "/webhook/tiktok",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"],
    response_class=PlainTextResponse,
)
async def tiktok_webhook(request: Request):
    body = await request.body()
    logger.info(
        f"[WEBHOOK] TikTok webhook hit: {request.method} "
        f"{request.headers.get('content-type')} {body[:4096].decode('utf-8', errors='replace')}"
    )
    return PlainTextResponse("OK", status_code=status.HTTP_200_OK)


@app.get("/health")
async def health():
    return {"ok": True}


def run():
    import uvicorn
    uvicorn.run(app, host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
