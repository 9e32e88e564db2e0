# src/tiktok_relay/uploads.py

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

logger = logging.getLogger(__name__)

COPY_CHUNK_SIZE = 1024 * 1024


def spool_upload(upload: UploadFile, directory: Path) -> Path:
    """
    Copy an incoming multipart file into its own uniquely named file under
    ``directory`` and return the path. The caller owns the file from here on.
    """
    directory.mkdir(parents=True, exist_ok=True)
    suffix = Path(upload.filename or "").suffix
    fd, name = tempfile.mkstemp(prefix="upload_", suffix=suffix, dir=directory)
    try:
        with os.fdopen(fd, "wb") as out:
            upload.file.seek(0)
            shutil.copyfileobj(upload.file, out, COPY_CHUNK_SIZE)
    except BaseException:
        discard(Path(name))
        raise
    logger.info(f"[UPLOAD] Spooled '{upload.filename}' to {name}")
    return Path(name)


def discard(path: Optional[Path]) -> None:
    """Best-effort removal of a spooled upload."""
    if path is None:
        return
    try:
        path.unlink()
    except OSError as e:
        logger.debug(f"[UPLOAD] Could not remove {path}: {e}")
