"""
Signed, time-limited photo URLs for the gallery. The token is a short JWT scoped to one
filename, so a URL can be put in an <img src> without exposing the session token.
"""
import mimetypes
from datetime import datetime, timedelta
from pathlib import Path
from urllib.parse import quote

from jose import JWTError, jwt

from jevehome.config import get_settings

PHOTO_TOKEN_TYPE = "photo"


def photo_upload_dir() -> Path:
    settings = get_settings()
    if settings.photo_upload_dir:
        return Path(settings.photo_upload_dir)
    return Path(__file__).resolve().parent.parent.parent / "uploads" / "photos"


def safe_photo_path(filename: str) -> Path | None:
    """Resolve filename under the photo dir. None if invalid (path traversal) or missing."""
    base = photo_upload_dir().resolve()
    if not filename or not base.is_dir():
        return None
    try:
        full = (base / filename).resolve()
        full.relative_to(base)  # raises ValueError if path escaped
    except (ValueError, OSError):
        return None
    if not full.is_file():
        return None
    return full


def create_photo_token(filename: str, expire_minutes: int | None = None) -> str:
    settings = get_settings()
    minutes = expire_minutes if expire_minutes is not None else settings.photo_url_expire_minutes
    payload = {
        "sub": filename,
        "exp": datetime.utcnow() + timedelta(minutes=minutes),
        "type": PHOTO_TOKEN_TYPE,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def verify_photo_token(token: str, filename: str) -> bool:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return False
    return payload.get("type") == PHOTO_TOKEN_TYPE and payload.get("sub") == filename


def resolve_photo_url(filename: str) -> str:
    """Time-limited fetch URL for a photo, or "" when the file does not exist."""
    if safe_photo_path(filename) is None:
        return ""
    return f"/api/photos/{quote(filename)}?token={create_photo_token(filename)}"


def media_type_for(path: Path) -> str:
    return mimetypes.guess_type(path.name)[0] or "application/octet-stream"
