"""
Gallery photos: signed URL issuance (family + admin) and token-checked file serving.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from jevehome.auth import get_current_user_family
from jevehome.models.user import User
from jevehome.services.photo_urls import media_type_for, resolve_photo_url, safe_photo_path, verify_photo_token

router = APIRouter(prefix="/api/photos", tags=["photos"])


@router.get("/url")
def get_photo_url(
    filename: str,
    _user: User = Depends(get_current_user_family),
):
    """Signed URL for one photo; url is "" when the photo does not exist."""
    return {"filename": filename, "url": resolve_photo_url(filename)}


@router.get("/{filename:path}")
def get_photo(filename: str, token: str = ""):
    """Serve a photo when the signed token matches the filename and has not expired."""
    if not token or not verify_photo_token(token, filename):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired photo link.")
    path = safe_photo_path(filename)
    if path is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Photo not found.")
    return FileResponse(path, media_type=media_type_for(path))
