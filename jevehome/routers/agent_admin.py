"""
Admin: key-value configuration rows that steer the assistant without a redeploy.
Namespaces: "agent" (model, system_prompt, site_context, max_history, enabled_tools,
welcome_message, quick_prompts, widget_theme) and "timeline" ("<year>.title", "<year>.description").
"""
import json

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from jevehome.auth import get_current_user_admin
from jevehome.database import get_db
from jevehome.models.user import User
from jevehome.repositories.config_repository import AGENT_NAMESPACE, TIMELINE_NAMESPACE, ConfigRepository
from jevehome.schemas.agent import ConfigEntryOut, ConfigValueIn

router = APIRouter(prefix="/api/admin/config", tags=["admin"])

NAMESPACES = (AGENT_NAMESPACE, TIMELINE_NAMESPACE)


def _check_namespace(namespace: str) -> str:
    if namespace not in NAMESPACES:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown config namespace. Use one of: {', '.join(NAMESPACES)}",
        )
    return namespace


def encode_value(value) -> str:
    """Strings as-is; everything else JSON-encoded (lists, objects, numbers, booleans)."""
    if isinstance(value, str):
        return value
    return json.dumps(value)


@router.get("/{namespace}", response_model=list[ConfigEntryOut])
def list_config(
    namespace: str,
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    """All rows in a namespace, sorted by key (admin only)."""
    _check_namespace(namespace)
    return [ConfigEntryOut.model_validate(r) for r in ConfigRepository.list_entries(db, namespace)]


@router.put("/{namespace}/{key}", response_model=ConfigEntryOut)
def upsert_config(
    namespace: str,
    key: str,
    body: ConfigValueIn,
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    """Create or replace one row (admin only)."""
    _check_namespace(namespace)
    key = key.strip()
    if not key:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Key is required.")
    row = ConfigRepository.upsert(db, namespace, key, encode_value(body.value))
    return ConfigEntryOut.model_validate(row)


@router.delete("/{namespace}/{key}", status_code=status.HTTP_204_NO_CONTENT)
def delete_config(
    namespace: str,
    key: str,
    _admin: User = Depends(get_current_user_admin),
    db: Session = Depends(get_db),
):
    """Delete one row; the built-in default applies again (admin only)."""
    _check_namespace(namespace)
    if not ConfigRepository.delete(db, namespace, key):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Config entry not found.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
