"""
Key-value configuration store (config_entries). Values are strings; the Configuration
Resolver parses them. Read-only for chat requests; admin endpoints upsert/delete.
"""
from datetime import datetime

from sqlalchemy.orm import Session

from jevehome.models.config_entry import ConfigEntry

AGENT_NAMESPACE = "agent"
TIMELINE_NAMESPACE = "timeline"


def read_all(db: Session, namespace: str) -> dict[str, str]:
    """All rows in a namespace as {key: value}. Empty dict when nothing is configured."""
    rows = db.query(ConfigEntry).filter(ConfigEntry.namespace == namespace).all()
    return {r.key: r.value for r in rows}


def list_entries(db: Session, namespace: str) -> list[ConfigEntry]:
    return (
        db.query(ConfigEntry)
        .filter(ConfigEntry.namespace == namespace)
        .order_by(ConfigEntry.key)
        .all()
    )


def upsert(db: Session, namespace: str, key: str, value: str) -> ConfigEntry:
    """Insert or replace one row (namespace, key)."""
    row = (
        db.query(ConfigEntry)
        .filter(ConfigEntry.namespace == namespace, ConfigEntry.key == key)
        .first()
    )
    if row is None:
        row = ConfigEntry(namespace=namespace, key=key, value=value)
        db.add(row)
    else:
        row.value = value
        row.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(row)
    return row


def delete(db: Session, namespace: str, key: str) -> bool:
    """Delete one row. Returns False when it did not exist."""
    deleted = (
        db.query(ConfigEntry)
        .filter(ConfigEntry.namespace == namespace, ConfigEntry.key == key)
        .delete(synchronize_session=False)
    )
    db.commit()
    return bool(deleted)


class ConfigRepository:
    """Thin wrapper for dependency injection; delegates to module functions."""

    @staticmethod
    def read_all(db: Session, namespace: str) -> dict[str, str]:
        return read_all(db, namespace)

    @staticmethod
    def list_entries(db: Session, namespace: str) -> list[ConfigEntry]:
        return list_entries(db, namespace)

    @staticmethod
    def upsert(db: Session, namespace: str, key: str, value: str) -> ConfigEntry:
        return upsert(db, namespace, key, value)

    @staticmethod
    def delete(db: Session, namespace: str, key: str) -> bool:
        return delete(db, namespace, key)
