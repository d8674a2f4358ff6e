"""Key-value configuration row. Values are always strings; structured values are JSON-encoded."""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, UniqueConstraint
from jevehome.database import Base


class ConfigEntry(Base):
    __tablename__ = "config_entries"
    __table_args__ = (UniqueConstraint("namespace", "key", name="uq_config_entries_namespace_key"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    namespace = Column(String(32), nullable=False, index=True)  # "agent" | "timeline"
    key = Column(String(128), nullable=False)
    value = Column(Text, nullable=False, default="")
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
