"""Assistant conversation owned by one user. Title is filled in once, after the first exchange."""
import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from jevehome.database import Base


class AgentConversation(Base):
    __tablename__ = "agent_conversations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(100), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    # Messages ordered by created_at for correct ordering
    messages = relationship(
        "AgentMessage",
        back_populates="conversation",
        order_by="AgentMessage.created_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="select",
    )
