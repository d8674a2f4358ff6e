"""
Conversation store: AgentConversation + AgentMessage. DB as source of truth.
All operations are sync (called via run_in_executor from async code).
Ownership: conversation.user_id == current user; lookups that take user_id validate this.
Turns are append-only; they disappear only through conversation delete (FK cascade).
"""
from datetime import datetime

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from jevehome.core.errors import StorageUnavailable
from jevehome.models.agent_conversation import AgentConversation
from jevehome.models.agent_message import AgentMessage


def create_conversation(db: Session, user_id: str) -> str:
    """Start a new conversation for user_id and return its id."""
    try:
        conv = AgentConversation(user_id=user_id)
        db.add(conv)
        db.commit()
        db.refresh(conv)
        return conv.id
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(str(e)) from e


def get_conversation(db: Session, conversation_id: str, user_id: str | None = None) -> AgentConversation | None:
    """Conversation by id; when user_id is given, only if owned by that user."""
    q = db.query(AgentConversation).filter(AgentConversation.id == conversation_id)
    if user_id is not None:
        q = q.filter(AgentConversation.user_id == user_id)
    try:
        return q.first()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(str(e)) from e


def list_conversations(db: Session, user_id: str, limit: int = 50) -> list[AgentConversation]:
    """User's conversations, most recently active first."""
    return (
        db.query(AgentConversation)
        .filter(AgentConversation.user_id == user_id)
        .order_by(desc(AgentConversation.updated_at))
        .limit(limit)
        .all()
    )


def list_turns(db: Session, conversation_id: str, limit: int) -> list[dict]:
    """
    Last `limit` turns of a conversation, oldest-first (for the provider history).
    Returns list of {"role": "user"|"assistant", "content": "..."}.
    """
    if limit <= 0:
        return []
    try:
        rows = (
            db.query(AgentMessage)
            .filter(AgentMessage.conversation_id == conversation_id)
            .order_by(desc(AgentMessage.created_at))
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(str(e)) from e
    rows = list(reversed(rows))
    return [{"role": r.role, "content": r.content} for r in rows]


def get_messages_ordered(db: Session, conversation_id: str) -> list[dict]:
    """All turns of a conversation for display, ordered by created_at asc."""
    rows = (
        db.query(AgentMessage)
        .filter(AgentMessage.conversation_id == conversation_id)
        .order_by(AgentMessage.created_at)
        .all()
    )
    return [
        {
            "id": r.id,
            "role": r.role,
            "content": r.content,
            "created_at": r.created_at.isoformat() if r.created_at else None,
        }
        for r in rows
    ]


def append_turn(db: Session, conversation_id: str, role: str, content: str) -> AgentMessage:
    """Persist one turn. Caller commits via this function."""
    try:
        msg = AgentMessage(conversation_id=conversation_id, role=role, content=content)
        db.add(msg)
        db.commit()
        db.refresh(msg)
        return msg
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(str(e)) from e


def touch_conversation(db: Session, conversation_id: str) -> None:
    """Bump updated_at (last activity)."""
    try:
        db.query(AgentConversation).filter(AgentConversation.id == conversation_id).update(
            {AgentConversation.updated_at: datetime.utcnow()},
            synchronize_session=False,
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(str(e)) from e


def set_title(db: Session, conversation_id: str, title: str) -> bool:
    """Set the title only if none is set yet. Returns True when this call set it."""
    try:
        updated = (
            db.query(AgentConversation)
            .filter(AgentConversation.id == conversation_id, AgentConversation.title.is_(None))
            .update({AgentConversation.title: title}, synchronize_session=False)
        )
        db.commit()
        return bool(updated)
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(str(e)) from e


def delete_conversation(db: Session, conversation_id: str, user_id: str) -> bool:
    """Delete an owned conversation and (via cascade) its turns. False if not found/not owned."""
    conv = get_conversation(db, conversation_id, user_id)
    if conv is None:
        return False
    try:
        db.delete(conv)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailable(str(e)) from e
    return True


class ChatRepository:
    """Thin wrapper for dependency injection; delegates to module functions."""

    @staticmethod
    def create_conversation(db: Session, user_id: str) -> str:
        return create_conversation(db, user_id)

    @staticmethod
    def get_conversation(db: Session, conversation_id: str, user_id: str | None = None) -> AgentConversation | None:
        return get_conversation(db, conversation_id, user_id)

    @staticmethod
    def list_conversations(db: Session, user_id: str, limit: int = 50) -> list[AgentConversation]:
        return list_conversations(db, user_id, limit)

    @staticmethod
    def list_turns(db: Session, conversation_id: str, limit: int) -> list[dict]:
        return list_turns(db, conversation_id, limit)

    @staticmethod
    def get_messages_ordered(db: Session, conversation_id: str) -> list[dict]:
        return get_messages_ordered(db, conversation_id)

    @staticmethod
    def append_turn(db: Session, conversation_id: str, role: str, content: str) -> AgentMessage:
        return append_turn(db, conversation_id, role, content)

    @staticmethod
    def touch_conversation(db: Session, conversation_id: str) -> None:
        return touch_conversation(db, conversation_id)

    @staticmethod
    def set_title(db: Session, conversation_id: str, title: str) -> bool:
        return set_title(db, conversation_id, title)

    @staticmethod
    def delete_conversation(db: Session, conversation_id: str, user_id: str) -> bool:
        return delete_conversation(db, conversation_id, user_id)
