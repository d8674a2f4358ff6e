from jevehome.models.user import User, UserRole
from jevehome.models.config_entry import ConfigEntry
from jevehome.models.agent_conversation import AgentConversation
from jevehome.models.agent_message import AgentMessage

__all__ = ["User", "UserRole", "ConfigEntry", "AgentConversation", "AgentMessage"]
