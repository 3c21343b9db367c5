"""
Domain and storage models package
"""

from .user import User
from .session import Session
from .event import Event
from .chat import ChatMessage
from .storage import StoredEntity, FarmedHangout

__all__ = ["User", "Session", "Event", "ChatMessage", "StoredEntity", "FarmedHangout"]
