"""
Pydantic schemas package
"""

from .common import *
from .event import *
from .hangout import *
from .socket import *

__all__ = [
    "StandardResponse",
    "ErrorResponse",
    "EventCreate",
    "EventUpdate",
    "SessionCreate",
    "EventAdminChange",
    "HangoutCallback",
    "FarmedUrl",
    "Profile",
    "SetSuperuser",
    "SetPerms",
    "SocketMessage",
    "AuthArgs",
    "IdArgs",
    "CreateSessionArgs",
    "EmbedArgs",
    "ChatArgs",
]
