"""
Socket wire format schemas
"""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, field_validator

class SocketMessage(BaseModel):
    """Inbound frame: ``{"type": ..., "args": {...}}``"""
    type: str
    args: Dict[str, Any] = {}

class AuthArgs(BaseModel):
    id: str
    key: str

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value) if isinstance(value, int) else value

class IdArgs(BaseModel):
    id: Union[int, str]

class CreateSessionArgs(BaseModel):
    title: str = ""
    description: str = ""
    joinCap: Optional[int] = None
    activities: Optional[List[Dict[str, Any]]] = None

class EmbedArgs(BaseModel):
    ytId: Optional[str]

class ChatArgs(BaseModel):
    text: str
    postAsAdmin: bool = False

class SessionMessageArgs(BaseModel):
    message: str

class VideoArgs(BaseModel):
    ytId: str
