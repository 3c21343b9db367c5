"""
Event-related Pydantic schemas
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, EmailStr

class EventCreate(BaseModel):
    """Schema for creating an event"""
    title: str
    description: str
    organizer: Optional[str] = None
    welcomeMessage: Optional[str] = None
    shortName: Optional[str] = None
    creatorId: Optional[str] = None

class EventUpdate(BaseModel):
    """Fields left unset are not changed"""
    title: Optional[str] = None
    description: Optional[str] = None
    organizer: Optional[str] = None
    welcomeMessage: Optional[str] = None
    shortName: Optional[str] = None
    overflowUserCap: Optional[int] = None

class SessionCreate(BaseModel):
    """Schema for adding a session to an event"""
    title: str
    description: str
    joinCap: Optional[int] = None
    activities: Optional[List[Dict[str, Any]]] = None

class EventAdminChange(BaseModel):
    """Identifies an event admin by user id or, before first login, by email"""
    userId: Optional[str] = None
    email: Optional[EmailStr] = None
