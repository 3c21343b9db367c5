"""
Hangout and user administration schemas
"""

from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, EmailStr, HttpUrl, field_validator

class HangoutCallback(BaseModel):
    """Message posted by the hangout app about its session"""
    type: str
    url: Optional[str] = None
    participants: Optional[List[Dict[str, Any]]] = None

    @field_validator("participants")
    @classmethod
    def participants_have_ids(cls, value):
        for entry in value or []:
            person = entry.get("person", entry)
            if not isinstance(person, dict) or person.get("id") in (None, ""):
                raise ValueError("participant is missing an id")
        return value

class FarmedUrl(BaseModel):
    url: HttpUrl

class Profile(BaseModel):
    """Profile already verified by the identity provider"""
    id: Union[str, int]
    displayName: Optional[str] = None
    emails: List[Union[str, Dict[str, Any]]] = []
    picture: Optional[str] = None
    link: Optional[str] = None

class SetSuperuser(BaseModel):
    userId: Optional[str] = None
    email: Optional[EmailStr] = None
    superuser: bool

class SetPerms(BaseModel):
    userId: Optional[str] = None
    email: Optional[EmailStr] = None
    perms: Dict[str, bool]
