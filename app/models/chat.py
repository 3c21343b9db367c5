"""
Chat message model
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import bleach

from app.models.user import User


def escape_markup(text: str) -> str:
    """Escape every tag so the text renders as plain characters"""
    return bleach.clean(text, tags=[], attributes={}, strip=False)


@dataclass
class ChatMessage:
    text: str
    user: Optional[User] = None
    time: float = field(default_factory=lambda: time.time() * 1000)
    posted_as_admin: bool = False
    past: bool = False

    def __post_init__(self):
        self.text = escape_markup(self.text or "")

    def is_system(self) -> bool:
        return self.user is None

    def to_client(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "time": self.time,
            "user": self.user.to_client() if self.user else None,
            "postedAsAdmin": self.posted_as_admin,
            "system": self.is_system(),
            "past": self.past,
        }
