"""
User model
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.core.errors import ValidationError

PERMISSION_KEYS = ("createEvents", "farmHangouts")


@dataclass(eq=False)
class User:
    collection = "user"

    id: str
    display_name: str = "[unknown]"
    emails: List[str] = field(default_factory=list)
    picture: str = ""
    link: Optional[str] = None
    admin: bool = False
    superuser: bool = False
    perms: Dict[str, bool] = field(default_factory=dict)

    # runtime-only state, never persisted
    sock_key: Optional[str] = field(default=None, repr=False)
    connection: Any = field(default=None, repr=False)
    room: Optional[str] = None

    def is_connected(self) -> bool:
        return self.connection is not None

    def is_superuser(self) -> bool:
        return bool(self.superuser)

    def has_perm(self, perm: str) -> bool:
        """Superusers hold every permission"""
        if self.is_superuser():
            return True
        return bool(self.perms.get(perm))

    def set_perm(self, perm: str, value: bool) -> None:
        if perm not in PERMISSION_KEYS:
            raise ValidationError(f"Perm not recognized: {perm}")
        self.perms[perm] = bool(value)

    def has_email(self, email: Optional[str]) -> bool:
        return email is not None and email in self.emails

    def is_admin_of(self, event) -> bool:
        if self.is_superuser() or self.admin:
            return True
        if event is None:
            return False
        return event.user_is_admin(self)

    def short_display_name(self) -> str:
        # "Alice Bob-Carol Smith" -> "Alice B-C S"
        names = self.display_name.split(" ")
        short = names[0]
        for name in names[1:]:
            if not name:
                continue
            if "-" in name:
                parts = name.split("-")
                short += " " + "-".join(p[:1] for p in parts)
            else:
                short += " " + name[:1]
        return short

    def participant_repr(self) -> Dict[str, Any]:
        return {"id": self.id, "displayName": self.display_name, "picture": self.picture}

    def to_client(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "picture": self.picture,
            "link": self.link,
            "admin": self.admin,
            "superuser": self.superuser,
        }

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "emails": list(self.emails),
            "picture": self.picture,
            "link": self.link,
            "admin": self.admin,
            "superuser": self.superuser,
            "perms": dict(self.perms),
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=str(data["id"]),
            display_name=data.get("displayName") or "[unknown]",
            emails=list(data.get("emails") or []),
            picture=data.get("picture") or "",
            link=data.get("link"),
            admin=bool(data.get("admin")),
            superuser=bool(data.get("superuser")),
            perms=dict(data.get("perms") or {}),
        )
