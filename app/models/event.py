"""
Event model
"""

import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from app.core.errors import AlreadyLiveError, NotLiveError, ValidationError
from app.models.effects import Broadcast, Effects, Persist, event_room
from app.models.session import Session
from app.models.user import User

SHORT_NAME_PATTERN = re.compile(r"^[-A-Za-z0-9_]*$")


@dataclass(eq=False)
class Event:
    collection = "event"

    id: int
    title: str = ""
    organizer: str = ""
    description: str = ""
    welcome_message: Optional[str] = None
    short_name: Optional[str] = None
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    sessions_open: bool = False
    youtube_embed: Optional[str] = None
    previous_video_embeds: List[Dict[str, str]] = field(default_factory=list)
    admins: List[Dict[str, str]] = field(default_factory=list)
    overflow_user_cap: int = 200

    sessions: List[Session] = field(default_factory=list)
    connected_users: List[User] = field(default_factory=list)

    def room(self) -> str:
        return event_room(self.id)

    def url(self) -> str:
        return f"/event/{self.short_name or self.id}"

    # Live state

    def is_live(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return self.start_time is not None and now >= self.start_time and self.end_time is None

    def start(self, now: Optional[float] = None) -> Effects:
        now = time.time() if now is None else now
        if self.is_live(now):
            raise AlreadyLiveError("Tried to start an event that was already live.")
        self.start_time = now
        self.end_time = None
        return [Broadcast(self.room(), "event-start", {"id": self.id}), Persist(self)]

    def stop(self, now: Optional[float] = None) -> Effects:
        now = time.time() if now is None else now
        if not self.is_live(now):
            raise NotLiveError("Tried to stop an event that was not live.")
        self.end_time = now
        return [Broadcast(self.room(), "event-stop", {"id": self.id}), Persist(self)]

    # Sessions

    def get_session(self, session_id) -> Optional[Session]:
        for session in self.sessions:
            if str(session.id) == str(session_id):
                return session
        return None

    def add_session(self, session: Session) -> Effects:
        if self.get_session(session.id) is not None:
            raise ValidationError(f"session {session.id} already belongs to event {self.id}")
        session.event_id = self.id
        session.number = max((s.number for s in self.sessions), default=0) + 1
        self.sessions.append(session)
        return [
            Broadcast(self.room(), "create-session", session.to_client()),
            Persist(session),
            Persist(self),
        ]

    def open_sessions(self) -> Effects:
        self.sessions_open = True
        return [Broadcast(self.room(), "open-sessions", {"id": self.id}), Persist(self)]

    def close_sessions(self) -> Effects:
        self.sessions_open = False
        return [Broadcast(self.room(), "close-sessions", {"id": self.id}), Persist(self)]

    # Video embed

    def set_embed(self, yt_id: Optional[str]) -> Effects:
        if yt_id == self.youtube_embed:
            return []
        if yt_id and not any(e["youtubeId"] == yt_id for e in self.previous_video_embeds):
            self.previous_video_embeds.insert(0, {"youtubeId": yt_id})
        self.youtube_embed = yt_id
        return [Broadcast(self.room(), "embed", {"ytId": yt_id}), Persist(self)]

    def clear_previous_videos(self) -> Effects:
        if not self.previous_video_embeds:
            return []
        self.previous_video_embeds = []
        return [Broadcast(self.room(), "clear-previous-videos", {"id": self.id}), Persist(self)]

    def remove_previous_video(self, yt_id: str) -> Effects:
        kept = [e for e in self.previous_video_embeds if e["youtubeId"] != yt_id]
        if len(kept) == len(self.previous_video_embeds):
            raise ValidationError(f"Video {yt_id} is not in the previous videos list.")
        self.previous_video_embeds = kept
        return [
            Broadcast(self.room(), "remove-one-previous-video", {"id": self.id, "ytId": yt_id}),
            Persist(self),
        ]

    # Connected users

    def is_connected(self, user: User) -> bool:
        return any(u is user or u.id == user.id for u in self.connected_users)

    def user_connected(self, user: User) -> Effects:
        if not self.is_connected(user):
            self.connected_users.append(user)
        return [Broadcast(self.room(), "join", {"id": self.id, "user": user.to_client()})]

    def user_disconnected(self, user: User) -> Effects:
        if not self.is_connected(user):
            return []
        self.connected_users = [u for u in self.connected_users if u.id != user.id]
        return [Broadcast(self.room(), "leave", {"id": self.id, "user": user.to_client()})]

    def is_overflowing(self, user: User) -> bool:
        """True when a non-admin would push the room past its user cap"""
        if user.is_admin_of(self) or self.is_connected(user):
            return False
        regular = [u for u in self.connected_users if not u.is_admin_of(self)]
        return len(regular) >= self.overflow_user_cap

    # Admins

    @staticmethod
    def admin_matches_user(admin: Dict[str, str], user: Union[User, str]) -> bool:
        if isinstance(user, User):
            user_id, emails = user.id, user.emails
        else:
            user_id, emails = None, [user]
        if admin.get("id") is not None and admin["id"] == user_id:
            return True
        return bool(admin.get("email")) and admin["email"] in emails

    def user_is_admin(self, user: Union[User, str]) -> bool:
        return any(self.admin_matches_user(admin, user) for admin in self.admins)

    def add_admin(self, user: Union[User, str]) -> Effects:
        """Accepts a User, or an email for someone who has not logged in yet"""
        if self.user_is_admin(user):
            return []
        if isinstance(user, User):
            self.admins.append({"id": user.id})
        elif user:
            self.admins.append({"email": user})
        else:
            raise ValidationError("an admin needs an id or an email")
        return [Persist(self)]

    def remove_admin(self, user: Union[User, str]) -> Effects:
        kept = [a for a in self.admins if not self.admin_matches_user(a, user)]
        if len(kept) == len(self.admins):
            return []
        self.admins = kept
        return [Persist(self)]

    # Serialization

    def to_client(self) -> Dict[str, Any]:
        data = self.to_record()
        data["sessions"] = [s.to_client() for s in self.sessions]
        data["connectedUsers"] = [u.to_client() for u in self.connected_users]
        data["live"] = self.is_live()
        return data

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "organizer": self.organizer,
            "description": self.description,
            "welcomeMessage": self.welcome_message,
            "shortName": self.short_name,
            "start": self.start_time,
            "end": self.end_time,
            "sessionsOpen": self.sessions_open,
            "youtubeEmbed": self.youtube_embed,
            "previousVideoEmbeds": self.previous_video_embeds,
            "admins": self.admins,
            "overflowUserCap": self.overflow_user_cap,
            "sessionIds": [s.id for s in self.sessions],
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Event":
        return cls(
            id=int(data["id"]),
            title=data.get("title", ""),
            organizer=data.get("organizer", ""),
            description=data.get("description", ""),
            welcome_message=data.get("welcomeMessage"),
            short_name=data.get("shortName"),
            start_time=data.get("start"),
            end_time=data.get("end"),
            sessions_open=bool(data.get("sessionsOpen")),
            youtube_embed=data.get("youtubeEmbed"),
            previous_video_embeds=list(data.get("previousVideoEmbeds") or []),
            admins=list(data.get("admins") or []),
            overflow_user_cap=data.get("overflowUserCap", 200),
        )
