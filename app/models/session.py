"""
Session model

A session is one breakout inside an event (or a standalone permalink
session) and owns the state of its single external hangout.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.core.errors import (
    AlreadyAssignedError,
    AlreadyPendingError,
    AlreadyStartedError,
    AlreadyStoppedError,
    CapacityExceededError,
    NotStartedError,
    ValidationError,
)
from app.models.effects import Broadcast, Effects, Persist, event_room, session_room
from app.models.user import User

MAX_ATTENDEES = 10
ACTIVITY_TYPES = ("video", "webpage", "about")


def _participant(user) -> Dict[str, Any]:
    if isinstance(user, User):
        return user.participant_repr()
    person = user.get("person", user) if isinstance(user, dict) else None
    if not isinstance(person, dict) or person.get("id") in (None, ""):
        raise ValidationError("participant is missing an id")
    picture = person.get("picture") or (person.get("image") or {}).get("url") or ""
    return {
        "id": str(person["id"]),
        "displayName": person.get("displayName", "[unknown]"),
        "picture": picture,
    }


def validate_activities(activities) -> List[Dict[str, Any]]:
    if not isinstance(activities, list):
        raise ValidationError("Missing activities.")
    for activity in activities:
        if not isinstance(activity, dict) or activity.get("type") not in ACTIVITY_TYPES:
            kind = activity.get("type") if isinstance(activity, dict) else activity
            raise ValidationError(f"Invalid activity type: {kind}")
    return activities


@dataclass(eq=False)
class Session:
    collection = "session"

    id: int
    event_id: Optional[int] = None
    number: int = 0
    title: str = ""
    description: str = ""
    short_code: Optional[str] = None
    activities: List[Dict[str, Any]] = field(default_factory=list)
    join_cap: int = MAX_ATTENDEES

    attendees: List[Dict[str, Any]] = field(default_factory=list)
    joining_participants: List[Dict[str, Any]] = field(default_factory=list)
    connected_participants: List[Dict[str, Any]] = field(default_factory=list)

    started: bool = False
    stopped: bool = False
    session_key: Optional[str] = None
    hangout_url: Optional[str] = None
    hangout_pending: Optional[Dict[str, Any]] = None
    last_heartbeat: Optional[float] = None

    def room(self) -> str:
        """Room that hears about changes to this session"""
        if self.event_id is not None:
            return event_room(self.event_id)
        return session_room(self.id)

    def capacity(self) -> int:
        return min(self.join_cap, MAX_ATTENDEES)

    def participation_link(self) -> Optional[str]:
        if not self.session_key:
            return None
        return f"/session/{self.session_key}"

    # Attendance

    def is_attending(self, user: User) -> bool:
        return any(a["id"] == user.id for a in self.attendees)

    def add_attendee(self, user: User) -> Effects:
        if self.is_attending(user):
            raise ValidationError("user is already attending this session")
        if len(self.attendees) >= self.capacity():
            raise CapacityExceededError(f"session {self.id} is full")
        self.attendees.append(user.participant_repr())
        return [
            Broadcast(self.room(), "attend", {"id": self.id, "user": user.to_client()}),
            Persist(self),
        ]

    def remove_attendee(self, user: User) -> Effects:
        if not self.is_attending(user):
            raise ValidationError("user is not attending this session")
        self.attendees = [a for a in self.attendees if a["id"] != user.id]
        return [
            Broadcast(self.room(), "unattend", {"id": self.id, "user": user.to_client()}),
            Persist(self),
        ]

    # Lifecycle

    def start(self, key: str) -> Effects:
        if self.started:
            raise AlreadyStartedError("cannot start a session that is already started")
        self.started = True
        self.session_key = key
        return [
            Broadcast(self.room(), "start", {"id": self.id, "key": key}),
            Persist(self),
        ]

    def stop(self) -> Effects:
        if not self.started:
            raise NotStartedError("cannot stop a session that has not started")
        if self.stopped:
            raise AlreadyStoppedError("cannot stop a session that has already stopped")
        self.stopped = True
        return [Broadcast(self.room(), "stop", {"id": self.id}), Persist(self)]

    # Hangout state

    def is_hangout_pending(self, now: Optional[float] = None, timeout: Optional[float] = None) -> bool:
        """A pending marker older than ``timeout`` no longer counts"""
        if self.hangout_pending is None:
            return False
        if now is None or timeout is None:
            return True
        return now - self.hangout_pending["time"] < timeout

    def mark_hangout_pending(
        self,
        user: User,
        now: float,
        timeout: Optional[float] = None,
        takeover: bool = False,
    ) -> Effects:
        if self.hangout_url:
            raise AlreadyAssignedError("session already has a hangout")
        if not takeover and self.is_hangout_pending(now, timeout):
            raise AlreadyPendingError("Hangout is pending, cannot start it again")
        self.hangout_pending = {"userId": user.id, "time": now}
        return [Persist(self)]

    def set_hangout_url(self, url: str) -> bool:
        """First URL wins; later calls report failure and change nothing"""
        if self.hangout_url:
            return False
        self.hangout_url = url
        self.hangout_pending = None
        return True

    def clear_hangout(self) -> Effects:
        self.hangout_url = None
        self.hangout_pending = None
        self.joining_participants = []
        return [Broadcast(self.room(), "session-hangout-cleared", {"id": self.id}), Persist(self)]

    def heartbeat(self, now: float) -> None:
        self.last_heartbeat = now

    # Hangout participants

    def is_full(self) -> bool:
        return len(self.connected_participants) + len(self.joining_participants) >= MAX_ATTENDEES

    def add_joining_participant(self, user: User, now: float) -> bool:
        ids = {p["id"] for p in self.connected_participants + self.joining_participants}
        if user.id in ids:
            return False
        entry = user.participant_repr()
        entry["time"] = now
        self.joining_participants.append(entry)
        return True

    def prune_joining_participants(self, now: float, timeout: float) -> None:
        self.joining_participants = [
            p for p in self.joining_participants if now - p.get("time", now) < timeout
        ]

    def set_connected_participants(self, users) -> Effects:
        if len(users) > MAX_ATTENDEES:
            raise CapacityExceededError("a hangout holds at most %d participants" % MAX_ATTENDEES)
        participants = [_participant(u) for u in users]
        new_ids = {p["id"] for p in participants}
        current_ids = {p["id"] for p in self.connected_participants}

        self.joining_participants = [
            p for p in self.joining_participants if p["id"] not in new_ids
        ]
        if new_ids == current_ids and len(participants) == len(self.connected_participants):
            return []
        self.connected_participants = participants
        return [
            Broadcast(
                self.room(),
                "session-participants",
                {"id": self.id, "participants": participants},
            ),
            Persist(self),
        ]

    # Serialization

    def to_client(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "title": self.title,
            "description": self.description,
            "shortCode": self.short_code,
            "activities": self.activities,
            "joinCap": self.join_cap,
            "attendees": list(self.attendees),
            "connectedParticipants": list(self.connected_participants),
            "started": self.started,
            "stopped": self.stopped,
            "session-key": self.session_key if self.started else None,
            "hangoutConnected": self.hangout_url is not None,
            "hangoutPending": self.hangout_pending is not None,
        }

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "eventId": self.event_id,
            "number": self.number,
            "title": self.title,
            "description": self.description,
            "shortCode": self.short_code,
            "activities": self.activities,
            "joinCap": self.join_cap,
            "attendees": self.attendees,
            "connectedParticipants": self.connected_participants,
            "started": self.started,
            "stopped": self.stopped,
            "session-key": self.session_key,
            "hangout-url": self.hangout_url,
            "hangout-pending": self.hangout_pending,
        }

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            id=int(data["id"]),
            event_id=data.get("eventId"),
            number=data.get("number", 0),
            title=data.get("title", ""),
            description=data.get("description", ""),
            short_code=data.get("shortCode"),
            activities=list(data.get("activities") or []),
            join_cap=data.get("joinCap", MAX_ATTENDEES),
            attendees=list(data.get("attendees") or []),
            connected_participants=list(data.get("connectedParticipants") or []),
            started=bool(data.get("started")),
            stopped=bool(data.get("stopped")),
            session_key=data.get("session-key"),
            hangout_url=data.get("hangout-url"),
            hangout_pending=data.get("hangout-pending"),
        )
