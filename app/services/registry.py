"""
In-memory registry of users, events and sessions.

Owned by the application state container; HTTP routes and the socket
manager look entities up here and mutate them within one handler turn.
"""

import logging
import secrets
from typing import Any, Dict, Iterator, List, Optional, Tuple

from app.core.errors import NotFoundError, ValidationError
from app.models.effects import Broadcast, Effects, Persist
from app.models.event import SHORT_NAME_PATTERN, Event
from app.models.session import MAX_ATTENDEES, Session, validate_activities
from app.models.user import User

logger = logging.getLogger(__name__)

EVENT_FIELDS = ("title", "organizer", "description", "welcomeMessage")


class Registry:
    def __init__(self):
        self.users: Dict[str, User] = {}
        self.events: Dict[int, Event] = {}
        self.permalink_sessions: Dict[int, Session] = {}
        self._last_event_id = 0
        self._last_session_id = 0

    # Users

    def add_user(self, user: User) -> User:
        old = self.users.get(user.id)
        if old is not None and old is not user:
            logger.warning(f"Replacing existing user:{user.id} in registry")
        self.users[user.id] = user
        return user

    def get_user(self, user_id) -> Optional[User]:
        if user_id is None:
            return None
        return self.users.get(str(user_id))

    def find_user_by_email(self, email: str) -> Optional[User]:
        for user in self.users.values():
            if user.has_email(email):
                return user
        return None

    # Events

    def get_event(self, key) -> Optional[Event]:
        """Look an event up by id, falling back to its short name"""
        try:
            event = self.events.get(int(key))
        except (TypeError, ValueError):
            event = None
        if event is not None:
            return event
        matches = [e for e in self.events.values() if e.short_name and e.short_name == str(key)]
        if len(matches) > 1:
            logger.error(f"Found more than one event with the short name '{key}'")
        return matches[0] if matches else None

    def require_event(self, key) -> Event:
        event = self.get_event(key)
        if event is None:
            raise NotFoundError(f"event {key} not found")
        return event

    def _check_short_name(self, short_name: Optional[str], event: Optional[Event]) -> Optional[str]:
        if not short_name:
            return None
        if not SHORT_NAME_PATTERN.match(short_name):
            raise ValidationError("Only letters, numbers, - and _ allowed in event URLs.")
        for other in self.events.values():
            if other is not event and other.short_name == short_name:
                raise ValidationError("That name is already taken.")
        return short_name

    def create_event(self, attrs: Dict[str, Any], creator: Optional[User] = None) -> Tuple[Event, Effects]:
        if not attrs.get("title"):
            raise ValidationError("A title is required.")
        if not attrs.get("description"):
            raise ValidationError("A description is required.")
        short_name = self._check_short_name(attrs.get("shortName"), None)

        self._last_event_id += 1
        event = Event(
            id=self._last_event_id,
            title=attrs["title"],
            organizer=attrs.get("organizer") or "",
            description=attrs["description"],
            welcome_message=attrs.get("welcomeMessage"),
            short_name=short_name,
        )
        # superusers create events on behalf of others
        if creator is not None and not creator.is_superuser():
            event.add_admin(creator)
        self.events[event.id] = event
        logger.info(f"Created event:{event.id} '{event.title}'")
        return event, [Persist(event)]

    def update_event(self, event: Event, attrs: Dict[str, Any]) -> Effects:
        if "title" in attrs and not attrs["title"]:
            raise ValidationError("A title is required.")
        if "description" in attrs and not attrs["description"]:
            raise ValidationError("A description is required.")
        if "shortName" in attrs and attrs["shortName"] != event.short_name:
            event.short_name = self._check_short_name(attrs["shortName"], event)
        for key in EVENT_FIELDS:
            if key in attrs and attrs[key] is not None:
                setattr(event, "welcome_message" if key == "welcomeMessage" else key, attrs[key])
        if attrs.get("overflowUserCap") is not None:
            if attrs["overflowUserCap"] < 0:
                raise ValidationError("overflowUserCap must not be negative.")
            event.overflow_user_cap = attrs["overflowUserCap"]
        return [Broadcast(event.room(), "event-update", event.to_record()), Persist(event)]

    # Sessions

    def iter_sessions(self) -> Iterator[Session]:
        for event in self.events.values():
            yield from event.sessions
        yield from self.permalink_sessions.values()

    def get_session(self, session_id) -> Optional[Session]:
        for session in self.iter_sessions():
            if str(session.id) == str(session_id):
                return session
        return None

    def find_session_by_key(self, key: Optional[str]) -> Optional[Session]:
        if not key:
            return None
        for session in self.iter_sessions():
            if session.session_key and secrets.compare_digest(session.session_key, key):
                return session
        return None

    def owning_event(self, session: Session) -> Optional[Event]:
        if session.event_id is None:
            return None
        return self.events.get(session.event_id)

    def new_session_key(self) -> str:
        """Random capability token, unique across loaded sessions"""
        while True:
            key = secrets.token_hex(32)
            if self.find_session_by_key(key) is None:
                return key

    def _next_session_id(self) -> int:
        self._last_session_id += 1
        return self._last_session_id

    def create_session(self, event: Event, attrs: Dict[str, Any]) -> Tuple[Session, Effects]:
        title = (attrs.get("title") or "").strip()
        description = (attrs.get("description") or "").strip()
        if not title:
            raise ValidationError("A session title is required.")
        if not description:
            raise ValidationError("A session description is required.")

        join_cap = attrs.get("joinCap")
        if join_cap is None:
            join_cap = MAX_ATTENDEES
        if not isinstance(join_cap, int) or not 1 <= join_cap <= MAX_ATTENDEES:
            raise ValidationError(f"joinCap must be between 1 and {MAX_ATTENDEES}")
        activities = validate_activities(attrs.get("activities") or [])

        session = Session(
            id=self._next_session_id(),
            title=title,
            description=description,
            join_cap=join_cap,
            activities=activities,
        )
        effects = event.add_session(session)
        logger.info(f"Created session:{session.id} in event:{event.id}")
        return session, effects

    def get_or_create_permalink_session(self, short_code: str) -> Tuple[Session, Effects]:
        """Standalone sessions are started as soon as they exist"""
        if not short_code or not SHORT_NAME_PATTERN.match(short_code):
            raise ValidationError("Only letters, numbers, - and _ allowed in session codes.")
        for session in self.permalink_sessions.values():
            if session.short_code == short_code:
                return session, []
        session = Session(id=self._next_session_id(), title=short_code, short_code=short_code)
        self.permalink_sessions[session.id] = session
        return session, session.start(self.new_session_key())

    # Loading

    def load_records(
        self,
        users: List[Dict[str, Any]],
        events: List[Dict[str, Any]],
        sessions: List[Dict[str, Any]],
    ) -> None:
        for data in users:
            self.add_user(User.from_record(data))
        for data in events:
            event = Event.from_record(data)
            self.events[event.id] = event
            self._last_event_id = max(self._last_event_id, event.id)
        for data in sorted(sessions, key=lambda d: (d.get("number", 0), d["id"])):
            session = Session.from_record(data)
            self._last_session_id = max(self._last_session_id, session.id)
            event = self.events.get(session.event_id) if session.event_id is not None else None
            if event is not None:
                event.sessions.append(session)
            elif session.short_code:
                self.permalink_sessions[session.id] = session
            else:
                logger.warning(f"Dropping orphaned session:{session.id} (event:{session.event_id})")
        logger.info(
            f"Loaded {len(self.users)} users, {len(self.events)} events, "
            f"{sum(1 for _ in self.iter_sessions())} sessions"
        )
