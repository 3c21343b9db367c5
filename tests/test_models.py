"""
Tests for the domain model and the in-memory registry
"""

import pytest

from app.core.errors import (
    AlreadyAssignedError,
    AlreadyLiveError,
    AlreadyPendingError,
    AlreadyStartedError,
    AlreadyStoppedError,
    CapacityExceededError,
    NotLiveError,
    NotStartedError,
    ValidationError,
)
from app.models import ChatMessage, Event, Session, User
from app.models.effects import Broadcast, Persist
from app.services.registry import Registry

def make_users(count):
    return [User(id=str(i), display_name=f"User {i}") for i in range(1, count + 1)]

@pytest.fixture
def event():
    """An event with one session"""
    event = Event(id=1, title="Unconference", description="Talks")
    event.add_session(Session(id=10, title="Intro", description="Say hi", join_cap=2))
    return event

class TestSessionLifecycle:
    def test_start_sets_key_and_broadcasts(self, event):
        session = event.sessions[0]
        effects = session.start("key-1")

        assert session.started
        assert session.session_key == "key-1"
        assert Broadcast("event/1", "start", {"id": 10, "key": "key-1"}) in effects
        assert session.participation_link() == "/session/key-1"

    def test_double_start_is_a_conflict(self, event):
        session = event.sessions[0]
        session.start("key-1")

        with pytest.raises(AlreadyStartedError):
            session.start("key-2")
        assert session.session_key == "key-1"

    def test_stop_requires_running_session(self, event):
        session = event.sessions[0]
        with pytest.raises(NotStartedError):
            session.stop()

        session.start("key-1")
        session.stop()
        with pytest.raises(AlreadyStoppedError):
            session.stop()

class TestAttendance:
    def test_attendees_bounded_by_join_cap(self, event):
        session = event.sessions[0]
        alice, bob, carol = make_users(3)
        session.add_attendee(alice)
        session.add_attendee(bob)

        with pytest.raises(CapacityExceededError):
            session.add_attendee(carol)
        assert [a["id"] for a in session.attendees] == ["1", "2"]

    def test_attendees_bounded_by_hard_maximum(self):
        session = Session(id=1, join_cap=25)
        users = make_users(11)
        for user in users[:10]:
            session.add_attendee(user)

        with pytest.raises(CapacityExceededError):
            session.add_attendee(users[10])
        assert len(session.attendees) == 10

    def test_attend_twice_and_unattend_unknown(self, event):
        session = event.sessions[0]
        alice, bob = make_users(2)
        effects = session.add_attendee(alice)

        assert effects[0].type == "attend"
        assert effects[0].room == "event/1"
        assert Persist(session) in effects
        with pytest.raises(ValidationError):
            session.add_attendee(alice)
        with pytest.raises(ValidationError):
            session.remove_attendee(bob)

        effects = session.remove_attendee(alice)
        assert effects[0].type == "unattend"
        assert session.attendees == []

class TestHangoutState:
    def test_pending_and_url_are_exclusive(self):
        session = Session(id=1)
        alice, bob = make_users(2)
        session.mark_hangout_pending(alice, now=100.0, timeout=30)

        with pytest.raises(AlreadyPendingError):
            session.mark_hangout_pending(bob, now=110.0, timeout=30)

        assert session.set_hangout_url("https://video.example/abc")
        assert session.hangout_pending is None
        assert not session.set_hangout_url("https://video.example/other")
        assert session.hangout_url == "https://video.example/abc"
        with pytest.raises(AlreadyAssignedError):
            session.mark_hangout_pending(bob, now=120.0)

    def test_stale_pending_can_be_replaced(self):
        session = Session(id=1)
        alice, bob = make_users(2)
        session.mark_hangout_pending(alice, now=100.0, timeout=30)

        assert not session.is_hangout_pending(now=131.0, timeout=30)
        session.mark_hangout_pending(bob, now=131.0, timeout=30)
        assert session.hangout_pending["userId"] == bob.id

    def test_connected_participants_replace_joining(self):
        session = Session(id=1, event_id=3)
        alice, bob = make_users(2)
        session.set_hangout_url("https://video.example/abc")
        session.add_joining_participant(alice, now=1.0)
        session.add_joining_participant(bob, now=1.0)

        effects = session.set_connected_participants([{"person": {"id": "1", "displayName": "User 1"}}])

        assert [p["id"] for p in session.joining_participants] == ["2"]
        assert [p["id"] for p in session.connected_participants] == ["1"]
        assert effects[0] == Broadcast(
            "event/3", "session-participants",
            {"id": 1, "participants": session.connected_participants}
        )
        assert session.set_connected_participants([alice]) == []

    def test_clear_hangout(self):
        session = Session(id=1)
        session.set_hangout_url("https://video.example/abc")
        effects = session.clear_hangout()

        assert session.hangout_url is None
        assert effects[0] == Broadcast("session/1", "session-hangout-cleared", {"id": 1})

    def test_record_round_trip(self):
        session = Session(id=4, event_id=2, number=3, title="T", join_cap=5)
        session.start("key")
        session.set_hangout_url("https://video.example/abc")

        loaded = Session.from_record(session.to_record())
        assert loaded.to_record() == session.to_record()

class TestEvent:
    def test_add_session_grows_by_one(self, event):
        effects = event.add_session(Session(id=11, title="Second"))

        assert len(event.sessions) == 2
        assert event.sessions[1].number == 2
        assert event.sessions[1].event_id == 1
        assert effects[0].type == "create-session"

        with pytest.raises(ValidationError):
            event.add_session(Session(id=11))
        assert len(event.sessions) == 2

    def test_start_and_stop(self, event):
        event.start(now=10.0)
        assert event.is_live(now=11.0)
        with pytest.raises(AlreadyLiveError):
            event.start(now=12.0)

        event.stop(now=20.0)
        assert not event.is_live(now=21.0)
        with pytest.raises(NotLiveError):
            event.stop(now=22.0)

    def test_set_embed(self, event):
        effects = event.set_embed("abc123")

        assert effects[0] == Broadcast("event/1", "embed", {"ytId": "abc123"})
        assert event.previous_video_embeds == [{"youtubeId": "abc123"}]
        assert event.set_embed("abc123") == []

        event.set_embed(None)
        assert event.youtube_embed is None
        assert event.previous_video_embeds == [{"youtubeId": "abc123"}]

    def test_previous_videos(self, event):
        event.set_embed("abc123")
        event.set_embed("def456")

        effects = event.remove_previous_video("abc123")
        assert effects[0] == Broadcast("event/1", "remove-one-previous-video", {"id": 1, "ytId": "abc123"})
        assert event.previous_video_embeds == [{"youtubeId": "def456"}]
        with pytest.raises(ValidationError):
            event.remove_previous_video("abc123")

        assert event.clear_previous_videos()[0] == Broadcast("event/1", "clear-previous-videos", {"id": 1})
        assert event.previous_video_embeds == []
        assert event.clear_previous_videos() == []

    def test_admin_by_email_before_login(self, event):
        event.add_admin("host@example.com")
        host = User(id="9", emails=["host@example.com"])
        guest = User(id="8", emails=["guest@example.com"])

        assert host.is_admin_of(event)
        assert not guest.is_admin_of(event)

        event.remove_admin(host)
        assert not host.is_admin_of(event)

    def test_connected_users(self, event):
        alice, = make_users(1)
        joined = event.user_connected(alice)

        assert joined[0].type == "join"
        assert event.is_connected(alice)
        assert event.user_disconnected(alice)[0].type == "leave"
        assert event.user_disconnected(alice) == []

    def test_overflow_ignores_admins(self, event):
        event.overflow_user_cap = 1
        alice, bob, admin = make_users(3)
        admin.admin = True
        event.user_connected(alice)

        assert event.is_overflowing(bob)
        assert not event.is_overflowing(admin)
        assert not event.is_overflowing(alice)

class TestUser:
    def test_perms(self):
        user = User(id="1")
        user.set_perm("farmHangouts", True)

        assert user.has_perm("farmHangouts")
        assert not user.has_perm("createEvents")
        with pytest.raises(ValidationError):
            user.set_perm("launchRockets", True)

        user.superuser = True
        assert user.has_perm("createEvents")

    def test_short_display_name(self):
        assert User(id="1", display_name="Alice Bob-Carol Smith").short_display_name() == "Alice B-C S"
        assert User(id="2", display_name="Prince").short_display_name() == "Prince"

def test_chat_message_escapes_markup():
    message = ChatMessage(text="<script>x</script>hi")

    assert "<script>" not in message.text
    assert "&lt;script&gt;" in message.text
    assert message.text.endswith("hi")
    assert message.is_system()
    assert message.to_client()["system"] is True
    assert ChatMessage(text="hi", user=User(id="1")).to_client()["system"] is False
    assert "<script>" not in str(message.to_client())

class TestRegistry:
    def test_create_event_requires_fields_and_unique_short_name(self):
        registry = Registry()
        creator = User(id="1")
        event, effects = registry.create_event(
            {"title": "T", "description": "D", "shortName": "my-event"}, creator
        )

        assert Persist(event) in effects
        assert creator.is_admin_of(event)
        assert registry.get_event("my-event") is event
        assert registry.get_event(str(event.id)) is event

        with pytest.raises(ValidationError):
            registry.create_event({"title": "T"})
        with pytest.raises(ValidationError):
            registry.create_event({"title": "T", "description": "D", "shortName": "my-event"})
        with pytest.raises(ValidationError):
            registry.create_event({"title": "T", "description": "D", "shortName": "bad name!"})

    def test_create_session_validation(self):
        registry = Registry()
        event, _ = registry.create_event({"title": "T", "description": "D"})

        with pytest.raises(ValidationError):
            registry.create_session(event, {"title": "", "description": "D"})
        with pytest.raises(ValidationError):
            registry.create_session(event, {"title": "S", "description": "D", "joinCap": 11})
        with pytest.raises(ValidationError):
            registry.create_session(event, {"title": "S", "description": "D", "activities": [{"type": "game"}]})
        assert event.sessions == []

        session, _ = registry.create_session(
            event, {"title": "S", "description": "D", "activities": [{"type": "video"}]}
        )
        assert event.sessions == [session]
        assert session.join_cap == 10

    def test_session_keys_are_unique(self):
        registry = Registry()
        event, _ = registry.create_event({"title": "T", "description": "D"})
        session, _ = registry.create_session(event, {"title": "S", "description": "D"})
        session.start(registry.new_session_key())

        assert registry.find_session_by_key(session.session_key) is session
        assert registry.new_session_key() != session.session_key
        assert registry.find_session_by_key("nope") is None

    def test_permalink_sessions_start_immediately(self):
        registry = Registry()
        session, effects = registry.get_or_create_permalink_session("standup")

        assert session.started
        assert session.room() == f"session/{session.id}"
        assert effects
        again, effects = registry.get_or_create_permalink_session("standup")
        assert again is session
        assert effects == []

    def test_load_records(self):
        registry = Registry()
        user = User(id="7", display_name="Ann")
        event, _ = registry.create_event({"title": "T", "description": "D"}, user)
        session, _ = registry.create_session(event, {"title": "S", "description": "D"})
        permalink, _ = registry.get_or_create_permalink_session("code")

        fresh = Registry()
        fresh.load_records(
            [user.to_record()],
            [event.to_record()],
            [session.to_record(), permalink.to_record()],
        )

        loaded = fresh.get_event(event.id)
        assert [s.id for s in loaded.sessions] == [session.id]
        assert fresh.get_user("7").display_name == "Ann"
        assert fresh.get_session(permalink.id).short_code == "code"
        assert fresh.create_session(loaded, {"title": "N", "description": "D"})[0].id > permalink.id
