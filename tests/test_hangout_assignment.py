"""
Tests for hangout url assignment: pool races, pending creators and timeouts
"""

import asyncio

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.db import Base
from app.core.errors import CapacityExceededError, ValidationError
from app.models import Session, User
from app.services.broadcast import Connection, RoomBroadcaster
from app.services.dispatcher import EffectDispatcher
from app.services.farming import HangoutPool
from app.services.hangout_service import HangoutAssignmentService
from app.services.repositories import SqlHangoutUrlRepo

# Test database setup
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_hangouts.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

CREATE_URL = "https://hangouts.example/create"
FARMED_URL = "https://video.example/farmed"

@pytest.fixture
def pool():
    Base.metadata.create_all(bind=engine)
    yield HangoutPool(SqlHangoutUrlRepo(TestingSessionLocal))
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def broadcaster():
    return RoomBroadcaster()

@pytest.fixture
def make_service(pool, broadcaster):
    def factory(creation_timeout=5.0, connection_timeout=5.0):
        return HangoutAssignmentService(
            EffectDispatcher(broadcaster, None),
            pool,
            creation_timeout=creation_timeout,
            connection_timeout=connection_timeout,
            create_url=CREATE_URL,
            app_id="app",
        )
    return factory

@pytest.fixture
def session():
    session = Session(id=5, event_id=1, title="Breakout", join_cap=2)
    session.start("secret-key")
    return session

@pytest.fixture
def users():
    return [User(id=str(i), display_name=f"User {i}") for i in range(1, 13)]

async def wait_for_waiters(service, session, count=1):
    for _ in range(200):
        if service.num_waiting(session) >= count:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("request never started waiting")

@pytest.mark.anyio
async def test_assigned_url_is_reused(make_service, session, users):
    service = make_service()
    session.set_hangout_url("https://video.example/abc")

    result = await service.request_participation(session, users[0])

    assert result.url == "https://video.example/abc"
    assert not result.create
    assert [p["id"] for p in session.joining_participants] == ["1"]

@pytest.mark.anyio
async def test_race_for_single_pool_url(make_service, pool, session, users):
    service = make_service()
    await pool.reuse_url(FARMED_URL)

    results = await asyncio.gather(
        service.request_participation(session, users[0]),
        service.request_participation(session, users[1]),
    )
    service.cancel_checks()

    assert session.hangout_url == FARMED_URL
    assert session.hangout_pending is None
    assert FARMED_URL in [r.url for r in results]
    assert await pool.get_num_hangouts_available() == 0

@pytest.mark.anyio
async def test_losing_pool_url_is_returned(make_service, pool, session, users):
    service = make_service()
    await pool.reuse_url("https://video.example/1")
    await pool.reuse_url("https://video.example/2")

    results = await asyncio.gather(
        service.request_participation(session, users[0]),
        service.request_participation(session, users[1]),
    )
    service.cancel_checks()

    assert session.hangout_url in ("https://video.example/1", "https://video.example/2")
    assert [r.url for r in results] == [session.hangout_url, session.hangout_url]
    assert await pool.get_num_hangouts_available() == 1
    leftover = await pool.get_next_hangout_url()
    assert leftover != session.hangout_url

@pytest.mark.anyio
async def test_waiting_request_gets_created_url(make_service, session, users, broadcaster):
    service = make_service()
    watcher = Connection()
    broadcaster.subscribe(watcher, "event/1")
    alice, bob = users[0], users[1]

    first = await service.request_participation(session, alice)
    assert first.create
    assert first.url == CREATE_URL
    assert session.hangout_pending["userId"] == alice.id

    waiting = asyncio.create_task(service.request_participation(session, bob))
    await wait_for_waiters(service, session)
    assert not waiting.done()

    assert await service.assign_url(session, "https://video.example/abc")
    second = await waiting
    service.cancel_checks()

    assert second.url == "https://video.example/abc"
    assert not second.create
    assert session.hangout_pending is None
    assert (await service.request_participation(session, alice)).url == "https://video.example/abc"
    assert service.num_waiting(session) == 0
    frames = watcher.drain()
    assert {"type": "session-hangout-connected", "args": {"id": 5}} in frames

@pytest.mark.anyio
async def test_timed_out_waiter_takes_over(make_service, session, users):
    service = make_service(creation_timeout=0.2)
    alice, bob = users[0], users[1]

    await service.request_participation(session, alice)
    result = await service.request_participation(session, bob)

    assert result.create
    assert result.url == CREATE_URL
    assert session.hangout_pending["userId"] == bob.id
    assert session.hangout_url is None

@pytest.mark.anyio
async def test_unused_url_is_dropped(make_service, pool, session, users):
    service = make_service(connection_timeout=0.1)
    await pool.reuse_url(FARMED_URL)

    await service.request_participation(session, users[0])
    assert session.hangout_url == FARMED_URL
    await asyncio.sleep(0.3)

    assert session.hangout_url is None
    assert session.joining_participants == []
    assert await pool.get_num_hangouts_available() == 0

@pytest.mark.anyio
async def test_connected_url_is_kept(make_service, session, users):
    service = make_service(connection_timeout=0.1)
    await service.assign_url(session, "https://video.example/abc")
    await service.record_participants(session, [users[0]])
    await asyncio.sleep(0.3)

    assert session.hangout_url == "https://video.example/abc"

    # everyone left: the url is dropped after another timeout
    await service.record_participants(session, [])
    await asyncio.sleep(0.3)
    assert session.hangout_url is None

@pytest.mark.anyio
async def test_full_session_rejects_new_participants(make_service, session, users):
    service = make_service()
    session.set_hangout_url("https://video.example/abc")
    session.set_connected_participants(users[:10])

    with pytest.raises(CapacityExceededError):
        await service.request_participation(session, users[10])
    result = await service.request_participation(session, users[0])
    assert result.url == "https://video.example/abc"

@pytest.mark.anyio
async def test_hangout_callbacks(make_service, session, users):
    service = make_service()

    result = await service.handle_callback(session, {"type": "loaded", "url": "https://video.example/abc"})
    assert result == {"assigned": True, "url": "https://video.example/abc"}
    result = await service.handle_callback(session, {"type": "loaded", "url": "https://video.example/late"})
    assert result == {"assigned": False, "url": "https://video.example/abc"}

    result = await service.handle_callback(
        session, {"type": "participants", "participants": [{"person": {"id": "1", "displayName": "User 1"}}]}
    )
    assert [p["id"] for p in result["participants"]] == ["1"]
    assert (await service.handle_callback(session, {"type": "heartbeat"}))["lastHeartbeat"] is not None

    with pytest.raises(ValidationError):
        await service.handle_callback(session, {"type": "launch"})
    with pytest.raises(ValidationError):
        await service.handle_callback(session, {"type": "loaded"})
    service.cancel_checks()

def test_query_args(make_service, session, users):
    service = make_service()
    args = service.hangout_query_args(session, users[0])

    assert args.startswith("?gid=app&gd=sessionId:5:sockKey:")
    assert args.endswith(":userId:1")

@pytest.mark.anyio
async def test_only_one_timed_out_waiter_takes_over(make_service, session, users):
    service = make_service(creation_timeout=0.3)
    alice, bob, carol = users[0], users[1], users[2]

    await service.request_participation(session, alice)
    tasks = {
        asyncio.create_task(service.request_participation(session, bob)): bob,
        asyncio.create_task(service.request_participation(session, carol)): carol,
    }
    await wait_for_waiters(service, session, count=2)

    done, pending = await asyncio.wait(tasks, timeout=1.0, return_when=asyncio.FIRST_COMPLETED)
    assert len(done) == 1 and len(pending) == 1
    creator_task, still_waiting = done.pop(), pending.pop()
    assert creator_task.result().create
    assert session.hangout_pending["userId"] == tasks[creator_task].id

    # the other waiter now waits on the new creator
    await wait_for_waiters(service, session)
    assert not still_waiting.done()
    assert await service.assign_url(session, "https://video.example/abc")
    result = await still_waiting
    service.cancel_checks()

    assert not result.create
    assert result.url == "https://video.example/abc"

class SlowSaveDispatcher(EffectDispatcher):
    async def save(self, entity):
        await asyncio.sleep(0.05)

@pytest.mark.anyio
async def test_creator_joins_url_assigned_while_pending_is_saved(pool, broadcaster, session, users):
    service = HangoutAssignmentService(
        SlowSaveDispatcher(broadcaster, None),
        pool,
        creation_timeout=5.0,
        connection_timeout=5.0,
        create_url=CREATE_URL,
        app_id="app",
    )
    request = asyncio.create_task(service.request_participation(session, users[0]))
    for _ in range(200):
        if session.hangout_pending:
            break
        await asyncio.sleep(0.005)
    assert session.hangout_pending["userId"] == users[0].id

    assert await service.assign_url(session, "https://video.example/abc")
    result = await request
    service.cancel_checks()

    assert not result.create
    assert result.url == "https://video.example/abc"
    assert [p["id"] for p in session.joining_participants] == [users[0].id]

@pytest.mark.anyio
async def test_participant_without_id_is_rejected(make_service, session):
    service = make_service()

    with pytest.raises(ValidationError):
        await service.handle_callback(
            session, {"type": "participants", "participants": [{"displayName": "No Id"}]}
        )
    assert session.connected_participants == []
