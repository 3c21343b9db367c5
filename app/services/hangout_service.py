"""
Hangout assignment: decides which hangout URL a participant is sent to.

Per session the hangout moves NoHangout -> Pending -> Assigned. A pending
marker that outlives the creation timeout falls back to NoHangout. State is
re-checked after every await, since other requests run while this one is
suspended on the pool or on storage.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from app.core.errors import CapacityExceededError, ValidationError
from app.models.effects import Broadcast, Persist
from app.models.session import Session
from app.models.user import User
from app.services.dispatcher import EffectDispatcher
from app.services.farming import HangoutPool
from app.services.tokens import derive_token

logger = logging.getLogger(__name__)


@dataclass
class Participation:
    """Where a participation request should be redirected"""
    url: str
    create: bool = False  # True: the requester has to create the hangout


class HangoutAssignmentService:
    def __init__(
        self,
        dispatcher: EffectDispatcher,
        pool: HangoutPool,
        creation_timeout: float,
        connection_timeout: float,
        create_url: str,
        app_id: str = "",
        clock: Callable[[], float] = time.time,
    ):
        self.dispatcher = dispatcher
        self.pool = pool
        self.creation_timeout = creation_timeout
        self.connection_timeout = connection_timeout
        self.create_url = create_url
        self.app_id = app_id
        self.clock = clock
        self._waiters: Dict[int, List[asyncio.Future]] = {}
        self._connection_checks: Dict[int, asyncio.Task] = {}

    def hangout_query_args(self, session: Session, user: User) -> str:
        return (
            f"?gid={self.app_id}&gd=sessionId:{session.id}"
            f":sockKey:{derive_token(user)}:userId:{user.id}"
        )

    def num_waiting(self, session: Session) -> int:
        return len(self._waiters.get(session.id, []))

    # Participation

    async def request_participation(self, session: Session, user: User) -> Participation:
        session.prune_joining_participants(self.clock(), self.connection_timeout)
        if session.is_full() and not self._is_participant(session, user):
            raise CapacityExceededError("Session full")

        # 1. already assigned
        if session.hangout_url:
            return self._join(session, user)

        # 2. farmed url available
        farmed = await self.pool.get_next_hangout_url()
        if farmed is not None:
            if not await self.assign_url(session, farmed):
                # lost the race; the unused url goes back on the queue
                logger.info(f"session:{session.id} was assigned while popping; returning {farmed} to the pool")
                await self.pool.reuse_url(farmed)
            return self._join(session, user)

        if session.hangout_url:
            return self._join(session, user)

        # 3. nobody is creating it yet
        if not session.is_hangout_pending(self.clock(), self.creation_timeout):
            return await self._become_creator(session, user, takeover=False)

        # 4. someone else is creating it
        return await self._wait_for_hangout(session, user)

    async def _become_creator(self, session: Session, user: User, takeover: bool) -> Participation:
        effects = session.mark_hangout_pending(
            user, self.clock(), self.creation_timeout, takeover=takeover
        )
        logger.info(f"user:{user.id} is creating the hangout for session:{session.id}")
        await self.dispatcher.apply(effects)
        if session.hangout_url:
            # assigned while the pending marker was being saved
            return self._join(session, user)
        return Participation(self.create_url, create=True)

    async def _wait_for_hangout(self, session: Session, user: User) -> Participation:
        """Wait on the current creator; take over only if that creator went silent.

        Each round waits one creation timeout. A waiter that finds a newer
        pending marker when its round ends waits on that creator instead, so
        a timeout hands the session to exactly one new creator.
        """
        marker = session.hangout_pending
        while True:
            future = asyncio.get_running_loop().create_future()
            self._waiters.setdefault(session.id, []).append(future)
            logger.debug(f"user:{user.id} waiting on pending hangout for session:{session.id}")
            try:
                await asyncio.wait_for(future, self.creation_timeout)
                return self._join(session, user)
            except asyncio.TimeoutError:
                pass
            finally:
                waiters = self._waiters.get(session.id)
                if waiters and future in waiters:
                    waiters.remove(future)
                if not waiters:
                    self._waiters.pop(session.id, None)

            if session.hangout_url:
                return self._join(session, user)
            current = session.hangout_pending
            if current is marker or not session.is_hangout_pending(self.clock(), self.creation_timeout):
                logger.warning(
                    f"Hangout creation for session:{session.id} timed out; "
                    f"user:{user.id} takes over"
                )
                return await self._become_creator(session, user, takeover=True)
            logger.debug(
                f"user:{current['userId']} took over session:{session.id}; "
                f"user:{user.id} keeps waiting"
            )
            marker = current

    def _is_participant(self, session: Session, user: User) -> bool:
        return any(
            p["id"] == user.id
            for p in session.connected_participants + session.joining_participants
        )

    def _join(self, session: Session, user: User) -> Participation:
        session.add_joining_participant(user, self.clock())
        return Participation(session.hangout_url)

    # Assignment

    async def assign_url(self, session: Session, url: str) -> bool:
        """Set the session's hangout url; False if one was already set"""
        if not session.set_hangout_url(url):
            return False
        logger.info(f"session:{session.id} assigned hangout {url}")
        self._notify_waiters(session, url)
        self._schedule_connection_check(session)
        await self.dispatcher.apply([
            Broadcast(session.room(), "session-hangout-connected", {"id": session.id}),
            Persist(session),
        ])
        return True

    def _notify_waiters(self, session: Session, url: str) -> None:
        for future in self._waiters.pop(session.id, []):
            if not future.done():
                future.set_result(url)

    def _schedule_connection_check(self, session: Session) -> None:
        previous = self._connection_checks.pop(session.id, None)
        if previous is not None:
            previous.cancel()
        self._connection_checks[session.id] = asyncio.get_running_loop().create_task(
            self._expire_if_unused(session, session.hangout_url)
        )

    async def _expire_if_unused(self, session: Session, url: str) -> None:
        await asyncio.sleep(self.connection_timeout)
        if self._connection_checks.get(session.id) is asyncio.current_task():
            del self._connection_checks[session.id]
        if session.hangout_url != url or session.connected_participants:
            return
        # a url handed to a browser is never recirculated
        logger.warning(f"Nobody joined hangout {url} for session:{session.id}; dropping it")
        await self.dispatcher.apply(session.clear_hangout())

    def cancel_checks(self) -> None:
        for task in self._connection_checks.values():
            task.cancel()
        self._connection_checks.clear()

    # Hangout callbacks

    async def record_participants(self, session: Session, participants: List[Any]) -> None:
        await self.dispatcher.apply(session.set_connected_participants(participants))
        if session.hangout_url and not session.connected_participants:
            self._schedule_connection_check(session)

    async def handle_callback(self, session: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
        kind = payload.get("type")
        if kind == "loaded":
            url = payload.get("url")
            if not url:
                raise ValidationError("loaded requires a url")
            assigned = await self.assign_url(session, url)
            if not assigned:
                logger.warning(f"session:{session.id} already has a hangout; ignoring {url}")
            return {"assigned": assigned, "url": session.hangout_url}
        if kind == "participants":
            participants = payload.get("participants")
            if not isinstance(participants, list):
                raise ValidationError("participants requires a list")
            await self.record_participants(session, participants)
            return {"participants": session.connected_participants}
        if kind == "heartbeat":
            session.heartbeat(self.clock())
            return {"lastHeartbeat": session.last_heartbeat}
        raise ValidationError(f"unknown hangout message type: {kind}")
