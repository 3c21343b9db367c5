"""
Application state container.

Everything the routes and the socket manager share lives on one
``UnhangoutState`` instance attached to ``app.state.unhangout``.
"""

import logging

from starlette.concurrency import run_in_threadpool

from app.api.ws import SocketChannelManager
from app.core.config import Settings, settings as default_settings
from app.models import Event, Session, User
from app.services.broadcast import RoomBroadcaster
from app.services.dispatcher import EffectDispatcher
from app.services.farming import HangoutPool
from app.services.hangout_service import HangoutAssignmentService
from app.services.registry import Registry
from app.services.repositories import get_entity_repo, get_hangout_url_repo

logger = logging.getLogger(__name__)


class UnhangoutState:
    def __init__(self, entity_repo=None, url_repo=None, settings: Settings = default_settings):
        self.settings = settings
        self.entity_repo = entity_repo if entity_repo is not None else get_entity_repo()
        url_repo = url_repo if url_repo is not None else get_hangout_url_repo()

        self.registry = Registry()
        self.broadcaster = RoomBroadcaster()
        self.dispatcher = EffectDispatcher(self.broadcaster, self.entity_repo)
        self.pool = HangoutPool(url_repo)
        self.hangouts = HangoutAssignmentService(
            self.dispatcher,
            self.pool,
            creation_timeout=settings.HANGOUT_CREATION_TIMEOUT,
            connection_timeout=settings.HANGOUT_CONNECTION_TIMEOUT,
            create_url=settings.HANGOUT_CREATE_URL,
            app_id=settings.HANGOUT_APP_ID,
        )
        self.sockets = SocketChannelManager(self)

    async def load(self) -> None:
        repo = self.entity_repo
        users = await run_in_threadpool(repo.list, User.collection)
        events = await run_in_threadpool(repo.list, Event.collection)
        sessions = await run_in_threadpool(repo.list, Session.collection)
        self.registry.load_records(users, events, sessions)

    async def shutdown(self) -> None:
        self.hangouts.cancel_checks()
        await self.sockets.shutdown()
