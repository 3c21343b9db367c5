"""
Applies the side effects described by domain mutations
"""

import logging
from typing import Iterable

from starlette.concurrency import run_in_threadpool

from app.models.effects import Broadcast, Effect, Persist
from app.services.broadcast import RoomBroadcaster

logger = logging.getLogger(__name__)


class EffectDispatcher:
    def __init__(self, broadcaster: RoomBroadcaster, repo):
        self.broadcaster = broadcaster
        self.repo = repo

    async def apply(self, effects: Iterable[Effect]) -> None:
        # Broadcasts are queued before the first await so every subscriber
        # sees them in mutation order.
        pending = []
        for effect in effects:
            if isinstance(effect, Broadcast):
                self.broadcaster.broadcast(effect.room, effect.type, effect.args)
            elif isinstance(effect, Persist):
                if not any(entity is effect.entity for entity in pending):
                    pending.append(effect.entity)
            else:
                raise TypeError(f"unknown effect {effect!r}")

        for entity in pending:
            await self.save(entity)

    async def save(self, entity) -> None:
        if self.repo is None:
            return
        await run_in_threadpool(self.repo.save, entity.collection, entity.id, entity.to_record())
