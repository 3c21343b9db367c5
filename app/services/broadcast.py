"""
Room membership and broadcast fan-out for socket connections
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class Connection:
    """One realtime socket.

    Outbound frames go through an ordered outbox; a writer task drains it to
    the websocket, so enqueueing never suspends the caller.
    """

    def __init__(self, websocket=None):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.user = None
        self.room: Optional[str] = None
        self.outbox: asyncio.Queue = asyncio.Queue()
        self.closed = False

    @property
    def authenticated(self) -> bool:
        return self.user is not None

    def write(self, type: str, args: Optional[Dict[str, Any]] = None) -> None:
        if self.closed:
            logger.warning(f"Tried to write {type} to closed connection {self.id}")
            return
        self.outbox.put_nowait({"type": type, "args": args if args is not None else {}})

    def write_ack(self, type: str, args: Optional[Dict[str, Any]] = None) -> None:
        self.write(f"{type}-ack", args)

    def write_err(self, type: str, message: Optional[str] = None) -> None:
        self.write(f"{type}-err", {"message": message} if message else {})

    def drain(self) -> List[Dict[str, Any]]:
        """Take every queued frame without sending it"""
        frames = []
        while not self.outbox.empty():
            frame = self.outbox.get_nowait()
            if frame is not None:
                frames.append(frame)
        return frames

    async def run_writer(self) -> None:
        while True:
            frame = await self.outbox.get()
            if frame is None:
                break
            try:
                await self.websocket.send_text(json.dumps(frame))
            except Exception as e:
                logger.error(f"Error sending to connection {self.id}: {e}")
                self.close()
                break

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.outbox.put_nowait(None)


class RoomBroadcaster:
    """Tracks which connections are subscribed to which room"""

    def __init__(self):
        # room id -> connections, in subscription order
        self.rooms: Dict[str, List[Connection]] = {}

    def subscribe(self, connection: Connection, room: str) -> None:
        """A connection is in at most one room; subscribing leaves the old one"""
        if connection.room == room:
            return
        self.unsubscribe(connection)
        self.rooms.setdefault(room, []).append(connection)
        connection.room = room
        logger.info(f"Connection {connection.id} joined {room}. Total connections: {len(self.rooms[room])}")

    def unsubscribe(self, connection: Connection) -> Optional[str]:
        room = connection.room
        if room is None:
            return None
        members = self.rooms.get(room, [])
        if connection in members:
            members.remove(connection)
            logger.info(f"Connection {connection.id} left {room}. Remaining connections: {len(members)}")
        if not members:
            self.rooms.pop(room, None)
        connection.room = None
        return room

    def members(self, room: str) -> List[Connection]:
        return list(self.rooms.get(room, []))

    def broadcast(self, room: str, type: str, args: Dict[str, Any]) -> None:
        """Queue ``{type, args}`` for every connection in ``room``"""
        members = self.rooms.get(room)
        if not members:
            logger.debug(f"No active connections for {room}")
            return
        for connection in list(members):
            connection.write(type, args)

    def get_connection_count(self, room: str) -> int:
        return len(self.rooms.get(room, []))

    def get_all_connection_counts(self) -> Dict[str, int]:
        return {room: len(members) for room, members in self.rooms.items()}
