"""
Socket channel manager and the realtime websocket endpoint
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Tuple

import pydantic
from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect

from app.core.errors import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    UnhangoutError,
    ValidationError,
)
from app.models import ChatMessage, Event, Session
from app.models.chat import escape_markup
from app.models.effects import Broadcast, session_room
from app.schemas.socket import (
    AuthArgs,
    ChatArgs,
    CreateSessionArgs,
    EmbedArgs,
    IdArgs,
    SessionMessageArgs,
    SocketMessage,
    VideoArgs,
)
from app.services.broadcast import Connection
from app.services.tokens import validate_token

logger = logging.getLogger(__name__)


def _parse(model, args: Dict[str, Any]):
    try:
        return model.model_validate(args)
    except pydantic.ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) or "args" for err in e.errors())
        raise ValidationError(f"Invalid arguments: {fields}")


class SocketChannelManager:
    """Authenticates socket connections and routes their commands.

    Every inbound command gets exactly one ``<type>-ack`` or ``<type>-err``
    reply. Handlers return the ack arguments or raise an ``UnhangoutError``.
    """

    def __init__(self, state):
        self.state = state
        self.connections: Dict[str, Connection] = {}
        self.handlers = {
            "auth": self.on_auth,
            "join": self.on_join,
            "leave": self.on_leave,
            "attend": self.on_attend,
            "unattend": self.on_unattend,
            "start": self.on_start,
            "stop": self.on_stop,
            "create-session": self.on_create_session,
            "embed": self.on_embed,
            "chat": self.on_chat,
            "open-sessions": self.on_open_sessions,
            "close-sessions": self.on_close_sessions,
            "broadcast-message-to-sessions": self.on_broadcast_message_to_sessions,
            "clear-previous-videos": self.on_clear_previous_videos,
            "remove-one-previous-video": self.on_remove_one_previous_video,
        }

    @property
    def registry(self):
        return self.state.registry

    @property
    def broadcaster(self):
        return self.state.broadcaster

    @property
    def dispatcher(self):
        return self.state.dispatcher

    def register(self, connection: Connection) -> Connection:
        self.connections[connection.id] = connection
        return connection

    async def connect(self, websocket: WebSocket) -> Connection:
        await websocket.accept()
        connection = self.register(Connection(websocket))
        logger.info(f"Socket {connection.id} connected. Total sockets: {len(self.connections)}")
        return connection

    async def disconnect(self, conn: Connection) -> None:
        if self.connections.pop(conn.id, None) is None:
            return
        await self._leave_room(conn)
        user = conn.user
        if user is not None and user.connection is conn:
            # the user may still be connected through another socket
            user.connection = next(
                (c for c in self.connections.values() if c.user is user), None
            )
        conn.close()
        logger.info(f"Socket {conn.id} disconnected. Remaining sockets: {len(self.connections)}")

    async def shutdown(self) -> None:
        for conn in list(self.connections.values()):
            conn.close()
        self.connections.clear()

    # Inbound frames

    async def handle_text(self, conn: Connection, data: str) -> None:
        try:
            message = SocketMessage.model_validate(json.loads(data))
        except (json.JSONDecodeError, pydantic.ValidationError):
            logger.warning(f"Unparseable frame from socket {conn.id}: {data[:200]}")
            conn.write_err("message", "Could not parse message.")
            return
        await self.handle_message(conn, message.type, message.args)

    async def handle_message(self, conn: Connection, type: str, args: Dict[str, Any]) -> None:
        handler = self.handlers.get(type)
        try:
            if handler is None:
                raise ValidationError(f"Unknown message type: {type}")
            if type != "auth" and not conn.authenticated:
                raise AuthenticationError("Not authenticated.")
            ack = await handler(conn, args or {})
        except StorageError as e:
            logger.exception(f"Storage failure handling {type} from socket {conn.id}")
            conn.write_err(type, e.message)
        except UnhangoutError as e:
            logger.warning(f"Rejected {type} from socket {conn.id}: {e.message}")
            conn.write_err(type, e.message)
        else:
            conn.write_ack(type, ack)

    # Room helpers

    def _current_event(self, conn: Connection) -> Event:
        room = conn.room or ""
        if not room.startswith("event/"):
            raise ValidationError("Join an event first.")
        event = self.registry.get_event(room.split("/", 1)[1])
        if event is None:
            raise NotFoundError("The event for this room no longer exists.")
        return event

    def _room_session(self, conn: Connection, session_id) -> Tuple[Session, Optional[Event]]:
        """Resolve a session id against the room the connection is in"""
        room = conn.room or ""
        if room.startswith("session/"):
            session = self.registry.get_session(room.split("/", 1)[1])
            if session is None or str(session.id) != str(session_id):
                raise NotFoundError(f"Session {session_id} is not in this room.")
            return session, self.registry.owning_event(session)
        event = self._current_event(conn)
        session = event.get_session(session_id)
        if session is None:
            raise NotFoundError(f"Session {session_id} is not part of event {event.id}.")
        return session, event

    def _require_admin(self, conn: Connection, event: Optional[Event]) -> None:
        if not conn.user.is_admin_of(event):
            raise PermissionDeniedError("You must be an admin to do that.")

    async def _leave_room(self, conn: Connection) -> None:
        room = self.broadcaster.unsubscribe(conn)
        user = conn.user
        if room is None or user is None:
            return
        if any(c.user is user for c in self.broadcaster.members(room)):
            return
        if user.room == room:
            user.room = None
        if room.startswith("event/"):
            event = self.registry.get_event(room.split("/", 1)[1])
            if event is not None:
                await self.dispatcher.apply(event.user_disconnected(user))
                logger.info(f"user:{user.id} left event:{event.id}")

    # Commands

    async def on_auth(self, conn: Connection, args):
        try:
            auth = _parse(AuthArgs, args)
        except ValidationError:
            if conn.user is not None:
                await self._leave_room(conn)
            conn.user = None
            raise AuthenticationError("Missing id or key.")
        user = self.registry.get_user(auth.id)
        if user is None or not validate_token(user, auth.key):
            if conn.user is not None:
                await self._leave_room(conn)
            conn.user = None
            raise AuthenticationError("Invalid key.")
        if conn.user is not None and conn.user is not user:
            await self._leave_room(conn)
        conn.user = user
        user.connection = conn
        logger.info(f"Socket {conn.id} authenticated as user:{user.id}")
        return None

    async def on_join(self, conn: Connection, args):
        key = str(_parse(IdArgs, args).id)
        user = conn.user

        if key.startswith("session/"):
            session = self.registry.get_session(key.split("/", 1)[1])
            if session is None:
                raise NotFoundError(f"Session {key} not found.")
            await self._leave_room(conn)
            room = session_room(session.id)
            self.broadcaster.subscribe(conn, room)
            user.room = room
            return session.to_client()

        if key.startswith("event/"):
            key = key.split("/", 1)[1]
        event = self.registry.get_event(key)
        if event is None:
            raise NotFoundError(f"Event {key} not found.")
        if conn.room == event.room():
            return event.to_client()
        if event.is_overflowing(user):
            raise ValidationError("This event is full.")

        await self._leave_room(conn)
        self.broadcaster.subscribe(conn, event.room())
        user.room = event.room()
        await self.dispatcher.apply(event.user_connected(user))
        logger.info(f"user:{user.id} joined event:{event.id}")
        return event.to_client()

    async def on_leave(self, conn: Connection, args):
        await self._leave_room(conn)
        return None

    async def on_attend(self, conn: Connection, args):
        session, _ = self._room_session(conn, _parse(IdArgs, args).id)
        await self.dispatcher.apply(session.add_attendee(conn.user))
        return {"id": session.id}

    async def on_unattend(self, conn: Connection, args):
        session, _ = self._room_session(conn, _parse(IdArgs, args).id)
        await self.dispatcher.apply(session.remove_attendee(conn.user))
        return {"id": session.id}

    async def on_start(self, conn: Connection, args):
        session, event = self._room_session(conn, _parse(IdArgs, args).id)
        self._require_admin(conn, event)
        await self.dispatcher.apply(session.start(self.registry.new_session_key()))
        logger.info(f"session:{session.id} started by user:{conn.user.id}")
        return {"id": session.id}

    async def on_stop(self, conn: Connection, args):
        session, event = self._room_session(conn, _parse(IdArgs, args).id)
        self._require_admin(conn, event)
        await self.dispatcher.apply(session.stop())
        logger.info(f"session:{session.id} stopped by user:{conn.user.id}")
        return {"id": session.id}

    async def on_create_session(self, conn: Connection, args):
        event = self._current_event(conn)
        self._require_admin(conn, event)
        attrs = _parse(CreateSessionArgs, args).model_dump(exclude_none=True)
        session, effects = self.registry.create_session(event, attrs)
        await self.dispatcher.apply(effects)
        return {"id": session.id}

    async def on_embed(self, conn: Connection, args):
        event = self._current_event(conn)
        self._require_admin(conn, event)
        embed = _parse(EmbedArgs, args)
        await self.dispatcher.apply(event.set_embed(embed.ytId or None))
        return None

    async def on_chat(self, conn: Connection, args):
        if conn.room is None:
            raise ValidationError("Join a room before chatting.")
        chat = _parse(ChatArgs, args)
        if not chat.text.strip():
            raise ValidationError("Chat messages can't be empty.")
        event = self._current_event(conn) if conn.room.startswith("event/") else None
        message = ChatMessage(
            text=chat.text,
            user=conn.user,
            posted_as_admin=chat.postAsAdmin and conn.user.is_admin_of(event),
        )
        await self.dispatcher.apply([Broadcast(conn.room, "chat", message.to_client())])
        return None

    async def on_open_sessions(self, conn: Connection, args):
        event = self._current_event(conn)
        self._require_admin(conn, event)
        await self.dispatcher.apply(event.open_sessions())
        return None

    async def on_close_sessions(self, conn: Connection, args):
        event = self._current_event(conn)
        self._require_admin(conn, event)
        await self.dispatcher.apply(event.close_sessions())
        return None

    async def on_broadcast_message_to_sessions(self, conn: Connection, args):
        """Show an admin's notice inside every hangout of the event"""
        event = self._current_event(conn)
        self._require_admin(conn, event)
        text = _parse(SessionMessageArgs, args).message
        if not text.strip():
            raise ValidationError("Session messages can't be empty.")
        payload = {"sender": conn.user.display_name, "message": escape_markup(text)}
        await self.dispatcher.apply([
            Broadcast(session_room(session.id), "session/event-message", payload)
            for session in event.sessions
        ])
        logger.info(f"user:{conn.user.id} messaged {len(event.sessions)} sessions of event:{event.id}")
        return None

    async def on_clear_previous_videos(self, conn: Connection, args):
        event = self._current_event(conn)
        self._require_admin(conn, event)
        await self.dispatcher.apply(event.clear_previous_videos())
        return None

    async def on_remove_one_previous_video(self, conn: Connection, args):
        event = self._current_event(conn)
        self._require_admin(conn, event)
        await self.dispatcher.apply(event.remove_previous_video(_parse(VideoArgs, args).ytId))
        return None


# Router for the realtime endpoints
router = APIRouter()

@router.websocket("/sock")
async def websocket_endpoint(websocket: WebSocket):
    """Realtime socket channel"""
    manager: SocketChannelManager = websocket.app.state.unhangout.sockets
    conn = await manager.connect(websocket)
    writer = asyncio.create_task(conn.run_writer())

    try:
        while True:
            data = await websocket.receive_text()
            await manager.handle_text(conn, data)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error on socket {conn.id}: {e}")
    finally:
        await manager.disconnect(conn)
        writer.cancel()

@router.get("/sock/stats")
async def websocket_stats(request: Request):
    """Socket connection statistics (for debugging)"""
    state = request.app.state.unhangout
    counts = state.broadcaster.get_all_connection_counts()
    return {
        "total_sockets": len(state.sockets.connections),
        "total_rooms_with_connections": len(counts),
        "connection_counts": counts,
    }
