"""
Room-Based Event Bus
====================

Owns the connection pool, the membership of connections in event rooms
(one room per event, named ``event:<event_id>``), and message delivery.

Architecture:
  - Each connection gets a bounded mailbox (``asyncio.Queue``) and one
    worker task that drains it, so commands from a single connection are
    executed strictly in receipt order.  Socket callbacks only enqueue.
  - Command execution is delegated to a handler table supplied at
    construction (see ``realtime.handlers``); handlers receive the bus and
    the ``Connection`` and use ``join_room`` / ``broadcast`` /
    ``direct_reply`` plus the bus-owned ``PresenceRegistry``.
  - The bus tracks which (event_id, user_id) pairs each connection has
    joined as, so a disconnect can decrement presence correctly.

Delivery is fire-and-forget: a failing emit is logged and dropped, the
sender is never told.  All state lives in the owning event loop; nothing
here is safe to share across processes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Final, Mapping, Optional, Protocol

from .presenceRegistry import PresenceRegistry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ROOM_PREFIX: Final[str] = "event:"

# Internal command queued behind everything a connection already sent.
DISCONNECT_COMMAND: Final[str] = "disconnect"

ADMIN_ROLE: Final[str] = "admin"


def room_for_event(event_id: str) -> str:
    """Deterministic room name for an event."""
    return f"{ROOM_PREFIX}{event_id}"


# ---------------------------------------------------------------------------
# Transport contract (satisfied by ``socketio.AsyncServer``)
# ---------------------------------------------------------------------------

class SocketTransport(Protocol):
    async def enter_room(self, sid: str, room: str, namespace: str | None = None) -> None: ...

    async def leave_room(self, sid: str, room: str, namespace: str | None = None) -> None: ...

    async def emit(
        self,
        event: str,
        data: Any = None,
        to: str | None = None,
        room: str | None = None,
        skip_sid: str | None = None,
        namespace: str | None = None,
    ) -> None: ...


# ---------------------------------------------------------------------------
# Connection bookkeeping
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Identity:
    """Caller identity established at connect time (anonymous if empty)."""

    user_id: Optional[str] = None
    role: Optional[str] = None


@dataclass
class Command:
    name: str
    data: Any = None
    reply: Optional[asyncio.Future] = None


@dataclass
class Connection:
    """Per-device channel handle owned by the bus for its lifetime."""

    sid: str
    identity: Identity
    mailbox: asyncio.Queue
    rooms: set[str] = field(default_factory=set)
    memberships: set[tuple[str, str]] = field(default_factory=set)
    worker: Optional[asyncio.Task] = None
    current: Optional[Command] = None
    closing: bool = False

    @property
    def is_admin(self) -> bool:
        return self.identity.role == ADMIN_ROLE


CommandHandler = Callable[["EventBus", Connection, Any], Awaitable[None]]


# ---------------------------------------------------------------------------
# Event bus
# ---------------------------------------------------------------------------

class EventBus:
    """Connection lifecycle, room membership and fan-out for event rooms."""

    def __init__(
        self,
        transport: SocketTransport,
        handlers: Mapping[str, CommandHandler],
        *,
        mailbox_size: int = 100,
        enforce_admin_commands: bool = False,
        namespace: str = "/",
    ) -> None:
        self._transport = transport
        self._handlers: dict[str, CommandHandler] = dict(handlers)
        self.mailbox_size = mailbox_size
        self.enforce_admin_commands = enforce_admin_commands
        self.namespace = namespace

        self._presence: PresenceRegistry | None = None
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[str, set[str]] = {}
        self._holders: dict[tuple[str, str], set[str]] = {}

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        if self._presence is not None:
            return
        self._presence = PresenceRegistry()
        logger.info(
            "Event bus started (mailbox_size=%d, enforce_admin_commands=%s)",
            self.mailbox_size, self.enforce_admin_commands,
        )

    async def close(self) -> None:
        """Stop every mailbox worker and drop all in-memory state."""
        workers = [c.worker for c in self._connections.values() if c.worker is not None]
        for worker in workers:
            worker.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

        self._connections.clear()
        self._rooms.clear()
        self._holders.clear()
        if self._presence is not None:
            self._presence.clear()
        self._presence = None
        logger.info("Event bus closed (%d workers stopped)", len(workers))

    @property
    def running(self) -> bool:
        return self._presence is not None

    @property
    def presence(self) -> PresenceRegistry:
        if self._presence is None:
            raise RuntimeError("EventBus is not running; call start() first")
        return self._presence

    # -- connections -------------------------------------------------------

    def connect(self, sid: str, identity: Identity | None = None) -> Connection:
        """Register a new connection and start its mailbox worker."""
        if not self.running:
            raise RuntimeError("EventBus is not running; call start() first")
        existing = self._connections.get(sid)
        if existing is not None:
            return existing

        conn = Connection(
            sid=sid,
            identity=identity or Identity(),
            mailbox=asyncio.Queue(maxsize=self.mailbox_size),
        )
        conn.worker = asyncio.create_task(self._drain(conn), name=f"mailbox-{sid}")
        self._connections[sid] = conn
        logger.debug("Connection registered sid=%s user_id=%s", sid, conn.identity.user_id)
        return conn

    async def disconnect(self, sid: str) -> None:
        """Queue the implicit leave behind the connection's pending commands."""
        conn = self._connections.get(sid)
        if conn is None or conn.closing:
            return
        conn.closing = True
        await conn.mailbox.put(Command(DISCONNECT_COMMAND))

    def get_connection(self, sid: str) -> Connection | None:
        return self._connections.get(sid)

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # -- command intake ----------------------------------------------------

    def submit(
        self,
        sid: str,
        name: str,
        data: Any = None,
        *,
        expect_reply: bool = False,
    ) -> asyncio.Future | None:
        """Enqueue a command without blocking.

        Returns a future resolved with the command's direct reply when
        ``expect_reply`` is set.  Commands for unknown or closing
        connections, or for a full mailbox, are dropped and ``None`` is
        returned.
        """
        conn = self._connections.get(sid)
        if conn is None or conn.closing:
            logger.warning("Dropping %s from unknown or closing sid=%s", name, sid)
            return None

        reply = asyncio.get_running_loop().create_future() if expect_reply else None
        try:
            conn.mailbox.put_nowait(Command(name, data, reply))
        except asyncio.QueueFull:
            logger.warning(
                "Mailbox full for sid=%s (size=%d), dropping %s",
                sid, self.mailbox_size, name,
            )
            return None
        return reply

    async def flush(self) -> None:
        """Wait until every command queued so far has executed."""
        for conn in list(self._connections.values()):
            await conn.mailbox.join()

    async def _drain(self, conn: Connection) -> None:
        try:
            while True:
                command = await conn.mailbox.get()
                try:
                    await self._dispatch(conn, command)
                finally:
                    conn.mailbox.task_done()
                if command.name == DISCONNECT_COMMAND:
                    break
        finally:
            self._forget(conn)

    async def _dispatch(self, conn: Connection, command: Command) -> None:
        handler = self._handlers.get(command.name)
        if handler is None:
            logger.warning("No handler for command=%s sid=%s", command.name, conn.sid)
            self._settle(command)
            return

        conn.current = command
        try:
            await handler(self, conn, command.data)
        except Exception:
            logger.exception("Command %s failed for sid=%s", command.name, conn.sid)
        finally:
            conn.current = None
            self._settle(command)

    @staticmethod
    def _settle(command: Command) -> None:
        # A reply-style command that produced no reply acknowledges with None.
        if command.reply is not None and not command.reply.done():
            command.reply.set_result(None)

    def _forget(self, conn: Connection) -> None:
        while not conn.mailbox.empty():
            self._settle(conn.mailbox.get_nowait())
            conn.mailbox.task_done()

        for event_id in list(conn.rooms):
            self._drop_member(event_id, conn.sid)
        for key in list(conn.memberships):
            self._release(conn, key)
        conn.rooms.clear()
        self._connections.pop(conn.sid, None)
        logger.debug("Connection forgotten sid=%s", conn.sid)

    # -- authorization -----------------------------------------------------

    def authorize_admin(self, conn: Connection, command: str) -> bool:
        """Capability check for admin-only commands.

        Always passes unless ``enforce_admin_commands`` is enabled, in
        which case the connection's identity must carry the admin role.
        """
        if not self.enforce_admin_commands or conn.is_admin:
            return True
        logger.warning(
            "Rejected admin command %s from sid=%s user_id=%s role=%s",
            command, conn.sid, conn.identity.user_id, conn.identity.role,
        )
        return False

    # -- room membership ---------------------------------------------------

    async def join_room(self, conn: Connection, event_id: str) -> None:
        """Add the connection to the event's room."""
        conn.rooms.add(event_id)
        self._rooms.setdefault(event_id, set()).add(conn.sid)
        try:
            await self._transport.enter_room(conn.sid, room_for_event(event_id), namespace=self.namespace)
        except Exception:
            logger.exception("enter_room failed sid=%s event=%s", conn.sid, event_id)

    async def leave_room(self, conn: Connection, event_id: str) -> None:
        """Remove the connection from the event's room."""
        conn.rooms.discard(event_id)
        self._drop_member(event_id, conn.sid)
        try:
            await self._transport.leave_room(conn.sid, room_for_event(event_id), namespace=self.namespace)
        except Exception:
            logger.exception("leave_room failed sid=%s event=%s", conn.sid, event_id)

    def _drop_member(self, event_id: str, sid: str) -> None:
        members = self._rooms.get(event_id)
        if members is None:
            return
        members.discard(sid)
        if not members:
            del self._rooms[event_id]

    def room_size(self, event_id: str) -> int:
        return len(self._rooms.get(event_id, ()))

    # -- connection -> user associations -------------------------------------

    def associate(self, conn: Connection, event_id: str, user_id: str) -> None:
        """Record that ``conn`` joined ``event_id`` as ``user_id``."""
        key = (event_id, user_id)
        conn.memberships.add(key)
        self._holders.setdefault(key, set()).add(conn.sid)

    def dissociate(self, conn: Connection, event_id: str, user_id: str) -> int:
        """Drop the association.  Returns how many other connections still hold it."""
        return self._release(conn, (event_id, user_id))

    def _release(self, conn: Connection, key: tuple[str, str]) -> int:
        conn.memberships.discard(key)
        holders = self._holders.get(key)
        if holders is None:
            return 0
        holders.discard(conn.sid)
        if not holders:
            del self._holders[key]
            return 0
        return len(holders)

    # -- delivery ----------------------------------------------------------

    async def broadcast(self, event_id: str, message_type: str, payload: dict[str, Any]) -> int:
        """Send ``payload`` to every connection in the event room.

        Includes the sender when it is a member.  Returns the number of
        recipients; an empty room is a no-op.
        """
        members = self._rooms.get(event_id)
        if not members:
            logger.debug("Broadcast %s skipped, room event=%s is empty", message_type, event_id)
            return 0
        await self._emit(message_type, payload, room=room_for_event(event_id))
        logger.debug("Broadcast %s to event=%s (%d members)", message_type, event_id, len(members))
        return len(members)

    async def direct_reply(
        self,
        conn: Connection,
        payload: dict[str, Any],
        *,
        event: str = "reply",
    ) -> None:
        """Reply to a single connection, bypassing room fan-out.

        Resolves the acknowledgement of the command currently executing
        for ``conn`` when it expects one, otherwise emits ``event`` to
        that connection only.
        """
        command = conn.current
        if command is not None and command.reply is not None and not command.reply.done():
            command.reply.set_result(payload)
            return
        await self._emit(event, payload, to=conn.sid)

    async def _emit(self, event: str, payload: dict[str, Any], **target: Any) -> None:
        try:
            await self._transport.emit(event, payload, namespace=self.namespace, **target)
        except Exception:
            logger.exception("Emit of %s failed (%s)", event, target)
