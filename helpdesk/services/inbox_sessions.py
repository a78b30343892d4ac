"""
Inbox Session Registry

Keeps one live inbox (ticket store + invalidation listener) per
(tenant, user). Sessions are created on first use with an initial fetch of
the default view. A session with no open WebSocket that has not been used
for `INBOX_SESSION_IDLE_SECONDS` is closed, which stops its listener; the
next request for that user opens a fresh one. All sessions close on shutdown.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from helpdesk.core.config import settings
from helpdesk.core.notifications import notify_new_ticket
from helpdesk.services.live_invalidation import LiveInvalidationListener
from helpdesk.services.remote import RemoteCollection
from helpdesk.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)

SessionKey = Tuple[str, str]


@dataclass
class InboxSession:
    store: TicketStore
    listener: LiveInvalidationListener
    last_used: float = 0.0
    # Open WebSocket connections; a connected session is never idle
    connections: int = 0

    async def close(self):
        await self.listener.stop()
        await self.store.close()


class InboxSessionRegistry:
    def __init__(
        self,
        collection_factory: Callable[[], RemoteCollection],
        notifier=notify_new_ticket,
        live: bool = True,
        idle_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.collection_factory = collection_factory
        self.notifier = notifier
        self.live = live
        self.idle_seconds = settings.INBOX_SESSION_IDLE_SECONDS if idle_seconds is None else idle_seconds
        self.clock = clock
        self._sessions: Dict[SessionKey, InboxSession] = {}
        self._lock = asyncio.Lock()
        self._collection: Optional[RemoteCollection] = None

    @property
    def collection(self) -> RemoteCollection:
        if self._collection is None:
            self._collection = self.collection_factory()
        return self._collection

    def __len__(self):
        return len(self._sessions)

    def __contains__(self, key) -> bool:
        tenant_id, user_id = key
        return (str(tenant_id), str(user_id)) in self._sessions

    async def _get_session(self, tenant_id: str, user_id: str) -> InboxSession:
        key = (str(tenant_id), str(user_id))
        session = self._sessions.get(key)
        if session is None:
            async with self._lock:
                session = self._sessions.get(key)
                if session is None:
                    session = await self._open(*key)
                    self._sessions[key] = session
        session.last_used = self.clock()
        return session

    async def get_store(self, tenant_id: str, user_id: str) -> TicketStore:
        """Return the session store for (tenant, user), creating it if needed"""
        await self.evict_idle()
        session = await self._get_session(tenant_id, user_id)
        return session.store

    async def connect(self, tenant_id: str, user_id: str) -> TicketStore:
        """Like get_store, but holds the session open until `disconnect`"""
        await self.evict_idle()
        session = await self._get_session(tenant_id, user_id)
        session.connections += 1
        return session.store

    def disconnect(self, tenant_id: str, user_id: str):
        session = self._sessions.get((str(tenant_id), str(user_id)))
        if session is None:
            return
        session.connections = max(0, session.connections - 1)
        # Idle time counts from the last disconnect
        session.last_used = self.clock()

    async def _open(self, tenant_id: str, user_id: str) -> InboxSession:
        store = TicketStore(self.collection, tenant_id, user_id, notifier=self.notifier)
        listener = LiveInvalidationListener(store)
        await store.fetch_tickets()
        if self.live:
            listener.start()
        logger.info(f"Inbox session opened for user {user_id} in tenant {tenant_id}")
        return InboxSession(store=store, listener=listener, last_used=self.clock())

    async def evict_idle(self) -> int:
        """Close sessions with no connections that have been idle too long; returns how many"""
        now = self.clock()
        idle = [
            key for key, session in self._sessions.items()
            if session.connections == 0 and now - session.last_used > self.idle_seconds
        ]
        for tenant_id, user_id in idle:
            await self.close_session(tenant_id, user_id)
        return len(idle)

    async def sweep(self, interval: float):
        """Evict idle sessions every `interval` seconds until cancelled"""
        while True:
            await asyncio.sleep(interval)
            try:
                evicted = await self.evict_idle()
            except Exception:
                logger.exception("Inbox session sweep failed")
                continue
            if evicted:
                logger.info(f"Evicted {evicted} idle inbox session(s)")

    async def close_session(self, tenant_id: str, user_id: str):
        session = self._sessions.pop((str(tenant_id), str(user_id)), None)
        if session is not None:
            await session.close()
            logger.info(f"Inbox session closed for user {user_id} in tenant {tenant_id}")

    async def close_all(self):
        sessions = list(self._sessions.values())
        self._sessions.clear()
        for session in sessions:
            await session.close()
        if sessions:
            logger.info(f"Closed {len(sessions)} inbox session(s)")
