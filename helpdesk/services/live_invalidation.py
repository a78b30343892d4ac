"""
Live Invalidation Listener

Keeps a ticket store fresh from the change-event stream:

- any change on `tickets` re-runs the store's current fetch (filters are read
  from the store when the event arrives, never captured at subscribe time);
- a change on `messages` refetches the thread only when it belongs to the
  ticket that is currently open.

If the subscription cannot be established the listener gives up quietly and
the inbox stays correct up to the next manual refetch.
"""

import asyncio
import logging
from typing import Optional

from helpdesk.services.remote import ChangeEvent, RemoteCollection, RemoteError
from helpdesk.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)

WATCHED_TABLES = ("tickets", "messages")


class LiveInvalidationListener:
    def __init__(self, store: TicketStore, collection: Optional[RemoteCollection] = None):
        self.store = store
        self.collection = collection or store.collection
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        if not self.running:
            self._task = asyncio.ensure_future(self._run())
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self):
        logger.info(f"Live invalidation started for tenant {self.store.tenant_id}, user {self.store.user_id}")
        try:
            async for event in self.collection.subscribe_changes(WATCHED_TABLES):
                await self.handle_event(event)
        except asyncio.CancelledError:
            raise
        except RemoteError as e:
            logger.debug(f"Realtime subscription unavailable; list will update on refresh. ({e.message})")
        except Exception as e:
            logger.warning(f"Realtime subscription dropped; list will update on refresh. ({e})")

    async def handle_event(self, event: ChangeEvent):
        try:
            if event.table == "tickets":
                await self.store.fetch_tickets()
            elif event.table == "messages":
                selected = self.store.selected_ticket_id()
                ticket_id = event.get("ticket_id")
                if selected and ticket_id is not None and str(ticket_id) == selected:
                    await self.store.fetch_messages(selected)
        except Exception:
            logger.exception(f"Error handling {event.event} on {event.table}")
