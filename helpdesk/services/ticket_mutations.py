"""
Ticket Mutation Façade

The single entry point for ticket writes. Besides the write itself it
carries the derived rules:

- an agent reply (not customer, not internal note) assigns the ticket to the
  replying user and moves it from open (or legacy new) to pending;
- every successful write forces a refetch of the current view.

Permissions are the caller's concern: deleting is meant for admins on
archived tickets, which the HTTP layer enforces.

When the adapter offers the `apply_agent_reply` procedure the two reply side
effects run in one transaction. Otherwise they are sequential writes and a
failure between them leaves a partially applied state (message stored,
assignment possibly applied, status unchanged); it is logged and reported on
the store's `error`, never rolled back.
"""

import logging
from typing import TYPE_CHECKING, Any, Optional

from helpdesk.crud.ticket import AUTO_PENDING_FROM
from helpdesk.models.ticket import TicketStatus
from helpdesk.schemas.message import MessageCreate
from helpdesk.schemas.ticket import TicketCreate, TicketUpdate
from helpdesk.services.remote import Predicate, RemoteError, Row

if TYPE_CHECKING:
    from helpdesk.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)

AGENT_REPLY_PROCEDURE = "apply_agent_reply"


class TicketMutations:
    def __init__(self, store: "TicketStore"):
        self.store = store

    @property
    def collection(self):
        return self.store.collection

    def _ticket_filter(self, ticket_id: Any):
        return [Predicate.eq("id", str(ticket_id)), Predicate.eq("tenant_id", self.store.tenant_id)]

    async def create_ticket(self, data: TicketCreate) -> Optional[Row]:
        """Insert a ticket for the store's tenant, refetch, and notify in the background"""
        store = self.store
        if not store.tenant_id:
            return None

        payload = data.model_dump(mode="json", exclude_none=True)
        payload["tenant_id"] = store.tenant_id
        try:
            ticket = await self.collection.insert("tickets", payload)
        except RemoteError as e:
            logger.error(f"Failed to create ticket in tenant {store.tenant_id}: {e.message}")
            store.report_error(e.message)
            return None

        logger.info(f"Ticket {ticket.get('ticket_number')} ({ticket['id']}) created in tenant {store.tenant_id}")
        await store.fetch_tickets()
        if store.notifier is not None:
            store.run_in_background(self._notify_new_ticket(str(ticket["id"])))
        return ticket

    async def _notify_new_ticket(self, ticket_id: str):
        try:
            await self.store.notifier(ticket_id)
        except Exception as e:
            logger.debug(f"New ticket notification for {ticket_id} failed: {e}")

    async def update_ticket(self, ticket_id: Any, patch: TicketUpdate) -> bool:
        """Apply a partial update; any status may be set from any other"""
        store = self.store
        changes = patch.model_dump(mode="json", exclude_unset=True)
        if not changes:
            return True

        try:
            await self.collection.update("tickets", self._ticket_filter(ticket_id), changes)
        except RemoteError as e:
            logger.error(f"Failed to update ticket {ticket_id}: {e.message}")
            store.report_error(e.message)
            return False

        await store.fetch_tickets()
        if store.selected_ticket_id() == str(ticket_id):
            store.merge_selected(changes)
        return True

    async def delete_ticket(self, ticket_id: Any) -> bool:
        """Hard-delete a ticket (and, through the store, its messages)"""
        store = self.store
        try:
            await self.collection.delete("tickets", self._ticket_filter(ticket_id))
        except RemoteError as e:
            logger.error(f"Failed to delete ticket {ticket_id}: {e.message}")
            store.report_error(e.message)
            return False

        logger.info(f"Ticket {ticket_id} deleted from tenant {store.tenant_id}")
        if store.selected_ticket_id() == str(ticket_id):
            await store.select_ticket(None)
        await store.fetch_tickets()
        await store.refresh_counts(store.user_id)
        return True

    async def add_message(self, data: MessageCreate) -> Optional[str]:
        """Insert a message, refresh the thread, and apply agent-reply rules.

        Returns the new message id, or None if the insert failed.
        """
        store = self.store
        if not store.tenant_id:
            store.report_error("No tenant selected")
            return None

        payload = data.model_dump(mode="json", exclude_none=True)
        if not payload.get("mentioned_user_ids"):
            payload.pop("mentioned_user_ids", None)
        payload["tenant_id"] = store.tenant_id
        try:
            message = await self.collection.insert("messages", payload)
        except RemoteError as e:
            logger.error(f"Failed to add message to ticket {data.ticket_id}: {e.message}")
            store.report_error(e.message)
            return None

        ticket_id = str(data.ticket_id)
        if store.selected_ticket_id() == ticket_id:
            await store.fetch_messages(ticket_id)
        if data.is_agent_reply:
            await self._apply_agent_reply(ticket_id)
        return str(message["id"])

    async def _apply_agent_reply(self, ticket_id: str):
        store = self.store
        replier = store.user_id

        if AGENT_REPLY_PROCEDURE in self.collection.procedures:
            try:
                ticket = await self.collection.rpc(
                    AGENT_REPLY_PROCEDURE,
                    {"ticket_id": ticket_id, "user_id": replier, "tenant_id": store.tenant_id},
                )
            except RemoteError as e:
                logger.error(f"Agent reply side effects failed for ticket {ticket_id}: {e.message}")
                store.report_error(e.message)
                return
            await store.fetch_tickets()
            if ticket and store.selected_ticket_id() == ticket_id:
                store.merge_selected(ticket)
            return

        assigned = True
        if replier:
            assigned = await self.update_ticket(ticket_id, TicketUpdate(assigned_to=replier))

        try:
            ticket = await self.collection.select_one("tickets", self._ticket_filter(ticket_id))
        except RemoteError as e:
            logger.error(f"Could not read status of ticket {ticket_id} after reply: {e.message}")
            store.report_error(e.message)
            return

        status = ticket.get("status") if ticket else None
        if status in AUTO_PENDING_FROM:
            moved = await self.update_ticket(ticket_id, TicketUpdate(status=TicketStatus.PENDING.value))
            if assigned and replier and not moved:
                logger.error(f"Ticket {ticket_id} left partially updated: assigned to {replier}, status still {status}")
