import asyncio
import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from helpdesk.api.deps import get_current_admin, get_current_user, get_inbox_registry, get_inbox_store, resolve_team_member
from helpdesk.db.session import get_db
from helpdesk.models.team import TeamMember
from helpdesk.models.ticket import TicketStatus
from helpdesk.schemas.inbox import AssignmentView, CreatedResponse, InboxSnapshot, SelectionRequest, TicketFilters, ViewCounts
from helpdesk.schemas.message import MessageCreate, MessageReply
from helpdesk.schemas.ticket import APIResponse, TicketCreate, TicketUpdate
from helpdesk.services.inbox_sessions import InboxSessionRegistry
from helpdesk.services.remote import Predicate, RemoteError, Row
from helpdesk.services.ticket_store import TicketStore

logger = logging.getLogger(__name__)

router = APIRouter()

NOT_FOUND = {404: {"model": APIResponse, "description": "Ticket not found"}}


async def _get_ticket_or_404(store: TicketStore, ticket_id: UUID) -> Row:
    ticket = store.find_ticket(ticket_id)
    if ticket is not None:
        return ticket
    try:
        ticket = await store.collection.select_one(
            "tickets",
            [Predicate.eq("id", str(ticket_id)), Predicate.eq("tenant_id", store.tenant_id)],
        )
    except RemoteError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)
    if ticket is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    return ticket


@router.get("/tickets", response_model=InboxSnapshot, tags=["Inbox"])
async def list_tickets(
    request: Request,
    view: Optional[AssignmentView] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = None,
    store: TicketStore = Depends(get_inbox_store),
):
    """
    Fetch the first page of a view. Query parameters that are left out keep
    their last-applied value; pass an empty `status` or `search` to clear it.
    """
    supplied = request.query_params
    filters = {}
    if "view" in supplied:
        filters["assignment_view"] = view
    if "status" in supplied:
        filters["status"] = status_filter
    if "search" in supplied:
        filters["search"] = search
    await store.fetch_tickets(TicketFilters(**filters))
    return store.snapshot()


@router.post("/tickets/load-more", response_model=InboxSnapshot, tags=["Inbox"])
async def load_more_tickets(store: TicketStore = Depends(get_inbox_store)):
    """Append the next page of the current view"""
    await store.load_more_tickets()
    return store.snapshot()


@router.get("/counts", response_model=ViewCounts, tags=["Inbox"])
async def get_view_counts(store: TicketStore = Depends(get_inbox_store)):
    await store.refresh_counts(store.user_id)
    return store.view_counts


@router.put("/selection", response_model=InboxSnapshot, tags=["Inbox"])
async def set_selection(body: SelectionRequest, store: TicketStore = Depends(get_inbox_store)):
    """Open a ticket (loading its thread), or close the open one with a null id"""
    await store.select_ticket(body.ticket_id)
    return store.snapshot()


@router.get("/tickets/{ticket_id}/messages", response_model=InboxSnapshot, responses=NOT_FOUND, tags=["Inbox"])
async def get_ticket_messages(ticket_id: UUID, store: TicketStore = Depends(get_inbox_store)):
    await _get_ticket_or_404(store, ticket_id)
    if store.selected_ticket_id() == str(ticket_id):
        await store.fetch_messages(ticket_id)
    else:
        await store.select_ticket(ticket_id)
    return store.snapshot()


@router.post("/tickets", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED, tags=["Inbox"])
async def create_ticket(body: TicketCreate, store: TicketStore = Depends(get_inbox_store)):
    ticket = await store.create_ticket(body)
    return CreatedResponse(id=ticket["id"] if ticket else None, snapshot=store.snapshot())


@router.patch("/tickets/{ticket_id}", response_model=InboxSnapshot, responses=NOT_FOUND, tags=["Inbox"])
async def update_ticket(ticket_id: UUID, body: TicketUpdate, store: TicketStore = Depends(get_inbox_store)):
    await _get_ticket_or_404(store, ticket_id)
    await store.update_ticket(ticket_id, body)
    return store.snapshot()


@router.delete(
    "/tickets/{ticket_id}",
    response_model=InboxSnapshot,
    tags=["Inbox"],
    responses={
        403: {"model": APIResponse, "description": "Not authorized for admin"},
        409: {"model": APIResponse, "description": "Ticket is not archived"},
        **NOT_FOUND,
    },
)
async def delete_ticket(
    ticket_id: UUID,
    current_user: TeamMember = Depends(get_current_admin),
    store: TicketStore = Depends(get_inbox_store),
):
    """Permanently delete an archived ticket and its messages (Admin only)"""
    ticket = await _get_ticket_or_404(store, ticket_id)
    if ticket.get("status") != TicketStatus.ARCHIVED.value:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Only archived tickets can be deleted",
        )
    logger.info(f"Admin {current_user.user_id} deleting ticket {ticket_id}")
    await store.delete_ticket(ticket_id)
    return store.snapshot()


@router.post(
    "/tickets/{ticket_id}/messages",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses=NOT_FOUND,
    tags=["Inbox"],
)
async def add_message(
    ticket_id: UUID,
    body: MessageReply,
    current_user: TeamMember = Depends(get_current_user),
    store: TicketStore = Depends(get_inbox_store),
):
    """Post a message on a ticket thread; agent replies assign the ticket and move it to pending"""
    await _get_ticket_or_404(store, ticket_id)
    message = MessageCreate(ticket_id=ticket_id, created_by=current_user.user_id, **body.model_dump())
    message_id = await store.add_message(message)
    return CreatedResponse(id=message_id, snapshot=store.snapshot())


def get_ws_member(
    token: Optional[str] = Query(None),
    tenant_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
) -> Optional[TeamMember]:
    """WebSocket auth: browsers cannot set headers, so token and tenant come from the query string"""
    try:
        return resolve_team_member(db, token, tenant_id)
    except HTTPException as e:
        logger.debug(f"Rejected inbox websocket: {e.detail}")
        return None


@router.websocket("/ws")
async def inbox_websocket(
    websocket: WebSocket,
    member: Optional[TeamMember] = Depends(get_ws_member),
    registry: InboxSessionRegistry = Depends(get_inbox_registry),
):
    """
    Push an inbox snapshot on connect and after every store change.
    Send the text "refresh" to re-run the current fetch.
    """
    if member is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    store = await registry.connect(str(member.tenant_id), str(member.user_id))
    changes: asyncio.Queue = asyncio.Queue()
    unsubscribe = store.subscribe(changes.put_nowait)

    async def push_snapshots():
        while True:
            await changes.get()
            # Coalesce bursts into one snapshot
            while not changes.empty():
                changes.get_nowait()
            await websocket.send_json(store.snapshot().model_dump(mode="json"))

    await websocket.send_json(store.snapshot().model_dump(mode="json"))
    sender = asyncio.create_task(push_snapshots())
    try:
        while True:
            text = await websocket.receive_text()
            if text.strip() == "refresh":
                await store.fetch_tickets()
    except WebSocketDisconnect:
        logger.debug(f"Inbox websocket closed for user {member.user_id}")
    finally:
        unsubscribe()
        registry.disconnect(str(member.tenant_id), str(member.user_id))
        sender.cancel()
        try:
            await sender
        except (asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
            pass
