"""
New-ticket notification client.

Calls the configured notification function after a ticket is created. The
call is fire and forget from the inbox's point of view: callers run it in
the background and only log failures.
"""

import logging
import httpx
from typing import Optional, Dict, Any
from helpdesk.core.config import settings

logger = logging.getLogger(__name__)


async def notify_new_ticket(ticket_id: str, origin: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Notify the tenant that a ticket was created.

    Args:
        ticket_id: Id of the new ticket.
        origin: Frontend origin used to build links (defaults to FRONTEND_URL).

    Returns:
        The response body, or None when no notification URL is configured.

    Raises:
        httpx.HTTPError: If the call fails or returns an error status
    """
    url = settings.NOTIFY_NEW_TICKET_URL
    if not url:
        logger.debug(f"NOTIFY_NEW_TICKET_URL not set, skipping notification for ticket {ticket_id}")
        return None

    headers = {"Content-Type": "application/json"}
    if settings.NOTIFY_API_KEY:
        headers["Authorization"] = f"Bearer {settings.NOTIFY_API_KEY}"

    body = {"ticket_id": ticket_id, "origin": origin or settings.FRONTEND_URL}

    async with httpx.AsyncClient(timeout=settings.NOTIFY_TIMEOUT_SECONDS) as client:
        response = await client.post(url, headers=headers, json=body)
        response.raise_for_status()
        logger.info(f"New ticket notification sent for {ticket_id}")
        return response.json() if response.content else {}
