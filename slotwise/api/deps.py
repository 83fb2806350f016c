"""Shared API dependencies — single import point for all routers.

Re-exports the database session and adds the request context, clock and
event dispatcher so that router modules can import everything they need
from one place::

    from slotwise.api.deps import RequestContext, get_clock, get_context, get_db
"""

import uuid
from dataclasses import dataclass

from fastapi import Header

from slotwise.clock import Clock, utc_now
from slotwise.database import get_db
from slotwise.events import EventDispatcher, default_dispatcher


@dataclass(frozen=True)
class RequestContext:
    """Tenant and acting user for one request, as supplied by the gateway."""

    tenant_id: uuid.UUID
    actor_id: uuid.UUID | None = None


async def get_context(
    x_tenant_id: uuid.UUID = Header(..., description="Tenant the request acts within"),
    x_actor_id: uuid.UUID | None = Header(None, description="User performing the request"),
) -> RequestContext:
    """Read the tenant and actor headers. Missing or malformed ids are rejected with 422."""
    return RequestContext(tenant_id=x_tenant_id, actor_id=x_actor_id)


def get_clock() -> Clock:
    """Time source for advance-notice rules and audit timestamps."""
    return utc_now


def get_event_dispatcher() -> EventDispatcher:
    return default_dispatcher


__all__ = [
    "RequestContext",
    "get_clock",
    "get_context",
    "get_db",
    "get_event_dispatcher",
]
