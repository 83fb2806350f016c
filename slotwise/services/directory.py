"""Does a resource or user exist, and is it active?"""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from slotwise.exceptions import ResourceNotFound, UserNotFound
from slotwise.models.property import Property
from slotwise.models.user import User


async def resolve_resource(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    resource_id: uuid.UUID,
    *,
    lock: bool = False,
) -> Property:
    """Return the active resource, optionally row-locked for the rest of the transaction.

    Locking the resource serialises booking writes per resource, which is
    what keeps two concurrent requests from both passing the overlap check.

    Raises:
        ResourceNotFound: If the resource is unknown, belongs to another
            tenant, or is inactive.
    """
    query = select(Property).where(Property.id == resource_id, Property.tenant_id == tenant_id)
    if lock:
        query = query.with_for_update()
    result = await db.execute(query)
    resource = result.scalar_one_or_none()

    if resource is None or not resource.is_active:
        raise ResourceNotFound(f"Resource {resource_id} not found")
    return resource


async def resolve_user(db: AsyncSession, tenant_id: uuid.UUID, user_id: uuid.UUID) -> User:
    """Return the active user.

    Raises:
        UserNotFound: If the user is unknown, belongs to another tenant, or is inactive.
    """
    result = await db.execute(select(User).where(User.id == user_id, User.tenant_id == tenant_id))
    user = result.scalar_one_or_none()

    if user is None or not user.is_active:
        raise UserNotFound(f"User {user_id} not found")
    return user
