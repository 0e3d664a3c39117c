from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from expenseflow.db.session import get_session
from expenseflow.models.user import User


async def get_current_user(
    db: Annotated[AsyncSession, Depends(get_session)],
    x_user_id: Annotated[str | None, Header()] = None,
):
    """Resolve the acting user from the X-User-Id header set by the gateway."""
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not resolve the acting user",
    )
    if not x_user_id:
        raise credentials_exc
    try:
        user_id = UUID(x_user_id)
    except ValueError:
        raise credentials_exc

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise credentials_exc
    return user


def require_role(*roles: str):
    """Dependency factory — raises 403 if user role not in allowed list."""
    async def check(user=Depends(get_current_user)):
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{user.role}' is not permitted for this action.",
            )
        return user
    return check
