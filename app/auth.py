"""
Caller identity and the "author" capability check.

Authentication itself happens upstream; the gateway forwards the
authenticated user's id in the ``X-User-Id`` header.
"""
from fastapi import Depends, Header
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.exceptions import Forbidden, Unauthenticated
from app.models import Article, User


async def get_current_user(
    x_user_id: int | None = Header(None, alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> User | None:
    """Resolve the caller, or None for anonymous requests."""
    if x_user_id is None:
        return None
    result = await db.execute(select(User).where(User.id == x_user_id))
    return result.scalar_one_or_none()


async def require_user(user: User | None = Depends(get_current_user)) -> User:
    if user is None:
        raise Unauthenticated()
    return user


def can_author(user: User | None, article: Article) -> bool:
    """True when *user* owns *article* or is an admin."""
    if user is None:
        return False
    return user.is_admin or article.user_id == user.id


def authorize_author(user: User | None, article: Article) -> None:
    """Raise Forbidden unless *user* holds the author capability on *article*."""
    if not can_author(user, article):
        raise Forbidden()
