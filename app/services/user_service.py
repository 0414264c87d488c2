"""
User service: the accounts that own articles.

Users are fetched without caching: the list is small and changes rarely.
"""
from sqlalchemy import select
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import NotFound
from app.models import User
from app.schemas import UserCreate


def _user_to_dict(user: User) -> dict:
    """Serialise a User ORM instance to a plain dict (list view)."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "display_name": user.display_name,
        "bio": user.bio,
        "is_admin": user.is_admin,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


async def get_users(db: AsyncSession) -> list[dict]:
    """Return all users, newest first."""
    result = await db.execute(select(User).order_by(User.created_at.desc(), User.id.desc()))
    return [_user_to_dict(u) for u in result.scalars().all()]


async def get_user(db: AsyncSession, user_id: int) -> dict:
    """
    Return *user_id* with a short summary of the articles they own.

    ``selectinload`` fetches the articles in one extra query.
    """
    q = (
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.articles))
    )
    result = await db.execute(q)
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFound("User", user_id)

    data = _user_to_dict(user)
    data["articles"] = [
        {"id": a.id, "title": a.title, "pin": a.pin, "solution_id": a.solution_id}
        for a in user.articles
    ]
    return data


async def create_user(db: AsyncSession, data: UserCreate) -> dict:
    """
    Create a user and return its serialised dict.

    Username and email uniqueness is enforced by the database; the router
    turns the resulting IntegrityError into a 409.
    """
    user = User(
        username=data.username,
        email=data.email,
        display_name=data.display_name,
        bio=data.bio,
        is_admin=data.is_admin,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return _user_to_dict(user)
