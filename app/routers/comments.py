from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_user, require_user
from app.config import settings
from app.database import get_db
from app.exceptions import Forbidden, NotFound
from app.models import Comment, User
from app.schemas import CommentCreate, CommentResponse
from app.services import comment_service

router = APIRouter(prefix=settings.API_PREFIX, tags=["comments"])


@router.post("/articles/{article_id}/comments", status_code=201, response_model=CommentResponse)
async def add_comment(
    article_id: int,
    data: CommentCreate,
    user: User | None = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await comment_service.add_comment(
        db, article_id, data, user_id=user.id if user else None
    )


@router.delete("/comments/{comment_id}", status_code=204)
async def delete_comment(
    comment_id: int,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    comment = await db.get(Comment, comment_id)
    if comment is None:
        raise NotFound("Comment", comment_id)
    if not (user.is_admin or comment.user_id == user.id):
        raise Forbidden("Not allowed to delete this comment")
    await comment_service.delete_comment(db, comment_id)
