from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache
from app.config import settings
from app.database import get_db
from app.models import Article, Comment, Tag, User
from app.schemas import MetricsResponse

router = APIRouter(prefix=f"{settings.API_PREFIX}/metrics", tags=["metrics"])


async def _count(db: AsyncSession, model, *where) -> int:
    q = select(func.count()).select_from(model)
    if where:
        q = q.where(*where)
    return (await db.execute(q)).scalar_one()


@router.get("", response_model=MetricsResponse)
async def get_metrics(db: AsyncSession = Depends(get_db)):
    total_articles = await _count(db, Article)
    total_comments = await _count(db, Comment, Comment.deleted_at.is_(None))
    total_users = await _count(db, User)
    total_tags = await _count(db, Tag)

    avg_comments = total_comments / total_articles if total_articles > 0 else 0

    return MetricsResponse(
        total_articles=total_articles,
        total_comments=total_comments,
        total_users=total_users,
        total_tags=total_tags,
        avg_comments_per_article=round(avg_comments, 2),
        cache_info=cache.stats,
    )
