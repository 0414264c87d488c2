"""
Article service: business logic for the Article aggregate.

Design notes
------------
- Reads go through ``cache.remember``.  Keys encode every input that
  affects the result; the list key is derived from the full parameter set.
- Services never invalidate the cache themselves.  Writes publish a
  ``ModelChanged`` event and rely on the listeners (and the TTL) for
  freshness, so a read right after a write may still see the old value.
- Relationships are ``noload`` by default; every query states its eager
  loads (``joinedload`` for the author, ``selectinload`` for collections).
- Service functions flush but do not commit; the transaction boundary
  is owned by the ``get_db`` dependency in the router layer.
"""
import logging
import math

from sqlalchemy import asc, delete, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from app.cache import cache, cache_key
from app.config import settings
from app.events import ArticleConsumed, events, model_changed
from app.exceptions import NotFound, ValidationFailed
from app.models import Article, Attachment, Comment, article_tags
from app.schemas import ArticleCreate, ArticleUpdate, PaginatedResponse
from app.services import comment_service, tag_service
from app.services.comment_service import comment_to_dict
from app.storage import delete_attachment_file

logger = logging.getLogger(__name__)

# Columns that are safe to sort by; guards against arbitrary attribute access.
_SORTABLE_COLUMNS: frozenset[str] = frozenset({"created_at", "view_count", "title"})


def _resolve_sort_column(sort_by: str):
    """Column for *sort_by*, falling back to ``Article.created_at``."""
    if sort_by in _SORTABLE_COLUMNS:
        return getattr(Article, sort_by)
    return Article.created_at


def _iso(value) -> str | None:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _serialize_user(author) -> dict | None:
    if author is None:
        return None
    return {
        "id": author.id,
        "username": author.username,
        "display_name": author.display_name,
    }


def _article_to_dict(article: Article) -> dict:
    """Serialise an Article ORM instance to a plain dict (list view)."""
    return {
        "id": article.id,
        "title": article.title,
        "pin": article.pin,
        "notification": article.notification,
        "view_count": article.view_count,
        "solution_id": article.solution_id,
        "created_at": _iso(article.created_at),
        "updated_at": _iso(article.updated_at),
        "user_id": article.user_id,
        "author": _serialize_user(article.author),
        "tags": [{"id": t.id, "slug": t.slug, "name": t.name} for t in article.tags],
    }


def _article_detail_to_dict(article: Article) -> dict:
    """Serialise an Article ORM instance to a plain dict (detail view)."""
    data = _article_to_dict(article)
    data["content"] = article.content
    data["comments"] = [
        comment_to_dict(c) for c in article.comments if not c.is_deleted
    ]
    data["attachments"] = [
        {"id": a.id, "name": a.name, "article_id": a.article_id}
        for a in article.attachments
    ]
    data["solution"] = comment_to_dict(article.solution) if article.solution else None
    return data


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------

async def find_article(db: AsyncSession, article_id: int) -> Article:
    """Return the bare Article row or raise NotFound."""
    article = await db.get(Article, article_id)
    if article is None:
        raise NotFound("Article", article_id)
    return article


async def _load_article_detail(db: AsyncSession, article_id: int) -> Article | None:
    q = (
        select(Article)
        .where(Article.id == article_id)
        .options(
            joinedload(Article.author),
            selectinload(Article.tags),
            selectinload(Article.comments),
            selectinload(Article.attachments),
            selectinload(Article.solution),
        )
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    return result.unique().scalar_one_or_none()


async def _associate_attachments(
    db: AsyncSession, article: Article, attachment_ids: list[int]
) -> None:
    """Attach each unattached Attachment in *attachment_ids* to *article*."""
    wanted = set(attachment_ids)
    if not wanted:
        return
    result = await db.execute(select(Attachment).where(Attachment.id.in_(wanted)))
    attachments = result.scalars().all()
    found = {a.id for a in attachments}
    if wanted - found:
        raise ValidationFailed("attachments", f"Unknown attachment id {min(wanted - found)}.")
    for attachment in attachments:
        if attachment.article_id is not None and attachment.article_id != article.id:
            raise ValidationFailed(
                "attachments", f"Attachment {attachment.id} belongs to another article."
            )
        attachment.article_id = article.id


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_articles(
    db: AsyncSession,
    page: int = 1,
    page_size: int = settings.DEFAULT_PAGE_SIZE,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    filter: str | None = None,
    q: str | None = None,
    tag_slug: str | None = None,
) -> PaginatedResponse:
    """
    Return one page of articles, pinned ones first.

    With *tag_slug* only that tag's articles are listed; an unknown slug
    raises NotFound.  The page is memoised under a key built from every
    argument, so a hit does not touch the database.
    """
    key = cache_key(
        "articles:index",
        {
            "page": page,
            "page_size": page_size,
            "sort_by": sort_by,
            "sort_order": sort_order,
            "filter": filter,
            "q": q,
            "tag": tag_slug,
        },
    )

    async def load() -> dict:
        base = select(Article)
        if tag_slug is not None:
            tag = await tag_service.get_tag_by_slug(db, tag_slug)
            base = base.join(
                article_tags, article_tags.c.article_id == Article.id
            ).where(article_tags.c.tag_id == tag.id)

        if filter == "nocomment":
            base = base.where(~Article.comments.any(Comment.deleted_at.is_(None)))
        elif filter == "notsolved":
            base = base.where(Article.solution_id.is_(None))

        if q:
            pattern = f"%{q}%"
            base = base.where(or_(Article.title.ilike(pattern), Article.content.ilike(pattern)))

        total: int = (
            await db.execute(select(func.count()).select_from(base.subquery()))
        ).scalar_one()

        sort_col = _resolve_sort_column(sort_by)
        order_expr = desc(sort_col) if sort_order == "desc" else asc(sort_col)
        articles_q = (
            base.options(joinedload(Article.author), selectinload(Article.tags))
            .order_by(Article.pin.desc(), order_expr, Article.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        result = await db.execute(articles_q)
        articles = result.unique().scalars().all()

        return PaginatedResponse(
            items=[_article_to_dict(a) for a in articles],
            total=total,
            page=page,
            page_size=page_size,
            pages=math.ceil(total / page_size) if total > 0 else 0,
        ).model_dump()

    data = await cache.remember(key, settings.CACHE_TTL_ARTICLES, load)
    return PaginatedResponse(**data)


async def create_article(db: AsyncSession, author_id: int, data: ArticleCreate) -> dict:
    """
    Create an article owned by *author_id*, sync its tags and claim the
    given attachments.  Returns the detail dict.
    """
    article = Article(
        title=data.title,
        content=data.content,
        pin=data.pin,
        notification=data.notification,
        user_id=author_id,
    )
    article.tags = await tag_service.get_tags_by_ids(db, data.tags)
    db.add(article)
    await db.flush()

    await _associate_attachments(db, article, data.attachments)
    await db.flush()

    await events.dispatch(model_changed("articles", "tags"))

    created = await _load_article_detail(db, article.id)
    return _article_detail_to_dict(created)


async def get_article(
    db: AsyncSession, article_id: int, consumed: bool = False
) -> tuple[dict, list[dict]]:
    """
    Return ``(article, comments)`` for *article_id*.

    The article (with live comments, tags, attachments and solution) and
    the comment thread are memoised independently.  *consumed* marks a
    read by a non-API caller and publishes ``ArticleConsumed``.
    """

    async def load_article() -> dict:
        article = await _load_article_detail(db, article_id)
        if article is None:
            raise NotFound("Article", article_id)
        return _article_detail_to_dict(article)

    async def load_comments() -> list[dict]:
        return await comment_service.get_comment_thread(db, article_id)

    ttl = settings.CACHE_TTL_ARTICLES
    article = await cache.remember(f"articles:show:{article_id}", ttl, load_article)
    comments = await cache.remember(f"articles:show:{article_id}:comments", ttl, load_comments)

    if consumed:
        await events.dispatch(ArticleConsumed(article_id=article_id, db=db))

    return article, comments


async def update_article(db: AsyncSession, article_id: int, data: ArticleUpdate) -> dict:
    """
    Apply the fields present in *data* to the article.

    ``tags`` omitted (or null) leaves the tag set alone; a list, even an
    empty one, replaces it.  ``notification`` is recomputed on every
    update and defaults to False.
    """
    result = await db.execute(
        select(Article)
        .where(Article.id == article_id)
        .options(selectinload(Article.tags))
        .execution_options(populate_existing=True)
    )
    article = result.scalar_one_or_none()
    if article is None:
        raise NotFound("Article", article_id)

    update_data = data.model_dump(exclude_unset=True)
    update_data.pop("tags", None)
    update_data["notification"] = data.notification

    for field, value in update_data.items():
        if value is not None:
            setattr(article, field, value)

    if data.tags is not None:
        article.tags = await tag_service.get_tags_by_ids(db, data.tags)

    await db.flush()
    await events.dispatch(model_changed("articles", "tags"))

    updated = await _load_article_detail(db, article_id)
    return _article_detail_to_dict(updated)


async def pick_best(db: AsyncSession, article_id: int, solution_id: int) -> None:
    """Mark comment *solution_id* as the accepted answer of the article."""
    article = await find_article(db, article_id)

    comment = await db.get(Comment, solution_id)
    if comment is None or comment.article_id != article.id:
        raise ValidationFailed("solution_id", "The selected solution id is invalid.")

    article.solution_id = comment.id
    await db.flush()


async def delete_article(db: AsyncSession, article_id: int) -> None:
    """
    Delete the article and everything hanging off it.

    Order: attachment files, attachment records (one statement), comments
    depth-first through the comment-deletion path, then the article.  A
    failing file delete aborts before any record is removed.
    """
    result = await db.execute(
        select(Article)
        .where(Article.id == article_id)
        .options(selectinload(Article.tags))
        .execution_options(populate_existing=True)
    )
    article = result.scalar_one_or_none()
    if article is None:
        raise NotFound("Article", article_id)

    attachments = (
        await db.execute(select(Attachment).where(Attachment.article_id == article_id))
    ).scalars().all()
    for attachment in attachments:
        delete_attachment_file(attachment)
    if attachments:
        await db.execute(
            delete(Attachment)
            .where(Attachment.article_id == article_id)
            .execution_options(synchronize_session="fetch")
        )

    top_level_ids = (
        await db.execute(
            select(Comment.id)
            .where(Comment.article_id == article_id, Comment.parent_id.is_(None))
            .order_by(Comment.id)
        )
    ).scalars().all()
    for comment_id in top_level_ids:
        await comment_service.delete_comment(db, comment_id, force=True, notify=False)

    await db.delete(article)
    await db.flush()
    logger.info(
        "Deleted article %d (%d attachment(s), %d comment thread(s))",
        article_id, len(attachments), len(top_level_ids),
    )

    await events.dispatch(model_changed("articles"))
