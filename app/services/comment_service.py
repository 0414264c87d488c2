"""
Comment service: threaded comments on the Article aggregate.

A comment with live replies is soft-deleted so the thread survives;
anything else is removed for good, replies first.  Article deletion uses
the forced path, which always removes the whole subtree.
"""
import logging
from collections import defaultdict
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.events import events, model_changed
from app.exceptions import NotFound, ValidationFailed
from app.models import Article, Comment
from app.schemas import CommentCreate

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def comment_to_dict(comment: Comment) -> dict:
    return {
        "id": comment.id,
        "article_id": comment.article_id,
        "parent_id": comment.parent_id,
        "user_id": comment.user_id,
        "content": comment.content,
        "created_at": _iso(comment.created_at),
        "deleted_at": _iso(comment.deleted_at),
    }


async def get_comment_thread(db: AsyncSession, article_id: int) -> list[dict]:
    """
    Top-level comments of *article_id*, soft-deleted ones included, most
    recent first.  Each carries its ``replies`` (oldest first, nested to
    any depth); a soft-deleted reply appears only while it has live
    replies below it.

    One query loads the whole thread; the tree is assembled in Python.
    """
    result = await db.execute(
        select(Comment)
        .where(Comment.article_id == article_id)
        .order_by(Comment.created_at, Comment.id)
    )
    comments = result.scalars().all()

    children: dict[int, list[Comment]] = defaultdict(list)
    for c in comments:
        if c.parent_id is not None:
            children[c.parent_id].append(c)

    def build(comment: Comment, keep: bool = False) -> dict | None:
        replies = [r for r in (build(c) for c in children[comment.id]) if r is not None]
        # A deleted reply stays only as the parent of live replies.
        if comment.is_deleted and not replies and not keep:
            return None
        data = comment_to_dict(comment)
        data["replies"] = replies
        return data

    top_level = [c for c in comments if c.parent_id is None]
    top_level.reverse()
    return [build(c, keep=True) for c in top_level]


async def add_comment(
    db: AsyncSession,
    article_id: int,
    data: CommentCreate,
    user_id: int | None = None,
) -> dict:
    """
    Append a comment (or a reply when ``parent_id`` is given) to the
    article identified by *article_id*.
    """
    article = await db.get(Article, article_id)
    if article is None:
        raise NotFound("Article", article_id)

    if data.parent_id is not None:
        parent = await db.get(Comment, data.parent_id)
        if parent is None or parent.article_id != article_id:
            raise ValidationFailed("parent_id", "The selected parent id is invalid.")

    comment = Comment(
        content=data.content,
        article_id=article_id,
        parent_id=data.parent_id,
        user_id=user_id,
    )
    db.add(comment)
    await db.flush()
    await db.refresh(comment)

    await events.dispatch(model_changed("articles"))
    return comment_to_dict(comment)


async def _children(db: AsyncSession, comment_id: int) -> list[Comment]:
    result = await db.execute(
        select(Comment).where(Comment.parent_id == comment_id).order_by(Comment.id)
    )
    return list(result.scalars().all())


async def _has_live_descendant(db: AsyncSession, comment_id: int) -> bool:
    for child in await _children(db, comment_id):
        if not child.is_deleted or await _has_live_descendant(db, child.id):
            return True
    return False


async def _purge(db: AsyncSession, comment: Comment) -> int:
    """Hard-delete *comment* after its replies, depth first.  Returns rows removed."""
    removed = 0
    for child in await _children(db, comment.id):
        removed += await _purge(db, child)

    # An accepted answer that disappears leaves the article unsolved.
    await db.execute(
        update(Article)
        .where(Article.solution_id == comment.id)
        .values(solution_id=None)
    )
    await db.delete(comment)
    await db.flush()
    return removed + 1


async def delete_comment(
    db: AsyncSession,
    comment_id: int,
    force: bool = False,
    notify: bool = True,
) -> None:
    """
    Delete the comment identified by *comment_id*.

    Without *force*, a comment with a live reply anywhere below it is
    only soft-deleted.  Otherwise the comment and all of its replies are
    removed.
    """
    comment = await db.get(Comment, comment_id)
    if comment is None:
        raise NotFound("Comment", comment_id)

    if not force and await _has_live_descendant(db, comment.id):
        comment.deleted_at = datetime.now(timezone.utc)
        await db.flush()
        logger.info("Soft-deleted comment %d (has replies)", comment_id)
    else:
        removed = await _purge(db, comment)
        logger.info("Deleted comment %d and %d repl(ies)", comment_id, removed - 1)

    if notify:
        await events.dispatch(model_changed("articles"))
