"""
Tag service: tag lookup and the cached all-tags read model.

The all-tags list is what list pages render beside the article feed; it
is memoised under ``tags:all`` and flushed by ``ModelChanged("tags")``.
"""
import re

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.cache import cache
from app.config import settings
from app.events import events, model_changed
from app.exceptions import NotFound, ValidationFailed
from app.models import Tag, article_tags

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")

ALL_TAGS_KEY = "tags:all"


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def _tag_to_dict(tag: Tag) -> dict:
    return {"id": tag.id, "slug": tag.slug, "name": tag.name}


async def get_all_tags(db: AsyncSession) -> list[dict]:
    """Every tag with the number of articles carrying it, ordered by name."""

    async def load() -> list[dict]:
        q = (
            select(Tag, func.count(article_tags.c.article_id))
            .outerjoin(article_tags, article_tags.c.tag_id == Tag.id)
            .group_by(Tag.id)
            .order_by(Tag.name)
        )
        result = await db.execute(q)
        return [
            {**_tag_to_dict(tag), "article_count": count}
            for tag, count in result.all()
        ]

    return await cache.remember(ALL_TAGS_KEY, settings.CACHE_TTL_TAGS, load)


async def get_tag_by_slug(db: AsyncSession, slug: str) -> Tag:
    result = await db.execute(select(Tag).where(Tag.slug == slug))
    tag = result.scalar_one_or_none()
    if tag is None:
        raise NotFound("Tag", slug)
    return tag


async def get_tags_by_ids(db: AsyncSession, tag_ids: list[int]) -> list[Tag]:
    """
    Return the Tag rows for *tag_ids* (duplicates collapsed).

    Raises ValidationFailed naming the first unknown id.
    """
    wanted = set(tag_ids)
    if not wanted:
        return []
    result = await db.execute(select(Tag).where(Tag.id.in_(wanted)).order_by(Tag.id))
    tags = list(result.scalars().all())
    missing = wanted - {t.id for t in tags}
    if missing:
        raise ValidationFailed("tags", f"Unknown tag id {min(missing)}.")
    return tags


async def create_tag(db: AsyncSession, name: str) -> dict:
    slug = slugify(name)
    if not slug:
        raise ValidationFailed("name", "Tag name must contain letters or digits.")
    existing = await db.execute(
        select(Tag).where((Tag.slug == slug) | (Tag.name == name))
    )
    if existing.scalar_one_or_none() is not None:
        raise ValidationFailed("name", "The name has already been taken.")

    tag = Tag(name=name, slug=slug)
    db.add(tag)
    await db.flush()
    await events.dispatch(model_changed("tags"))
    return _tag_to_dict(tag)
