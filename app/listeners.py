import logging

from sqlalchemy import update

from app.cache import cache
from app.config import settings
from app.events import ArticleConsumed, ModelChanged, events
from app.models import Article

logger = logging.getLogger(__name__)


async def flush_changed_domains(event: ModelChanged) -> None:
    await cache.flush_domains(list(event.domains))
    logger.debug("Flushed cache domains %s", ", ".join(event.domains))


async def count_article_view(event: ArticleConsumed) -> None:
    """Increment ``view_count`` in a single UPDATE (no read-modify-write)."""
    if event.db is None:
        return
    await event.db.execute(
        update(Article)
        .where(Article.id == event.article_id)
        .values(view_count=Article.view_count + 1)
    )


def register_listeners() -> None:
    if settings.CACHE_FLUSH_ON_CHANGE:
        events.subscribe(ModelChanged, flush_changed_domains)
    events.subscribe(ArticleConsumed, count_article_view)
