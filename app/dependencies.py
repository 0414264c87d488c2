from fastapi import Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import authorize_author, require_user
from app.config import settings
from app.database import get_db
from app.models import Article, User
from app.services import article_service


class PaginationParams:
    """
    Reusable dependency that parses pagination / sorting query parameters.

    Attributes
    ----------
    page:
        1-based page number (minimum 1).
    page_size:
        Number of items per page, at most ``settings.MAX_PAGE_SIZE``.
    sort_by:
        Column name to sort by after the ``pin`` ordering.  The service
        maps unknown names to ``created_at``.
    sort_order:
        ``"asc"`` or ``"desc"``.
    """

    def __init__(
        self,
        page: int = Query(1, ge=1, description="Page number (1-based)."),
        page_size: int = Query(
            settings.DEFAULT_PAGE_SIZE,
            ge=1,
            le=settings.MAX_PAGE_SIZE,
            description=f"Number of items returned per page (max {settings.MAX_PAGE_SIZE}).",
        ),
        sort_by: str = Query("created_at", description="Column name to sort results by."),
        sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    ) -> None:
        self.page = page
        self.page_size = page_size
        self.sort_by = sort_by
        self.sort_order = sort_order


class ArticleFilterParams:
    """
    ``PaginationParams`` plus the article list filters.

    ``filter`` accepts ``nocomment`` (articles without live comments) or
    ``notsolved`` (no accepted solution); ``q`` is a keyword matched
    against title and content.
    """

    def __init__(
        self,
        pagination: PaginationParams = Depends(),
        filter: str | None = Query(None, pattern="^(nocomment|notsolved)$"),
        q: str | None = Query(None, max_length=100),
    ) -> None:
        self.page = pagination.page
        self.page_size = pagination.page_size
        self.sort_by = pagination.sort_by
        self.sort_order = pagination.sort_order
        self.filter = filter
        self.q = q.strip() if q and q.strip() else None


def is_api_request(request: Request) -> bool:
    return request.url.path.startswith(settings.API_PREFIX)


def is_ajax_request(request: Request) -> bool:
    return request.headers.get("x-requested-with", "").lower() == "xmlhttprequest"


async def get_authored_article(
    article_id: int,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> Article:
    """Load the article and enforce the author capability before any mutation."""
    article = await article_service.find_article(db, article_id)
    authorize_author(user, article)
    return article
