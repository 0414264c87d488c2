from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import require_user
from app.config import settings
from app.database import get_db
from app.dependencies import ArticleFilterParams, get_authored_article
from app.models import Article, User
from app.schemas import ArticleCreate, ArticleUpdate, PaginatedResponse, SolutionPick
from app.services import article_service

router = APIRouter(prefix=settings.API_PREFIX, tags=["articles"])


def list_kwargs(params: ArticleFilterParams) -> dict:
    return {
        "page": params.page,
        "page_size": params.page_size,
        "sort_by": params.sort_by,
        "sort_order": params.sort_order,
        "filter": params.filter,
        "q": params.q,
    }


@router.get("/articles", response_model=PaginatedResponse)
async def list_articles(
    params: ArticleFilterParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_articles(db, **list_kwargs(params))


@router.get("/tags/{slug}/articles", response_model=PaginatedResponse)
async def list_tag_articles(
    slug: str,
    params: ArticleFilterParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_articles(db, tag_slug=slug, **list_kwargs(params))


@router.post("/articles", status_code=201)
async def create_article(
    data: ArticleCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.create_article(db, user.id, data)


@router.get("/articles/{article_id}")
async def get_article(article_id: int, db: AsyncSession = Depends(get_db)):
    article, comments = await article_service.get_article(db, article_id)
    return {"article": article, "comments": comments}


@router.api_route("/articles/{article_id}", methods=["PUT", "PATCH"])
async def update_article(
    data: ArticleUpdate,
    article: Article = Depends(get_authored_article),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.update_article(db, article.id, data)


@router.patch("/articles/{article_id}/solution", status_code=204)
async def pick_best(
    data: SolutionPick,
    article: Article = Depends(get_authored_article),
    db: AsyncSession = Depends(get_db),
):
    await article_service.pick_best(db, article.id, data.solution_id)


@router.delete("/articles/{article_id}", status_code=204)
async def delete_article(
    article: Article = Depends(get_authored_article),
    db: AsyncSession = Depends(get_db),
):
    await article_service.delete_article(db, article.id)
