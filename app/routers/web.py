"""
Browser-style article routes.

Same services as the ``/api/v1`` routes, but writes answer with a
303 redirect, list pages carry the all-tags sidebar, and reads count as
views.  Rendering the payloads into HTML is left to the front end.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import require_user
from app.database import get_db
from app.dependencies import (
    ArticleFilterParams,
    get_authored_article,
    is_ajax_request,
    is_api_request,
)
from app.models import Article, User
from app.routers.articles import list_kwargs
from app.schemas import ArticleCreate, ArticleUpdate
from app.services import article_service, tag_service

router = APIRouter(tags=["web"])


async def all_tags(db: AsyncSession = Depends(get_db)) -> list[dict]:
    return await tag_service.get_all_tags(db)


def _form_model(article: Article | None = None) -> dict:
    if article is None:
        return {"id": None, "title": "", "content": "", "pin": False, "notification": False}
    return {
        "id": article.id,
        "title": article.title,
        "content": article.content,
        "pin": article.pin,
        "notification": article.notification,
    }


@router.get("/articles")
async def index(
    params: ArticleFilterParams = Depends(),
    tags: list[dict] = Depends(all_tags),
    db: AsyncSession = Depends(get_db),
):
    articles = await article_service.get_articles(db, **list_kwargs(params))
    return {"articles": articles.model_dump(), "all_tags": tags}


@router.get("/tags/{slug}/articles")
async def tag_index(
    slug: str,
    params: ArticleFilterParams = Depends(),
    tags: list[dict] = Depends(all_tags),
    db: AsyncSession = Depends(get_db),
):
    articles = await article_service.get_articles(db, tag_slug=slug, **list_kwargs(params))
    return {"articles": articles.model_dump(), "all_tags": tags}


@router.get("/articles/new")
async def new(user: User = Depends(require_user)):
    return {"article": _form_model()}


@router.post("/articles")
async def store(
    data: ArticleCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    await article_service.create_article(db, user.id, data)
    return RedirectResponse("/articles", status_code=303)


@router.get("/articles/{article_id}")
async def show(article_id: int, request: Request, db: AsyncSession = Depends(get_db)):
    article, comments = await article_service.get_article(
        db, article_id, consumed=not is_api_request(request)
    )
    return {"article": article, "comments": comments}


@router.get("/articles/{article_id}/edit")
async def edit(
    article_id: int,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    article = await article_service.find_article(db, article_id)
    return {"article": _form_model(article)}


@router.api_route("/articles/{article_id}", methods=["PUT", "PATCH"])
async def update(
    data: ArticleUpdate,
    article: Article = Depends(get_authored_article),
    db: AsyncSession = Depends(get_db),
):
    await article_service.update_article(db, article.id, data)
    return RedirectResponse(f"/articles/{article.id}", status_code=303)


@router.delete("/articles/{article_id}")
async def destroy(
    request: Request,
    article: Article = Depends(get_authored_article),
    db: AsyncSession = Depends(get_db),
):
    await article_service.delete_article(db, article.id)
    if is_ajax_request(request):
        return Response(status_code=204)
    return RedirectResponse("/articles", status_code=303)
