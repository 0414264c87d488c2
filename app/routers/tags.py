from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import require_user
from app.config import settings
from app.database import get_db
from app.models import User
from app.schemas import TagCreate, TagResponse, TagWithCount
from app.services import tag_service

router = APIRouter(prefix=settings.API_PREFIX, tags=["tags"])


@router.get("/tags", response_model=list[TagWithCount])
async def list_tags(db: AsyncSession = Depends(get_db)):
    return await tag_service.get_all_tags(db)


@router.post("/tags", status_code=201, response_model=TagResponse)
async def create_tag(
    data: TagCreate,
    user: User = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await tag_service.create_tag(db, data.name)
