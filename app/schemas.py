from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime


# --- Tag ---

class TagCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class TagResponse(BaseModel):
    id: int
    slug: str
    name: str
    model_config = ConfigDict(from_attributes=True)


class TagWithCount(TagResponse):
    article_count: int = 0


# --- User ---

class UserBase(BaseModel):
    username: str = Field(max_length=50)
    email: str = Field(max_length=255)
    display_name: str | None = None
    bio: str | None = None


class UserCreate(UserBase):
    is_admin: bool = False


class UserResponse(UserBase):
    id: int
    is_admin: bool = False
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# --- Comment ---

class CommentCreate(BaseModel):
    content: str = Field(min_length=1)
    parent_id: int | None = None


class CommentResponse(BaseModel):
    id: int
    article_id: int
    parent_id: int | None = None
    user_id: int | None = None
    content: str
    created_at: datetime | None = None
    deleted_at: datetime | None = None
    model_config = ConfigDict(from_attributes=True)


# --- Article ---

class ArticleCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    content: str = Field(min_length=1)
    pin: bool = False
    # Absent means "not requested", mirroring an unchecked form checkbox.
    notification: bool = False
    tags: list[int] = []
    attachments: list[int] = []


class ArticleUpdate(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    content: str | None = Field(None, min_length=1)
    pin: bool | None = None
    notification: bool = False
    # None / omitted leaves the tag set untouched; [] clears it.
    tags: list[int] | None = None


class SolutionPick(BaseModel):
    solution_id: int


# --- Pagination ---

class PaginatedResponse(BaseModel):
    items: list
    total: int
    page: int
    page_size: int
    pages: int


# --- Metrics ---

class MetricsResponse(BaseModel):
    total_articles: int
    total_comments: int
    total_users: int
    total_tags: int
    avg_comments_per_article: float
    cache_info: dict = {}
