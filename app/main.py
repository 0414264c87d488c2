from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.cache import cache
from app.exceptions import register_exception_handlers
from app.listeners import register_listeners
from app.logging_config import configure_logging
from app.middleware import TimingMiddleware
from app.routers import articles, comments, metrics, tags, users, web

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # connect() already degrades to "no cache" when Redis is unreachable.
    await cache.connect()
    yield
    await cache.disconnect()


app = FastAPI(
    title="Articles Service",
    description="Articles with tags, threaded comments, attachments and accepted answers",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)
register_listeners()

# Routers
app.include_router(articles.router)
app.include_router(comments.router)
app.include_router(tags.router)
app.include_router(users.router)
app.include_router(metrics.router)
app.include_router(web.router)


@app.get("/health")
async def health():
    return {"status": "healthy", "version": "1.0.0"}
