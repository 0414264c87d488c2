"""
Per-request observability: SQL statement counting and request timing.

Every response carries ``x-response-time-ms`` and ``x-query-count``.  Each
request is logged once, at WARNING when it exceeds
``settings.SLOW_REQUEST_MS`` and at DEBUG otherwise.
"""
import logging
import time
from contextvars import ContextVar

from sqlalchemy import event
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.config import settings

logger = logging.getLogger(__name__)

query_count_var: ContextVar[int] = ContextVar("query_count", default=0)


def install_query_counter(engine) -> None:
    """Count statements executed on *engine*, eager loads included."""

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        query_count_var.set(query_count_var.get() + 1)


class TimingMiddleware:
    # Pure ASGI: the app runs in this task, so the counter's ContextVar
    # updates are visible when the response starts.

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        query_count_var.set(0)
        start = time.perf_counter()

        async def send_with_metrics(message: Message) -> None:
            if message["type"] == "http.response.start":
                elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
                queries = query_count_var.get()
                message["headers"] = [
                    *message.get("headers", []),
                    (b"x-response-time-ms", str(elapsed_ms).encode()),
                    (b"x-query-count", str(queries).encode()),
                ]
                level = logging.WARNING if elapsed_ms > settings.SLOW_REQUEST_MS else logging.DEBUG
                logger.log(
                    level,
                    "%s %s -> %d in %.2fms (%d queries)",
                    scope["method"], scope["path"], message["status"], elapsed_ms, queries,
                )
            await send(message)

        await self.app(scope, receive, send_with_metrics)
