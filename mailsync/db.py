from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi_async_sqlalchemy import SQLAlchemyMiddleware, db
from starlette.applications import Starlette

from settings import settings

_initialized = False


def init_database() -> None:
    """Bind the fastapi_async_sqlalchemy session factory to our database, once per process."""
    global _initialized
    if _initialized:
        return

    # The middleware configures the global ``db`` proxy on construction; the app itself is never served.
    SQLAlchemyMiddleware(
        Starlette(),
        db_url=settings.database.url,
        engine_args={
            "echo": False,
            "pool_pre_ping": True,
            "pool_size": settings.database.min_pool_size,
            "max_overflow": settings.database.max_pool_size - settings.database.min_pool_size,
        },
        session_args={"expire_on_commit": False},
    )
    _initialized = True


@asynccontextmanager
async def database_context() -> AsyncGenerator[None, None]:
    """Open one session scope for standalone (non-request) work such as a sync cycle."""
    init_database()
    async with db():
        yield
