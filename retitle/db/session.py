"""Engine and session providers.

``create_engine`` builds the async engine used by the HTTP app and the CLI.
SQLite connections are switched to explicit ``BEGIN`` handling so SAVEPOINTs
(used for per-redirect writes) nest inside the outer transaction instead of
being committed on release.

``SafeSQLAlchemyAsyncConfig`` closes the request session when a request is
cancelled, which otherwise leaks pooled connections.
"""

import asyncio
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING, Any, Callable, cast

from advanced_alchemy._listeners import set_async_context
from advanced_alchemy.extensions.litestar import SQLAlchemyAsyncConfig
from advanced_alchemy.extensions.litestar._utils import (
    delete_aa_scope_state,
    get_aa_scope_state,
    set_aa_scope_state,
)
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from retitle.lib import observability

if TYPE_CHECKING:
    from litestar.datastructures import State
    from litestar.types import Scope

    from retitle.config import DatabaseConfig


def enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let the driver stop managing transactions and emit BEGIN ourselves."""

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine(db: "DatabaseConfig") -> AsyncEngine:
    """Create the async engine for ``db``."""
    kwargs: dict[str, Any] = {"echo": db.echo}
    if "sqlite" not in db.url:
        kwargs.update(
            pool_size=db.pool_size,
            max_overflow=db.pool_overflow,
            pool_timeout=db.pool_timeout,
            pool_pre_ping=db.pool_pre_ping,
        )

    engine = create_async_engine(db.url, **kwargs)
    if engine.dialect.name == "sqlite":
        enable_sqlite_savepoints(engine)
    observability.instrument_sqlalchemy(engine.sync_engine)
    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class SafeSQLAlchemyAsyncConfig(SQLAlchemyAsyncConfig):
    """SQLAlchemy async config that closes sessions on request cancellation."""

    async def provide_session(
        self,
        state: "State",
        scope: "Scope",
    ) -> AsyncGenerator[AsyncSession, None]:
        """Provide the request's session, closing it if the request is cancelled.

        Args:
            state: The application state
            scope: The ASGI scope

        Yields:
            AsyncSession: The database session
        """
        session = cast(
            "AsyncSession | None",
            get_aa_scope_state(scope, self.session_scope_key),
        )

        if session is None:
            session_maker = cast(
                "Callable[[], AsyncSession]",
                state[self.session_maker_app_state_key],
            )
            session = session_maker()
            set_aa_scope_state(scope, self.session_scope_key, session)

        set_async_context(True)

        try:
            yield session
        except asyncio.CancelledError:
            await session.close()
            delete_aa_scope_state(scope, self.session_scope_key)
            raise


__all__ = ["SafeSQLAlchemyAsyncConfig", "create_engine", "create_session_maker", "enable_sqlite_savepoints"]
