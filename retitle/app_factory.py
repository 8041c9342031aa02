"""Litestar application factory."""

import logging

from advanced_alchemy.extensions.litestar import AsyncSessionConfig, SQLAlchemyPlugin
from litestar import Litestar
from sqlalchemy.ext.asyncio import AsyncEngine

from retitle.config import Settings, get_settings
from retitle.controllers.articles import ArticleController
from retitle.db.base import Base
from retitle.db.session import SafeSQLAlchemyAsyncConfig, create_engine
from retitle.lib import observability
from retitle.lib.exceptions import EXCEPTION_HANDLERS

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, engine: AsyncEngine | None = None) -> Litestar:
    """Create the Litestar app.

    Args:
        settings: Settings override (defaults to app.yaml / .env)
        engine: Pre-built engine, used by tests to share a database
    """
    settings = settings or get_settings()
    observability.configure(settings)

    db_config = SafeSQLAlchemyAsyncConfig(
        engine_instance=engine or create_engine(settings.db),
        metadata=Base.metadata,
        create_all=False,
        session_config=AsyncSessionConfig(expire_on_commit=False),
    )

    logger.debug("Creating app with database %s", settings.db.url)
    return Litestar(
        route_handlers=[ArticleController],
        plugins=[SQLAlchemyPlugin(config=db_config)],
        exception_handlers=EXCEPTION_HANDLERS,
        debug=settings.debug,
    )
