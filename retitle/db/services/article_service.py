"""Article service: lookups and creation of articles and their versions."""

from datetime import datetime, UTC
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from retitle.db.models import Article, ArticleType, StatusCode
from retitle.lib import slugs
from retitle.lib.exceptions import InvalidTitleError, SlugConflictError
from retitle.lib.hooks import hooks, ARTICLE_SLUG


async def next_article_number(db_session: AsyncSession) -> int:
    """Allocate the next logical article number."""
    result = await db_session.execute(select(func.coalesce(func.max(Article.article_number), 0)))
    return (result.scalar() or 0) + 1


async def get_article(db_session: AsyncSession, article_number: int) -> Article | None:
    """Get the latest non-redirect version of an article.

    Args:
        db_session: Database session
        article_number: Logical article number

    Returns:
        Article row or None if not found
    """
    result = await db_session.execute(
        select(Article)
        .where(
            Article.article_number == article_number,
            Article.status_code != StatusCode.REDIRECT,
        )
        .order_by(Article.version_number.desc())
        .limit(1)
    )
    return result.scalars().first()


async def list_versions(db_session: AsyncSession, article_number: int) -> list[Article]:
    """List every stored version of an article, oldest first."""
    result = await db_session.execute(
        select(Article)
        .where(Article.article_number == article_number)
        .order_by(Article.version_number.asc())
    )
    return list(result.scalars().all())


async def get_live_article_by_path(
    db_session: AsyncSession,
    url_path: str,
    exclude_number: int | None = None,
) -> Article | None:
    """Find an active article that owns ``url_path``.

    Args:
        db_session: Database session
        url_path: URL path to look up
        exclude_number: Ignore versions of this article

    Returns:
        An owning Article row or None
    """
    query = select(Article).where(
        Article.url_path == url_path,
        Article.status_code == StatusCode.ACTIVE,
    )
    if exclude_number is not None:
        query = query.where(Article.article_number != exclude_number)

    result = await db_session.execute(query.order_by(Article.version_number.desc()).limit(1))
    return result.scalars().first()


async def slug_for(article: Article) -> str:
    """Slug for ``article``'s title after the ``article_slug`` filter.

    Raises:
        InvalidTitleError: The title does not produce a slug
    """
    slug = await hooks.apply_filters(ARTICLE_SLUG, slugs.normalize(article.title), article)
    if not slug:
        raise InvalidTitleError("Title must contain at least one letter or digit.")
    return slug


async def build_article_url(db_session: AsyncSession, article: Article) -> str:
    """Compute the URL ``article`` should have for its current title.

    The article may be transient (not yet added to the session).

    Raises:
        InvalidTitleError: The title does not produce a slug
    """
    slug = await slug_for(article)

    parent_path = ""
    if article.parent_number is not None:
        parent = await get_article(db_session, article.parent_number)
        if parent is not None:
            parent_path = parent.url_path
    return slugs.join_path(parent_path, slug)


async def create_article(
    db_session: AsyncSession,
    title: str,
    *,
    article_type: ArticleType = ArticleType.GENERAL,
    parent_number: int | None = None,
    url_path: str | None = None,
    content: str = "",
    is_published: bool = False,
    publish_at: datetime | None = None,
    user_id: UUID | None = None,
) -> Article:
    """Create version 1 of a new article.

    The URL is derived from the title under the parent's URL unless
    ``url_path`` is given (used for the home page).

    Raises:
        InvalidTitleError: The title does not produce a slug
        SlugConflictError: Another live article already owns the URL
    """
    parent = None
    if parent_number is not None:
        parent = await get_article(db_session, parent_number)
        if parent is None:
            raise InvalidTitleError(f"Parent article {parent_number} does not exist.")

    article = Article(
        article_number=await next_article_number(db_session),
        version_number=1,
        article_type=article_type,
        status_code=StatusCode.ACTIVE,
        parent_number=parent_number,
        title=title,
        content=content,
        is_published=is_published,
        published_at=datetime.now(UTC) if is_published else None,
        publish_at=publish_at,
        user_id=user_id,
    )
    article.url_path = url_path if url_path is not None else await build_article_url(db_session, article)

    owner = await get_live_article_by_path(db_session, article.url_path)
    if owner is not None:
        raise SlugConflictError(article.url_path, owner.article_number)

    if article_type == ArticleType.BLOG_STREAM:
        article.blog_key = slugs.last_segment(article.url_path)
    elif article_type == ArticleType.BLOG_POST and parent is not None:
        article.blog_key = parent.blog_key

    db_session.add(article)
    await db_session.commit()
    await db_session.refresh(article)

    return article


async def add_version(
    db_session: AsyncSession,
    article: Article,
    is_published: bool = False,
) -> Article:
    """Store a new version copying ``article``'s addressing and content."""
    result = await db_session.execute(
        select(func.coalesce(func.max(Article.version_number), 0))
        .where(Article.article_number == article.article_number)
    )
    version = Article(
        article_number=article.article_number,
        version_number=(result.scalar() or 0) + 1,
        article_type=article.article_type,
        status_code=article.status_code,
        url_path=article.url_path,
        parent_number=article.parent_number,
        blog_key=article.blog_key,
        title=article.title,
        content=article.content,
        is_published=is_published,
        published_at=datetime.now(UTC) if is_published else None,
        user_id=article.user_id,
    )
    db_session.add(version)
    await db_session.commit()
    await db_session.refresh(version)

    return version
