"""Title change service.

Renaming an article moves its URL, the URLs of every page beneath it (or of
every post in a blog stream), keeps all stored versions in sync and leaves
one-hop redirects behind for URLs that were live. All of it is written in a
single transaction; hooks are only notified once that transaction commits.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, UTC
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from retitle.config import RenameConfig, Settings, get_settings
from retitle.db.models import Article, ArticleType, StatusCode
from retitle.db.services import article_service, redirect_service
from retitle.db.services.redirect_service import RedirectCreationResult, UrlChange
from retitle.lib import observability, slugs
from retitle.lib.events import RedirectCreatedEvent, TitleChangedEvent
from retitle.lib.exceptions import (
    ArticleNotFoundError,
    InvalidTitleError,
    SlugConflictError,
    StructuralWriteError,
)
from retitle.lib.hooks import hooks, REDIRECT_CREATED, REPUBLISH_ARTICLE, TITLE_CHANGED

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 254


@dataclass
class DependentChange:
    """A dependent article about to move, with the version rows to update."""

    change: UrlChange
    versions: list[Article]
    blog_key: str | None = None


@dataclass
class TitleChangeOutcome:
    article_number: int
    old_title: str
    new_title: str
    old_url: str
    new_url: str
    url_changes: list[UrlChange] = field(default_factory=list)
    redirects: RedirectCreationResult | None = None
    republish: list[int] = field(default_factory=list)

    @property
    def url_changed(self) -> bool:
        return self.old_url != self.new_url


async def _check_title(
    db_session: AsyncSession,
    title: str | None,
    url_path: str,
    rules: RenameConfig,
    article_number: int | None,
) -> None:
    if title is None or not title.strip():
        raise InvalidTitleError("Title must not be empty.")
    if len(title) > MAX_TITLE_LENGTH:
        raise InvalidTitleError(f"Title must be at most {MAX_TITLE_LENGTH} characters.")
    if url_path != rules.root_path and slugs.is_reserved(url_path, rules.reserved_paths):
        raise InvalidTitleError(f"The URL '{url_path}' is reserved.")

    owner = await article_service.get_live_article_by_path(db_session, url_path, exclude_number=article_number)
    if owner is not None:
        raise SlugConflictError(url_path, owner.article_number)


async def validate_title(
    db_session: AsyncSession,
    title: str | None,
    article_number: int | None = None,
    parent_number: int | None = None,
    settings: Settings | None = None,
) -> bool:
    """Check whether ``title`` can be used without a rename failing.

    The URL is computed exactly as a rename or creation would compute it,
    including the ``article_slug`` filter.

    Args:
        db_session: Database session
        title: Proposed title
        article_number: Article being renamed (None when creating)
        parent_number: Parent the article lives under
        settings: Settings override

    Returns:
        False when the title is blank, reserved or its URL is owned by another article
    """
    rules = (settings or get_settings()).rename

    existing = None
    if article_number is not None:
        existing = await article_service.get_article(db_session, article_number)
    if existing is not None:
        if parent_number is None:
            parent_number = existing.parent_number
        if existing.url_path == rules.root_path:
            return bool(title and title.strip()) and len(title) <= MAX_TITLE_LENGTH

    # Transient: never added to the session.
    candidate = Article(
        article_number=article_number,
        article_type=existing.article_type if existing is not None else ArticleType.GENERAL,
        parent_number=parent_number,
        title=title,
    )

    try:
        url_path = await article_service.build_article_url(db_session, candidate)
        await _check_title(db_session, title, url_path, rules, article_number)
    except (InvalidTitleError, SlugConflictError):
        return False
    return True


async def _direct_dependents(db_session: AsyncSession, parent_number: int, parent_type: int) -> list[Article]:
    query = select(Article).where(
        Article.parent_number == parent_number,
        Article.status_code.in_([StatusCode.ACTIVE, StatusCode.INACTIVE]),
    )
    if parent_type == ArticleType.BLOG_STREAM:
        query = query.where(Article.article_type == ArticleType.BLOG_POST)
    else:
        query = query.where(Article.article_type != ArticleType.BLOG_POST)

    result = await db_session.execute(
        query.order_by(Article.article_number.asc(), Article.version_number.asc())
    )
    return list(result.scalars().all())


def _moved_url(url_path: str, parent_old: str, parent_new: str) -> str:
    prefix = parent_old.rstrip("/") + "/"
    if url_path.startswith(prefix):
        return slugs.join_path(parent_new, url_path[len(prefix):])
    return slugs.join_path(parent_new, slugs.last_segment(url_path))


async def collect_dependents(
    db_session: AsyncSession,
    article: Article,
    old_url: str,
    new_url: str,
    now: datetime | None = None,
) -> list[DependentChange]:
    """Find every article whose URL moves with ``article``.

    Child pages are walked to any depth; a blog stream yields its posts.
    Each dependent's published state is read from its own versions before
    anything is written.

    Returns:
        Dependents sorted by their current URL
    """
    now = now or datetime.now(UTC)
    stream_key = slugs.last_segment(new_url) if article.is_blog_stream else None

    collected: list[DependentChange] = []
    visited = {article.article_number}
    queue = deque([(article.article_number, article.article_type, old_url, new_url)])

    while queue:
        parent_number, parent_type, parent_old, parent_new = queue.popleft()
        grouped: dict[int, list[Article]] = {}
        for row in await _direct_dependents(db_session, parent_number, parent_type):
            grouped.setdefault(row.article_number, []).append(row)

        for number, versions in grouped.items():
            if number in visited:
                continue
            visited.add(number)

            latest = versions[-1]
            child_new = _moved_url(latest.url_path, parent_old, parent_new)
            change = UrlChange(
                old_url=latest.url_path,
                new_url=child_new,
                is_published=any(v.is_live(now) for v in versions),
                article_number=number,
            )
            blog_key = stream_key if parent_type == ArticleType.BLOG_STREAM else None
            collected.append(DependentChange(change=change, versions=versions, blog_key=blog_key))
            queue.append((number, latest.article_type, latest.url_path, child_new))

    collected.sort(key=lambda d: (d.change.old_url, d.change.article_number))
    return collected


async def _apply_title_change(
    db_session: AsyncSession,
    article: Article,
    old_title: str,
    old_url_path: str,
    user_id: UUID | None,
    rules: RenameConfig,
) -> TitleChangeOutcome:
    article_number = article.article_number
    new_title = article.title
    now = datetime.now(UTC)

    if old_url_path == rules.root_path:
        new_url = old_url_path
    else:
        new_url = await article_service.build_article_url(db_session, article)
    await _check_title(db_session, new_title, new_url, rules, article_number)

    versions = [
        v for v in await article_service.list_versions(db_session, article_number)
        if not v.is_redirect
    ]
    if article not in versions:
        versions.append(article)

    primary = UrlChange(
        old_url=old_url_path,
        new_url=new_url,
        is_published=any(v.is_live(now) for v in versions),
        article_number=article_number,
    )

    dependents: list[DependentChange] = []
    if primary.old_url != primary.new_url:
        dependents = await collect_dependents(db_session, article, old_url_path, new_url, now)
        moving = {d.change.article_number for d in dependents} | {article_number}
        for dependent in dependents:
            owner = await article_service.get_live_article_by_path(
                db_session, dependent.change.new_url, exclude_number=dependent.change.article_number
            )
            if owner is not None and owner.article_number not in moving:
                raise SlugConflictError(dependent.change.new_url, owner.article_number)

    # Every URL is validated; writes start here.
    if primary.old_url != primary.new_url:
        await redirect_service.reclaim_url(db_session, new_url)

    new_blog_key = slugs.last_segment(new_url) if article.is_blog_stream else None
    for version in versions:
        version.title = new_title
        version.url_path = new_url
        if new_blog_key is not None:
            version.blog_key = new_blog_key
    await db_session.flush()

    for dependent in dependents:
        await redirect_service.reclaim_url(db_session, dependent.change.new_url)
        for version in dependent.versions:
            version.url_path = dependent.change.new_url
            if dependent.blog_key is not None:
                version.blog_key = dependent.blog_key
    await db_session.flush()

    url_changes = [d.change for d in dependents]
    if primary.old_url != primary.new_url:
        url_changes.insert(0, primary)

    redirects = None
    if url_changes:
        redirects = await redirect_service.create_redirects(
            db_session,
            url_changes,
            user_id if user_id is not None else article.user_id,
            max_hops=rules.max_redirect_hops,
            root_path=rules.root_path,
        )
        for failure in redirects.failed_redirects:
            logger.warning(
                "Redirect %s -> %s for article %s was not created: %s",
                failure.old_url, failure.new_url, failure.article_number, failure.error,
            )
            observability.warning(
                "Redirect {old_url} -> {new_url} failed",
                old_url=failure.old_url, new_url=failure.new_url, error=failure.error,
            )

    republish = [article_number] if primary.is_published else []
    republish += [d.change.article_number for d in dependents if d.change.is_published]

    return TitleChangeOutcome(
        article_number=article_number,
        old_title=old_title,
        new_title=new_title,
        old_url=old_url_path,
        new_url=new_url,
        url_changes=url_changes,
        redirects=redirects,
        republish=republish,
    )


async def _rollback(db_session: AsyncSession, article: Article, article_number: int) -> None:
    """Roll back and reload ``article`` so the caller can keep reading it.

    Failures here are logged; the caller re-raises the original error.
    """
    try:
        await db_session.rollback()
        await db_session.refresh(article)
    except SQLAlchemyError:
        logger.warning("Rollback of article %s did not complete cleanly", article_number, exc_info=True)


async def _notify(hook_name: str, *args) -> None:
    """Run a post-commit hook; the rename is already durable, so failures are only logged."""
    try:
        await hooks.do_action(hook_name, *args)
    except Exception:
        if not observability.exception("Post-commit hook {hook_name} failed", hook_name=hook_name):
            logger.exception("Post-commit hook %s failed", hook_name)


async def handle_title_change(
    db_session: AsyncSession,
    article: Article,
    old_title: str,
    old_url_path: str,
    *,
    user_id: UUID | None = None,
    settings: Settings | None = None,
) -> TitleChangeOutcome:
    """Apply a title change already assigned to ``article`` in memory.

    Moves the article's URL, cascades to dependents and versions, writes
    redirects and commits everything at once. On any failure the session is
    rolled back and nothing is visible. Republish and event hooks run only
    after a successful commit.

    Args:
        db_session: Database session; its transaction is committed or rolled back here
        article: Article row whose ``title`` holds the new value
        old_title: Title before the change
        old_url_path: URL path before the change
        user_id: Actor recorded on new redirects (defaults to the article owner)
        settings: Settings override

    Returns:
        Summary of what changed

    Raises:
        InvalidTitleError: The new title is blank, too long or reserved
        SlugConflictError: A computed URL is owned by another live article
        StructuralWriteError: The store failed while writing
    """
    rules = (settings or get_settings()).rename
    article_number = article.article_number

    if article.title == old_title and article.url_path:
        return TitleChangeOutcome(
            article_number=article_number,
            old_title=old_title,
            new_title=old_title,
            old_url=old_url_path,
            new_url=article.url_path,
        )

    with observability.span("title_change", article_number=article_number):
        try:
            outcome = await _apply_title_change(db_session, article, old_title, old_url_path, user_id, rules)
            await db_session.commit()
        except SQLAlchemyError as exc:
            await _rollback(db_session, article, article_number)
            raise StructuralWriteError(
                f"Renaming article {article_number} failed: {exc}",
                retryable=isinstance(exc, OperationalError),
            ) from exc
        except BaseException:
            await _rollback(db_session, article, article_number)
            raise

    await db_session.refresh(article)
    logger.info(
        "Article %s renamed '%s' -> '%s' (%s -> %s), %d URL change(s)",
        article_number, outcome.old_title, outcome.new_title,
        outcome.old_url, outcome.new_url, len(outcome.url_changes),
    )

    for number in outcome.republish:
        await _notify(REPUBLISH_ARTICLE, number)
    await _notify(
        TITLE_CHANGED,
        TitleChangedEvent(
            article_number=article_number,
            old_title=outcome.old_title,
            new_title=outcome.new_title,
            old_url=outcome.old_url,
            new_url=outcome.new_url,
        ),
    )
    if outcome.redirects is not None:
        for from_url, to_url in outcome.redirects.created:
            await _notify(REDIRECT_CREATED, RedirectCreatedEvent(from_url=from_url, to_url=to_url))

    return outcome


async def change_title(
    db_session: AsyncSession,
    article_number: int,
    new_title: str,
    user_id: UUID | None = None,
    settings: Settings | None = None,
) -> TitleChangeOutcome:
    """Content-save entry point: load the article, assign the title and rename.

    Raises:
        ArticleNotFoundError: No article has ``article_number``
    """
    article = await article_service.get_article(db_session, article_number)
    if article is None:
        raise ArticleNotFoundError(article_number)

    old_title = article.title
    old_url_path = article.url_path
    article.title = new_title
    return await handle_title_change(
        db_session, article, old_title, old_url_path, user_id=user_id, settings=settings
    )
