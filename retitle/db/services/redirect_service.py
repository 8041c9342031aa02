"""Redirect service: chain resolution and batch redirect creation.

Redirects are stored as ``Article`` rows with ``StatusCode.REDIRECT``. Every
persisted redirect points directly at a non-redirect URL: targets are
resolved before writing and redirects that pointed at a URL which just moved
are retargeted to its new destination.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import NamedTuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from retitle.db.models import Article, ArticleType, StatusCode
from retitle.db.services import article_service
from retitle.lib.exceptions import ChainResolutionOverflowError
from retitle.lib.observability import span

logger = logging.getLogger(__name__)

DEFAULT_MAX_HOPS = 10


@dataclass(frozen=True)
class UrlChange:
    """One article's URL transition, captured before its row is mutated."""

    old_url: str
    new_url: str
    is_published: bool
    article_number: int


class FailedRedirect(NamedTuple):
    article_number: int
    old_url: str
    new_url: str
    error: str


@dataclass
class RedirectCreationResult:
    """Outcome of one ``create_redirects`` batch."""

    success_count: int = 0
    skipped_count: int = 0
    failed_redirects: list[FailedRedirect] = field(default_factory=list)
    created: list[tuple[str, str]] = field(default_factory=list)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed_redirects

    @property
    def total_attempted(self) -> int:
        return self.success_count + self.skipped_count + len(self.failed_redirects)


async def get_redirect(db_session: AsyncSession, from_url: str) -> Article | None:
    """Get the redirect row whose source is ``from_url`` (highest version wins)."""
    result = await db_session.execute(
        select(Article)
        .where(Article.url_path == from_url, Article.status_code == StatusCode.REDIRECT)
        .order_by(Article.version_number.desc())
        .limit(1)
    )
    return result.scalars().first()


async def list_redirects(db_session: AsyncSession) -> list[Article]:
    """List all redirect rows ordered by source URL."""
    result = await db_session.execute(
        select(Article)
        .where(Article.status_code == StatusCode.REDIRECT)
        .order_by(Article.url_path.asc())
    )
    return list(result.scalars().all())


async def resolve_final_destination(
    db_session: AsyncSession,
    url: str,
    *,
    max_hops: int = DEFAULT_MAX_HOPS,
) -> str:
    """Follow redirects starting at ``url`` until a non-redirect URL is reached.

    Args:
        db_session: Database session
        url: Requested redirect target
        max_hops: Maximum number of redirects to follow

    Returns:
        The final destination (``url`` itself when it is not a redirect source)

    Raises:
        ChainResolutionOverflowError: The chain is longer than ``max_hops`` or loops
    """
    current = url
    visited = {current}
    hops = 0

    while True:
        redirect = await get_redirect(db_session, current)
        if redirect is None or not redirect.redirect_target:
            return current
        if hops >= max_hops:
            raise ChainResolutionOverflowError(url, hops)
        current = redirect.redirect_target
        hops += 1
        if current in visited:
            raise ChainResolutionOverflowError(url, hops)
        visited.add(current)


async def create_or_update_redirect(
    db_session: AsyncSession,
    from_url: str,
    to_url: str,
    user_id: UUID | None = None,
    root_path: str = "/",
) -> Article | None:
    """Point ``from_url`` at ``to_url``, reusing an existing redirect row.

    Returns:
        The redirect row, or None when ``from_url`` is the root path
    """
    if from_url == root_path:
        return None

    now = datetime.now(UTC)
    existing = await get_redirect(db_session, from_url)
    if existing is not None:
        existing.redirect_target = to_url
        existing.content = f"Redirect to {to_url}"
        if existing.published_at is None:
            existing.published_at = now
        await db_session.flush()
        return existing

    redirect = Article(
        article_number=await article_service.next_article_number(db_session),
        version_number=1,
        article_type=ArticleType.GENERAL,
        status_code=StatusCode.REDIRECT,
        url_path=from_url,
        title=from_url[:254],
        content=f"Redirect to {to_url}",
        redirect_target=to_url,
        is_published=True,
        published_at=now,
        user_id=user_id,
    )
    db_session.add(redirect)
    await db_session.flush()
    return redirect


async def retarget_redirects(db_session: AsyncSession, old_target: str, new_target: str) -> int:
    """Repoint redirects aimed at ``old_target`` to ``new_target``.

    A redirect that would end up pointing at itself is removed.

    Returns:
        Number of rows updated or removed
    """
    result = await db_session.execute(
        select(Article).where(
            Article.status_code == StatusCode.REDIRECT,
            Article.redirect_target == old_target,
        )
    )
    rows = list(result.scalars().all())
    for row in rows:
        if row.url_path == new_target:
            await db_session.delete(row)
        else:
            row.redirect_target = new_target
            row.content = f"Redirect to {new_target}"
    if rows:
        await db_session.flush()
    return len(rows)


async def reclaim_url(db_session: AsyncSession, url: str) -> int:
    """Delete redirects whose source is ``url`` so a live article can own it."""
    result = await db_session.execute(
        select(Article).where(
            Article.status_code == StatusCode.REDIRECT,
            Article.url_path == url,
        )
    )
    rows = list(result.scalars().all())
    for row in rows:
        await db_session.delete(row)
    if rows:
        await db_session.flush()
    return len(rows)


def _record_failure(result: RedirectCreationResult, change: UrlChange, error: str) -> None:
    result.failed_redirects.append(
        FailedRedirect(change.article_number, change.old_url, change.new_url, error)
    )


async def create_redirects(
    db_session: AsyncSession,
    changes: Sequence[UrlChange],
    user_id: UUID | None = None,
    *,
    max_hops: int = DEFAULT_MAX_HOPS,
    root_path: str = "/",
) -> RedirectCreationResult:
    """Write one redirect per eligible URL change.

    Unpublished changes, no-op changes and changes from the root path are
    skipped. An unpublished move still repoints redirects that targeted its
    old URL, so none is left dangling. When several eligible changes share an
    old URL the last one wins and the earlier ones count as skipped. Each
    write runs in its own SAVEPOINT so a failing row is rolled back alone and
    recorded instead of raised.

    Args:
        db_session: Database session holding the caller's transaction
        changes: URL changes in processing order
        user_id: Actor recorded on new redirect rows
        max_hops: Chain resolution bound
        root_path: URL that never receives a redirect

    Returns:
        Aggregated outcome of the batch
    """
    result = RedirectCreationResult()

    eligible: list[UrlChange] = []
    unpublished_moves: list[UrlChange] = []
    for change in changes:
        if change.old_url == change.new_url or change.old_url == root_path:
            logger.debug("Skipping redirect %s -> %s", change.old_url, change.new_url)
            result.skipped_count += 1
        elif not change.is_published:
            logger.debug("Skipping redirect %s -> %s (unpublished)", change.old_url, change.new_url)
            result.skipped_count += 1
            unpublished_moves.append(change)
        else:
            eligible.append(change)

    winners = {change.old_url: index for index, change in enumerate(eligible)}

    with span("redirects.create", count=len(changes)):
        for index, change in enumerate(eligible):
            if winners[change.old_url] != index:
                result.skipped_count += 1
                continue

            try:
                target = await resolve_final_destination(db_session, change.new_url, max_hops=max_hops)
            except ChainResolutionOverflowError as exc:
                _record_failure(result, change, str(exc))
                continue

            if target == change.old_url:
                result.skipped_count += 1
                continue

            try:
                async with db_session.begin_nested():
                    await create_or_update_redirect(db_session, change.old_url, target, user_id, root_path)
                    await retarget_redirects(db_session, change.old_url, target)
            except SQLAlchemyError as exc:
                _record_failure(result, change, str(exc))
                continue

            result.success_count += 1
            result.created.append((change.old_url, target))

        for change in unpublished_moves:
            try:
                target = await resolve_final_destination(db_session, change.new_url, max_hops=max_hops)
                async with db_session.begin_nested():
                    await retarget_redirects(db_session, change.old_url, target)
            except (ChainResolutionOverflowError, SQLAlchemyError) as exc:
                logger.warning("Could not retarget redirects aimed at %s: %s", change.old_url, exc)

    return result
