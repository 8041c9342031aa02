"""HTTP surface for articles, title changes and redirects."""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from litestar import Controller, get, post
from litestar.exceptions import NotFoundException
from sqlalchemy.ext.asyncio import AsyncSession

from retitle.db.models import Article
from retitle.db.services import article_service, redirect_service, title_change_service


@dataclass
class TitleChangeRequest:
    title: str
    user_id: UUID | None = None


def _article_payload(article: Article) -> dict[str, Any]:
    return {
        "article_number": article.article_number,
        "version_number": article.version_number,
        "article_type": article.article_type,
        "status_code": article.status_code,
        "title": article.title,
        "url_path": article.url_path,
        "parent_number": article.parent_number,
        "blog_key": article.blog_key,
        "is_published": article.is_published,
    }


class ArticleController(Controller):
    """Read articles and rename them."""

    path = "/"

    @get("/articles/{article_number:int}")
    async def get_article(self, db_session: AsyncSession, article_number: int) -> dict[str, Any]:
        article = await article_service.get_article(db_session, article_number)
        if article is None:
            raise NotFoundException(f"Article {article_number} not found.")
        return _article_payload(article)

    @post("/articles/{article_number:int}/title")
    async def change_title(
        self, db_session: AsyncSession, article_number: int, data: TitleChangeRequest
    ) -> dict[str, Any]:
        """Rename an article and report the URL changes and redirects it caused."""
        outcome = await title_change_service.change_title(
            db_session, article_number, data.title, user_id=data.user_id
        )
        redirects = outcome.redirects
        return {
            "article_number": outcome.article_number,
            "old_title": outcome.old_title,
            "new_title": outcome.new_title,
            "old_url": outcome.old_url,
            "new_url": outcome.new_url,
            "url_changes": [
                {"article_number": c.article_number, "old_url": c.old_url, "new_url": c.new_url}
                for c in outcome.url_changes
            ],
            "redirects": {
                "created": [{"from_url": f, "to_url": t} for f, t in redirects.created] if redirects else [],
                "skipped": redirects.skipped_count if redirects else 0,
                "failed": [f._asdict() for f in redirects.failed_redirects] if redirects else [],
            },
        }

    @get("/redirects")
    async def list_redirects(self, db_session: AsyncSession) -> list[dict[str, str]]:
        rows = await redirect_service.list_redirects(db_session)
        return [{"from_url": r.url_path, "to_url": r.redirect_target} for r in rows]
