from datetime import datetime, UTC
from enum import IntEnum
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from retitle.db.base import Base


class ArticleType(IntEnum):
    GENERAL = 0
    BLOG_POST = 1
    BLOG_STREAM = 2


class StatusCode(IntEnum):
    ACTIVE = 0
    INACTIVE = 1
    DELETED = 2
    REDIRECT = 3


class Article(Base):
    """One stored version of a page, blog stream or blog post.

    Rows sharing an ``article_number`` are versions of the same logical
    article. Redirects live in the same table with ``status_code`` set to
    ``StatusCode.REDIRECT`` and the destination in ``redirect_target``.
    """

    __tablename__ = "articles"
    __table_args__ = (
        UniqueConstraint("article_number", "version_number", name="uq_articles_number_version"),
    )

    # Logical identity
    article_number: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    article_type: Mapped[int] = mapped_column(Integer, nullable=False, default=ArticleType.GENERAL)
    status_code: Mapped[int] = mapped_column(Integer, nullable=False, default=StatusCode.ACTIVE, index=True)

    # Addressing
    url_path: Mapped[str] = mapped_column(String(1999), nullable=False, index=True)
    parent_number: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    blog_key: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    redirect_target: Mapped[str | None] = mapped_column(String(1999), nullable=True, index=True)

    # Content fields
    title: Mapped[str] = mapped_column(String(254), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Publication fields
    is_published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    publish_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)

    # Owner (no FK: identity lives outside this store)
    user_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)

    @property
    def is_redirect(self) -> bool:
        return self.status_code == StatusCode.REDIRECT

    @property
    def is_blog_stream(self) -> bool:
        return self.article_type == ArticleType.BLOG_STREAM

    def is_live(self, now: datetime | None = None) -> bool:
        """Whether this version is visible at its URL right now.

        A version scheduled for the future is not live yet.
        """
        if self.status_code != StatusCode.ACTIVE or not self.is_published:
            return False
        if self.publish_at is None:
            return True
        publish_at = self.publish_at
        if publish_at.tzinfo is None:
            publish_at = publish_at.replace(tzinfo=UTC)
        return publish_at <= (now or datetime.now(UTC))
