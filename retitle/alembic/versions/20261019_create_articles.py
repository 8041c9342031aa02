"""Create articles table.

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "a1b2c3d4e5f6"
down_revision = None
branch_labels = None
depends_on = None

INDEXED = [
    "article_number",
    "status_code",
    "url_path",
    "parent_number",
    "blog_key",
    "redirect_target",
    "publish_at",
    "user_id",
]


def upgrade() -> None:
    op.create_table(
        "articles",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("article_number", sa.Integer(), nullable=False),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("article_type", sa.Integer(), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=False),
        sa.Column("url_path", sa.String(1999), nullable=False),
        sa.Column("parent_number", sa.Integer(), nullable=True),
        sa.Column("blog_key", sa.String(128), nullable=True),
        sa.Column("redirect_target", sa.String(1999), nullable=True),
        sa.Column("title", sa.String(254), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("is_published", sa.Boolean(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("publish_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("user_id", sa.Uuid(), nullable=True),
        sa.Column("sa_orm_sentinel", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("article_number", "version_number", name="uq_articles_number_version"),
    )
    for column in INDEXED:
        op.create_index(f"ix_articles_{column}", "articles", [column])


def downgrade() -> None:
    for column in reversed(INDEXED):
        op.drop_index(f"ix_articles_{column}", table_name="articles")
    op.drop_table("articles")
