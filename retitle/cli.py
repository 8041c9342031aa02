"""CLI commands for retitle."""

import asyncio
import logging
import os
import sys
from pathlib import Path
from uuid import UUID

import click

from retitle.config import get_settings


def _configure_logging() -> None:
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def _with_session(fn):
    from retitle.db.session import create_engine, create_session_maker

    engine = create_engine(get_settings().db)
    try:
        async with create_session_maker(engine)() as session:
            return await fn(session)
    finally:
        await engine.dispose()


@click.group()
@click.version_option(package_name="retitle")
def cli():
    """retitle - title change and redirect coordination."""
    pass


@cli.command()
@click.option("--host", default="127.0.0.1", help="Host to bind to")
@click.option("--port", default=8080, type=int, help="Port to bind to")
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def serve(host, port, reload):
    """Run the HTTP API."""
    from hypercorn.config import Config

    config = Config()
    config.application_path = "retitle.asgi:app"
    config.bind = [f"{host}:{port}"]
    config.loglevel = get_settings().log_level
    config.include_server_header = False

    if reload:
        config.use_reloader = True
        from hypercorn.run import run
        run(config)
        return

    from hypercorn.asyncio import serve as hypercorn_serve

    from retitle.asgi import app

    asyncio.run(hypercorn_serve(app, config))


@cli.command()
@click.argument("article_number", type=int)
@click.argument("title")
@click.option("--user-id", type=click.UUID, default=None, help="Actor recorded on new redirects")
def rename(article_number: int, title: str, user_id: UUID | None):
    """Change the title of ARTICLE_NUMBER to TITLE."""
    from retitle.db.services.title_change_service import change_title
    from retitle.lib.exceptions import TitleChangeError

    _configure_logging()

    async def _run(session):
        return await change_title(session, article_number, title, user_id=user_id)

    try:
        outcome = asyncio.run(_with_session(_run))
    except TitleChangeError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    click.echo(f"{outcome.old_url} -> {outcome.new_url}")
    for change in outcome.url_changes:
        if change.article_number != outcome.article_number:
            click.echo(f"  {change.old_url} -> {change.new_url}")
    if outcome.redirects is not None:
        click.echo(
            f"Redirects: {outcome.redirects.success_count} created, "
            f"{outcome.redirects.skipped_count} skipped, "
            f"{len(outcome.redirects.failed_redirects)} failed"
        )


@cli.command()
def redirects():
    """List stored redirects."""
    from retitle.db.services.redirect_service import list_redirects

    rows = asyncio.run(_with_session(list_redirects))
    for row in rows:
        click.echo(f"{row.url_path} -> {row.redirect_target}")


def _run_alembic(project_root: Path, args: list[str]) -> None:
    """Build an Alembic Config programmatically and run the given command."""
    from alembic.config import Config, CommandLine

    package_dir = Path(__file__).parent

    alembic_ini = project_root / "alembic.ini"
    if not alembic_ini.exists():
        alembic_ini = package_dir / "alembic.ini"

    cfg = Config(str(alembic_ini))
    cfg.set_main_option("script_location", str(package_dir / "alembic"))

    cmd = CommandLine()
    options = cmd.parser.parse_args(args)
    if not hasattr(options, "cmd"):
        cmd.parser.error("too few arguments")
    else:
        cfg.cmd_opts = options
        fn, positional, kwarg = options.cmd
        fn(
            cfg,
            *[getattr(options, k, None) for k in positional],
            **{k: getattr(options, k, None) for k in kwarg},
        )


@cli.command(
    context_settings=dict(
        ignore_unknown_options=True,
        allow_extra_args=True,
    )
)
@click.pass_context
def db(ctx):
    """Run database migrations via Alembic.

    \b
    Examples:
        retitle db upgrade head    # Create or update the articles table
        retitle db downgrade -1    # Rollback one migration
        retitle db current         # Show current revision
    """
    project_root = Path.cwd()
    os.chdir(project_root)

    if not ctx.args:
        click.echo(ctx.get_help())
        return

    _run_alembic(project_root, ctx.args)


if __name__ == "__main__":
    cli()
