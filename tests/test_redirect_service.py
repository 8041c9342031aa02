"""Tests for redirect chain resolution and batch redirect creation."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from retitle.db.models import StatusCode
from retitle.db.services import redirect_service
from retitle.db.services.redirect_service import (
    RedirectCreationResult,
    UrlChange,
    create_or_update_redirect,
    create_redirects,
    get_redirect,
    list_redirects,
    resolve_final_destination,
)
from retitle.lib.exceptions import ChainResolutionOverflowError


def change(old, new, published=True, number=1):
    return UrlChange(old_url=old, new_url=new, is_published=published, article_number=number)


async def _seed(session, *pairs):
    for from_url, to_url in pairs:
        await create_or_update_redirect(session, from_url, to_url)
    await session.commit()


async def _as_dict(session):
    return {r.url_path: r.redirect_target for r in await list_redirects(session)}


class TestResolveFinalDestination:
    async def test_non_redirect_url_is_its_own_destination(self, session):
        assert await resolve_final_destination(session, "/about") == "/about"

    async def test_follows_chain(self, session):
        await _seed(session, ("/a", "/b"), ("/b", "/c"))
        assert await resolve_final_destination(session, "/a") == "/c"

    async def test_hop_limit(self, session):
        await _seed(session, ("/a", "/b"), ("/b", "/c"), ("/c", "/d"))

        assert await resolve_final_destination(session, "/a", max_hops=3) == "/d"
        with pytest.raises(ChainResolutionOverflowError) as exc_info:
            await resolve_final_destination(session, "/a", max_hops=2)
        assert exc_info.value.url == "/a"

    async def test_cycle(self, session):
        await _seed(session, ("/x", "/y"), ("/y", "/x"))
        with pytest.raises(ChainResolutionOverflowError):
            await resolve_final_destination(session, "/x")


class TestCreateOrUpdateRedirect:
    async def test_creates_redirect_row(self, session):
        row = await create_or_update_redirect(session, "/old", "/new")
        await session.commit()

        assert row.status_code == StatusCode.REDIRECT
        assert row.redirect_target == "/new"
        assert row.is_published is True
        assert row.published_at is not None

    async def test_updates_existing_row(self, session):
        first = await create_or_update_redirect(session, "/old", "/new")
        second = await create_or_update_redirect(session, "/old", "/newer")
        await session.commit()

        assert first is second
        assert await _as_dict(session) == {"/old": "/newer"}

    async def test_root_never_redirects(self, session):
        assert await create_or_update_redirect(session, "/", "/home") is None
        assert await get_redirect(session, "/") is None


class TestCreateRedirects:
    async def test_creates_one_hop_redirects(self, session):
        result = await create_redirects(session, [change("/about", "/about-us"), change("/about/team", "/about-us/team", number=2)])
        await session.commit()

        assert result.success_count == 2
        assert result.all_succeeded
        assert result.created == [("/about", "/about-us"), ("/about/team", "/about-us/team")]
        assert await _as_dict(session) == {"/about": "/about-us", "/about/team": "/about-us/team"}

    async def test_skips_unpublished_noop_and_root(self, session):
        result = await create_redirects(
            session,
            [change("/draft", "/final", published=False), change("/same", "/same"), change("/", "/home")],
        )

        assert result.skipped_count == 3
        assert result.success_count == 0
        assert result.total_attempted == 3
        assert await list_redirects(session) == []

    async def test_duplicate_old_url_last_wins(self, session):
        result = await create_redirects(session, [change("/a", "/b"), change("/a", "/c")])
        await session.commit()

        assert result.success_count == 1
        assert result.skipped_count == 1
        assert await _as_dict(session) == {"/a": "/c"}

    async def test_target_is_resolved_before_writing(self, session):
        await _seed(session, ("/b", "/c"))

        await create_redirects(session, [change("/a", "/b")])
        await session.commit()

        assert (await get_redirect(session, "/a")).redirect_target == "/c"

    async def test_existing_redirects_are_retargeted(self, session):
        await _seed(session, ("/a", "/b"))

        await create_redirects(session, [change("/b", "/c")])
        await session.commit()

        assert await _as_dict(session) == {"/a": "/c", "/b": "/c"}

    async def test_unpublished_move_retargets_existing_redirects(self, session):
        await _seed(session, ("/a", "/b"))

        result = await create_redirects(session, [change("/b", "/c", published=False)])
        await session.commit()

        assert result.skipped_count == 1
        assert result.success_count == 0
        assert await _as_dict(session) == {"/a": "/c"}

    async def test_skips_redirect_back_to_itself(self, session):
        await _seed(session, ("/new", "/old"))

        result = await create_redirects(session, [change("/old", "/new")])

        assert result.skipped_count == 1
        assert result.success_count == 0

    async def test_overflow_is_recorded_not_raised(self, session):
        await _seed(session, ("/b", "/c"), ("/c", "/d"))

        result = await create_redirects(session, [change("/a", "/b", number=7)], max_hops=1)

        assert not result.all_succeeded
        failure = result.failed_redirects[0]
        assert failure.article_number == 7
        assert failure.old_url == "/a"

    async def test_write_failure_is_isolated(self, session):
        real = redirect_service.create_or_update_redirect

        async def flaky(db_session, from_url, to_url, user_id=None, root_path="/"):
            if from_url == "/broken":
                raise SQLAlchemyError("disk full")
            return await real(db_session, from_url, to_url, user_id, root_path)

        with patch.object(redirect_service, "create_or_update_redirect", AsyncMock(side_effect=flaky)):
            result = await create_redirects(session, [change("/broken", "/x"), change("/fine", "/y", number=2)])
        await session.commit()

        assert result.success_count == 1
        assert [f.old_url for f in result.failed_redirects] == ["/broken"]
        assert "disk full" in result.failed_redirects[0].error
        assert await _as_dict(session) == {"/fine": "/y"}


def test_result_totals():
    result = RedirectCreationResult(success_count=2, skipped_count=1)
    assert result.total_attempted == 3
    assert result.all_succeeded
