"""Tests for the logfire facade."""

from unittest.mock import MagicMock, patch

from retitle.config import LogfireConfig, Settings
from retitle.lib import observability


def test_configure_disabled_does_nothing():
    with patch.object(observability, "_logfire", None), patch.object(observability, "_configured", False):
        observability.configure(Settings(logfire=LogfireConfig(enabled=False)))
        assert observability._logfire is None


def test_inactive_calls_are_noops():
    with patch.object(observability, "_logfire", None), patch.object(observability, "_configured", False):
        with observability.span("title_change", article_number=1) as current:
            assert current is None
        observability.warning("Redirect {old_url} failed", old_url="/a")
        observability.instrument_sqlalchemy(MagicMock())


def test_active_span_and_warning_forward_to_logfire():
    lf = MagicMock()
    with patch.object(observability, "_logfire", lf), patch.object(observability, "_configured", True):
        with observability.span("redirects.create", count=2):
            pass
        observability.warning("Redirect {old_url} failed", old_url="/a")

    lf.span.assert_called_once_with("redirects.create", count=2)
    lf.warn.assert_called_once_with("Redirect {old_url} failed", old_url="/a")
