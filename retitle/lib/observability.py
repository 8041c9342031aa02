"""Logfire tracing for renames.

When logfire is installed and ``logfire.enabled`` is set, renames and
redirect batches get spans, redirect failures become warnings and
unexpected errors are reported with their traceback. Otherwise every call
does nothing and callers fall back to the stdlib logger.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from retitle.config import Settings

_logfire = None
_configured = False


def _active() -> bool:
    return _logfire is not None and _configured


def configure(settings: Settings) -> None:
    """Turn tracing on from ``settings.logfire``; a no-op when disabled or not installed."""
    global _logfire, _configured

    options = settings.logfire
    if not options.enabled:
        return

    try:
        import logfire as lf
    except ImportError:
        return

    kwargs: dict[str, Any] = {"service_name": options.service_name, "send_to_logfire": "if-token-present"}
    if options.environment:
        kwargs["environment"] = options.environment
    if options.sample_rate != 1.0:
        kwargs["trace_sample_rate"] = options.sample_rate
    if options.console:
        kwargs["console"] = lf.ConsoleOptions()

    lf.configure(**kwargs)
    _logfire = lf
    _configured = True


def instrument_sqlalchemy(engine: Engine) -> None:
    if _active():
        _logfire.instrument_sqlalchemy(engine=engine)


@contextmanager
def span(name: str, **attrs: Any):
    if not _active():
        yield None
        return
    with _logfire.span(name, **attrs) as current:
        yield current


def warning(msg: str, **kwargs: Any) -> None:
    if _active():
        _logfire.warn(msg, **kwargs)


def exception(msg: str, **kwargs: Any) -> bool:
    """Report the active exception. Returns False when tracing is off so the caller logs it instead."""
    if not _active():
        return False
    _logfire.exception(msg, **kwargs)
    return True
