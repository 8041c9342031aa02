import logging

from litestar import Request, Response
from litestar.exceptions import HTTPException
from litestar.status_codes import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_503_SERVICE_UNAVAILABLE,
)

from retitle.lib import observability

logger = logging.getLogger(__name__)


class TitleChangeError(Exception):
    """Base class for failures of a title change."""


class ArticleNotFoundError(TitleChangeError):
    """No article exists with the requested number."""

    def __init__(self, article_number: int) -> None:
        self.article_number = article_number
        super().__init__(f"Article {article_number} not found.")


class InvalidTitleError(TitleChangeError):
    """The proposed title is empty, unusable as a slug or reserved."""


class SlugConflictError(TitleChangeError):
    """The computed URL is already owned by another live article."""

    def __init__(self, url_path: str, article_number: int | None = None) -> None:
        self.url_path = url_path
        self.article_number = article_number
        super().__init__(f"The URL '{url_path}' is already in use by article {article_number}.")


class StructuralWriteError(TitleChangeError):
    """Updating an article, a dependent or a version row failed.

    ``retryable`` is set for failures the store reports as transient
    (deadlocks, dropped connections); the whole rename may be retried.
    """

    def __init__(self, message: str, retryable: bool = False) -> None:
        self.retryable = retryable
        super().__init__(message)


class ChainResolutionOverflowError(TitleChangeError):
    """Following a redirect chain exceeded the hop limit or looped."""

    def __init__(self, url: str, hops: int) -> None:
        self.url = url
        self.hops = hops
        super().__init__(f"Redirect chain starting at '{url}' did not terminate after {hops} hops.")


def _log_unhandled(request: Request, exc: Exception) -> None:
    if not observability.exception(
        "Unhandled exception on {method} {path}",
        method=request.method,
        path=request.url.path,
    ):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)


def _json_error(status_code: int, detail: str) -> Response:
    return Response(
        content={"status_code": status_code, "detail": detail},
        status_code=status_code,
        media_type="application/json",
    )


def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _json_error(exc.status_code, detail)


def title_change_error_handler(request: Request, exc: TitleChangeError) -> Response:
    """Map title change failures to HTTP status codes."""
    if isinstance(exc, ArticleNotFoundError):
        return _json_error(HTTP_404_NOT_FOUND, str(exc))
    if isinstance(exc, SlugConflictError):
        return _json_error(HTTP_409_CONFLICT, str(exc))
    if isinstance(exc, InvalidTitleError):
        return _json_error(HTTP_400_BAD_REQUEST, str(exc))
    if isinstance(exc, StructuralWriteError) and exc.retryable:
        logger.warning("Retryable rename failure on %s: %s", request.url.path, exc)
        return _json_error(HTTP_503_SERVICE_UNAVAILABLE, "The rename could not be completed, try again.")
    _log_unhandled(request, exc)
    return _json_error(HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


def internal_server_error_handler(request: Request, exc: Exception) -> Response:
    """Log an unexpected exception once and answer with a JSON 500."""
    _log_unhandled(request, exc)
    return _json_error(HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


EXCEPTION_HANDLERS = {
    HTTPException: http_exception_handler,
    TitleChangeError: title_change_error_handler,
    Exception: internal_server_error_handler,
}
