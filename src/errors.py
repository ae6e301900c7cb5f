"""Error taxonomy for postdesk.

Gateway errors are raised by the remote content API layer and reported
per post by the reconciler.  The two "malformed" errors are raised
internally and always caught: corrupt drafts degrade to an empty store,
unparseable front matter degrades to an empty header.
"""

from __future__ import annotations


class PostdeskError(Exception):
    """Base error for postdesk."""


class GatewayError(PostdeskError):
    """A remote content API call failed."""

    def __init__(
        self,
        message: str,
        *,
        filename: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.filename = filename
        self.status_code = status_code


class UnauthorizedError(GatewayError):
    """The capability token was rejected; the user must re-authenticate."""


class NotFoundError(GatewayError):
    """The post (or the content directory) does not exist remotely."""


class ConflictError(GatewayError):
    """The revision token is stale, or a create hit an existing path."""


class RateLimitedError(GatewayError):
    """The provider is throttling requests. Retry later."""

    def __init__(
        self,
        message: str,
        *,
        filename: str | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, filename=filename, status_code=status_code)
        self.retry_after = retry_after


class InvalidRemoteContentError(GatewayError):
    """The provider returned a file that is not a decodable UTF-8 post."""


class TransientNetworkError(GatewayError):
    """Connection failure, timeout or provider-side 5xx."""


class MalformedLocalStateError(PostdeskError):
    """The persisted draft collection could not be decoded."""


class MalformedFrontMatterError(PostdeskError):
    """A front-matter header could not be parsed."""
