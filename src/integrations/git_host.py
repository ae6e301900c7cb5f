"""Git host integration — config and async content API clients.

Posts live as Markdown files under one directory of a repository.  Both
GitHub and Gitea expose that directory through a "contents" REST API
that returns base64 file bodies together with a blob SHA; the SHA is
the revision token that guards every update and delete.
"""

from __future__ import annotations

import base64
import logging
import time
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from postdesk.content.frontmatter import FrontMatter, decode, encode
from postdesk.content.models import RemotePost, RemotePostEntry, UpsertResult
from postdesk.errors import (
    ConflictError,
    GatewayError,
    InvalidRemoteContentError,
    NotFoundError,
    RateLimitedError,
    TransientNetworkError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
DEFAULT_CONTENT_DIR = "src/content/posts"
MARKDOWN_SUFFIXES = (".md", ".mdx")


def update_message(filename: str) -> str:
    return f"Update post: {filename}"


def delete_message(filename: str) -> str:
    return f"Delete post: {filename}"


class GitHostConfig(BaseModel):
    """Where the posts live on the Git host."""

    provider: str = "github"
    api_url: str = ""
    owner: str = ""
    repo: str = ""
    branch: str = "main"
    content_dir: str = DEFAULT_CONTENT_DIR
    timeout: float = 30.0

    @property
    def is_configured(self) -> bool:
        return bool(self.owner and self.repo and self.resolved_api_url)

    @property
    def resolved_api_url(self) -> str:
        if self.api_url:
            return self.api_url.rstrip("/")
        if self.provider == "github":
            return GITHUB_API_URL
        return ""


class ContentGateway(ABC):
    """Remote store of posts, keyed by filename.

    Every method may raise UnauthorizedError, NotFoundError,
    ConflictError, RateLimitedError or TransientNetworkError.
    """

    @abstractmethod
    async def list_posts(self) -> list[RemotePostEntry]:
        """List Markdown files in the content directory."""

    @abstractmethod
    async def get_post(self, filename: str) -> RemotePost:
        """Fetch and decode one post.

        Raises InvalidRemoteContentError if the file is not UTF-8 text
        or carries no revision.
        """

    @abstractmethod
    async def upsert_post(
        self,
        filename: str,
        content: str,
        front_matter: FrontMatter,
        revision_token: str | None = None,
    ) -> UpsertResult:
        """Create (no token) or update (token) a post in a single commit."""

    @abstractmethod
    async def delete_post(self, filename: str, revision_token: str) -> None:
        """Delete a post; the token must match the remote revision."""

    async def aclose(self) -> None:
        """Release network resources."""

    async def __aenter__(self) -> ContentGateway:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class _ContentsAPIGateway(ContentGateway):
    """Shared client for the GitHub-style ``/repos/{o}/{r}/contents`` API."""

    auth_scheme = "Bearer"
    create_method = "PUT"

    def __init__(
        self,
        config: GitHostConfig,
        token: str,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not token:
            raise UnauthorizedError("No access token provided")
        self.config = config
        self.base_url = config.resolved_api_url
        self._token = token
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.timeout)

    # ── HTTP plumbing ────────────────────────────────────────────

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"{self.auth_scheme} {self._token}",
            "Accept": "application/json",
        }

    def _file_path(self, filename: str) -> str:
        if not filename or "/" in filename or filename in (".", ".."):
            raise ValueError(f"Invalid post filename: {filename!r}")
        return f"{self.config.content_dir.strip('/')}/{filename}"

    def _contents_url(self, path: str) -> str:
        return (
            f"{self.base_url}/repos/{self.config.owner}/{self.config.repo}"
            f"/contents/{quote(path)}"
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        filename: str | None = None,
        params: dict[str, str] | None = None,
        body: dict[str, Any] | None = None,
    ) -> Any:
        url = self._contents_url(path)
        logger.debug("%s %s", method, url)
        try:
            response = await self._client.request(
                method, url, headers=self._headers(), params=params, json=body
            )
        except httpx.TransportError as exc:
            raise TransientNetworkError(
                f"{method} {path} failed: {exc}", filename=filename
            ) from exc

        _raise_for_status(response, method, path, filename)
        if not response.content:
            return None
        return response.json()

    # ── ContentGateway ───────────────────────────────────────────

    async def list_posts(self) -> list[RemotePostEntry]:
        directory = self.config.content_dir.strip("/")
        data = await self._request("GET", directory, params={"ref": self.config.branch})
        if not isinstance(data, list):
            raise NotFoundError(f"Content directory {directory!r} is not a directory")

        entries = [
            RemotePostEntry(
                filename=item["name"],
                path=item["path"],
                revision_token=item["sha"],
                size=item.get("size", 0),
            )
            for item in data
            if item.get("type", "file") == "file"
            and item.get("name", "").endswith(MARKDOWN_SUFFIXES)
        ]
        logger.debug("Listed %d post(s) under %s", len(entries), directory)
        return entries

    async def get_post(self, filename: str) -> RemotePost:
        data = await self._request(
            "GET",
            self._file_path(filename),
            filename=filename,
            params={"ref": self.config.branch},
        )
        if not isinstance(data, dict) or "content" not in data:
            raise NotFoundError(f"{filename} is not a file", filename=filename)
        if not data.get("sha"):
            raise InvalidRemoteContentError(f"No revision returned for {filename}", filename=filename)

        try:
            raw = base64.b64decode(data["content"]).decode("utf-8")
        except (ValueError, TypeError) as exc:
            raise InvalidRemoteContentError(
                f"{filename} is not valid base64 UTF-8 text: {exc}", filename=filename
            ) from exc
        front_matter, body = decode(raw)
        return RemotePost(
            filename=filename,
            content=body,
            front_matter=front_matter,
            revision_token=data["sha"],
            size=data.get("size", len(raw.encode("utf-8"))),
        )

    async def upsert_post(
        self,
        filename: str,
        content: str,
        front_matter: FrontMatter,
        revision_token: str | None = None,
    ) -> UpsertResult:
        raw = encode(front_matter, content)
        payload: dict[str, Any] = {
            "message": update_message(filename),
            "content": base64.b64encode(raw.encode("utf-8")).decode("ascii"),
            "branch": self.config.branch,
        }
        if revision_token:
            payload["sha"] = revision_token
            method = "PUT"
        else:
            method = self.create_method

        data = await self._request(method, self._file_path(filename), filename=filename, body=payload)
        new_token = (data or {}).get("content", {}).get("sha")
        if not new_token:
            raise GatewayError(f"No revision returned for {filename}", filename=filename)

        logger.info("Committed %s (%s)", filename, new_token[:7])
        return UpsertResult(
            revision_token=new_token,
            commit_sha=(data.get("commit") or {}).get("sha", ""),
        )

    async def delete_post(self, filename: str, revision_token: str) -> None:
        payload = {
            "message": delete_message(filename),
            "sha": revision_token,
            "branch": self.config.branch,
        }
        await self._request("DELETE", self._file_path(filename), filename=filename, body=payload)
        logger.info("Deleted %s", filename)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class GitHubContentGateway(_ContentsAPIGateway):
    """GitHub REST v3 contents API.  Creates and updates are both PUT."""

    auth_scheme = "Bearer"
    create_method = "PUT"

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["Accept"] = "application/vnd.github+json"
        headers["X-GitHub-Api-Version"] = "2022-11-28"
        return headers


class GiteaContentGateway(_ContentsAPIGateway):
    """Gitea v1 contents API.  Creates are POST, updates PUT."""

    auth_scheme = "token"
    create_method = "POST"


def create_gateway(
    config: GitHostConfig,
    token: str,
    *,
    client: httpx.AsyncClient | None = None,
) -> ContentGateway:
    """Build the gateway for ``config.provider``.

    Raises:
        ValueError: If the provider is unknown.
    """
    gateways: dict[str, type[_ContentsAPIGateway]] = {
        "github": GitHubContentGateway,
        "gitea": GiteaContentGateway,
    }
    gateway_cls = gateways.get(config.provider.lower())
    if gateway_cls is None:
        raise ValueError(f"Unknown git provider: {config.provider!r}")
    return gateway_cls(config, token, client=client)


def _raise_for_status(
    response: httpx.Response, method: str, path: str, filename: str | None
) -> None:
    status = response.status_code
    if status < 400:
        return

    detail = _error_detail(response)
    message = f"{method} {path} returned {status}: {detail}"
    kwargs: dict[str, Any] = {"filename": filename, "status_code": status}

    if status == 429 or (status == 403 and _is_rate_limited(response)):
        raise RateLimitedError(message, retry_after=_retry_after(response), **kwargs)
    if status in (401, 403):
        raise UnauthorizedError(message, **kwargs)
    if status == 404:
        raise NotFoundError(message, **kwargs)
    if status in (409, 422):
        raise ConflictError(message, **kwargs)
    if status >= 500:
        raise TransientNetworkError(message, **kwargs)
    raise GatewayError(message, **kwargs)


def _error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(data, dict) and "message" in data:
        return str(data["message"])
    return str(data)[:200]


def _is_rate_limited(response: httpx.Response) -> bool:
    return (
        response.headers.get("x-ratelimit-remaining") == "0"
        or "retry-after" in response.headers
    )


def _retry_after(response: httpx.Response) -> float | None:
    retry_after = response.headers.get("retry-after")
    if retry_after is not None:
        try:
            return float(retry_after)
        except ValueError:
            return None
    reset = response.headers.get("x-ratelimit-reset")
    if reset is not None:
        try:
            return max(0.0, float(reset) - time.time())
        except ValueError:
            return None
    return None
