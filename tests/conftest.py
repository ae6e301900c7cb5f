"""Shared fixtures: an in-memory content gateway."""

from __future__ import annotations

import asyncio

import pytest

from postdesk.content.frontmatter import FrontMatter
from postdesk.content.models import RemotePost, RemotePostEntry, UpsertResult
from postdesk.errors import ConflictError, NotFoundError
from postdesk.integrations.git_host import ContentGateway


class FakeGateway(ContentGateway):
    """Remote store with the provider's revision-token checks."""

    def __init__(self) -> None:
        self.posts: dict[str, tuple[str, FrontMatter, str]] = {}
        self.fail: dict[str, Exception] = {}
        self.upserts: list[tuple[str, str | None]] = []
        self.gets: list[str] = []
        self._counter = 0
        self.next_tokens: list[str] = []
        self.on_upsert = None

    def seed(self, filename: str, content: str, front_matter: FrontMatter | None = None) -> str:
        token = self._next_token()
        self.posts[filename] = (content, dict(front_matter or {}), token)
        return token

    def _next_token(self) -> str:
        if self.next_tokens:
            return self.next_tokens.pop(0)
        self._counter += 1
        return f"rev{self._counter}"

    async def list_posts(self) -> list[RemotePostEntry]:
        if "__list__" in self.fail:
            raise self.fail["__list__"]
        return [
            RemotePostEntry(filename=name, path=f"posts/{name}", revision_token=token)
            for name, (_, _, token) in sorted(self.posts.items())
        ]

    async def get_post(self, filename: str) -> RemotePost:
        self.gets.append(filename)
        await asyncio.sleep(0)
        if filename in self.fail:
            raise self.fail[filename]
        if filename not in self.posts:
            raise NotFoundError("missing", filename=filename)
        content, front_matter, token = self.posts[filename]
        return RemotePost(
            filename=filename,
            content=content,
            front_matter=front_matter,
            revision_token=token,
        )

    async def upsert_post(
        self,
        filename: str,
        content: str,
        front_matter: FrontMatter,
        revision_token: str | None = None,
    ) -> UpsertResult:
        self.upserts.append((filename, revision_token))
        await asyncio.sleep(0)
        if self.on_upsert is not None:
            self.on_upsert(filename)
        if filename in self.fail:
            raise self.fail[filename]
        existing = self.posts.get(filename)
        if revision_token is None and existing is not None:
            raise ConflictError("already exists", filename=filename, status_code=422)
        if revision_token is not None and (existing is None or existing[2] != revision_token):
            raise ConflictError("stale token", filename=filename, status_code=409)
        token = self._next_token()
        self.posts[filename] = (content, dict(front_matter), token)
        return UpsertResult(revision_token=token)

    async def delete_post(self, filename: str, revision_token: str) -> None:
        if filename in self.fail:
            raise self.fail[filename]
        existing = self.posts.get(filename)
        if existing is None:
            raise NotFoundError("missing", filename=filename, status_code=404)
        if existing[2] != revision_token:
            raise ConflictError("stale token", filename=filename, status_code=409)
        del self.posts[filename]


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()

