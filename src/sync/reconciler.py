"""Local-first reconciliation between the DraftStore and the Git host.

Pull merges the remote listing into the store with whole-post "local
wins" precedence: a draft with unpushed edits is never overwritten.
Push writes every unsynced draft against its stored revision token.
Both are best-effort batches that report one outcome per post.

Each post's store update happens only after its own request completes,
so an abandoned batch leaves every draft in a consistent state.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

from postdesk.content.frontmatter import FrontMatter, encode
from postdesk.content.models import (
    Post,
    PostOutcome,
    RemotePostEntry,
    SyncAction,
    SyncReport,
)
from postdesk.content.store import DraftStore
from postdesk.errors import PostdeskError
from postdesk.integrations.git_host import MARKDOWN_SUFFIXES, ContentGateway

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 4


def _failure(filename: str, action: SyncAction, exc: Exception) -> PostOutcome:
    return PostOutcome(
        filename=filename,
        action=action,
        ok=False,
        error=str(exc),
        error_kind=type(exc).__name__,
    )


class SyncReconciler:
    """Pull/push/delete orchestration over a DraftStore and a ContentGateway."""

    def __init__(
        self,
        store: DraftStore,
        gateway: ContentGateway | None = None,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self.store = store
        self._gateway = gateway
        self.max_concurrency = max(1, max_concurrency)

    @property
    def gateway(self) -> ContentGateway:
        if self._gateway is None:
            raise PostdeskError("No content gateway configured; local edits only")
        return self._gateway

    # ── Local mutations ──────────────────────────────────────────

    def status(self) -> list[Post]:
        return self.store.list()

    def create(
        self,
        filename: str,
        content: str = "",
        front_matter: FrontMatter | None = None,
    ) -> Post:
        """Start a new local-only draft.

        Raises:
            ValueError: If the filename is taken or not a Markdown file.
        """
        if not filename.endswith(MARKDOWN_SUFFIXES) or "/" in filename:
            raise ValueError(f"Post filename must be a .md or .mdx file name: {filename!r}")
        if self.store.exists(filename):
            raise ValueError(f"Post already exists: {filename}")
        post = Post(filename=filename, content=content, front_matter=dict(front_matter or {}))
        self.store.put(post)
        return post

    def edit(
        self,
        filename: str,
        *,
        content: str | None = None,
        front_matter: FrontMatter | None = None,
    ) -> Post:
        """Apply a local edit and mark the draft unsynced.

        Raises KeyError if the draft does not exist.
        """
        post = self._require(filename)
        if content is not None:
            post.content = content
        if front_matter is not None:
            post.front_matter = dict(front_matter)
        post.synced = False
        post.push_error = ""
        post.last_modified = datetime.now(tz=UTC)
        self.store.put(post)
        return post

    def keep_local(self, filename: str) -> Post:
        """Resolve a conflict in favour of the draft.

        Rebases the draft onto the newest remote revision seen by pull,
        so the next push overwrites the remote version.

        Raises:
            KeyError: If the draft does not exist.
            ValueError: If no remote revision has been observed.
        """
        post = self._require(filename)
        if post.remote_revision_token is None:
            raise ValueError(f"No remote revision known for {filename}; pull first")
        post.revision_token = post.remote_revision_token
        post.synced = False
        post.push_error = ""
        self.store.put(post)
        return post

    async def adopt_remote(self, filename: str) -> Post:
        """Resolve a conflict in favour of the remote, discarding local edits."""
        remote = await self.gateway.get_post(filename)
        post = Post(
            filename=filename,
            content=remote.content,
            front_matter=remote.front_matter,
            revision_token=remote.revision_token,
            remote_revision_token=remote.revision_token,
            synced=True,
            size=remote.size,
        )
        self.store.put(post)
        return post

    # ── Pull ─────────────────────────────────────────────────────

    async def pull(self) -> SyncReport:
        """Merge the remote listing into the draft store.

        Raises whatever the listing call raises; per-post fetch errors
        are reported instead.
        """
        report = SyncReport()
        entries = await self.gateway.list_posts()
        remote_names = {entry.filename for entry in entries}

        to_fetch: list[RemotePostEntry] = []
        for entry in entries:
            local = self.store.get(entry.filename)
            if local is None or (local.synced and local.revision_token != entry.revision_token):
                to_fetch.append(entry)
            elif local.synced:
                report.add(PostOutcome(filename=entry.filename, action=SyncAction.SKIP))
            else:
                self._note_remote_revision(local, entry.revision_token)
                report.add(PostOutcome(filename=entry.filename, action=SyncAction.KEEP_LOCAL))

        semaphore = asyncio.Semaphore(self.max_concurrency)
        await asyncio.gather(*(self._fetch(entry, semaphore, report) for entry in to_fetch))

        for post in self.store.list():
            if post.synced and post.revision_token and post.filename not in remote_names:
                logger.info("%s was deleted remotely, removing local copy", post.filename)
                self.store.delete(post.filename)
                report.add(PostOutcome(filename=post.filename, action=SyncAction.PRUNE))

        logger.info(
            "Pull complete: %d post(s) ok, %d failed",
            len(report.succeeded),
            len(report.failed),
        )
        return report

    async def _fetch(
        self,
        entry: RemotePostEntry,
        semaphore: asyncio.Semaphore,
        report: SyncReport,
    ) -> None:
        async with semaphore:
            try:
                remote = await self.gateway.get_post(entry.filename)
            except (PostdeskError, ValueError) as exc:
                logger.warning("Failed to fetch %s: %s", entry.filename, exc)
                report.add(_failure(entry.filename, SyncAction.FETCH, exc))
                return

        local = self.store.get(entry.filename)
        if local is not None and not local.synced:
            # edited while the fetch was in flight
            self._note_remote_revision(local, remote.revision_token)
            report.add(PostOutcome(filename=entry.filename, action=SyncAction.KEEP_LOCAL))
            return

        self.store.put(
            Post(
                filename=entry.filename,
                content=remote.content,
                front_matter=remote.front_matter,
                revision_token=remote.revision_token,
                remote_revision_token=remote.revision_token,
                synced=True,
                size=remote.size,
            )
        )
        report.add(PostOutcome(filename=entry.filename, action=SyncAction.FETCH))

    def _note_remote_revision(self, post: Post, revision_token: str) -> None:
        if post.remote_revision_token != revision_token:
            post.remote_revision_token = revision_token
            self.store.put(post)

    # ── Push ─────────────────────────────────────────────────────

    async def push(self) -> SyncReport:
        """Write every unsynced draft to the remote, one outcome per post."""
        report = SyncReport()
        pending = [post for post in self.store.list() if not post.synced]
        if not pending:
            return report

        semaphore = asyncio.Semaphore(self.max_concurrency)
        await asyncio.gather(*(self._push_one(post, semaphore, report) for post in pending))

        logger.info(
            "Push complete: %d pushed, %d failed",
            len(report.succeeded),
            len(report.failed),
        )
        return report

    async def _push_one(
        self,
        post: Post,
        semaphore: asyncio.Semaphore,
        report: SyncReport,
    ) -> None:
        async with semaphore:
            try:
                result = await self.gateway.upsert_post(
                    post.filename,
                    post.content,
                    post.front_matter,
                    post.revision_token,
                )
            except (PostdeskError, ValueError) as exc:
                logger.warning("Failed to push %s: %s", post.filename, exc)
                current = self.store.get(post.filename)
                if current is not None and not current.synced:
                    current.push_error = str(exc) or type(exc).__name__
                    self.store.put(current)
                report.add(_failure(post.filename, SyncAction.PUSH, exc))
                return

        current = self.store.get(post.filename)
        if current is None:
            logger.warning("%s was deleted locally during push", post.filename)
            report.add(PostOutcome(filename=post.filename, action=SyncAction.PUSH))
            return

        # Only the pushed snapshot is known to match the remote.
        unchanged = current.content == post.content and current.front_matter == post.front_matter
        current.revision_token = result.revision_token
        current.remote_revision_token = result.revision_token
        current.push_error = ""
        current.synced = unchanged
        current.size = len(encode(post.front_matter, post.content).encode("utf-8"))
        self.store.put(current)
        report.add(PostOutcome(filename=post.filename, action=SyncAction.PUSH))

    # ── Delete ───────────────────────────────────────────────────

    async def delete(self, filename: str) -> PostOutcome:
        """Delete a post remotely, then locally.

        A never-synced draft is only removed locally.  If the remote
        delete fails the draft is kept and the error reported.

        Raises KeyError if the draft does not exist.
        """
        post = self._require(filename)
        if post.revision_token is None:
            self.store.delete(filename)
            return PostOutcome(filename=filename, action=SyncAction.DELETE)

        try:
            await self.gateway.delete_post(filename, post.revision_token)
        except (PostdeskError, ValueError) as exc:
            logger.warning("Failed to delete %s: %s", filename, exc)
            return _failure(filename, SyncAction.DELETE, exc)

        self.store.delete(filename)
        return PostOutcome(filename=filename, action=SyncAction.DELETE)

    # ── Helpers ──────────────────────────────────────────────────

    def _require(self, filename: str) -> Post:
        post = self.store.get(filename)
        if post is None:
            raise KeyError(filename)
        return post
