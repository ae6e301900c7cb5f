"""Post domain models — pure Pydantic v2 data types.

A Post is a locally held draft of one Markdown file under the site's
content directory.  Its sync state is derived from the ``synced`` flag,
the stored revision token and the last push error, so the persisted
record never carries a state that contradicts those fields.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from postdesk.content.frontmatter import FrontMatter


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class SyncState(StrEnum):
    """Per-post synchronization state."""

    LOCAL_ONLY = "local_only"
    SYNCED = "synced"
    LOCAL_DIRTY = "local_dirty"
    PUSH_FAILED = "push_failed"


class SyncAction(StrEnum):
    """What the reconciler did (or tried to do) with a post."""

    FETCH = "fetch"
    SKIP = "skip"
    KEEP_LOCAL = "keep_local"
    PRUNE = "prune"
    PUSH = "push"
    DELETE = "delete"


class Post(BaseModel):
    """A local draft of a Markdown post, keyed by filename.

    ``revision_token`` is the base revision the next write is checked
    against.  ``remote_revision_token`` is the newest revision seen on
    the remote during a pull; it does not change what a push overwrites.
    """

    filename: str
    content: str = ""
    front_matter: FrontMatter = Field(default_factory=dict)
    revision_token: str | None = None
    remote_revision_token: str | None = None
    last_modified: datetime = Field(default_factory=_utcnow)
    synced: bool = False
    push_error: str = ""
    size: int = 0

    @property
    def state(self) -> SyncState:
        if self.synced:
            return SyncState.SYNCED
        if self.push_error:
            return SyncState.PUSH_FAILED
        if self.revision_token is None:
            return SyncState.LOCAL_ONLY
        return SyncState.LOCAL_DIRTY

    @property
    def title(self) -> str:
        """Front-matter title, falling back to the filename."""
        title = self.front_matter.get("title")
        if isinstance(title, str) and title:
            return title
        return self.filename

    @property
    def has_remote_changes(self) -> bool:
        """True when a pull saw a newer remote revision than our base."""
        return (
            self.remote_revision_token is not None
            and self.remote_revision_token != self.revision_token
        )


class RemotePostEntry(BaseModel):
    """One Markdown file in the remote content directory listing."""

    filename: str
    path: str
    revision_token: str
    size: int = 0


class RemotePost(BaseModel):
    """A fetched and decoded remote post."""

    filename: str
    content: str
    front_matter: FrontMatter = Field(default_factory=dict)
    revision_token: str
    size: int = 0


class UpsertResult(BaseModel):
    """Outcome of a successful remote write."""

    revision_token: str
    commit_sha: str = ""


class PostOutcome(BaseModel):
    """Per-post result inside a sync batch."""

    filename: str
    action: SyncAction
    ok: bool = True
    error: str = ""
    error_kind: str = ""

    @property
    def is_conflict(self) -> bool:
        return self.error_kind == "ConflictError"

    @property
    def is_rate_limited(self) -> bool:
        return self.error_kind == "RateLimitedError"


class SyncReport(BaseModel):
    """Per-post results of a pull or push.  Batches are not transactional."""

    outcomes: list[PostOutcome] = Field(default_factory=list)

    def add(self, outcome: PostOutcome) -> None:
        self.outcomes.append(outcome)

    def get(self, filename: str) -> PostOutcome | None:
        for outcome in self.outcomes:
            if outcome.filename == filename:
                return outcome
        return None

    @property
    def succeeded(self) -> list[PostOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> list[PostOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def conflicts(self) -> list[PostOutcome]:
        return [o for o in self.outcomes if o.is_conflict]

    @property
    def ok(self) -> bool:
        return not self.failed
