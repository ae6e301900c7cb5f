"""Content domain — post models, front-matter codec and the draft store.

Posts are edited locally in a JSON-backed DraftStore and carry the
front matter decoded from the Markdown header of the remote file.
"""

from postdesk.content.frontmatter import FrontMatter, FrontMatterValue, decode, encode
from postdesk.content.models import (
    Post,
    PostOutcome,
    RemotePost,
    RemotePostEntry,
    SyncAction,
    SyncReport,
    SyncState,
    UpsertResult,
)
from postdesk.content.store import DraftStore

__all__ = [
    "DraftStore",
    "FrontMatter",
    "FrontMatterValue",
    "Post",
    "PostOutcome",
    "RemotePost",
    "RemotePostEntry",
    "SyncAction",
    "SyncReport",
    "SyncState",
    "UpsertResult",
    "decode",
    "encode",
]
