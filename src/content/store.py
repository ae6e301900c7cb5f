"""JSON-backed local draft store.

Persists every draft Post in a single JSON file, loaded on init and
rewritten in full after every mutation.  A corrupt file is treated as
absent: the store starts empty and the next write replaces it.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from postdesk.content.models import Post, SyncState
from postdesk.errors import MalformedLocalStateError

logger = logging.getLogger(__name__)

STORE_FILENAME = ".postdesk-drafts.json"

# Alias to avoid shadowing by DraftStore.list method
_list = list


class _StoreData(BaseModel):
    """Internal wrapper for JSON serialization."""

    posts: list[Post] = Field(default_factory=list)


class DraftStore:
    """Durable mapping of filename to draft Post."""

    def __init__(self, drafts_dir: Path) -> None:
        self._path = Path(drafts_dir) / STORE_FILENAME
        self._data = self._load()

    @property
    def path(self) -> Path:
        return self._path

    # ── Private helpers ──────────────────────────────────────────

    def _load(self) -> _StoreData:
        if not self._path.exists():
            return _StoreData()
        try:
            return self._decode(self._path.read_text(encoding="utf-8"))
        except (MalformedLocalStateError, OSError, UnicodeDecodeError) as exc:
            logger.warning("Corrupt draft store at %s, starting fresh: %s", self._path, exc)
            return _StoreData()

    @staticmethod
    def _decode(raw: str) -> _StoreData:
        try:
            data = _StoreData.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            raise MalformedLocalStateError(str(exc)) from exc
        if len({p.filename for p in data.posts}) != len(data.posts):
            raise MalformedLocalStateError("duplicate filenames in draft store")
        return data

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(self._data.model_dump_json(indent=2), encoding="utf-8")
        os.replace(tmp_path, self._path)

    def _find(self, filename: str) -> Post | None:
        for post in self._data.posts:
            if post.filename == filename:
                return post
        return None

    # ── Write operations ─────────────────────────────────────────

    def put(self, post: Post) -> None:
        """Insert or fully replace the draft with this filename."""
        self._data.posts = [p for p in self._data.posts if p.filename != post.filename]
        self._data.posts.append(post.model_copy(deep=True))
        self._save()

    def delete(self, filename: str) -> None:
        """Remove a draft.  Deleting an absent filename is a no-op."""
        remaining = [p for p in self._data.posts if p.filename != filename]
        if len(remaining) == len(self._data.posts):
            return
        self._data.posts = remaining
        self._save()

    # ── Read operations ──────────────────────────────────────────

    def get(self, filename: str) -> Post | None:
        """Return a copy of the draft, or None if not found."""
        post = self._find(filename)
        return post.model_copy(deep=True) if post is not None else None

    def list(self, state: SyncState | None = None) -> _list[Post]:
        """Return drafts sorted by filename, optionally filtered by state."""
        posts = sorted(self._data.posts, key=lambda p: p.filename)
        if state is not None:
            posts = [p for p in posts if p.state == state]
        return [p.model_copy(deep=True) for p in posts]

    def exists(self, filename: str) -> bool:
        return self._find(filename) is not None

    def search(self, term: str) -> _list[Post]:
        """Case-insensitive match on filename or front-matter title."""
        needle = term.lower()
        return [
            p
            for p in self.list()
            if needle in p.filename.lower() or needle in p.title.lower()
        ]
