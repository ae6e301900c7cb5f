"""Tests for the postdesk CLI."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

import postdesk.cli
import postdesk.config
from postdesk import __version__
from postdesk.cli import app
from postdesk.content.models import Post, SyncState
from postdesk.content.store import DraftStore
from postdesk.errors import UnauthorizedError


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture
def drafts_dir(tmp_path: Path, monkeypatch) -> Path:
    """Isolated working dir with no config files and a configured GitHub host."""
    for key in (
        "GIT_PROVIDER", "GITHUB_API_URL", "GITHUB_BRANCH", "GITEA_URL", "GITEA_TOKEN",
        "POSTDESK_CONTENT_DIR", "POSTDESK_DRAFTS_DIR", "POSTDESK_TOKEN",
        "POSTDESK_MAX_CONCURRENCY",
    ):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("GITHUB_OWNER", "jane")
    monkeypatch.setenv("GITHUB_REPO", "blog")
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_test")
    monkeypatch.setattr(postdesk.config, "GLOBAL_CONFIG_PATH", tmp_path / "no-global.toml")
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "drafts"
    path.mkdir()
    return path


@pytest.fixture
def remote(gateway, monkeypatch):
    """Route every network command to the in-memory gateway."""
    monkeypatch.setattr(postdesk.cli, "create_gateway", lambda host, token: gateway)
    return gateway


def _invoke(runner: CliRunner, drafts_dir: Path, *args: str):
    return runner.invoke(app, ["--drafts-dir", str(drafts_dir), *args])


class TestCLIBasics:
    """Help and version output."""

    def test_main_help(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("list", "status", "pull", "push", "delete"):
            assert command in result.output

    def test_main_version(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestLocalCommands:
    def test_new_and_list(self, runner: CliRunner, drafts_dir: Path) -> None:
        result = _invoke(runner, drafts_dir, "new", "hello.md", "--title", "Hello", "--tag", "astro")
        assert result.exit_code == 0
        assert "Created draft" in result.output

        post = DraftStore(drafts_dir).get("hello.md")
        assert post is not None
        assert post.front_matter == {"title": "Hello", "tags": ["astro"]}

        result = _invoke(runner, drafts_dir, "list")
        assert result.exit_code == 0
        assert "hello.md" in result.output

    def test_new_from_file(self, runner: CliRunner, drafts_dir: Path, tmp_path: Path) -> None:
        source = tmp_path / "import.md"
        source.write_text('---\ntitle: "Imported"\n---\nBody', encoding="utf-8")

        result = _invoke(runner, drafts_dir, "new", "imported.md", "--from-file", str(source))

        assert result.exit_code == 0
        post = DraftStore(drafts_dir).get("imported.md")
        assert post.front_matter == {"title": "Imported"}
        assert post.content == "Body"

    def test_new_rejects_bad_filename(self, runner: CliRunner, drafts_dir: Path) -> None:
        result = _invoke(runner, drafts_dir, "new", "notes.txt")
        assert result.exit_code == 1

    def test_new_rejects_duplicate(self, runner: CliRunner, drafts_dir: Path) -> None:
        _invoke(runner, drafts_dir, "new", "a.md")
        result = _invoke(runner, drafts_dir, "new", "a.md")
        assert result.exit_code == 1
        assert "already exists" in result.output

    def test_list_empty(self, runner: CliRunner, drafts_dir: Path) -> None:
        result = _invoke(runner, drafts_dir, "list")
        assert result.exit_code == 0
        assert "No posts available." in result.output

    def test_list_search_no_match(self, runner: CliRunner, drafts_dir: Path) -> None:
        _invoke(runner, drafts_dir, "new", "a.md")
        result = _invoke(runner, drafts_dir, "list", "--search", "zzz")
        assert "No posts found matching your search." in result.output

    def test_list_by_state(self, runner: CliRunner, drafts_dir: Path) -> None:
        store = DraftStore(drafts_dir)
        store.put(Post(filename="new.md"))
        store.put(Post(filename="clean.md", revision_token="s1", synced=True))

        result = _invoke(runner, drafts_dir, "list", "--state", "synced")

        assert "clean.md" in result.output
        assert "new.md" not in result.output

    def test_show_prints_encoded_post(self, runner: CliRunner, drafts_dir: Path) -> None:
        DraftStore(drafts_dir).put(
            Post(filename="a.md", content="Hello", front_matter={"title": "A"})
        )
        result = _invoke(runner, drafts_dir, "show", "a.md")
        assert result.exit_code == 0
        assert result.output == '---\ntitle: "A"\n---\n\nHello\n'

    def test_show_missing(self, runner: CliRunner, drafts_dir: Path) -> None:
        result = _invoke(runner, drafts_dir, "show", "nope.md")
        assert result.exit_code == 1

    def test_edit_with_flags_marks_unsynced(self, runner: CliRunner, drafts_dir: Path) -> None:
        DraftStore(drafts_dir).put(
            Post(filename="a.md", content="Body", revision_token="s1", synced=True)
        )

        result = _invoke(runner, drafts_dir, "edit", "a.md", "--title", "New", "--set", "draft=true")

        assert result.exit_code == 0
        assert "unsynced" in result.output
        post = DraftStore(drafts_dir).get("a.md")
        assert post.front_matter == {"title": "New", "draft": "true"}
        assert post.state == SyncState.LOCAL_DIRTY

    def test_edit_without_changes(self, runner: CliRunner, drafts_dir: Path) -> None:
        DraftStore(drafts_dir).put(
            Post(filename="a.md", front_matter={"title": "Same"}, revision_token="s1", synced=True)
        )

        result = _invoke(runner, drafts_dir, "edit", "a.md", "--title", "Same")

        assert "No changes." in result.output
        assert DraftStore(drafts_dir).get("a.md").synced is True

    def test_edit_bad_assignment(self, runner: CliRunner, drafts_dir: Path) -> None:
        _invoke(runner, drafts_dir, "new", "a.md")
        result = _invoke(runner, drafts_dir, "edit", "a.md", "--set", "novalue")
        assert result.exit_code == 1

    def test_status_counts(self, runner: CliRunner, drafts_dir: Path) -> None:
        store = DraftStore(drafts_dir)
        store.put(Post(filename="a.md"))
        store.put(Post(filename="b.md", revision_token="s1", push_error="stale token"))

        result = _invoke(runner, drafts_dir, "status")

        assert result.exit_code == 0
        assert "local_only" in result.output
        assert "stale token" in result.output

    def test_delete_local_only_needs_no_network(
        self, runner: CliRunner, drafts_dir: Path, monkeypatch
    ) -> None:
        def _no_network(*args, **kwargs):
            raise AssertionError("network used")

        monkeypatch.setattr(postdesk.cli, "create_gateway", _no_network)
        _invoke(runner, drafts_dir, "new", "a.md")

        result = _invoke(runner, drafts_dir, "delete", "a.md", "--yes")

        assert result.exit_code == 0
        assert DraftStore(drafts_dir).get("a.md") is None


class TestSyncCommands:
    def test_pull(self, runner: CliRunner, drafts_dir: Path, remote) -> None:
        remote.seed("a.md", "Remote body", {"title": "A"})

        result = _invoke(runner, drafts_dir, "pull")

        assert result.exit_code == 0
        assert "Pull: 1 ok, 0 failed" in result.output
        assert DraftStore(drafts_dir).get("a.md").synced is True

    def test_push(self, runner: CliRunner, drafts_dir: Path, remote) -> None:
        _invoke(runner, drafts_dir, "new", "a.md", "--title", "A")

        result = _invoke(runner, drafts_dir, "push")

        assert result.exit_code == 0
        assert "Push: 1 ok, 0 failed" in result.output
        assert remote.posts["a.md"][1] == {"title": "A"}
        assert DraftStore(drafts_dir).get("a.md").synced is True

    def test_push_nothing(self, runner: CliRunner, drafts_dir: Path, remote) -> None:
        result = _invoke(runner, drafts_dir, "push")
        assert result.exit_code == 0
        assert "Nothing to push." in result.output

    def test_push_conflict_exits_nonzero(self, runner: CliRunner, drafts_dir: Path, remote) -> None:
        remote.seed("a.md", "theirs")
        _invoke(runner, drafts_dir, "new", "a.md")

        result = _invoke(runner, drafts_dir, "push")

        assert result.exit_code == 1
        assert "conflict" in result.output
        assert "resolve" in result.output

    def test_unauthorized(self, runner: CliRunner, drafts_dir: Path, remote) -> None:
        remote.fail["__list__"] = UnauthorizedError("Bad credentials", status_code=401)
        _invoke(runner, drafts_dir, "new", "a.md")

        result = _invoke(runner, drafts_dir, "pull")

        assert result.exit_code == 1
        assert "Not authorized" in result.output
        assert DraftStore(drafts_dir).get("a.md") is not None

    def test_unconfigured_host(
        self, runner: CliRunner, drafts_dir: Path, remote, monkeypatch
    ) -> None:
        monkeypatch.delenv("GITHUB_OWNER")
        result = _invoke(runner, drafts_dir, "pull")
        assert result.exit_code == 1
        assert "not configured" in result.output

    def test_delete_synced(self, runner: CliRunner, drafts_dir: Path, remote) -> None:
        remote.seed("a.md", "x")
        _invoke(runner, drafts_dir, "pull")

        result = _invoke(runner, drafts_dir, "delete", "a.md", "--yes")

        assert result.exit_code == 0
        assert "a.md" not in remote.posts
        assert DraftStore(drafts_dir).get("a.md") is None

    def test_delete_conflict_keeps_draft(self, runner: CliRunner, drafts_dir: Path, remote) -> None:
        remote.seed("a.md", "x")
        _invoke(runner, drafts_dir, "pull")
        remote.posts["a.md"] = ("changed", {}, "rev-other")

        result = _invoke(runner, drafts_dir, "delete", "a.md", "--yes")

        assert result.exit_code == 1
        assert "The local draft was kept." in result.output
        assert DraftStore(drafts_dir).get("a.md") is not None

    def test_resolve_take_remote(self, runner: CliRunner, drafts_dir: Path, remote) -> None:
        _invoke(runner, drafts_dir, "new", "a.md")
        remote.seed("a.md", "theirs")

        result = _invoke(runner, drafts_dir, "resolve", "a.md", "--take-remote")

        assert result.exit_code == 0
        post = DraftStore(drafts_dir).get("a.md")
        assert post.content == "theirs"
        assert post.synced is True

    def test_resolve_keep_local_needs_pull(self, runner: CliRunner, drafts_dir: Path) -> None:
        _invoke(runner, drafts_dir, "new", "a.md")
        result = _invoke(runner, drafts_dir, "resolve", "a.md", "--keep-local")
        assert result.exit_code == 1
        assert "pull first" in result.output
