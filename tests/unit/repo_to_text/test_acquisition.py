from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from repo_to_text import acquisition
from repo_to_text.acquisition import (
    CloneStrategy,
    LocalDirectoryStrategy,
    RemoteTreeStrategy,
    make_strategy,
    run_git_clone,
    strategy_for_reference,
)
from repo_to_text.channel import guard_events
from repo_to_text.config import DEFAULT_POLICY, ProgressEvent
from repo_to_text.exceptions import AcquisitionError, GitCommandError, InvalidReferenceError, ReadError
from repo_to_text.pipeline import acquire_records, convert
from repo_to_text.reference import RepositoryReference
from repo_to_text.settings import Settings
from tests._fixtures.strategies import FakeGitHub, dir_item, file_item

REFERENCE = RepositoryReference(owner="octo", repo_name="demo")


def _settings() -> Settings:
    return Settings(github_api_url=FakeGitHub.base)


def _github(**kwargs: object) -> FakeGitHub:
    tree = {
        "": [
            [dir_item("src"), dir_item("node_modules"), file_item("README.md")],
            [file_item("package-lock.json"), file_item("README.md"), file_item("index.js")],
        ],
        "src": [[file_item("src/app.ts"), file_item("src/raw.py", download=False), dir_item("src/.next")]],
    }
    blobs = {
        "README.md": "# Demo",
        "index.js": "main()",
        "package-lock.json": "{}",
        "src/app.ts": "export {}",
        "src/raw.py": "print('raw')",
    }
    return FakeGitHub(tree, blobs, **kwargs)  # type: ignore[arg-type]


async def _records(strategy: object) -> dict[str, str]:
    return {rec.path: rec.content async for rec in acquire_records(strategy, DEFAULT_POLICY)}  # type: ignore[arg-type]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remote_strategy_lists_paginated_tree_and_reads_files() -> None:
    github = _github()
    strategy = RemoteTreeStrategy(REFERENCE, _settings(), transport=github.transport)

    records = await _records(strategy)

    assert records == {
        "README.md": "# Demo",
        "index.js": "main()",
        "src/app.ts": "export {}",
        "src/raw.py": "print('raw')",
    }
    listing_pages = [r for r in github.requests if "/contents/" in r.url.path and "page" in r.url.params]
    assert len(listing_pages) == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remote_strategy_never_touches_excluded_directories() -> None:
    github = _github()
    strategy = RemoteTreeStrategy(REFERENCE, _settings(), transport=github.transport)

    await _records(strategy)

    assert not any("node_modules" in p for p in github.requested_paths)
    assert not any(".next" in p for p in github.requested_paths)
    assert not any("package-lock.json" in p for p in github.requested_paths)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remote_strategy_deduplicates_overlapping_listings() -> None:
    github = _github()
    strategy = RemoteTreeStrategy(REFERENCE, _settings(), transport=github.transport)

    await _records(strategy)

    assert github.requested_paths.count("/raw/README.md") == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remote_strategy_sends_github_headers() -> None:
    github = _github()
    strategy = RemoteTreeStrategy(REFERENCE, _settings(), transport=github.transport)

    await _records(strategy)

    listing = github.requests[0]
    assert listing.headers["Accept"] == "application/vnd.github.v3+json"
    assert listing.headers["User-Agent"] == "Repository-To-Text-App"
    raw = next(r for r in github.requests if r.url.path.startswith("/raw/"))
    assert raw.headers["Accept"] == "application/vnd.github.v3.raw"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remote_strategy_passes_branch_as_ref() -> None:
    github = _github()
    reference = RepositoryReference(owner="octo", repo_name="demo", branch="dev")
    strategy = RemoteTreeStrategy(reference, _settings(), transport=github.transport)

    await _records(strategy)

    assert github.requests[0].url.params["ref"] == "dev"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remote_listing_failure_carries_status() -> None:
    github = _github(failing_paths={"": 403})
    strategy = RemoteTreeStrategy(REFERENCE, _settings(), transport=github.transport)

    with pytest.raises(AcquisitionError) as exc_info:
        await _records(strategy)

    assert exc_info.value.status == 403
    assert str(exc_info.value) == "GitHub API error: Forbidden"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remote_file_failure_aborts_the_conversion() -> None:
    github = _github(failing_paths={"src/app.ts": 500})
    strategy = RemoteTreeStrategy(REFERENCE, _settings(), transport=github.transport)

    events = [e async for e in guard_events(convert(strategy))]

    assert events[-1] == ProgressEvent(error="Failed to fetch file content: Internal Server Error")
    assert not any(e.content for e in events)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_remote_strategy_requires_context_manager() -> None:
    strategy = RemoteTreeStrategy(REFERENCE, _settings())

    with pytest.raises(RuntimeError):
        await strategy.list_directory()


def _fake_clone(files: dict[str, str]):  # noqa: ANN202
    async def clone(url: str, dest: Path, branch: str | None = None) -> None:
        for rel, text in files.items():
            target = dest / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")

    return clone


@pytest.mark.unit
@pytest.mark.asyncio
async def test_clone_strategy_walks_clone_and_removes_it(mocker: MockerFixture) -> None:
    clone = mocker.patch.object(
        acquisition,
        "run_git_clone",
        side_effect=_fake_clone({"src/a.py": "a", ".git/config": "[core]", "yarn.lock": ""}),
    )
    strategy = CloneStrategy(REFERENCE)

    records = await _records(strategy)

    assert records == {"src/a.py": "a"}
    url, dest, branch = clone.call_args.args
    assert url == "https://github.com/octo/demo.git"
    assert branch is None
    assert not dest.exists()
    assert not dest.parent.exists()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_clone_directory_is_removed_when_clone_fails(mocker: MockerFixture) -> None:
    created: list[Path] = []

    async def failing_clone(url: str, dest: Path, branch: str | None = None) -> None:
        created.append(dest.parent)
        raise GitCommandError(message="git clone failed: not found", command="git clone", returncode=128)

    mocker.patch.object(acquisition, "run_git_clone", side_effect=failing_clone)

    events = [e async for e in guard_events(convert(CloneStrategy(REFERENCE)))]

    assert events[-1] == ProgressEvent(error="git clone failed: not found")
    assert created
    assert not created[0].exists()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_clone_directory_is_removed_when_a_read_fails(mocker: MockerFixture) -> None:
    mocker.patch.object(acquisition, "run_git_clone", side_effect=_fake_clone({"a.py": "a", "b.py": "b"}))
    mocker.patch.object(acquisition, "read_text_async", side_effect=ReadError(message="Failed to read file b.py"))
    strategy = CloneStrategy(REFERENCE)

    events = [e async for e in guard_events(convert(strategy))]

    assert events[-1] == ProgressEvent(error="Failed to read file b.py")
    assert not strategy.root.parent.exists()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_git_clone_reports_failures(mocker: MockerFixture, tmp_path: Path) -> None:
    proc = mocker.MagicMock(returncode=128)
    proc.communicate = mocker.AsyncMock(return_value=(b"", b"fatal: repository not found\n"))
    exec_mock = mocker.patch.object(
        acquisition.asyncio,
        "create_subprocess_exec",
        mocker.AsyncMock(return_value=proc),
    )

    with pytest.raises(GitCommandError) as exc_info:
        await run_git_clone("https://github.com/octo/demo.git", tmp_path / "demo", branch="main")

    args = exec_mock.call_args.args
    assert args[:5] == ("git", "clone", "--depth", "1", "--single-branch")
    assert ("--branch", "main") == args[5:7]
    assert exc_info.value.returncode == 128
    assert exc_info.value.stderr == "fatal: repository not found"
    assert str(exc_info.value) == "git clone failed: fatal: repository not found"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_git_clone_without_git(mocker: MockerFixture, tmp_path: Path) -> None:
    mocker.patch.object(
        acquisition.asyncio,
        "create_subprocess_exec",
        mocker.AsyncMock(side_effect=FileNotFoundError("git")),
    )

    with pytest.raises(GitCommandError, match="git is not available"):
        await run_git_clone("https://github.com/octo/demo.git", tmp_path / "demo")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_git_clone_kills_git_when_cancelled(mocker: MockerFixture, tmp_path: Path) -> None:
    started = asyncio.Event()

    async def hang() -> tuple[bytes, bytes]:
        started.set()
        await asyncio.Event().wait()
        return b"", b""

    proc = mocker.MagicMock(returncode=None)
    proc.communicate = mocker.AsyncMock(side_effect=hang)
    proc.wait = mocker.AsyncMock(return_value=-9)
    mocker.patch.object(
        acquisition.asyncio,
        "create_subprocess_exec",
        mocker.AsyncMock(return_value=proc),
    )

    task = asyncio.create_task(run_git_clone("https://github.com/octo/demo.git", tmp_path / "demo"))
    await started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    proc.kill.assert_called_once_with()
    proc.wait.assert_awaited_once()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_run_git_clone_does_not_kill_a_finished_process(mocker: MockerFixture, tmp_path: Path) -> None:
    proc = mocker.MagicMock(returncode=0)
    proc.communicate = mocker.AsyncMock(return_value=(b"", b""))
    mocker.patch.object(
        acquisition.asyncio,
        "create_subprocess_exec",
        mocker.AsyncMock(return_value=proc),
    )

    await run_git_clone("https://github.com/octo/demo.git", tmp_path / "demo")

    proc.kill.assert_not_called()


@pytest.mark.unit
def test_clone_strategy_shares_local_directory_state() -> None:
    strategy = CloneStrategy(REFERENCE)

    assert isinstance(strategy, LocalDirectoryStrategy)
    assert strategy.root == Path()
    assert strategy.label == "octo/demo"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_local_strategy_reads_included_files(tmp_path: Path, mocker: MockerFixture) -> None:
    (tmp_path / "node_modules").mkdir()
    (tmp_path / "node_modules" / "x.js").write_text("x", encoding="utf-8")
    (tmp_path / "app.py").write_text("print(1)\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("skip", encoding="utf-8")
    reader = mocker.spy(acquisition, "read_text_async")

    records = await _records(LocalDirectoryStrategy(tmp_path))

    assert records == {"app.py": "print(1)\n"}
    assert reader.call_count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_local_strategy_rejects_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(ReadError):
        await _records(LocalDirectoryStrategy(tmp_path / "missing"))


@pytest.mark.unit
def test_make_strategy_selects_by_source(tmp_path: Path) -> None:
    assert isinstance(make_strategy(str(tmp_path), Settings()), LocalDirectoryStrategy)
    assert isinstance(make_strategy("octo/demo", Settings()), RemoteTreeStrategy)
    assert isinstance(make_strategy("octo/demo", Settings(strategy="clone")), CloneStrategy)
    assert isinstance(strategy_for_reference(REFERENCE, Settings(strategy="clone")), CloneStrategy)


@pytest.mark.unit
def test_make_strategy_rejects_invalid_reference_before_io() -> None:
    with pytest.raises(InvalidReferenceError):
        make_strategy("https://example.com/not/github/at/all", Settings())
