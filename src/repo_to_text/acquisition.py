"""Acquisition strategies: how a repository's tree and file contents are obtained.

Every strategy is an async context manager owning the resources of exactly one
conversion (an HTTP client, a temporary clone directory, ...). Callers only rely
on `list_tree` and `read_file`.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Self
from urllib.parse import quote

import httpx

from repo_to_text.config import EntryKind, FilterPolicy, TreeEntry
from repo_to_text.exceptions import AcquisitionError, GitCommandError, ReadError
from repo_to_text.file_manipulation import read_text_async, walk_files
from repo_to_text.logging import logger
from repo_to_text.reference import parse_repository_reference

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from types import TracebackType

    from repo_to_text.reference import RepositoryReference
    from repo_to_text.settings import Settings

API_MEDIA_TYPE = "application/vnd.github.v3+json"
RAW_MEDIA_TYPE = "application/vnd.github.v3.raw"

_GITHUB_KINDS = {"file": EntryKind.FILE, "dir": EntryKind.DIRECTORY}


class AcquisitionStrategy(ABC):
    """Capability to list a repository tree and read its files."""

    label: str = "repository"

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:  # noqa: B027
        """Release the resources held for the conversion."""

    @abstractmethod
    def list_tree(self, policy: FilterPolicy) -> AsyncIterator[TreeEntry]:
        """Yield every file entry reachable from the root.

        Directories excluded by `policy` are pruned before being descended into.
        """

    @abstractmethod
    async def read_file(self, entry: TreeEntry) -> str:
        """Return the raw text of a file entry."""


class RemoteTreeStrategy(AcquisitionStrategy):
    """Walk a GitHub repository through the REST contents API."""

    def __init__(
        self,
        reference: RepositoryReference,
        settings: Settings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.reference = reference
        self.settings = settings
        self.label = reference.slug
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            base_url=self.settings.github_api_url,
            headers={"User-Agent": self.settings.user_agent},
            timeout=self.settings.http_timeout,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "RemoteTreeStrategy must be used as an async context manager"
            raise RuntimeError(msg)
        return self._client

    def _contents_url(self, path: str) -> str:
        return f"/repos/{self.reference.owner}/{self.reference.repo_name}/contents/{quote(path)}"

    def _ref_params(self) -> dict[str, str] | None:
        return {"ref": self.reference.branch} if self.reference.branch else None

    async def _get(
        self,
        url: str,
        *,
        accept: str,
        error_prefix: str,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        try:
            response = await self.client.get(url, params=params, headers={"Accept": accept})
        except httpx.HTTPError as e:
            raise AcquisitionError(message=f"{error_prefix}: {e}") from e
        if response.is_error:
            raise AcquisitionError(
                message=f"{error_prefix}: {response.reason_phrase}",
                status=response.status_code,
            )
        return response

    async def list_directory(self, path: str = "") -> list[dict[str, Any]]:
        """List one directory, following `Link: rel="next"` pagination.

        Args:
            path (str): directory path relative to the repository root

        Raises:
            AcquisitionError: if any page cannot be retrieved

        Returns:
            list[dict[str, Any]]: the raw items of every page, in order
        """
        items: list[dict[str, Any]] = []
        url: str | None = self._contents_url(path)
        params = self._ref_params()
        while url:
            response = await self._get(
                url,
                accept=API_MEDIA_TYPE,
                error_prefix="GitHub API error",
                params=params,
            )
            payload = response.json()
            items.extend(payload if isinstance(payload, list) else [payload])
            url = response.links.get("next", {}).get("url")
            params = None
        logger.info("directory_listed", repo=self.label, path=path or "/", items=len(items))
        return items

    async def list_tree(self, policy: FilterPolicy) -> AsyncIterator[TreeEntry]:
        seen: set[str] = set()
        async for entry in self._walk("", policy, seen):
            yield entry

    async def _walk(self, path: str, policy: FilterPolicy, seen: set[str]) -> AsyncIterator[TreeEntry]:
        for item in await self.list_directory(path):
            item_path = str(item.get("path", ""))
            if not item_path or item_path in seen:
                continue
            seen.add(item_path)

            kind = _GITHUB_KINDS.get(str(item.get("type")))
            if kind is None:
                logger.debug("skipped_entry", path=item_path, type=item.get("type"))
                continue
            if kind is EntryKind.DIRECTORY:
                if policy.is_excluded_dir(str(item.get("name") or Path(item_path).name)):
                    logger.debug("pruned_directory", path=item_path)
                    continue
                async for entry in self._walk(item_path, policy, seen):
                    yield entry
            else:
                yield TreeEntry(path=item_path, locator=str(item.get("download_url") or ""))

    async def read_file(self, entry: TreeEntry) -> str:
        if entry.locator:
            response = await self._get(
                entry.locator,
                accept=RAW_MEDIA_TYPE,
                error_prefix="Failed to fetch file content",
            )
        else:
            response = await self._get(
                self._contents_url(entry.path),
                accept=RAW_MEDIA_TYPE,
                error_prefix="Failed to fetch file content",
                params=self._ref_params(),
            )
        logger.debug("file_fetched", path=entry.path, size=len(response.content))
        return response.text


class LocalDirectoryStrategy(AcquisitionStrategy):
    """Walk a directory on the local filesystem."""

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.label = self.root.name or str(self.root)

    async def __aenter__(self) -> Self:
        if not self.root.is_dir():
            raise ReadError(path=self.root, message=f"Not a directory: {self.root}")
        return self

    async def list_tree(self, policy: FilterPolicy) -> AsyncIterator[TreeEntry]:
        entries = await asyncio.to_thread(walk_files, self.root.resolve(), policy)
        logger.info("directory_walked", root=str(self.root), files=len(entries))
        for entry in entries:
            yield entry

    async def read_file(self, entry: TreeEntry) -> str:
        return await read_text_async(Path(entry.locator))


async def run_git_clone(url: str, dest: Path, branch: str | None = None) -> None:
    """Shallow-clone `url` into `dest`.

    Args:
        url (str): the repository clone URL
        dest (Path): the directory to clone into (must not exist yet)
        branch (str | None): optional branch or tag to check out

    Raises:
        GitCommandError: if git is unavailable or the clone fails
    """
    cmd = ["git", "clone", "--depth", "1", "--single-branch"]
    if branch:
        cmd.extend(["--branch", branch])
    cmd.extend([url, str(dest)])
    command = " ".join(cmd)
    logger.info("git_clone_started", command=command)
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
        )
    except OSError as e:
        raise GitCommandError(
            message=f"git is not available: {e}",
            command=command,
            returncode=-1,
        ) from e
    try:
        stdout, stderr = await proc.communicate()
    except BaseException:
        # The child must not outlive this call: the clone directory is removed next.
        if proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            logger.warning("git_clone_killed", command=command)
        raise
    if proc.returncode != 0:
        err = stderr.decode("utf-8", errors="replace").strip()
        raise GitCommandError(
            message=f"git clone failed: {err or 'unknown error'}",
            status=proc.returncode,
            command=command,
            returncode=proc.returncode or -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=err,
        )


class CloneStrategy(LocalDirectoryStrategy):
    """Clone the repository into a temporary directory, then walk it.

    The temporary directory belongs to a single conversion and is removed when the
    strategy is closed, whether the conversion succeeded or not.
    """

    def __init__(self, reference: RepositoryReference) -> None:
        super().__init__(Path())
        self.reference = reference
        self.label = reference.slug
        self._tmpdir: tempfile.TemporaryDirectory[str] | None = None

    async def __aenter__(self) -> Self:
        self._tmpdir = tempfile.TemporaryDirectory(prefix="repo-to-text-")
        self.root = Path(self._tmpdir.name) / self.reference.repo_name
        logger.debug("clone_directory_created", path=self._tmpdir.name)
        return self

    async def aclose(self) -> None:
        if self._tmpdir is not None:
            await asyncio.to_thread(self._tmpdir.cleanup)
            logger.debug("clone_directory_removed", path=self._tmpdir.name)
            self._tmpdir = None

    async def list_tree(self, policy: FilterPolicy) -> AsyncIterator[TreeEntry]:
        if self._tmpdir is None:
            msg = "CloneStrategy must be used as an async context manager"
            raise RuntimeError(msg)
        await run_git_clone(self.reference.clone_url, self.root, self.reference.branch)
        async for entry in super().list_tree(policy):
            yield entry


def strategy_for_reference(reference: RepositoryReference, settings: Settings) -> AcquisitionStrategy:
    """Build the remote strategy selected by `settings.strategy` for a repository reference."""
    if settings.strategy == "clone":
        return CloneStrategy(reference)
    return RemoteTreeStrategy(reference, settings)


def make_strategy(source: str, settings: Settings) -> AcquisitionStrategy:
    """Build a strategy for a CLI source: a local directory or a repository reference.

    Args:
        source (str): a local directory path or any accepted repository reference
        settings (Settings): configuration selecting the acquisition strategy

    Raises:
        InvalidReferenceError: if `source` is neither a directory nor a valid reference

    Returns:
        AcquisitionStrategy: the strategy to convert `source` with
    """
    if settings.strategy == "local" or (source and Path(source).is_dir()):
        return LocalDirectoryStrategy(Path(source))
    return strategy_for_reference(parse_repository_reference(source), settings)
