"""Parsing of GitHub repository references."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, computed_field

from repo_to_text.exceptions import InvalidReferenceError

GITHUB_HOST = "github.com"

_NAME = r"[\w.-]+"
_HTTPS_PATTERN = re.compile(
    rf"^(?:https?://)?(?:www\.)?github\.com/(?P<owner>{_NAME})/(?P<repo>{_NAME})"
    r"(?:/tree/(?P<branch>[^?#]+?))?/?(?:[?#].*)?$",
    re.IGNORECASE,
)
_SSH_PATTERN = re.compile(
    rf"^(?:ssh://)?git@github\.com[:/](?P<owner>{_NAME})/(?P<repo>{_NAME})/?$",
    re.IGNORECASE,
)
_SHORTHAND_PATTERN = re.compile(rf"^(?P<owner>{_NAME})/(?P<repo>{_NAME})$")


class RepositoryReference(BaseModel):
    """Normalized identifier of a GitHub repository.

    Attributes:
        owner: account or organization owning the repository.
        repo_name: repository name, without any `.git` suffix.
        branch: optional branch, tag or commit to convert; None means the default branch.
    """

    model_config = ConfigDict(frozen=True)

    owner: str = Field(..., min_length=1)
    repo_name: str = Field(..., min_length=1)
    branch: str | None = None

    @computed_field
    @property
    def https_url(self) -> str:
        """Canonical HTTPS form of the reference."""
        return f"https://{GITHUB_HOST}/{self.owner}/{self.repo_name}"

    @property
    def clone_url(self) -> str:
        """URL handed to `git clone`."""
        return f"{self.https_url}.git"

    @property
    def slug(self) -> str:
        """`owner/repo` shorthand."""
        return f"{self.owner}/{self.repo_name}"


def _strip_git_suffix(name: str) -> str:
    return name.removesuffix(".git")


def parse_repository_reference(url: str) -> RepositoryReference:
    """Normalize any accepted repository reference form.

    Accepted forms are a full HTTPS URL (optionally ending in `.git`, a slash or
    `/tree/<branch>`), an SSH-style `git@github.com:owner/repo` URL and the bare
    `owner/repo` shorthand. The function never performs I/O.

    Args:
        url (str): the user-supplied reference

    Raises:
        InvalidReferenceError: if the reference matches none of the accepted forms

    Returns:
        RepositoryReference: the normalized reference
    """
    text = (url or "").strip()
    for pattern in (_HTTPS_PATTERN, _SSH_PATTERN, _SHORTHAND_PATTERN):
        match = pattern.match(text)
        if match is None:
            continue
        owner = match.group("owner")
        repo = _strip_git_suffix(match.group("repo"))
        branch = match.groupdict().get("branch")
        if not repo or owner.lower() == GITHUB_HOST or {owner, repo} & {".", ".."}:
            break
        return RepositoryReference(owner=owner, repo_name=repo, branch=branch or None)
    raise InvalidReferenceError(reference=text)
