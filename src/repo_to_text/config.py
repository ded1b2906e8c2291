from __future__ import annotations

from enum import StrEnum, auto
from pathlib import PurePosixPath
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

ALLOWED_EXTENSIONS = frozenset({".js", ".jsx", ".ts", ".tsx", ".py", ".json"})

EXCLUDED_FILES = frozenset(
    {
        "package-lock.json",
        "yarn.lock",
        "package.json",
        "pnpm-lock.json",
        ".eslintrc.json",
        ".prettierrc.json",
    },
)

EXCLUDED_DIRS = frozenset(
    {
        "node_modules",
        ".next",
        "__pycache__",
        ".git",
        "_next",
    },
)

ALWAYS_INCLUDE = frozenset({"README.md"})

BATCH_SIZE = 10

START_PROGRESS = 5
ACQUIRED_PROGRESS = 25
COMPLETE_PROGRESS = 100


class EntryKind(StrEnum):
    """Kind of a node in a repository tree."""

    FILE = auto()
    DIRECTORY = auto()


class FilterPolicy(BaseModel):
    """Rules deciding which files end up in the conversion artifact.

    Attributes:
        excluded_file_names: basenames that are never included, whatever their extension.
        excluded_dir_names: directory names whose whole subtree is pruned from traversal.
        allowed_extensions: the only extensions (with leading dot) that are ever included.
        always_include_names: basenames included even when their extension is not allowed.
    """

    model_config = ConfigDict(frozen=True)

    excluded_file_names: frozenset[str] = Field(default=EXCLUDED_FILES)
    excluded_dir_names: frozenset[str] = Field(default=EXCLUDED_DIRS)
    allowed_extensions: frozenset[str] = Field(default=ALLOWED_EXTENSIONS)
    always_include_names: frozenset[str] = Field(default=ALWAYS_INCLUDE)

    def is_excluded_dir(self, name: str) -> bool:
        """Check whether a directory name prunes its subtree."""
        return name in self.excluded_dir_names

    def includes(self, path: str) -> bool:
        """Decide whether the file at `path` (POSIX, relative to the root) is included.

        Args:
            path (str): the root-relative file path

        Returns:
            bool: True if the file belongs in the artifact, False otherwise
        """
        pp = PurePosixPath(path)
        name = pp.name
        if name in self.excluded_file_names:
            return False
        if any(self.is_excluded_dir(part) for part in pp.parts[:-1]):
            return False
        return pp.suffix in self.allowed_extensions or name in self.always_include_names


DEFAULT_POLICY = FilterPolicy()


class TreeEntry(BaseModel):
    """A node discovered while traversing a repository.

    Attributes:
        path: POSIX path relative to the repository root.
        kind: whether the node is a file or a directory.
        locator: strategy-specific handle used to read the file
            (a download URL or an absolute filesystem path).
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="POSIX path relative to the repository root")
    kind: EntryKind = Field(default=EntryKind.FILE)
    locator: str = Field(default="", description="Download URL or absolute path")

    @computed_field
    @property
    def name(self) -> str:
        """Basename of the entry."""
        return PurePosixPath(self.path).name


class FileRecord(BaseModel):
    """An included file and its raw text, immutable once acquired."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="File path relative to repository root")
    content: str = Field(..., description="Raw file text")


class ProgressEvent(BaseModel):
    """One message of the progress channel.

    `progress`, `status` and `content` may co-occur. `error` is terminal and
    never shares an event with another field.
    """

    model_config = ConfigDict(frozen=True)

    progress: int | None = Field(default=None, ge=0, le=100)
    status: str | None = None
    content: str | None = None
    error: str | None = None

    @model_validator(mode="after")
    def _error_is_exclusive(self) -> Self:
        others = (self.progress, self.status, self.content)
        if self.error is not None and any(v is not None for v in others):
            msg = "an error event cannot carry progress, status or content"
            raise ValueError(msg)
        return self

    @property
    def is_terminal(self) -> bool:
        """Whether no event may follow this one."""
        return self.error is not None or self.progress == COMPLETE_PROGRESS

    def to_line(self) -> str:
        """Serialize as one newline-terminated JSON line, omitting absent fields."""
        return self.model_dump_json(exclude_none=True) + "\n"
