from dataclasses import dataclass
from pathlib import Path


@dataclass(eq=False)
class RepoToTextError(Exception):
    """Base exception for errors in the repo_to_text package."""

    message: str = "Repository conversion failed."

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class InvalidReferenceError(RepoToTextError):
    """Raised when a repository reference cannot be parsed."""

    reference: str = ""
    message: str = "Invalid GitHub URL format"


@dataclass(eq=False)
class AcquisitionError(RepoToTextError):
    """Raised when listing or fetching repository contents fails."""

    message: str = "Failed to acquire repository contents."
    status: int | None = None


@dataclass(eq=False)
class GitCommandError(AcquisitionError):
    """Raised when a git command fails."""

    command: str = ""
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""


@dataclass(eq=False)
class ReadError(RepoToTextError):
    """Raised when a local file cannot be read."""

    path: Path | None = None
    message: str = "Failed to read file."


@dataclass(eq=False)
class MessageDecodeError(RepoToTextError):
    """Raised when a progress-channel line is not a valid event."""

    line: str = ""
    message: str = "Unparsable progress message."
