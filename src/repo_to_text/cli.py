"""
repo-to-text: flatten a repository into a single text document for an LLM.

Overview
--------
Every included file is written as::

    // Path: src/app.ts
    <file content>

in path order. Only `.js .jsx .ts .tsx .py .json` files and `README.md` are
included; lock files and `node_modules`, `.next`, `__pycache__`, `.git`,
`_next` directories are skipped.

The repository is obtained from the GitHub contents API (`--strategy remote`,
default), a shallow `git clone` (`--strategy clone`) or a local directory
(`--strategy local`, implied when SOURCE is a directory). With `--server`, the
conversion runs on a `repo-to-text serve` instance and is streamed back.

Usage
-----
    repo-to-text convert https://github.com/owner/repo --output repo.txt
    repo-to-text convert owner/repo --strategy clone --output -
    repo-to-text convert ./my-project
    repo-to-text convert owner/repo --server http://127.0.0.1:8000
    repo-to-text serve --port 8000
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from repo_to_text import __version__
from repo_to_text.acquisition import make_strategy
from repo_to_text.channel import guard_events
from repo_to_text.consumer import ConversionResult, collect, stream_remote_conversion
from repo_to_text.exceptions import InvalidReferenceError
from repo_to_text.logging import logger, setup_logging
from repo_to_text.pipeline import convert
from repo_to_text.reference import parse_repository_reference
from repo_to_text.service import run_service
from repo_to_text.settings import Settings

if TYPE_CHECKING:
    from collections.abc import Sequence

EXIT_OK = 0
EXIT_CONVERSION_FAILED = 1
EXIT_INVALID_REFERENCE = 2


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse command-line arguments into settings.

    Options left unset fall back to `REPO_TO_TEXT_*` environment variables, then
    to the defaults of `Settings`.

    Args:
        argv (Sequence[str] | None): the arguments, without the program name

    Returns:
        Settings: the resulting configuration
    """
    # Accepted before or after the subcommand. SUPPRESS: a subparser must not
    # reset a value given at the top level.
    logging_opts = argparse.ArgumentParser(add_help=False)
    logging_opts.add_argument("--log-file", type=str, default=argparse.SUPPRESS, help="Log file path.")
    logging_opts.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=argparse.SUPPRESS,
        help="Minimum log level (default: INFO).",
    )

    p = argparse.ArgumentParser(
        prog="repo-to-text",
        description="Flatten a repository into a single path-annotated text document.",
        parents=[logging_opts],
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="command", required=True)

    conv = sub.add_parser(
        "convert",
        help="Convert a repository and write the artifact.",
        parents=[logging_opts],
    )
    conv.add_argument("source", help="GitHub URL, owner/repo, or a local directory.")
    conv.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output file, '-' for stdout (default: <repo>-analysis.txt).",
    )
    conv.add_argument(
        "--strategy",
        choices=["remote", "clone", "local"],
        default=None,
        help="How to obtain the repository.",
    )
    conv.add_argument("--server", type=str, default=None, help="Base URL of a repo-to-text service.")
    conv.add_argument("--github-api-url", type=str, default=None, help="GitHub API base URL.")
    conv.add_argument("--http-timeout", type=float, default=None, help="HTTP timeout in seconds.")

    serve = sub.add_parser("serve", help="Run the streaming HTTP service.", parents=[logging_opts])
    serve.add_argument("--host", type=str, default=None, help="Bind address.")
    serve.add_argument("--port", type=int, default=None, help="Port.")
    serve.add_argument(
        "--strategy",
        choices=["remote", "clone"],
        default=None,
        help="How the service obtains repositories.",
    )

    args = p.parse_args(argv)
    values = vars(args)
    command = values.pop("command")
    source = values.pop("source", "")
    return Settings.from_env(command=command, source=source, **values)


def default_output_name(source: str) -> str:
    """Name the artifact file after the repository.

    Args:
        source (str): the CLI source (reference or local directory)

    Returns:
        str: `<repo>-analysis.txt`, or `repository-analysis.txt` when no name can be derived
    """
    path = Path(source)
    if source and path.is_dir():
        name = path.resolve().name
    else:
        try:
            name = parse_repository_reference(source).repo_name
        except InvalidReferenceError:
            name = source.rstrip("/").rsplit("/", 1)[-1]
    return f"{name or 'repository'}-analysis.txt"


async def run_conversion(settings: Settings) -> ConversionResult:
    """Run one conversion, locally or through a remote service.

    Args:
        settings (Settings): the configuration; `source` names what to convert

    Raises:
        InvalidReferenceError: if the source is neither a directory nor a valid reference

    Returns:
        ConversionResult: the accumulated events
    """
    if settings.server:
        parse_repository_reference(settings.source)
        return await stream_remote_conversion(
            settings.server,
            settings.source,
            timeout=settings.http_timeout,
        )
    strategy = make_strategy(settings.source, settings)
    return await collect(guard_events(convert(strategy)))


def write_artifact(result: ConversionResult, output: str) -> None:
    if output == "-":
        sys.stdout.write(result.artifact)
        sys.stdout.flush()
        return
    out_path = Path(output)
    out_path.write_text(result.artifact, encoding="utf-8")
    print(f"Wrote {out_path} chars={len(result.artifact)}", file=sys.stderr)


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    setup_logging(settings.log_file or None, settings.log_level)

    if settings.command == "serve":
        run_service(settings)
        return EXIT_OK

    try:
        result = asyncio.run(run_conversion(settings))
    except InvalidReferenceError as e:
        logger.error("invalid_reference", source=settings.source, error=str(e))
        print(f"Error: {e}: {settings.source}", file=sys.stderr)
        return EXIT_INVALID_REFERENCE

    if not result.ok:
        print(f"Error: {result.error}", file=sys.stderr)
        return EXIT_CONVERSION_FAILED

    write_artifact(result, settings.output or default_output_name(settings.source))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
