from __future__ import annotations

import io
from itertools import batched
from typing import TYPE_CHECKING

from repo_to_text.config import ACQUIRED_PROGRESS, BATCH_SIZE, COMPLETE_PROGRESS

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator, Sequence

    from repo_to_text.config import FileRecord


def format_entry(rec: FileRecord) -> str:
    """Render one file as a path header followed by its content and a blank line."""
    return f"// Path: {rec.path}\n{rec.content}\n\n"


def order_records(recs: Iterable[FileRecord]) -> list[FileRecord]:
    """Order file records by path.

    Plain code-point comparison of the paths, which matches UTF-8 byte order:
    no case folding, no locale, no directories-first bucket.

    Args:
        recs (Iterable[FileRecord]): the records to order

    Returns:
        list[FileRecord]: the records sorted by path
    """
    return sorted(recs, key=lambda r: r.path)


def render_records(recs: Iterable[FileRecord]) -> str:
    """Render records in the given order as one block of text.

    Callers order the records first; `order_records(...)` then `render_records`
    gives the whole artifact.

    Args:
        recs (Iterable[FileRecord]): the file records to concatenate

    Returns:
        str: the concatenation of every formatted record
    """
    out = io.StringIO()
    for rec in recs:
        out.write(format_entry(rec))
    return out.getvalue()


def chunk_records(recs: Sequence[FileRecord], batch_size: int = BATCH_SIZE) -> Iterator[tuple[int, str]]:
    """Group formatted records into content chunks of `batch_size` files.

    Args:
        recs (Sequence[FileRecord]): the records, already ordered
        batch_size (int): the number of files per chunk; the last chunk may be shorter

    Yields:
        Iterator[tuple[int, str]]: the number of files processed so far and the chunk text
    """
    processed = 0
    for batch in batched(recs, batch_size):
        processed += len(batch)
        yield processed, render_records(batch)


def batch_progress(processed: int, total: int) -> int:
    """Progress value after `processed` of `total` files have been emitted.

    Args:
        processed (int): number of files emitted so far
        total (int): number of files to emit

    Returns:
        int: a value between the post-acquisition baseline and 100
    """
    if total <= 0:
        return COMPLETE_PROGRESS
    remaining = COMPLETE_PROGRESS - ACQUIRED_PROGRESS
    return ACQUIRED_PROGRESS + (processed * remaining) // total
