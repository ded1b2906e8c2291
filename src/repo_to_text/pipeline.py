"""The conversion pipeline: acquire, filter, order, batch and report progress."""

from __future__ import annotations

from contextlib import aclosing
from typing import TYPE_CHECKING

from repo_to_text.config import (
    ACQUIRED_PROGRESS,
    BATCH_SIZE,
    COMPLETE_PROGRESS,
    DEFAULT_POLICY,
    START_PROGRESS,
    EntryKind,
    FileRecord,
    FilterPolicy,
    ProgressEvent,
)
from repo_to_text.logging import logger
from repo_to_text.output_construction import batch_progress, chunk_records, order_records

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from repo_to_text.acquisition import AcquisitionStrategy

COMPLETE_STATUS = "Conversion complete!"


async def acquire_records(
    strategy: AcquisitionStrategy,
    policy: FilterPolicy = DEFAULT_POLICY,
) -> AsyncIterator[FileRecord]:
    """Read every included file of the strategy's tree, one at a time.

    The policy is applied to each entry as soon as it is discovered, so excluded
    files are never read. The strategy is closed before this generator finishes.

    Args:
        strategy (AcquisitionStrategy): where the tree and contents come from
        policy (FilterPolicy): the inclusion rules

    Yields:
        FileRecord: each included file, in discovery order
    """
    async with strategy:
        async for entry in strategy.list_tree(policy):
            if entry.kind is not EntryKind.FILE or not policy.includes(entry.path):
                continue
            content = await strategy.read_file(entry)
            yield FileRecord(path=entry.path, content=content)


async def convert(
    strategy: AcquisitionStrategy,
    policy: FilterPolicy = DEFAULT_POLICY,
    *,
    batch_size: int = BATCH_SIZE,
) -> AsyncIterator[ProgressEvent]:
    """Convert a repository into progress events carrying the artifact.

    Errors propagate to the caller; turning them into a terminal `error` event is
    the job of the progress channel.

    Args:
        strategy (AcquisitionStrategy): where the tree and contents come from
        policy (FilterPolicy): the inclusion rules
        batch_size (int): number of files per `content` event

    Yields:
        ProgressEvent: the event sequence, ending with the `progress: 100` event
    """
    log = logger.bind(repo=strategy.label)
    log.info("conversion_started")
    yield ProgressEvent(progress=START_PROGRESS, status="Fetching repository contents...")

    records: list[FileRecord] = []
    async with aclosing(acquire_records(strategy, policy)) as acquired:
        async for rec in acquired:
            records.append(rec)
            yield ProgressEvent(status=f"Processing file: {rec.path}")

    ordered = order_records(records)
    total = len(ordered)
    log.info("acquisition_complete", files=total)
    yield ProgressEvent(progress=ACQUIRED_PROGRESS, status=f"Found {total} files")

    for processed, chunk in chunk_records(ordered, batch_size):
        log.debug("batch_emitted", processed=processed, total=total, chars=len(chunk))
        yield ProgressEvent(content=chunk)
        if processed < total:
            yield ProgressEvent(
                progress=batch_progress(processed, total),
                status=f"Processing files... ({processed}/{total})",
            )

    log.info("conversion_complete", files=total)
    yield ProgressEvent(progress=COMPLETE_PROGRESS, status=COMPLETE_STATUS)
