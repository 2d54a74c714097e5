"""
Batch Pager: prefix-scoped enumeration and bounded batch deletion.

Listing is lazy and strictly forward: page N+1 is requested only after the
caller (or clear()) has finished with page N. clear() dispatches every
pending deletion for a page before asking for the next one, so memory stays
bounded by one page plus one batch.

Batch rules:
- every batch sent to the transport holds 1..batch_size keys (batch_size <= 100)
- a key that is already gone counts as success
- any other failure stops the run; objects deleted so far stay deleted and
  the caller gets PartialBatchFailure with the count
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from objectmesh.core import constants as C
from objectmesh.core.errors import PartialBatchFailure, TransportError
from objectmesh.storage.transport import ObjectRef, Transport

logger = logging.getLogger(__name__)

Predicate = Callable[[ObjectRef], bool]


@dataclass
class BatchReport:
    """Outcome of a completed clear() or delete_keys() run."""
    deleted: int = 0
    missing: int = 0
    batches: List[int] = field(default_factory=list)


class BatchPager:
    """
    Enumerates and deletes objects of one bucket in bounded batches.

    Keys handed to the pager are fully qualified; it never applies a
    namespace prefix itself.

    Example:
        >>> pager = BatchPager(transport, "media")
        >>> report = pager.clear("cache/", lambda ref: ref.key.endswith(".tmp"))
        >>> report.batches
        [100, 100, 50]
    """

    __slots__ = ("_transport", "_bucket", "_batch_size", "_page_size")

    def __init__(
        self,
        transport: Transport,
        bucket: str,
        batch_size: int = C.MAX_BATCH,
        page_size: int = C.DEFAULT_PAGE_SIZE,
    ) -> None:
        if not 1 <= batch_size <= C.MAX_BATCH:
            raise ValueError(f"batch_size must be between 1 and {C.MAX_BATCH}, got {batch_size}")
        self._transport = transport
        self._bucket = bucket
        self._batch_size = batch_size
        self._page_size = page_size

    # -------------------------------------------------------------------------
    # LISTING
    # -------------------------------------------------------------------------

    def pages(self, prefix: Optional[str]) -> Iterator[List[ObjectRef]]:
        """Yield listing pages in order, filtered to keys under `prefix`."""
        token: Optional[str] = None
        while True:
            page = self._transport.list_objects(
                self._bucket, prefix=prefix, page_token=token, page_size=self._page_size,
            )
            entries = []
            for ref in page.entries:
                if prefix and not ref.key.startswith(prefix):
                    logger.warning("Listing returned %s outside prefix %s, skipping", ref.key, prefix)
                    continue
                entries.append(ref)
            yield entries

            if page.next_token is None:
                return
            if page.next_token == token:
                raise TransportError.failed(
                    "list_objects", "continuation token did not advance", bucket=self._bucket,
                )
            token = page.next_token

    def list(self, prefix: Optional[str]) -> Iterator[ObjectRef]:
        """
        Lazily enumerate objects under `prefix`.

        Not restartable: a new call lists again from the first page and sees
        whatever changed in between.
        """
        for entries in self.pages(prefix):
            yield from entries

    # -------------------------------------------------------------------------
    # DELETION
    # -------------------------------------------------------------------------

    def clear(self, prefix: Optional[str], predicate: Optional[Predicate] = None) -> BatchReport:
        """
        Delete every object under `prefix` that `predicate` accepts.

        Raises:
            PartialBatchFailure: a deletion failed after others succeeded.
            TransportError: a failure before anything was deleted.
        """
        report = BatchReport()
        pending: List[str] = []

        for entries in self.pages(prefix):
            for ref in entries:
                if predicate is None or predicate(ref):
                    pending.append(ref.key)
                if len(pending) == self._batch_size:
                    self._dispatch(pending, report)
                    pending = []
            # this page's deletions go out before the next page is requested
            if pending:
                self._dispatch(pending, report)
                pending = []

        logger.debug(
            "Cleared %d objects under %r in %d batches",
            report.deleted, prefix or "", len(report.batches),
        )
        return report

    def delete_keys(self, keys: Iterable[str]) -> BatchReport:
        """Delete explicit keys in batches of at most batch_size."""
        report = BatchReport()
        pending: List[str] = []
        for key in keys:
            pending.append(key)
            if len(pending) == self._batch_size:
                self._dispatch(pending, report)
                pending = []
        if pending:
            self._dispatch(pending, report)
        return report

    def _dispatch(self, keys: Sequence[str], report: BatchReport) -> None:
        try:
            failures = self._transport.delete_objects(self._bucket, list(keys))
        except TransportError as e:
            if report.deleted:
                raise PartialBatchFailure.aborted(report.deleted, keys, cause=e) from e
            raise

        report.batches.append(len(keys))
        missing = [f for f in failures if f.not_found]
        hard = [f for f in failures if not f.not_found]
        report.missing += len(missing)
        report.deleted += len(keys) - len(failures)
        logger.debug(
            "Deleted batch of %d keys (%d already absent, %d failed)",
            len(keys), len(missing), len(hard),
        )

        if not hard:
            return
        first = hard[0]
        error = TransportError.failed(
            "delete_objects",
            f"{first.code} {first.message}".strip(),
            bucket=self._bucket,
            key=first.key,
        )
        if report.deleted:
            raise PartialBatchFailure.aborted(
                report.deleted, [f.key for f in hard], cause=error,
            ) from error
        raise error


__all__ = ["BatchPager", "BatchReport", "Predicate"]
