"""Batch boundaries, progress reporting, and cancellation checks."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass

from .errors import PipelineCancelledError
from .schemas import BatchProgress

ProgressCallback = Callable[[BatchProgress], None]


class CancellationToken:
    """Thread-safe flag checked by aggregators between batches."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, path: str) -> None:
        if self._event.is_set():
            raise PipelineCancelledError(f"Processing cancelled while reading {path}.")


@dataclass(frozen=True)
class ProgressHook:
    """Callbacks invoked at every batch boundary of a row loop."""

    callback: ProgressCallback | None = None
    cancellation: CancellationToken | None = None

    def checkpoint(self, path: str, rows_processed: int, rows_total: int) -> None:
        """Report progress, then stop the run if cancellation was requested."""
        if self.callback is not None:
            self.callback(BatchProgress(path=path, rows_processed=rows_processed, rows_total=rows_total))
        if self.cancellation is not None:
            self.cancellation.raise_if_cancelled(path)


def iter_batches(
    rows: Sequence[str],
    batch_size: int,
    path: str,
    hook: ProgressHook | None = None,
) -> Iterator[Sequence[str]]:
    """Yield `rows` in slices of `batch_size`, checkpointing after each slice.

    Results never depend on where the boundaries fall; the checkpoint only
    gives the caller a chance to observe progress or cancel.
    """
    total = len(rows)
    if hook is not None and hook.cancellation is not None:
        hook.cancellation.raise_if_cancelled(path)
    for start in range(0, total, batch_size):
        yield rows[start : start + batch_size]
        if hook is not None:
            hook.checkpoint(path, min(start + batch_size, total), total)
