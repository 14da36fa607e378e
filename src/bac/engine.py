"""Batch orchestration: schedule one ConversionTask per file and fold results.

Threading model
---------------
Workers run tasks. Everything a worker wants to say goes through one queue:
status changes (pushed by the task's `notify`) and completions (pushed by the
pool when a future finishes). The thread calling `run_batch` is the only
reader of that queue, the only writer of the counters, and the only thread
that calls listeners. A task always reports its terminal status before its
future completes, so listeners see a file's final status before the progress
event that counts it.
"""
from __future__ import annotations

import os
import queue
import time
from concurrent.futures import Future
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from loguru import logger

from .encoder import output_path_for
from .errors import ConversionError, ErrorKind
from .ffmpeg_check import Toolchain
from .logging import log_event, log_outcome
from .models import (
    AudioFile,
    BatchSummary,
    ConversionStatus,
    ProgressEvent,
    StatusEvent,
    TaskResult,
)
from .scheduler import DEFAULT_WORKERS, WorkerPool
from .settings import ConversionSettings
from .task import ConversionTask


Event = Union[StatusEvent, ProgressEvent]
Listener = Callable[[Event], None]

_STATUS = object()


def output_collisions(
    files: Sequence[AudioFile], settings: ConversionSettings, out_dir: Path
) -> Dict[int, ConversionError]:
    """Files whose output path was already claimed by an earlier file, by index."""
    claimed: Dict[str, AudioFile] = {}
    rejected: Dict[int, ConversionError] = {}
    for index, audio_file in enumerate(files):
        key = os.path.normcase(str(output_path_for(audio_file, settings, out_dir)))
        owner = claimed.setdefault(key, audio_file)
        if owner is not audio_file:
            rejected[index] = ConversionError(
                audio_file.name, ErrorKind.INVALID_SETTINGS, f"output path collides with {owner.path}"
            )
    return rejected


class ConversionEngine:
    def __init__(
        self,
        toolchain: Optional[Toolchain] = None,
        *,
        workers: int = DEFAULT_WORKERS,
        pool: Optional[WorkerPool] = None,
        probe: bool = True,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.toolchain = toolchain or Toolchain.resolve()
        self._pool = pool or WorkerPool(workers)
        self._owns_pool = pool is None
        self._probe = probe
        self._timeout_s = timeout_s
        self._listeners: List[Listener] = []

    @property
    def workers(self) -> int:
        return self._pool.max_workers

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for status and progress events; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: Event) -> None:
        for listener in list(self._listeners):
            listener(event)

    def run_batch(
        self,
        files: Sequence[AudioFile],
        settings: ConversionSettings,
        out_dir: Path | str,
    ) -> BatchSummary:
        """Convert every file; block until all are done; return the summary.

        Per-file failures are counted and reported, never raised. A file whose
        output path was already claimed by an earlier one fails without being
        scheduled. Raises only for problems with the batch itself: files that
        are not Pending or are listed twice, or an output directory that
        cannot be created.
        """
        t0 = time.perf_counter()
        files = list(files)
        out_dir = Path(out_dir).expanduser().absolute()
        snapshot = settings.snapshot()

        not_pending = [f.name for f in files if f.status is not ConversionStatus.PENDING]
        if not_pending:
            raise ValueError(f"files must be pending before a batch starts: {', '.join(not_pending)}")
        if len({id(f) for f in files}) != len(files):
            raise ValueError("the same file appears more than once in the batch")
        try:
            out_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConversionError("", ErrorKind.IO_ERROR, f"cannot create output directory {out_dir}", cause=e) from e

        total = len(files)
        summary = BatchSummary(total=total, successful=0, failed=0, output_dir=out_dir)
        if total == 0:
            logger.info("Nothing to convert")
            return summary

        logger.info(f"Converting {total} file(s) to {snapshot.describe()} with {self.workers} worker(s)")
        messages: "queue.Queue[tuple[Any, Any]]" = queue.Queue()

        def notify(audio_file: AudioFile, status: ConversionStatus, error: Optional[ConversionError]) -> None:
            messages.put((_STATUS, StatusEvent(audio_file, status, error)))

        collisions = output_collisions(files, snapshot, out_dir)
        for index, audio_file in enumerate(files):
            if index in collisions:
                self._reject(messages, index, audio_file, collisions[index])
                continue
            task = ConversionTask(
                audio_file,
                snapshot,
                out_dir,
                self.toolchain,
                notify=notify,
                probe=self._probe,
                timeout_s=self._timeout_s,
            )
            self._pool.submit_to(messages, index, task.execute)

        results: List[Optional[TaskResult]] = [None] * total
        done = 0
        while done < total:
            key, payload = messages.get()
            if key is _STATUS:
                self._emit(payload)
                continue
            index, fut = key, payload
            result = self._collect(files[index], fut)
            results[index] = result
            done += 1
            if result.ok:
                summary.successful += 1
            else:
                summary.failed += 1
            log_outcome(done, total, result)
            self._emit(ProgressEvent(done, total))

        summary.results = [r for r in results if r is not None]
        summary.elapsed_s = time.perf_counter() - t0
        log_event(
            "batch",
            msg=f"Conversion complete: {summary.successful} successful, {summary.failed} failed",
            total=total,
            successful=summary.successful,
            failed=summary.failed,
            output_dir=str(out_dir),
            elapsed_s=round(summary.elapsed_s, 3),
        )
        return summary

    @staticmethod
    def _reject(messages: "queue.Queue[tuple[Any, Any]]", index: int, audio_file: AudioFile, error: ConversionError) -> None:
        # Fails a file without scheduling it; goes through the queue like any task.
        for status in (ConversionStatus.PROCESSING, ConversionStatus.FAILED):
            audio_file.transition(status)
            messages.put((_STATUS, StatusEvent(audio_file, status, error if status is ConversionStatus.FAILED else None)))
        fut: Future = Future()
        fut.set_result(TaskResult(audio_file=audio_file, status=ConversionStatus.FAILED, error=error))
        messages.put((index, fut))

    def _collect(self, audio_file: AudioFile, fut: Future) -> TaskResult:
        try:
            return fut.result()
        except Exception as e:
            # Task raised something other than ConversionError; the file has
            # already been moved to Failed by the task.
            logger.opt(exception=e).debug(f"unexpected error converting {audio_file.name}")
            kind = ErrorKind.IO_ERROR if isinstance(e, OSError) else ErrorKind.ENCODER_ERROR
            error = ConversionError(audio_file.name, kind, f"An unexpected error occurred: {e}", cause=e)
            return TaskResult(audio_file=audio_file, status=ConversionStatus.FAILED, error=error)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_pool:
            self._pool.shutdown(wait=wait)

    def __enter__(self) -> "ConversionEngine":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown()
