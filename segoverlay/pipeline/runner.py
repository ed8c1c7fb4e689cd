"""Background execution of pipeline runs with latest-wins publication."""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from queue import Empty, Queue
from typing import Optional

from segoverlay.errors import SegmentationError
from segoverlay.pipeline.processor import ImageInput, ProcessingResult, SegmentationPipeline

logger = logging.getLogger(__name__)


class BackgroundRunner:
    """Runs the pipeline off the interactive thread.

    Every submission gets an increasing run id. When a run finishes it only
    publishes if no newer run has been submitted since, so a slow earlier run
    can never overwrite a newer result. Failed runs publish nothing and the
    previously published result stays current; their futures carry the error.

    Results are handed to the interactive side through a queue drained by
    poll(), and optionally through on_result (called on the worker thread).
    Callers that need the outcome of one particular run, like the web
    server, wait on the future returned by submit() instead.
    """

    def __init__(
        self,
        pipeline: SegmentationPipeline,
        on_result: Optional[Callable[[ProcessingResult], None]] = None,
        max_workers: int = 1,
    ):
        self.pipeline = pipeline
        self.on_result = on_result
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="segoverlay")
        self._results: Queue = Queue()
        self._lock = threading.Lock()
        self._latest_run_id = 0
        self.latest_result: Optional[ProcessingResult] = None

    def submit(self, image: ImageInput) -> Future:
        """Queue a run for image.

        The future resolves to the ProcessingResult, or raises the
        SegmentationError that ended the run.
        """
        with self._lock:
            self._latest_run_id += 1
            run_id = self._latest_run_id
        logger.debug("Submitting run %d", run_id)
        future = self._executor.submit(self._execute, run_id, image)
        future.add_done_callback(self._log_unexpected)
        return future

    def _execute(self, run_id: int, image: ImageInput) -> ProcessingResult:
        try:
            result = self.pipeline.process(image)
        except SegmentationError as e:
            logger.error("Run %d failed (%s): %s", run_id, type(e).__name__, e)
            raise

        with self._lock:
            if run_id != self._latest_run_id:
                logger.debug("Dropping result of run %d, superseded by run %d", run_id, self._latest_run_id)
                return result
            self.latest_result = result
            self._results.put(result)
            if self.on_result:
                self.on_result(result)
        return result

    @staticmethod
    def _log_unexpected(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None and not isinstance(error, SegmentationError):
            logger.error("Run crashed: %s", error, exc_info=error)

    def poll(self) -> list[ProcessingResult]:
        """Drain published results without blocking."""
        published = []
        while True:
            try:
                published.append(self._results.get_nowait())
            except Empty:
                return published

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "BackgroundRunner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()
