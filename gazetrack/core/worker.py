"""
Capture-thread -> processing-thread frame hand-off.

At most ``1 + queue_depth`` frames are in the system (one in flight plus the
queue). With depth 0 a new frame is dropped while another is in flight; with
depth 1-2 the oldest queued frame is discarded in favour of the newest.
"""
from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, Optional

import numpy as np

from .schema import GazeSample
from .tracker import ModelUnavailableError

logger = logging.getLogger(__name__)


class FrameWorker:
    def __init__(
        self,
        process: Callable[[np.ndarray], GazeSample],
        *,
        on_sample: Optional[Callable[[GazeSample], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        queue_depth: int = 0,
    ):
        if not 0 <= queue_depth <= 2:
            raise ValueError("queue_depth must be 0, 1 or 2")
        self.process = process
        self.on_sample = on_sample
        self.on_error = on_error
        self.queue_depth = int(queue_depth)

        self._q: "queue.Queue[np.ndarray]" = queue.Queue(maxsize=self.queue_depth + 1)
        self._slots = threading.BoundedSemaphore(self.queue_depth + 1)
        self._count_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.processed = 0
        self.dropped = 0
        self.error: Optional[BaseException] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self.error = None
        self._thread = threading.Thread(target=self._loop, name="GazeTrack-Frames", daemon=True)
        self._thread.start()
        logger.info("Frame worker started (queue_depth=%d)", self.queue_depth)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
        while True:
            try:
                self._q.get_nowait()
            except queue.Empty:
                break
            self._slots.release()
        logger.info("Frame worker stopped: processed=%d dropped=%d", self.processed, self.dropped)

    def submit(self, frame: np.ndarray) -> bool:
        """Offer a frame from the capture thread. Never blocks.

        Returns True if the frame will be processed.
        """
        if self._slots.acquire(blocking=False):
            self._q.put_nowait(frame)
            return True

        if self.queue_depth == 0:
            self._count_drop()
            return False

        # latest-frame semantics: the discarded frame's slot carries the new one
        try:
            self._q.get_nowait()
        except queue.Empty:
            self._count_drop()
            return False
        self._q.put_nowait(frame)
        self._count_drop()
        return True

    def raise_if_failed(self) -> None:
        if self.error is not None:
            raise self.error

    def _count_drop(self) -> None:
        with self._count_lock:
            self.dropped += 1

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                frame = self._q.get(timeout=0.1)
            except queue.Empty:
                continue

            try:
                sample = self.process(frame)
                with self._count_lock:
                    self.processed += 1
                if self.on_sample is not None:
                    self.on_sample(sample)
            except ModelUnavailableError as e:
                logger.error("Face model unavailable; stopping frame worker: %s", e)
                self.error = e
                if self.on_error is not None:
                    self.on_error(e)
                self._stop_event.set()
            except Exception as e:
                logger.error("Error processing frame: %s", e, exc_info=True)
                if self.on_error is not None:
                    self.on_error(e)
            finally:
                self._slots.release()
