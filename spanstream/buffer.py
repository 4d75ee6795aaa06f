"""
Bounded FIFO buffer between application threads (producers) and the single stream consumer.

push() never blocks and never raises: when the buffer is full the incoming span is dropped and
counted. The consumer drains the buffer through enumerator() / batch_enumerator(), iterators
handed to gRPC as the request side of one stream. interrupt() ends the current iterator
without losing buffered spans, so a new stream can pick up where the old one stopped.
"""

import logging
import threading
from collections import deque
from typing import Any, Deque, List, Optional

from .constants import (
    LOG_TAG,
    DEFAULT_QUEUE_SIZE,
    DEFAULT_MAX_BATCH_SIZE,
    SPANS_SEEN_METRIC,
    SPANS_SENT_METRIC,
    QUEUE_DUMPED_METRIC,
)
from .metrics import SupportabilityMetrics
from .span import SpanBatch

logger = logging.getLogger(LOG_TAG)


class StreamingBuffer:
    """
    Thread-safe bounded queue of spans awaiting a stream write.
    Many producers may push concurrently; only one consumer may pop.
    """

    def __init__(self, max_size: int = DEFAULT_QUEUE_SIZE, metrics: Optional[SupportabilityMetrics] = None):
        self._max_size = max_size
        self._metrics = metrics or SupportabilityMetrics()
        self._queue: Deque[Any] = deque()
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._closed = False
        # Bumped by interrupt(); a consumer bound to an older epoch stops.
        self._epoch = 0
        self._dumped = 0

    def push(self, item: Any) -> None:
        """Add a span, or drop and count it if the buffer is full. Never blocks or raises."""
        if item is None:
            return
        try:
            with self._lock:
                if self._closed:
                    logger.debug(f"push: buffer is closed, discarding span")
                    return
                dropped = len(self._queue) >= self._max_size
                if dropped:
                    self._dumped += 1
                else:
                    self._queue.append(item)
                    self._not_empty.notify()
            self._metrics.increment(SPANS_SEEN_METRIC)
            if dropped:
                self._metrics.increment(QUEUE_DUMPED_METRIC)
                logger.debug(f"push: buffer full ({self._max_size} spans), dropped incoming span")
        except Exception as e:
            logger.error(f"push: failed to buffer span: {e}")

    def __lshift__(self, item: Any) -> "StreamingBuffer":
        self.push(item)
        return self

    def pop_blocking(self, timeout: Optional[float] = None) -> Optional[Any]:
        """
        Wait for and remove the oldest span.
        Returns None if the buffer is closed or the timeout expired.
        """
        return self._pop(None, timeout)

    def _pop(self, consumer: Optional["BufferConsumer"], timeout: Optional[float] = None) -> Optional[Any]:
        with self._not_empty:
            self._not_empty.wait_for(lambda: self._queue or self._finished(consumer), timeout=timeout)
            if self._finished(consumer) or not self._queue:
                return None
            return self._queue.popleft()

    def _take(self, consumer: "BufferConsumer", limit: int) -> List[Any]:
        """Remove up to limit spans without waiting."""
        with self._lock:
            items = []
            while self._queue and len(items) < limit and not self._finished(consumer):
                items.append(self._queue.popleft())
            return items

    def _finished(self, consumer: Optional["BufferConsumer"]) -> bool:
        """Must be called holding the lock."""
        if self._closed:
            return True
        return consumer is not None and (consumer.cancelled or consumer.epoch != self._epoch)

    def _wake_consumers(self) -> None:
        with self._not_empty:
            self._not_empty.notify_all()

    def enumerator(self) -> "BufferConsumer":
        """Iterator of single spans for one stream, in FIFO order. Each span taken counts as sent."""
        with self._lock:
            return BufferConsumer(self, self._epoch)

    def batch_enumerator(self, max_batch_size: int = DEFAULT_MAX_BATCH_SIZE) -> "BufferConsumer":
        """
        Iterator of span batches for one stream. Waits for one span, then takes everything
        already buffered up to max_batch_size.
        """
        with self._lock:
            return BufferConsumer(self, self._epoch, max_batch_size=max_batch_size)

    def interrupt(self) -> None:
        """End the active enumerator. Buffered spans are kept for the next one."""
        with self._not_empty:
            self._epoch += 1
            self._not_empty.notify_all()

    def close(self) -> None:
        """Stop accepting spans and release any waiting consumer."""
        with self._not_empty:
            self._closed = True
            self._not_empty.notify_all()

    def flush_queue(self) -> List[Any]:
        """Remove and return everything buffered."""
        with self._lock:
            items = list(self._queue)
            self._queue.clear()
            return items

    def clear(self) -> None:
        with self._lock:
            self._queue.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def capacity(self) -> int:
        return self._max_size

    @property
    def dumped_count(self) -> int:
        """Spans dropped because the buffer was full."""
        return self._dumped

    @property
    def queue(self) -> List[Any]:
        """Snapshot of the buffered spans, oldest first."""
        with self._lock:
            return list(self._queue)

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(size={len(self)}, capacity={self._max_size}, dumped={self._dumped})"


class SuspendedStreamingBuffer(StreamingBuffer):
    """
    Installed once the trace observer has permanently rejected streaming.
    Accepts spans and silently discards them; consumers always see it as closed.
    """

    def __init__(self, metrics: Optional[SupportabilityMetrics] = None):
        super().__init__(max_size=0, metrics=metrics)
        self._closed = True

    def push(self, item: Any) -> None:
        """Count the span as seen, then discard it."""
        if item is not None:
            self._metrics.increment(SPANS_SEEN_METRIC)

    def pop_blocking(self, timeout: Optional[float] = None) -> Optional[Any]:
        return None

    def __len__(self) -> int:
        return 0


class BufferConsumer:
    """
    The request iterator of one stream. Ends when the buffer is closed or interrupted, or when
    cancel() is called; spans it has not yet taken stay in the buffer.
    """

    def __init__(self, buffer: StreamingBuffer, epoch: int, max_batch_size: Optional[int] = None):
        self._buffer = buffer
        self.epoch = epoch
        self.max_batch_size = max_batch_size
        self.cancelled = False

    def __iter__(self) -> "BufferConsumer":
        return self

    def __next__(self):
        first = self._buffer._pop(self)
        if first is None:
            logger.debug(f"Stream consumer finished (epoch {self.epoch})")
            raise StopIteration
        if self.max_batch_size is None:
            self._buffer._metrics.increment(SPANS_SENT_METRIC)
            return first
        spans = [first] + self._buffer._take(self, self.max_batch_size - 1)
        self._buffer._metrics.increment(SPANS_SENT_METRIC, len(spans))
        return SpanBatch(spans)

    def cancel(self) -> None:
        self.cancelled = True
        self._buffer._wake_consumers()
