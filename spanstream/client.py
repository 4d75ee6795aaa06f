"""
Streaming client: feeds the span buffer into one long-lived gRPC stream and keeps that stream
alive across failures.

States: IDLE -> STREAMING -> RESTARTING -> STREAMING ... and finally SUSPENDED, which is never
left. The response handler thread of the current stream reports how the stream ended; the
client classifies that once (see status.py) and restarts, reconnects or suspends.
"""

import enum
import logging
import threading
from typing import Any, Optional

import grpc

from .buffer import StreamingBuffer, SuspendedStreamingBuffer
from .config import StreamingConfig
from .connection import Connection
from .constants import LOG_TAG, RESPONSE_ERROR_METRIC
from .metrics import SupportabilityMetrics
from .record_status_handler import RecordStatusHandler
from .status import ResponseClassification, classify_status, status_code_of, status_metric_name

logger = logging.getLogger(LOG_TAG)

# Recoverable statuses that also drop the channel before reconnecting
_RECONNECT_STATUS_CODES = (grpc.StatusCode.UNAVAILABLE, grpc.StatusCode.FAILED_PRECONDITION)


class ClientState(enum.Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    RESTARTING = "restarting"
    SUSPENDED = "suspended"


class StreamingClient:
    """
    Exports spans over a single stream to the trace observer.

    enqueue() never blocks and never raises. Whether spans are written one at a time or in
    batches is decided here, from config.batching, for the life of the client.

    Args:
        connection: the connection manager that opens streams
        config: streaming settings (defaults to the connection's)
        metrics: supportability counters (Seen, Sent, errors by status)
    """

    def __init__(
        self,
        connection: Connection,
        config: Optional[StreamingConfig] = None,
        metrics: Optional[SupportabilityMetrics] = None,
    ):
        self._connection = connection
        self._config = config or connection.config
        self._metrics = metrics or SupportabilityMetrics()
        self._batching = self._config.batching
        self._max_batch_size = self._config.max_batch_size
        self._lock = threading.RLock()
        self._buffer: StreamingBuffer = StreamingBuffer(self._config.queue_size, self._metrics)
        self._state = ClientState.IDLE
        self._response_handler: Optional[RecordStatusHandler] = None
        # Bumped whenever the current stream is abandoned; a stream opened under an older
        # generation is discarded instead of installed.
        self._generation = 0
        self._stopped = False

    @property
    def buffer(self) -> StreamingBuffer:
        with self._lock:
            return self._buffer

    @property
    def state(self) -> ClientState:
        with self._lock:
            return self._state

    @property
    def suspended(self) -> bool:
        return self.state == ClientState.SUSPENDED

    @property
    def batching(self) -> bool:
        return self._batching

    @property
    def metrics(self) -> SupportabilityMetrics:
        return self._metrics

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def response_handler(self) -> Optional[RecordStatusHandler]:
        with self._lock:
            return self._response_handler

    def enqueue(self, span: Any) -> None:
        """Queue a span for export. Safe to call from any thread, at any time."""
        try:
            self.buffer.push(span)
        except Exception as e:
            logger.error(f"enqueue: failed to queue span: {e}")

    def __lshift__(self, span: Any) -> "StreamingClient":
        self.enqueue(span)
        return self

    def start_streaming(self, exponential_backoff: bool = True) -> Optional[RecordStatusHandler]:
        """
        Open a stream and start reading its responses. Blocks until the agent is connected and
        the stream is open; any failure to open it (channel, stub, metadata) is logged and
        retried with backoff. Returns the response handler, or None if the client was
        restarted, suspended or stopped meanwhile.
        """
        with self._lock:
            generation = self._generation
        return self._start_streaming(generation, exponential_backoff)

    def _superseded(self, generation: int) -> bool:
        with self._lock:
            return generation != self._generation or self._stopped or self._state == ClientState.SUSPENDED

    def _start_streaming(self, generation: int, exponential_backoff: bool) -> Optional[RecordStatusHandler]:
        handler = None
        while handler is None:
            if self._superseded(generation):
                return None
            try:
                self._connection.wait_for_agent_connect()
                if self._superseded(generation):
                    return None
                if self._batching:
                    handler = self.record_span_batches(exponential_backoff)
                else:
                    handler = self.record_spans(exponential_backoff)
            except Exception as e:
                logger.error(f"Unable to open a span stream to the trace observer: {e}", exc_info=True)
                self._connection.wait_before_reconnect(exponential_backoff)

        with self._lock:
            stale = generation != self._generation or self._stopped or self._state == ClientState.SUSPENDED
            if not stale:
                self._response_handler = handler
                self._state = ClientState.STREAMING
        if stale:
            logger.debug(f"Discarding span stream opened before a restart")
            handler.stop()
            return None
        handler.start()
        logger.info(f"Streaming spans to trace observer {self._config.host_and_port}")
        return handler

    def record_spans(self, exponential_backoff: bool = True) -> RecordStatusHandler:
        """Open a stream that writes one span per message."""
        enumerator = self.buffer.enumerator()
        responses = self._connection.record_spans(self, enumerator, exponential_backoff)
        return RecordStatusHandler(self, responses, enumerator)

    def record_span_batches(self, exponential_backoff: bool = True) -> RecordStatusHandler:
        """Open a stream that writes everything buffered, up to max_batch_size, per message."""
        enumerator = self.buffer.batch_enumerator(self._max_batch_size)
        responses = self._connection.record_span_batches(self, enumerator, exponential_backoff)
        return RecordStatusHandler(self, responses, enumerator)

    def _is_current(self, handler: Optional[RecordStatusHandler]) -> bool:
        with self._lock:
            return handler is None or handler is self._response_handler

    def handle_ack(self, handler: Optional[RecordStatusHandler] = None) -> None:
        """Called from the read path on the first response of a stream."""
        if self._is_current(handler):
            self._connection.note_connect_success()

    def handle_error(self, error: BaseException, handler: Optional[RecordStatusHandler] = None) -> None:
        """Called from the read path when the stream fails."""
        if not self._is_current(handler):
            logger.debug(f"Ignoring error from an abandoned span stream: {error}")
            return
        code = status_code_of(error)
        classification = classify_status(code)
        if classification == ResponseClassification.GRACEFUL_CLOSE:
            self.handle_close(handler)
            return

        self._metrics.increment(RESPONSE_ERROR_METRIC)
        self._metrics.increment(status_metric_name(code))
        logger.warning(f"Span stream to the trace observer failed with status {code.name}: {error}")

        if classification == ResponseClassification.PERMANENT_REJECT:
            self.suspend()
        elif code in _RECONNECT_STATUS_CODES:
            self._restart(handler, wait_for_backoff=True)
        else:
            self._restart(handler, reset_connection=False, exponential_backoff=False, wait_for_backoff=True)

    def handle_close(self, handler: Optional[RecordStatusHandler] = None) -> None:
        """Called from the read path when the observer ends the stream with OK."""
        if not self._is_current(handler):
            return
        logger.debug("The trace observer closed the stream with an OK response. Restarting the stream.")
        self._restart(handler, reset_connection=False)

    def restart(self) -> Optional[RecordStatusHandler]:
        """
        Tear down the current stream and open a new one, reconnecting from scratch.
        Spans still in the buffer are sent on the new stream.
        """
        return self._restart(None)

    def _restart(
        self,
        handler: Optional[RecordStatusHandler],
        reset_connection: bool = True,
        exponential_backoff: bool = True,
        wait_for_backoff: bool = False,
    ) -> Optional[RecordStatusHandler]:
        with self._lock:
            if self._state == ClientState.SUSPENDED or self._stopped:
                return None
            if handler is not None and handler is not self._response_handler:
                return None
            self._generation += 1
            generation = self._generation
            self._state = ClientState.RESTARTING
            old_handler, self._response_handler = self._response_handler, None
            buffer = self._buffer
        logger.debug(f"Restarting span stream (reset_connection={reset_connection})")
        buffer.interrupt()
        if old_handler is not None:
            old_handler.stop()
        if reset_connection:
            self._connection.reset()
        if wait_for_backoff:
            self._connection.wait_before_reconnect(exponential_backoff)
        return self._start_streaming(generation, exponential_backoff)

    def suspend(self) -> None:
        """
        Stop exporting for the life of the process. Buffered spans are discarded and later
        spans are accepted but dropped.
        """
        with self._lock:
            if self._state == ClientState.SUSPENDED:
                return
            self._generation += 1
            self._state = ClientState.SUSPENDED
            old_buffer, self._buffer = self._buffer, SuspendedStreamingBuffer(self._metrics)
            old_handler, self._response_handler = self._response_handler, None
        old_buffer.close()
        discarded = old_buffer.flush_queue()
        if old_handler is not None:
            old_handler.stop()
        logger.warning(
            f"The trace observer does not support span streaming; suspending export "
            f"({len(discarded)} buffered span(s) discarded)"
        )
        self._connection.reset()

    def stop(self) -> None:
        """Shut down: release the stream consumer and close the connection."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            self._generation += 1
            if self._state != ClientState.SUSPENDED:
                self._state = ClientState.IDLE
            old_handler, self._response_handler = self._response_handler, None
            buffer = self._buffer
        buffer.close()
        if old_handler is not None:
            old_handler.stop()
        self._connection.close()
        logger.debug(f"Span streaming stopped")

    def __repr__(self) -> str:
        return f"StreamingClient(state={self.state.value}, batching={self._batching}, buffer={self.buffer!r})"
