"""
Connection to the trace observer: owns the gRPC channel, builds per-stream metadata and
opens streams, retrying connection failures indefinitely with backoff.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import grpc

from .backoff import ReconnectionBackoff, retry_with_backoff
from .config import StreamingConfig
from .constants import LOG_TAG, COMPRESSION_LEVELS, COMPRESSION_METADATA
from .exceptions import AgentNotConnected, ConnectFailure
from .identity import AgentIdentity
from .rpc import IngestServiceStub

logger = logging.getLogger(LOG_TAG)

CHANNEL_READY_TIMEOUT = 10.0  # seconds
"""How long to wait for the channel to connect before counting a connect failure."""

_CONNECTION_STATUS_CODES = (grpc.StatusCode.UNAVAILABLE, grpc.StatusCode.DEADLINE_EXCEEDED)


def is_connection_error(error: BaseException) -> bool:
    """Connection-level failures are retried with backoff; anything else propagates."""
    if isinstance(error, (ConnectFailure, OSError, grpc.FutureTimeoutError)):
        return True
    if isinstance(error, grpc.RpcError) and callable(getattr(error, "code", None)):
        return error.code() in _CONNECTION_STATUS_CODES
    return False


def create_channel(config: StreamingConfig) -> grpc.Channel:
    """Open a channel to the configured trace observer (TLS unless insecure is set)."""
    options = []
    compression = None
    if config.compression_enabled:
        options.append(("grpc.default_compression_level", COMPRESSION_LEVELS.index(config.compression_level)))
        compression = grpc.Compression.Gzip
    if config.insecure:
        logger.warning(f"Streaming spans to {config.host_and_port} over an insecure channel")
        return grpc.insecure_channel(config.host_and_port, options=options, compression=compression)
    return grpc.secure_channel(
        config.host_and_port, grpc.ssl_channel_credentials(), options=options, compression=compression
    )


def wait_for_channel_ready(channel: grpc.Channel, timeout: float = CHANNEL_READY_TIMEOUT) -> None:
    """Raises grpc.FutureTimeoutError if the channel does not connect in time."""
    future = grpc.channel_ready_future(channel)
    try:
        future.result(timeout=timeout)
    except grpc.FutureTimeoutError:
        # unsubscribe from the channel's connectivity updates
        future.cancel()
        raise


class Connection:
    """
    Connection manager for one trace observer. Shared by the streaming client for the life of
    the process; reset() drops the channel so the next stream reconnects from scratch.

    Args:
        config: streaming settings (observer address, TLS, compression)
        identity: source of the license key, run token and request headers
        channel_factory: builds the gRPC channel (tests substitute a fake transport)
        stub_factory: builds the ingest service stub from a channel
        channel_ready: blocks until a channel is connected, raising on timeout
        sleep: used for backoff waits
        backoff: retry schedule
    """

    def __init__(
        self,
        config: StreamingConfig,
        identity: AgentIdentity,
        channel_factory: Callable[[StreamingConfig], Any] = create_channel,
        stub_factory: Callable[[Any], Any] = IngestServiceStub,
        channel_ready: Optional[Callable[[Any], None]] = wait_for_channel_ready,
        sleep: Callable[[float], None] = time.sleep,
        backoff: Optional[ReconnectionBackoff] = None,
    ):
        self._config = config
        self._identity = identity
        self._channel_factory = channel_factory
        self._stub_factory = stub_factory
        self._channel_ready = channel_ready
        self._sleep = sleep
        self._backoff = backoff or ReconnectionBackoff()
        self._lock = threading.RLock()
        self._channel = None
        self._rpc = None

    @property
    def config(self) -> StreamingConfig:
        return self._config

    @property
    def identity(self) -> AgentIdentity:
        return self._identity

    @property
    def channel(self):
        with self._lock:
            if self._channel is None:
                logger.debug(f"Creating channel to trace observer {self._config.host_and_port}")
                self._channel = self._channel_factory(self._config)
            return self._channel

    @property
    def rpc(self):
        with self._lock:
            if self._rpc is None:
                self._rpc = self._stub_factory(self.channel)
            return self._rpc

    @property
    def connection_attempts(self) -> int:
        return self._backoff.attempts

    def wait_for_agent_connect(self, timeout: Optional[float] = None) -> None:
        """Block until the agent has connected to its collector and has a run token."""
        if self._identity.connected:
            return
        logger.debug(f"Waiting for the agent to connect before streaming spans")
        if not self._identity.wait_until_connected(timeout):
            raise AgentNotConnected(f"agent did not connect within {timeout} seconds")
        logger.debug(f"Agent connected, ready to stream spans")

    @property
    def metadata(self) -> Dict[str, str]:
        """
        Per-stream metadata. Rebuilt on every access: the run token rotates when the agent
        reconnects to its collector.
        """
        metadata = {
            "license_key": self._identity.license_key or "",
            "agent_run_token": self._identity.agent_run_token or "",
        }
        for key, value in self._identity.request_headers_map.items():
            metadata[str(key).lower()] = str(value)
        if self._config.compression_enabled:
            metadata.update(COMPRESSION_METADATA)
        return metadata

    def _metadata_pairs(self) -> List[Tuple[str, str]]:
        return list(self.metadata.items())

    def _ready_channel(self):
        channel = self.channel
        if self._channel_ready is not None:
            self._channel_ready(channel)
        return channel

    def get_channel(self):
        """Return a connected channel, blocking with backoff until one is available."""
        return self.with_reconnection_backoff(self._ready_channel)

    def _open_stream(self, method_name: str, enumerator: Iterator[Any]):
        rpc = self.rpc
        self._ready_channel()
        method = getattr(rpc, method_name)
        return method(enumerator, metadata=self._metadata_pairs())

    # Streams open lazily, so a successful open says nothing about the observer. The failure
    # count is only reset once the stream is acknowledged (note_connect_success).

    def record_spans(self, client, enumerator: Iterator[Any], exponential_backoff: bool = True):
        """Open a RecordSpan stream fed by enumerator. Returns the response iterator."""
        logger.debug(f"Opening span stream for {client!r}")
        return self.with_reconnection_backoff(
            lambda: self._open_stream("record_span", enumerator), exponential_backoff, reset_on_success=False
        )

    def record_span_batches(self, client, enumerator: Iterator[Any], exponential_backoff: bool = True):
        """Open a RecordSpanBatch stream fed by enumerator. Returns the response iterator."""
        logger.debug(f"Opening span batch stream for {client!r}")
        return self.with_reconnection_backoff(
            lambda: self._open_stream("record_span_batch", enumerator), exponential_backoff, reset_on_success=False
        )

    def with_reconnection_backoff(
        self, action: Callable[[], Any], exponential_backoff: bool = True, reset_on_success: bool = True
    ):
        """Run action, retrying connection errors forever with backoff. Other errors propagate."""
        return retry_with_backoff(
            action,
            is_connection_error,
            next_period=lambda: self.retry_connection_period(exponential_backoff),
            note_failure=lambda: self.note_connect_failure(),
            sleep=self._sleep,
            on_success=self._backoff.reset if reset_on_success else (lambda: None),
        )

    def retry_connection_period(self, exponential_backoff: bool = True) -> float:
        return self._backoff.period(exponential_backoff)

    def note_connect_failure(self) -> None:
        self._backoff.note_failure()

    def note_connect_success(self) -> None:
        """The observer answered on a stream: the next failure waits the base period again."""
        self._backoff.reset()

    def wait_before_reconnect(self, exponential_backoff: bool = True) -> None:
        """Sleep for the current retry period, then count the failure that led here."""
        period = self.retry_connection_period(exponential_backoff)
        logger.info(f"Will re-attempt the span stream to the trace observer in {period} seconds")
        self._sleep(period)
        self.note_connect_failure()

    def reset(self) -> None:
        """Close the channel; the next stream builds a new one."""
        with self._lock:
            channel, self._channel, self._rpc = self._channel, None, None
        if channel is not None:
            logger.debug(f"Closing channel to trace observer {self._config.host_and_port}")
            try:
                channel.close()
            except Exception as e:
                logger.debug(f"Error closing channel: {e}")

    def close(self) -> None:
        self.reset()

    def __repr__(self) -> str:
        return f"Connection({self._config.host_and_port}, attempts={self._backoff.attempts})"
