# spanstream/agent.py
import os
import logging
import threading
from functools import lru_cache
from typing import Optional

from opentelemetry import trace
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from .client import StreamingClient
from .config import StreamingConfig
from .connection import Connection
from .constants import LOG_TAG
from .exporter import StreamingSpanExporter
from .identity import AgentIdentity
from .metrics import SupportabilityMetrics

logger = logging.getLogger(LOG_TAG)


class SpanStreamAgent:
    """
    Process-wide span streaming: the agent identity, the connection to the trace observer,
    the streaming client and the OpenTelemetry exporter that feeds it.

    Access via get_span_stream() which creates it on first use.
    """

    def __init__(self):
        self.config: Optional[StreamingConfig] = None
        self.identity: Optional[AgentIdentity] = None
        self.connection: Optional[Connection] = None
        self.client: Optional[StreamingClient] = None
        self.exporter: Optional[StreamingSpanExporter] = None
        self.provider: Optional[TracerProvider] = None
        self._enabled: bool = False
        self._initialized: bool = False

    @property
    def enabled(self) -> bool:
        """True once streaming is configured and started."""
        return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        logger.info(f"Span streaming {'enabled' if value else 'disabled'}")
        self._enabled = value

    def enqueue(self, span) -> None:
        """Queue a span directly, bypassing OpenTelemetry. Dropped if streaming is disabled."""
        if self.client is not None and self._enabled:
            self.client.enqueue(span)

    def restart(self) -> None:
        """Rebuild the stream, e.g. after the agent reconnected under a new identity."""
        if self.client is not None:
            self.client.restart()

    def shutdown(self) -> None:
        """
        Stop streaming and release the connection.
        It is not necessary to call this function; the streaming threads are daemons.
        """
        try:
            logger.info(f"Span streaming shutting down")
            self.enabled = False
            if self.identity is not None:
                self.identity.remove_connect_listener(_restart_on_reconnect)
            if self.exporter is not None:
                self.exporter.shutdown()
            elif self.client is not None:
                self.client.stop()
        except Exception as e:
            logger.error(f"Error shutting down span streaming: {e}")
            self.enabled = False


# Global singleton instance
agent: SpanStreamAgent = SpanStreamAgent()
_init_lock = threading.Lock()


@lru_cache(maxsize=1)
def get_span_stream() -> SpanStreamAgent:
    """
    Initialize and return the span streaming singleton.

    Reads SPANSTREAM_* environment variables (see StreamingConfig), attaches the streaming
    exporter to the global TracerProvider and starts streaming in the background. Streaming
    waits for the agent to connect: set SPANSTREAM_AGENT_RUN_TOKEN, or call
    agent.identity.connect(run_token) once the run token is known.

    Never raises: if setup fails, streaming is disabled and the application carries on.

    Example:
        from spanstream import get_span_stream

        stream = get_span_stream()
        stream.identity.connect("run-token-from-collector")
    """
    global agent
    try:
        with _init_lock:
            _init_streaming()
    except Exception as e:
        logger.error(f"Failed to initialize span streaming: {e}")
        logger.warning(f"Span streaming is disabled. Your application will continue to run without it.")
    return agent


def _init_streaming() -> None:
    global agent
    if agent._initialized:
        return
    agent._initialized = True  # even on error, to prevent retry loops

    config = StreamingConfig()
    agent.config = config
    if not config.enabled:
        logger.warning(f"Span streaming is disabled: SPANSTREAM_TRACE_OBSERVER_HOST is not set")
        return

    identity = AgentIdentity(
        license_key=config.license_key,
        agent_run_token=os.getenv("SPANSTREAM_AGENT_RUN_TOKEN") or None,
    )
    metrics = SupportabilityMetrics()
    connection = Connection(config, identity)
    client = StreamingClient(connection, config, metrics)
    agent.identity = identity
    agent.connection = connection
    agent.client = client

    provider = trace.get_tracer_provider()
    # If it's still the default proxy, install a real SDK provider
    if not isinstance(provider, TracerProvider):
        provider = TracerProvider()
        trace.set_tracer_provider(provider)
    _attach_exporter(provider, client)
    agent.provider = provider

    identity.add_connect_listener(_restart_on_reconnect)
    _start_in_background(client.start_streaming, "SpanStream-Start")
    agent.enabled = True
    logger.info(f"Span streaming initialized: {config!r}")


def _attach_exporter(provider: TracerProvider, client: StreamingClient) -> None:
    """Attach the streaming exporter to the provider. Idempotent - safe to call multiple times."""
    if agent.exporter is not None and agent.provider is provider:
        logger.debug(f"Span streaming exporter already attached, skipping")
        return
    exporter = StreamingSpanExporter(client)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    agent.exporter = exporter
    logger.debug(f"Span streaming exporter attached")


def _restart_on_reconnect(identity: AgentIdentity) -> None:
    # the first connect is picked up by the pending start_streaming; later ones carry a new run token
    client = agent.client
    if client is None or client.response_handler is None:
        return
    _start_in_background(client.restart, "SpanStream-Restart")


def _start_in_background(target, name: str) -> threading.Thread:
    def run():
        try:
            target()
        except Exception as e:
            logger.error(f"{name}: {e}", exc_info=True)

    thread = threading.Thread(target=run, daemon=True, name=name)
    thread.start()
    return thread
