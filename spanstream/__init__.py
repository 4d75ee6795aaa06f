"""
Python client for streaming trace spans to a trace observer over a long-lived gRPC stream.

Initialization is lazy: call get_span_stream() once at startup. Spans finished through the
OpenTelemetry SDK are then streamed in the background.

Set environment variables:
    SPANSTREAM_TRACE_OBSERVER_HOST: host of the trace observer (streaming is off if unset)
    SPANSTREAM_TRACE_OBSERVER_PORT: port of the trace observer (default: 443)
    SPANSTREAM_LICENSE_KEY: license key sent with every stream
    SPANSTREAM_AGENT_RUN_TOKEN: Optional run token, if known at startup
    SPANSTREAM_BATCHING: Optional, send span batches (default: true)
    SPANSTREAM_COMPRESSION_LEVEL: Optional, none/low/medium/high (default: high)
    SPANSTREAM_QUEUE_SIZE: Optional span buffer capacity (default: 10000)

Example:
    from dotenv import load_dotenv
    from opentelemetry import trace
    from spanstream import get_span_stream

    # Load environment variables from .env file (if using one)
    load_dotenv()

    stream = get_span_stream()
    stream.identity.connect("run-token-from-collector")

    with trace.get_tracer(__name__).start_as_current_span("my-operation"):
        pass
"""

from .agent import get_span_stream, SpanStreamAgent
from .buffer import StreamingBuffer, SuspendedStreamingBuffer
from .client import StreamingClient, ClientState
from .config import StreamingConfig
from .connection import Connection
from .exceptions import SpanStreamError, ConnectFailure, AgentNotConnected
from .exporter import StreamingSpanExporter
from .identity import AgentIdentity
from .metrics import SupportabilityMetrics
from .span import Span, SpanBatch, RecordStatus
from .constants import VERSION

__all__ = [
    "get_span_stream",
    "SpanStreamAgent",
    "StreamingBuffer",
    "SuspendedStreamingBuffer",
    "StreamingClient",
    "ClientState",
    "StreamingConfig",
    "Connection",
    "SpanStreamError",
    "ConnectFailure",
    "AgentNotConnected",
    "StreamingSpanExporter",
    "AgentIdentity",
    "SupportabilityMetrics",
    "Span",
    "SpanBatch",
    "RecordStatus",
    "VERSION",
]
