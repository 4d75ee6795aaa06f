"""
OpenTelemetry span exporter that hands finished spans to the streaming client.
"""

import logging
from typing import Sequence

from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from .client import StreamingClient
from .constants import LOG_TAG
from .span import Span

logger = logging.getLogger(LOG_TAG)


class StreamingSpanExporter(SpanExporter):
    """
    Converts each span and enqueues it on the streaming client. Export never fails from the
    SDK's point of view: spans that can't be converted are logged and skipped, and delivery is
    best-effort once queued.
    """

    def __init__(self, client: StreamingClient):
        self._client = client
        self._shutdown = False

    @property
    def client(self) -> StreamingClient:
        return self._client

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        if not spans:
            logger.debug(f"export: called with empty spans list")
            return SpanExportResult.SUCCESS
        if self._shutdown:
            logger.debug(f"export: exporter is shut down, dropping {len(spans)} span(s)")
            return SpanExportResult.SUCCESS

        queued = 0
        for span in spans:
            try:
                self._client.enqueue(Span.from_readable_span(span))
                queued += 1
            except Exception as e:
                logger.error(f"export: could not convert span {getattr(span, 'name', '?')!r}: {e}")
        logger.debug(f"export: queued {queued} of {len(spans)} span(s) for streaming")
        return SpanExportResult.SUCCESS

    def force_flush(self, timeout_millis: int = 30000) -> bool:
        # spans are streamed as they arrive; nothing is held back here
        return True

    def shutdown(self) -> None:
        if self._shutdown:
            return
        logger.info(f"shutdown: stopping span streaming")
        self._shutdown = True
        try:
            self._client.stop()
        except Exception as e:
            logger.error(f"shutdown: error stopping span streaming: {e}")
