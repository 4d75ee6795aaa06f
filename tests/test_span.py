"""
Tests for the stream records and their wire encoding.
"""

import pytest
from opentelemetry.sdk.trace import TracerProvider

from spanstream.span import (
    RecordStatus,
    Span,
    SpanBatch,
    deserialize_record_status,
    deserialize_span_batch,
    serialize_record_status,
    serialize_span,
    serialize_span_batch,
)

from fakes import make_span


class TestSpan:
    """Tests for Span."""

    def test_requires_trace_id(self):
        with pytest.raises(ValueError):
            Span(trace_id="", timestamp=1)

    def test_item_access(self):
        span = make_span(1, attributes={"http.method": "GET"})
        assert span["trace_id"] == "trace-1"
        assert span.trace_id == "trace-1"
        assert span.timestamp == 1001
        assert span["attributes"]["http.method"] == "GET"

    def test_immutable(self):
        """Test that neither the span nor its attributes can be changed once created."""
        span = make_span(1, attributes={"a": 1})
        with pytest.raises(AttributeError):
            span.name = "renamed"
        with pytest.raises(TypeError):
            span["attributes"]["a"] = 2
        with pytest.raises(TypeError):
            span["name"] = "renamed"

    def test_from_readable_span(self):
        """Test conversion of a finished OpenTelemetry span."""
        tracer = TracerProvider().get_tracer("test")
        with tracer.start_as_current_span("parent") as parent:
            child = tracer.start_span("child", attributes={"db.system": "postgresql"})
            child.end()

        span = Span.from_readable_span(child)

        assert span["name"] == "child"
        assert span.trace_id == format(parent.get_span_context().trace_id, "032x")
        assert span["parent_span_id"] == format(parent.get_span_context().span_id, "016x")
        assert len(span["span_id"]) == 16
        assert span["attributes"] == {"db.system": "postgresql"}
        assert span["duration"] >= 0
        assert span.timestamp == child.start_time


class TestWireEncoding:
    """Tests for the JSON wire encoding."""

    def test_span_is_compact_json(self):
        data = serialize_span(make_span(1))
        assert isinstance(data, bytes)
        assert b'"trace_id":"trace-1"' in data

    def test_batch_round_trip(self):
        batch = SpanBatch([make_span(1), make_span(2, attributes={"k": "v"})])
        decoded = deserialize_span_batch(serialize_span_batch(batch))
        assert [span.trace_id for span in decoded] == ["trace-1", "trace-2"]
        assert decoded.spans[1]["attributes"] == {"k": "v"}

    def test_record_status(self):
        assert deserialize_record_status(serialize_record_status(RecordStatus(12))).messages_seen == 12
        assert deserialize_record_status(b"").messages_seen == 0
