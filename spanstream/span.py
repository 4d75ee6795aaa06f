"""
Records carried on the span stream: Span (one span), SpanBatch (several spans in one write)
and RecordStatus (the server's acknowledgement). Records are immutable and are encoded as
compact JSON for the wire.
"""

import json
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple

from opentelemetry.sdk.trace import ReadableSpan


def _json_bytes(value: Any) -> bytes:
    return json.dumps(value, default=str, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class Span(Mapping):
    """
    A finished span ready for export. Supports read-only item access, e.g. span["trace_id"].
    """

    __slots__ = ("_fields",)

    def __init__(
        self,
        trace_id: str,
        timestamp: int,
        span_id: Optional[str] = None,
        parent_span_id: Optional[str] = None,
        name: str = "",
        duration: Optional[int] = None,
        attributes: Optional[Dict[str, Any]] = None,
    ):
        if not trace_id:
            raise ValueError("trace_id is required")
        fields = {
            "trace_id": trace_id,
            "span_id": span_id,
            "parent_span_id": parent_span_id,
            "name": name,
            "timestamp": timestamp,
            "duration": duration,
            "attributes": MappingProxyType(dict(attributes) if attributes else {}),
        }
        object.__setattr__(self, "_fields", fields)

    def __setattr__(self, name, value):
        raise AttributeError("Span is immutable")

    def __getitem__(self, key: str) -> Any:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __hash__(self) -> int:
        return hash((self._fields["trace_id"], self._fields["span_id"], self._fields["timestamp"]))

    def __repr__(self) -> str:
        return f"Span(trace_id={self['trace_id']!r}, span_id={self['span_id']!r}, name={self['name']!r})"

    @property
    def trace_id(self) -> str:
        return self._fields["trace_id"]

    @property
    def timestamp(self) -> int:
        return self._fields["timestamp"]

    def to_dict(self) -> Dict[str, Any]:
        return {**self._fields, "attributes": dict(self._fields["attributes"])}

    @classmethod
    def from_readable_span(cls, span: ReadableSpan) -> "Span":
        """Convert a finished OpenTelemetry span. Timestamps stay in nanoseconds."""
        span_context = span.get_span_context()

        parent_span_id = None
        if span.parent is not None:
            parent_span_id = format(span.parent.span_id, "016x")

        duration = None
        if span.end_time is not None and span.start_time is not None:
            duration = span.end_time - span.start_time

        return cls(
            trace_id=format(span_context.trace_id, "032x"),
            span_id=format(span_context.span_id, "016x"),
            parent_span_id=parent_span_id,
            name=span.name,
            timestamp=span.start_time or 0,
            duration=duration,
            attributes=dict(span.attributes) if span.attributes else {},
        )


class SpanBatch:
    """An ordered, immutable group of spans sent in a single stream write."""

    __slots__ = ("_spans",)

    def __init__(self, spans: Iterable[Span]):
        object.__setattr__(self, "_spans", tuple(spans))

    def __setattr__(self, name, value):
        raise AttributeError("SpanBatch is immutable")

    @property
    def spans(self) -> Tuple[Span, ...]:
        return self._spans

    def __len__(self) -> int:
        return len(self._spans)

    def __iter__(self) -> Iterator[Span]:
        return iter(self._spans)

    def __repr__(self) -> str:
        return f"SpanBatch(size={len(self._spans)})"


class RecordStatus:
    """Server acknowledgement: how many messages the observer has seen on this stream."""

    __slots__ = ("messages_seen",)

    def __init__(self, messages_seen: int = 0):
        self.messages_seen = messages_seen

    def __repr__(self) -> str:
        return f"RecordStatus(messages_seen={self.messages_seen})"


def serialize_span(span: Span) -> bytes:
    return _json_bytes(span.to_dict())


def serialize_span_batch(batch: SpanBatch) -> bytes:
    return _json_bytes({"spans": [span.to_dict() for span in batch]})


def deserialize_span(data: bytes) -> Span:
    return Span(**json.loads(data))


def deserialize_span_batch(data: bytes) -> SpanBatch:
    return SpanBatch(Span(**fields) for fields in json.loads(data)["spans"])


def serialize_record_status(status: RecordStatus) -> bytes:
    return _json_bytes({"messages_seen": status.messages_seen})


def deserialize_record_status(data: bytes) -> RecordStatus:
    if not data:
        return RecordStatus()
    return RecordStatus(int(json.loads(data).get("messages_seen", 0)))
