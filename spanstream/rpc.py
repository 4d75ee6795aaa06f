"""
Client stub for the trace observer's ingest service: two bidirectional streams, one taking
single spans and one taking span batches. Both answer with RecordStatus messages.
"""

import grpc

from .constants import RECORD_SPAN_METHOD, RECORD_SPAN_BATCH_METHOD
from .span import serialize_span, serialize_span_batch, deserialize_record_status


class IngestServiceStub:
    def __init__(self, channel: grpc.Channel):
        self.record_span = channel.stream_stream(
            RECORD_SPAN_METHOD,
            request_serializer=serialize_span,
            response_deserializer=deserialize_record_status,
        )
        self.record_span_batch = channel.stream_stream(
            RECORD_SPAN_BATCH_METHOD,
            request_serializer=serialize_span_batch,
            response_deserializer=deserialize_record_status,
        )
