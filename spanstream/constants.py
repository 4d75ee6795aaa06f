"""
Constants used across the spanstream package.
"""

SPANSTREAM_TRACER_NAME = "spanstream"
VERSION = "0.1.0" # automatically updated by set-version-json.sh

LOG_TAG = "SpanStream" # Used in all logging output to identify spanstream messages

# gRPC ingest service
INGEST_SERVICE = "spanstream.v1.IngestService"
RECORD_SPAN_METHOD = f"/{INGEST_SERVICE}/RecordSpan"
RECORD_SPAN_BATCH_METHOD = f"/{INGEST_SERVICE}/RecordSpanBatch"

# Supportability metric names
METRIC_PREFIX = "Supportability/SpanStream/Span"
SPANS_SEEN_METRIC = f"{METRIC_PREFIX}/Seen"
SPANS_SENT_METRIC = f"{METRIC_PREFIX}/Sent"
QUEUE_DUMPED_METRIC = f"{METRIC_PREFIX}/AgentQueueDumped"
RESPONSE_ERROR_METRIC = f"{METRIC_PREFIX}/Response/Error"
GRPC_STATUS_METRIC_PREFIX = f"{METRIC_PREFIX}/gRPC"

# Seconds to wait before connect attempt n; the last value is held once exhausted.
CONNECT_RETRY_PERIODS = (15, 15, 30, 60, 120, 300)
MIN_RETRY_PERIOD = CONNECT_RETRY_PERIODS[0]
MAX_RETRY_PERIOD = CONNECT_RETRY_PERIODS[-1]

DEFAULT_PORT = 443
DEFAULT_QUEUE_SIZE = 10_000
DEFAULT_MAX_BATCH_SIZE = 100
DEFAULT_COMPRESSION_LEVEL = "high"
COMPRESSION_LEVEL_NONE = "none"
COMPRESSION_LEVELS = (COMPRESSION_LEVEL_NONE, "low", "medium", "high")

# Sent with every stream when compression is enabled
COMPRESSION_METADATA = {
    "grpc-internal-encoding-request": "gzip",
    "content-coding": "gzip",
    "content-encoding": "gzip",
}
