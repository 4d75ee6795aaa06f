"""
Example usage: stream OpenTelemetry spans to a trace observer.
"""

import os
import time
from dotenv import load_dotenv
import logging
from opentelemetry import trace
from spanstream import get_span_stream

# Load environment variables from .env file
load_dotenv()

logging.basicConfig(level=logging.DEBUG)
logging.getLogger("SpanStream").setLevel(logging.DEBUG)

# Initialize streaming: attaches the exporter to the global TracerProvider
stream = get_span_stream()

# Print to verify environment variables are loaded
print(os.getenv("SPANSTREAM_TRACE_OBSERVER_HOST"))
print(f"Streaming enabled: {stream.enabled}")

# Streaming starts once the agent knows its run token
if stream.enabled and not stream.identity.connected:
    stream.identity.connect(os.getenv("EXAMPLE_RUN_TOKEN", "example-run-token"))

tracer = trace.get_tracer(__name__)


def handle_request(i: int) -> int:
    with tracer.start_as_current_span("handle_request") as span:
        span.set_attribute("request.number", i)
        with tracer.start_as_current_span("query_database"):
            time.sleep(0.01)
        return i * 2


def main():
    for i in range(20):
        result = handle_request(i)
        print(f"handle_request({i}) = {result}")

    time.sleep(10)
    if stream.client is not None:
        print(f"Metrics: {stream.client.metrics.snapshot()}")
    stream.shutdown()


if __name__ == "__main__":
    main()
