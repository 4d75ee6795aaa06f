"""
Tests for the span buffer: drop-on-overflow, FIFO consumption, interrupt and close.
"""

import threading

from spanstream.buffer import StreamingBuffer, SuspendedStreamingBuffer
from spanstream.constants import QUEUE_DUMPED_METRIC, SPANS_SEEN_METRIC, SPANS_SENT_METRIC
from spanstream.metrics import SupportabilityMetrics
from spanstream.span import SpanBatch

from fakes import make_span, wait_until


def _consume_in_thread(iterator, out):
    thread = threading.Thread(target=lambda: out.extend(iterator), daemon=True)
    thread.start()
    return thread


class TestPush:
    """Tests for push and the overflow policy."""

    def test_push_to_capacity_keeps_everything(self):
        """Test that filling the buffer exactly to capacity drops nothing."""
        metrics = SupportabilityMetrics()
        buffer = StreamingBuffer(max_size=5, metrics=metrics)
        for i in range(5):
            buffer.push(make_span(i))

        assert len(buffer) == 5
        assert buffer.dumped_count == 0
        assert not metrics.recorded(QUEUE_DUMPED_METRIC)
        assert metrics.count(SPANS_SEEN_METRIC) == 5

    def test_overflow_drops_incoming_span(self):
        """Test that pushes beyond capacity drop the new span and count it."""
        metrics = SupportabilityMetrics()
        buffer = StreamingBuffer(max_size=5, metrics=metrics)
        for i in range(7):
            buffer.push(make_span(i))

        assert len(buffer) == 5
        assert buffer.dumped_count == 2
        assert metrics.count(QUEUE_DUMPED_METRIC) == 2
        assert metrics.count(SPANS_SEEN_METRIC) == 7
        # the oldest spans are the ones kept
        assert [span.trace_id for span in buffer.queue] == [f"trace-{i}" for i in range(5)]

    def test_push_ignores_none(self):
        """Test that None is not buffered or counted."""
        metrics = SupportabilityMetrics()
        buffer = StreamingBuffer(max_size=5, metrics=metrics)
        buffer.push(None)
        assert len(buffer) == 0
        assert not metrics.recorded(SPANS_SEEN_METRIC)

    def test_push_after_close_is_discarded(self):
        """Test that a closed buffer silently discards spans."""
        buffer = StreamingBuffer(max_size=5)
        buffer.close()
        buffer.push(make_span(1))
        assert len(buffer) == 0
        assert buffer.dumped_count == 0

    def test_lshift_pushes(self):
        """Test that buffer << span is the same as push."""
        buffer = StreamingBuffer(max_size=5)
        buffer << make_span(1) << make_span(2)
        assert len(buffer) == 2

    def test_concurrent_producers_never_exceed_capacity(self):
        """Test that many producer threads can push at once without exceeding capacity."""
        metrics = SupportabilityMetrics()
        buffer = StreamingBuffer(max_size=50, metrics=metrics)

        def produce(offset):
            for i in range(100):
                buffer.push(make_span(offset + i))

        threads = [threading.Thread(target=produce, args=(n * 1000,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5.0)

        assert len(buffer) == 50
        assert buffer.dumped_count == 350
        assert metrics.count(SPANS_SEEN_METRIC) == 400


class TestConsume:
    """Tests for pop_blocking and the stream enumerators."""

    def test_pop_blocking_returns_oldest(self):
        """Test FIFO order of pop_blocking."""
        buffer = StreamingBuffer(max_size=5)
        buffer.push(make_span(1))
        buffer.push(make_span(2))
        assert buffer.pop_blocking(timeout=1.0).trace_id == "trace-1"
        assert buffer.pop_blocking(timeout=1.0).trace_id == "trace-2"

    def test_pop_blocking_times_out_when_empty(self):
        """Test that pop_blocking returns None after its timeout."""
        buffer = StreamingBuffer(max_size=5)
        assert buffer.pop_blocking(timeout=0.05) is None

    def test_close_releases_waiting_consumer(self):
        """Test that close() wakes a consumer blocked on an empty buffer."""
        buffer = StreamingBuffer(max_size=5)
        result = []
        thread = threading.Thread(target=lambda: result.append(buffer.pop_blocking()), daemon=True)
        thread.start()
        buffer.close()
        thread.join(timeout=5.0)
        assert not thread.is_alive()
        assert result == [None]

    def test_enumerator_yields_in_order_and_counts_sent(self):
        """Test that the enumerator yields spans FIFO and counts each one as sent."""
        metrics = SupportabilityMetrics()
        buffer = StreamingBuffer(max_size=10, metrics=metrics)
        for i in range(3):
            buffer.push(make_span(i))

        received = []
        thread = _consume_in_thread(buffer.enumerator(), received)
        buffer.push(make_span(3))
        assert wait_until(lambda: metrics.count(SPANS_SENT_METRIC) == 4)
        buffer.close()
        thread.join(timeout=5.0)

        assert [span.trace_id for span in received] == [f"trace-{i}" for i in range(4)]
        assert metrics.count(SPANS_SENT_METRIC) == 4

    def test_interrupt_ends_enumerator_and_keeps_spans(self):
        """Test that interrupt() ends the current enumerator without discarding buffered spans."""
        buffer = StreamingBuffer(max_size=10)
        enumerator = buffer.enumerator()
        buffer.interrupt()
        buffer.push(make_span(1))

        assert list(enumerator) == []
        assert len(buffer) == 1
        # a new enumerator picks up where the old one stopped
        assert next(buffer.enumerator()).trace_id == "trace-1"

    def test_cancel_ends_only_that_enumerator(self):
        """Test that cancelling one consumer leaves the spans for the next one."""
        buffer = StreamingBuffer(max_size=10)
        first = buffer.enumerator()
        first.cancel()
        buffer.push(make_span(1))

        assert list(first) == []
        assert next(buffer.enumerator()).trace_id == "trace-1"

    def test_close_ends_batch_enumerator(self):
        """Test that a closed buffer yields no batches, even with spans left in it."""
        metrics = SupportabilityMetrics()
        buffer = StreamingBuffer(max_size=10, metrics=metrics)
        for i in range(7):
            buffer.push(make_span(i))
        buffer.close()

        assert list(buffer.batch_enumerator(max_batch_size=3)) == []
        assert metrics.count(SPANS_SENT_METRIC) == 0

    def test_batch_enumerator_takes_everything_buffered_up_to_max(self):
        """Test that batches hold all buffered spans, capped at max_batch_size."""
        metrics = SupportabilityMetrics()
        buffer = StreamingBuffer(max_size=10, metrics=metrics)
        for i in range(7):
            buffer.push(make_span(i))

        batches = []
        thread = _consume_in_thread(buffer.batch_enumerator(max_batch_size=3), batches)
        assert wait_until(lambda: len(buffer) == 0 and metrics.count(SPANS_SENT_METRIC) == 7)
        buffer.close()
        thread.join(timeout=5.0)

        assert all(isinstance(batch, SpanBatch) for batch in batches)
        assert [len(batch) for batch in batches] == [3, 3, 1]
        assert [span.trace_id for batch in batches for span in batch] == [f"trace-{i}" for i in range(7)]

    def test_clear_and_flush_queue(self):
        """Test that flush_queue returns and removes buffered spans and clear discards them."""
        buffer = StreamingBuffer(max_size=10)
        buffer.push(make_span(1))
        buffer.push(make_span(2))
        assert [span.trace_id for span in buffer.flush_queue()] == ["trace-1", "trace-2"]
        assert len(buffer) == 0

        buffer.push(make_span(3))
        buffer.clear()
        assert len(buffer) == 0


class TestSuspendedStreamingBuffer:
    """Tests for the buffer installed after a permanent rejection."""

    def test_push_is_silent_noop(self):
        """Test that spans are accepted, counted as seen, and never dropped-counted or kept."""
        metrics = SupportabilityMetrics()
        buffer = SuspendedStreamingBuffer(metrics)
        for i in range(3):
            buffer.push(make_span(i))

        assert len(buffer) == 0
        assert buffer.dumped_count == 0
        assert not metrics.recorded(QUEUE_DUMPED_METRIC)
        assert metrics.count(SPANS_SEEN_METRIC) == 3

    def test_consumers_see_it_closed(self):
        """Test that pop_blocking and enumerators return immediately."""
        buffer = SuspendedStreamingBuffer()
        assert buffer.closed
        assert buffer.pop_blocking() is None
        assert list(buffer.enumerator()) == []
        assert list(buffer.batch_enumerator()) == []
