"""
Read path of a span stream: consumes the observer's RecordStatus responses on a daemon thread
and reports how the stream ended back to the client.
"""

import logging
import threading
from typing import Any, Iterable, Optional

from .constants import LOG_TAG

logger = logging.getLogger(LOG_TAG)


class RecordStatusHandler:
    """
    Iterates the response side of one stream. The first response is reported with
    client.handle_ack(), a normal end of the responses with client.handle_close(), an error
    with client.handle_error(). The request side is cancelled as soon as the responses end.
    Nothing is reported once stop() has been called, since the client tore the stream down
    itself.
    """

    def __init__(self, client, responses: Iterable[Any], enumerator=None):
        self._client = client
        self._responses = responses
        # request side of the same stream, cancelled with it
        self._enumerator = enumerator
        self._lock = threading.Condition()
        self._messages_seen: Optional[int] = None
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name="SpanStream-RecordStatus")

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        acknowledged = False
        try:
            for response in self._responses:
                if self._stopped.is_set():
                    return
                if response is None:
                    break
                with self._lock:
                    self._messages_seen = getattr(response, "messages_seen", None)
                    self._lock.notify_all()
                logger.debug(f"Trace observer acknowledged {self._messages_seen} message(s)")
                if not acknowledged:
                    acknowledged = True
                    self._client.handle_ack(handler=self)
        except Exception as error:
            self._cancel_requests()
            if self._stopped.is_set():
                logger.debug(f"Span stream ended after it was stopped: {error}")
                return
            self._client.handle_error(error, handler=self)
            return
        # spans taken after the call ended never reach the observer
        self._cancel_requests()
        if not self._stopped.is_set():
            self._client.handle_close(handler=self)

    def _cancel_requests(self) -> None:
        if self._enumerator is not None:
            self._enumerator.cancel()

    @property
    def messages_seen(self) -> Optional[int]:
        with self._lock:
            return self._messages_seen

    def wait_for_messages_seen(self, count: int, timeout: Optional[float] = None) -> bool:
        with self._lock:
            return self._lock.wait_for(
                lambda: self._messages_seen is not None and self._messages_seen >= count, timeout=timeout
            )

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def stop(self) -> None:
        """Abandon the stream. Cancels the call if the transport supports it."""
        if self._stopped.is_set():
            return
        self._stopped.set()
        self._cancel_requests()
        cancel = getattr(self._responses, "cancel", None)
        if callable(cancel):
            try:
                cancel()
            except Exception as e:
                logger.debug(f"Error cancelling span stream: {e}")

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread.ident is not None and threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    def __repr__(self) -> str:
        return f"RecordStatusHandler(messages_seen={self.messages_seen}, stopped={self.stopped})"
