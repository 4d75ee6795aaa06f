"""
Classification of how a stream ended, computed once from the gRPC status code.
"""

import enum
from typing import Optional

import grpc

from .constants import GRPC_STATUS_METRIC_PREFIX


class ResponseClassification(enum.Enum):
    RECOVERABLE = "recoverable"
    """Reconnect and keep streaming; buffered spans are kept."""
    GRACEFUL_CLOSE = "graceful_close"
    """The observer closed the stream with OK: reconnect quietly."""
    PERMANENT_REJECT = "permanent_reject"
    """The observer does not support streaming: suspend for the life of the process."""


def status_code_of(error: Optional[BaseException]) -> grpc.StatusCode:
    """The gRPC status carried by an error, UNKNOWN for anything that isn't an RPC error."""
    if isinstance(error, grpc.RpcError):
        code = getattr(error, "code", None)
        if callable(code):
            status = code()
            if isinstance(status, grpc.StatusCode):
                return status
    return grpc.StatusCode.UNKNOWN


def classify_status(code: grpc.StatusCode) -> ResponseClassification:
    if code == grpc.StatusCode.OK:
        return ResponseClassification.GRACEFUL_CLOSE
    if code == grpc.StatusCode.UNIMPLEMENTED:
        return ResponseClassification.PERMANENT_REJECT
    return ResponseClassification.RECOVERABLE


def status_metric_name(code: grpc.StatusCode) -> str:
    """e.g. Supportability/SpanStream/Span/gRPC/UNIMPLEMENTED"""
    return f"{GRPC_STATUS_METRIC_PREFIX}/{code.name}"
