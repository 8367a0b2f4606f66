"""gRPC servicer for Envoy's AccessLogService — one session per stream."""

import logging

import grpc
from envoy.service.accesslog.v3 import als_pb2, als_pb2_grpc

from logsink.session import StreamSession
from logsink.transformer import DEFAULT_WAF_HEADER

logger = logging.getLogger(__name__)


class AccessLogIngestionService(als_pb2_grpc.AccessLogServiceServicer):
    """Runs a fresh StreamSession for every inbound StreamAccessLogs call."""

    def __init__(self, sink, waf_header: str = DEFAULT_WAF_HEADER):
        self._sink = sink
        self._waf_header = waf_header

    def StreamAccessLogs(self, request_iterator, context):
        peer = context.peer() if context is not None else "unknown"
        session = StreamSession(self._sink, peer=peer, waf_header=self._waf_header)
        error = session.run(request_iterator)

        if isinstance(error, grpc.RpcError):
            logger.info("Stream from %s ended by transport: %s", peer, error)
        elif error is not None:
            logger.error("Stream from %s failed: %r", peer, error)
        return als_pb2.StreamAccessLogsResponse()
