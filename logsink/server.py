"""gRPC server lifecycle — bind, serve, drain, close the sink."""

import logging
import threading
from concurrent import futures

import grpc
from envoy.service.accesslog.v3 import als_pb2_grpc

from logsink.config import Config
from logsink.service import AccessLogIngestionService
from logsink.sink import SinkWriter

logger = logging.getLogger(__name__)


class BindError(Exception):
    """Raised when the listener cannot be bound."""


class LogSinkServer:
    """Owns the gRPC server and the sink it writes to.

    Each stream runs on its own worker thread; ``max_workers`` caps the
    number of concurrent streams. Streams beyond the cap are refused with
    RESOURCE_EXHAUSTED instead of queueing behind streams that may never end.
    """

    def __init__(self, config: Config, sink: SinkWriter):
        self._config = config
        self._sink = sink
        self._server = None
        self._port = None
        self._lock = threading.Lock()
        self._stopped = False

    @property
    def port(self):
        """Port the server is bound to. Useful when port=0."""
        return self._port

    def start(self):
        """Register the service, bind the listener and start serving."""
        self._server = grpc.server(
            futures.ThreadPoolExecutor(
                max_workers=self._config.max_workers,
                thread_name_prefix="als-stream",
            ),
            maximum_concurrent_rpcs=self._config.max_workers,
        )
        als_pb2_grpc.add_AccessLogServiceServicer_to_server(
            AccessLogIngestionService(self._sink, waf_header=self._config.waf_header),
            self._server,
        )

        try:
            port = self._server.add_insecure_port(self._config.address)
        except RuntimeError as exc:
            raise BindError(f"cannot bind {self._config.address}: {exc}") from exc
        if not port:
            raise BindError(f"cannot bind {self._config.address}")

        self._server.start()
        self._port = port
        logger.info("ALS gRPC server listening on %s:%d (max %d concurrent streams)",
                    self._config.host, port, self._config.max_workers)

    def serve_until(self, shutdown_event: threading.Event):
        """Block until *shutdown_event* is set, then stop()."""
        while not shutdown_event.wait(timeout=1.0):
            pass
        self.stop()

    def stop(self):
        """Refuse new streams, let in-flight ones finish, then close the sink."""
        with self._lock:
            if self._stopped:
                return
            self._stopped = True

        if self._server is not None:
            grace = self._config.shutdown_grace
            if grace is None:
                logger.info("Server shutting down, waiting for open streams to finish...")
                grace = threading.TIMEOUT_MAX
            else:
                logger.info("Server shutting down, waiting up to %.1fs for open streams...", grace)
            self._server.stop(grace).wait()
            logger.info("All streams drained")

        self._sink.close()
