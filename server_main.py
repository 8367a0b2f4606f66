"""gRPC access-log sink — entry point."""

import logging
import signal
import sys
import threading

from logsink.config import load_config
from logsink.log_setup import setup_logging
from logsink.server import BindError, LogSinkServer
from logsink.sink import SinkWriter

logger = logging.getLogger("server_main")


def main() -> int:
    try:
        config = load_config()
    except (OSError, ValueError) as exc:
        setup_logging("info")
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)
    setup_logging(config.log_level)
    logger.info("=== Starting gRPC log sink server (port %d) ===", config.port)

    try:
        sink = SinkWriter(config.log_file)
    except OSError as exc:
        logger.error("Failed to open log file %s: %s", config.log_file, exc)
        sys.exit(1)

    server = LogSinkServer(config, sink)
    try:
        server.start()
    except BindError as exc:
        logger.error("Failed to create listener: %s", exc)
        sink.close()
        sys.exit(1)

    shutdown_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info("Received signal %d, shutting down...", signum)
        shutdown_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    logger.info("=== Server ready - waiting for connections ===")
    server.serve_until(shutdown_event)
    logger.info("Server stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
