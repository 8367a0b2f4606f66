"""Per-stream session — receives access-log batches and appends them to the sink."""

import enum
import logging
from typing import Iterable, Optional

from logsink.log_setup import TRACE
from logsink.sink import SinkWriteError
from logsink.transformer import (
    DEFAULT_WAF_HEADER,
    encode_record,
    transform_http_entry,
    transform_tcp_entry,
)

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    OPEN = "open"
    ACTIVE = "active"
    CLOSED = "closed"


class StreamSession:
    """State for one inbound StreamAccessLogs call.

    OPEN until the first message arrives, ACTIVE while messages keep coming,
    CLOSED for good on end-of-stream or the first receive error. Nothing here
    is shared with other sessions except the sink.
    """

    def __init__(self, sink, peer: str = "unknown", waf_header: str = DEFAULT_WAF_HEADER):
        self._sink = sink
        self._peer = peer
        self._waf_header = waf_header
        self.state = SessionState.OPEN
        self.node_id = ""
        self.log_name = ""
        self.messages_received = 0
        self.records_written = 0
        self.records_dropped = 0

    def run(self, messages: Iterable) -> Optional[Exception]:
        """Consume *messages* until the peer closes or the stream fails.

        Returns None on a clean end-of-stream, else the receive error.
        """
        logger.info("Stream opened from %s", self._peer)
        error = None
        iterator = iter(messages)
        try:
            while True:
                # only a failed receive ends the session
                try:
                    msg = next(iterator)
                except StopIteration:
                    break
                except Exception as exc:
                    error = exc
                    break
                self.state = SessionState.ACTIVE
                self.handle_message(msg)
        finally:
            self.state = SessionState.CLOSED

        logger.info(
            "Stream from %s closed (node=%s, log=%s, messages=%d, written=%d, dropped=%d)",
            self._peer, self.node_id or "-", self.log_name or "-",
            self.messages_received, self.records_written, self.records_dropped,
        )
        return error

    def handle_message(self, msg):
        """Dispatch one StreamAccessLogsMessage by its entry kind."""
        self.messages_received += 1
        if msg.HasField("identifier"):
            self._remember_identifier(msg.identifier)

        kind = msg.WhichOneof("log_entries")
        if kind == "http_logs":
            for entry in msg.http_logs.log_entry:
                self._write_entry(kind, entry)
        elif kind == "tcp_logs":
            for entry in msg.tcp_logs.log_entry:
                self._write_entry(kind, entry)
        else:
            logger.debug("Ignoring message with entry kind %r from %s", kind, self._peer)

    def _write_entry(self, kind: str, entry):
        try:
            if kind == "http_logs":
                data = encode_record(transform_http_entry(entry, self._waf_header))
            else:
                data = encode_record(transform_tcp_entry(entry))
        except Exception as exc:
            self.records_dropped += 1
            logger.error("Dropping unencodable %s entry from %s (node=%s): %r",
                         kind, self._peer, self.node_id or "-", exc)
            return
        self._append(data)

    def _remember_identifier(self, identifier):
        node_id = identifier.node.id
        log_name = identifier.log_name
        if (node_id, log_name) != (self.node_id, self.log_name):
            self.node_id, self.log_name = node_id, log_name
            logger.info("Stream from %s identified as node=%s log=%s",
                        self._peer, node_id or "-", log_name or "-")

    def _append(self, data: bytes):
        try:
            self._sink.append(data)
        except SinkWriteError as exc:
            self.records_dropped += 1
            logger.error("Dropping record from %s (node=%s): %s",
                         self._peer, self.node_id or "-", exc)
            return
        self.records_written += 1
        logger.log(TRACE, "Wrote record from %s: %s", self._peer, data)
